from __future__ import annotations


class ContentPostError(Exception):
    """Base class for content post failures surfaced to callers."""


class ConstraintViolation(ContentPostError):
    """A create/update was rejected by a storage constraint (enum, NOT NULL, length)."""


class ImmutableFieldError(ContentPostError):
    """Raised when an update tries to write `id` or `created_at`."""

    def __init__(self, fields: list[str]) -> None:
        self.fields = sorted(fields)
        super().__init__(f"Immutable fields cannot be updated: {', '.join(self.fields)}")


class AccessDenied(ContentPostError):
    """The active access policy refused the operation."""
