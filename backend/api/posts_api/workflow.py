from __future__ import annotations

import logging

from posts_api.schema import STATUSES

logger = logging.getLogger(__name__)

# Intended lifecycle. Nothing enforces the order: any status may follow any other.
INTENDED_PROGRESSION: list[str] = ["draft", "scheduled", "published", "archived"]


class WorkflowError(Exception):
    """Raised when a status is outside the enumeration."""


def list_statuses() -> list[str]:
    return list(STATUSES)


def _normalize_status(status: str) -> str:
    if not status:
        return status
    return status.strip().lower()


def intended_next(from_status: str) -> str | None:
    """The next status along the intended progression, or None at the end."""
    s = _normalize_status(from_status)
    if s not in INTENDED_PROGRESSION:
        return None
    i = INTENDED_PROGRESSION.index(s)
    if i + 1 >= len(INTENDED_PROGRESSION):
        return None
    return INTENDED_PROGRESSION[i + 1]


def is_forward(from_status: str, to_status: str) -> bool:
    s_from = _normalize_status(from_status)
    s_to = _normalize_status(to_status)
    if s_from not in INTENDED_PROGRESSION or s_to not in INTENDED_PROGRESSION:
        return False
    return INTENDED_PROGRESSION.index(s_to) > INTENDED_PROGRESSION.index(s_from)


def allowed_transitions(from_status: str) -> list[str]:
    """
    Every status other than the current one.

    Out-of-order moves (archived -> draft, published -> scheduled, ...) stay
    permitted until a product decision says otherwise.
    """
    s = _normalize_status(from_status)
    return [st for st in STATUSES if st != s]


def validate_transition(from_status: str, to_status: str) -> str:
    """
    Returns the normalized target status.

    Raises WorkflowError only for values outside the enumeration.
    """
    s_from = _normalize_status(from_status)
    s_to = _normalize_status(to_status)

    if s_to not in STATUSES:
        raise WorkflowError(f"Unknown status: {to_status}. Allowed: {list(STATUSES)}")

    if s_from in STATUSES and s_to != s_from and not is_forward(s_from, s_to):
        logger.info("Out-of-order status change %s -> %s", s_from, s_to)

    return s_to
