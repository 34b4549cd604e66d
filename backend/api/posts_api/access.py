from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from posts_api.errors import AccessDenied
from posts_api.schema import POLICY_NAME, TABLE_NAME

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Caller:
    id: Optional[str] = None

    @property
    def anonymous(self) -> bool:
        return self.id is None


ANONYMOUS = Caller()


class AccessPolicy(Protocol):
    def permits(self, caller: Caller, operation: Operation, record: Mapping[str, Any] | None) -> bool:
        ...


class AllowAllPolicy:
    """
    Every caller may perform every operation on every record.

    Placeholder until a real identity/authorization model exists. Replace the
    registered policy to tighten access; the table definition does not change.
    """

    def permits(self, caller: Caller, operation: Operation, record: Mapping[str, Any] | None) -> bool:
        return True


# table name -> {policy name -> policy}
_registry: dict[str, dict[str, AccessPolicy]] = {}


def register_policy(table: str, name: str, policy: AccessPolicy) -> bool:
    """
    Attach `policy` to `table` under `name` unless a policy of that name exists.

    Returns True when the policy was added.
    """
    policies = _registry.setdefault(table, {})
    if name in policies:
        return False
    policies[name] = policy
    logger.info("Registered access policy %r on %s", name, table)
    return True


def replace_policy(table: str, name: str, policy: AccessPolicy) -> None:
    _registry.setdefault(table, {})[name] = policy


def unregister_policy(table: str, name: str) -> None:
    _registry.get(table, {}).pop(name, None)


def policy_names(table: str = TABLE_NAME) -> list[str]:
    return list(_registry.get(table, {}))


def install_default_policy(table: str = TABLE_NAME) -> bool:
    return register_policy(table, POLICY_NAME, AllowAllPolicy())


def authorize(
    caller: Caller | None,
    operation: Operation,
    record: Mapping[str, Any] | None = None,
    table: str = TABLE_NAME,
) -> None:
    """
    Raises AccessDenied unless every policy on `table` permits the operation.

    A table with no registered policy falls back to the permissive default.
    """
    caller = caller or ANONYMOUS
    policies = _registry.get(table) or {POLICY_NAME: AllowAllPolicy()}

    for name, policy in policies.items():
        if not policy.permits(caller, operation, record):
            logger.warning(
                "Access policy %r denied %s on %s for caller %s",
                name, operation.value, table, caller.id or "<anonymous>",
            )
            raise AccessDenied(f"{operation.value} on {table} denied by policy '{name}'")


def require_caller(x_caller_id: str | None) -> Caller:
    """
    Resolve the caller from the "X-Caller-Id" request header.

    Plain string (or None) in, so endpoints can call it directly.
    """
    caller_id = (x_caller_id or "").strip()
    if not caller_id:
        return ANONYMOUS
    return Caller(id=caller_id)
