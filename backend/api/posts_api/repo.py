from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DataError, IntegrityError

from posts_api import access
from posts_api.access import Caller, Operation
from posts_api.errors import ConstraintViolation, ImmutableFieldError
from posts_api.models import ContentPost, EditRecord
from posts_api.schema import (
    COLUMN_NAMES,
    IMMUTABLE_COLUMNS,
    SERVER_MANAGED_COLUMNS,
    content_posts,
    utc_now,
)

logger = logging.getLogger(__name__)

_NOT_NULL_DOCUMENTS = ("source_data", "edit_history")
_TIMESTAMP_COLUMNS = ("scheduled_date", "created_at", "updated_at")


# ----------------------------
# Helpers (safe + deterministic)
# ----------------------------

def _sort_to_order_by(sort: str) -> List[Any]:
    """
    Allowed sort values (explicit allow-list):
      - created_at_desc (default)
      - created_at_asc
      - updated_at_desc
      - updated_at_asc
      - scheduled_date_asc
      - scheduled_date_desc
      - title_asc
      - title_desc
    """
    c = content_posts.c
    s = (sort or "").strip().lower()
    if s == "created_at_asc":
        return [c.created_at.asc()]
    if s == "updated_at_desc":
        return [c.updated_at.desc()]
    if s == "updated_at_asc":
        return [c.updated_at.asc()]
    if s == "scheduled_date_asc":
        return [c.scheduled_date.asc(), c.created_at.desc()]
    if s == "scheduled_date_desc":
        return [c.scheduled_date.desc(), c.created_at.desc()]
    if s == "title_asc":
        return [c.title.asc()]
    if s == "title_desc":
        return [c.title.desc()]
    return [c.created_at.desc()]


def _parse_id(post_id: Any) -> UUID:
    if isinstance(post_id, UUID):
        return post_id
    try:
        return UUID(str(post_id))
    except ValueError:
        # A malformed id can never match a row.
        raise KeyError(str(post_id))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Engines without timezone storage hand back naive UTC values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_dict(row: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    out["id"] = str(out["id"])
    for col in _TIMESTAMP_COLUMNS:
        out[col] = _as_utc(out[col])
    return out


def _constraint_message(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).strip()


def _fetch(conn: Connection, post_id: Any, for_update: bool = False) -> Dict[str, Any]:
    stmt = sa.select(content_posts).where(content_posts.c.id == _parse_id(post_id))
    if for_update:
        stmt = stmt.with_for_update()

    row = conn.execute(stmt).mappings().first()
    if row is None:
        raise KeyError(str(post_id))
    return _row_to_dict(row)


def _apply_update(conn: Connection, post_id: UUID, changes: Mapping[str, Any]) -> None:
    """
    Freshness interceptor: every UPDATE stamps updated_at with the database
    clock in the same statement. Caller values never reach this point.
    """
    stmt = (
        sa.update(content_posts)
        .where(content_posts.c.id == post_id)
        .values(**changes, updated_at=utc_now())
    )
    conn.execute(stmt)


def _check_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - set(COLUMN_NAMES)
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")

    immutable = IMMUTABLE_COLUMNS & set(changes)
    if immutable:
        raise ImmutableFieldError(list(immutable))

    cleaned = dict(changes)
    for col in SERVER_MANAGED_COLUMNS:
        if col in cleaned:
            logger.debug("Discarding caller-supplied %s", col)
            cleaned.pop(col)

    for col in _NOT_NULL_DOCUMENTS:
        if col in cleaned and cleaned[col] is None:
            raise ConstraintViolation(f"{col} cannot be null; use an empty value instead")

    if "scheduled_date" in cleaned:
        cleaned["scheduled_date"] = _as_utc(cleaned["scheduled_date"])

    return cleaned


# ----------------------------
# CRUD / Queries
# ----------------------------

def create_post(
    engine: Engine,
    content: Optional[str],
    content_type: Optional[str],
    *,
    title: Optional[str] = None,
    status: Optional[str] = None,
    source_data: Optional[Dict[str, Any]] = None,
    original_content: Optional[str] = None,
    edit_history: Optional[List[Dict[str, Any]]] = None,
    scheduled_date: Optional[datetime] = None,
    platform: Optional[str] = None,
    tags: Optional[List[str]] = None,
    caller: Optional[Caller] = None,
) -> Dict[str, Any]:
    """
    Insert one post. id, status, source_data, edit_history, created_at and
    updated_at fall back to their database defaults when omitted (None).

    Raises ConstraintViolation when the database rejects the row; nothing is
    written in that case.
    """
    values: Dict[str, Any] = {
        "title": title,
        "content": content,
        "content_type": content_type,
        "original_content": original_content,
        "scheduled_date": _as_utc(scheduled_date),
        "platform": platform,
        "tags": tags,
    }
    if status is not None:
        values["status"] = status
    if source_data is not None:
        values["source_data"] = source_data
    if edit_history is not None:
        values["edit_history"] = edit_history

    access.authorize(caller, Operation.CREATE, values)

    stmt = sa.insert(content_posts).values(**values).returning(*content_posts.c)

    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().one()
    except (IntegrityError, DataError) as e:
        raise ConstraintViolation(_constraint_message(e)) from e

    post = _row_to_dict(row)
    logger.info("Created content post %s (%s)", post["id"], post["content_type"])
    return post


def get_post(engine: Engine, post_id: Any, caller: Optional[Caller] = None) -> Dict[str, Any]:
    """Raises KeyError when the post does not exist."""
    with engine.begin() as conn:
        post = _fetch(conn, post_id)

    access.authorize(caller, Operation.READ, post)
    return post


def list_posts(
    engine: Engine,
    *,
    content_type: Optional[str] = None,
    status: Optional[str] = None,
    platform: Optional[str] = None,
    scheduled_from: Optional[datetime] = None,
    scheduled_to: Optional[datetime] = None,
    q: Optional[str] = None,
    sort: str = "created_at_desc",
    limit: int = 20,
    offset: int = 0,
    caller: Optional[Caller] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    # Collection-level check; the policy sees no individual record here.
    access.authorize(caller, Operation.READ, None)

    c = content_posts.c
    where = []
    if content_type:
        where.append(c.content_type == content_type)
    if status:
        where.append(c.status == status)
    if platform:
        where.append(c.platform == platform)
    if scheduled_from is not None:
        where.append(c.scheduled_date >= _as_utc(scheduled_from))
    if scheduled_to is not None:
        where.append(c.scheduled_date < _as_utc(scheduled_to))
    if q:
        where.append(c.title.ilike(f"%{q}%"))

    items_stmt = (
        sa.select(content_posts)
        .where(*where)
        .order_by(*_sort_to_order_by(sort))
        .limit(int(limit))
        .offset(int(offset))
    )
    total_stmt = sa.select(sa.func.count()).select_from(content_posts).where(*where)

    with engine.begin() as conn:
        rows = conn.execute(items_stmt).mappings().all()
        total = conn.execute(total_stmt).scalar_one()

    return [_row_to_dict(r) for r in rows], int(total)


def update_post(
    engine: Engine,
    post_id: Any,
    changes: Mapping[str, Any],
    caller: Optional[Caller] = None,
) -> Dict[str, Any]:
    """
    Apply `changes` and return the stored row.

    updated_at is always set by the database, whatever the caller passed.
    id and created_at cannot be changed (ImmutableFieldError). The row is
    re-read inside the same transaction, after any trigger has run.
    """
    cleaned = _check_changes(changes)

    try:
        with engine.begin() as conn:
            current = _fetch(conn, post_id, for_update=True)
            access.authorize(caller, Operation.UPDATE, current)

            _apply_update(conn, _parse_id(current["id"]), cleaned)
            return _fetch(conn, post_id)
    except (IntegrityError, DataError) as e:
        raise ConstraintViolation(_constraint_message(e)) from e


def record_edit(
    engine: Engine,
    post_id: Any,
    content: str,
    *,
    note: Optional[str] = None,
    caller: Optional[Caller] = None,
) -> Dict[str, Any]:
    """
    Replace the content and keep what it replaced.

    The first edit copies the pre-edit text into original_content. Every edit
    appends the replaced text to edit_history, oldest first.
    """
    try:
        with engine.begin() as conn:
            row = _fetch(conn, post_id, for_update=True)
            access.authorize(caller, Operation.UPDATE, row)
            current = ContentPost.from_row(row)

            entry = EditRecord(
                content=current.content,
                edited_at=datetime.now(timezone.utc).isoformat(),
                note=note,
            )
            changes: Dict[str, Any] = {
                "content": content,
                "edit_history": [*current.edit_history, entry.as_dict()],
            }
            if current.original_content is None:
                changes["original_content"] = current.content

            _apply_update(conn, _parse_id(current.id), changes)
            post = _fetch(conn, post_id)
    except (IntegrityError, DataError) as e:
        raise ConstraintViolation(_constraint_message(e)) from e

    logger.info("Recorded edit %d on content post %s", len(post["edit_history"]), post["id"])
    return post


def delete_post(engine: Engine, post_id: Any, caller: Optional[Caller] = None) -> None:
    """Raises KeyError when the post does not exist."""
    with engine.begin() as conn:
        current = _fetch(conn, post_id)
        access.authorize(caller, Operation.DELETE, current)
        conn.execute(sa.delete(content_posts).where(content_posts.c.id == _parse_id(current["id"])))

    logger.info("Deleted content post %s", current["id"])
