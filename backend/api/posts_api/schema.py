"""
content_posts table definition.

The Table below is the single description of the stored record shape. The
migration builds the table from it and the repository queries through it, so
column names, enumerations and defaults live here only.

Object names (indexes, policy, routine, trigger) are deterministic so that a
repeated application can find what an earlier run already created.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression


TABLE_NAME = "content_posts"

CONTENT_TYPES: tuple[str, ...] = ("create_post", "lead_magnet")
STATUSES: tuple[str, ...] = ("draft", "scheduled", "published", "archived")
DEFAULT_STATUS = "draft"

POLICY_NAME = "Allow all operations on content_posts"
FRESHNESS_FUNCTION = "update_updated_at_column"
FRESHNESS_TRIGGER = "update_content_posts_updated_at"

# Set once by the database, never through an update.
IMMUTABLE_COLUMNS: frozenset[str] = frozenset({"id", "created_at"})
# Always stamped by the database; caller values are dropped.
SERVER_MANAGED_COLUMNS: frozenset[str] = frozenset({"updated_at"})


def index_name(column: str) -> str:
    return f"idx_{TABLE_NAME}_{column}"


# ----------------------------
# Portable server-side functions
# ----------------------------

class utc_now(expression.FunctionElement):
    """
    Current time as seen by the database.

    PostgreSQL: now() (transaction start time, timezone aware).
    SQLite: UTC text with millisecond precision, parseable as ISO datetime.
    """

    type = sa.DateTime(timezone=True)
    name = "utc_now"
    inherit_cache = True


@compiles(utc_now)
def _utc_now_default(element, compiler, **kw):
    return "CURRENT_TIMESTAMP"


@compiles(utc_now, "postgresql")
def _utc_now_postgresql(element, compiler, **kw):
    return "now()"


@compiles(utc_now, "sqlite")
def _utc_now_sqlite(element, compiler, **kw):
    return "strftime('%Y-%m-%d %H:%M:%f', 'now')"


class new_uuid(expression.FunctionElement):
    """Freshly generated identifier, produced by the database."""

    type = sa.Uuid()
    name = "new_uuid"
    inherit_cache = True


@compiles(new_uuid)
def _new_uuid_default(element, compiler, **kw):
    return "gen_random_uuid()"


@compiles(new_uuid, "sqlite")
def _new_uuid_sqlite(element, compiler, **kw):
    # 32 hex chars: the storage format of sa.Uuid on engines without a native uuid type
    return "lower(hex(randomblob(16)))"


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ----------------------------
# Table
# ----------------------------

JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TextList = sa.JSON(none_as_null=True).with_variant(postgresql.ARRAY(sa.Text()), "postgresql")

metadata = sa.MetaData()

content_posts = sa.Table(
    TABLE_NAME,
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True, server_default=new_uuid()),
    sa.Column("title", sa.String(255), nullable=True),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("content_type", sa.String(50), nullable=False),
    sa.Column("status", sa.String(20), nullable=False, server_default=DEFAULT_STATUS),
    sa.Column("source_data", JSONDocument, nullable=False, server_default=sa.text("'{}'")),
    sa.Column("original_content", sa.Text(), nullable=True),
    sa.Column("edit_history", JSONDocument, nullable=False, server_default=sa.text("'[]'")),
    sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("platform", sa.String(50), nullable=True),
    sa.Column("tags", TextList, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=utc_now()),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=utc_now()),
    sa.CheckConstraint(_in_list("content_type", CONTENT_TYPES), name="ck_content_posts_content_type"),
    sa.CheckConstraint(_in_list("status", STATUSES), name="ck_content_posts_status"),
    # VARCHAR(n) is advisory on SQLite; enforce the lengths on every engine.
    sa.CheckConstraint("title IS NULL OR length(title) <= 255", name="ck_content_posts_title_length"),
    sa.CheckConstraint("platform IS NULL OR length(platform) <= 50", name="ck_content_posts_platform_length"),
)

# Read-path accelerators only; none of them takes part in a constraint.
INDEXES: tuple[sa.Index, ...] = (
    sa.Index(index_name("content_type"), content_posts.c.content_type),
    sa.Index(index_name("status"), content_posts.c.status),
    sa.Index(index_name("scheduled_date"), content_posts.c.scheduled_date),
    sa.Index(index_name("created_at"), content_posts.c.created_at.desc()),
)

COLUMN_NAMES: tuple[str, ...] = tuple(c.name for c in content_posts.columns)
