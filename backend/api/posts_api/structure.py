"""
Idempotent application of the content_posts structure.

Order matters because later objects refer to earlier ones by name:

    table -> access policy -> indexes -> freshness routine -> freshness trigger

Every step checks for the object before creating it, so the whole sequence
can be re-run against an environment that already has some or all of it.
The trigger is the exception: it is dropped and re-created in one transaction,
which leaves exactly one binding in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Union

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.schema import CreateTable

from posts_api import access
from posts_api.schema import (
    FRESHNESS_FUNCTION,
    FRESHNESS_TRIGGER,
    INDEXES,
    POLICY_NAME,
    TABLE_NAME,
    content_posts,
    utc_now,
)

logger = logging.getLogger(__name__)

SUPPORTED_DIALECTS = ("postgresql", "sqlite")


@dataclass
class StructureReport:
    created: List[str] = field(default_factory=list)
    present: List[str] = field(default_factory=list)

    def record(self, name: str, created: bool) -> None:
        (self.created if created else self.present).append(name)


def _is_postgres(conn: Connection) -> bool:
    return conn.dialect.name == "postgresql"


def _now_sql(conn: Connection) -> str:
    return str(utc_now().compile(dialect=conn.dialect))


# ----------------------------
# Steps
# ----------------------------

def ensure_table(conn: Connection, report: StructureReport) -> None:
    if sa.inspect(conn).has_table(TABLE_NAME):
        report.record(f"table {TABLE_NAME}", False)
        return

    # CreateTable emits the table and its constraints only; indexes are their own step.
    conn.execute(CreateTable(content_posts))
    report.record(f"table {TABLE_NAME}", True)


def ensure_access_policy(conn: Connection, report: StructureReport) -> None:
    created = access.install_default_policy(TABLE_NAME)

    if _is_postgres(conn):
        # Enabling RLS on a table that already has it is a no-op.
        conn.execute(text(f"ALTER TABLE {TABLE_NAME} ENABLE ROW LEVEL SECURITY"))

        exists = conn.execute(
            text("""
                SELECT 1
                FROM pg_policies
                WHERE tablename = :table
                  AND policyname = :policy
            """),
            {"table": TABLE_NAME, "policy": POLICY_NAME},
        ).first()

        created = exists is None
        if created:
            conn.execute(text(f"""
                CREATE POLICY "{POLICY_NAME}"
                ON {TABLE_NAME}
                FOR ALL
                USING (true)
                WITH CHECK (true)
            """))

    report.record(f"policy {POLICY_NAME!r}", created)


def ensure_indexes(conn: Connection, report: StructureReport) -> None:
    existing = {ix["name"] for ix in sa.inspect(conn).get_indexes(TABLE_NAME)}

    for index in INDEXES:
        if index.name in existing:
            report.record(f"index {index.name}", False)
            continue
        index.create(conn)
        report.record(f"index {index.name}", True)


def ensure_freshness_routine(conn: Connection, report: StructureReport) -> None:
    """
    PostgreSQL keeps the routine as a stored function shared by any trigger
    that wants it. SQLite has no stored procedures; its trigger carries the
    same body inline, so there is nothing to create here.
    """
    if not _is_postgres(conn):
        return

    exists = conn.execute(
        text("SELECT 1 FROM pg_proc WHERE proname = :name"),
        {"name": FRESHNESS_FUNCTION},
    ).first()

    # CREATE OR REPLACE keeps the body current even when the function exists.
    conn.execute(text(f"""
        CREATE OR REPLACE FUNCTION {FRESHNESS_FUNCTION}()
        RETURNS TRIGGER AS $$
        BEGIN
          NEW.updated_at = now();
          RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """))
    report.record(f"function {FRESHNESS_FUNCTION}()", exists is None)


def ensure_freshness_trigger(conn: Connection, report: StructureReport) -> None:
    if _is_postgres(conn):
        exists = conn.execute(
            text("""
                SELECT 1
                FROM pg_trigger t
                JOIN pg_class c ON c.oid = t.tgrelid
                WHERE c.relname = :table
                  AND t.tgname = :trigger
            """),
            {"table": TABLE_NAME, "trigger": FRESHNESS_TRIGGER},
        ).first()

        conn.execute(text(f"DROP TRIGGER IF EXISTS {FRESHNESS_TRIGGER} ON {TABLE_NAME}"))
        conn.execute(text(f"""
            CREATE TRIGGER {FRESHNESS_TRIGGER}
              BEFORE UPDATE ON {TABLE_NAME}
              FOR EACH ROW
              EXECUTE FUNCTION {FRESHNESS_FUNCTION}()
        """))
    else:
        exists = conn.execute(
            text("SELECT 1 FROM sqlite_master WHERE type = 'trigger' AND name = :trigger"),
            {"trigger": FRESHNESS_TRIGGER},
        ).first()

        # SQLite cannot assign to NEW, so the row is re-stamped after the update.
        # recursive_triggers is off by default, so the inner UPDATE does not re-fire.
        conn.execute(text(f"DROP TRIGGER IF EXISTS {FRESHNESS_TRIGGER}"))
        conn.execute(text(f"""
            CREATE TRIGGER {FRESHNESS_TRIGGER}
              AFTER UPDATE ON {TABLE_NAME}
              FOR EACH ROW
            BEGIN
              UPDATE {TABLE_NAME} SET updated_at = {_now_sql(conn)} WHERE id = NEW.id;
            END
        """))

    report.record(f"trigger {FRESHNESS_TRIGGER}", exists is None)


STEPS: tuple[Callable[[Connection, StructureReport], None], ...] = (
    ensure_table,
    ensure_access_policy,
    ensure_indexes,
    ensure_freshness_routine,
    ensure_freshness_trigger,
)


# ----------------------------
# Entry points
# ----------------------------

def apply_schema(bind: Union[Engine, Connection]) -> StructureReport:
    """
    Apply every structural object, creating only what is missing.

    With an Engine each step runs in its own transaction. With a Connection
    (e.g. inside an Alembic revision) the steps share the caller's transaction.
    """
    if bind.dialect.name not in SUPPORTED_DIALECTS:
        raise RuntimeError(
            f"Unsupported database dialect '{bind.dialect.name}'. "
            f"Supported: {', '.join(SUPPORTED_DIALECTS)}"
        )

    report = StructureReport()
    for step in STEPS:
        if isinstance(bind, Engine):
            with bind.begin() as conn:
                step(conn, report)
        else:
            step(bind, report)

    if report.created:
        logger.info("Created %s", ", ".join(report.created))
    logger.info("%s structure applied (%d created, %d already present)",
                TABLE_NAME, len(report.created), len(report.present))
    return report


def describe_structure(conn: Connection) -> Dict[str, Any]:
    """Names of the content_posts objects that currently exist."""
    insp = sa.inspect(conn)
    has_table = insp.has_table(TABLE_NAME)
    indexes = sorted(ix["name"] for ix in insp.get_indexes(TABLE_NAME)) if has_table else []

    if _is_postgres(conn):
        policies = conn.execute(
            text("SELECT policyname FROM pg_policies WHERE tablename = :table ORDER BY policyname"),
            {"table": TABLE_NAME},
        ).scalars().all()
        triggers = conn.execute(
            text("""
                SELECT t.tgname
                FROM pg_trigger t
                JOIN pg_class c ON c.oid = t.tgrelid
                WHERE c.relname = :table
                  AND NOT t.tgisinternal
                ORDER BY t.tgname
            """),
            {"table": TABLE_NAME},
        ).scalars().all()
        routines = conn.execute(
            text("SELECT proname FROM pg_proc WHERE proname = :name"),
            {"name": FRESHNESS_FUNCTION},
        ).scalars().all()
    else:
        policies = access.policy_names(TABLE_NAME)
        triggers = conn.execute(
            text("""
                SELECT name
                FROM sqlite_master
                WHERE type = 'trigger'
                  AND tbl_name = :table
                ORDER BY name
            """),
            {"table": TABLE_NAME},
        ).scalars().all()
        routines = []

    return {
        "tables": [TABLE_NAME] if has_table else [],
        "indexes": indexes,
        "policies": list(policies),
        "triggers": list(triggers),
        "routines": list(routines),
    }
