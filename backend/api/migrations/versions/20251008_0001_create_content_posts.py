"""Create content_posts

- content_posts table (uuid id, enum CHECKs on content_type/status,
  jsonb source_data/edit_history defaulting to {} / [])
- permissive access policy "Allow all operations on content_posts"
  (temporary until auth is implemented)
- indexes on content_type, status, scheduled_date, created_at DESC
- update_updated_at_column() + BEFORE UPDATE trigger keeping updated_at current

Idempotent: every object is created only if missing; the trigger is
dropped and re-created.
"""

from __future__ import annotations

import logging

from alembic import op

from posts_api.structure import apply_schema

revision = "20251008_0001_create_content_posts"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.runtime.migration")


def upgrade() -> None:
    if op.get_context().as_sql:
        raise NotImplementedError("create_content_posts inspects the live database; run it online.")

    report = apply_schema(op.get_bind())
    for name in report.present:
        logger.info("Already present: %s", name)


def downgrade() -> None:
    raise NotImplementedError("Downgrades are not supported for create_content_posts.")
