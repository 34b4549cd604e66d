"""Storage-level constraints and defaults of the content_posts table.

These go through SQLAlchemy Core directly, bypassing the repository, so they
show what the database itself enforces.
"""

from __future__ import annotations

import uuid

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import DataError, IntegrityError

from posts_api.schema import (
    CONTENT_TYPES,
    COLUMN_NAMES,
    INDEXES,
    STATUSES,
    content_posts,
    index_name,
)


def _row_count(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(sa.select(sa.func.count()).select_from(content_posts)).scalar_one()


def _insert(engine, **values):
    with engine.begin() as conn:
        return conn.execute(
            sa.insert(content_posts).values(**values).returning(*content_posts.c)
        ).mappings().one()


class TestTableDefinition:
    def test_columns(self):
        assert COLUMN_NAMES == (
            "id",
            "title",
            "content",
            "content_type",
            "status",
            "source_data",
            "original_content",
            "edit_history",
            "scheduled_date",
            "platform",
            "tags",
            "created_at",
            "updated_at",
        )

    def test_enumerations(self):
        assert CONTENT_TYPES == ("create_post", "lead_magnet")
        assert STATUSES == ("draft", "scheduled", "published", "archived")

    def test_index_names_are_deterministic(self):
        assert [ix.name for ix in INDEXES] == [
            "idx_content_posts_content_type",
            "idx_content_posts_status",
            "idx_content_posts_scheduled_date",
            "idx_content_posts_created_at",
        ]
        assert index_name("status") == "idx_content_posts_status"

    def test_string_lengths(self):
        assert content_posts.c.title.type.length == 255
        assert content_posts.c.platform.type.length == 50
        assert content_posts.c.content_type.type.length == 50
        assert content_posts.c.status.type.length == 20

    def test_nullability(self):
        required = {c.name for c in content_posts.columns if not c.nullable}
        assert required == {
            "id",
            "content",
            "content_type",
            "status",
            "source_data",
            "edit_history",
            "created_at",
            "updated_at",
        }


class TestDefaults:
    def test_minimal_insert_gets_defaults(self, posts_engine):
        row = _insert(posts_engine, content="Hello", content_type="create_post")

        assert isinstance(row["id"], uuid.UUID)
        assert row["status"] == "draft"
        assert row["source_data"] == {}
        assert row["edit_history"] == []
        assert row["title"] is None
        assert row["tags"] is None
        assert row["created_at"] is not None
        assert row["created_at"] == row["updated_at"]

    def test_ids_are_unique(self, posts_engine):
        ids = {_insert(posts_engine, content=f"post {i}", content_type="lead_magnet")["id"] for i in range(5)}
        assert len(ids) == 5


class TestConstraints:
    @pytest.mark.parametrize("content_type", CONTENT_TYPES)
    @pytest.mark.parametrize("status", STATUSES)
    def test_every_valid_pair_is_stored(self, posts_engine, content_type, status):
        row = _insert(posts_engine, content="x", content_type=content_type, status=status)
        assert row["content_type"] == content_type
        assert row["status"] == status

    def test_invalid_content_type_rejected(self, posts_engine):
        with pytest.raises(IntegrityError):
            _insert(posts_engine, content="x", content_type="invalid_type")
        assert _row_count(posts_engine) == 0

    def test_invalid_status_rejected(self, posts_engine):
        with pytest.raises(IntegrityError):
            _insert(posts_engine, content="x", content_type="create_post", status="deleted")
        assert _row_count(posts_engine) == 0

    def test_missing_content_rejected(self, posts_engine):
        with pytest.raises(IntegrityError):
            _insert(posts_engine, content_type="create_post")
        assert _row_count(posts_engine) == 0

    def test_missing_content_type_rejected(self, posts_engine):
        with pytest.raises(IntegrityError):
            _insert(posts_engine, content="x")
        assert _row_count(posts_engine) == 0

    @pytest.mark.parametrize(
        "field, limit",
        [("title", 255), ("platform", 50)],
    )
    def test_length_limits(self, posts_engine, field, limit):
        row = _insert(posts_engine, content="x", content_type="create_post", **{field: "a" * limit})
        assert len(row[field]) == limit

        with pytest.raises((IntegrityError, DataError)):
            _insert(posts_engine, content="x", content_type="create_post", **{field: "a" * (limit + 1)})
        assert _row_count(posts_engine) == 1

    def test_invalid_status_on_update_rejected(self, posts_engine):
        row = _insert(posts_engine, content="x", content_type="create_post")

        with pytest.raises(IntegrityError):
            with posts_engine.begin() as conn:
                conn.execute(
                    sa.update(content_posts)
                    .where(content_posts.c.id == row["id"])
                    .values(status="unknown")
                )

        with posts_engine.connect() as conn:
            status = conn.execute(
                sa.select(content_posts.c.status).where(content_posts.c.id == row["id"])
            ).scalar_one()
        assert status == "draft"
