"""Shared fixtures: throwaway SQLite databases with the content_posts structure."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine

from posts_api import access
from posts_api.schema import TABLE_NAME
from posts_api.structure import apply_schema


def _clear_policies() -> None:
    for name in access.policy_names(TABLE_NAME):
        access.unregister_policy(TABLE_NAME, name)


@pytest.fixture(autouse=True)
def clean_policies():
    _clear_policies()
    yield
    _clear_policies()


@pytest.fixture()
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'content_posts.db'}", future=True)
    yield eng
    eng.dispose()


@pytest.fixture()
def posts_engine(engine):
    """Engine whose database already has the full structure applied."""
    apply_schema(engine)
    return engine
