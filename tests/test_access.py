"""Tests for the access-control gate."""

from __future__ import annotations

import pytest

from posts_api import access, repo
from posts_api.access import (
    ANONYMOUS,
    AllowAllPolicy,
    Caller,
    Operation,
    authorize,
    require_caller,
)
from posts_api.errors import AccessDenied
from posts_api.schema import POLICY_NAME, TABLE_NAME


class ReadOnlyPolicy:
    def permits(self, caller, operation, record):
        return operation is Operation.READ


class OwnerOnlyPolicy:
    """Updates and deletes only for the caller named in source_data.owner."""

    def permits(self, caller, operation, record):
        if operation in (Operation.UPDATE, Operation.DELETE):
            return record is not None and record["source_data"].get("owner") == caller.id
        return True


class TestRequireCaller:
    def test_missing_header_is_anonymous(self):
        assert require_caller(None) is ANONYMOUS
        assert require_caller("   ") is ANONYMOUS
        assert ANONYMOUS.anonymous

    def test_header_value_is_trimmed(self):
        caller = require_caller("  user-42 ")
        assert caller == Caller(id="user-42")
        assert not caller.anonymous


class TestRegistry:
    def test_register_is_guarded_by_name(self):
        assert access.register_policy(TABLE_NAME, POLICY_NAME, AllowAllPolicy()) is True
        assert access.register_policy(TABLE_NAME, POLICY_NAME, ReadOnlyPolicy()) is False
        assert access.policy_names(TABLE_NAME) == [POLICY_NAME]

    def test_install_default_policy_twice(self):
        assert access.install_default_policy() is True
        assert access.install_default_policy() is False
        assert access.policy_names() == [POLICY_NAME]

    def test_replace_policy(self):
        access.install_default_policy()
        access.replace_policy(TABLE_NAME, POLICY_NAME, ReadOnlyPolicy())

        with pytest.raises(AccessDenied):
            authorize(ANONYMOUS, Operation.UPDATE)
        assert access.policy_names() == [POLICY_NAME]


class TestAuthorize:
    @pytest.mark.parametrize("operation", list(Operation))
    def test_allow_all_permits_everything(self, operation):
        access.install_default_policy()
        authorize(Caller(id="anyone"), operation, {"id": "x"})
        authorize(None, operation, None)

    def test_no_policy_falls_back_to_allow_all(self):
        assert access.policy_names() == []
        authorize(None, Operation.DELETE)

    def test_every_policy_must_permit(self):
        access.install_default_policy()
        access.register_policy(TABLE_NAME, "read only", ReadOnlyPolicy())

        authorize(None, Operation.READ)
        with pytest.raises(AccessDenied, match="read only"):
            authorize(None, Operation.CREATE)


class TestRepositoryGate:
    def test_denied_create_writes_nothing(self, posts_engine):
        access.replace_policy(TABLE_NAME, POLICY_NAME, ReadOnlyPolicy())

        with pytest.raises(AccessDenied):
            repo.create_post(posts_engine, "Hello", "create_post")

        access.replace_policy(TABLE_NAME, POLICY_NAME, AllowAllPolicy())
        _, total = repo.list_posts(posts_engine)
        assert total == 0

    def test_record_level_policy(self, posts_engine):
        post = repo.create_post(posts_engine, "Hello", "create_post", source_data={"owner": "alice"})
        access.replace_policy(TABLE_NAME, POLICY_NAME, OwnerOnlyPolicy())

        with pytest.raises(AccessDenied):
            repo.update_post(posts_engine, post["id"], {"content": "hijack"}, caller=Caller(id="bob"))
        with pytest.raises(AccessDenied):
            repo.delete_post(posts_engine, post["id"], caller=Caller(id="bob"))

        updated = repo.update_post(posts_engine, post["id"], {"content": "mine"}, caller=Caller(id="alice"))
        assert updated["content"] == "mine"
        assert repo.get_post(posts_engine, post["id"], caller=Caller(id="bob"))["content"] == "mine"

    def test_denied_update_leaves_row_untouched(self, posts_engine):
        post = repo.create_post(posts_engine, "Hello", "create_post")
        access.replace_policy(TABLE_NAME, POLICY_NAME, ReadOnlyPolicy())

        with pytest.raises(AccessDenied):
            repo.record_edit(posts_engine, post["id"], "changed")

        stored = repo.get_post(posts_engine, post["id"])
        assert stored["content"] == "Hello"
        assert stored["updated_at"] == post["updated_at"]
