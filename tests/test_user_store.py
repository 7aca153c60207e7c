"""User store: idempotent upsert, admin flag, listing."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from share_server.models.user import User
from share_server.services.errors import NotFoundError
from share_server.services.user_store import (
    get_user,
    get_users_by_subs,
    is_user_admin,
    list_users,
    set_user_admin,
    upsert_oidc_user,
)
from tests.helpers import NOW, at
from tests.test_constants import SUB_ALICE, SUB_BOB


class TestUpsert:
    def test_creates_once(self, db: Session) -> None:
        upsert_oidc_user(db, SUB_ALICE, "alice@example.test", "Alice", NOW)
        upsert_oidc_user(db, SUB_ALICE, "alice@example.test", "Alice", at(5))
        assert db.scalar(select(func.count()).select_from(User)) == 1

    def test_bumps_last_seen_forward_only(self, db: Session) -> None:
        upsert_oidc_user(db, SUB_ALICE, "", "", NOW)
        upsert_oidc_user(db, SUB_ALICE, "", "", at(10))
        upsert_oidc_user(db, SUB_ALICE, "", "", at(5))
        db.expire_all()
        user = get_user(db, SUB_ALICE)
        assert user.last_seen_at == at(10)
        assert user.created_at == NOW

    def test_never_overwrites_admin_flag(self, db: Session) -> None:
        upsert_oidc_user(db, SUB_ALICE, "", "", NOW)
        set_user_admin(db, SUB_ALICE, True, at(1))
        upsert_oidc_user(db, SUB_ALICE, "", "", at(2))
        assert is_user_admin(db, SUB_ALICE) is True

    def test_blank_sub_rejected(self, db: Session) -> None:
        with pytest.raises(ValueError):
            upsert_oidc_user(db, "  ", "", "", NOW)


class TestAdminFlag:
    def test_unknown_user_is_not_admin(self, db: Session) -> None:
        assert is_user_admin(db, "ghost") is False

    def test_grant_and_revoke(self, db: Session) -> None:
        upsert_oidc_user(db, SUB_ALICE, "", "", NOW)
        set_user_admin(db, SUB_ALICE, True, at(1))
        assert is_user_admin(db, SUB_ALICE) is True
        set_user_admin(db, SUB_ALICE, False, at(2))
        assert is_user_admin(db, SUB_ALICE) is False

    def test_set_unknown_user(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            set_user_admin(db, "ghost", True, NOW)


class TestListing:
    @pytest.fixture(autouse=True)
    def _users(self, db: Session) -> None:
        upsert_oidc_user(db, SUB_ALICE, "alice@example.test", "Alice Volt", NOW)
        upsert_oidc_user(db, SUB_BOB, "bob@example.test", "Bob Ampere", at(10))

    def test_ordered_by_last_seen(self, db: Session) -> None:
        assert [u.sub for u in list_users(db)] == [SUB_BOB, SUB_ALICE]

    @pytest.mark.parametrize("query", ["VOLT", "alice@", "alice-s"])
    def test_filter_is_case_insensitive_substring(self, db: Session, query: str) -> None:
        assert [u.sub for u in list_users(db, query)] == [SUB_ALICE]

    def test_limit(self, db: Session) -> None:
        assert len(list_users(db, "", 1)) == 1

    def test_get_users_by_subs(self, db: Session) -> None:
        found = get_users_by_subs(db, [SUB_ALICE, "", "ghost"])
        assert set(found) == {SUB_ALICE}
