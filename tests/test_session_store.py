"""Session store: lookup validity window, lazy deletion, bulk cleanup."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, Session

from share_server.models.share_session import ShareSession
from share_server.services.errors import NotFoundError
from share_server.services.session_store import (
    cleanup_expired_sessions,
    create_session,
    delete_sessions_for_share,
    lookup_session,
    new_session_token,
)
from tests.helpers import NOW, at


def _count(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(ShareSession))


class TestLookup:
    @pytest.mark.parametrize("offset", [0, 1, 60, 3599])
    def test_valid_before_expiry(self, db: Session, offset: int) -> None:
        create_session(db, "tok", "share-1", at(3600), NOW)
        assert lookup_session(db, "tok", at(offset)) == "share-1"

    @pytest.mark.parametrize("offset", [3600, 3601, 86400])
    def test_not_found_at_or_after_expiry(self, db: Session, offset: int) -> None:
        create_session(db, "tok", "share-1", at(3600), NOW)
        with pytest.raises(NotFoundError):
            lookup_session(db, "tok", at(offset))

    def test_expired_row_is_deleted_on_lookup(self, db: Session) -> None:
        create_session(db, "tok", "share-1", at(10), NOW)
        with pytest.raises(NotFoundError):
            lookup_session(db, "tok", at(10))
        assert _count(db) == 0

    def test_unknown_token(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            lookup_session(db, "missing", NOW)

    def test_empty_share_binding(self, db: Session) -> None:
        create_session(db, "tok", "", at(60), NOW)
        assert lookup_session(db, "tok", NOW) == ""


class TestCleanup:
    def test_removes_only_expired(self, db: Session) -> None:
        create_session(db, "old", "a", at(-1), at(-100))
        create_session(db, "edge", "b", NOW, at(-100))
        create_session(db, "live", "c", at(1), at(-100))
        assert cleanup_expired_sessions(db, NOW) == 2
        assert _count(db) == 1
        assert lookup_session(db, "live", NOW) == "c"

    def test_nothing_to_remove(self, db: Session) -> None:
        assert cleanup_expired_sessions(db, NOW) == 0

    def test_store_failure_is_swallowed(self, db: Session) -> None:
        create_session(db, "old", "a", at(-1), at(-100))
        create_session(db, "live", "c", at(1), at(-100))
        failure = OperationalError("DELETE", {}, Exception("database is locked"))
        with patch.object(Query, "delete", side_effect=failure):
            assert cleanup_expired_sessions(db, NOW) == 0
        assert _count(db) == 2
        assert lookup_session(db, "live", NOW) == "c"
        assert cleanup_expired_sessions(db, NOW) == 1

    def test_delete_sessions_for_share(self, db: Session) -> None:
        create_session(db, "t1", "a", at(60), NOW)
        create_session(db, "t2", "a", at(60), NOW)
        create_session(db, "t3", "b", at(60), NOW)
        delete_sessions_for_share(db, "a")
        db.commit()
        assert _count(db) == 1


def test_tokens_are_unique_and_long() -> None:
    tokens = {new_session_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) >= 40 for t in tokens)
