"""Team store: transactional team creation, membership and invite acceptance."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from share_server.models.team import ROLE_MEMBER, ROLE_OWNER, Team, TeamMember
from share_server.services.errors import NotFoundError
from share_server.services.team_store import (
    accept_team_invite,
    create_team,
    create_team_invite,
    is_team_member,
    list_team_invites,
    list_team_members,
    list_teams_for_user,
)
from share_server.services.user_store import upsert_oidc_user
from tests.helpers import NOW, at
from tests.test_constants import SUB_ALICE, SUB_BOB, SUB_CAROL

WEEK = timedelta(days=7)


def _members(db: Session, team_id: str) -> int:
    stmt = select(func.count()).select_from(TeamMember).where(TeamMember.team_id == team_id)
    return db.scalar(stmt)


@pytest.fixture
def team(db: Session) -> str:
    create_team(db, "t1", "Electricians", SUB_ALICE, NOW)
    return "t1"


class TestTeams:
    def test_create_adds_owner_membership(self, db: Session, team: str) -> None:
        assert is_team_member(db, team, SUB_ALICE) == (ROLE_OWNER, True)
        assert _members(db, team) == 1

    def test_non_member_is_not_an_error(self, db: Session, team: str) -> None:
        assert is_team_member(db, team, SUB_BOB) == ("", False)

    def test_blank_name_rejected(self, db: Session) -> None:
        with pytest.raises(ValueError):
            create_team(db, "t2", "   ", SUB_ALICE, NOW)
        assert db.scalar(select(func.count()).select_from(Team)) == 0

    def test_duplicate_id_rolls_back(self, db: Session, team: str) -> None:
        with pytest.raises(Exception):
            create_team(db, team, "Again", SUB_BOB, NOW)
        assert is_team_member(db, team, SUB_BOB) == ("", False)

    def test_list_teams_for_user(self, db: Session, team: str) -> None:
        create_team(db, "t2", "Other", SUB_BOB, at(1))
        teams = list_teams_for_user(db, SUB_ALICE)
        assert [(t.id, t.name, t.role) for t in teams] == [("t1", "Electricians", ROLE_OWNER)]

    def test_members_include_profile(self, db: Session, team: str) -> None:
        upsert_oidc_user(db, SUB_ALICE, "alice@example.test", "Alice", NOW)
        create_team_invite(db, "inv", team, "", SUB_ALICE, NOW + WEEK, NOW)
        accept_team_invite(db, "inv", SUB_BOB, at(1))
        members = list_team_members(db, team)
        assert [(m.user_sub, m.role) for m in members] == [(SUB_ALICE, ROLE_OWNER), (SUB_BOB, ROLE_MEMBER)]
        assert members[0].email == "alice@example.test"
        assert members[1].email == ""


class TestInvites:
    def test_accept_creates_membership(self, db: Session, team: str) -> None:
        create_team_invite(db, "inv", team, "bob@example.test", SUB_ALICE, NOW + WEEK, NOW)
        assert accept_team_invite(db, "inv", SUB_BOB, at(60)) == team
        assert is_team_member(db, team, SUB_BOB) == (ROLE_MEMBER, True)

    def test_accept_twice_is_idempotent(self, db: Session, team: str) -> None:
        create_team_invite(db, "inv", team, "", SUB_ALICE, NOW + WEEK, NOW)
        first = accept_team_invite(db, "inv", SUB_BOB, at(1))
        second = accept_team_invite(db, "inv", SUB_BOB, at(2))
        assert first == second == team
        assert _members(db, team) == 2

    def test_accepted_invite_is_single_use(self, db: Session, team: str) -> None:
        create_team_invite(db, "inv", team, "", SUB_ALICE, NOW + WEEK, NOW)
        accept_team_invite(db, "inv", SUB_BOB, at(1))
        with pytest.raises(NotFoundError):
            accept_team_invite(db, "inv", SUB_CAROL, at(2))
        assert is_team_member(db, team, SUB_CAROL) == ("", False)

    def test_expired_invite_not_found(self, db: Session, team: str) -> None:
        create_team_invite(db, "inv", team, "", SUB_ALICE, at(10), NOW)
        with pytest.raises(NotFoundError):
            accept_team_invite(db, "inv", SUB_BOB, at(11))
        assert is_team_member(db, team, SUB_BOB) == ("", False)

    def test_unknown_token(self, db: Session, team: str) -> None:
        with pytest.raises(NotFoundError):
            accept_team_invite(db, "nope", SUB_BOB, NOW)

    def test_existing_member_absorbed(self, db: Session, team: str) -> None:
        create_team_invite(db, "inv", team, "", SUB_ALICE, NOW + WEEK, NOW)
        assert accept_team_invite(db, "inv", SUB_ALICE, at(1)) == team
        assert is_team_member(db, team, SUB_ALICE) == (ROLE_OWNER, True)
        assert _members(db, team) == 1

    def test_list_invites(self, db: Session, team: str) -> None:
        create_team_invite(db, "a", team, "", SUB_ALICE, NOW + WEEK, NOW)
        create_team_invite(db, "b", team, "x@example.test", SUB_ALICE, NOW + WEEK, at(1))
        accept_team_invite(db, "a", SUB_BOB, at(2))
        invites = list_team_invites(db, team)
        assert [i.token for i in invites] == ["b", "a"]
        assert invites[1].accepted_by_sub == SUB_BOB
