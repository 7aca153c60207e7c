"""Team store: teams, memberships and invites.

Team creation and invite acceptance each run in a single transaction, so a
membership row never exists without its committed team/invite and vice versa.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from share_server.db.upsert import insert_ignore
from share_server.models.team import ROLE_MEMBER, ROLE_OWNER, Team, TeamInvite, TeamMember
from share_server.models.user import User
from share_server.services.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamWithRole:
    id: str
    name: str
    role: str


@dataclass(frozen=True)
class MemberInfo:
    user_sub: str
    role: str
    created_at: datetime
    email: str
    name: str


def new_invite_token() -> str:
    return secrets.token_urlsafe(24)


def create_team(db: Session, team_id: str, name: str, owner_sub: str, now: datetime) -> Team:
    """Create a team and the owner's membership row atomically."""
    owner_sub = owner_sub.strip()
    name = name.strip()
    if not owner_sub:
        raise ValueError("owner_sub is required")
    if not name:
        raise ValueError("team name is required")
    team = Team(id=team_id, name=name, owner_sub=owner_sub, created_at=now)
    try:
        db.add(team)
        db.flush()
        db.add(TeamMember(team_id=team_id, user_sub=owner_sub, role=ROLE_OWNER, created_at=now))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return team


def list_teams_for_user(db: Session, user_sub: str) -> list[TeamWithRole]:
    rows = (
        db.query(Team.id, Team.name, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(TeamMember.user_sub == user_sub.strip())
        .order_by(Team.created_at.desc())
        .all()
    )
    return [TeamWithRole(id=r.id, name=r.name, role=r.role) for r in rows]


def is_team_member(db: Session, team_id: str, user_sub: str) -> tuple[str, bool]:
    """Return (role, found). found=False is not an error."""
    row = (
        db.query(TeamMember.role)
        .filter(
            TeamMember.team_id == team_id.strip(),
            TeamMember.user_sub == user_sub.strip(),
        )
        .first()
    )
    if row is None:
        return "", False
    return row.role, True


def list_team_members(db: Session, team_id: str) -> list[MemberInfo]:
    """Members with whatever profile data the users table has for them."""
    rows = (
        db.query(TeamMember, User.email, User.name)
        .outerjoin(User, User.sub == TeamMember.user_sub)
        .filter(TeamMember.team_id == team_id)
        .order_by(TeamMember.created_at.asc())
        .all()
    )
    return [
        MemberInfo(
            user_sub=m.user_sub,
            role=m.role,
            created_at=m.created_at,
            email=email or "",
            name=name or "",
        )
        for m, email, name in rows
    ]


def create_team_invite(
    db: Session,
    token: str,
    team_id: str,
    email: str,
    created_by_sub: str,
    expires_at: datetime,
    now: datetime,
) -> TeamInvite:
    invite = TeamInvite(
        token=token,
        team_id=team_id.strip(),
        email=email.strip(),
        created_by_sub=created_by_sub.strip(),
        created_at=now,
        expires_at=expires_at,
    )
    db.add(invite)
    db.commit()
    return invite


def list_team_invites(db: Session, team_id: str) -> list[TeamInvite]:
    return (
        db.query(TeamInvite)
        .filter(TeamInvite.team_id == team_id)
        .order_by(TeamInvite.created_at.desc())
        .all()
    )


def accept_team_invite(db: Session, token: str, accepting_sub: str, now: datetime) -> str:
    """Accept an invite and return its team id.

    - unknown token, or expired: NotFoundError
    - already accepted by the same subject: returns the team id, no new membership
    - already accepted by someone else: NotFoundError (single use)
    - otherwise marks it accepted and inserts the membership (existing row absorbed)
    """
    accepting_sub = accepting_sub.strip()
    if not accepting_sub:
        raise ValueError("accepting_sub is required")

    try:
        invite = (
            db.query(TeamInvite)
            .populate_existing()
            .filter(TeamInvite.token == token)
            .first()
        )
        if invite is None:
            raise NotFoundError("invite")
        if now > invite.expires_at:
            raise NotFoundError("invite")
        if invite.accepted_at is not None:
            if invite.accepted_by_sub == accepting_sub:
                db.rollback()
                return invite.team_id
            raise NotFoundError("invite")

        claimed = (
            db.query(TeamInvite)
            .filter(TeamInvite.token == token, TeamInvite.accepted_at.is_(None))
            .update({"accepted_by_sub": accepting_sub, "accepted_at": now})
        )
        if claimed == 0:
            # Lost a race with a concurrent accept
            raise NotFoundError("invite")

        team_id = invite.team_id
        insert_ignore(
            db,
            TeamMember,
            {"team_id": team_id, "user_sub": accepting_sub, "role": ROLE_MEMBER, "created_at": now},
            conflict_columns=("team_id", "user_sub"),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Invite accepted: team=%s sub=%s", team_id, accepting_sub)
    return team_id
