"""Team routes: teams, invites, members and invite acceptance. Bearer mode only."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from share_server.api.deps import get_db, get_settings, json_body, require_user
from share_server.api.errors import forbidden, missing_field, store_errors
from share_server.db.session import utcnow
from share_server.models.team import ROLE_OWNER
from share_server.schemas.team import (
    AcceptInviteRequest,
    CreateInviteRequest,
    CreateTeamRequest,
    InviteAcceptedResponse,
    InviteCreatedResponse,
    InviteResponse,
    MemberResponse,
    TeamResponse,
)
from share_server.services.access import is_team_owner
from share_server.services.credentials import Identity
from share_server.services.share_store import new_id
from share_server.services.team_store import (
    accept_team_invite,
    create_team,
    create_team_invite,
    is_team_member,
    list_team_invites,
    list_team_members,
    list_teams_for_user,
    new_invite_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()
invites_router = APIRouter()


def require_team_owner(db: Session, team_id: str, sub: str) -> None:
    with store_errors(db, "db_read_failed", "could not read team membership"):
        owner = is_team_owner(db, team_id, sub)
    if not owner:
        raise forbidden("only team owners can invite")


@router.get("", response_model=list[TeamResponse])
def api_list_teams(
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[TeamResponse]:
    with store_errors(db, "db_read_failed", "could not list teams"):
        teams = list_teams_for_user(db, identity.sub)
    return [TeamResponse(id=t.id, name=t.name, role=t.role) for t in teams]


@router.post("", status_code=201, response_model=TeamResponse)
def api_create_team(
    data: CreateTeamRequest = Depends(json_body(CreateTeamRequest)),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> TeamResponse:
    """Create a team; the caller becomes its owner."""
    name = data.name.strip()
    if not name:
        raise missing_field("missing_name", "name")
    team_id = new_id()
    with store_errors(db, "db_insert_failed", "could not create team"):
        create_team(db, team_id, name, identity.sub, utcnow())
    logger.info("Created team %s (owner %s)", team_id, identity.sub)
    return TeamResponse(id=team_id, name=name, role=ROLE_OWNER)


@router.post("/{team_id}/invites", status_code=201, response_model=InviteCreatedResponse)
def api_create_invite(
    team_id: str,
    request: Request,
    data: CreateInviteRequest = Depends(json_body(CreateInviteRequest)),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> InviteCreatedResponse:
    """Issue a single-use invite token. Team owners only."""
    require_team_owner(db, team_id, identity.sub)
    now = utcnow()
    expires_at = now + get_settings(request).invite_ttl
    token = new_invite_token()
    with store_errors(db, "db_insert_failed", "could not create invite"):
        create_team_invite(db, token, team_id, data.email, identity.sub, expires_at, now)
    return InviteCreatedResponse(token=token, team_id=team_id, expires_at=expires_at)


@router.get("/{team_id}/invites", response_model=list[InviteResponse])
def api_list_invites(
    team_id: str,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[InviteResponse]:
    require_team_owner(db, team_id, identity.sub)
    with store_errors(db, "db_read_failed", "could not list invites"):
        invites = list_team_invites(db, team_id)
    return [
        InviteResponse(
            token=i.token,
            email=i.email,
            created_by_sub=i.created_by_sub,
            created_at=i.created_at,
            expires_at=i.expires_at,
            accepted_by_sub=i.accepted_by_sub,
            accepted_at=i.accepted_at,
        )
        for i in invites
    ]


@router.get("/{team_id}/members", response_model=list[MemberResponse])
def api_list_members(
    team_id: str,
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[MemberResponse]:
    """Members with role and profile. Visible to any member of the team."""
    with store_errors(db, "db_read_failed", "could not list team members"):
        _, member = is_team_member(db, team_id, identity.sub)
        if not member:
            raise forbidden()
        members = list_team_members(db, team_id)
    return [
        MemberResponse(sub=m.user_sub, email=m.email, name=m.name, role=m.role, joined_at=m.created_at)
        for m in members
    ]


@invites_router.post("/accept", response_model=InviteAcceptedResponse)
def api_accept_invite(
    data: AcceptInviteRequest = Depends(json_body(AcceptInviteRequest)),
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> InviteAcceptedResponse:
    """Join the invite's team. Re-accepting your own invite is a no-op."""
    token = data.token.strip()
    if not token:
        raise missing_field("missing_token", "token")
    with store_errors(db, "db_update_failed", "could not accept invite"):
        team_id = accept_team_invite(db, token, identity.sub, utcnow())
    return InviteAcceptedResponse(team_id=team_id)
