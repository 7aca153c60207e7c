"""Team, membership and invite schemas."""

from __future__ import annotations

from share_server.schemas.common import RequestModel, ResponseModel, Timestamp


class CreateTeamRequest(RequestModel):
    name: str = ""


class TeamResponse(ResponseModel):
    id: str
    name: str
    role: str


class CreateInviteRequest(RequestModel):
    email: str = ""


class InviteCreatedResponse(ResponseModel):
    token: str
    team_id: str
    expires_at: Timestamp


class InviteResponse(ResponseModel):
    token: str
    email: str
    created_by_sub: str
    created_at: Timestamp
    expires_at: Timestamp
    accepted_by_sub: str | None = None
    accepted_at: Timestamp | None = None


class MemberResponse(ResponseModel):
    sub: str
    email: str
    name: str
    role: str
    joined_at: Timestamp


class AcceptInviteRequest(RequestModel):
    token: str = ""


class InviteAcceptedResponse(ResponseModel):
    team_id: str
    joined: bool = True
