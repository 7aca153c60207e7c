"""Share and version schemas."""

from __future__ import annotations

from pydantic import Field

from share_server.schemas.common import RequestModel, ResponseModel, Timestamp


class CreateShareRequest(RequestModel):
    content: str = Field("", alias="schema")
    password: str = ""
    name: str = ""
    base_url: str = ""
    team_id: str = ""


class CreateShareResponse(ResponseModel):
    id: str
    url: str


class UpdateShareRequest(RequestModel):
    """An empty schema counts as absent; ``name`` may be set to "" explicitly."""

    content: str = Field("", alias="schema")
    name: str | None = None
    password: str = ""


class ShareResponse(ResponseModel):
    id: str
    name: str
    content: str = Field(alias="schema")
    team_id: str | None = None
    created_at: Timestamp
    updated_at: Timestamp


class ShareSummary(ResponseModel):
    id: str
    name: str
    team_id: str | None = None
    created_at: Timestamp
    updated_at: Timestamp


class AdminShareSummary(ShareSummary):
    owner_sub: str
    owner_name: str = ""
    owner_email: str = ""


class AdminShareResponse(ShareResponse):
    owner_sub: str


class VersionSummary(ResponseModel):
    id: str
    created_at: Timestamp
    created_by_sub: str


class VersionResponse(ResponseModel):
    share_id: str
    version_id: str
    content: str = Field(alias="schema")
    created_at: Timestamp
    created_by_sub: str
