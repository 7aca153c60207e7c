"""User and admin schemas."""

from __future__ import annotations

from pydantic import StrictBool

from share_server.schemas.common import RequestModel, ResponseModel, Timestamp


class MeResponse(ResponseModel):
    sub: str
    email: str
    name: str
    is_admin: bool


class AdminUserResponse(ResponseModel):
    sub: str
    email: str
    name: str
    is_admin: bool
    created_at: Timestamp
    updated_at: Timestamp
    last_seen_at: Timestamp


class SetAdminRequest(RequestModel):
    is_admin: StrictBool


class SetAdminResponse(ResponseModel):
    sub: str
    is_admin: bool
