"""Caller identity."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from share_server.api.deps import get_db, require_user
from share_server.api.errors import store_errors
from share_server.schemas.user import MeResponse
from share_server.services.credentials import Identity
from share_server.services.user_store import is_user_admin

router = APIRouter()


@router.get("", response_model=MeResponse)
def api_me(
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> MeResponse:
    """Return the authenticated identity and its current admin flag."""
    with store_errors(db, "db_read_failed", "could not read user"):
        admin = is_user_admin(db, identity.sub)
    return MeResponse(sub=identity.sub, email=identity.email, name=identity.name, is_admin=admin)
