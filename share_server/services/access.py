"""Share access policy for OIDC mode: ownership and team membership."""

from __future__ import annotations

from sqlalchemy.orm import Session

from share_server.models.share import Share
from share_server.models.team import ROLE_OWNER
from share_server.services.team_store import is_team_member


def is_share_owner(share: Share, sub: str) -> bool:
    """Strict ownership. Shares without an owner (legacy rows) belong to nobody."""
    owner = share.owner_sub.strip()
    return bool(owner) and owner == sub


def can_access_share(db: Session, share: Share, sub: str) -> bool:
    """Owner, or any member of the share's team, may read and write."""
    if is_share_owner(share, sub):
        return True
    if share.team_id:
        _, found = is_team_member(db, share.team_id, sub)
        return found
    return False


def can_delete_share(share: Share, sub: str) -> bool:
    """Deleting requires strict ownership; team membership is not enough."""
    return is_share_owner(share, sub)


def is_team_owner(db: Session, team_id: str, sub: str) -> bool:
    role, found = is_team_member(db, team_id, sub)
    return found and role == ROLE_OWNER
