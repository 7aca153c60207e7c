"""Admin API: user listing, admin grants and a global share listing.

Every route re-reads the caller's admin flag, so a demotion applies on the next request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from share_server.api.deps import get_db, json_body, load_share, require_admin
from share_server.api.errors import store_errors
from share_server.db.session import utcnow
from share_server.schemas.share import AdminShareResponse, AdminShareSummary
from share_server.schemas.user import AdminUserResponse, SetAdminRequest, SetAdminResponse
from share_server.services.credentials import Identity
from share_server.services.share_store import list_all_shares
from share_server.services.user_store import get_users_by_subs, list_users, set_user_admin

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_USER_LIMIT = 200
ADMIN_SHARE_LIMIT = 1000


@router.get("/users", response_model=list[AdminUserResponse])
def api_list_users(
    q: str = Query("", max_length=255),
    _admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[AdminUserResponse]:
    """Users ordered by last seen; ``q`` filters on sub, email or name."""
    with store_errors(db, "db_read_failed", "could not list users"):
        users = list_users(db, q.strip(), ADMIN_USER_LIMIT)
    return [
        AdminUserResponse(
            sub=u.sub,
            email=u.email,
            name=u.name,
            is_admin=u.is_admin,
            created_at=u.created_at,
            updated_at=u.updated_at,
            last_seen_at=u.last_seen_at,
        )
        for u in users
    ]


@router.put("/users/{sub}", response_model=SetAdminResponse)
def api_set_admin(
    sub: str,
    data: SetAdminRequest = Depends(json_body(SetAdminRequest)),
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SetAdminResponse:
    """Grant or revoke admin. Unknown subjects are 404."""
    sub = sub.strip()
    with store_errors(db, "db_update_failed", "could not update user"):
        set_user_admin(db, sub, data.is_admin, utcnow())
    logger.info("Admin flag for %s set to %s by %s", sub, data.is_admin, admin.sub)
    return SetAdminResponse(sub=sub, is_admin=data.is_admin)


@router.get("/shares", response_model=list[AdminShareSummary])
def api_list_all_shares(
    _admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[AdminShareSummary]:
    """Every share, most recently updated first, with owner profile where known."""
    with store_errors(db, "db_read_failed", "could not list shares"):
        shares = list_all_shares(db, ADMIN_SHARE_LIMIT)
    owner_subs = {s.owner_sub for s in shares if s.owner_sub.strip()}
    try:
        owners = get_users_by_subs(db, owner_subs)
    except SQLAlchemyError:
        # Owner enrichment is cosmetic
        db.rollback()
        logger.warning("Could not load share owners", exc_info=True)
        owners = {}

    items = []
    for s in shares:
        owner = owners.get(s.owner_sub)
        items.append(
            AdminShareSummary(
                id=s.id,
                name=s.name.strip(),
                owner_sub=s.owner_sub,
                owner_name=owner.name.strip() if owner else "",
                owner_email=owner.email.strip() if owner else "",
                team_id=s.team_id,
                created_at=s.created_at,
                updated_at=s.updated_at,
            )
        )
    return items


@router.get("/shares/{share_id}", response_model=AdminShareResponse)
def api_get_any_share(
    share_id: str,
    _admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdminShareResponse:
    share = load_share(db, share_id)
    return AdminShareResponse(
        id=share.id,
        name=share.name.strip(),
        content=share.content,
        owner_sub=share.owner_sub,
        team_id=share.team_id,
        created_at=share.created_at,
        updated_at=share.updated_at,
    )
