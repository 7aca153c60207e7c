"""Share routes: create/read/update/delete, own listing, versions and restore."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from share_server.api.deps import (
    authorize_share,
    get_db,
    get_settings,
    get_verifier,
    issue_session,
    json_body,
    load_share,
    require_legacy_auth,
    require_user,
    verify_bearer,
)
from share_server.api.errors import (
    forbidden,
    invalid_schema,
    missing_schema,
    missing_update,
    store_errors,
    unauthorized,
)
from share_server.config import Settings
from share_server.db.session import utcnow
from share_server.models.share import Share
from share_server.schemas.share import (
    CreateShareRequest,
    CreateShareResponse,
    ShareResponse,
    ShareSummary,
    UpdateShareRequest,
    VersionResponse,
    VersionSummary,
)
from share_server.services.access import can_access_share, can_delete_share
from share_server.services.credentials import Identity
from share_server.services.share_store import (
    add_share_version,
    create_share,
    delete_share,
    get_share_version,
    has_valid_prefix,
    list_share_versions,
    list_shares_by_owner,
    new_id,
    prune_share_versions,
    update_share,
)
from share_server.services.team_store import is_team_member

logger = logging.getLogger(__name__)

router = APIRouter()


def share_response(share: Share) -> ShareResponse:
    return ShareResponse(
        id=share.id,
        name=share.name.strip(),
        content=share.content,
        team_id=share.team_id,
        created_at=share.created_at,
        updated_at=share.updated_at,
    )


def record_version(
    db: Session, settings: Settings, share_id: str, content: str, actor_sub: str, now: datetime
) -> None:
    """Append a version and prune old ones. Best-effort: never fails the write it follows."""
    try:
        add_share_version(db, share_id, content, actor_sub, now)
        prune_share_versions(db, share_id, settings.share_versions_max)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Version bookkeeping failed for share %s", share_id, exc_info=True)


def authorize_share_access(request: Request, db: Session, share: Share) -> Identity:
    """Bearer mode gate for reads and writes: owner or team member, else 403."""
    identity = verify_bearer(request, db)
    with store_errors(db, "db_read_failed", "could not read team membership"):
        allowed = can_access_share(db, share, identity.sub)
    if not allowed:
        raise forbidden()
    return identity


@router.post("", status_code=201, response_model=CreateShareResponse)
def api_create_share(
    request: Request,
    response: Response,
    data: CreateShareRequest = Depends(json_body(CreateShareRequest)),
    db: Session = Depends(get_db),
) -> CreateShareResponse:
    """Create a share. Bearer token in OIDC mode, shared password or a live session otherwise."""
    settings = get_settings(request)
    if not data.content:
        raise missing_schema()
    if not has_valid_prefix(data.content, settings.schema_prefixes):
        raise invalid_schema(settings.schema_prefixes)

    now = utcnow()
    owner_sub = ""
    team_id = data.team_id.strip() or None
    if get_verifier(request) is not None:
        owner_sub = verify_bearer(request, db).sub
        if team_id is not None:
            with store_errors(db, "db_read_failed", "could not read team membership"):
                _, member = is_team_member(db, team_id, owner_sub)
            if not member:
                raise forbidden("not a team member")
    else:
        require_legacy_auth(request, response, db, data.password, now)

    share_id = new_id()
    with store_errors(db, "db_insert_failed", "could not store share"):
        create_share(db, share_id, data.content, owner_sub, team_id, now, name=data.name)
    record_version(db, settings, share_id, data.content, owner_sub, now)

    if get_verifier(request) is None:
        # Subsequent edits of this share need no password
        issue_session(response, db, settings, share_id, now)

    base_url = data.base_url.strip()
    url = f"{base_url}#share={share_id}" if base_url else ""
    logger.info("Created share %s", share_id)
    return CreateShareResponse(id=share_id, url=url)


@router.get("/mine", response_model=list[ShareSummary])
def api_my_shares(
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[ShareSummary]:
    """Shares owned by the caller, most recently updated first."""
    with store_errors(db, "db_read_failed", "could not list shares"):
        shares = list_shares_by_owner(db, identity.sub)
    return [
        ShareSummary(
            id=s.id,
            name=s.name.strip(),
            team_id=s.team_id,
            created_at=s.created_at,
            updated_at=s.updated_at,
        )
        for s in shares
    ]


@router.get("/{share_id}", response_model=ShareResponse)
def api_get_share(share_id: str, request: Request, db: Session = Depends(get_db)) -> ShareResponse:
    """Fetch a share.

    Without OIDC this is public: the share id is the only secret for reading.
    """
    share = load_share(db, share_id)
    if get_verifier(request) is not None:
        authorize_share_access(request, db, share)
    return share_response(share)


@router.put("/{share_id}")
def api_update_share(
    share_id: str,
    request: Request,
    response: Response,
    data: UpdateShareRequest = Depends(json_body(UpdateShareRequest)),
    db: Session = Depends(get_db),
) -> dict:
    """Update schema and/or name. A schema change appends a version."""
    settings = get_settings(request)
    content = data.content or None
    if content is not None and not has_valid_prefix(content, settings.schema_prefixes):
        raise invalid_schema(settings.schema_prefixes)
    if content is None and data.name is None:
        raise missing_update()

    share = load_share(db, share_id)
    now = utcnow()
    actor_sub = ""
    if get_verifier(request) is not None:
        actor_sub = authorize_share_access(request, db, share).sub
    else:
        require_legacy_auth(request, response, db, data.password, now, share_id=share_id)

    with store_errors(db, "db_update_failed", "could not update share"):
        update_share(db, share_id, content, data.name, now)
    if content is not None:
        record_version(db, settings, share_id, content, actor_sub, now)
    return {"id": share_id, "updated": True}


@router.delete("/{share_id}")
def api_delete_share(share_id: str, request: Request, db: Session = Depends(get_db)) -> dict:
    """Hard-delete a share with its versions and sessions. Strict owner only."""
    if get_verifier(request) is None:
        raise unauthorized()
    identity = verify_bearer(request, db)
    share = load_share(db, share_id)
    if not can_delete_share(share, identity.sub):
        raise forbidden()
    with store_errors(db, "db_delete_failed", "could not delete share"):
        delete_share(db, share_id)
    logger.info("Deleted share %s (by %s)", share_id, identity.sub)
    return {"id": share_id, "deleted": True}


# ── Versions ────────────────────────────────────────────────────────


@router.get("/{share_id}/versions", response_model=list[VersionSummary])
def api_list_versions(
    share_id: str, request: Request, db: Session = Depends(get_db)
) -> list[VersionSummary]:
    authorize_share(request, db, share_id)
    with store_errors(db, "db_read_failed", "could not list share versions"):
        versions = list_share_versions(db, share_id)
    return [
        VersionSummary(id=v.id, created_at=v.created_at, created_by_sub=v.created_by_sub)
        for v in versions
    ]


@router.get("/{share_id}/versions/{version_id}", response_model=VersionResponse)
def api_get_version(
    share_id: str, version_id: str, request: Request, db: Session = Depends(get_db)
) -> VersionResponse:
    authorize_share(request, db, share_id)
    with store_errors(db, "db_read_failed", "could not read share version"):
        version = get_share_version(db, share_id, version_id)
    return VersionResponse(
        share_id=share_id,
        version_id=version.id,
        content=version.content,
        created_at=version.created_at,
        created_by_sub=version.created_by_sub,
    )


@router.post("/{share_id}/versions/{version_id}/restore")
def api_restore_version(
    share_id: str, version_id: str, request: Request, db: Session = Depends(get_db)
) -> dict:
    """Make an old version the live schema. The restore itself is appended as a new version."""
    _, actor_sub = authorize_share(request, db, share_id)
    with store_errors(db, "db_read_failed", "could not read share version"):
        version = get_share_version(db, share_id, version_id)
    content = version.content
    now = utcnow()
    with store_errors(db, "db_update_failed", "could not update share"):
        update_share(db, share_id, content, None, now)
    record_version(db, get_settings(request), share_id, content, actor_sub, now)
    return {"id": share_id, "restored": True, "versionId": version_id}
