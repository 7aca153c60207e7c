"""Shared FastAPI dependencies: settings, body parsing and the authorization gate.

Auth strategy is fixed at startup: ``app.state.verifier`` is an OIDCVerifier when
OIDC is configured and None otherwise. Routes branch on that capability.

- Bearer mode: missing/malformed/invalid token is always 401 ``unauthorized``;
  a valid identity lacking rights is 403 ``forbidden``.
- Legacy mode: a session cookie is checked first; an absent or expired session
  falls through to the shared password.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from fastapi import Depends, Request, Response
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from share_server.api.errors import (
    bad_json,
    body_too_large,
    forbidden,
    invalid_password,
    oidc_not_enabled,
    password_required,
    store_errors,
    unauthorized,
)
from share_server.config import Settings
from share_server.db.session import get_db, utcnow
from share_server.models.share import Share
from share_server.services.access import can_access_share
from share_server.services.credentials import (
    Identity,
    InvalidTokenError,
    OIDCVerifier,
    bearer_token,
    password_matches,
)
from share_server.services.errors import NotFoundError
from share_server.services.session_store import (
    cleanup_expired_sessions,
    create_session,
    lookup_session,
    new_session_token,
)
from share_server.services.share_store import get_share
from share_server.services.user_store import is_user_admin, set_user_admin, upsert_oidc_user

__all__ = [
    "get_db",
    "get_settings",
    "get_verifier",
    "json_body",
    "require_user",
    "require_admin",
    "require_legacy_auth",
    "authorize_share",
]

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_verifier(request: Request) -> OIDCVerifier | None:
    return request.app.state.verifier


# ── Request bodies ──────────────────────────────────────────────────


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the body, refusing anything over ``limit`` bytes before parsing."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise body_too_large()
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise body_too_large()
        chunks.append(chunk)
    return b"".join(chunks)


def json_body(model: type[ModelT]) -> Callable[[Request], Awaitable[ModelT]]:
    """Dependency factory: size-capped, strict (unknown fields rejected) JSON body."""

    async def dependency(request: Request) -> ModelT:
        raw = await read_limited_body(request, get_settings(request).max_body_bytes)
        try:
            return model.model_validate_json(raw)
        except ValidationError:
            raise bad_json() from None

    return dependency


# ── Bearer (OIDC) mode ──────────────────────────────────────────────


def touch_user(db: Session, settings: Settings, identity: Identity, now: datetime) -> None:
    """Upsert the identity and bump last-seen. Best-effort: never fails the request."""
    try:
        upsert_oidc_user(db, identity.sub, identity.email, identity.name, now)
        if identity.sub in settings.admin_subs:
            set_user_admin(db, identity.sub, True, now)
    except (SQLAlchemyError, NotFoundError):
        db.rollback()
        logger.warning("User bookkeeping failed for %s", identity.sub, exc_info=True)


def verify_bearer(request: Request, db: Session) -> Identity:
    """Authenticate the caller's bearer token. Raises 401 on any failure."""
    verifier = get_verifier(request)
    if verifier is None:
        raise oidc_not_enabled()
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise unauthorized()
    try:
        identity = verifier.verify_token(token)
    except InvalidTokenError as exc:
        logger.info("Bearer token rejected: %s", exc)
        raise unauthorized() from None
    touch_user(db, get_settings(request), identity, utcnow())
    return identity


def require_user(request: Request, db: Session = Depends(get_db)) -> Identity:
    """Dependency that requires a valid OIDC bearer token."""
    return verify_bearer(request, db)


def require_admin(
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
) -> Identity:
    """Dependency that requires an admin. The flag is read fresh on every call."""
    with store_errors(db, "db_read_failed", "could not read user"):
        admin = is_user_admin(db, identity.sub)
    if not admin:
        raise forbidden("admin required")
    return identity


# ── Legacy (shared password + session cookie) mode ─────────────────


def session_share_id(request: Request, db: Session, settings: Settings, now: datetime) -> str | None:
    """Share id bound to the caller's session cookie, or None if absent/expired."""
    token = request.cookies.get(settings.cookie_name)
    if not token:
        return None
    with store_errors(db, "db_read_failed", "could not read session"):
        try:
            return lookup_session(db, token, now)
        except NotFoundError:
            return None


def issue_session(
    response: Response, db: Session, settings: Settings, share_id: str, now: datetime
) -> None:
    """Store a fresh session for share_id and set the cookie. Best-effort."""
    token = new_session_token()
    expires_at = now + settings.session_ttl
    try:
        create_session(db, token, share_id, expires_at, now)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not store session for share %s", share_id, exc_info=True)
        return
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=int(settings.session_ttl.total_seconds()),
        expires=expires_at,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def require_legacy_auth(
    request: Request,
    response: Response,
    db: Session,
    password: str,
    now: datetime,
    share_id: str | None = None,
) -> bool:
    """Accept a valid session (bound to share_id when given) or the shared password.

    Returns True when the password path was used and a session was issued for
    share_id. Raises password_required / invalid_password otherwise.
    """
    settings = get_settings(request)
    cleanup_expired_sessions(db, now)  # best-effort, errors swallowed inside

    bound = session_share_id(request, db, settings, now)
    if bound is not None and (share_id is None or bound == share_id):
        return False

    if not password.strip():
        raise password_required()
    if not password_matches(password, settings.api_password):
        logger.info("Shared password rejected")
        raise invalid_password()
    if share_id:
        issue_session(response, db, settings, share_id, now)
        return True
    return False


# ── Share access (both modes) ───────────────────────────────────────


def load_share(db: Session, share_id: str) -> Share:
    with store_errors(db, "db_read_failed", "could not read share"):
        return get_share(db, share_id)


def authorize_share(request: Request, db: Session, share_id: str) -> tuple[Share, str]:
    """Gate for version routes: returns (share, actor_sub).

    Bearer mode: owner or team member. Legacy mode: a live session bound to this
    exact share.
    """
    if get_verifier(request) is not None:
        identity = verify_bearer(request, db)
        share = load_share(db, share_id)
        with store_errors(db, "db_read_failed", "could not read team membership"):
            allowed = can_access_share(db, share, identity.sub)
        if not allowed:
            raise forbidden()
        return share, identity.sub

    settings = get_settings(request)
    now = utcnow()
    cleanup_expired_sessions(db, now)
    if session_share_id(request, db, settings, now) != share_id:
        raise unauthorized()
    return load_share(db, share_id), ""
