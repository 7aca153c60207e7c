"""Session store: opaque cookie tokens mapped to a share id, with expiry.

Expired rows are removed lazily on lookup and in bulk by cleanup_expired_sessions,
which the authorization path calls before every legacy check. No background
scheduler is needed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from share_server.models.share_session import ShareSession
from share_server.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def new_session_token() -> str:
    """Unguessable opaque token."""
    return secrets.token_urlsafe(32)


def create_session(
    db: Session,
    token: str,
    share_id: str,
    expires_at: datetime,
    now: datetime,
) -> ShareSession:
    """Insert a session row unconditionally."""
    row = ShareSession(token=token, share_id=share_id, expires_at=expires_at, created_at=now)
    db.add(row)
    db.commit()
    return row


def lookup_session(db: Session, token: str, now: datetime) -> str:
    """Return the share id bound to token.

    Raises NotFoundError if the token is unknown or now >= expires_at; an expired
    row is deleted on the way out (best-effort).
    """
    row = db.query(ShareSession).filter(ShareSession.token == token).first()
    if row is None:
        raise NotFoundError("session")
    if now >= row.expires_at:
        try:
            db.query(ShareSession).filter(ShareSession.token == token).delete()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Could not delete expired session", exc_info=True)
        raise NotFoundError("session")
    return row.share_id


def cleanup_expired_sessions(db: Session, now: datetime) -> int:
    """Bulk-delete every session with expires_at <= now. Returns rows removed.

    Best-effort: errors are logged and swallowed, the caller never fails on this.
    """
    try:
        removed = (
            db.query(ShareSession)
            .filter(ShareSession.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Expired session cleanup failed", exc_info=True)
        return 0
    return removed or 0


def delete_sessions_for_share(db: Session, share_id: str) -> None:
    """Drop every session bound to share_id. Caller commits."""
    db.query(ShareSession).filter(ShareSession.share_id == share_id).delete()

