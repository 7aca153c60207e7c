"""User store: OIDC identities, admin flag and last-seen bookkeeping."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from share_server.db.upsert import insert_ignore
from share_server.models.user import User
from share_server.services.errors import NotFoundError

DEFAULT_USER_LIST_LIMIT = 200
MAX_USER_LIST_LIMIT = 500


def upsert_oidc_user(db: Session, sub: str, email: str, name: str, now: datetime) -> None:
    """Create the user on first sight; afterwards only bump last_seen_at.

    Never touches is_admin, and does not overwrite email/name of a known user.
    """
    sub = sub.strip()
    if not sub:
        raise ValueError("user sub is required")
    try:
        insert_ignore(
            db,
            User,
            {
                "sub": sub,
                "email": email.strip(),
                "name": name.strip(),
                "is_admin": False,
                "created_at": now,
                "updated_at": now,
                "last_seen_at": now,
            },
            conflict_columns=("sub",),
        )
        # last_seen_at only moves forward
        db.query(User).filter(User.sub == sub, User.last_seen_at < now).update(
            {"last_seen_at": now, "updated_at": now}, synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_user(db: Session, sub: str) -> User:
    user = db.query(User).filter(User.sub == sub.strip()).first()
    if user is None:
        raise NotFoundError("user")
    return user


def is_user_admin(db: Session, sub: str) -> bool:
    """Read the admin flag fresh from the store. Unknown users are not admins."""
    sub = sub.strip()
    if not sub:
        return False
    row = db.query(User.is_admin).filter(User.sub == sub).first()
    return bool(row and row.is_admin)


def set_user_admin(db: Session, sub: str, is_admin: bool, now: datetime) -> None:
    """Grant or revoke admin. Raises NotFoundError for an unknown subject."""
    sub = sub.strip()
    if not sub:
        raise ValueError("user sub is required")
    updated = (
        db.query(User)
        .filter(User.sub == sub)
        .update({"is_admin": is_admin, "updated_at": now})
    )
    if updated == 0:
        db.rollback()
        raise NotFoundError("user")
    db.commit()


def list_users(db: Session, query: str = "", limit: int = DEFAULT_USER_LIST_LIMIT) -> list[User]:
    """Users ordered by last seen, optionally filtered by a case-insensitive substring."""
    if limit <= 0:
        limit = DEFAULT_USER_LIST_LIMIT
    limit = min(limit, MAX_USER_LIST_LIMIT)
    users = db.query(User)
    q = query.strip().lower()
    if q:
        like = f"%{q}%"
        users = users.filter(
            or_(
                func.lower(User.sub).like(like),
                func.lower(User.email).like(like),
                func.lower(User.name).like(like),
            )
        )
    return users.order_by(User.last_seen_at.desc()).limit(limit).all()


def get_users_by_subs(db: Session, subs: Iterable[str]) -> dict[str, User]:
    unique = {s.strip() for s in subs if s and s.strip()}
    if not unique:
        return {}
    rows = db.query(User).filter(User.sub.in_(unique)).all()
    return {u.sub: u for u in rows}
