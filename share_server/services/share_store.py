"""Share store: shares, version history and retention pruning.

Every successful create/update/restore appends a ShareVersion; prune_share_versions
then keeps only the newest ``keep`` rows per share, deleting the rest in bounded
batches.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy.orm import Session, defer

from share_server.models.share import Share, ShareVersion
from share_server.models.team import Team
from share_server.services.errors import NotFoundError
from share_server.services.session_store import delete_sessions_for_share

PRUNE_BATCH_SIZE = 500
MAX_LIST_SHARES = 200
MAX_LIST_VERSIONS = 200
MAX_ADMIN_SHARES = 2000


def new_id() -> str:
    return str(uuid.uuid4())


def has_valid_prefix(content: str, prefixes: tuple[str, ...]) -> bool:
    """Cheap sniff: the blob must start with one of the recognized literal tags."""
    return any(content.startswith(p) for p in prefixes)


def create_share(
    db: Session,
    share_id: str,
    content: str,
    owner_sub: str,
    team_id: str | None,
    now: datetime,
    name: str = "",
) -> Share:
    """Insert a share. content must already have passed the prefix check.

    Raises NotFoundError if team_id is given but no such team exists.
    """
    team_id = (team_id or "").strip() or None
    if team_id is not None and db.query(Team).filter(Team.id == team_id).first() is None:
        raise NotFoundError("team")
    share = Share(
        id=share_id,
        name=name.strip(),
        content=content,
        owner_sub=owner_sub.strip(),
        team_id=team_id,
        created_at=now,
        updated_at=now,
    )
    db.add(share)
    db.commit()
    return share


def get_share(db: Session, share_id: str) -> Share:
    """Return the share or raise NotFoundError."""
    share = db.query(Share).filter(Share.id == share_id).first()
    if share is None:
        raise NotFoundError("share")
    return share


def update_share(
    db: Session,
    share_id: str,
    content: str | None,
    name: str | None,
    now: datetime,
) -> None:
    """Update schema and/or name and bump updated_at.

    At least one of content/name must be given. Raises NotFoundError when the id
    does not exist.
    """
    if content is None and name is None:
        raise ValueError("content or name is required")
    values: dict = {"updated_at": now}
    if content is not None:
        values["content"] = content
    if name is not None:
        values["name"] = name.strip()
    updated = db.query(Share).filter(Share.id == share_id).update(values)
    if updated == 0:
        db.rollback()
        raise NotFoundError("share")
    db.commit()


def delete_share(db: Session, share_id: str) -> None:
    """Hard-delete a share together with its versions and sessions, in one transaction."""
    share = db.query(Share).filter(Share.id == share_id).first()
    if share is None:
        raise NotFoundError("share")
    db.query(ShareVersion).filter(ShareVersion.share_id == share_id).delete()
    delete_sessions_for_share(db, share_id)
    db.delete(share)
    db.commit()


def list_shares_by_owner(db: Session, owner_sub: str, limit: int = MAX_LIST_SHARES) -> list[Share]:
    if limit <= 0 or limit > MAX_LIST_SHARES:
        limit = MAX_LIST_SHARES
    return (
        db.query(Share)
        .options(defer(Share.content))
        .filter(Share.owner_sub == owner_sub.strip())
        .order_by(Share.updated_at.desc())
        .limit(limit)
        .all()
    )


def list_all_shares(db: Session, limit: int = 500) -> list[Share]:
    """Global listing for admins, most recently updated first."""
    if limit <= 0:
        limit = 500
    limit = min(limit, MAX_ADMIN_SHARES)
    return (
        db.query(Share)
        .options(defer(Share.content))
        .order_by(Share.updated_at.desc())
        .limit(limit)
        .all()
    )


# ── Versions ─────────────────────────────────────────────────────────


def add_share_version(
    db: Session,
    share_id: str,
    content: str,
    created_by_sub: str,
    now: datetime,
    version_id: str | None = None,
) -> ShareVersion:
    share_id = share_id.strip()
    if not share_id:
        raise ValueError("share_id is required")
    version = ShareVersion(
        id=version_id or new_id(),
        share_id=share_id,
        content=content,
        created_at=now,
        created_by_sub=created_by_sub.strip(),
    )
    db.add(version)
    db.commit()
    return version


def _newest_first():
    return (ShareVersion.created_at.desc(), ShareVersion.seq.desc())


def list_share_versions(
    db: Session, share_id: str, limit: int = MAX_LIST_VERSIONS
) -> list[ShareVersion]:
    """Version summaries, newest first. The schema blob is not loaded."""
    if limit <= 0 or limit > MAX_LIST_VERSIONS:
        limit = MAX_LIST_VERSIONS
    return (
        db.query(ShareVersion)
        .options(defer(ShareVersion.content))
        .filter(ShareVersion.share_id == share_id)
        .order_by(*_newest_first())
        .limit(limit)
        .all()
    )


def get_share_version(db: Session, share_id: str, version_id: str) -> ShareVersion:
    """Return one version of one share or raise NotFoundError."""
    version = (
        db.query(ShareVersion)
        .filter(
            ShareVersion.id == version_id.strip(),
            ShareVersion.share_id == share_id.strip(),
        )
        .first()
    )
    if version is None:
        raise NotFoundError("version")
    return version


def prune_share_versions(
    db: Session, share_id: str, keep: int, batch_size: int = PRUNE_BATCH_SIZE
) -> int:
    """Delete everything beyond the newest ``keep`` versions, in batches.

    keep <= 0 disables pruning. Idempotent. Returns the number of rows deleted.
    """
    if keep <= 0:
        return 0
    deleted = 0
    while True:
        rows = (
            db.query(ShareVersion.seq)
            .filter(ShareVersion.share_id == share_id)
            .order_by(*_newest_first())
            .offset(keep)
            .limit(batch_size)
            .all()
        )
        old = [r.seq for r in rows]
        if not old:
            return deleted
        db.query(ShareVersion).filter(ShareVersion.seq.in_(old)).delete()
        db.commit()
        deleted += len(old)
