"""Share and ShareVersion models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from share_server.db.session import Base, UTCDateTime


class Share(Base):
    """A named, owned container for one opaque diagram blob."""

    __tablename__ = "shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Column is called "schema" on the wire and in the table
    content: Mapped[str] = mapped_column("schema", Text, nullable=False)
    # Empty in legacy password mode
    owner_sub: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    team_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)


class ShareVersion(Base):
    """Immutable snapshot of a share's schema.

    ``seq`` is the insertion order and breaks ties between equal ``created_at``.
    """

    __tablename__ = "share_versions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    share_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shares.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column("schema", Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_by_sub: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
