"""ShareSession model: opaque cookie token bound to one share (legacy mode)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from share_server.db.session import Base, UTCDateTime


class ShareSession(Base):
    """Time-limited write grant. Valid iff now < expires_at."""

    __tablename__ = "sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    # Not a foreign key: may be empty, and rows outliving their share are harmless
    share_id: Mapped[str] = mapped_column(String(36), nullable=False, default="", index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
