"""User model: identity record for an OIDC-authenticated principal."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from share_server.db.session import Base, UTCDateTime


class User(Base):
    """OIDC user, keyed by the provider's stable subject id."""

    __tablename__ = "users"

    sub: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Only changed by an explicit admin grant, never by the login upsert
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    # Doubles as "last login"
    last_seen_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
