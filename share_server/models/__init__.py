"""SQLAlchemy models."""

from share_server.models.share import Share, ShareVersion
from share_server.models.share_session import ShareSession
from share_server.models.team import ROLE_MEMBER, ROLE_OWNER, Team, TeamInvite, TeamMember
from share_server.models.user import User

__all__ = [
    "ROLE_MEMBER",
    "ROLE_OWNER",
    "Share",
    "ShareSession",
    "ShareVersion",
    "Team",
    "TeamInvite",
    "TeamMember",
    "User",
]
