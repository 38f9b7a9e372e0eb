"""Persistence gateway: asyncpg repositories for the tracker tables."""

from .activity import ActivityRepository
from .stream import StreamRepository
from .user import TokenRepository, UserRepository
from .view_session import ViewSessionRepository
from .viewer_profile import ViewerProfileRepository

__all__ = [
    "ActivityRepository",
    "StreamRepository",
    "TokenRepository",
    "UserRepository",
    "ViewSessionRepository",
    "ViewerProfileRepository",
]
