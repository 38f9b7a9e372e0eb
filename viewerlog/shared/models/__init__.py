"""Data models shared by the tracker services and repositories."""

from .activity import ChannelReward, ChatBadge, ChatEmote
from .stream import LiveStatus, Stream, StreamMetadata, StreamSegment
from .viewer import (
    ChatterIdentity,
    Token,
    TopEmote,
    TopGame,
    TopReward,
    TwitchUser,
    ViewerProfile,
    ViewSession,
)

__all__ = [
    "ChannelReward",
    "ChatBadge",
    "ChatEmote",
    "ChatterIdentity",
    "LiveStatus",
    "Stream",
    "StreamMetadata",
    "StreamSegment",
    "Token",
    "TopEmote",
    "TopGame",
    "TopReward",
    "TwitchUser",
    "ViewSession",
    "ViewerProfile",
]
