"""Data models for users, view sessions, profiles and tokens."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ChatterIdentity:
    """A Twitch account as seen in chat or the chatters list."""

    twitch_id: str
    login: str
    display_name: str | None = None


@dataclass
class TwitchUser:
    """Users table record."""

    id: int
    twitch_id: str
    login: str
    display_name: str | None = None
    updated_at: datetime | None = None


@dataclass
class ViewSession:
    """Interval a viewer was present in chat. Open while ``session_end`` is None."""

    id: int
    user_id: int
    stream_id: int
    session_start: datetime
    session_end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.session_end is None


@dataclass(frozen=True)
class TopEmote:
    emote_id: str
    name: str
    usage_count: int
    rank: int = 0


@dataclass(frozen=True)
class TopGame:
    game_id: str
    game_name: str | None
    watch_time: int
    rank: int = 0


@dataclass(frozen=True)
class TopReward:
    reward_id: str
    title: str
    redemption_count: int
    total_points_spent: int
    rank: int = 0


@dataclass
class ViewerProfile:
    """Cumulative per-viewer analytics. Times are whole minutes.

    The ``top_*`` lists hold at most three entries, ranked from 1.
    """

    user_id: int
    total_watch_time: int = 0
    average_session_time: int = 0
    total_messages: int = 0
    total_redemptions: int = 0
    total_points_spent: int = 0
    last_seen: datetime | None = None
    top_emotes: list[TopEmote] = field(default_factory=list)
    top_games: list[TopGame] = field(default_factory=list)
    top_rewards: list[TopReward] = field(default_factory=list)


@dataclass
class Token:
    """OAuth token record."""

    user_id: str
    token: str
    refresh: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
