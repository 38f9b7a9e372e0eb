"""Data models for streams, segments and live status."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Stream:
    """A single broadcast. ``ended_at is None`` means it is still open."""

    id: int
    started_at: datetime
    ended_at: datetime | None = None
    twitch_stream_id: str | None = None
    title: str | None = None
    thumbnail_url: str | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


@dataclass
class StreamSegment:
    """Part of a stream during which one title/category held."""

    id: int
    stream_id: int
    started_at: datetime
    ended_at: datetime | None = None
    title: str | None = None
    game_id: str | None = None
    game_name: str | None = None


@dataclass(frozen=True)
class StreamMetadata:
    """What Twitch reports about a live broadcast."""

    twitch_stream_id: str
    started_at: datetime
    title: str | None = None
    game_id: str | None = None
    game_name: str | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class LiveStatus:
    """Result of polling Twitch for the channel's live state."""

    online: bool
    metadata: StreamMetadata | None = None

    @property
    def state(self) -> str:
        return "online" if self.online else "offline"

    @classmethod
    def offline(cls) -> LiveStatus:
        return cls(online=False)
