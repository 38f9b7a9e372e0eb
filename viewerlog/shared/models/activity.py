"""Data models for channel point rewards, chat emotes and badges."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChannelReward:
    """A channel point reward definition."""

    twitch_id: str
    title: str
    cost: int


@dataclass(frozen=True)
class ChatEmote:
    """A Twitch emote as it appeared in a chat message."""

    twitch_id: str
    name: str


@dataclass(frozen=True)
class ChatBadge:
    """One badge a chatter displayed, e.g. ``subscriber`` version ``3012``."""

    set_id: str
    version: str
