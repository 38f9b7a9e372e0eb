"""Per-viewer watch time, activity totals and top favorites."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import TypeVar

from viewerlog.shared.models.viewer import TopGame, ViewerProfile, ViewSession
from viewerlog.shared.repositories import (
    ActivityRepository,
    ViewerProfileRepository,
    ViewSessionRepository,
)

LOGGER = logging.getLogger("ViewerAnalytics")

TOP_FAVORITES = 3

T = TypeVar("T")


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def watch_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up."""
    return round_half_up((end - start).total_seconds() / 60)


def summarize_sessions(sessions: Iterable[ViewSession]) -> tuple[int, int]:
    """Return ``(total_minutes, average_minutes)`` over closed sessions.

    Open sessions are ignored. The average is 0 when nothing is closed.
    """
    durations = [
        watch_minutes(session.session_start, session.session_end)
        for session in sessions
        if session.session_end is not None
    ]
    if not durations:
        return 0, 0

    total = sum(durations)
    return total, round_half_up(total / len(durations))


def rank(items: Iterable[T]) -> list[T]:
    """Number already ordered favorites from 1, keeping the first few."""
    kept = list(items)[:TOP_FAVORITES]
    return [replace(item, rank=i) for i, item in enumerate(kept, start=1)]


def top_games(per_game: Iterable[tuple[str, str | None, float]]) -> list[TopGame]:
    """Rank categories by watch time. Categories under half a minute are dropped."""
    games = [
        TopGame(game_id, game_name, round_half_up(seconds / 60))
        for game_id, game_name, seconds in per_game
    ]
    games = [game for game in games if game.watch_time > 0]
    games.sort(key=lambda game: (-game.watch_time, game.game_id))
    return rank(games)


class ViewerAnalytics:
    def __init__(
        self,
        sessions: ViewSessionRepository,
        activity: ActivityRepository,
        profiles: ViewerProfileRepository,
    ) -> None:
        self._sessions = sessions
        self._activity = activity
        self._profiles = profiles

    async def build_profile(self, user_id: int) -> ViewerProfile:
        sessions = await self._sessions.list_closed_sessions_for_user(user_id)
        total, average = summarize_sessions(sessions)
        last_seen = max((s.session_end for s in sessions if s.session_end), default=None)

        return ViewerProfile(
            user_id=user_id,
            total_watch_time=total,
            average_session_time=average,
            total_messages=await self._activity.count_messages(user_id),
            total_redemptions=await self._activity.count_redemptions(user_id),
            total_points_spent=await self._activity.sum_points_spent(user_id),
            last_seen=last_seen,
            top_emotes=rank(await self._activity.top_emotes(user_id, TOP_FAVORITES)),
            top_games=top_games(await self._sessions.watch_seconds_by_game(user_id)),
            top_rewards=rank(await self._activity.top_rewards(user_id, TOP_FAVORITES)),
        )

    async def update_for_stream(self, stream_id: int) -> int:
        """Recompute profiles for everyone active on a stream.

        Returns how many profiles were written. A failure for one viewer is
        logged and does not stop the others.
        """
        user_ids = await self._sessions.list_user_ids_for_stream(stream_id)
        user_ids |= await self._activity.list_user_ids_for_stream(stream_id)

        updated = 0
        for user_id in sorted(user_ids):
            try:
                profile = await self.build_profile(user_id)
                await self._profiles.upsert_profile(profile)
                updated += 1
            except Exception:
                LOGGER.exception(f"Failed to update viewer profile for user {user_id}")

        LOGGER.info(f"Updated {updated}/{len(user_ids)} viewer profiles for stream {stream_id}")
        return updated
