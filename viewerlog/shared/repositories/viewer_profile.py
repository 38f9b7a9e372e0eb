"""Repository for viewer_profiles and the per-viewer top favorites."""

from __future__ import annotations

import logging

import asyncpg

from viewerlog.shared.models.viewer import ViewerProfile

logger = logging.getLogger(__name__)


class ViewerProfileRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def upsert_profile(self, profile: ViewerProfile) -> None:
        """Write the profile totals and replace its top favorites atomically."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO viewer_profiles (
                        user_id, total_watch_time, average_session_time,
                        total_messages, total_redemptions, total_points_spent, last_seen
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (user_id) DO UPDATE SET
                        total_watch_time     = EXCLUDED.total_watch_time,
                        average_session_time = EXCLUDED.average_session_time,
                        total_messages       = EXCLUDED.total_messages,
                        total_redemptions    = EXCLUDED.total_redemptions,
                        total_points_spent   = EXCLUDED.total_points_spent,
                        last_seen            = EXCLUDED.last_seen,
                        updated_at           = NOW()
                    """,
                    profile.user_id,
                    profile.total_watch_time,
                    profile.average_session_time,
                    profile.total_messages,
                    profile.total_redemptions,
                    profile.total_points_spent,
                    profile.last_seen,
                )
                await self._replace_favorites(conn, profile)

    async def _replace_favorites(self, conn: asyncpg.Connection, profile: ViewerProfile) -> None:
        user_id = profile.user_id
        for table in (
            "viewer_profile_top_emotes",
            "viewer_profile_top_games",
            "viewer_profile_top_rewards",
        ):
            await conn.execute(f"DELETE FROM {table} WHERE user_id = $1", user_id)

        if profile.top_emotes:
            await conn.executemany(
                """
                INSERT INTO viewer_profile_top_emotes (user_id, rank, emote_id, usage_count)
                VALUES ($1, $2, $3, $4)
                """,
                [(user_id, e.rank, e.emote_id, e.usage_count) for e in profile.top_emotes],
            )
        if profile.top_games:
            await conn.executemany(
                """
                INSERT INTO viewer_profile_top_games (user_id, rank, game_id, game_name, watch_time)
                VALUES ($1, $2, $3, $4, $5)
                """,
                [(user_id, g.rank, g.game_id, g.game_name, g.watch_time) for g in profile.top_games],
            )
        if profile.top_rewards:
            await conn.executemany(
                """
                INSERT INTO viewer_profile_top_rewards
                    (user_id, rank, reward_id, redemption_count, total_points_spent)
                VALUES ($1, $2, $3, $4, $5)
                """,
                [
                    (user_id, r.rank, r.reward_id, r.redemption_count, r.total_points_spent)
                    for r in profile.top_rewards
                ],
            )
