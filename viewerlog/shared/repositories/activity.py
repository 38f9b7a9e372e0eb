"""Repository for messages, rewards, redemptions, emote usage and badges."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection, Sequence
from datetime import datetime

import asyncpg

from viewerlog.shared.cache import MISSING, AsyncTTLCache
from viewerlog.shared.models.activity import ChannelReward, ChatBadge, ChatEmote
from viewerlog.shared.models.viewer import TopEmote, TopReward

logger = logging.getLogger(__name__)

_reward_cache = AsyncTTLCache(maxsize=128, ttl=3600)
# Last badge set written per user id
_badge_cache = AsyncTTLCache(maxsize=4096, ttl=3600)


class ActivityRepository:
    """Chat and channel point activity recorded during streams."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Writes ====================

    async def record_message(
        self,
        user_id: int,
        stream_id: int,
        twitch_message_id: str,
        content: str,
        sent_at: datetime,
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO messages (twitch_id, user_id, stream_id, content, sent_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (twitch_id) DO NOTHING
                """,
                twitch_message_id,
                user_id,
                stream_id,
                content,
                sent_at,
            )

    async def ensure_reward(self, reward: ChannelReward) -> None:
        """Insert the reward or refresh its title and cost."""
        if _reward_cache.get(reward.twitch_id) == reward:
            return

        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO channel_rewards (twitch_id, title, cost)
                VALUES ($1, $2, $3)
                ON CONFLICT (twitch_id) DO UPDATE SET
                    title      = EXCLUDED.title,
                    cost       = EXCLUDED.cost,
                    updated_at = NOW()
                """,
                reward.twitch_id,
                reward.title,
                reward.cost,
            )
        _reward_cache.set(reward.twitch_id, reward)

    async def record_redemption(
        self,
        twitch_redemption_id: str,
        user_id: int,
        stream_id: int,
        reward_id: str,
        redeemed_at: datetime,
        user_input: str | None = None,
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO redemptions
                    (twitch_id, user_id, stream_id, reward_id, user_input, redeemed_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (twitch_id) DO NOTHING
                """,
                twitch_redemption_id,
                user_id,
                stream_id,
                reward_id,
                user_input,
                redeemed_at,
            )

    async def record_emote_usage(self, user_id: int, emotes: Sequence[ChatEmote]) -> int:
        """Add one use per emote occurrence. Returns the number of occurrences."""
        if not emotes:
            return 0

        counts = Counter(emote.twitch_id for emote in emotes)
        names = {emote.twitch_id: emote.name for emote in emotes}
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO emotes (twitch_id, name) VALUES ($1, $2)
                    ON CONFLICT (twitch_id) DO UPDATE SET
                        name       = EXCLUDED.name,
                        updated_at = NOW()
                    """,
                    list(names.items()),
                )
                await conn.executemany(
                    """
                    INSERT INTO emote_usage (user_id, emote_id, count) VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, emote_id) DO UPDATE SET
                        count      = emote_usage.count + EXCLUDED.count,
                        updated_at = NOW()
                    """,
                    [(user_id, twitch_id, count) for twitch_id, count in counts.items()],
                )
        return sum(counts.values())

    async def replace_user_badges(self, user_id: int, badges: Collection[ChatBadge]) -> bool:
        """Make the stored badges match what the user displays. Returns False if unchanged."""
        current = frozenset(badges)
        cached = _badge_cache.get(str(user_id))
        if cached is not MISSING and cached == current:
            return False

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    DELETE FROM user_badges
                    WHERE user_id = $1 AND NOT (set_id = ANY($2::text[]))
                    """,
                    user_id,
                    [badge.set_id for badge in current],
                )
                if current:
                    await conn.executemany(
                        """
                        INSERT INTO user_badges (user_id, set_id, version) VALUES ($1, $2, $3)
                        ON CONFLICT (user_id, set_id) DO UPDATE SET
                            version    = EXCLUDED.version,
                            updated_at = NOW()
                        WHERE user_badges.version IS DISTINCT FROM EXCLUDED.version
                        """,
                        [(user_id, badge.set_id, badge.version) for badge in current],
                    )
        _badge_cache.set(str(user_id), current)
        return True

    # ==================== Aggregates ====================

    async def list_user_ids_for_stream(self, stream_id: int) -> set[int]:
        """Users who chatted or redeemed during a stream."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT user_id FROM messages WHERE stream_id = $1
                UNION
                SELECT user_id FROM redemptions WHERE stream_id = $1
                """,
                stream_id,
            )
            return {row["user_id"] for row in rows}

    async def count_messages(self, user_id: int) -> int:
        async with self.pool.acquire() as conn:
            return int(
                await conn.fetchval("SELECT COUNT(*) FROM messages WHERE user_id = $1", user_id)
            )

    async def count_redemptions(self, user_id: int) -> int:
        async with self.pool.acquire() as conn:
            return int(
                await conn.fetchval(
                    "SELECT COUNT(*) FROM redemptions WHERE user_id = $1", user_id
                )
            )

    async def sum_points_spent(self, user_id: int) -> int:
        async with self.pool.acquire() as conn:
            total = await conn.fetchval(
                """
                SELECT COALESCE(SUM(r.cost), 0)
                FROM redemptions d
                JOIN channel_rewards r ON r.twitch_id = d.reward_id
                WHERE d.user_id = $1
                """,
                user_id,
            )
            return int(total)

    async def top_emotes(self, user_id: int, limit: int = 3) -> list[TopEmote]:
        """Most used emotes, highest count first. Ranks are left at 0."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT u.emote_id, e.name, u.count AS usage_count
                FROM emote_usage u
                JOIN emotes e ON e.twitch_id = u.emote_id
                WHERE u.user_id = $1 AND u.count > 0
                ORDER BY u.count DESC, e.name
                LIMIT $2
                """,
                user_id,
                limit,
            )
            return [TopEmote(**dict(row)) for row in rows]

    async def top_rewards(self, user_id: int, limit: int = 3) -> list[TopReward]:
        """Most redeemed rewards, highest count first. Ranks are left at 0."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT
                    r.twitch_id AS reward_id,
                    r.title,
                    COUNT(*) AS redemption_count,
                    COUNT(*) * r.cost AS total_points_spent
                FROM redemptions d
                JOIN channel_rewards r ON r.twitch_id = d.reward_id
                WHERE d.user_id = $1
                GROUP BY r.twitch_id, r.title, r.cost
                ORDER BY redemption_count DESC, r.title
                LIMIT $2
                """,
                user_id,
                limit,
            )
            return [TopReward(**dict(row)) for row in rows]
