"""Repository for the view_sessions table."""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime

import asyncpg

from viewerlog.shared.models.viewer import ViewSession

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = "id, user_id, stream_id, session_start, session_end"


class ViewSessionRepository:
    """Pure SQL operations for view sessions.

    Inserts go through ``ON CONFLICT DO NOTHING`` against the partial unique
    index on open sessions, so at most one open session exists per
    ``(user_id, stream_id)`` even when callers race.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def find_open_session(self, user_id: int, stream_id: int) -> ViewSession | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SESSION_COLUMNS}
                FROM view_sessions
                WHERE user_id = $1 AND stream_id = $2 AND session_end IS NULL
                LIMIT 1
                """,
                user_id,
                stream_id,
            )
            return ViewSession(**dict(row)) if row else None

    async def create_session(
        self, user_id: int, stream_id: int, started_at: datetime
    ) -> int | None:
        """Open a session. Returns None if one was already open."""
        async with self.pool.acquire() as conn:
            session_id = await conn.fetchval(
                """
                INSERT INTO view_sessions (user_id, stream_id, session_start)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id, stream_id) WHERE session_end IS NULL DO NOTHING
                RETURNING id
                """,
                user_id,
                stream_id,
                started_at,
            )
            return int(session_id) if session_id is not None else None

    async def create_sessions(
        self, user_ids: Collection[int], stream_id: int, started_at: datetime
    ) -> int:
        """Open sessions for many users. Returns how many were inserted."""
        if not user_ids:
            return 0
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                INSERT INTO view_sessions (user_id, stream_id, session_start)
                SELECT u, $2, $3 FROM unnest($1::int[]) AS u
                ON CONFLICT (user_id, stream_id) WHERE session_end IS NULL DO NOTHING
                RETURNING id
                """,
                list(user_ids),
                stream_id,
                started_at,
            )
            return len(rows)

    async def close_session(self, session_id: int, ended_at: datetime) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE view_sessions SET session_end = $1
                WHERE id = $2 AND session_end IS NULL
                """,
                ended_at,
                session_id,
            )

    async def close_sessions(self, session_ids: Collection[int], ended_at: datetime) -> int:
        if not session_ids:
            return 0
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE view_sessions SET session_end = $1
                WHERE id = ANY($2::int[]) AND session_end IS NULL
                RETURNING id
                """,
                ended_at,
                list(session_ids),
            )
            return len(rows)

    async def list_open_sessions(
        self, stream_id: int, excluding_user_ids: Collection[int] | None = None
    ) -> list[ViewSession]:
        """Open sessions for a stream, optionally skipping some users."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SESSION_COLUMNS}
                FROM view_sessions
                WHERE stream_id = $1
                  AND session_end IS NULL
                  AND NOT (user_id = ANY($2::int[]))
                ORDER BY session_start
                """,
                stream_id,
                list(excluding_user_ids or ()),
            )
            return [ViewSession(**dict(row)) for row in rows]

    async def close_all_for_stream(self, stream_id: int, ended_at: datetime) -> int:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE view_sessions SET session_end = $1
                WHERE stream_id = $2 AND session_end IS NULL
                RETURNING id
                """,
                ended_at,
                stream_id,
            )
            return len(rows)

    async def close_orphaned_sessions(self) -> int:
        """Close open sessions whose stream has ended, at the stream's end time.

        A session that started after its stream ended is closed with zero
        length.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE view_sessions v
                SET session_end = GREATEST(v.session_start, s.ended_at)
                FROM streams s
                WHERE v.stream_id = s.id
                  AND s.ended_at IS NOT NULL
                  AND v.session_end IS NULL
                RETURNING v.id
                """
            )
            return len(rows)

    async def list_closed_sessions_for_user(self, user_id: int) -> list[ViewSession]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SESSION_COLUMNS}
                FROM view_sessions
                WHERE user_id = $1 AND session_end IS NOT NULL
                ORDER BY session_start
                """,
                user_id,
            )
            return [ViewSession(**dict(row)) for row in rows]

    async def watch_seconds_by_game(self, user_id: int) -> list[tuple[str, str | None, float]]:
        """Closed-session time overlapping each category, as ``(game_id, game_name, seconds)``."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT
                    g.game_id,
                    MAX(g.game_name) AS game_name,
                    SUM(EXTRACT(EPOCH FROM (
                        LEAST(v.session_end, COALESCE(g.ended_at, NOW()))
                        - GREATEST(v.session_start, g.started_at)
                    ))) AS seconds
                FROM view_sessions v
                JOIN stream_segments g ON g.stream_id = v.stream_id
                WHERE v.user_id = $1
                  AND v.session_end IS NOT NULL
                  AND g.game_id IS NOT NULL
                  AND v.session_start < COALESCE(g.ended_at, NOW())
                  AND v.session_end > g.started_at
                GROUP BY g.game_id
                """,
                user_id,
            )
            return [(row["game_id"], row["game_name"], float(row["seconds"])) for row in rows]

    async def list_user_ids_for_stream(self, stream_id: int) -> set[int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT user_id FROM view_sessions WHERE stream_id = $1",
                stream_id,
            )
            return {row["user_id"] for row in rows}
