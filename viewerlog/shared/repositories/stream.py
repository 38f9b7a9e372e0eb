"""Repository for streams and stream_segments tables."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from viewerlog.shared.models.stream import Stream, StreamMetadata, StreamSegment

logger = logging.getLogger(__name__)

_STREAM_COLUMNS = "id, twitch_stream_id, title, thumbnail_url, started_at, ended_at"
_SEGMENT_COLUMNS = "id, stream_id, title, game_id, game_name, started_at, ended_at"


class StreamRepository:
    """Pure SQL operations for streams and their segments.

    Nothing in the schema stops two streams from being open at once; the
    lifecycle service and the drift poller keep that invariant.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Streams ====================

    async def find_open_stream(self) -> Stream | None:
        """The most recently started stream with no end time."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_STREAM_COLUMNS}
                FROM streams
                WHERE ended_at IS NULL
                ORDER BY started_at DESC
                LIMIT 1
                """
            )
            return Stream(**dict(row)) if row else None

    async def list_open_streams(self) -> list[Stream]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_STREAM_COLUMNS}
                FROM streams
                WHERE ended_at IS NULL
                ORDER BY started_at DESC
                """
            )
            return [Stream(**dict(row)) for row in rows]

    async def create_stream(self, metadata: StreamMetadata) -> int:
        """Insert a stream and its first segment. Returns the stream id."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                stream_id = await conn.fetchval(
                    """
                    INSERT INTO streams (twitch_stream_id, title, thumbnail_url, started_at)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id
                    """,
                    metadata.twitch_stream_id,
                    metadata.title,
                    metadata.thumbnail_url,
                    metadata.started_at,
                )
                if stream_id is None:
                    raise ValueError("Failed to create stream: no ID returned")

                await conn.execute(
                    """
                    INSERT INTO stream_segments (stream_id, title, game_id, game_name, started_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    stream_id,
                    metadata.title,
                    metadata.game_id,
                    metadata.game_name,
                    metadata.started_at,
                )
        return int(stream_id)

    async def close_stream(self, stream_id: int, ended_at: datetime) -> None:
        """Set the end time on a stream and its open segment."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "UPDATE streams SET ended_at = $1 WHERE id = $2 AND ended_at IS NULL",
                    ended_at,
                    stream_id,
                )
                await conn.execute(
                    """
                    UPDATE stream_segments SET ended_at = $1
                    WHERE stream_id = $2 AND ended_at IS NULL
                    """,
                    ended_at,
                    stream_id,
                )

    # ==================== Segments ====================

    async def get_current_segment(self, stream_id: int) -> StreamSegment | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SEGMENT_COLUMNS}
                FROM stream_segments
                WHERE stream_id = $1 AND ended_at IS NULL
                ORDER BY started_at DESC
                LIMIT 1
                """,
                stream_id,
            )
            return StreamSegment(**dict(row)) if row else None

    async def start_segment(
        self,
        stream_id: int,
        started_at: datetime,
        title: str | None = None,
        game_id: str | None = None,
        game_name: str | None = None,
    ) -> int:
        """Close the current segment and open a new one at *started_at*."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE stream_segments SET ended_at = $1
                    WHERE stream_id = $2 AND ended_at IS NULL
                    """,
                    started_at,
                    stream_id,
                )
                segment_id = await conn.fetchval(
                    """
                    INSERT INTO stream_segments (stream_id, title, game_id, game_name, started_at)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING id
                    """,
                    stream_id,
                    title,
                    game_id,
                    game_name,
                    started_at,
                )
        return int(segment_id)
