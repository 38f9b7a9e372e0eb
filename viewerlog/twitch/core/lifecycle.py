"""Stream online/offline/update handling shared by EventSub and the poller."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from viewerlog.shared.models.stream import Stream, StreamMetadata
from viewerlog.shared.repositories import StreamRepository
from viewerlog.twitch.core.analytics import ViewerAnalytics
from viewerlog.twitch.core.stream_state import StreamStateTracker
from viewerlog.twitch.core.view_sessions import ViewerSessionReconciler

LOGGER = logging.getLogger("StreamLifecycle")


class StreamLifecycle:
    """Persist stream transitions and keep the tracker in step with them."""

    def __init__(
        self,
        streams: StreamRepository,
        reconciler: ViewerSessionReconciler,
        tracker: StreamStateTracker,
        analytics: ViewerAnalytics | None = None,
    ) -> None:
        self._streams = streams
        self._reconciler = reconciler
        self._tracker = tracker
        self._analytics = analytics

    async def handle_online(self, metadata: StreamMetadata) -> int:
        """Open (or resume) the stream row for a live broadcast and track it."""
        stream_id: int | None = None

        for stream in await self._streams.list_open_streams():
            if (
                stream_id is None
                and metadata.twitch_stream_id
                and stream.twitch_stream_id == metadata.twitch_stream_id
            ):
                stream_id = stream.id
                continue
            LOGGER.warning(
                f"Closing stale open stream {stream.id} before opening "
                f"Twitch stream {metadata.twitch_stream_id}"
            )
            await self._close(stream, _now())

        await self._reconciler.close_orphaned()

        if stream_id is None:
            stream_id = await self._streams.create_stream(metadata)
            LOGGER.info(f"Stream {stream_id} opened: {metadata.title} ({metadata.game_name})")
        else:
            LOGGER.info(f"Resuming open stream {stream_id}")

        await self._tracker.start_stream(stream_id)
        return stream_id

    async def handle_offline(self) -> int | None:
        """Close every open stream row. Returns the id of the first one closed."""
        open_streams = await self._streams.list_open_streams()
        if not open_streams:
            LOGGER.warning("Stream went offline but no open stream was found")
            if self._tracker.is_active:
                await self._tracker.end_stream()
            await self._reconciler.close_orphaned()
            return None

        ended_at = _now()
        for stream in open_streams:
            await self._close(stream, ended_at)

        if self._tracker.is_active:
            await self._tracker.end_stream()
        await self._reconciler.close_orphaned()

        return open_streams[0].id

    async def handle_channel_update(
        self, title: str | None, game_id: str | None, game_name: str | None
    ) -> int | None:
        stream = await self._streams.find_open_stream()
        if stream is None:
            LOGGER.debug(f"Channel update ignored, no open stream: {title} ({game_name})")
            return None

        current = await self._streams.get_current_segment(stream.id)
        if current and (current.title, current.game_id) == (title, game_id):
            LOGGER.debug(f"Channel update for stream {stream.id} changes nothing")
            return current.id

        segment_id = await self._streams.start_segment(
            stream.id, _now(), title=title, game_id=game_id, game_name=game_name
        )
        LOGGER.info(f"Stream {stream.id} segment {segment_id}: {title} ({game_name})")
        return segment_id

    async def _close(self, stream: Stream, ended_at: datetime) -> None:
        if self._tracker.get_current_stream_id() == stream.id:
            await self._tracker.end_stream()
        else:
            await self._reconciler.close_all(stream.id)

        await self._streams.close_stream(stream.id, ended_at)
        LOGGER.info(f"Stream {stream.id} closed")

        if self._analytics is not None:
            try:
                await self._analytics.update_for_stream(stream.id)
            except Exception:
                LOGGER.exception(f"Viewer analytics failed for stream {stream.id}")


def _now() -> datetime:
    return datetime.now(timezone.utc)
