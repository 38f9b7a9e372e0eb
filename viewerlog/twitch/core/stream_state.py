"""In-memory record of the stream currently being tracked."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from viewerlog.twitch.core.errors import StreamStateConflict

if TYPE_CHECKING:
    from viewerlog.twitch.core.chatters import ChatterPoller
    from viewerlog.twitch.core.view_sessions import ViewerSessionReconciler

LOGGER = logging.getLogger("StreamState")


class StreamStateTracker:
    """Answers "is a stream live, and which one" for every ingestion path.

    One instance per process, built at startup and handed to whoever needs it.
    ``current_stream_id`` is set if and only if ``is_active`` is true.
    """

    def __init__(
        self,
        reconciler: ViewerSessionReconciler,
        chatter_poller: ChatterPoller | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._chatter_poller = chatter_poller
        self._current_stream_id: int | None = None
        self._is_active = False

    @property
    def is_active(self) -> bool:
        return self._is_active

    def get_current_stream_id(self) -> int | None:
        return self._current_stream_id if self._is_active else None

    async def start_stream(self, stream_id: int) -> None:
        if self._is_active:
            if self._current_stream_id == stream_id:
                LOGGER.debug(f"Stream {stream_id} is already being tracked")
                return
            LOGGER.error(
                f"Refusing to start stream {stream_id} while stream "
                f"{self._current_stream_id} is active"
            )
            raise StreamStateConflict(self._current_stream_id, stream_id)

        self._current_stream_id = stream_id
        self._is_active = True

        if self._chatter_poller is not None:
            self._chatter_poller.start(stream_id)

        LOGGER.info(f"Stream started: {stream_id}")

    async def end_stream(self) -> None:
        if not self._is_active or self._current_stream_id is None:
            LOGGER.warning("end_stream called with no active stream")
            return

        stream_id = self._current_stream_id

        # Halt snapshots first so none can reopen sessions after close_all
        if self._chatter_poller is not None:
            await self._chatter_poller.stop()

        try:
            closed = await self._reconciler.close_all(stream_id)
        except Exception:
            if self._chatter_poller is not None:
                self._chatter_poller.start(stream_id)
            raise

        self._current_stream_id = None
        self._is_active = False

        LOGGER.info(f"Stream ended: {stream_id} ({closed} view sessions closed)")

    def status(self) -> dict[str, Any]:
        return {
            "is_active": self._is_active,
            "current_stream_id": self.get_current_stream_id(),
            "chatter_polling": bool(self._chatter_poller and self._chatter_poller.is_running),
        }
