"""Periodic live-status check that repairs missed EventSub notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from viewerlog.shared.models.stream import LiveStatus
from viewerlog.twitch.core.config import DEFAULT_POLL_INTERVAL
from viewerlog.twitch.core.periodic import PeriodicTask

if TYPE_CHECKING:
    from viewerlog.shared.repositories import StreamRepository
    from viewerlog.twitch.core.ingress import TwitchIngress
    from viewerlog.twitch.core.lifecycle import StreamLifecycle
    from viewerlog.twitch.core.stream_state import StreamStateTracker

LOGGER = logging.getLogger("DriftPoller")


class DriftCorrectionPoller:
    """Re-derive the live state from Twitch and fix whatever disagrees.

    Each tick:

    1. fetch the channel's live status;
    2. on the first tick only record it as the baseline;
    3. replay a missed online/offline transition through ``StreamLifecycle``;
    4. close an open stream row while offline, or open one while live
       (never on the first tick);
    5. align the in-memory tracker with the open row;
    6. store the new baseline.

    A failed tick is logged and leaves the baseline untouched so the next
    tick sees the same transition again.
    """

    def __init__(
        self,
        ingress: TwitchIngress,
        lifecycle: StreamLifecycle,
        streams: StreamRepository,
        tracker: StreamStateTracker,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._ingress = ingress
        self._lifecycle = lifecycle
        self._streams = streams
        self._tracker = tracker
        self._task = PeriodicTask("drift-poller", interval, self.tick)
        self._ticking = False
        self.last_known_status: LiveStatus | None = None
        self.last_tick_at: datetime | None = None

    @property
    def is_polling(self) -> bool:
        return self._task.is_running

    def start(self) -> None:
        if self.is_polling:
            LOGGER.warning("Stream status polling is already running")
            return
        self._task.start()
        LOGGER.info(f"Stream status polling started every {self._task.interval}s")

    async def stop(self) -> None:
        if not self.is_polling:
            LOGGER.debug("Stream status polling is not running")
            return
        await self._task.stop()
        # A later start() takes a fresh baseline
        self.last_known_status = None
        LOGGER.info("Stream status polling stopped")

    async def tick(self) -> bool:
        """Run one check. Returns False if skipped or failed."""
        if self._ticking:
            LOGGER.debug("Previous status check still running, skipping")
            return False

        self._ticking = True
        try:
            await self._check()
            return True
        except Exception:
            LOGGER.exception("Stream status check failed")
            return False
        finally:
            self._ticking = False

    def status(self) -> dict[str, Any]:
        return {
            "is_polling": self.is_polling,
            "interval": self._task.interval,
            "last_known_status": self.last_known_status.state if self.last_known_status else None,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
        }

    async def _check(self) -> None:
        status = await self._ingress.get_live_status()
        first_tick = self.last_known_status is None

        if first_tick:
            LOGGER.info(f"Initial stream status: {status.state}")
        elif status.online != self.last_known_status.online:
            await self._handle_status_change(status)

        await self._verify_persisted_state(status, first_tick)
        await self._verify_tracker(status)

        self.last_known_status = status
        self.last_tick_at = datetime.now(timezone.utc)

    async def _handle_status_change(self, status: LiveStatus) -> None:
        LOGGER.warning(
            f"Stream status changed {self.last_known_status.state} -> {status.state} "
            f"without a notification"
        )
        if status.online:
            if status.metadata is None:
                LOGGER.warning("Channel is live but Twitch returned no stream metadata")
                return
            await self._lifecycle.handle_online(status.metadata)
        else:
            await self._lifecycle.handle_offline()

    async def _verify_persisted_state(self, status: LiveStatus, first_tick: bool) -> None:
        open_stream = await self._streams.find_open_stream()

        if open_stream is not None and not status.online:
            LOGGER.warning(
                f"Stream {open_stream.id} is open in the database but the channel is offline, "
                f"closing it"
            )
            await self._lifecycle.handle_offline()
        elif open_stream is None and status.online and not first_tick:
            if status.metadata is None:
                return
            LOGGER.warning(
                f"Channel is live ({status.metadata.twitch_stream_id}) but no stream is open, "
                f"opening one"
            )
            await self._lifecycle.handle_online(status.metadata)

    async def _verify_tracker(self, status: LiveStatus) -> None:
        tracked = self._tracker.get_current_stream_id()

        if not status.online:
            if tracked is not None:
                LOGGER.warning(
                    f"Tracker has stream {tracked} active but the channel is offline, ending it"
                )
                await self._tracker.end_stream()
            return

        open_stream = await self._streams.find_open_stream()
        if open_stream is None:
            return

        if tracked is None:
            LOGGER.warning(
                f"Tracker is inactive but stream {open_stream.id} is live, starting it"
            )
            await self._tracker.start_stream(open_stream.id)
        elif tracked != open_stream.id:
            LOGGER.warning(
                f"Tracker has stream {tracked} active but stream {open_stream.id} is open, "
                f"switching"
            )
            await self._tracker.end_stream()
            await self._tracker.start_stream(open_stream.id)
