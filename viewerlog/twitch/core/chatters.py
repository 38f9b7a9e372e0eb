"""Periodic chatter snapshots fed into the session reconciler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from viewerlog.twitch.core.config import DEFAULT_POLL_INTERVAL
from viewerlog.twitch.core.periodic import PeriodicTask

if TYPE_CHECKING:
    from viewerlog.twitch.core.ingress import TwitchIngress
    from viewerlog.twitch.core.view_sessions import ReconcileResult, ViewerSessionReconciler

LOGGER = logging.getLogger("ChatterPoller")


class ChatterPoller:
    def __init__(
        self,
        ingress: TwitchIngress,
        reconciler: ViewerSessionReconciler,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._ingress = ingress
        self._reconciler = reconciler
        self.interval = interval
        self._task: PeriodicTask | None = None
        self.stream_id: int | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._task.is_running

    def start(self, stream_id: int) -> None:
        if self.is_running:
            LOGGER.warning(f"Chatter polling already running for stream {self.stream_id}")
            return

        self.stream_id = stream_id
        self._task = PeriodicTask(
            f"chatter-poller-{stream_id}", self.interval, lambda: self.run_once(stream_id)
        )
        self._task.start()
        LOGGER.info(f"Chatter polling started for stream {stream_id} every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return

        task, self._task = self._task, None
        await task.stop()
        LOGGER.info(f"Chatter polling stopped for stream {self.stream_id}")
        self.stream_id = None

    async def run_once(self, stream_id: int) -> ReconcileResult:
        chatters = await self._ingress.get_present_chatters()
        LOGGER.debug(f"Chatter snapshot for stream {stream_id}: {len(chatters)} present")
        return await self._reconciler.reconcile(chatters, stream_id)
