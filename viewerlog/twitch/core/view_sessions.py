"""Open and close per-viewer view sessions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from viewerlog.shared.models.viewer import ChatterIdentity
from viewerlog.shared.repositories import UserRepository, ViewSessionRepository

LOGGER = logging.getLogger("ViewSessions")


@dataclass(frozen=True)
class ReconcileResult:
    present: int = 0
    opened: int = 0
    closed: int = 0


class ViewerSessionReconciler:
    """Keeps view_sessions in line with who is actually in chat.

    Discrete join/part signals adjust one viewer at a time; ``reconcile``
    takes a full chatter snapshot and converges the open sessions of a
    stream on it. Every operation is idempotent.
    """

    def __init__(self, users: UserRepository, sessions: ViewSessionRepository) -> None:
        self._users = users
        self._sessions = sessions

    async def on_user_join(self, identity: ChatterIdentity, stream_id: int) -> bool:
        """Open a session for a viewer. Returns False if one was already open."""
        user_id = await self._users.upsert_user(identity)
        return await self.open_session(user_id, stream_id, identity.login)

    async def on_user_part(self, identity: ChatterIdentity, stream_id: int) -> bool:
        """Close a viewer's open session. Returns False if there was none."""
        user_id = await self._users.upsert_user(identity)
        return await self.close_session(user_id, stream_id, identity.login)

    async def open_session(self, user_id: int, stream_id: int, login: str = "") -> bool:
        """Open a session for an already resolved user."""
        session_id = await self._sessions.create_session(user_id, stream_id, _now())
        if session_id is None:
            LOGGER.debug(f"{login or user_id} already has an open session on stream {stream_id}")
            return False

        LOGGER.debug(f"Session {session_id} opened for {login or user_id} on stream {stream_id}")
        return True

    async def close_session(self, user_id: int, stream_id: int, login: str = "") -> bool:
        """Close the open session of an already resolved user."""
        session = await self._sessions.find_open_session(user_id, stream_id)
        if session is None:
            LOGGER.debug(f"No open session for {login or user_id} on stream {stream_id}")
            return False

        await self._sessions.close_session(session.id, _now())
        LOGGER.debug(f"Session {session.id} closed for {login or user_id}")
        return True

    async def reconcile(
        self, present: Iterable[ChatterIdentity], stream_id: int
    ) -> ReconcileResult:
        present = list(present)
        now = _now()

        user_ids = await self._users.upsert_users(present) if present else {}
        present_ids = set(user_ids.values())

        departed = await self._sessions.list_open_sessions(stream_id, excluding_user_ids=present_ids)
        closed = await self._sessions.close_sessions([s.id for s in departed], now)
        opened = await self._sessions.create_sessions(present_ids, stream_id, now)

        result = ReconcileResult(present=len(present_ids), opened=opened, closed=closed)
        if opened or closed:
            LOGGER.info(
                f"Reconciled stream {stream_id}: {result.present} present, "
                f"{opened} opened, {closed} closed"
            )
        return result

    async def close_all(self, stream_id: int) -> int:
        """Close every open session of a stream. Returns how many were closed."""
        closed = await self._sessions.close_all_for_stream(stream_id, _now())
        LOGGER.info(f"Closed {closed} open view sessions for stream {stream_id}")
        return closed

    async def close_orphaned(self) -> int:
        """Close open sessions left on streams that have already ended."""
        closed = await self._sessions.close_orphaned_sessions()
        if closed:
            LOGGER.warning(f"Closed {closed} view sessions left open on ended streams")
        return closed


def _now() -> datetime:
    return datetime.now(timezone.utc)
