"""Chat messages, redemptions and bans gated on the active stream."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from datetime import datetime

from viewerlog.shared.models.activity import ChannelReward, ChatBadge, ChatEmote
from viewerlog.shared.models.viewer import ChatterIdentity
from viewerlog.shared.repositories import ActivityRepository, UserRepository
from viewerlog.twitch.core.stream_state import StreamStateTracker
from viewerlog.twitch.core.view_sessions import ViewerSessionReconciler

LOGGER = logging.getLogger("ChatActivity")


class ChatActivityService:
    """Every handler returns False without touching storage when no stream is live.

    The stream can end while a handler is awaiting storage, so the gate is
    checked again after each await that precedes a write. A session opened
    just as the stream ended is closed again.
    """

    def __init__(
        self,
        tracker: StreamStateTracker,
        users: UserRepository,
        activity: ActivityRepository,
        reconciler: ViewerSessionReconciler,
    ) -> None:
        self._tracker = tracker
        self._users = users
        self._activity = activity
        self._reconciler = reconciler

    def _active_stream(self, what: str) -> int | None:
        stream_id = self._tracker.get_current_stream_id()
        if stream_id is None:
            LOGGER.debug(f"No active stream, ignoring {what}")
        return stream_id

    def _still_active(self, stream_id: int, what: str) -> bool:
        current = self._tracker.get_current_stream_id()
        if current != stream_id:
            LOGGER.debug(f"Stream {stream_id} ended while handling {what}, dropping it")
            return False
        return True

    async def record_chat_message(
        self,
        identity: ChatterIdentity,
        message_id: str,
        text: str,
        sent_at: datetime,
        emotes: Sequence[ChatEmote] = (),
        badges: Collection[ChatBadge] | None = None,
    ) -> bool:
        """Store a message and mark its sender present.

        ``badges=None`` leaves stored badges alone; an empty collection clears them.
        """
        what = f"message {message_id} from {identity.login}"
        stream_id = self._active_stream(what)
        if stream_id is None:
            return False

        user_id = await self._users.upsert_user(identity)
        if not self._still_active(stream_id, what):
            return False

        await self._activity.record_message(user_id, stream_id, message_id, text, sent_at)
        await self._activity.record_emote_usage(user_id, emotes)
        if badges is not None:
            await self._activity.replace_user_badges(user_id, badges)

        # Chatting proves presence
        if not self._still_active(stream_id, what):
            return True
        await self._reconciler.open_session(user_id, stream_id, identity.login)
        if not self._still_active(stream_id, what):
            await self._reconciler.close_session(user_id, stream_id, identity.login)
        return True

    async def record_redemption(
        self,
        identity: ChatterIdentity,
        redemption_id: str,
        reward: ChannelReward,
        user_input: str | None,
        redeemed_at: datetime,
    ) -> bool:
        what = f"redemption {redemption_id} from {identity.login}"
        stream_id = self._active_stream(what)
        if stream_id is None:
            return False

        user_id = await self._users.upsert_user(identity)
        await self._activity.ensure_reward(reward)
        if not self._still_active(stream_id, what):
            return False

        await self._activity.record_redemption(
            redemption_id, user_id, stream_id, reward.twitch_id, redeemed_at, user_input=user_input
        )
        LOGGER.info(f"{identity.login} redeemed '{reward.title}' ({reward.cost} points)")
        return True

    async def record_user_removed(self, identity: ChatterIdentity) -> bool:
        what = f"removal of {identity.login}"
        stream_id = self._active_stream(what)
        if stream_id is None:
            return False

        user_id = await self._users.upsert_user(identity)
        if not self._still_active(stream_id, what):
            return False

        return await self._reconciler.close_session(user_id, stream_id, identity.login)
