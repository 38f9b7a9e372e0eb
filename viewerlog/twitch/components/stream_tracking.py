import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import twitchio
from twitchio.ext import commands

from viewerlog.shared.models.activity import ChannelReward, ChatBadge, ChatEmote
from viewerlog.shared.models.viewer import ChatterIdentity

if TYPE_CHECKING:
    from viewerlog.twitch.core.bot import Bot


LOGGER: logging.Logger = logging.getLogger("StreamTracking")


def identity_from(user: twitchio.PartialUser) -> ChatterIdentity:
    return ChatterIdentity(
        twitch_id=str(user.id),
        login=user.name or "",
        display_name=user.display_name,
    )


def emotes_from(message: twitchio.ChatMessage) -> list[ChatEmote]:
    """Twitch emotes in message order, one entry per occurrence."""
    return [
        ChatEmote(twitch_id=str(fragment.emote.id), name=fragment.text)
        for fragment in message.fragments
        if fragment.type == "emote" and fragment.emote is not None
    ]


def badges_from(message: twitchio.ChatMessage) -> list[ChatBadge]:
    return [ChatBadge(set_id=badge.set_id, version=str(badge.id)) for badge in message.badges]


class StreamTrackingComponent(commands.Component):
    """EventSub listeners feeding the stream lifecycle and chat activity."""

    def __init__(self, bot: "Bot") -> None:
        self.bot = bot

    def _is_tracked(self, broadcaster: twitchio.PartialUser | None) -> bool:
        if broadcaster is None or broadcaster.id != self.bot.broadcaster_id:
            LOGGER.debug(f"[BLOCK] Ignoring event from untracked channel: {broadcaster}")
            return False
        return True

    @commands.Component.listener()
    async def event_stream_online(self, payload: twitchio.StreamOnline) -> None:
        if not self._is_tracked(payload.broadcaster):
            return

        try:
            metadata = await self.bot.ingress.describe_stream(
                str(payload.id), payload.started_at or datetime.now(timezone.utc)
            )
            stream_id = await self.bot.lifecycle.handle_online(metadata)
            LOGGER.info(f"[{payload.broadcaster.name}] Online: stream {stream_id}")
        except Exception:
            LOGGER.exception(f"stream.online failed for Twitch stream {payload.id}")

    @commands.Component.listener()
    async def event_stream_offline(self, payload: twitchio.StreamOffline) -> None:
        if not self._is_tracked(payload.broadcaster):
            return

        try:
            stream_id = await self.bot.lifecycle.handle_offline()
            LOGGER.info(f"[{payload.broadcaster.name}] Offline: stream {stream_id}")
        except Exception:
            LOGGER.exception("stream.offline failed")

    @commands.Component.listener()
    async def event_channel_update(self, payload: twitchio.ChannelUpdate) -> None:
        if not self._is_tracked(payload.broadcaster):
            return

        try:
            await self.bot.lifecycle.handle_channel_update(
                payload.title, payload.category_id or None, payload.category_name or None
            )
        except Exception:
            LOGGER.exception(f"channel.update failed: {payload.title}")

    @commands.Component.listener()
    async def event_message(self, payload: twitchio.ChatMessage) -> None:
        if not self._is_tracked(payload.broadcaster):
            return
        if payload.chatter.id == self.bot.bot_id:
            return

        try:
            await self.bot.activity.record_chat_message(
                identity_from(payload.chatter),
                str(payload.id),
                payload.text,
                datetime.now(timezone.utc),
                emotes=emotes_from(payload),
                badges=badges_from(payload),
            )
        except Exception:
            LOGGER.exception(f"chat message {payload.id} from {payload.chatter.name} failed")

    @commands.Component.listener()
    async def event_custom_redemption_add(
        self, payload: twitchio.ChannelPointsRedemptionAdd
    ) -> None:
        if not self._is_tracked(payload.broadcaster):
            return

        reward = ChannelReward(
            twitch_id=str(payload.reward.id),
            title=payload.reward.title,
            cost=payload.reward.cost,
        )
        try:
            await self.bot.activity.record_redemption(
                identity_from(payload.user),
                str(payload.id),
                reward,
                payload.user_input or None,
                payload.redeemed_at or datetime.now(timezone.utc),
            )
        except Exception:
            LOGGER.exception(f"redemption {payload.id} of '{reward.title}' failed")

    @commands.Component.listener()
    async def event_ban(self, payload: twitchio.ChannelBan) -> None:
        if not self._is_tracked(payload.broadcaster):
            return

        try:
            await self.bot.activity.record_user_removed(identity_from(payload.user))
        except Exception:
            LOGGER.exception(f"ban of {payload.user.name} failed")


async def setup(bot: commands.Bot) -> None:
    component = StreamTrackingComponent(bot)  # type: ignore[arg-type]
    await bot.add_component(component)
    LOGGER.info(
        "StreamTrackingComponent loaded with listeners: event_stream_online, "
        "event_stream_offline, event_channel_update, event_message, "
        "event_custom_redemption_add, event_ban"
    )


async def teardown(bot: commands.Bot) -> None: ...
