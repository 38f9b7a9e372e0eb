"""Twitch bot: wiring of the tracking services and token persistence."""

from __future__ import annotations

import asyncio
import logging

import asyncpg
import twitchio
from twitchio import eventsub
from twitchio.ext import commands

from viewerlog.shared.repositories import (
    ActivityRepository,
    StreamRepository,
    TokenRepository,
    UserRepository,
    ViewerProfileRepository,
    ViewSessionRepository,
)
from viewerlog.twitch.core.activity import ChatActivityService
from viewerlog.twitch.core.analytics import ViewerAnalytics
from viewerlog.twitch.core.chatters import ChatterPoller
from viewerlog.twitch.core.config import TwitchBotSettings
from viewerlog.twitch.core.drift import DriftCorrectionPoller
from viewerlog.twitch.core.ingress import TwitchIngress
from viewerlog.twitch.core.lifecycle import StreamLifecycle
from viewerlog.twitch.core.stream_state import StreamStateTracker
from viewerlog.twitch.core.view_sessions import ViewerSessionReconciler

LOGGER: logging.Logger = logging.getLogger("Bot")

COMPONENTS = ("viewerlog.twitch.components.stream_tracking",)


class Bot(commands.AutoBot):
    def __init__(
        self,
        *,
        settings: TwitchBotSettings,
        pool: asyncpg.Pool,
        subs: list[eventsub.SubscriptionPayload],
    ) -> None:
        self.settings = settings
        self.pool = pool
        self.broadcaster_id = settings.broadcaster_id

        self.tokens = TokenRepository(pool)
        users = UserRepository(pool)
        sessions = ViewSessionRepository(pool)
        streams = StreamRepository(pool)
        activity = ActivityRepository(pool)

        self.ingress = TwitchIngress(self, settings.broadcaster_id, settings.bot_id)
        self.reconciler = ViewerSessionReconciler(users, sessions)
        self.chatter_poller = ChatterPoller(
            self.ingress, self.reconciler, settings.chatter_poll_interval
        )
        self.tracker = StreamStateTracker(self.reconciler, self.chatter_poller)
        self.analytics = ViewerAnalytics(sessions, activity, ViewerProfileRepository(pool))
        self.lifecycle = StreamLifecycle(streams, self.reconciler, self.tracker, self.analytics)
        self.activity = ChatActivityService(self.tracker, users, activity, self.reconciler)
        self.drift_poller = DriftCorrectionPoller(
            self.ingress, self.lifecycle, streams, self.tracker, settings.stream_poll_interval
        )

        init_kwargs: dict = dict(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            bot_id=settings.bot_id,
            owner_id=settings.broadcaster_id,
            prefix="!",
            subscriptions=subs,
            force_subscribe=True,
        )
        if settings.conduit_id:
            init_kwargs["conduit_id"] = settings.conduit_id

        super().__init__(**init_kwargs)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup_hook(self) -> None:
        for module_name in COMPONENTS:
            await self.load_module(module_name)

        # First tick recovers a stream that was live before a restart
        self.drift_poller.start()

    async def close(self, **options) -> None:
        await self.drift_poller.stop()
        await self.chatter_poller.stop()
        await super().close(**options)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def event_ready(self) -> None:
        LOGGER.info(f"Successfully logged in as: {self.bot_id}")

    async def event_eventsub_ready(self) -> None:
        LOGGER.info("EventSub is ready to receive notifications")

    async def event_eventsub_error(self, error: Exception) -> None:
        LOGGER.error(f"EventSub error: {error}")

    async def event_oauth_authorized(
        self, payload: twitchio.authentication.UserTokenPayload
    ) -> None:
        await self.add_token(payload.access_token, payload.refresh_token)

        if payload.user_id == self.bot_id:
            LOGGER.info("Bot account authorized")
        elif payload.user_id == self.broadcaster_id:
            LOGGER.info("Broadcaster account authorized")

    # ------------------------------------------------------------------
    # Token management
    # ------------------------------------------------------------------

    async def add_token(
        self, token: str, refresh: str
    ) -> twitchio.authentication.ValidateTokenPayload:
        resp: twitchio.authentication.ValidateTokenPayload = await super().add_token(token, refresh)

        if resp.user_id:
            for attempt in range(1, 4):
                try:
                    await self.tokens.upsert_token(resp.user_id, token, refresh)
                    break
                except Exception as e:
                    if attempt < 3:
                        LOGGER.warning(f"save_token attempt {attempt}/3 failed: {e}")
                        await asyncio.sleep(2)
                    else:
                        LOGGER.error(f"save_token failed after 3 attempts: {e}")

        login = resp.login or "unknown"
        LOGGER.info(f"Added token to database: {login} ({resp.user_id})")
        return resp

    async def load_tokens(self, path: str | None = None) -> None:
        tokens = await self.tokens.list_tokens()

        for tok in tokens:
            try:
                await self.add_token(tok.token, tok.refresh)
            except twitchio.exceptions.InvalidTokenException as e:
                LOGGER.warning(
                    f"Invalid token for user_id {tok.user_id}, skipping. "
                    f"User needs to re-authenticate: {e}"
                )

    async def save_tokens(self, path: str | None = None) -> None:
        # Tokens are written to the database as they are added
        return None
