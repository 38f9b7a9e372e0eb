"""Unit tests for chat, redemption and ban handling."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from tests.conftest import identity
from viewerlog.shared.models.activity import ChannelReward, ChatBadge, ChatEmote
from viewerlog.twitch.core.activity import ChatActivityService

NOW = datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)
HYDRATE = ChannelReward(twitch_id="reward-1", title="Hydrate", cost=500)


@pytest.fixture
def service(tracker, users, activity, reconciler) -> ChatActivityService:
    return ChatActivityService(tracker, users, activity, reconciler)  # type: ignore[arg-type]


@pytest.mark.asyncio
class TestGate:
    async def test_message_discarded_without_stream(self, service, activity, sessions) -> None:
        assert await service.record_chat_message(identity("1"), "m1", "hi", NOW) is False

        assert activity.messages == []
        assert sessions.rows == []

    async def test_redemption_discarded_without_stream(self, service, activity) -> None:
        result = await service.record_redemption(identity("1"), "r1", HYDRATE, None, NOW)

        assert result is False
        assert activity.redemptions == []
        assert activity.rewards == {}

    async def test_removal_discarded_without_stream(self, service) -> None:
        assert await service.record_user_removed(identity("1")) is False


@pytest.mark.asyncio
class TestChatMessage:
    async def test_stores_message_and_opens_session(
        self, service, tracker, activity, sessions, users
    ) -> None:
        await tracker.start_stream(7)

        assert await service.record_chat_message(identity("1"), "m1", "hello", NOW) is True

        assert activity.messages == [(users.ids["1"], 7, "m1", "hello")]
        assert len(sessions.open_for(7)) == 1

    async def test_repeat_messages_keep_one_session(self, service, tracker, sessions) -> None:
        await tracker.start_stream(7)

        await service.record_chat_message(identity("1"), "m1", "a", NOW)
        await service.record_chat_message(identity("1"), "m2", "b", NOW)

        assert len(sessions.open_for(7)) == 1

    async def test_user_resolved_once_per_message(self, service, tracker, users) -> None:
        await tracker.start_stream(7)

        await service.record_chat_message(identity("1"), "m1", "hi", NOW)

        assert users.upsert_calls == 1

    async def test_counts_each_emote_occurrence(self, service, tracker, activity, users) -> None:
        await tracker.start_stream(7)
        kappa = ChatEmote("25", "Kappa")

        await service.record_chat_message(
            identity("1"),
            "m1",
            "Kappa Kappa PogChamp",
            NOW,
            emotes=[kappa, kappa, ChatEmote("88", "PogChamp")],
        )

        user_id = users.ids["1"]
        assert activity.emote_usage[(user_id, "25")] == 2
        assert activity.emote_usage[(user_id, "88")] == 1

    async def test_badges_replaced_from_latest_message(
        self, service, tracker, activity, users
    ) -> None:
        await tracker.start_stream(7)
        sub = ChatBadge("subscriber", "3012")

        await service.record_chat_message(
            identity("1"), "m1", "a", NOW, badges=[sub, ChatBadge("vip", "1")]
        )
        await service.record_chat_message(identity("1"), "m2", "b", NOW, badges=[sub])

        assert activity.badges[users.ids["1"]] == {sub}

    async def test_unknown_badges_left_alone(self, service, tracker, activity, users) -> None:
        await tracker.start_stream(7)
        await service.record_chat_message(
            identity("1"), "m1", "a", NOW, badges=[ChatBadge("vip", "1")]
        )

        await service.record_chat_message(identity("1"), "m2", "b", NOW)

        assert activity.badges[users.ids["1"]] == {ChatBadge("vip", "1")}


@pytest.mark.asyncio
class TestRedemption:
    async def test_stores_reward_and_redemption(
        self, service, tracker, activity, users
    ) -> None:
        await tracker.start_stream(7)

        await service.record_redemption(identity("1"), "r1", HYDRATE, "sip", NOW)

        assert activity.rewards == {"reward-1": HYDRATE}
        assert activity.redemptions == [("r1", users.ids["1"], 7, "reward-1", "sip")]


@pytest.mark.asyncio
class TestUserRemoved:
    async def test_closes_open_session(self, service, tracker, reconciler, sessions) -> None:
        await tracker.start_stream(7)
        await reconciler.on_user_join(identity("1"), 7)

        assert await service.record_user_removed(identity("1")) is True
        assert sessions.open_for(7) == []

    async def test_without_session_is_noop(self, service, tracker) -> None:
        await tracker.start_stream(7)

        assert await service.record_user_removed(identity("1")) is False


# ---------------------------------------------------------------------------
# Stream ending while an event is in flight
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestStreamEndsMidEvent:
    async def test_message_dropped_when_stream_ends_during_user_lookup(
        self, service, tracker, users, activity, sessions
    ) -> None:
        await tracker.start_stream(7)
        users.gate = asyncio.Event()
        handling = asyncio.create_task(
            service.record_chat_message(identity("1"), "m1", "hi", NOW)
        )
        await users.entered.wait()

        await tracker.end_stream()
        users.gate.set()

        assert await handling is False
        assert activity.messages == []
        assert sessions.open_for(7) == []

    async def test_session_opened_as_stream_ends_is_closed_again(
        self, service, tracker, sessions
    ) -> None:
        await tracker.start_stream(7)
        sessions.create_gate = asyncio.Event()
        handling = asyncio.create_task(
            service.record_chat_message(identity("1"), "m1", "hi", NOW)
        )
        await sessions.create_entered.wait()

        await tracker.end_stream()
        sessions.create_gate.set()
        await handling

        assert sessions.open_for(7) == []
        assert len(sessions.rows) == 1
        assert sessions.rows[0].session_end is not None

    async def test_redemption_dropped_when_stream_ends_during_user_lookup(
        self, service, tracker, users, activity
    ) -> None:
        await tracker.start_stream(7)
        users.gate = asyncio.Event()
        handling = asyncio.create_task(
            service.record_redemption(identity("1"), "r1", HYDRATE, None, NOW)
        )
        await users.entered.wait()

        await tracker.end_stream()
        users.gate.set()

        assert await handling is False
        assert activity.redemptions == []
