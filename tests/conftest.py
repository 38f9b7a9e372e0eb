"""Shared fixtures: in-memory stand-ins for the asyncpg repositories and Twitch."""

from __future__ import annotations

import asyncio
import itertools
from collections import Counter
from collections.abc import Collection, Iterable, Sequence
from datetime import datetime, timezone

import pytest

from viewerlog.shared.models.activity import ChannelReward, ChatBadge, ChatEmote
from viewerlog.shared.models.stream import LiveStatus, Stream, StreamMetadata, StreamSegment
from viewerlog.shared.models.viewer import (
    ChatterIdentity,
    TopEmote,
    TopReward,
    ViewerProfile,
    ViewSession,
)
from viewerlog.twitch.core.analytics import ViewerAnalytics
from viewerlog.twitch.core.drift import DriftCorrectionPoller
from viewerlog.twitch.core.lifecycle import StreamLifecycle
from viewerlog.twitch.core.stream_state import StreamStateTracker
from viewerlog.twitch.core.view_sessions import ViewerSessionReconciler


def identity(twitch_id: str, login: str | None = None) -> ChatterIdentity:
    return ChatterIdentity(twitch_id=twitch_id, login=login or f"user{twitch_id}")


def metadata(twitch_stream_id: str = "tw-1", title: str = "Just Chatting") -> StreamMetadata:
    return StreamMetadata(
        twitch_stream_id=twitch_stream_id,
        started_at=datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc),
        title=title,
        game_id="509658",
        game_name="Just Chatting",
    )


# ---------------------------------------------------------------------------
# Fake repositories
# ---------------------------------------------------------------------------


class FakeUserRepository:
    def __init__(self) -> None:
        self.ids: dict[str, int] = {}
        self.logins: dict[str, str] = {}
        self._seq = itertools.count(1)
        # Set gate to hold lookups until released; entered fires once one is held
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()
        self.upsert_calls = 0

    async def upsert_user(self, identity: ChatterIdentity) -> int:
        return (await self.upsert_users([identity]))[identity.twitch_id]

    async def upsert_users(self, identities: Iterable[ChatterIdentity]) -> dict[str, int]:
        self.upsert_calls += 1
        if self.gate is not None:
            self.entered.set()
            await self.gate.wait()
        resolved = {}
        for ident in identities:
            if ident.twitch_id not in self.ids:
                self.ids[ident.twitch_id] = next(self._seq)
            self.logins[ident.twitch_id] = ident.login
            resolved[ident.twitch_id] = self.ids[ident.twitch_id]
        return resolved


class FakeViewSessionRepository:
    """Mirrors the partial unique index: one open session per (user, stream)."""

    def __init__(self, streams: FakeStreamRepository | None = None) -> None:
        self.rows: list[ViewSession] = []
        self._seq = itertools.count(1)
        self.fail_close_all = False
        self.streams = streams
        self.create_gate: asyncio.Event | None = None
        self.create_entered = asyncio.Event()

    def open_for(self, stream_id: int) -> list[ViewSession]:
        return [s for s in self.rows if s.stream_id == stream_id and s.session_end is None]

    async def find_open_session(self, user_id: int, stream_id: int) -> ViewSession | None:
        for s in self.open_for(stream_id):
            if s.user_id == user_id:
                return s
        return None

    async def create_session(self, user_id: int, stream_id: int, started_at: datetime) -> int | None:
        if self.create_gate is not None:
            self.create_entered.set()
            await self.create_gate.wait()
        if await self.find_open_session(user_id, stream_id):
            return None
        session = ViewSession(next(self._seq), user_id, stream_id, started_at)
        self.rows.append(session)
        return session.id

    async def create_sessions(
        self, user_ids: Collection[int], stream_id: int, started_at: datetime
    ) -> int:
        created = 0
        for user_id in user_ids:
            if await self.create_session(user_id, stream_id, started_at) is not None:
                created += 1
        return created

    async def close_session(self, session_id: int, ended_at: datetime) -> None:
        for s in self.rows:
            if s.id == session_id and s.session_end is None:
                s.session_end = ended_at

    async def close_sessions(self, session_ids: Collection[int], ended_at: datetime) -> int:
        closed = 0
        for s in self.rows:
            if s.id in session_ids and s.session_end is None:
                s.session_end = ended_at
                closed += 1
        return closed

    async def list_open_sessions(
        self, stream_id: int, excluding_user_ids: Collection[int] | None = None
    ) -> list[ViewSession]:
        excluded = set(excluding_user_ids or ())
        return [s for s in self.open_for(stream_id) if s.user_id not in excluded]

    async def close_all_for_stream(self, stream_id: int, ended_at: datetime) -> int:
        if self.fail_close_all:
            raise ConnectionError("database unavailable")
        open_sessions = self.open_for(stream_id)
        for s in open_sessions:
            s.session_end = ended_at
        return len(open_sessions)

    async def close_orphaned_sessions(self) -> int:
        ended = {s.id: s.ended_at for s in self.streams.rows if s.ended_at} if self.streams else {}
        closed = 0
        for s in self.rows:
            if s.session_end is None and s.stream_id in ended:
                s.session_end = max(s.session_start, ended[s.stream_id])
                closed += 1
        return closed

    async def watch_seconds_by_game(self, user_id: int) -> list[tuple[str, str | None, float]]:
        per_game: dict[str, tuple[str | None, float]] = {}
        segments = self.streams.segments if self.streams else []
        for s in self.rows:
            if s.user_id != user_id or s.session_end is None:
                continue
            for seg in segments:
                if seg.stream_id != s.stream_id or seg.game_id is None:
                    continue
                seg_end = seg.ended_at or datetime.now(timezone.utc)
                overlap = (
                    min(s.session_end, seg_end) - max(s.session_start, seg.started_at)
                ).total_seconds()
                if overlap > 0:
                    _, seconds = per_game.get(seg.game_id, (None, 0.0))
                    per_game[seg.game_id] = (seg.game_name, seconds + overlap)
        return [(game_id, name, seconds) for game_id, (name, seconds) in per_game.items()]

    async def list_closed_sessions_for_user(self, user_id: int) -> list[ViewSession]:
        return [s for s in self.rows if s.user_id == user_id and s.session_end is not None]

    async def list_user_ids_for_stream(self, stream_id: int) -> set[int]:
        return {s.user_id for s in self.rows if s.stream_id == stream_id}


class FakeStreamRepository:
    def __init__(self) -> None:
        self.rows: list[Stream] = []
        self.segments: list[StreamSegment] = []
        self._seq = itertools.count(1)
        self._segment_seq = itertools.count(1)

    def add_open(self, twitch_stream_id: str = "tw-1") -> Stream:
        stream = Stream(
            id=next(self._seq),
            started_at=datetime.now(timezone.utc),
            twitch_stream_id=twitch_stream_id,
        )
        self.rows.append(stream)
        return stream

    async def find_open_stream(self) -> Stream | None:
        open_rows = [s for s in self.rows if s.ended_at is None]
        return open_rows[-1] if open_rows else None

    async def list_open_streams(self) -> list[Stream]:
        return [s for s in self.rows if s.ended_at is None]

    async def create_stream(self, metadata: StreamMetadata) -> int:
        stream = Stream(
            id=next(self._seq),
            started_at=metadata.started_at,
            twitch_stream_id=metadata.twitch_stream_id,
            title=metadata.title,
        )
        self.rows.append(stream)
        await self.start_segment(
            stream.id, metadata.started_at, metadata.title, metadata.game_id, metadata.game_name
        )
        return stream.id

    async def close_stream(self, stream_id: int, ended_at: datetime) -> None:
        for s in self.rows:
            if s.id == stream_id and s.ended_at is None:
                s.ended_at = ended_at
        for seg in self.segments:
            if seg.stream_id == stream_id and seg.ended_at is None:
                seg.ended_at = ended_at

    async def get_current_segment(self, stream_id: int) -> StreamSegment | None:
        for seg in reversed(self.segments):
            if seg.stream_id == stream_id and seg.ended_at is None:
                return seg
        return None

    async def start_segment(
        self,
        stream_id: int,
        started_at: datetime,
        title: str | None = None,
        game_id: str | None = None,
        game_name: str | None = None,
    ) -> int:
        for seg in self.segments:
            if seg.stream_id == stream_id and seg.ended_at is None:
                seg.ended_at = started_at
        segment = StreamSegment(
            next(self._segment_seq), stream_id, started_at, None, title, game_id, game_name
        )
        self.segments.append(segment)
        return segment.id


class FakeActivityRepository:
    def __init__(self) -> None:
        self.messages: list[tuple[int, int, str, str]] = []
        self.rewards: dict[str, ChannelReward] = {}
        self.redemptions: list[tuple[str, int, int, str, str | None]] = []
        self.emote_names: dict[str, str] = {}
        self.emote_usage: Counter[tuple[int, str]] = Counter()
        self.badges: dict[int, frozenset[ChatBadge]] = {}

    async def record_message(
        self, user_id: int, stream_id: int, twitch_message_id: str, content: str, sent_at: datetime
    ) -> None:
        self.messages.append((user_id, stream_id, twitch_message_id, content))

    async def ensure_reward(self, reward: ChannelReward) -> None:
        self.rewards[reward.twitch_id] = reward

    async def record_redemption(
        self,
        twitch_redemption_id: str,
        user_id: int,
        stream_id: int,
        reward_id: str,
        redeemed_at: datetime,
        user_input: str | None = None,
    ) -> None:
        self.redemptions.append((twitch_redemption_id, user_id, stream_id, reward_id, user_input))

    async def record_emote_usage(self, user_id: int, emotes: Sequence[ChatEmote]) -> int:
        for emote in emotes:
            self.emote_names[emote.twitch_id] = emote.name
            self.emote_usage[(user_id, emote.twitch_id)] += 1
        return len(emotes)

    async def replace_user_badges(self, user_id: int, badges: Collection[ChatBadge]) -> bool:
        current = frozenset(badges)
        if self.badges.get(user_id) == current:
            return False
        self.badges[user_id] = current
        return True

    async def list_user_ids_for_stream(self, stream_id: int) -> set[int]:
        ids = {m[0] for m in self.messages if m[1] == stream_id}
        ids |= {r[1] for r in self.redemptions if r[2] == stream_id}
        return ids

    async def count_messages(self, user_id: int) -> int:
        return sum(1 for m in self.messages if m[0] == user_id)

    async def count_redemptions(self, user_id: int) -> int:
        return sum(1 for r in self.redemptions if r[1] == user_id)

    async def sum_points_spent(self, user_id: int) -> int:
        return sum(self.rewards[r[3]].cost for r in self.redemptions if r[1] == user_id)

    async def top_emotes(self, user_id: int, limit: int = 3) -> list[TopEmote]:
        rows = [
            TopEmote(emote_id, self.emote_names[emote_id], count)
            for (uid, emote_id), count in self.emote_usage.items()
            if uid == user_id and count > 0
        ]
        rows.sort(key=lambda e: (-e.usage_count, e.name))
        return rows[:limit]

    async def top_rewards(self, user_id: int, limit: int = 3) -> list[TopReward]:
        counts = Counter(r[3] for r in self.redemptions if r[1] == user_id)
        rows = [
            TopReward(reward_id, self.rewards[reward_id].title, n, n * self.rewards[reward_id].cost)
            for reward_id, n in counts.items()
        ]
        rows.sort(key=lambda r: (-r.redemption_count, r.title))
        return rows[:limit]


class FakeViewerProfileRepository:
    def __init__(self) -> None:
        self.profiles: dict[int, ViewerProfile] = {}

    async def upsert_profile(self, profile: ViewerProfile) -> None:
        self.profiles[profile.user_id] = profile


# ---------------------------------------------------------------------------
# Fake Twitch side
# ---------------------------------------------------------------------------


class FakeIngress:
    def __init__(self) -> None:
        self.status = LiveStatus.offline()
        self.chatters: list[ChatterIdentity] = []
        self.error: Exception | None = None

    def go_live(self, twitch_stream_id: str = "tw-1") -> None:
        self.status = LiveStatus(online=True, metadata=metadata(twitch_stream_id))

    def go_offline(self) -> None:
        self.status = LiveStatus.offline()

    async def get_live_status(self) -> LiveStatus:
        if self.error is not None:
            raise self.error
        return self.status

    async def get_present_chatters(self) -> list[ChatterIdentity]:
        return list(self.chatters)


class FakeChatterPoller:
    def __init__(self) -> None:
        self.started: list[int] = []
        self.stopped = 0
        self.stream_id: int | None = None

    @property
    def is_running(self) -> bool:
        return self.stream_id is not None

    def start(self, stream_id: int) -> None:
        self.started.append(stream_id)
        self.stream_id = stream_id

    async def stop(self) -> None:
        self.stopped += 1
        self.stream_id = None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def sessions(streams) -> FakeViewSessionRepository:
    return FakeViewSessionRepository(streams)


@pytest.fixture
def streams() -> FakeStreamRepository:
    return FakeStreamRepository()


@pytest.fixture
def activity() -> FakeActivityRepository:
    return FakeActivityRepository()


@pytest.fixture
def profiles() -> FakeViewerProfileRepository:
    return FakeViewerProfileRepository()


@pytest.fixture
def ingress() -> FakeIngress:
    return FakeIngress()


@pytest.fixture
def chatter_poller() -> FakeChatterPoller:
    return FakeChatterPoller()


@pytest.fixture
def reconciler(users, sessions) -> ViewerSessionReconciler:
    return ViewerSessionReconciler(users, sessions)  # type: ignore[arg-type]


@pytest.fixture
def tracker(reconciler, chatter_poller) -> StreamStateTracker:
    return StreamStateTracker(reconciler, chatter_poller)  # type: ignore[arg-type]


@pytest.fixture
def analytics(sessions, activity, profiles) -> ViewerAnalytics:
    return ViewerAnalytics(sessions, activity, profiles)  # type: ignore[arg-type]


@pytest.fixture
def lifecycle(streams, reconciler, tracker, analytics) -> StreamLifecycle:
    return StreamLifecycle(streams, reconciler, tracker, analytics)  # type: ignore[arg-type]


@pytest.fixture
def drift_poller(ingress, lifecycle, streams, tracker) -> DriftCorrectionPoller:
    return DriftCorrectionPoller(ingress, lifecycle, streams, tracker, interval=3600)  # type: ignore[arg-type]
