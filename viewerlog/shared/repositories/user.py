"""Repository for users, name_history and tokens tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import asyncpg

from viewerlog.shared.cache import MISSING, AsyncTTLCache
from viewerlog.shared.models.viewer import ChatterIdentity, Token, TwitchUser

logger = logging.getLogger(__name__)

# Identities seen unchanged within a day skip the write entirely
_user_cache = AsyncTTLCache(maxsize=4096, ttl=86400)


def _is_unchanged(cached: TwitchUser, identity: ChatterIdentity) -> bool:
    if cached.login != identity.login:
        return False
    return identity.display_name is None or cached.display_name == identity.display_name


class UserRepository:
    """Resolve Twitch identities to local user ids."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def upsert_user(self, identity: ChatterIdentity) -> int:
        """Insert or refresh one user. Returns the local user id."""
        ids = await self.upsert_users([identity])
        return ids[identity.twitch_id]

    async def upsert_users(self, identities: Iterable[ChatterIdentity]) -> dict[str, int]:
        """Insert or refresh users in one round trip.

        Returns a mapping of Twitch id to local user id. Login or display name
        changes are recorded in ``name_history`` before the row is updated.
        """
        unique = {identity.twitch_id: identity for identity in identities}
        resolved: dict[str, int] = {}
        pending: list[ChatterIdentity] = []

        for identity in unique.values():
            cached = _user_cache.get(identity.twitch_id)
            if cached is not MISSING and _is_unchanged(cached, identity):
                resolved[identity.twitch_id] = cached.id
            else:
                pending.append(identity)

        if not pending:
            return resolved

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetch(
                    """
                    SELECT id, twitch_id, login, display_name
                    FROM users
                    WHERE twitch_id = ANY($1::text[])
                    """,
                    [identity.twitch_id for identity in pending],
                )
                by_twitch_id = {row["twitch_id"]: row for row in existing}

                history: list[tuple[int, str]] = []
                for identity in pending:
                    row = by_twitch_id.get(identity.twitch_id)
                    if row is None:
                        continue
                    if row["login"] != identity.login:
                        logger.info(f"Login change detected: {row['login']} -> {identity.login}")
                        history.append((row["id"], row["login"]))
                    if (
                        identity.display_name
                        and row["display_name"]
                        and row["display_name"] != identity.display_name
                    ):
                        history.append((row["id"], row["display_name"]))

                if history:
                    await conn.executemany(
                        "INSERT INTO name_history (user_id, previous_name) VALUES ($1, $2)",
                        history,
                    )

                rows = await conn.fetch(
                    """
                    INSERT INTO users (twitch_id, login, display_name, updated_at)
                    SELECT t.twitch_id, t.login, t.display_name, NOW()
                    FROM unnest($1::text[], $2::text[], $3::text[])
                        AS t(twitch_id, login, display_name)
                    ON CONFLICT (twitch_id) DO UPDATE SET
                        login        = EXCLUDED.login,
                        display_name = COALESCE(EXCLUDED.display_name, users.display_name),
                        updated_at   = NOW()
                    RETURNING id, twitch_id, login, display_name, updated_at
                    """,
                    [identity.twitch_id for identity in pending],
                    [identity.login for identity in pending],
                    [identity.display_name for identity in pending],
                )

        for row in rows:
            user = TwitchUser(**dict(row))
            _user_cache.set(user.twitch_id, user)
            resolved[user.twitch_id] = user.id

        return resolved


class TokenRepository:
    """OAuth tokens persisted for the bot and broadcaster accounts."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def list_tokens(self) -> list[Token]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT user_id, token, refresh, created_at, updated_at FROM tokens"
            )
            return [Token(**dict(row)) for row in rows]

    async def upsert_token(self, user_id: str, token: str, refresh: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO tokens (user_id, token, refresh)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id) DO UPDATE SET
                    token      = EXCLUDED.token,
                    refresh    = EXCLUDED.refresh,
                    updated_at = NOW()
                """,
                user_id,
                token,
                refresh,
            )
