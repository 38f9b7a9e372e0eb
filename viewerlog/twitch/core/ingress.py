"""Pull-side Twitch access: live status and chatter snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import twitchio

from viewerlog.shared.models.stream import LiveStatus, StreamMetadata
from viewerlog.shared.models.viewer import ChatterIdentity

LOGGER = logging.getLogger("Ingress")

# Helix caps one chatters page at 1000 entries
CHATTERS_PAGE_SIZE = 1000


def stream_metadata(stream: twitchio.Stream) -> StreamMetadata:
    thumbnail = getattr(stream, "thumbnail", None)
    return StreamMetadata(
        twitch_stream_id=str(stream.id),
        started_at=stream.started_at or datetime.now(timezone.utc),
        title=stream.title,
        game_id=str(stream.game_id) if stream.game_id else None,
        game_name=stream.game_name,
        thumbnail_url=getattr(thumbnail, "url", None),
    )


class TwitchIngress:
    """Wraps a twitchio client for the tracked channel.

    ``moderator_id`` must have ``moderator:read:chatters`` on the channel.
    """

    def __init__(self, client: twitchio.Client, broadcaster_id: str, moderator_id: str) -> None:
        self._client = client
        self.broadcaster_id = broadcaster_id
        self.moderator_id = moderator_id

    async def get_live_status(self) -> LiveStatus:
        streams = await self._client.fetch_streams(user_ids=[self.broadcaster_id])  # type: ignore[arg-type]
        if not streams:
            return LiveStatus.offline()
        return LiveStatus(online=True, metadata=stream_metadata(streams[0]))

    async def describe_stream(self, twitch_stream_id: str, started_at: datetime) -> StreamMetadata:
        """Metadata for a stream that just went live.

        Helix can lag behind the online notification; when it does not yet
        list the stream, only the id and start time are known.
        """
        try:
            status = await self.get_live_status()
        except Exception as e:
            LOGGER.warning(f"Could not fetch metadata for stream {twitch_stream_id}: {e}")
            status = LiveStatus.offline()

        if status.metadata and status.metadata.twitch_stream_id == twitch_stream_id:
            return status.metadata
        return StreamMetadata(twitch_stream_id=twitch_stream_id, started_at=started_at)

    async def get_present_chatters(self) -> list[ChatterIdentity]:
        broadcaster = self._client.create_partialuser(user_id=self.broadcaster_id)
        chatters = await broadcaster.fetch_chatters(
            moderator=self.moderator_id, first=CHATTERS_PAGE_SIZE
        )

        present: list[ChatterIdentity] = []
        async for chatter in chatters.users:
            if chatter.id == self.moderator_id:
                continue
            present.append(
                ChatterIdentity(
                    twitch_id=str(chatter.id),
                    login=chatter.name or "",
                    display_name=chatter.display_name,
                )
            )
        return present
