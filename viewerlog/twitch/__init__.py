"""Twitch side of viewerlog: EventSub ingestion and stream tracking."""
