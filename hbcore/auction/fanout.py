"""Bid request distribution using publish/subscribe transports."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..transport.serialization import dumps

try:  # pragma: no cover - optional dependency
    from google.cloud import pubsub_v1
except Exception:  # pragma: no cover - library missing
    pubsub_v1 = None

logger = logging.getLogger(__name__)


class _PublisherProtocol:
    async def publish(self, auction_id: str, channel: str, payload: dict[str, Any]) -> None:  # pragma: no cover - protocol
        raise NotImplementedError


class _LocalPublisher(_PublisherProtocol):
    async def publish(self, auction_id: str, channel: str, payload: dict[str, Any]) -> None:
        logger.info(
            "[local-pubsub] auction=%s channel=%s requests=%d",
            auction_id,
            channel,
            len(payload.get("bid_requests", ())),
        )


class _PubSubPublisher(_PublisherProtocol):
    def __init__(self, options: Mapping[str, Any]) -> None:
        if pubsub_v1 is None:
            raise RuntimeError("google-cloud-pubsub is required for pubsub backend")
        self._project_id = options.get("project_id")
        if not self._project_id:
            raise ValueError("pubsub backend requires project_id")
        self._topic_prefix = options.get("topic_prefix", "hb-bid-requests")
        self._publisher = pubsub_v1.PublisherClient()

    def _topic_path(self, channel: str) -> str:
        topic = f"{self._topic_prefix}-{channel}"
        if topic.startswith("projects/"):
            return topic
        return self._publisher.topic_path(self._project_id, topic)

    async def publish(self, auction_id: str, channel: str, payload: dict[str, Any]) -> None:
        message = dumps({"auction_id": auction_id, "channel": channel, "payload": payload})
        future = self._publisher.publish(self._topic_path(channel), message, channel=channel, auction_id=auction_id)
        await asyncio.to_thread(future.result)


class BidFanout:
    def __init__(self, backend: str = "local", options: Mapping[str, Any] | None = None) -> None:
        options = options or {}
        if backend == "pubsub":
            self._publisher = _PubSubPublisher(options.get("pubsub", {}))
        else:
            self._publisher = _LocalPublisher()
        self.backend = backend

    async def publish(self, auction_id: str, batches: Mapping[str, dict[str, Any]]) -> None:
        """Publish one payload per channel (a bidder name, or ``s2s``)."""
        tasks = [self._publisher.publish(auction_id, channel, payload) for channel, payload in batches.items()]
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for channel, result in zip(batches, results):
                if isinstance(result, Exception):
                    logger.error("fanout to %s failed for auction %s: %s", channel, auction_id, result)
