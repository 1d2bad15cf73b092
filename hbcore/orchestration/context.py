"""Deferred callback queues drained ahead of every bid request."""

from __future__ import annotations

import logging
from collections import deque
from functools import partial
from typing import Any, Callable, Deque

from ..hooks.stage import StageCall

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


class OrchestrationContext:
    def __init__(self) -> None:
        self.storage_callbacks: Deque[Callback] = deque()
        self.analytics_callbacks: Deque[Callback] = deque()
        self.enabled_analytics: list[dict[str, Any]] = []

    def defer_storage(self, callback: Callback) -> None:
        self.storage_callbacks.append(callback)

    def enable_analytics(self, config: dict[str, Any] | None) -> None:
        self.analytics_callbacks.append(partial(self._enable_analytics, config))

    def drain_once(self) -> int:
        """Run every queued callback once, storage work first. Returns the count run.

        A failing callback is logged and does not stop the rest of the drain.
        """
        ran = 0
        for queue in (self.storage_callbacks, self.analytics_callbacks):
            while queue:
                callback = queue.popleft()
                try:
                    callback()
                except Exception:
                    logger.exception("Deferred callback %r failed", callback)
                ran += 1
        return ran

    def execute_callbacks(self, call: StageCall) -> None:
        self.drain_once()

    def _enable_analytics(self, config: dict[str, Any] | None) -> None:
        if not config:
            logger.error("enable_analytics should be called with a provider config")
            return
        logger.info("Enabling analytics provider %s", config.get("provider"))
        self.enabled_analytics.append(dict(config))
