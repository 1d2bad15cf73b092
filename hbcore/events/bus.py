"""In-process event bus with an append-only history."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


@dataclass
class _Subscription:
    handler: Handler
    id: str | None = None


class EventBus:
    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = defaultdict(list)
        self._history: list[dict[str, Any]] = []
        self._started = time.monotonic()

    def on(self, event: str, handler: Handler, id: str | None = None) -> None:
        self._subscriptions[_name(event)].append(_Subscription(handler, id))

    def off(self, event: str, handler: Handler, id: str | None = None) -> None:
        subscriptions = self._subscriptions.get(_name(event))
        if not subscriptions:
            return
        self._subscriptions[_name(event)] = [
            sub
            for sub in subscriptions
            if not (sub.handler == handler and (id is None or sub.id == id))
        ]

    def emit(self, event: str, payload: Any = None) -> None:
        name = _name(event)
        entry_id = _payload_id(payload)
        self._history.append(
            {
                "event_type": name,
                "args": payload,
                "id": entry_id,
                "elapsed_ms": round((time.monotonic() - self._started) * 1000, 3),
            }
        )
        for sub in list(self._subscriptions.get(name, ())):
            if sub.id is not None and sub.id != entry_id:
                continue
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("Error executing handler for event %s", name)

    def get_events(self) -> list[dict[str, Any]]:
        return [dict(entry) for entry in self._history]


def _name(event: Any) -> str:
    return getattr(event, "value", event)


def _payload_id(payload: Any) -> str | None:
    # id-scoped subscriptions match on the ad unit code of the payload
    if isinstance(payload, dict):
        return payload.get("ad_unit_code") or payload.get("adUnitCode")
    return getattr(payload, "ad_unit_code", None)
