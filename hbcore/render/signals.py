"""Render outcome signals published on the event bus."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..events.bus import EventBus
from ..events.constants import AdRenderFailedReason, Events

if TYPE_CHECKING:
    from ..auction.models import Bid
    from .surface import Surface

logger = logging.getLogger(__name__)


def emit_ad_render_fail(
    events: EventBus,
    *,
    reason: AdRenderFailedReason,
    message: str,
    ad_id: str | None,
    bid: "Bid | None" = None,
) -> None:
    logger.error("adRenderFailed %s: %s", reason.value, message)
    payload = {"reason": reason, "message": message, "ad_id": ad_id}
    if bid is not None:
        payload["bid"] = bid
    events.emit(Events.AD_RENDER_FAILED, payload)


def emit_ad_render_succeeded(events: EventBus, *, surface: "Surface", bid: "Bid", ad_id: str) -> None:
    events.emit(Events.AD_RENDER_SUCCEEDED, {"doc": surface, "bid": bid, "ad_id": ad_id})
