"""Pluggable creative renderers (outstream players and similar)."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from ..auction.models import Bid
    from .surface import Surface

logger = logging.getLogger(__name__)

RenderFn = Callable[["Bid", "Surface"], Any]


class Renderer:
    def __init__(
        self,
        url: str | None = None,
        render: RenderFn | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.url = url
        self.render = render
        self.config = dict(config or {})

    def is_required(self) -> bool:
        return bool(self.url or self.render)

    async def execute(self, bid: "Bid", surface: "Surface") -> None:
        if self.render is not None:
            outcome = self.render(bid, surface)
            if inspect.isawaitable(outcome):
                await outcome
            return
        from .surface import Script

        logger.info("Loading renderer script %s for ad %s", self.url, bid.ad_id)
        surface.insert(Script(src=self.url), "head")

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "config": dict(self.config), "custom": self.render is not None}


def is_renderer_required(renderer: Renderer | None) -> bool:
    return renderer is not None and renderer.is_required()
