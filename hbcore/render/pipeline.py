"""Render pipeline: deliver a winning bid's creative into a surface.

The pipeline never raises. Every attempt ends in exactly one terminal state
reported on the event bus (``adRenderSucceeded`` or ``adRenderFailed``), or
stops silently after ``staleRender`` when stale re-renders are suppressed.
"""

from __future__ import annotations

import logging
from typing import Any

from ..auction.manager import AuctionManager
from ..auction.models import Bid
from ..config.store import ConfigStore
from ..events.bus import EventBus
from ..events.constants import AdRenderFailedReason, BidStatus, Events
from ..hooks.stage import HookRegistry
from .macros import replace_auction_price, replace_click_through
from .pixels import PixelClient
from .renderer import is_renderer_required
from .signals import emit_ad_render_fail, emit_ad_render_succeeded
from .surface import (
    Comment,
    Surface,
    create_invisible_frame,
    reinject_node_if_removed,
    set_render_size,
)

logger = logging.getLogger(__name__)

MARKER_SECTION = "html"


class RenderPipeline:
    def __init__(
        self,
        *,
        auctions: AuctionManager,
        events: EventBus,
        config: ConfigStore,
        hooks: HookRegistry,
        pixels: PixelClient | None = None,
    ) -> None:
        self._auctions = auctions
        self._events = events
        self._config = config
        self._pixels = pixels
        self.render_ad = hooks.wrap("renderAd", self._render_ad)

    async def _render_ad(self, surface: Surface | None, ad_id: str | None, options: dict[str, Any] | None = None) -> None:
        logger.info("Calling render_ad with ad_id %s", ad_id)
        if surface is None or not ad_id:
            emit_ad_render_fail(
                self._events,
                reason=AdRenderFailedReason.MISSING_DOC_OR_ADID,
                message=f"Error trying to write ad Id :{ad_id} to the page. Missing document or adId",
                ad_id=ad_id,
            )
            return
        try:
            await self._render_bid(surface, ad_id, options or {})
        except Exception as exc:
            logger.debug("render of %s raised", ad_id, exc_info=True)
            emit_ad_render_fail(
                self._events,
                reason=AdRenderFailedReason.EXCEPTION,
                message=f"Error trying to write ad Id :{ad_id} to the page:{exc}",
                ad_id=ad_id,
            )

    async def _render_bid(self, surface: Surface, ad_id: str, options: dict[str, Any]) -> None:
        bid = self._auctions.find_bid_by_ad_id(ad_id)
        if bid is None:
            emit_ad_render_fail(
                self._events,
                reason=AdRenderFailedReason.CANNOT_FIND_AD,
                message=f"Error trying to write ad. Cannot find ad by given id : {ad_id}",
                ad_id=ad_id,
            )
            return

        if bid.status == BidStatus.RENDERED:
            logger.warning("Ad id %s has been rendered before", bid.ad_id)
            self._events.emit(Events.STALE_RENDER, bid)
            if self._config.get("auction_options.suppress_stale_render", False):
                return

        price = bid.original_cpm if bid.original_cpm is not None else bid.cpm
        bid.ad = replace_auction_price(bid.ad, price)
        bid.ad_url = replace_auction_price(bid.ad_url, price)
        click_through = options.get("click_through")
        if click_through:
            bid.ad = replace_click_through(bid.ad, click_through)
            bid.ad_url = replace_click_through(bid.ad_url, click_through)

        # winner bookkeeping happens even when delivery fails below
        self._auctions.add_winning_bid(bid)
        self._events.emit(Events.BID_WON, bid)

        marker = Comment(f"Creative {bid.creative_id} served by {bid.bidder} hbcore header bidding")
        surface.insert(marker, MARKER_SECTION)

        if is_renderer_required(bid.renderer):
            await bid.renderer.execute(bid, surface)
            reinject_node_if_removed(marker, surface, MARKER_SECTION)
            emit_ad_render_succeeded(self._events, surface=surface, bid=bid, ad_id=ad_id)
        elif (surface.main_document and not surface.embedded) or bid.media_type == "video":
            emit_ad_render_fail(
                self._events,
                reason=AdRenderFailedReason.PREVENT_WRITING_ON_MAIN_DOCUMENT,
                message=(
                    f"Error trying to write ad. Ad render call ad id {ad_id} was prevented "
                    "from writing to the main document."
                ),
                ad_id=ad_id,
                bid=bid,
            )
        elif bid.ad:
            surface.write(bid.ad)
            surface.close()
            self._finish_delivery(surface, bid, marker, ad_id)
        elif bid.ad_url:
            frame = create_invisible_frame()
            frame.width = bid.width
            frame.height = bid.height
            frame.style.update({"display": "inline", "overflow": "hidden"})
            frame.src = bid.ad_url
            surface.insert(frame, "body")
            self._finish_delivery(surface, bid, marker, ad_id)
        else:
            emit_ad_render_fail(
                self._events,
                reason=AdRenderFailedReason.NO_AD,
                message=f"Error trying to write ad. No ad for bid response id: {ad_id}",
                ad_id=ad_id,
                bid=bid,
            )

    def _finish_delivery(self, surface: Surface, bid: Bid, marker: Comment, ad_id: str) -> None:
        set_render_size(surface, bid.width, bid.height)
        reinject_node_if_removed(marker, surface, MARKER_SECTION)
        self._call_burl(bid)
        emit_ad_render_succeeded(self._events, surface=surface, bid=bid, ad_id=ad_id)

    def _call_burl(self, bid: Bid) -> None:
        if bid.source == "s2s" and bid.burl and self._pixels is not None:
            self._pixels.trigger(bid.burl)
