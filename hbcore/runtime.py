"""Process-wide header-bidding context and its public operations."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from .adunits.collection import AdUnitCollection
from .adunits.counter import AdUnitCounter
from .auction.fanout import BidFanout
from .auction.manager import AuctionManager
from .auction.models import Bid, BidRequest
from .auction.orchestrator import AuctionOrchestrator
from .auction.runner import Auction
from .auction.selection import is_not_expired, is_unused, select_highest_cpm
from .bidders.registry import BidderConfig, BidderRegistry
from .config import ServerConfig
from .config.store import ConfigStore
from .events.bus import EventBus
from .events.constants import BidStatus, Events
from .hooks.stage import HookRegistry
from .orchestration.context import OrchestrationContext
from .render.macros import format_price
from .render.pipeline import RenderPipeline
from .render.pixels import PixelClient
from .render.surface import Surface
from .targeting.state import TargetingState

logger = logging.getLogger(__name__)

# events whose subscriptions may be scoped to an ad unit code
_ID_SCOPED_EVENTS = {Events.BID_WON.value}


class Runtime:
    """Wires the collaborators together; one instance per process or test."""

    def __init__(
        self,
        *,
        config: ConfigStore,
        registry: BidderRegistry,
        fanout: BidFanout | None = None,
        pixels: PixelClient | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.events = EventBus()
        self.hooks = HookRegistry()
        self.context = OrchestrationContext()
        self.counter = AdUnitCounter()
        self.fanout = fanout or BidFanout()
        self.pixels = pixels
        self.ad_units = AdUnitCollection(self.events)
        self.auctions = AuctionManager(self.events, self.fanout)
        self.targeting = TargetingState(self.auctions)
        self.orchestrator = AuctionOrchestrator(
            config=config,
            registry=registry,
            auctions=self.auctions,
            targeting=self.targeting,
            ad_units=self.ad_units,
            counter=self.counter,
            events=self.events,
            hooks=self.hooks,
            context=self.context,
        )
        self.renderer = RenderPipeline(
            auctions=self.auctions,
            events=self.events,
            config=config,
            hooks=self.hooks,
            pixels=pixels,
        )
        self.events.on(Events.BID_WON, self._count_win)

    # ad units -----------------------------------------------------------

    def add_ad_units(self, ad_units: dict[str, Any] | Iterable[dict[str, Any]]) -> None:
        self.ad_units.add_units(ad_units)

    def remove_ad_unit(self, codes: str | Iterable[str] | None = None) -> None:
        self.ad_units.remove_units(codes)

    # auctions -------------------------------------------------------------

    async def request_bids(self, **options: Any) -> None:
        await self.orchestrator.request_bids(**options)

    def add_bid_response(self, auction_id: str, payload: Mapping[str, Any]) -> Bid:
        """Feed one bid into a running auction.

        Raises ``LookupError`` for an unknown auction and ``ValueError`` when the
        payload is malformed or the auction refuses the bid.
        """
        auction = self.auctions.get_auction(auction_id)
        if auction is None:
            raise LookupError(f"unknown auction {auction_id}")
        return auction.add_bid(Bid.from_payload(dict(payload)))

    async def render_ad(self, surface: Surface | None, ad_id: str | None, options: dict[str, Any] | None = None) -> None:
        await self.renderer.render_ad(surface, ad_id, options)

    # bid queries ----------------------------------------------------------

    def get_highest_unused_bid_response_for_ad_unit_code(self, ad_unit_code: str) -> Bid | None:
        if not ad_unit_code:
            logger.warning("get_highest_unused_bid_response_for_ad_unit_code requires an ad unit code")
            return None
        candidates = [
            bid
            for bid in self.auctions.get_all_bids_for_ad_unit_code(ad_unit_code)
            if is_unused(bid) and is_not_expired(bid)
        ]
        return select_highest_cpm(candidates)

    def get_bid_responses(self) -> dict[str, dict[str, list[Bid]]]:
        grouped: dict[str, dict[str, list[Bid]]] = {}
        for code in self._latest_codes():
            bids = self.targeting.current_bids(code)
            if bids:
                grouped[code] = {"bids": bids}
        return grouped

    def get_bid_responses_for_ad_unit_code(self, ad_unit_code: str) -> dict[str, list[Bid]]:
        return {"bids": self.targeting.current_bids(ad_unit_code)}

    def get_no_bids(self) -> dict[str, dict[str, list[BidRequest]]]:
        grouped: dict[str, dict[str, list[BidRequest]]] = {}
        for code in self._latest_codes():
            requests = self.get_no_bids_for_ad_unit_code(code)["bids"]
            if requests:
                grouped[code] = {"bids": requests}
        return grouped

    def get_no_bids_for_ad_unit_code(self, ad_unit_code: str) -> dict[str, list[BidRequest]]:
        auction = self._latest_auction(ad_unit_code)
        if auction is None:
            return {"bids": []}
        return {"bids": [request for request in auction.no_bids() if request.ad_unit_code == ad_unit_code]}

    def get_all_winning_bids(self) -> list[Bid]:
        return self.auctions.get_all_winning_bids()

    def get_all_prebid_winning_bids(self) -> list[Bid]:
        return [bid for bid in self.auctions.get_bids_received() if bid.status == BidStatus.TARGETING_SET]

    def get_highest_cpm_bids(self, ad_unit_code: str | Iterable[str] | None = None) -> list[Bid]:
        return self.targeting.get_winning_bids(ad_unit_code)

    def set_targeting(self, ad_unit_codes: str | Iterable[str] | None = None) -> dict[str, dict[str, str]]:
        """Flag the current winners as targeted and return their key-values."""
        key_values: dict[str, dict[str, str]] = {}
        for bid in self.targeting.get_winning_bids(ad_unit_codes):
            self.auctions.set_status_for_bids(bid.ad_id, BidStatus.TARGETING_SET)
            key_values[bid.ad_unit_code] = {
                "hb_bidder": bid.bidder,
                "hb_adid": bid.ad_id,
                "hb_pb": format_price(round(bid.cpm, 2)),
            }
        self.events.emit(Events.SET_TARGETING, key_values)
        return key_values

    def mark_winning_bid_as_used(self, ad_unit_code: str | None = None, ad_id: str | None = None) -> Bid | None:
        if ad_unit_code and ad_id:
            bids = [
                bid
                for bid in self.auctions.get_bids_received()
                if bid.ad_id == ad_id and bid.ad_unit_code == ad_unit_code
            ]
        elif ad_unit_code:
            bids = self.targeting.get_winning_bids(ad_unit_code)
        elif ad_id:
            bids = [bid for bid in self.auctions.get_bids_received() if bid.ad_id == ad_id]
        else:
            logger.warning("Improper use of mark_winning_bid_as_used. It needs an ad unit code or an ad id.")
            return None
        if not bids:
            return None
        bids[0].status = BidStatus.RENDERED
        return bids[0]

    # events -----------------------------------------------------------------

    def on_event(self, event: str, handler: Callable[[Any], Any], id: str | None = None) -> bool:
        name = getattr(event, "value", event)
        if not callable(handler):
            logger.error("The event handler provided is not a function and was not set on event %s.", name)
            return False
        if name not in {member.value for member in Events}:
            logger.error("Wrong event name: %s", name)
            return False
        if id is not None and not self._valid_event_id(name, id):
            logger.error("The id provided is not valid for event %s and no handler was set.", name)
            return False
        self.events.on(name, handler, id)
        return True

    def off_event(self, event: str, handler: Callable[[Any], Any], id: str | None = None) -> bool:
        name = getattr(event, "value", event)
        if id is not None and not self._valid_event_id(name, id):
            return False
        self.events.off(name, handler, id)
        return True

    def get_events(self) -> list[dict[str, Any]]:
        return self.events.get_events()

    def _valid_event_id(self, event: str, id: str) -> bool:
        if event not in _ID_SCOPED_EVENTS:
            return False
        return id in {request.ad_unit_code for request in self.auctions.get_bids_requested()}

    # configuration ----------------------------------------------------------

    def enable_analytics(self, config: dict[str, Any] | None) -> None:
        self.context.enable_analytics(config)

    def alias_bidder(self, bidder_code: str | None, alias: str | None) -> BidderConfig | None:
        if not bidder_code or not alias:
            logger.error("bidder code and alias must be provided to alias_bidder")
            return None
        return self.registry.alias(bidder_code, alias)

    def set_config(self, options: Mapping[str, Any]) -> None:
        self.config.set_config(options)

    def get_config(self, key: str | None = None, default: Any = None) -> Any:
        return self.config.get(key, default)

    def set_bidder_config(self, bidders: Iterable[str], config: Mapping[str, Any]) -> None:
        self.config.set_bidder_config(bidders, config)

    async def close(self) -> None:
        if self.pixels is not None:
            await self.pixels.close()

    # internals ----------------------------------------------------------------

    def _latest_codes(self) -> list[str]:
        return [code for code in self.auctions.get_ad_unit_codes() if self.targeting.latest_auction_for(code)]

    def _latest_auction(self, ad_unit_code: str) -> Auction | None:
        auction_id = self.targeting.latest_auction_for(ad_unit_code)
        return self.auctions.get_auction(auction_id) if auction_id else None

    def _count_win(self, bid: Bid) -> None:
        self.counter.increment_bidder_wins(bid.ad_unit_code, bid.bidder)


def build_runtime(
    server_config: ServerConfig,
    registry: BidderRegistry,
    *,
    fanout: BidFanout | None = None,
    pixels: PixelClient | None = None,
) -> Runtime:
    config = ConfigStore(server_config.runtime_defaults())
    for bidder, bidder_cfg in server_config.bidder_config.items():
        config.set_bidder_config([bidder], bidder_cfg)
    if fanout is None:
        distribution = server_config.auction.distribution
        fanout = BidFanout(backend=distribution.get("backend", "local"), options=distribution)
    return Runtime(config=config, registry=registry, fanout=fanout, pixels=pixels)
