"""Turns a bid request into a running auction."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Iterable, Mapping

from ..adunits.collection import AdUnitCollection
from ..adunits.counter import AdUnitCounter
from ..adunits.validator import validate_ad_units
from ..bidders.registry import BidderRegistry
from ..config import DEFAULT_BIDDER_TIMEOUT_MS
from ..config.store import ConfigStore, merge_deep
from ..events.bus import EventBus
from ..events.constants import Events
from ..hooks.stage import HookRegistry
from ..orchestration.context import OrchestrationContext
from ..targeting.state import TargetingState
from .eligibility import filter_eligibility
from .manager import AuctionManager

logger = logging.getLogger(__name__)

# auctions above this size are logged for visibility
LARGE_AUCTION_AD_UNITS = 15
# drains deferred callbacks ahead of anything registered at the default priority
EXECUTE_CALLBACKS_PRIORITY = 49


def s2s_bidders_from(s2s_config: Any) -> list[str]:
    """Union of bidders over one s2s config block or a list of them."""
    if not s2s_config:
        return []
    blocks = s2s_config if isinstance(s2s_config, list) else [s2s_config]
    bidders: list[str] = []
    for block in blocks:
        for bidder in (block or {}).get("bidders") or ():
            if bidder not in bidders:
                bidders.append(bidder)
    return bidders


class AuctionOrchestrator:
    def __init__(
        self,
        *,
        config: ConfigStore,
        registry: BidderRegistry,
        auctions: AuctionManager,
        targeting: TargetingState,
        ad_units: AdUnitCollection,
        counter: AdUnitCounter,
        events: EventBus,
        hooks: HookRegistry,
        context: OrchestrationContext,
    ) -> None:
        self._config = config
        self._registry = registry
        self._auctions = auctions
        self._targeting = targeting
        self._ad_units = ad_units
        self._counter = counter
        self._events = events
        self.request_bids = hooks.wrap("requestBids", self._request_bids)
        self.start_auction = hooks.wrap("startAuction", self._start_auction)
        self.request_bids.before(context.execute_callbacks, EXECUTE_CALLBACKS_PRIORITY)

    def _request_bids(
        self,
        *,
        bids_back_handler: Callable[..., Any] | None = None,
        timeout: int | None = None,
        ad_units: dict[str, Any] | list[dict[str, Any]] | None = None,
        ad_unit_codes: list[str] | None = None,
        labels: Iterable[str] | None = None,
        auction_id: str | None = None,
        ortb2: Mapping[str, Any] | None = None,
        bidder_ortb2: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self._events.emit(Events.REQUEST_BIDS)
        if ad_units is None:
            units = self._ad_units.all()
        else:
            units = [ad_units] if isinstance(ad_units, dict) else list(ad_units)
        logger.info("Invoking request_bids for %d ad unit(s)", len(units))
        return self.start_auction(
            bids_back_handler=bids_back_handler,
            timeout=timeout or self._config.get("bidder_timeout", DEFAULT_BIDDER_TIMEOUT_MS),
            ad_units=units,
            ad_unit_codes=ad_unit_codes,
            labels=labels,
            auction_id=auction_id,
            ortb2_fragments=self.build_ortb2_fragments(ortb2, bidder_ortb2),
        )

    def build_ortb2_fragments(
        self,
        ortb2: Mapping[str, Any] | None = None,
        bidder_ortb2: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> dict[str, Any]:
        bidder_fragments: dict[str, Any] = {}
        configured = {
            bidder: cfg.get("ortb2")
            for bidder, cfg in self._config.get_bidder_config().items()
            if cfg.get("ortb2") is not None
        }
        for bidder in dict.fromkeys([*configured, *(bidder_ortb2 or {})]):
            bidder_fragments[bidder] = merge_deep({}, configured.get(bidder), (bidder_ortb2 or {}).get(bidder))
        return {
            "global": merge_deep({}, self._config.get("ortb2") or {}, ortb2 or {}),
            "bidder": bidder_fragments,
        }

    def _start_auction(
        self,
        *,
        bids_back_handler: Callable[..., Any] | None = None,
        timeout: int | None = None,
        ad_units: list[dict[str, Any]] | None = None,
        ad_unit_codes: list[str] | None = None,
        labels: Iterable[str] | None = None,
        auction_id: str | None = None,
        ortb2_fragments: dict[str, Any] | None = None,
    ) -> None:
        s2s_bidders = s2s_bidders_from(self._config.get("s2s_config"))

        units = validate_ad_units(ad_units or [], self._events)

        if ad_unit_codes:
            wanted = set(ad_unit_codes)
            units = [unit for unit in units if unit.get("code") in wanted]
        else:
            ad_unit_codes = [unit.get("code") for unit in units]

        for unit in units:
            unit["transactionId"] = str(uuid.uuid4())
        filter_eligibility(units, registry=self._registry, s2s_bidders=s2s_bidders, counter=self._counter)

        if not units:
            logger.info("No adUnits configured. No bids requested.")
            if callable(bids_back_handler):
                try:
                    bids_back_handler()
                except Exception:
                    logger.exception("Error executing bids back handler")
            return

        auction = self._auctions.create_auction(
            ad_units=units,
            ad_unit_codes=list(ad_unit_codes),
            callback=bids_back_handler,
            timeout_ms=int(timeout or self._config.get("bidder_timeout", DEFAULT_BIDDER_TIMEOUT_MS)),
            labels=labels,
            auction_id=auction_id,
            ortb2_fragments=ortb2_fragments,
            s2s_bidders=s2s_bidders,
        )
        if len(units) > LARGE_AUCTION_AD_UNITS:
            logger.info("Current auction %s contains %d adUnits.", auction.id(), len(units))

        for code in dict.fromkeys(unit.get("code") for unit in units):
            self._targeting.set_latest_auction_for_ad_unit(code, auction.id())
        auction.start()
