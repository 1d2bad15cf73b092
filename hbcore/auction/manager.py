"""Registry of auctions and the bids they collected."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Iterable

from ..events.bus import EventBus
from ..events.constants import BidStatus
from .fanout import BidFanout
from .models import Bid, BidRequest
from .runner import Auction

logger = logging.getLogger(__name__)


class AuctionManager:
    def __init__(self, events: EventBus, fanout: BidFanout) -> None:
        self._events = events
        self._fanout = fanout
        self._auctions: dict[str, Auction] = {}
        self._last_auction_id: str | None = None

    def create_auction(
        self,
        *,
        ad_units: list[dict[str, Any]],
        ad_unit_codes: list[str],
        callback: Callable[..., Any] | None = None,
        timeout_ms: int,
        labels: Iterable[str] | None = None,
        auction_id: str | None = None,
        ortb2_fragments: dict[str, Any] | None = None,
        s2s_bidders: Iterable[str] = (),
    ) -> Auction:
        auction = Auction(
            auction_id=auction_id or str(uuid.uuid4()),
            ad_units=ad_units,
            ad_unit_codes=ad_unit_codes,
            callback=callback,
            timeout_ms=timeout_ms,
            labels=labels,
            ortb2_fragments=ortb2_fragments,
            s2s_bidders=s2s_bidders,
            fanout=self._fanout,
            events=self._events,
        )
        self._auctions[auction.id()] = auction
        self._last_auction_id = auction.id()
        return auction

    def get_auction(self, auction_id: str) -> Auction | None:
        return self._auctions.get(auction_id)

    def auctions(self) -> list[Auction]:
        return list(self._auctions.values())

    def get_last_auction_id(self) -> str | None:
        return self._last_auction_id

    def get_ad_unit_codes(self) -> list[str]:
        codes: list[str] = []
        for auction in self._auctions.values():
            for code in auction.ad_unit_codes:
                if code not in codes:
                    codes.append(code)
        return codes

    def get_bids_requested(self) -> list[BidRequest]:
        return [request for auction in self._auctions.values() for request in auction.bid_requests]

    def get_bids_received(self) -> list[Bid]:
        return [bid for auction in self._auctions.values() for bid in auction.bids_received]

    def get_no_bids(self) -> list[BidRequest]:
        return [request for auction in self._auctions.values() for request in auction.no_bids()]

    def get_all_winning_bids(self) -> list[Bid]:
        return [bid for auction in self._auctions.values() for bid in auction.winning_bids]

    def get_all_bids_for_ad_unit_code(self, ad_unit_code: str) -> list[Bid]:
        return [bid for bid in self.get_bids_received() if bid.ad_unit_code == ad_unit_code]

    def find_bid_by_ad_id(self, ad_id: str) -> Bid | None:
        return next((bid for bid in self.get_bids_received() if bid.ad_id == ad_id), None)

    def add_winning_bid(self, bid: Bid) -> None:
        auction = self._auctions.get(bid.auction_id) if bid.auction_id else None
        if auction is None:
            logger.warning("Auction not found when adding winning bid %s", bid.ad_id)
            return
        bid.status = BidStatus.RENDERED
        auction.add_winning_bid(bid)

    def set_status_for_bids(self, ad_id: str, status: BidStatus) -> None:
        bid = self.find_bid_by_ad_id(ad_id)
        if bid is not None:
            bid.status = status
