"""One auction: bid request dispatch, bid intake, and the deadline."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Callable, Iterable

from ..config.store import merge_deep
from ..events.bus import EventBus
from ..events.constants import AuctionStatus, Events
from .fanout import BidFanout
from .models import Bid, BidRequest

logger = logging.getLogger(__name__)

S2S_CHANNEL = "s2s"


class BidRejectedError(ValueError):
    """Raised when a bid cannot be accepted into an auction."""


class Auction:
    def __init__(
        self,
        *,
        auction_id: str,
        ad_units: list[dict[str, Any]],
        ad_unit_codes: list[str],
        callback: Callable[..., Any] | None,
        timeout_ms: int,
        labels: Iterable[str] | None,
        ortb2_fragments: dict[str, Any] | None,
        s2s_bidders: Iterable[str],
        fanout: BidFanout,
        events: EventBus,
    ) -> None:
        self._id = auction_id
        self.ad_units = ad_units
        self.ad_unit_codes = list(ad_unit_codes)
        self.callback = callback
        self.timeout_ms = timeout_ms
        self.labels = list(labels or ())
        self.ortb2_fragments = ortb2_fragments or {"global": {}, "bidder": {}}
        self._s2s_bidders = set(s2s_bidders)
        self._fanout = fanout
        self._events = events
        self.status = AuctionStatus.STARTED
        self.bid_requests: list[BidRequest] = []
        self.bids_received: list[Bid] = []
        self.winning_bids: list[Bid] = []
        self.timed_out = False
        self._timer: asyncio.TimerHandle | None = None
        self._dispatch: asyncio.Task | None = None

    def id(self) -> str:
        return self._id

    @property
    def auction_id(self) -> str:
        return self._id

    def start(self) -> None:
        """Dispatch bid requests and arm the deadline; does not wait for bids."""
        self.status = AuctionStatus.IN_PROGRESS
        self.bid_requests = self._build_bid_requests()
        self._events.emit(Events.AUCTION_INIT, self.summary())
        batches: dict[str, dict[str, Any]] = {}
        for request in self.bid_requests:
            channel = S2S_CHANNEL if request.source == "s2s" else request.bidder
            batch = batches.setdefault(
                channel,
                {
                    "auction_id": self._id,
                    "timeout_ms": self.timeout_ms,
                    "ortb2": self._ortb2_for(channel),
                    "bid_requests": [],
                },
            )
            batch["bid_requests"].append(request)
        for channel, batch in batches.items():
            self._events.emit(Events.BID_REQUESTED, {"auction_id": self._id, "channel": channel, **batch})
        loop = asyncio.get_running_loop()
        self._dispatch = loop.create_task(self._fanout.publish(self._id, batches))
        self._timer = loop.call_later(self.timeout_ms / 1000, self.end, True)
        if not self.bid_requests:
            self.end()

    def _ortb2_for(self, channel: str) -> dict[str, Any]:
        fragments = self.ortb2_fragments
        bidder_fragment = fragments.get("bidder", {}).get(channel)
        if bidder_fragment is None:
            return fragments.get("global", {})
        return merge_deep({}, fragments.get("global", {}), bidder_fragment)

    def _build_bid_requests(self) -> list[BidRequest]:
        requests = []
        for unit in self.ad_units:
            for bid in unit.get("bids", []):
                bidder = bid.get("bidder")
                source = "s2s" if bidder is None or bidder in self._s2s_bidders else "client"
                requests.append(
                    BidRequest(
                        bid_id=uuid.uuid4().hex,
                        ad_unit_code=unit.get("code"),
                        bidder=bidder,
                        transaction_id=unit.get("transactionId"),
                        params=dict(bid.get("params") or {}),
                        source=source,
                    )
                )
        return requests

    def add_bid(self, bid: Bid) -> Bid:
        if self.status is AuctionStatus.COMPLETED:
            raise BidRejectedError(f"auction {self._id} already completed")
        request = self._match_request(bid)
        if request is None:
            raise BidRejectedError(f"bidder {bid.bidder} was not asked to bid on {bid.ad_unit_code}")
        bid.auction_id = self._id
        bid.transaction_id = request.transaction_id
        if request.source == "s2s":
            bid.source = "s2s"
        if bid.original_cpm is None:
            bid.original_cpm = bid.cpm
        self.bids_received.append(bid)
        self._events.emit(Events.BID_RESPONSE, bid)
        if not self.pending_requests():
            self.end()
        return bid

    def _match_request(self, bid: Bid) -> BidRequest | None:
        for request in self.bid_requests:
            if request.ad_unit_code != bid.ad_unit_code:
                continue
            if request.bidder == bid.bidder or (request.source == "s2s" and request.bidder is None):
                return request
        return None

    def pending_requests(self) -> list[BidRequest]:
        answered = {(bid.ad_unit_code, bid.bidder) for bid in self.bids_received}
        return [
            request
            for request in self.bid_requests
            if request.bidder is not None and (request.ad_unit_code, request.bidder) not in answered
        ]

    def no_bids(self) -> list[BidRequest]:
        if self.status is not AuctionStatus.COMPLETED:
            return []
        return self.pending_requests()

    def end(self, timed_out: bool = False) -> None:
        if self.status is AuctionStatus.COMPLETED:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.status = AuctionStatus.COMPLETED
        self.timed_out = timed_out
        if timed_out:
            pending = self.pending_requests()
            if pending:
                self._events.emit(Events.BID_TIMEOUT, pending)
        for request in self.no_bids():
            self._events.emit(Events.NO_BID, request)
        self._events.emit(Events.AUCTION_END, self.summary())
        if self.callback is None:
            return
        grouped: dict[str, dict[str, list[Bid]]] = defaultdict(lambda: {"bids": []})
        for bid in self.bids_received:
            grouped[bid.ad_unit_code]["bids"].append(bid)
        try:
            self.callback(dict(grouped), timed_out, self._id)
        except Exception:
            logger.exception("Error executing bids back handler for auction %s", self._id)

    def add_winning_bid(self, bid: Bid) -> None:
        self.winning_bids.append(bid)

    def summary(self) -> dict[str, Any]:
        return {
            "auction_id": self._id,
            "status": self.status.value,
            "timeout_ms": self.timeout_ms,
            "ad_unit_codes": list(self.ad_unit_codes),
            "labels": list(self.labels),
            "bid_requests": len(self.bid_requests),
            "bids_received": len(self.bids_received),
            "timed_out": self.timed_out,
        }
