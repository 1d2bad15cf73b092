"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..runtime import Runtime

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


@router.get("/stats")
async def stats(runtime: Runtime = Depends(_get_runtime)) -> dict[str, Any]:
    auctions = runtime.auctions.auctions()
    total_auctions = len(auctions)
    requested = runtime.auctions.get_bids_requested()
    received = runtime.auctions.get_bids_received()
    no_bids = runtime.auctions.get_no_bids()
    timed_out = sum(1 for auction in auctions if auction.timed_out)

    invited_by_bidder: Counter[str] = Counter(request.bidder for request in requested if request.bidder)
    bids_by_bidder: Counter[str] = Counter(bid.bidder for bid in received)
    wins_by_bidder: Counter[str] = Counter(bid.bidder for bid in runtime.auctions.get_all_winning_bids())

    bidder_response_rates = {
        bidder: round(bids_by_bidder[bidder] / invitations, 4)
        for bidder, invitations in invited_by_bidder.items()
    }
    bidder_win_rates = {
        bidder: round(wins_by_bidder[bidder] / count, 4)
        for bidder, count in bids_by_bidder.items()
        if count
    }
    return {
        "total_auctions": total_auctions,
        "timed_out_auctions": timed_out,
        "total_bid_requests": len(requested),
        "total_bids": len(received),
        "no_bid_rate": round(len(no_bids) / len(requested), 4) if requested else 0.0,
        "bidder_response_rates": bidder_response_rates,
        "bidder_win_rates": bidder_win_rates,
        "ad_unit_counters": runtime.counter.snapshot(),
    }
