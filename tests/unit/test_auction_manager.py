"""Unit tests for auctions, the auction registry and targeting state."""

from __future__ import annotations

import time

import pytest

from hbcore.auction.fanout import BidFanout
from hbcore.auction.manager import AuctionManager
from hbcore.auction.models import Bid
from hbcore.auction.runner import BidRejectedError
from hbcore.auction.selection import select_highest_cpm
from hbcore.events.bus import EventBus
from hbcore.events.constants import AuctionStatus, BidStatus
from hbcore.targeting.state import TargetingState


@pytest.fixture
def manager() -> AuctionManager:
    return AuctionManager(EventBus(), BidFanout())


def units(code="slot1", *bidders):
    return [{"code": code, "transactionId": f"tid-{code}", "bids": [{"bidder": bidder} for bidder in bidders]}]


def start(manager, auction_id, code="slot1", *bidders, timeout_ms=1000):
    auction = manager.create_auction(
        ad_units=units(code, *bidders),
        ad_unit_codes=[code],
        timeout_ms=timeout_ms,
        auction_id=auction_id,
    )
    auction.start()
    return auction


@pytest.mark.asyncio
async def test_bids_are_matched_to_requests(manager):
    auction = start(manager, "a1", "slot1", "bannerco", "multico")
    bid = auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0))

    assert bid.auction_id == "a1"
    assert bid.transaction_id == "tid-slot1"
    assert bid.original_cpm == 1.0
    assert auction.status is AuctionStatus.IN_PROGRESS
    assert [request.bidder for request in auction.pending_requests()] == ["multico"]


@pytest.mark.asyncio
async def test_unrequested_and_late_bids_are_rejected(manager):
    auction = start(manager, "a1", "slot1", "bannerco")
    with pytest.raises(BidRejectedError):
        auction.add_bid(Bid(ad_unit_code="slot1", bidder="stranger", cpm=1.0))
    auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0))
    assert auction.status is AuctionStatus.COMPLETED
    with pytest.raises(BidRejectedError):
        auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=2.0))


@pytest.mark.asyncio
async def test_no_bids_reported_after_completion(manager):
    auction = start(manager, "a1", "slot1", "bannerco", "multico")
    auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0))
    assert auction.no_bids() == []
    auction.end(timed_out=True)
    assert [request.bidder for request in manager.get_no_bids()] == ["multico"]


@pytest.mark.asyncio
async def test_find_bid_and_record_winner(manager):
    auction = start(manager, "a1", "slot1", "bannerco")
    bid = auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0, ad_id="ad-1"))

    assert manager.find_bid_by_ad_id("ad-1") is bid
    assert manager.find_bid_by_ad_id("missing") is None
    manager.add_winning_bid(bid)
    assert bid.status == BidStatus.RENDERED
    assert manager.get_all_winning_bids() == [bid]


@pytest.mark.asyncio
async def test_set_status_for_bids_targets_one_ad_id(manager):
    auction = start(manager, "a1", "slot1", "bannerco", "multico")
    flagged = auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0, ad_id="ad-1"))
    other = auction.add_bid(Bid(ad_unit_code="slot1", bidder="multico", cpm=2.0, ad_id="ad-2"))

    manager.set_status_for_bids("ad-1", BidStatus.TARGETING_SET)
    manager.set_status_for_bids("missing", BidStatus.TARGETING_SET)

    assert flagged.status == BidStatus.TARGETING_SET
    assert other.status is None


def test_winner_for_unknown_auction_is_ignored(manager):
    bid = Bid(ad_unit_code="slot1", bidder="x", cpm=1.0, auction_id="ghost")
    manager.add_winning_bid(bid)
    assert bid.status is None
    assert manager.get_all_winning_bids() == []


@pytest.mark.asyncio
async def test_latest_auction_wins_for_targeting(manager):
    targeting = TargetingState(manager)
    old = start(manager, "old", "slot1", "bannerco", "multico")
    old.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=9.0))
    targeting.set_latest_auction_for_ad_unit("slot1", "old")
    new = start(manager, "new", "slot1", "bannerco", "multico")
    targeting.set_latest_auction_for_ad_unit("slot1", "new")
    low = new.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0))
    high = new.add_bid(Bid(ad_unit_code="slot1", bidder="multico", cpm=2.0))

    assert targeting.latest_auction_for("slot1") == "new"
    assert targeting.get_winning_bids("slot1") == [high]
    high.status = BidStatus.RENDERED
    assert targeting.get_winning_bids("slot1") == [low]
    assert manager.get_last_auction_id() == "new"


@pytest.mark.asyncio
async def test_expired_bids_are_not_winners(manager):
    targeting = TargetingState(manager)
    auction = start(manager, "a1", "slot1", "bannerco")
    targeting.set_latest_auction_for_ad_unit("slot1", "a1")
    auction.add_bid(Bid(ad_unit_code="slot1", bidder="bannerco", cpm=1.0, ttl=1, response_timestamp=time.time() - 10))
    assert targeting.get_winning_bids() == []


def test_highest_cpm_keeps_first_on_ties():
    first = Bid(ad_unit_code="s", bidder="a", cpm=1.0)
    second = Bid(ad_unit_code="s", bidder="b", cpm=1.0)
    assert select_highest_cpm([first, second]) is first
    assert select_highest_cpm([]) is None


def test_bid_from_payload_validates_cpm():
    with pytest.raises(ValueError):
        Bid.from_payload({"ad_unit_code": "s", "bidder": "a", "cpm": "free"})
    bid = Bid.from_payload({"ad_unit_code": "s", "bidder": "a", "cpm": "1.25", "renderer": {"url": "https://r"}})
    assert bid.cpm == 1.25
    assert bid.renderer.is_required()
