"""Unit tests for the runtime facade."""

from __future__ import annotations

import uuid

import pytest

from hbcore.bidders.registry import BidderRegistry
from hbcore.config import parse_server_config
from hbcore.events.constants import BidStatus, Events
from hbcore.render.surface import Surface
from hbcore.runtime import build_runtime


async def run_auction(runtime, code="slot1", bids=(("bannerco", 1.0), ("multico", 2.0))):
    auction_id = str(uuid.uuid4())
    unit = {
        "code": code,
        "mediaTypes": {"banner": {"sizes": [[300, 250]]}},
        "bids": [{"bidder": bidder} for bidder, _ in bids] + [{"bidder": "x"}],
    }
    await runtime.request_bids(ad_units=[unit], auction_id=auction_id)
    placed = [
        runtime.add_bid_response(auction_id, {"ad_unit_code": code, "bidder": bidder, "cpm": cpm, "ad": "<div/>"})
        for bidder, cpm in bids
    ]
    return auction_id, placed


@pytest.mark.asyncio
async def test_bid_responses_come_from_the_latest_auction(runtime):
    await run_auction(runtime, bids=(("bannerco", 5.0),))
    _, latest = await run_auction(runtime)

    assert runtime.get_bid_responses() == {"slot1": {"bids": latest}}
    assert runtime.get_bid_responses_for_ad_unit_code("slot1") == {"bids": latest}
    assert runtime.get_bid_responses_for_ad_unit_code("other") == {"bids": []}


@pytest.mark.asyncio
async def test_highest_unused_bid_skips_rendered_bids(runtime):
    _, (low, high) = await run_auction(runtime)
    assert runtime.get_highest_unused_bid_response_for_ad_unit_code("slot1") is high
    high.status = BidStatus.RENDERED
    assert runtime.get_highest_unused_bid_response_for_ad_unit_code("slot1") is low
    assert runtime.get_highest_unused_bid_response_for_ad_unit_code("") is None


@pytest.mark.asyncio
async def test_no_bids_listed_once_the_auction_ends(runtime):
    auction_id, _ = await run_auction(runtime)
    assert runtime.get_no_bids() == {}
    runtime.auctions.get_auction(auction_id).end(timed_out=True)

    no_bids = runtime.get_no_bids()
    assert [request.bidder for request in no_bids["slot1"]["bids"]] == ["x"]
    assert runtime.get_no_bids_for_ad_unit_code("slot1") == no_bids["slot1"]


@pytest.mark.asyncio
async def test_mark_winning_bid_as_used_by_code_or_id(runtime):
    _, (low, high) = await run_auction(runtime)

    assert runtime.mark_winning_bid_as_used(ad_unit_code="slot1") is high
    assert high.status == BidStatus.RENDERED
    assert runtime.mark_winning_bid_as_used(ad_id=low.ad_id) is low
    assert runtime.mark_winning_bid_as_used() is None


@pytest.mark.asyncio
async def test_set_targeting_flags_prebid_winners(runtime):
    _, (low, high) = await run_auction(runtime)

    key_values = runtime.set_targeting()

    assert key_values == {"slot1": {"hb_bidder": "multico", "hb_adid": high.ad_id, "hb_pb": "2.00"}}
    assert runtime.get_all_prebid_winning_bids() == [high]
    assert runtime.get_highest_cpm_bids("slot1") == [high]


@pytest.mark.asyncio
async def test_bid_won_subscription_scoped_to_ad_unit(runtime):
    _, (_, high) = await run_auction(runtime)
    _, (_, other) = await run_auction(runtime, code="slot2")
    won = []

    assert runtime.on_event(Events.BID_WON, won.append, id="slot1") is True
    await runtime.render_ad(Surface(), other.ad_id)
    await runtime.render_ad(Surface(), high.ad_id)

    assert won == [high]
    assert runtime.counter.bidder_wins("slot1", "multico") == 1


@pytest.mark.asyncio
async def test_on_event_rejects_bad_registrations(runtime):
    await run_auction(runtime)
    assert runtime.on_event(Events.BID_WON, "not callable") is False
    assert runtime.on_event("madeUp", print) is False
    assert runtime.on_event(Events.BID_WON, print, id="unknown-slot") is False
    assert runtime.on_event(Events.AUCTION_END, print, id="slot1") is False


def test_off_event_removes_handler(runtime):
    seen = []
    runtime.on_event(Events.AUCTION_DEBUG, seen.append)
    runtime.off_event(Events.AUCTION_DEBUG, seen.append)
    runtime.events.emit(Events.AUCTION_DEBUG, {})
    assert seen == []


def test_add_bid_response_for_unknown_auction(runtime):
    with pytest.raises(LookupError):
        runtime.add_bid_response("missing", {"ad_unit_code": "s", "bidder": "x", "cpm": 1})


def test_alias_bidder(runtime):
    alias = runtime.alias_bidder("videoco", "vid2")
    assert alias.alias_of == "videoco"
    assert runtime.registry.lookup("vid2").supported_media_types == ("video",)
    assert runtime.alias_bidder("videoco", None) is None
    assert runtime.alias_bidder("ghost", "g2") is None


def test_ad_unit_collection_edits(runtime):
    runtime.add_ad_units({"code": "a"})
    runtime.add_ad_units([{"code": "b"}, {"code": "c"}])
    runtime.remove_ad_unit("b")
    assert runtime.ad_units.codes() == ["a", "c"]
    runtime.remove_ad_unit()
    assert len(runtime.ad_units) == 0
    assert [e["event_type"] for e in runtime.get_events()].count("addAdUnits") == 2


def test_build_runtime_seeds_config_from_server_config():
    server_config = parse_server_config(
        {
            "auction": {"bidder_timeout_ms": 1500, "options": {"suppress_stale_render": True}},
            "s2s_config": [{"bidders": ["serverbid"]}],
            "bidder_config": {"videoco": {"ortb2": {"site": {"cat": ["IAB2"]}}}},
        }
    )
    runtime = build_runtime(server_config, BidderRegistry.from_entries([]))

    assert runtime.get_config("bidder_timeout") == 1500
    assert runtime.get_config("auction_options.suppress_stale_render") is True
    assert runtime.config.get_bidder_config() == {"videoco": {"ortb2": {"site": {"cat": ["IAB2"]}}}}
    assert runtime.fanout.backend == "local"
