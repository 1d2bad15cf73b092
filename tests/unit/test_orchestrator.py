"""Unit tests for the auction request orchestrator."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock, patch

import pytest

from hbcore.auction.runner import Auction
from hbcore.events.constants import Events


def slot(code="slot1", *bidders, media_types=None):
    return {
        "code": code,
        "mediaTypes": media_types or {"banner": {"sizes": [[300, 250]]}},
        "bids": [{"bidder": bidder} for bidder in (bidders or ("x",))],
    }


class TestRequestBids:
    @pytest.mark.asyncio
    async def test_single_banner_unit_creates_and_starts_one_auction(self, runtime):
        with patch.object(Auction, "start", autospec=True) as start:
            await runtime.request_bids(ad_units=[slot("slot1", "x")])

        [auction] = runtime.auctions.auctions()
        assert auction.ad_unit_codes == ["slot1"]
        assert [unit["bids"] for unit in auction.ad_units] == [[{"bidder": "x"}]]
        start.assert_called_once_with(auction)
        assert runtime.targeting.latest_auction_for("slot1") == auction.id()

    @pytest.mark.asyncio
    async def test_no_surviving_units_calls_handler_once_without_arguments(self, runtime):
        handler = MagicMock()
        await runtime.request_bids(ad_units=[{"code": "bad", "bids": []}], bids_back_handler=handler)

        handler.assert_called_once_with()
        assert runtime.auctions.auctions() == []

    @pytest.mark.asyncio
    async def test_failing_handler_on_empty_auction_is_contained(self, runtime):
        handler = MagicMock(side_effect=RuntimeError("caller bug"))
        await runtime.request_bids(ad_units=[], bids_back_handler=handler)
        handler.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_units_default_to_the_registered_collection(self, runtime):
        runtime.add_ad_units([slot("a"), slot("b")])
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids()
        [auction] = runtime.auctions.auctions()
        assert auction.ad_unit_codes == ["a", "b"]

    @pytest.mark.asyncio
    async def test_explicit_codes_filter_units_in_order(self, runtime):
        units = [slot("a"), slot("b"), slot("c")]
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=units, ad_unit_codes=["c", "a"])
        [auction] = runtime.auctions.auctions()
        assert [unit["code"] for unit in auction.ad_units] == ["a", "c"]
        assert auction.ad_unit_codes == ["c", "a"]

    @pytest.mark.asyncio
    async def test_each_unit_gets_its_own_transaction_id(self, runtime):
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot("a"), slot("b")])
        [auction] = runtime.auctions.auctions()
        transaction_ids = [unit["transactionId"] for unit in auction.ad_units]
        assert all(transaction_ids)
        assert len(set(transaction_ids)) == 2

    @pytest.mark.asyncio
    async def test_timeout_defaults_to_configured_bidder_timeout(self, runtime):
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot()], auction_id="default")
            await runtime.request_bids(ad_units=[slot()], auction_id="explicit", timeout=500)
        assert runtime.auctions.get_auction("default").timeout_ms == 3000
        assert runtime.auctions.get_auction("explicit").timeout_ms == 500

    @pytest.mark.asyncio
    async def test_ineligible_bidders_are_dropped_before_the_auction(self, runtime):
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot("slot1", "videoco", "bannerco")])
        [auction] = runtime.auctions.auctions()
        assert auction.ad_units[0]["bids"] == [{"bidder": "bannerco"}]
        assert runtime.counter.requests("slot1") == 1

    @pytest.mark.asyncio
    async def test_before_stage_can_rewrite_request(self, runtime):
        def only_slot2(call):
            call.kwargs["ad_unit_codes"] = ["slot2"]

        runtime.orchestrator.request_bids.before(only_slot2)
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot("slot1"), slot("slot2")])
        [auction] = runtime.auctions.auctions()
        assert auction.ad_unit_codes == ["slot2"]


class TestDeferredCallbacks:
    @pytest.mark.asyncio
    async def test_drain_in_order_before_dispatch(self, runtime):
        order = []
        runtime.context.defer_storage(lambda: order.append("storage-1"))
        runtime.enable_analytics({"provider": "console"})
        runtime.context.defer_storage(lambda: order.append("storage-2"))

        def check_drained(call):
            order.append("start")

        runtime.orchestrator.start_auction.before(check_drained)
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot()])

        assert order == ["storage-1", "storage-2", "start"]
        assert runtime.context.enabled_analytics == [{"provider": "console"}]
        assert not runtime.context.storage_callbacks
        assert not runtime.context.analytics_callbacks

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged_and_the_rest_still_run(self, runtime, caplog):
        ran = []

        def boom():
            raise RuntimeError("storage boom")

        runtime.context.defer_storage(boom)
        runtime.context.defer_storage(lambda: ran.append("second"))
        runtime.enable_analytics({"provider": "console"})

        with caplog.at_level(logging.ERROR, logger="hbcore.orchestration.context"):
            with patch.object(Auction, "start", autospec=True):
                await runtime.request_bids(ad_units=[slot("slot1")])

        assert ran == ["second"]
        assert runtime.context.enabled_analytics == [{"provider": "console"}]
        assert not runtime.context.storage_callbacks
        [auction] = runtime.auctions.auctions()
        assert auction.ad_unit_codes == ["slot1"]
        assert "storage boom" in caplog.text

    @pytest.mark.asyncio
    async def test_callbacks_run_only_once(self, runtime):
        calls = MagicMock()
        runtime.context.defer_storage(calls)
        with patch.object(Auction, "start", autospec=True):
            await runtime.request_bids(ad_units=[slot()])
            await runtime.request_bids(ad_units=[slot()])
        calls.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_enable_analytics_without_config_is_ignored(self, runtime):
        runtime.enable_analytics(None)
        await runtime.request_bids(ad_units=[])
        assert runtime.context.enabled_analytics == []


class TestOrtb2Fragments:
    def test_merge_config_and_request(self, runtime):
        runtime.set_bidder_config(["videoco"], {"ortb2": {"site": {"cat": ["IAB1"]}}})
        fragments = runtime.orchestrator.build_ortb2_fragments(
            ortb2={"site": {"page": "/home"}},
            bidder_ortb2={"videoco": {"user": {"id": "u1"}}, "bannerco": {"site": {"page": "/b"}}},
        )
        assert fragments["global"] == {"site": {"domain": "example.com", "page": "/home"}}
        assert fragments["bidder"]["videoco"] == {"site": {"cat": ["IAB1"]}, "user": {"id": "u1"}}
        assert fragments["bidder"]["bannerco"] == {"site": {"page": "/b"}}


class TestAuctionLifecycle:
    @pytest.mark.asyncio
    async def test_ends_and_calls_back_when_every_bidder_answered(self, runtime):
        handler = MagicMock()
        await runtime.request_bids(ad_units=[slot("slot1", "bannerco")], bids_back_handler=handler, auction_id="a1")
        bid = runtime.add_bid_response("a1", {"ad_unit_code": "slot1", "bidder": "bannerco", "cpm": 1.2, "ad": "<div/>"})

        handler.assert_called_once()
        grouped, timed_out, auction_id = handler.call_args.args
        assert grouped == {"slot1": {"bids": [bid]}}
        assert timed_out is False
        assert auction_id == "a1"

    @pytest.mark.asyncio
    async def test_deadline_ends_auction_with_timeout(self, runtime):
        handler = MagicMock()
        await runtime.request_bids(ad_units=[slot("slot1", "bannerco")], bids_back_handler=handler, timeout=10)
        await asyncio.sleep(0.05)

        handler.assert_called_once()
        assert handler.call_args.args[1] is True
        event_types = [entry["event_type"] for entry in runtime.get_events()]
        assert Events.BID_TIMEOUT.value in event_types
        assert event_types.index("auctionInit") < event_types.index("auctionEnd")

    @pytest.mark.asyncio
    async def test_server_side_bids_are_tagged_s2s(self, runtime):
        await runtime.request_bids(ad_units=[slot("slot1", "serverbid", "bannerco")], auction_id="a1")
        bid = runtime.add_bid_response("a1", {"ad_unit_code": "slot1", "bidder": "serverbid", "cpm": 2})
        assert bid.source == "s2s"
        requested = {request.bidder: request.source for request in runtime.auctions.get_bids_requested()}
        assert requested == {"serverbid": "s2s", "bannerco": "client"}
