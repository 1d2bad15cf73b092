"""Tracks which auction is current for each ad unit and picks its winners."""

from __future__ import annotations

import logging
from typing import Iterable

from ..auction.manager import AuctionManager
from ..auction.models import Bid
from ..auction.selection import is_not_expired, is_unused, select_highest_cpm

logger = logging.getLogger(__name__)


class TargetingState:
    def __init__(self, auctions: AuctionManager) -> None:
        self._auctions = auctions
        self._latest: dict[str, str] = {}

    def set_latest_auction_for_ad_unit(self, ad_unit_code: str, auction_id: str) -> None:
        # last writer wins; older auctions keep running but stop being current
        self._latest[ad_unit_code] = auction_id

    def latest_auction_for(self, ad_unit_code: str) -> str | None:
        return self._latest.get(ad_unit_code)

    def current_bids(self, ad_unit_code: str) -> list[Bid]:
        auction_id = self._latest.get(ad_unit_code)
        if auction_id is None:
            return []
        return [bid for bid in self._auctions.get_all_bids_for_ad_unit_code(ad_unit_code) if bid.auction_id == auction_id]

    def get_winning_bids(self, ad_unit_code: str | Iterable[str] | None = None) -> list[Bid]:
        if ad_unit_code is None:
            codes = list(self._latest)
        elif isinstance(ad_unit_code, str):
            codes = [ad_unit_code]
        else:
            codes = list(ad_unit_code)
        winners = []
        for code in codes:
            candidates = [bid for bid in self.current_bids(code) if is_unused(bid) and is_not_expired(bid)]
            winner = select_highest_cpm(candidates)
            if winner is not None:
                winners.append(winner)
        return winners
