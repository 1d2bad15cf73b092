"""Winner selection helpers."""

from __future__ import annotations

from typing import Iterable, Optional

from ..events.constants import BidStatus
from .models import Bid


def select_highest_cpm(bids: Iterable[Bid]) -> Optional[Bid]:
    # first bid wins ties, matching arrival order
    best: Bid | None = None
    for bid in bids:
        if best is None or bid.cpm > best.cpm:
            best = bid
    return best


def is_unused(bid: Bid) -> bool:
    return bid.status != BidStatus.RENDERED


def is_not_expired(bid: Bid) -> bool:
    return not bid.is_expired()
