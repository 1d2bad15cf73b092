"""Drop bidders that cannot serve any media type an ad unit asks for."""

from __future__ import annotations

import logging
from typing import Any, Collection

from ..adunits.counter import AdUnitCounter
from ..bidders.registry import DEFAULT_MEDIA_TYPES, BidderConfig, BidderRegistry

logger = logging.getLogger(__name__)


def requested_media_types(ad_unit: dict[str, Any]) -> list[str]:
    media_types = ad_unit.get("mediaTypes")
    if media_types is None:
        return list(DEFAULT_MEDIA_TYPES)
    return list(media_types)


def unsupported_bidder_message(ad_unit: dict[str, Any], bidder: str) -> str:
    media_types = ", ".join(requested_media_types(ad_unit))
    return (
        f"{ad_unit.get('code')} is a {media_types} ad unit containing bidders that don't "
        f"support {media_types}: {bidder}. This bidder won't fetch demand."
    )


def filter_eligibility(
    ad_units: list[dict[str, Any]],
    *,
    registry: BidderRegistry,
    s2s_bidders: Collection[str],
    counter: AdUnitCounter,
) -> list[dict[str, Any]]:
    """Remove ineligible bid entries in place and return ``ad_units``.

    Server-side bidders and the ``None`` placeholder are capability agnostic
    and never filtered.
    """
    for ad_unit in ad_units:
        requested = requested_media_types(ad_unit)
        bidders = [bid.get("bidder") for bid in ad_unit.get("bids", [])]
        client_bidders = [b for b in bidders if b is not None and b not in s2s_bidders]
        for bidder in dict.fromkeys(client_bidders):
            # unregistered bidders fall back to the default media types
            cfg = registry.lookup(bidder) or BidderConfig(name=bidder)
            if cfg.supports(requested):
                counter.increment_bidder_requests(ad_unit.get("code"), bidder)
            else:
                logger.warning(unsupported_bidder_message(ad_unit, bidder))
                ad_unit["bids"] = [bid for bid in ad_unit.get("bids", []) if bid.get("bidder") != bidder]
        counter.increment_requests(ad_unit.get("code"))
    return ad_units
