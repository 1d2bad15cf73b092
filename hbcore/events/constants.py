"""Event names, bid statuses, and render failure reasons."""

from __future__ import annotations

from enum import Enum


class Events(str, Enum):
    AUCTION_INIT = "auctionInit"
    AUCTION_END = "auctionEnd"
    BID_REQUESTED = "bidRequested"
    BID_RESPONSE = "bidResponse"
    BID_TIMEOUT = "bidTimeout"
    BID_WON = "bidWon"
    NO_BID = "noBid"
    SET_TARGETING = "setTargeting"
    REQUEST_BIDS = "requestBids"
    ADD_AD_UNITS = "addAdUnits"
    AD_RENDER_FAILED = "adRenderFailed"
    AD_RENDER_SUCCEEDED = "adRenderSucceeded"
    AUCTION_DEBUG = "auctionDebug"
    STALE_RENDER = "staleRender"


class BidStatus(str, Enum):
    TARGETING_SET = "targetingSet"
    RENDERED = "rendered"


class AdRenderFailedReason(str, Enum):
    PREVENT_WRITING_ON_MAIN_DOCUMENT = "preventWritingOnMainDocument"
    NO_AD = "noAd"
    EXCEPTION = "exception"
    CANNOT_FIND_AD = "cannotFindAd"
    MISSING_DOC_OR_ADID = "missingDocOrAdid"


class AuctionStatus(str, Enum):
    STARTED = "started"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
