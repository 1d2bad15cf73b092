"""Shared fixtures for the unit tests."""

from __future__ import annotations

import pytest

from hbcore.bidders.registry import BidderRegistry
from hbcore.config.store import ConfigStore
from hbcore.runtime import Runtime

BIDDER_ENTRIES = [
    {"name": "bannerco", "supported_media_types": ["banner"]},
    {"name": "videoco", "supported_media_types": ["video"], "aliases": ["videoco_alt"]},
    {"name": "multico", "supported_media_types": ["banner", "video", "native"]},
    {"name": "serverbid", "supported_media_types": ["banner"]},
    {"name": "x", "supported_media_types": ["banner"]},
]


@pytest.fixture
def registry() -> BidderRegistry:
    return BidderRegistry.from_entries(BIDDER_ENTRIES)


@pytest.fixture
def config_defaults() -> dict:
    return {
        "debug": False,
        "bidder_timeout": 3000,
        "auction_options": {"suppress_stale_render": False},
        "s2s_config": [{"bidders": ["serverbid"], "timeout": 1000}],
        "ortb2": {"site": {"domain": "example.com"}},
    }


@pytest.fixture
def runtime(registry, config_defaults) -> Runtime:
    return Runtime(config=ConfigStore(config_defaults), registry=registry)
