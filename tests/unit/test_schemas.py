"""Unit tests for the request schemas."""

from __future__ import annotations

import pytest
from jsonschema import ValidationError

from hbcore.validation.validator import get_schema_registry
from scripts.validate_schemas import validate


def test_every_schema_is_valid_and_loaded():
    checked = validate()
    assert checked == get_schema_registry().names()
    assert {"ad_units", "bid_response", "mark_used", "render_request", "request_bids"} <= set(checked)


def test_bid_response_requires_numeric_cpm():
    registry = get_schema_registry()
    registry.validate("bid_response", {"auction_id": "a", "bid": {"ad_unit_code": "s", "bidder": "b", "cpm": 0.5}})
    with pytest.raises(ValidationError):
        registry.validate("bid_response", {"auction_id": "a", "bid": {"ad_unit_code": "s", "bidder": "b", "cpm": "1"}})


def test_unknown_schema_name():
    with pytest.raises(ValueError):
        get_schema_registry().validate("nope", {})
