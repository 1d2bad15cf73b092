"""Expose bidder registry information."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..auction.orchestrator import s2s_bidders_from
from ..bidders.registry import DEFAULT_MEDIA_TYPES, BidderRegistry
from ..runtime import Runtime

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_registry(request: Request) -> BidderRegistry:
    return request.app.state.bidder_registry


def _get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


@router.get("/bidders")
async def bidders(
    registry: BidderRegistry = Depends(_get_registry),
    runtime: Runtime = Depends(_get_runtime),
) -> list[dict[str, Any]]:
    server_side = set(s2s_bidders_from(runtime.get_config("s2s_config")))
    inventory = []
    for bidder in registry.all():
        inventory.append(
            {
                "id": bidder.name,
                "endpoint": bidder.endpoint,
                "media_types": list(bidder.supported_media_types or DEFAULT_MEDIA_TYPES),
                "alias_of": bidder.alias_of,
                "source": "s2s" if bidder.name in server_side else "client",
                "status": "active",
            }
        )
    return inventory
