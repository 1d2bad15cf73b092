"""Expose the loaded server config and the live runtime config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig
from ..runtime import Runtime

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


def _get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
    runtime: Runtime = Depends(_get_runtime),
) -> dict:
    s2s_blocks = [
        {
            "account_id": block.account_id,
            "enabled": block.enabled,
            "bidders": list(block.bidders),
            "timeout_ms": block.timeout_ms,
        }
        for block in config.s2s
    ]
    return {
        "bidder_timeout_ms": runtime.get_config("bidder_timeout"),
        "suppress_stale_render": runtime.get_config("auction_options.suppress_stale_render", False),
        "s2s_config": s2s_blocks,
        "pubsub_provider": config.auction.distribution.get("backend", "local"),
        "version": request.app.version,
        "runtime": runtime.get_config(),
        "bidder_config": runtime.config.get_bidder_config(),
        "stages": runtime.hooks.names(),
        "enabled_analytics": list(runtime.context.enabled_analytics),
    }
