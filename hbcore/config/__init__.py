"""Configuration helpers for the header-bidding core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"
_DEFAULT_BIDDER_CONFIG = Path(__file__).resolve().parent / "bidders.yaml"

DEFAULT_BIDDER_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class S2SConfig:
    account_id: str
    enabled: bool
    bidders: tuple[str, ...]
    endpoint: str
    timeout_ms: int


@dataclass(frozen=True)
class AuctionConfig:
    bidder_timeout_ms: int
    suppress_stale_render: bool
    distribution: Mapping[str, Any]


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    auction: AuctionConfig
    s2s: tuple[S2SConfig, ...]
    ortb2: Mapping[str, Any]
    bidder_config: Mapping[str, Mapping[str, Any]]
    debug: bool

    def runtime_defaults(self) -> dict[str, Any]:
        """Initial topics for the mutable ConfigStore."""
        return {
            "debug": self.debug,
            "bidder_timeout": self.auction.bidder_timeout_ms,
            "auction_options": {"suppress_stale_render": self.auction.suppress_stale_render},
            "s2s_config": [
                {
                    "account_id": block.account_id,
                    "enabled": block.enabled,
                    "bidders": list(block.bidders),
                    "endpoint": block.endpoint,
                    "timeout": block.timeout_ms,
                }
                for block in self.s2s
            ],
            "ortb2": dict(self.ortb2),
        }


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def _parse_s2s(raw: Any) -> tuple[S2SConfig, ...]:
    if not raw:
        return ()
    blocks = raw if isinstance(raw, list) else [raw]
    return tuple(
        S2SConfig(
            account_id=str(block.get("account_id", "")),
            enabled=bool(block.get("enabled", True)),
            bidders=tuple(block.get("bidders") or ()),
            endpoint=str(block.get("endpoint", "")),
            timeout_ms=int(block.get("timeout_ms", 1000)),
        )
        for block in blocks
    )


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    auction = data.get("auction", {})
    options = auction.get("options") or {}
    return ServerConfig(
        listen=data.get("listen", {}),
        auction=AuctionConfig(
            bidder_timeout_ms=int(auction.get("bidder_timeout_ms", DEFAULT_BIDDER_TIMEOUT_MS)),
            suppress_stale_render=bool(options.get("suppress_stale_render", False)),
            distribution=dict(auction.get("distribution") or {}),
        ),
        s2s=_parse_s2s(data.get("s2s_config")),
        ortb2=dict(data.get("ortb2") or {}),
        bidder_config={
            str(name): dict(cfg or {}) for name, cfg in (data.get("bidder_config") or {}).items()
        },
        debug=bool(data.get("debug", False)),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("HBCORE_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))


def get_bidder_config_path() -> Path:
    return Path(os.getenv("HBCORE_BIDDERS_PATH", _DEFAULT_BIDDER_CONFIG))
