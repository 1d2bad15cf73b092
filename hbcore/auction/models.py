"""Shared auction data structures."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Any

from ..render.renderer import Renderer

# grace period added to a bid's ttl before it is considered expired
TTL_BUFFER_SECONDS = 1


@dataclass
class BidRequest:
    bid_id: str
    ad_unit_code: str
    bidder: str | None
    transaction_id: str | None
    params: dict[str, Any]
    source: str


@dataclass
class Bid:
    ad_unit_code: str
    bidder: str
    cpm: float
    ad_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    original_cpm: float | None = None
    ad: str | None = None
    ad_url: str | None = None
    renderer: Renderer | None = None
    width: int | None = None
    height: int | None = None
    media_type: str = "banner"
    creative_id: str | None = None
    status: str | None = None
    auction_id: str | None = None
    transaction_id: str | None = None
    source: str = "client"
    burl: str | None = None
    ttl: int = 300
    response_timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Bid":
        try:
            cpm = float(payload["cpm"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("bid cpm missing or not numeric") from exc
        if not payload.get("ad_unit_code"):
            raise ValueError("bid ad_unit_code is required")
        if not payload.get("bidder"):
            raise ValueError("bid bidder is required")
        renderer_cfg = payload.get("renderer")
        renderer = Renderer(url=renderer_cfg.get("url"), config=renderer_cfg.get("config")) if renderer_cfg else None
        original = payload.get("original_cpm")
        kwargs: dict[str, Any] = {
            "ad_unit_code": payload["ad_unit_code"],
            "bidder": payload["bidder"],
            "cpm": cpm,
            "original_cpm": float(original) if original is not None else None,
            "ad": payload.get("ad"),
            "ad_url": payload.get("ad_url"),
            "renderer": renderer,
            "width": payload.get("width"),
            "height": payload.get("height"),
            "media_type": payload.get("media_type", "banner"),
            "creative_id": payload.get("creative_id"),
            "source": payload.get("source", "client"),
            "burl": payload.get("burl"),
            "ttl": int(payload.get("ttl", 300)),
        }
        if payload.get("ad_id"):
            kwargs["ad_id"] = payload["ad_id"]
        return cls(**kwargs)

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.response_timestamp + self.ttl + TTL_BUFFER_SECONDS <= now

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["renderer"] = self.renderer.to_dict() if self.renderer else None
        return data
