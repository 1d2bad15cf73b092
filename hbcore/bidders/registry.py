"""Bidder registry backed by YAML configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable

import yaml

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPES: tuple[str, ...] = ("banner",)


@dataclass(frozen=True)
class BidderConfig:
    name: str
    endpoint: str = ""
    supported_media_types: tuple[str, ...] = ()
    alias_of: str | None = None

    def supports(self, media_types: Iterable[str]) -> bool:
        supported = set(self.supported_media_types or DEFAULT_MEDIA_TYPES)
        return any(media_type in supported for media_type in media_types)


class BidderRegistry:
    def __init__(self, config_path: Path | None = None) -> None:
        self._path = config_path
        self._bidders: dict[str, BidderConfig] = {}
        if config_path is not None:
            self.reload()

    @classmethod
    def from_entries(cls, entries: Iterable[dict[str, Any]]) -> "BidderRegistry":
        registry = cls()
        registry._load_entries(entries)
        return registry

    def reload(self) -> None:
        data = yaml.safe_load(self._path.read_text()) or {}
        self._load_entries(data.get("bidders", []))

    def _load_entries(self, entries: Iterable[dict[str, Any]]) -> None:
        bidders: dict[str, BidderConfig] = {}
        for item in entries:
            cfg = BidderConfig(
                name=item["name"],
                endpoint=item.get("endpoint", ""),
                supported_media_types=tuple(item.get("supported_media_types") or ()),
            )
            bidders[cfg.name] = cfg
            for alias in item.get("aliases") or ():
                bidders[alias] = replace(cfg, name=alias, alias_of=cfg.name)
        self._bidders = bidders

    def all(self) -> Iterable[BidderConfig]:
        return self._bidders.values()

    def lookup(self, name: str | None) -> BidderConfig | None:
        if name is None:
            return None
        return self._bidders.get(name)

    def alias(self, bidder_code: str, alias: str) -> BidderConfig | None:
        source = self._bidders.get(bidder_code)
        if source is None:
            logger.error("bidder %s is not registered; alias %s not created", bidder_code, alias)
            return None
        if alias in self._bidders:
            logger.warning("alias %s already registered, replacing it", alias)
        cfg = replace(source, name=alias, alias_of=source.alias_of or source.name)
        self._bidders[alias] = cfg
        return cfg
