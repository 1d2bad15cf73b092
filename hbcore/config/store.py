"""Mutable runtime configuration with a per-bidder override layer."""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

_MISSING = object()


def merge_deep(target: dict[str, Any], *sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge ``sources`` into ``target`` in place; later sources win.

    Nested mappings merge recursively. Lists are unioned: items from the
    source are appended unless an equal item is already present.
    """
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            if isinstance(value, Mapping):
                current = target.get(key)
                if not isinstance(current, dict):
                    current = {}
                    target[key] = current
                merge_deep(current, value)
            elif isinstance(value, list):
                current = target.get(key)
                if isinstance(current, list):
                    for item in value:
                        if item not in current:
                            current.append(deepcopy(item))
                else:
                    target[key] = deepcopy(value)
            else:
                target[key] = value
    return target


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    node: Any = data
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


class ConfigStore:
    def __init__(self, defaults: Mapping[str, Any] | None = None) -> None:
        self._config: dict[str, Any] = deepcopy(dict(defaults or {}))
        self._bidder_config: dict[str, dict[str, Any]] = {}

    def get(self, key: str | None = None, default: Any = None, *, bidder: str | None = None) -> Any:
        if key is None:
            return deepcopy(self._config)
        if bidder is not None:
            override = _lookup(self._bidder_config.get(bidder, {}), key)
            if override is not _MISSING:
                return deepcopy(override)
        value = _lookup(self._config, key)
        return default if value is _MISSING else deepcopy(value)

    def set_config(self, options: Mapping[str, Any]) -> None:
        if not isinstance(options, Mapping):
            logger.error("set_config options must be a mapping")
            return
        for topic, value in options.items():
            current = self._config.get(topic)
            if isinstance(current, dict) and isinstance(value, Mapping):
                self._config[topic] = {**current, **deepcopy(dict(value))}
            else:
                self._config[topic] = deepcopy(value)

    def merge_config(self, options: Mapping[str, Any]) -> dict[str, Any]:
        merge_deep(self._config, options)
        return self.get()

    def set_bidder_config(self, bidders: Iterable[str], config: Mapping[str, Any]) -> None:
        bidders = list(bidders or ())
        if not bidders:
            logger.error("set_bidder_config requires at least one bidder")
            return
        for bidder in bidders:
            merge_deep(self._bidder_config.setdefault(bidder, {}), config)

    def get_bidder_config(self) -> dict[str, dict[str, Any]]:
        return deepcopy(self._bidder_config)

    def reset(self, defaults: Mapping[str, Any] | None = None) -> None:
        self._config = deepcopy(dict(defaults or {}))
        self._bidder_config = {}
