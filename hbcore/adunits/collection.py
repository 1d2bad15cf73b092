"""The page-level list of candidate ad units."""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Iterable

from ..events.bus import EventBus
from ..events.constants import Events

logger = logging.getLogger(__name__)


class AdUnitCollection:
    def __init__(self, events: EventBus) -> None:
        self._events = events
        self._units: list[dict[str, Any]] = []

    def add_units(self, ad_units: dict[str, Any] | Iterable[dict[str, Any]]) -> None:
        units = [ad_units] if isinstance(ad_units, dict) else list(ad_units)
        logger.info("Adding %d ad unit(s)", len(units))
        self._units.extend(deepcopy(units))
        self._events.emit(Events.ADD_AD_UNITS)

    def remove_units(self, codes: str | Iterable[str] | None = None) -> None:
        if not codes:
            self._units = []
            return
        targets = {codes} if isinstance(codes, str) else set(codes)
        self._units = [unit for unit in self._units if unit.get("code") not in targets]

    def all(self) -> list[dict[str, Any]]:
        return deepcopy(self._units)

    def codes(self) -> list[str]:
        return [unit.get("code") for unit in self._units]

    def __len__(self) -> int:
        return len(self._units)
