"""Per ad unit request counters used for instrumentation."""

from __future__ import annotations

from collections import Counter


class AdUnitCounter:
    def __init__(self) -> None:
        self._requests: Counter[str] = Counter()
        self._bidder_requests: Counter[tuple[str, str]] = Counter()
        self._bidder_wins: Counter[tuple[str, str]] = Counter()

    def increment_requests(self, ad_unit_code: str) -> int:
        self._requests[ad_unit_code] += 1
        return self._requests[ad_unit_code]

    def increment_bidder_requests(self, ad_unit_code: str, bidder: str) -> int:
        self._bidder_requests[(ad_unit_code, bidder)] += 1
        return self._bidder_requests[(ad_unit_code, bidder)]

    def increment_bidder_wins(self, ad_unit_code: str, bidder: str) -> int:
        self._bidder_wins[(ad_unit_code, bidder)] += 1
        return self._bidder_wins[(ad_unit_code, bidder)]

    def requests(self, ad_unit_code: str) -> int:
        return self._requests[ad_unit_code]

    def bidder_requests(self, ad_unit_code: str, bidder: str) -> int:
        return self._bidder_requests[(ad_unit_code, bidder)]

    def bidder_wins(self, ad_unit_code: str, bidder: str) -> int:
        return self._bidder_wins[(ad_unit_code, bidder)]

    def snapshot(self) -> dict[str, dict]:
        return {
            "requests": dict(self._requests),
            "bidder_requests": {f"{code}:{bidder}": n for (code, bidder), n in self._bidder_requests.items()},
            "bidder_wins": {f"{code}:{bidder}": n for (code, bidder), n in self._bidder_wins.items()},
        }
