"""Interceptable stages: named operations with prioritised before/after handlers."""

from __future__ import annotations

import inspect
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

DEFAULT_PRIORITY = 10


class StagePhase(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass
class StageCall:
    """State of one invocation flowing through a stage."""

    args: list[Any]
    kwargs: dict[str, Any]
    result: Any = None
    bailed: bool = False

    def bail(self, result: Any = None) -> None:
        self.result = result
        self.bailed = True


@dataclass(frozen=True)
class _Entry:
    priority: int
    phase: StagePhase
    handler: Callable[[StageCall], Any]
    seq: int = field(compare=False)


async def _settle(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Stage:
    def __init__(self, name: str, core: Callable[..., Any]) -> None:
        self.name = name
        self._core = core
        self._entries: list[_Entry] = []
        self._seq = itertools.count()

    def before(self, handler: Callable[[StageCall], Any], priority: int = DEFAULT_PRIORITY) -> None:
        self._register(handler, priority, StagePhase.BEFORE)

    def after(self, handler: Callable[[StageCall], Any], priority: int = DEFAULT_PRIORITY) -> None:
        self._register(handler, priority, StagePhase.AFTER)

    def remove(self, handler: Callable[[StageCall], Any]) -> None:
        self._entries = [entry for entry in self._entries if entry.handler != handler]

    def handlers(self, phase: StagePhase) -> list[Callable[[StageCall], Any]]:
        return [entry.handler for entry in self._entries if entry.phase is phase]

    def _register(self, handler: Callable[[StageCall], Any], priority: int, phase: StagePhase) -> None:
        self._entries.append(_Entry(priority, phase, handler, next(self._seq)))
        # higher priority first; equal priorities keep registration order
        self._entries.sort(key=lambda entry: (-entry.priority, entry.seq))

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        call = StageCall(list(args), dict(kwargs))
        for handler in self.handlers(StagePhase.BEFORE):
            await _settle(handler(call))
            if call.bailed:
                break
        if not call.bailed:
            call.result = await _settle(self._core(*call.args, **call.kwargs))
        for handler in self.handlers(StagePhase.AFTER):
            await _settle(handler(call))
        return call.result


class HookRegistry:
    def __init__(self) -> None:
        self._stages: dict[str, Stage] = {}

    def wrap(self, name: str, core: Callable[..., Any]) -> Stage:
        if name in self._stages:
            raise ValueError(f"stage {name} already registered")
        stage = Stage(name, core)
        self._stages[name] = stage
        return stage

    def __getitem__(self, name: str) -> Stage:
        return self._stages[name]

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def names(self) -> list[str]:
        return sorted(self._stages)
