"""orjson helpers for messages leaving the process."""

from __future__ import annotations

from dataclasses import is_dataclass
from enum import Enum
from typing import Any

import orjson

_ORJSON_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS


def _default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value):
        return {key: getattr(value, key) for key in value.__dataclass_fields__}
    return repr(value)


def dumps(payload: Any) -> bytes:
    """Serialize with sorted keys; objects exposing ``to_dict`` are expanded."""
    return orjson.dumps(payload, default=_default, option=_ORJSON_OPTIONS)


def to_jsonable(payload: Any) -> Any:
    return orjson.loads(dumps(payload))
