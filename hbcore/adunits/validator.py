"""Structural validation and normalisation of ad unit declarations.

Every function here works on deep copies; the caller's ad units are never
mutated. Structural problems drop the whole unit, media-type problems only
drop the offending field.
"""

from __future__ import annotations

import logging
import math
from copy import deepcopy
from typing import Any, Callable, Iterable

from ..events.bus import EventBus
from ..events.constants import Events

logger = logging.getLogger(__name__)

AdUnit = dict[str, Any]
MediaTypeValidator = Callable[[AdUnit], AdUnit]

NATIVE_ARRAY_FIELDS = (
    ("image", "sizes"),
    ("image", "aspect_ratios"),
    ("icon", "sizes"),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _is_size_pair(value: Any) -> bool:
    return isinstance(value, list) and len(value) == 2 and all(_is_integer(v) for v in value)


def validate_sizes(sizes: Any, target_length: int | None = None) -> list[list[int]]:
    """Return ``sizes`` as a list of ``[w, h]`` pairs, or ``[]`` when unusable.

    A bare ``[w, h]`` pair is wrapped into a one-element list. With
    ``target_length`` the raw value must have exactly that many entries.
    """
    if not isinstance(sizes, list):
        return []
    if target_length is not None and len(sizes) != target_length:
        return []
    if not sizes:
        return []
    if all(_is_size_pair(size) for size in sizes):
        return sizes
    if _is_size_pair(sizes):
        return [sizes]
    return []


def _label(ad_unit: AdUnit) -> str:
    return f"adUnit.code '{ad_unit.get('code')}'"


def validate_ad_unit(ad_unit: AdUnit) -> AdUnit | None:
    """Structural checks; returns a normalised copy or ``None`` to drop the unit."""
    bids = ad_unit.get("bids")
    if bids is not None and not isinstance(bids, list):
        logger.error("%s defines 'adUnit.bids' that is not an array. Removing adUnit from auction", _label(ad_unit))
        return None
    if not bids and ad_unit.get("ortb2Imp") is None:
        logger.error("%s has no 'adUnit.bids' and no 'adUnit.ortb2Imp'. Removing adUnit from auction", _label(ad_unit))
        return None
    media_types = ad_unit.get("mediaTypes")
    if not media_types or not isinstance(media_types, dict):
        logger.error(
            "%s does not define a 'mediaTypes' object. This is a required field for the auction, "
            "so this adUnit has been removed.",
            _label(ad_unit),
        )
        return None
    validated = deepcopy(ad_unit)
    if validated.get("ortb2Imp") is not None and not bids:
        # a None bidder is a placeholder only server-side adapters will see
        validated["bids"] = [{"bidder": None}]
        logger.info("%s defines 'adUnit.ortb2Imp' with no 'adUnit.bids'; it will be seen only by S2S adapters", _label(ad_unit))
    return validated


def validate_banner(ad_unit: AdUnit) -> AdUnit:
    validated = deepcopy(ad_unit)
    banner = validated["mediaTypes"]["banner"]
    sizes = validate_sizes(banner.get("sizes") if isinstance(banner, dict) else None)
    if sizes:
        banner["sizes"] = sizes
        # deprecated mirror of mediaTypes.banner.sizes
        validated["sizes"] = sizes
    else:
        logger.error(
            "Detected a mediaTypes.banner object without a proper sizes field. Please ensure the sizes "
            "are listed like: [[300, 250], ...]. Removing invalid mediaTypes.banner object from request."
        )
        del validated["mediaTypes"]["banner"]
    return validated


def validate_video(ad_unit: AdUnit) -> AdUnit:
    validated = deepcopy(ad_unit)
    video = validated["mediaTypes"]["video"]
    if not isinstance(video, dict) or video.get("playerSize") is None:
        return validated
    player_size = video["playerSize"]
    single_pair = isinstance(player_size, list) and bool(player_size) and _is_number(player_size[0])
    sizes = validate_sizes(player_size, 2 if single_pair else 1)
    if sizes:
        if single_pair:
            logger.info("Transforming video.playerSize from [640,480] to [[640,480]] so it's in the proper format.")
        video["playerSize"] = sizes
        # deprecated mirror of mediaTypes.video.playerSize
        validated["sizes"] = sizes
    else:
        logger.error(
            "Detected incorrect configuration of mediaTypes.video.playerSize. Please specify only one set "
            "of dimensions in a format like: [[640, 480]]. Removing invalid mediaTypes.video.playerSize "
            "property from request."
        )
        del video["playerSize"]
    return validated


def validate_native(ad_unit: AdUnit) -> AdUnit:
    validated = deepcopy(ad_unit)
    native = validated["mediaTypes"]["native"]
    if not isinstance(native, dict):
        return validated
    for asset, field in NATIVE_ARRAY_FIELDS:
        block = native.get(asset)
        if isinstance(block, dict) and block.get(field) and not isinstance(block[field], list):
            logger.error(
                "Please use an array of sizes for native.%s.%s field. Removing invalid "
                "mediaTypes.native.%s.%s property from request.",
                asset,
                field,
                asset,
                field,
            )
            del block[field]
    return validated


def validate_position(ad_unit: AdUnit, media_type: str, events: EventBus | None = None) -> AdUnit:
    config = ad_unit["mediaTypes"].get(media_type)
    if not isinstance(config, dict) or "pos" not in config:
        return ad_unit
    pos = config["pos"]
    if _is_number(pos) and math.isfinite(pos):
        return ad_unit
    warning = f"Value of property 'pos' on ad unit {ad_unit.get('code')} should be of type: Number"
    logger.warning(warning)
    if events is not None:
        events.emit(Events.AUCTION_DEBUG, {"type": "WARNING", "arguments": warning})
    del config["pos"]
    return ad_unit


# Applied in this order; each validator receives the previous one's output.
MEDIA_TYPE_VALIDATORS: dict[str, MediaTypeValidator] = {
    "banner": validate_banner,
    "video": validate_video,
    "native": validate_native,
}


def check_ad_unit_setup(ad_unit: AdUnit, events: EventBus | None = None) -> AdUnit | None:
    validated = validate_ad_unit(ad_unit)
    if validated is None:
        return None
    declared = validated["mediaTypes"]
    current = validated
    for media_type, validator in MEDIA_TYPE_VALIDATORS.items():
        # an empty config still counts as declared and gets validated
        if declared.get(media_type) is None:
            continue
        current = validator(current)
        if media_type in current["mediaTypes"]:
            current = validate_position(current, media_type, events)
    return {**validated, **current}


def validate_ad_units(ad_units: Iterable[AdUnit], events: EventBus | None = None) -> list[AdUnit]:
    validated_units = []
    for ad_unit in ad_units:
        validated = check_ad_unit_setup(ad_unit, events)
        if validated is not None:
            validated_units.append(validated)
    return validated_units
