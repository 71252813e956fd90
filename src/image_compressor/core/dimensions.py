from __future__ import annotations

import math
from typing import Any

from image_compressor.core.config import Config
from image_compressor.core.errors import InvalidBounds
from image_compressor.core.models import CustomBounds, Preset, ResizePolicy, ResolvedDimensions

MAX_DIMENSION = Config.MAX_DIMENSION


def round_half_away_from_zero(value: float) -> int:
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def _parse_axis(label: str, value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidBounds(f"{label} is required.")

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidBounds(f"{label} is required.")
        if not text.isdecimal():
            raise InvalidBounds(f"{label} must be a whole number of pixels, got '{text}'.")
        number = int(text)
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidBounds(f"{label} must be a whole number of pixels, got {value}.")
        number = int(value)
    elif isinstance(value, int):
        number = value
    else:
        raise InvalidBounds(f"{label} must be a number, got {type(value).__name__}.")

    if number <= 0:
        raise InvalidBounds(f"{label} must be greater than zero.")
    if number > MAX_DIMENSION:
        raise InvalidBounds(f"{label} must be at most {MAX_DIMENSION} pixels.")
    return number


def validate_custom_bounds(width: Any, height: Any) -> CustomBounds:
    """Parse user supplied maximum dimensions.

    Accepts ints, integral floats and digit-only strings (as typed in the UI).
    Raises InvalidBounds for anything missing, non-positive, fractional or
    larger than MAX_DIMENSION.
    """
    return CustomBounds(
        width=_parse_axis("Width", width),
        height=_parse_axis("Height", height),
    )


def _bounds_for(preset: Preset, custom_bounds: CustomBounds | None) -> tuple[int, int]:
    if not preset.is_custom:
        return preset.max_width, preset.max_height
    if custom_bounds is None:
        raise InvalidBounds("Custom preset requires width and height.")
    return _parse_axis("Width", custom_bounds.width), _parse_axis("Height", custom_bounds.height)


def resolve(
    source_width: int,
    source_height: int,
    preset: Preset,
    custom_bounds: CustomBounds | None = None,
) -> ResolvedDimensions:
    if source_width <= 0 or source_height <= 0:
        raise InvalidBounds(f"Source dimensions must be positive, got {source_width}x{source_height}.")

    max_width, max_height = _bounds_for(preset, custom_bounds)

    if preset.resize_policy is ResizePolicy.EXACT_RESIZE:
        return ResolvedDimensions(width=max_width, height=max_height)

    ratio = min(max_width / source_width, max_height / source_height, 1.0)
    if ratio == 1.0:
        return ResolvedDimensions(width=source_width, height=source_height)

    width = min(max_width, max(1, round_half_away_from_zero(source_width * ratio)))
    height = min(max_height, max(1, round_half_away_from_zero(source_height * ratio)))
    return ResolvedDimensions(width=width, height=height)
