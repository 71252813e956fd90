from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from PIL import Image


class ResizePolicy(Enum):
    FIT_WITHIN_BOUNDS = "fit_within_bounds"
    EXACT_RESIZE = "exact_resize"


@dataclass(frozen=True, slots=True)
class Preset:
    key: str
    name: str
    max_width: int
    max_height: int
    target_byte_budget: int | None
    resize_policy: ResizePolicy = ResizePolicy.FIT_WITHIN_BOUNDS
    description: str = ""

    @property
    def is_custom(self) -> bool:
        return self.key == "custom"

    @property
    def is_budgeted(self) -> bool:
        return self.target_byte_budget is not None


@dataclass(frozen=True, slots=True)
class SourceImage:
    image: Image.Image
    width: int
    height: int
    byte_size: int
    name: str = "image.jpg"
    format: str | None = None


@dataclass(frozen=True, slots=True)
class CustomBounds:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class ResolvedDimensions:
    width: int
    height: int

    def as_tuple(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True, slots=True)
class CompressionRequest:
    source: SourceImage
    preset: Preset
    quality_hint: int
    custom_bounds: CustomBounds | None = None


@dataclass(frozen=True, slots=True)
class CompressedResult:
    encoded_bytes: bytes
    width: int
    height: int
    byte_size: int
    quality_used: int
    attempts: tuple[int, ...] = ()
    within_budget: bool = True

    def reduction_percent(self, original_bytes: int) -> int:
        if original_bytes <= 0:
            return 0
        return math.floor((original_bytes - self.byte_size) * 100 / original_bytes + 0.5)
