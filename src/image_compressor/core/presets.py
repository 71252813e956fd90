from __future__ import annotations

from image_compressor.core.errors import UnknownPreset
from image_compressor.core.models import Preset, ResizePolicy

KB = 1024
MB = 1024 * KB

CUSTOM_PRESET = "custom"
DEFAULT_PRESET = "etsy"

PRESETS: dict[str, Preset] = {
    "etsy": Preset(
        key="etsy",
        name="Etsy",
        max_width=2000,
        max_height=2000,
        target_byte_budget=500 * KB,
        description="Perfect for product listings",
    ),
    "shopee": Preset(
        key="shopee",
        name="Shopee",
        max_width=3000,
        max_height=3000,
        target_byte_budget=2 * MB,
        description="Optimized for marketplace",
    ),
    "linkedin": Preset(
        key="linkedin",
        name="LinkedIn Banner",
        max_width=1584,
        max_height=396,
        target_byte_budget=2 * MB,
        resize_policy=ResizePolicy.EXACT_RESIZE,
        description="Professional banners",
    ),
    # Bounds here are only the defaults offered for user input.
    CUSTOM_PRESET: Preset(
        key=CUSTOM_PRESET,
        name="Custom",
        max_width=1920,
        max_height=1080,
        target_byte_budget=None,
        description="Your own settings",
    ),
}


def lookup(name: str) -> Preset:
    key = name.strip().lower() if isinstance(name, str) else None
    if key not in PRESETS:
        raise UnknownPreset(str(name))
    return PRESETS[key]


def preset_names() -> list[str]:
    return list(PRESETS)
