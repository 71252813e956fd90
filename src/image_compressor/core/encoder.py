from __future__ import annotations

import io
import logging
import threading
import time
from typing import Callable

from PIL import Image

from image_compressor.core.config import Config
from image_compressor.core.errors import Cancelled, EncodeFailure, InvalidQuality
from image_compressor.core.models import CompressedResult, Preset, ResolvedDimensions, SourceImage

logger = logging.getLogger(__name__)

Codec = Callable[[Image.Image, int], bytes]

BACKGROUND_COLOR = (255, 255, 255)


def flatten_transparency(image: Image.Image) -> Image.Image:
    """Drop the alpha channel onto a white background so JPEG saves cleanly."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, BACKGROUND_COLOR)
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def validate_quality(quality_hint: int) -> int:
    if isinstance(quality_hint, bool) or not isinstance(quality_hint, int):
        raise InvalidQuality(f"Quality must be an integer, got {quality_hint!r}.")
    if not 0 <= quality_hint <= 100:
        raise InvalidQuality(f"Quality must be between 0 and 100, got {quality_hint}.")
    return quality_hint


class QualityTargetEncoder:
    """Resamples a source image and encodes it as JPEG.

    Presets with a byte budget run a linear quality descent: start at the
    requested quality and lower it by ``quality_step`` until the output fits
    the budget or ``quality_floor`` is reached. The floor result is returned
    even if it is still over budget. Presets without a budget are encoded
    once at the requested quality.
    """

    def __init__(
        self,
        quality_step: int = Config.QUALITY_STEP,
        quality_floor: int = Config.QUALITY_FLOOR,
        codec: Codec = encode_jpeg,
        resample: Image.Resampling = Image.Resampling.LANCZOS,
    ) -> None:
        if quality_step <= 0:
            raise ValueError("quality_step must be positive.")
        if resample == Image.Resampling.NEAREST:
            raise ValueError("Nearest-neighbour resampling aliases when downscaling.")
        self.quality_step = quality_step
        self.quality_floor = quality_floor
        self.codec = codec
        self.resample = resample

    def encode(
        self,
        source: SourceImage,
        dimensions: ResolvedDimensions,
        preset: Preset,
        quality_hint: int,
        cancel_event: threading.Event | None = None,
    ) -> CompressedResult:
        quality = validate_quality(quality_hint)
        self._check_cancelled(cancel_event)

        started = time.perf_counter()
        resampled = self.resample_image(source, dimensions)

        if preset.target_byte_budget is None:
            self._check_cancelled(cancel_event)
            data = self._run_codec(resampled, quality)
            result = self._build_result(data, dimensions, quality, (quality,), within_budget=True)
        else:
            result = self._search(resampled, dimensions, quality, preset.target_byte_budget, cancel_event)

        logger.debug(
            f"Encoded {dimensions.width}x{dimensions.height} for {preset.key}",
            extra={
                "preset": preset.key,
                "quality": result.quality_used,
                "byte_size": result.byte_size,
                "duration_ms": round((time.perf_counter() - started) * 1000),
            },
        )
        return result

    def resample_image(self, source: SourceImage, dimensions: ResolvedDimensions) -> Image.Image:
        if source.width <= 0 or source.height <= 0:
            raise EncodeFailure("Cannot encode an image with zero area.")
        if dimensions.width <= 0 or dimensions.height <= 0:
            raise EncodeFailure(f"Invalid output dimensions {dimensions.width}x{dimensions.height}.")

        try:
            image = flatten_transparency(source.image)
            if image.size == dimensions.as_tuple():
                return image
            return image.resize(dimensions.as_tuple(), self.resample)
        except (OSError, ValueError) as error:
            raise EncodeFailure(f"Failed to resize image: {error}") from error

    def _search(
        self,
        image: Image.Image,
        dimensions: ResolvedDimensions,
        quality: int,
        budget: int,
        cancel_event: threading.Event | None,
    ) -> CompressedResult:
        attempts: list[int] = []
        while True:
            self._check_cancelled(cancel_event)
            data = self._run_codec(image, quality)
            attempts.append(quality)

            if len(data) <= budget:
                return self._build_result(data, dimensions, quality, tuple(attempts), within_budget=True)
            if quality <= self.quality_floor:
                logger.info(
                    f"Quality floor reached at {len(data)} bytes, over budget of {budget}",
                    extra={"quality": quality, "byte_size": len(data)},
                )
                return self._build_result(data, dimensions, quality, tuple(attempts), within_budget=False)

            quality = max(self.quality_floor, quality - self.quality_step)

    def _run_codec(self, image: Image.Image, quality: int) -> bytes:
        try:
            data = self.codec(image, quality)
        except (OSError, ValueError) as error:
            raise EncodeFailure(f"Failed to encode image: {error}") from error
        if not data:
            raise EncodeFailure("Encoder produced no output.")
        return data

    def _build_result(
        self,
        data: bytes,
        dimensions: ResolvedDimensions,
        quality: int,
        attempts: tuple[int, ...],
        within_budget: bool,
    ) -> CompressedResult:
        return CompressedResult(
            encoded_bytes=data,
            width=dimensions.width,
            height=dimensions.height,
            byte_size=len(data),
            quality_used=quality,
            attempts=attempts,
            within_budget=within_budget,
        )

    def _check_cancelled(self, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled("Compression request was superseded.")
