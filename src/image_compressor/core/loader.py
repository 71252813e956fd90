from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from image_compressor.core.config import Config
from image_compressor.core.errors import DecodeFailure
from image_compressor.core.export import format_file_size
from image_compressor.core.models import SourceImage

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {"JPEG", "PNG"}
SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png"}


def is_supported_file(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def decode_source_image(data: bytes, name: str = "image.jpg") -> SourceImage:
    """Decode raw JPEG/PNG bytes into a SourceImage.

    Raises:
        DecodeFailure: if the data is too large, not a JPEG/PNG, cannot be
            decoded, or exceeds the maximum pixel dimensions.
    """
    if len(data) > Config.MAX_FILE_SIZE:
        raise DecodeFailure(f"File size must be less than {format_file_size(Config.MAX_FILE_SIZE)}.")

    try:
        with Image.open(io.BytesIO(data)) as opened:
            container_format = opened.format
            if container_format not in SUPPORTED_FORMATS:
                raise DecodeFailure("Please upload only JPG or PNG images.")
            opened.load()
            image = ImageOps.exif_transpose(opened)
    except UnidentifiedImageError as error:
        raise DecodeFailure("Please upload only JPG or PNG images.") from error
    except (OSError, ValueError, Image.DecompressionBombError) as error:
        raise DecodeFailure(f"Failed to load image: {error}") from error

    width, height = image.size
    if width > Config.MAX_DIMENSION or height > Config.MAX_DIMENSION:
        raise DecodeFailure(
            f"Image dimensions must be less than {Config.MAX_DIMENSION}×{Config.MAX_DIMENSION} pixels."
        )

    logger.info(f"Decoded {name}: {width}x{height} {container_format}", extra={"byte_size": len(data)})

    return SourceImage(
        image=image,
        width=width,
        height=height,
        byte_size=len(data),
        name=name,
        format=container_format,
    )


def load_source_image(file_path: str | Path) -> SourceImage:
    path = Path(file_path)
    if not path.exists() or not path.is_file():
        raise DecodeFailure(f"File not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as error:
        raise DecodeFailure(f"Could not read {path.name}: {error}") from error

    return decode_source_image(data, name=path.name)
