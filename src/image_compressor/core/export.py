from __future__ import annotations

from pathlib import Path

from image_compressor.core.models import CompressedResult

DOWNLOAD_PREFIX = "compressed_"
OUTPUT_EXTENSION = ".jpg"


def build_download_name(source_name: str | None) -> str:
    stem = Path(source_name).stem if source_name else ""
    if not stem:
        stem = "image"
    return f"{DOWNLOAD_PREFIX}{stem}{OUTPUT_EXTENSION}"


def save_result(result: CompressedResult, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("wb") as stream:
        stream.write(result.encoded_bytes)
    return output_path


def format_file_size(byte_count: int) -> str:
    if byte_count <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    value = float(byte_count)
    unit_index = 0

    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1

    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[unit_index]}"
