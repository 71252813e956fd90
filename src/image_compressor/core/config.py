from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Runtime settings read from the environment (or a local .env file)."""

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DEFAULT_PRESET = os.getenv("DEFAULT_PRESET", "etsy")
    DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", 80))
    QUALITY_STEP = int(os.getenv("QUALITY_STEP", 5))
    QUALITY_FLOOR = int(os.getenv("QUALITY_FLOOR", 50))
    DEBOUNCE_SECONDS = float(os.getenv("DEBOUNCE_SECONDS", 1.0))
    MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024))  # 10MB default
    MAX_DIMENSION = int(os.getenv("MAX_DIMENSION", 8000))
