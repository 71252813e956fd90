from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = ("sequence", "preset", "quality", "byte_size", "duration_ms")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(level: str = "INFO", logger_name: str = "image_compressor") -> logging.Logger:
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())

    log_level = getattr(logging, level.upper(), logging.INFO)
    handler.setLevel(log_level)
    logger.setLevel(log_level)
    logger.addHandler(handler)

    # Avoid duplicate lines through the root logger
    logger.propagate = False
    return logger
