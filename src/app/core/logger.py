"""Logging setup.

Console handler always; rotating file handler when a path is configured.
``fmt="json"`` emits one JSON object per line for log shippers.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "simple", log_file: str | None = None) -> None:
    """Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        fmt: "simple" or "json"
        log_file: Optional path for a rotating log file (10 MB x 5)
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    formatter = JsonFormatter() if fmt == "json" else logging.Formatter(SIMPLE_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    # Avoid duplicate handlers on repeated setup
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Chatty third-party loggers
    for name in ("httpx", "httpcore", "websockets", "uc.connection"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging initialized: level={level}, format={fmt}, file={log_file}")
