from __future__ import annotations

import json
import logging
from pathlib import Path

from whale_consensus.config import Settings


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for important monitor events."""

    GREY = "\x1b[90m"
    NEON_GREEN = "\x1b[92m"
    NEON_CYAN = "\x1b[96m"
    NEON_RED = "\x1b[91m"
    MAGENTA = "\x1b[95m"
    YELLOW = "\x1b[93m"
    RESET = "\x1b[0m"

    DATE_FMT = "%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            color = self.NEON_RED
        elif record.levelno >= logging.WARNING:
            color = self.YELLOW
        else:
            color = self.GREY

        # Keyword highlighting (override base color)
        msg = str(record.msg)
        if "CONSENSUS" in msg:
            color = self.MAGENTA
        elif "BUY" in msg:
            color = self.NEON_GREEN
        elif "WHALE" in msg:
            color = self.NEON_CYAN

        formatter = logging.Formatter(f"{color}%(asctime)s %(message)s{self.RESET}", datefmt=self.DATE_FMT)
        return formatter.format(record)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, used for the alert audit log."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "extra_data", None)
        if extra:
            entry["data"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class AlertEventFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return bool(getattr(record, "alert_event", False))


def setup_logging(settings: Settings) -> None:
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    # File Handler (Plain text, no colors)
    file_handler = logging.FileHandler(log_dir / "monitor.log", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    # Alert audit trail (JSON lines)
    alert_handler = logging.FileHandler(log_dir / "alerts.log", encoding="utf-8")
    alert_handler.setFormatter(StructuredFormatter())
    alert_handler.addFilter(AlertEventFilter())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter())

    logger = logging.getLogger()
    logger.setLevel(settings.LOG_LEVEL)

    # Remove existing handlers to avoid duplicates on reload
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addHandler(file_handler)
    logger.addHandler(alert_handler)
    logger.addHandler(console_handler)

    # Silence noisy HTTP libraries - only show WARNING and above
    for noisy in ("httpx", "httpcore", "aiohttp", "asyncio", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
