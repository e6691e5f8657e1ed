"""
Logging configuration with rotation and structured JSON logging.

This module sets up logging for the ledger service with:
- Console output (human-readable)
- File output (JSON structured, with rotation)
- Error file (JSON, only errors, with rotation)
- Suppression of noisy third-party loggers
"""

import logging
import logging.handlers
import json
from datetime import datetime, timezone
from pathlib import Path
from app.config import settings


# Extra attributes lifted from LogRecord into the JSON payload
CONTEXT_FIELDS = (
    "actor_id",
    "affiliate_id",
    "payout_id",
    "commission_id",
    "payment_id",
    "duration",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record):
        """
        Format log record as JSON.

        Args:
            record: LogRecord instance

        Returns:
            JSON string with log data
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(log_dir: str | None = None):
    """
    Setup application logging with multiple handlers.

    Creates:
    - Console handler with INFO level (human-readable format)
    - File handler with DEBUG level (JSON format, rotating)
    - Error file handler with ERROR level (JSON format, rotating)
    """
    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # === Console Handler (human-readable) ===
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    # === File Handler (JSON, with rotation) ===
    file_handler = logging.handlers.RotatingFileHandler(
        log_path / "affiliate_ledger.log",
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(file_handler)

    # === Error File Handler (JSON, with rotation) ===
    error_handler = logging.handlers.RotatingFileHandler(
        log_path / "errors.log",
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(error_handler)

    # === Suppress noisy loggers ===
    for name in (
        "aiogram",
        "aiohttp",
        "aiohttp.access",
        "aiohttp.server",
        "aiohttp.web",
        "asyncio",
        "sqlalchemy",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info("Logging configured successfully")
    logging.info(f"Log level: {settings.log_level}")
    logging.info(f"Log directory: {log_path.absolute()}")
