"""Logging configuration for dcabot.

Text logs go through a redacting formatter so venue keys, passphrases and
request signatures never land in a terminal or log file. ``--log-format json``
switches to one JSON object per line, carrying any ``extra=`` fields and the
coin/symbol set by :class:`LogContext`.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# LogRecord attributes that are not user supplied context
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}

SENSITIVE_KEYS = (
    "api_key",
    "api_secret",
    "passphrase",
    "password",
    "secret",
    "authorization",
    "signature",
    "cb-access-key",
    "cb-access-sign",
    "cb-access-passphrase",
    "x-gemini-apikey",
    "x-gemini-signature",
    "ftx-key",
    "ftx-sign",
    "ftxus-key",
    "ftxus-sign",
)
_SENSITIVE = re.compile(
    r"(?P<key>"
    + "|".join(re.escape(key) for key in SENSITIVE_KEYS)
    + r")['\"]?\s*[:=]\s*['\"]?[\w\-+/=]+",
    re.IGNORECASE,
)


def redact(message: str) -> str:
    """Replace ``key=value`` style credentials with a placeholder."""
    return _SENSITIVE.sub(lambda match: f"{match.group('key')}=[REDACTED]", message)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class SanitizingFormatter(logging.Formatter):
    """Text formatter that redacts credentials from the rendered message."""

    def format(self, record: logging.LogRecord) -> str:
        record_copy = logging.makeLogRecord(record.__dict__)
        record_copy.msg = redact(record_copy.getMessage())
        record_copy.args = ()
        return super().format(record_copy)


def setup_logging(
    level: str = "INFO",
    *,
    structured: bool = False,
    sanitize: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger for a CLI run.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines instead of text
        sanitize: Redact credentials from text logs
        log_file: Optional file that receives the same records as stdout
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    elif sanitize:
        formatter = SanitizingFormatter(TEXT_FORMAT, datefmt=DATE_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as exc:
            root_logger.warning(
                "Failed to set up file logging to %s: %s", log_file, exc
            )


class LogContext:
    """
    Attach fields to every record created inside a ``with`` block.

    Example:
        with LogContext(coin="BTC", symbol="BTC-USD"):
            logger.info("Placing order")  # record.coin == "BTC"
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._previous = logging.getLogRecordFactory()

    def __enter__(self) -> "LogContext":
        self._previous = previous = logging.getLogRecordFactory()
        fields = self.fields

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = previous(*args, **kwargs)
            for key, value in fields.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        logging.setLogRecordFactory(self._previous)
