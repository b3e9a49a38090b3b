"""
Clawsec Structured Logging

Provides a configured logger for Clawsec using stdlib logging
with structured context.

Usage:
    from clawsec.logging import get_logger

    logger = get_logger("clawsec.actions")
    logger.info("Tool call blocked", extra={"tool_name": "bash", "category": "destructive"})

For production, configure with JSON output:
    from clawsec.logging import configure_logging
    configure_logging(json_output=True, level="INFO")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Extra fields lifted out of LogRecord attributes when present.
CONTEXT_FIELDS = (
    "request_id",
    "approval_id",
    "tool_name",
    "category",
    "severity",
    "action",
    "method",
    "status",
)


class ClawsecFormatter(logging.Formatter):
    """Structured log formatter for Clawsec.

    Outputs either human-readable or JSON format depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_str = ""
        extra_keys = {
            k: v
            for k, v in log_data.items()
            if k not in ("timestamp", "level", "logger", "message", "exception")
        }
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        line = f"[{log_data['timestamp']}] {record.levelname:8s} {record.name}: {record.getMessage()}{extra_str}"
        if "exception" in log_data:
            line += "\n" + log_data["exception"]
        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """Configure Clawsec logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output JSON format (for log shippers).
    """
    root_logger = logging.getLogger("clawsec")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ClawsecFormatter(json_output=json_output))
    root_logger.addHandler(handler)

    root_logger.propagate = False


def get_logger(name: str = "clawsec") -> logging.Logger:
    """Get a Clawsec logger instance.

    Args:
        name: Logger name (usually module path like "clawsec.approval").
    """
    return logging.getLogger(name)


configure_logging(
    level=os.environ.get("CLAWSEC_LOG_LEVEL", "INFO"),
    json_output=os.environ.get("CLAWSEC_LOG_JSON", "") == "1",
)
