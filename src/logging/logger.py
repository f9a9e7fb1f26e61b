# src/logging/logger.py - v1
"""Logger setup for restores: one JSON object per line, or terminal text.

Both formatters attach the current restore context (run, arch, package,
phase). Errors carrying an EnvRestoreError code expose it as `error_code`
so failed packages can be filtered in aggregated logs.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from envrestore.logging.context import LogContext, get_context

ROOT_LOGGER = "envrestore"


class JsonFormatter(logging.Formatter):
    """Flat JSON lines: context fields sit beside the message."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **get_context().as_dict(),
        }
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            code = getattr(record.exc_info[1], "code", None)
            if code is not None:
                entry["error_code"] = str(code)
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """`12:00:01 INFO     envrestore.install.restorer [R6] (install) - built R6`"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s %(scope)s- %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.scope = _scope(get_context())
        return super().format(record)


def _scope(ctx: LogContext) -> str:
    parts = []
    if ctx.package:
        parts.append(f"[{ctx.package}]")
    if ctx.phase:
        parts.append(f"({ctx.phase})")
    return "".join(f"{p} " for p in parts)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | Path | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> None:
    """Configure the envrestore logger tree. Safe to call more than once.

    Console output goes to stderr; stdout is reserved for plans and reports.
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from envrestore.logging.handlers import create_rotating_handler

        handlers.append(
            create_rotating_handler(log_file, rotation=rotation, retention=retention)
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
