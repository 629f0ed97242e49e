# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Logging configuration for bareforge.

Two output formats are supported:
- ``text``: human-readable lines, the default.
- ``json``: one JSON object per record for log aggregation systems.

Records go to ``BAREFORGE_LOG_FILE`` when it is set, otherwise to stderr.
"""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from bareforge.config import Settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ForgeJsonFormatter(JsonFormatter):
    """JSON formatter with stable field names."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def parse_level(name: str) -> int:
    """Map a configured level name to a ``logging`` level; unknown names mean INFO."""
    return _LEVELS.get(name.strip().lower(), logging.INFO)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return ForgeJsonFormatter(
            "%(timestamp)s %(level)s %(logger)s %(message)s",
            datefmt=DATE_FORMAT,
        )
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the root logger from settings and return the package logger."""
    handler: logging.Handler
    if settings.log_file is not None:
        handler = logging.FileHandler(settings.log_file, mode="w")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(settings.log_format))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(parse_level(settings.log_level))

    # httpx logs every request at INFO, which would echo OIDC endpoints.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("bareforge")
