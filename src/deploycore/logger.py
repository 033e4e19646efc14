"""
Logging setup and structured deployment events.

Module loggers (``logging.getLogger(__name__)``) carry human-readable
progress. ``configure_logging`` attaches a single stderr handler to the
``deploycore`` logger, in text or JSON-lines format.

``DeploymentLogger`` emits one JSON line per lifecycle event so the
orchestrator that invoked the agent can follow a run:

- deployment.started
- convention.started / convention.completed / convention.failed
- deployment.completed / deployment.failed
- journal.written

Usage:
    from deploycore.logger import DeploymentLogger

    events = DeploymentLogger(target="prod/web/untenanted/Acme.Web")
    events.log_deployment_started(package="Acme.Web.1.0.0.zip")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ROOT_LOGGER = "deploycore"

# Structured event logger; inherits the handler configured below
_event_logger = logging.getLogger("deploycore.deployments")

_STANDARD_RECORD_FIELDS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "text") -> logging.Logger:
    """
    Configure the ``deploycore`` logger hierarchy.

    Args:
        level: debug, info, warning or error
        fmt: "text" for console, "json" for log shippers

    Returns:
        The configured root ``deploycore`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class DeploymentLogger:
    """
    Structured logger for deployment lifecycle events.

    Each entry includes the target identity so events from concurrent
    agent processes on one host can be told apart.
    """

    def __init__(self, target: str, service_name: str = "deploycore"):
        self.target = target
        self.service_name = service_name
        self._logger = _event_logger

    def _emit(self, event: str, level: str = "info", **extra_fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "target": self.target,
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_deployment_started(self, package: str, conventions: int) -> None:
        self._emit("deployment.started", package=package, conventions=conventions)

    def log_convention_started(self, convention: str, index: int) -> None:
        self._emit("convention.started", convention=convention, index=index)

    def log_convention_completed(self, convention: str, index: int, duration_seconds: float) -> None:
        self._emit(
            "convention.completed",
            convention=convention,
            index=index,
            duration_seconds=round(duration_seconds, 3),
        )

    def log_convention_failed(self, convention: str, index: int, error: BaseException) -> None:
        self._emit(
            "convention.failed",
            level="error",
            convention=convention,
            index=index,
            error_type=type(error).__name__,
            error=str(error),
        )

    def log_deployment_completed(self, skipped_remaining: bool) -> None:
        self._emit("deployment.completed", skipped_remaining=skipped_remaining)

    def log_deployment_failed(self, error: BaseException) -> None:
        self._emit(
            "deployment.failed",
            level="error",
            error_type=type(error).__name__,
            error=str(error),
        )

    def log_journal_written(self, was_successful: bool, files_created: int, entry_id: Optional[str] = None) -> None:
        self._emit(
            "journal.written",
            was_successful=was_successful,
            files_created=files_created,
            entry_id=entry_id,
        )
