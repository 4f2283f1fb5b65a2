"""
StateLab — Structured Logging

Everything under the ``statelab`` logger namespace is written as one
JSON object per line. Lifecycle entries from TransitionLogger carry an
``event`` name and the work order id, so

    grep '"work_order_id": "<id>"' statelab.log

replays what happened to one work order.

Usage:
    from statelab.logging import TransitionLogger, configure_logging

    configure_logging(level="INFO")
    log = TransitionLogger()
    log.on_transition(wo_id, "SUBMITTED", "APPROVED", "APPROVE", version=3)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER = "statelab"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """
    One JSON line per record. Fields attached as ``record.structured``
    are merged in at top level after the standard ones.
    """

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("SL_VERSION", "0.1.0")

    def _base_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return {
            "timestamp": ts.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

    def format(self, record: logging.LogRecord) -> str:
        entry = self._base_fields(record)
        entry.update(getattr(record, "structured", None) or {})
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exception.type"] = type(exc).__name__
            entry["exception.message"] = str(exc)
        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Setup
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Route the ``statelab`` namespace to ``stream`` (stderr by default)
    through a JSONFormatter, at ``level``. Unknown level names mean INFO.

    Safe to call repeatedly: previous handlers are dropped, and child
    loggers are reset so everything flows through the one handler.
    Returns the ``statelab`` logger.
    """
    threshold = logging.getLevelName(str(level).upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO

    for name in list(logging.Logger.manager.loggerDict):
        if name.startswith(ROOT_LOGGER + "."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers[:] = [handler]
    root.setLevel(threshold)
    root.propagate = False
    return root


def get_logger(name: str = "") -> logging.Logger:
    """``get_logger("store")`` → the ``statelab.store`` logger."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)




# ═══════════════════════════════════════════════════════════════════
# Transition Logger
# ═══════════════════════════════════════════════════════════════════

class TransitionLogger:
    """
    One structured entry per work order lifecycle event.

      work_order_created       INFO
      work_order_transitioned  INFO
      transition_rejected      WARNING   guard or table said no
      transition_conflict      WARNING   stale version
    """

    def __init__(self, name: str = "transitions"):
        self._logger = get_logger(name)

    def _emit(self, level: int, event: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self._logger.name, level, fn="", lno=0, msg=event,
            args=(), exc_info=None,
        )
        record.structured = {"event": event, **fields}
        self._logger.handle(record)

    def on_created(self, work_order_id: str, state: str, version: int) -> None:
        self._emit(
            logging.INFO, "work_order_created",
            work_order_id=work_order_id, state=state, version=version,
        )

    def on_transition(
        self,
        work_order_id: str,
        from_state: str,
        to_state: str,
        action: str,
        version: int,
    ) -> None:
        self._emit(
            logging.INFO, "work_order_transitioned",
            work_order_id=work_order_id,
            from_state=from_state,
            to_state=to_state,
            action=action,
            version=version,
        )

    def on_rejected(self, work_order_id: str, state: str, action: str, reason: str) -> None:
        self._emit(
            logging.WARNING, "transition_rejected",
            work_order_id=work_order_id, state=state, action=action,
            reason=reason[:500],
        )

    def on_conflict(
        self,
        work_order_id: str,
        action: str,
        expected_version: int,
        actual_version: int | None,
    ) -> None:
        self._emit(
            logging.WARNING, "transition_conflict",
            work_order_id=work_order_id,
            action=action,
            expected_version=expected_version,
            actual_version=actual_version,
        )
