"""Structured event logging for the orchestration engine.

Every event is rendered twice: a compact ``key=value`` line for humans
(console, and a ``-human.log`` file when file logs are on) and a JSON object
for machines (file only).
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from typing import Any, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_FILE_LOGS = os.getenv("ENABLE_FILE_LOGS", "0") in ("1", "true", "True")
LOG_FILE = os.getenv("LOG_FILE", "logs/orchestration.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "5242880"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

LOGGER_NAME = "orchestration"
HUMAN_KEYS = (
    "op", "phase", "from_phase", "to_phase", "reason", "question_id", "competency", "score", "duration_sec", "ms",
)

_logger = logging.getLogger(LOGGER_NAME)
_logger.setLevel(LOG_LEVEL)
_logger.propagate = False

_HUMAN_FORMATTER = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s :: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


def _json_only(record: logging.LogRecord) -> bool:
    return getattr(record, "is_json", False) is True


def _human_only(record: logging.LogRecord) -> bool:
    return not _json_only(record)


def _attach(handler: logging.Handler, formatter: logging.Formatter, keep) -> None:
    handler.setLevel(LOG_LEVEL)
    handler.setFormatter(formatter)
    handler.addFilter(keep)
    _logger.addHandler(handler)


def _rotating(path: str) -> logging.handlers.RotatingFileHandler:
    return logging.handlers.RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)


def human_log_path(path: str) -> str:
    """``logs/x.log`` -> ``logs/x-human.log``."""

    stem = path[: -len(".log")] if path.endswith(".log") else path
    return f"{stem}-human.log"


def _ensure_handlers() -> None:
    if _logger.handlers:
        return

    _attach(logging.StreamHandler(stream=sys.stdout), _HUMAN_FORMATTER, _human_only)
    if not ENABLE_FILE_LOGS:
        return

    log_dir = os.path.dirname(LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    _attach(_rotating(LOG_FILE), logging.Formatter("%(message)s"), _json_only)
    _attach(_rotating(human_log_path(LOG_FILE)), _HUMAN_FORMATTER, _human_only)


def configure_logging(level: Optional[int | str] = None) -> logging.Logger:
    """Install handlers and optionally override the event level (e.g. for CLIs)."""

    _ensure_handlers()
    if level is not None:
        _logger.setLevel(level)
    return _logger


def _format_human(evt: dict[str, Any]) -> str:
    parts = [f"session={evt.get('session_id')}", f"kind={evt.get('kind')}"]
    parts.extend(f"{key}={evt[key]}" for key in HUMAN_KEYS if key in evt)
    return " ".join(parts)


def _emit(msg: str, *, is_json: bool, level: int) -> None:
    record = _logger.makeRecord(_logger.name, level, "", 0, msg, (), None)
    record.is_json = is_json  # type: ignore[attr-defined]
    _logger.handle(record)


def log_event(kind: str, session_id: str | None, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one orchestration event as a human line and, with file logs on, a JSON line."""

    _ensure_handlers()
    if not _logger.isEnabledFor(level):
        return

    payload: dict[str, Any] = {
        "ts": time.time(),
        "trace": str(uuid.uuid4()),
        "kind": kind,
        "session_id": session_id,
        **fields,
    }
    _emit(_format_human(payload), is_json=False, level=level)
    if ENABLE_FILE_LOGS:
        _emit(json.dumps(payload, ensure_ascii=False, default=str), is_json=True, level=level)


__all__ = ["LOGGER_NAME", "configure_logging", "human_log_path", "log_event"]
