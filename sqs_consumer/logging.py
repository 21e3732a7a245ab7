from __future__ import annotations
import json
import os
import sys
import threading
import time
import traceback
from typing import Any, Dict, Optional, TextIO

from .constants import LOG_LEVEL_ENV

_LEVEL_ORDER = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

# Workers share stdout; one lock keeps JSON lines whole.
_write_lock = threading.Lock()


class StructuredLogger:
    """Structured JSON logger used by the consumer, the client and the runner."""

    def __init__(
        self,
        name: str = "sqs_consumer",
        level: str = "INFO",
        stream: Optional[TextIO] = None,
        bound: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.level = level.upper()
        self.stream = stream
        self._bound: Dict[str, Any] = dict(bound or {})

    # ----------------------------------------------------------------------
    # Core logging method
    # ----------------------------------------------------------------------
    def is_enabled_for(self, level: str) -> bool:
        return _LEVEL_ORDER.get(level, 100) >= _LEVEL_ORDER.get(self.level, 20)

    def _log(self, level: str, msg: str, extra: Optional[Dict[str, Any]] = None):
        """Internal helper: format and write a JSON log line."""
        if not self.is_enabled_for(level):
            return

        try:
            record = {
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "level": level,
                "logger": self.name,
                "msg": str(msg),
            }

            fields = dict(self._bound)
            if extra and isinstance(extra, dict):
                fields.update(extra)
            for k, v in fields.items():
                # Avoid overwriting core keys
                if k not in record:
                    record[k] = v

            line = json.dumps(record, ensure_ascii=False, default=str)
            stream = self.stream or sys.stdout
            with _write_lock:
                print(line, file=stream, flush=True)

        except Exception as e:
            # Never crash the app due to logging errors
            print(f"[logger-error] failed to log: {e}", file=sys.stderr, flush=True)

    # ----------------------------------------------------------------------
    # Public convenience methods
    # ----------------------------------------------------------------------
    def info(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("INFO", msg, extra)

    def warning(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("WARNING", msg, extra)

    def error(self, msg: Any, extra: Optional[Dict[str, Any]] = None):
        # Auto-handle exception objects
        if isinstance(msg, BaseException):
            err_str = f"{type(msg).__name__}: {msg}"
            tb = "".join(traceback.format_exception(type(msg), msg, msg.__traceback__))
            extra = dict(extra or {}, error_type=type(msg).__name__, traceback=tb)
            self._log("ERROR", err_str, extra)
        else:
            self._log("ERROR", msg, extra)

    def debug(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("DEBUG", msg, extra)

    # ----------------------------------------------------------------------
    # Context binding
    # ----------------------------------------------------------------------
    def bind(self, **context: Any) -> "StructuredLogger":
        """
        Return a copy of the logger with context permanently attached.
        Example:
            log = get_logger("consumer").bind(worker=2, queue=queue_url)
        """
        bound = dict(self._bound)
        bound.update(context)
        return StructuredLogger(name=self.name, level=self.level, stream=self.stream, bound=bound)


# ----------------------------------------------------------------------
# Module-level logger registry (one logger per name)
# ----------------------------------------------------------------------

_loggers: Dict[str, StructuredLogger] = {}
# Process-wide override set by set_level; wins over $LOG_LEVEL.
_default_level: Optional[str] = None


def get_logger(name: str = "sqs_consumer", level: Optional[str] = None) -> StructuredLogger:
    """Get or create a logger for the given name. Level defaults to $LOG_LEVEL."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name=name, level=level or _default_level or os.environ.get(LOG_LEVEL_ENV, "INFO"))
    elif level:
        _loggers[name].level = level.upper()
    return _loggers[name]


def set_level(level: str) -> None:
    """Apply `level` to every registered logger and to loggers created later."""
    global _default_level
    _default_level = level.upper()
    for logger in _loggers.values():
        logger.level = _default_level


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

__all__ = ["StructuredLogger", "get_logger", "set_level"]
