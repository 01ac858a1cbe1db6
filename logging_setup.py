"""
Structured logging for vaani-server.

The command server and the voice pipeline both log through this module.
Every record is emitted as one JSON line carrying the component that wrote
it and, inside a voice session, the session_id, so a single session can be
followed from the first audio frame to the spoken answer.

Transcripts and recipient names are personal data. They are never passed
as plain fields: callers use the *_pii helpers, which nest them under a
single "pii" key that a log shipper can drop or mask.
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """Where a log line came from."""
    SERVER = "server"
    SESSION = "session"
    AUDIO_SINK = "audio_sink"
    STT = "stt"
    INTENT = "intent"
    EXECUTOR = "executor"
    TTS = "tts"
    RESPONDER = "responder"
    CONFIG = "config"


# Fields of a bare LogRecord; anything else arrived through `extra`.
_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message", "asctime", "taskName", "component", "session_id",
}

_LATENCY_RE = re.compile(r'("latency_ms"\s*:\s*)(\d+(?:\.\d+)?)')


def _colors_enabled() -> bool:
    if os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


class JSONFormatter(logging.Formatter):
    """
    Renders a record as a single JSON object:

        {"timestamp": ..., "severity": "info", "component": "session",
         "session_id": "...", "message": "...", <extra fields>}

    A `latency_ms` field is written with an "ms" unit so request timings
    stand out when tailing the log; on a terminal the value is highlighted.
    """

    HIGHLIGHT = '\033[38;5;208m'
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
        }
        session_id = getattr(record, "session_id", None)
        if session_id is not None:
            entry["session_id"] = session_id
        entry["message"] = record.getMessage()

        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_FIELDS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        line = json.dumps(entry, ensure_ascii=False, default=str)
        if "latency_ms" in entry:
            line = self._with_latency_unit(line)
        return line

    def _with_latency_unit(self, line: str) -> str:
        if _colors_enabled():
            return _LATENCY_RE.sub(rf'\1{self.HIGHLIGHT}\2 ms{self.RESET}', line)
        return _LATENCY_RE.sub(r'\1\2 ms', line)


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that attaches component, session and
    bound context to every record.

        log = get_logger(Component.SESSION).with_session(session_id, client_index=3)
        log.info("Recognition finished", confidence=0.93)
        log.info_pii("Transcript", transcript="remind alice to call at 5pm")
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.context = dict(context or {})
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(self, level: int, message: str, pii: Optional[Dict[str, Any]] = None, **fields):
        if not self.logger.isEnabledFor(level):
            return
        options = {
            name: fields.pop(name)
            for name in ("exc_info", "stack_info", "stacklevel")
            if name in fields
        }
        # Skip this wrapper's frames when the record resolves its caller.
        options["stacklevel"] = options.get("stacklevel", 1) + 2

        extra = {"component": self.component, **self.context, **fields}
        if self.session_id:
            extra["session_id"] = self.session_id
        if pii:
            extra["pii"] = pii

        self.logger.log(level, message, extra=extra, **options)

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, **fields)

    def critical(self, message: str, **fields):
        self._log(logging.CRITICAL, message, **fields)

    def exception(self, message: str, **fields):
        fields.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **fields)

    def debug_pii(self, message: str, **pii_fields):
        """Debug line whose keyword fields are all personal data."""
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        self._log(logging.INFO, message, pii=pii_fields)

    def with_session(self, session_id: str, **context) -> "StructuredLogger":
        """Same component and logger, bound to `session_id` plus extra context."""
        return StructuredLogger(
            self.component,
            session_id=session_id,
            logger_name=self.logger.name,
            context={**self.context, **context},
        )


def setup_logging(level: str = "INFO", use_json: bool = True, include_timestamp: bool = True) -> None:
    """
    Install a single stdout handler on the root logger.

    Called once by `python -m command_server`. With `use_json=False` a plain
    text format is used instead, which is easier to read during local runs.
    Unknown level names fall back to INFO.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        fmt = "%(levelname)s [%(component)s] %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s " + fmt
        formatter = logging.Formatter(fmt, defaults={"component": "unknown"})

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(component: str | Component, session_id: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(component, session_id=session_id)
