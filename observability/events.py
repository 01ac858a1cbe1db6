"""
Structured JSON lifecycle events for voice-command sessions.

Every event is one JSON object per line on stdout, so it can be redirected
to a file or picked up by a log aggregator next to the regular logs.
"""
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum


class Component(str, Enum):
    """Components that emit events."""
    COMMAND_SERVER = "command_server"
    VOICE_PIPELINE = "voice_pipeline"


class Severity(str, Enum):
    """Event severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        """
        Emit a structured JSON event.

        Args:
            event_type: Stable event type string (e.g., "session.started")
            session_id: Opaque session identifier
            severity: Event severity level
            correlation_id: Optional correlation ID, defaults to session_id
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Additional event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii or {"contains_pii": False, "fields": [], "handling": "none"},
        }
        event.update(kwargs)

        json.dump(event, sys.stdout, ensure_ascii=False, default=str)
        sys.stdout.write("\n")
        sys.stdout.flush()

    def session_started(self, session_id: str, client_index: int) -> None:
        self.emit("session.started", session_id, client_index=client_index)

    def session_state_changed(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
    ) -> None:
        self.emit(
            "session.state_changed",
            session_id,
            from_state=from_state,
            to_state=to_state,
        )

    def session_failed(
        self,
        session_id: str,
        error_code: str,
        stage: str,
        detail: Optional[str] = None,
    ) -> None:
        self.emit(
            "session.failed",
            session_id,
            severity=Severity.WARN,
            error_code=error_code,
            stage=stage,
            detail=detail,
        )

    def session_answered(self, session_id: str, status: int) -> None:
        self.emit(
            "session.answered",
            session_id,
            severity=Severity.INFO if status == 0 else Severity.WARN,
            status=status,
        )

    def session_aborted(self, session_id: str, stage: str, reason: str) -> None:
        """Connection dropped before a response could be sent."""
        self.emit(
            "session.aborted",
            session_id,
            severity=Severity.WARN,
            stage=stage,
            reason=reason,
        )

    def session_closed(self, session_id: str) -> None:
        self.emit("session.closed", session_id)


session_emitter = EventEmitter(Component.COMMAND_SERVER)
