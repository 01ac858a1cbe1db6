"""
Data passed between pipeline stages.

Stages hand each other immutable values: a Transcript becomes an Action,
an Action becomes a ResolvedAction, and every session ends in exactly one
AnswerEnvelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorCode


UNKNOWN_COMMAND = "<unknown>"


@dataclass(frozen=True)
class Transcript:
    """Best recognition hypothesis. confidence 0 means nothing was heard."""

    text: str
    confidence: float

    @property
    def is_empty(self) -> bool:
        return not self.text


NO_HYPOTHESIS = Transcript(text="", confidence=0.0)


@dataclass(frozen=True)
class Action:
    """A reminder extracted from a transcript; recipients are spoken forenames."""

    recipients: tuple[str, ...]
    action: str
    due: Union[int, str]
    confirmation: str

    def resolve(self, identities: tuple[Optional[Any], ...]) -> "ResolvedAction":
        """Attach directory identities, one per recipient (None when unmatched)."""
        if len(identities) != len(self.recipients):
            raise ValueError("one identity per recipient is required")
        return ResolvedAction(
            recipient_ids=identities,
            action=self.action,
            due=self.due,
            confirmation=self.confirmation,
        )


@dataclass(frozen=True)
class ResolvedAction:
    """An Action whose recipients were looked up in the directory."""

    recipient_ids: tuple[Optional[Any], ...]
    action: str
    due: Union[int, str]
    confirmation: str

    def to_payload(self) -> dict[str, Any]:
        """Body of the reminder creation request."""
        return {
            "recipients": [
                {"id": recipient_id} if recipient_id is not None else {}
                for recipient_id in self.recipient_ids
            ],
            "action": self.action,
            "due": self.due,
        }


class AnswerEnvelope(BaseModel):
    """The single outbound result of a session, sent as JSON text."""

    model_config = ConfigDict(frozen=True)

    status: ErrorCode
    message: str
    command: str = UNKNOWN_COMMAND
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    def to_json(self) -> str:
        return self.model_dump_json()
