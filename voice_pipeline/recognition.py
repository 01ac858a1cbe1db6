"""
Speech-to-text contract.

The session only talks to a RecognitionClient; which backend sits behind it
is a configuration choice (see command_server.server.build_pipeline).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Protocol, Sequence

from .models import NO_HYPOTHESIS, Transcript


@dataclass(frozen=True)
class LanguageConfig:
    """Audio format and language of the incoming stream."""

    language_code: str = "en-US"
    sample_rate_hz: int = 16000
    encoding: str = "LINEAR16"


class RecognitionClient(Protocol):
    """
    Recognition interface.

    Consumes a live audio stream and returns exactly one Transcript per
    call. Implementations raise RecognitionError on backend failure and
    return NO_HYPOTHESIS when nothing final was heard.
    """

    async def recognize(
        self,
        audio: AsyncIterator[bytes],
        hints: Sequence[str],
        language: LanguageConfig,
    ) -> Transcript: ...

    async def aclose(self) -> None: ...


def best_hypothesis(results: Iterable[Any]) -> Transcript:
    """Pick the highest-confidence alternative among final results.

    `results` are backend result objects exposing `is_final` and
    `alternatives` (each with `transcript` and `confidence`). Interim
    results are ignored. A final transcript reported without confidence
    (0.0) is still preferred over hearing nothing.
    """
    best = NO_HYPOTHESIS
    for result in results:
        if not getattr(result, "is_final", False):
            continue
        for alternative in result.alternatives:
            text = alternative.transcript.strip()
            if not text:
                continue
            if best.is_empty or alternative.confidence > best.confidence:
                best = Transcript(text=text, confidence=float(alternative.confidence))
    return best
