"""
Response composition and output protocol.

A session answers exactly once:
1) one text frame with the JSON AnswerEnvelope,
2) zero or more binary frames of synthesized WAV audio,
after which the session closes the connection. The same JSON text is
written to the per-session log.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from logging_setup import get_logger, Component, StructuredLogger
from voice_pipeline.errors import ErrorCode, SynthesisError
from voice_pipeline.models import AnswerEnvelope, UNKNOWN_COMMAND
from voice_pipeline.synthesis import SpeechSynthesizer

from .connection import Connection, ConnectionClosed
from .errors import ErrorHandler

logger = get_logger(Component.RESPONDER)


class ResponseComposer:
    """Builds AnswerEnvelopes and streams them to the client as text + speech."""

    def __init__(self, synthesizer: SpeechSynthesizer):
        self.synthesizer = synthesizer

    @staticmethod
    def compose(
        status: ErrorCode,
        *,
        command: Optional[str] = None,
        confidence: Optional[float] = None,
        confirmation: Optional[str] = None,
    ) -> AnswerEnvelope:
        """
        Build the envelope for an outcome.

        command defaults to the unknown marker, confidence to 1.0.
        """
        return AnswerEnvelope(
            status=status,
            message=ErrorHandler.get_user_message(status, confirmation),
            command=UNKNOWN_COMMAND if command is None else command,
            confidence=1.0 if confidence is None else confidence,
        )

    async def send(
        self,
        connection: Connection,
        envelope: AnswerEnvelope,
        json_log_path: Path,
        session_logger: Optional[StructuredLogger] = None,
    ) -> None:
        """
        Deliver an envelope. Never raises: any failure while answering is
        logged and leaves teardown to the caller.
        """
        log = session_logger or logger
        persist: Optional[asyncio.Task] = None
        try:
            json_text = envelope.to_json()
            persist = asyncio.create_task(self._persist(json_log_path, json_text, log))
            await connection.send_text(json_text)
            await self._stream_speech(connection, envelope, log)
        except ConnectionClosed as e:
            log.warning("Connection closed while answering", error=str(e))
        except Exception as e:
            log.exception("Problem answering", error=str(e), error_type=type(e).__name__)
        finally:
            if persist is not None:
                await persist

    async def _stream_speech(
        self,
        connection: Connection,
        envelope: AnswerEnvelope,
        log: StructuredLogger,
    ) -> None:
        apology = envelope.status != ErrorCode.OK
        stream = self.synthesizer.synthesize(envelope.message, apology=apology)
        frames = 0
        try:
            async for chunk in stream:
                if not connection.is_open:
                    log.info("Client gone, stopping speech", frames_sent=frames)
                    break
                await connection.send_bytes(chunk)
                frames += 1
        except SynthesisError as e:
            log.error("Problem with TTS service", error=str(e), frames_sent=frames)
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        log.debug("Speech sent", frames_sent=frames, apology=apology)

    @staticmethod
    async def _persist(path: Path, json_text: str, log: StructuredLogger) -> None:
        try:
            await asyncio.to_thread(Path(path).write_text, json_text, encoding="utf-8")
        except OSError as e:
            log.error("Problem logging json", error=str(e), path=str(path))

    async def aclose(self) -> None:
        aclose = getattr(self.synthesizer, "aclose", None)
        if aclose is not None:
            await aclose()
