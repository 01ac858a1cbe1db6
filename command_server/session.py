"""
Voice-command session: one per client connection.

States progress monotonically:

    connected -> streaming -> recognizing -> interpreting -> executing
              -> responding -> closed

Any failure from streaming onwards jumps straight to responding with an
error code. If the client disconnects before responding, the session is
aborted in place: remaining work is cancelled and nothing is sent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Optional, Tuple, TypeVar

from logging_setup import get_logger, Component
from observability.events import session_emitter
from voice_pipeline.audio_sink import AudioSink
from voice_pipeline.errors import (
    AudioSinkError,
    ErrorCode,
    ParseError,
    RecognitionError,
    SaveError,
    VoiceCommandError,
)
from voice_pipeline.executor import ActionExecutor
from voice_pipeline.intent import IntentResolver, sanitize_transcript
from voice_pipeline.models import Action, AnswerEnvelope, ResolvedAction, Transcript
from voice_pipeline.recognition import LanguageConfig, RecognitionClient

from .connection import Connection, ConnectionClosed
from .errors import ErrorHandler
from .responder import ResponseComposer

logger = get_logger(Component.SESSION)

END_OF_STREAM = "EOS"

T = TypeVar("T")


class Stage(str, Enum):
    """Session stages, in order."""
    CONNECTED = "connected"
    STREAMING = "streaming"
    RECOGNIZING = "recognizing"
    INTERPRETING = "interpreting"
    EXECUTING = "executing"
    RESPONDING = "responding"
    CLOSED = "closed"


_STAGE_ORDER = list(Stage)


def _rank(stage: Stage) -> int:
    return _STAGE_ORDER.index(stage)


@dataclass
class Pipeline:
    """Process-wide collaborators shared by all sessions. Read-only after startup."""

    recognizer: RecognitionClient
    resolver: IntentResolver
    executor: ActionExecutor
    composer: ResponseComposer
    hints: Tuple[str, ...] = ()
    language: LanguageConfig = field(default_factory=LanguageConfig)
    log_dir: Path = Path("./log")
    stage_timeout: Optional[float] = None

    async def aclose(self) -> None:
        for collaborator in (self.recognizer, self.executor, self.composer):
            aclose = getattr(collaborator, "aclose", None)
            if aclose is None:
                continue
            try:
                await aclose()
            except Exception as e:
                logger.warning(
                    "Error closing pipeline collaborator",
                    collaborator=type(collaborator).__name__,
                    error=str(e),
                )


class Session:
    """State machine and resources of one client connection."""

    def __init__(
        self,
        connection: Connection,
        token: str,
        pipeline: Pipeline,
        *,
        session_id: str,
        client_index: int,
    ):
        if not session_id:
            raise ValueError("session_id is required")

        self.session_id = session_id
        self.client_index = client_index
        self.token = token
        self.connection = connection
        self.pipeline = pipeline
        self.stage = Stage.CONNECTED

        self.raw_log_path = Path(pipeline.log_dir) / f"{session_id}.raw"
        self.json_log_path = Path(pipeline.log_dir) / f"{session_id}.json"

        self.transcript: Optional[Transcript] = None
        self.action: Optional[Action] = None
        self.resolved_action: Optional[ResolvedAction] = None
        self.envelope: Optional[AnswerEnvelope] = None
        self.aborted = False
        self._cancel_requested = False

        self.logger = logger.with_session(session_id, client_index=client_index)
        self._sink: Optional[AudioSink] = None
        self._closed = False

        session_emitter.session_started(session_id, client_index)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def transition_to(self, new_stage: Stage) -> Stage:
        """
        Move forward to new_stage (stages may be skipped, never revisited).
        Returns the previous stage.
        """
        if _rank(new_stage) <= _rank(self.stage):
            raise ValueError(f"illegal transition {self.stage.value} -> {new_stage.value}")
        old_stage = self.stage
        self.stage = new_stage
        session_emitter.session_state_changed(self.session_id, old_stage.value, new_stage.value)
        return old_stage

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def run(self) -> Optional[AnswerEnvelope]:
        """
        Drive the session to completion and close the connection.

        Returns the envelope that was sent, or None if the client went away
        before an answer could be given.
        """
        self.logger.info("Session started")
        try:
            try:
                self._sink = AudioSink(self.raw_log_path, session_id=self.session_id)
            except OSError as e:
                code = ErrorHandler.handle_error(self.session_id, e, self.stage.value)
                await self._respond(self.pipeline.composer.compose(code, confidence=0.0))
                return self.envelope

            pipeline = asyncio.create_task(self._run_pipeline())
            self.transition_to(Stage.STREAMING)
            reader = asyncio.create_task(self._ingest())
            try:
                await asyncio.wait({pipeline, reader}, return_when=asyncio.FIRST_COMPLETED)
                if not pipeline.done() and _rank(self.stage) < _rank(Stage.RESPONDING):
                    self._abort(reader)
                    self._cancel(pipeline)
                (outcome,) = await asyncio.gather(pipeline, return_exceptions=True)
                if isinstance(outcome, BaseException) and not self.aborted:
                    self.logger.error(
                        "Session pipeline crashed",
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
            finally:
                for task in (pipeline, reader):
                    self._cancel(task)
                await asyncio.gather(pipeline, reader, return_exceptions=True)
        finally:
            if self._sink is not None:
                self._sink.close()
            await self.close()
        return self.envelope

    def _cancel(self, task: asyncio.Task) -> None:
        if not task.done():
            self._cancel_requested = True
            task.cancel()

    def _abort(self, reader: asyncio.Task) -> None:
        reason = "reader stopped"
        if reader.done() and not reader.cancelled() and reader.exception() is not None:
            reason = str(reader.exception())
        self.aborted = True
        self.logger.warning("Client gone, aborting session", stage=self.stage.value, reason=reason)
        session_emitter.session_aborted(self.session_id, self.stage.value, reason)

    async def close(self) -> None:
        """Close the connection and reach the terminal stage. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.connection.close()
        finally:
            self.transition_to(Stage.CLOSED)
            session_emitter.session_closed(self.session_id)
            self.logger.info(
                "Session closed",
                status=int(self.envelope.status) if self.envelope else None,
                aborted=self.aborted,
            )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------
    async def _ingest(self) -> None:
        """Forward client frames to the audio sink until the client goes away."""
        while True:
            try:
                message = await self.connection.receive()
            except ConnectionClosed as e:
                self.logger.info("Client connection closed", stage=self.stage.value, reason=str(e))
                raise

            if isinstance(message, str):
                if message == END_OF_STREAM:
                    self._end_of_stream()
                else:
                    self.logger.warning("Ignoring unexpected text frame", length=len(message))
                continue

            if self._sink.closed:
                if self._sink.error is None:
                    self.logger.debug("Dropping audio after end of stream", bytes=len(message))
                continue
            try:
                await self._sink.write(message)
            except AudioSinkError as e:
                self.logger.error("Problem passing audio", error=str(e))

    def _end_of_stream(self) -> None:
        if self._sink.closed:
            return
        self._sink.close()
        self.logger.info("End of stream", audio_bytes=self._sink.bytes_written)
        if self.stage == Stage.STREAMING:
            self.transition_to(Stage.RECOGNIZING)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------
    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self.pipeline.stage_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self.pipeline.stage_timeout)

    async def _run_pipeline(self) -> None:
        command: Optional[str] = None
        try:
            self.transcript = await self._recognize()
            command = sanitize_transcript(self.transcript.text)
            self.transition_to(Stage.INTERPRETING)
            self.action = await self._interpret(command)
            self.transition_to(Stage.EXECUTING)
            self.resolved_action = await self._execute(self.action)
            envelope = self.pipeline.composer.compose(
                ErrorCode.OK,
                command=command,
                confidence=self.transcript.confidence,
                confirmation=self.action.confirmation,
            )
        except VoiceCommandError as e:
            code = ErrorHandler.handle_error(self.session_id, e, self.stage.value)
            self.logger.warning(
                "Stage failed",
                stage=self.stage.value,
                error_code=code.name,
                error=ErrorHandler.redact(e),
            )
            if code == ErrorCode.RECOGNITION_FAILED:
                envelope = self.pipeline.composer.compose(code, confidence=0.0)
            else:
                envelope = self.pipeline.composer.compose(
                    code,
                    command=command,
                    confidence=self.transcript.confidence if self.transcript else 0.0,
                )

        await self._respond(envelope)

    async def _recognize(self) -> Transcript:
        try:
            transcript = await self._bounded(
                self.pipeline.recognizer.recognize(
                    self._sink.stream(),
                    self.pipeline.hints,
                    self.pipeline.language,
                )
            )
        except RecognitionError:
            raise
        except asyncio.CancelledError as e:
            if self._cancel_requested:
                raise
            # The backend tore its own call down (grpc.aio does this when the
            # request iterator fails); this task was not cancelled.
            raise RecognitionError("recognition stream cancelled by backend") from e
        except Exception as e:
            raise RecognitionError(f"recognition failed: {ErrorHandler.redact(e)}") from e
        finally:
            self._sink.detach()

        if transcript.is_empty:
            raise RecognitionError("no final hypothesis")

        self.logger.info(
            "Transcript received",
            confidence=transcript.confidence,
            pii={"transcript": transcript.text},
        )
        return transcript

    async def _interpret(self, command: str) -> Action:
        try:
            return await self._bounded(self.pipeline.resolver.parse(command))
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"problem interpreting: {ErrorHandler.redact(e)}") from e

    async def _execute(self, action: Action) -> ResolvedAction:
        try:
            return await self._bounded(self.pipeline.executor.execute(action, self.token))
        except SaveError:
            raise
        except Exception as e:
            raise SaveError(f"problem saving reminder: {ErrorHandler.redact(e)}") from e

    # ------------------------------------------------------------------
    # Responding
    # ------------------------------------------------------------------
    async def _respond(self, envelope: AnswerEnvelope) -> None:
        if self.envelope is not None:
            raise RuntimeError("session already answered")
        self.transition_to(Stage.RESPONDING)
        self.envelope = envelope
        self.logger.info(
            "Sending answer",
            status=int(envelope.status),
            answer=envelope.message,
        )
        session_emitter.session_answered(self.session_id, int(envelope.status))
        await self.pipeline.composer.send(
            self.connection,
            envelope,
            self.json_log_path,
            self.logger,
        )
