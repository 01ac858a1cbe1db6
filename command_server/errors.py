"""
Session error handling.

Maps pipeline failures to the closed ErrorCode taxonomy without crashing,
and provides the spoken apology for each code.
"""
import asyncio
from typing import Optional

from observability.events import session_emitter
from voice_pipeline.errors import ErrorCode, VoiceCommandError


SORRY_UNDERSTAND = "I did not understand that. Can you repeat?"
SORRY_SERVICE = "Sorry, the service is not available at the moment."
SORRY_NETWORK = "Sorry, I was not able to save this reminder."
SORRY_EXECUTE = "Sorry, I was not able to do that."

# Stage values (see command_server.session.Stage) mapped to the code a
# generic failure in that stage is reported as.
_STAGE_CODES = {
    "connected": ErrorCode.RECOGNITION_FAILED,
    "streaming": ErrorCode.RECOGNITION_FAILED,
    "recognizing": ErrorCode.RECOGNITION_FAILED,
    "interpreting": ErrorCode.PARSE_FAILED,
    "executing": ErrorCode.SAVE_FAILED,
}

_SECRET_MARKERS = ("secret", "password", "key", "token", "bearer", "authorization")


class ErrorHandler:
    """Classifies and reports session failures."""

    @staticmethod
    def classify_error(error: BaseException, stage: str) -> ErrorCode:
        """
        Classify a failure into an ErrorCode.

        Typed pipeline errors carry their own code; anything else is
        attributed to the stage it surfaced in.
        """
        if isinstance(error, VoiceCommandError):
            return error.code
        return _STAGE_CODES.get(stage, ErrorCode.EXECUTE_FAILED)

    @staticmethod
    def redact(error: BaseException) -> str:
        """Error detail safe for logs and events."""
        if isinstance(error, asyncio.TimeoutError):
            return "timeout"
        detail = str(error) or type(error).__name__
        if any(marker in detail.lower() for marker in _SECRET_MARKERS):
            return "[redacted: potential secret]"
        return detail

    @staticmethod
    def handle_error(
        session_id: str,
        error: BaseException,
        stage: str,
    ) -> ErrorCode:
        """
        Handle a stage failure.
        Emits session.failed and returns the error code.
        Does NOT raise - always returns a code.
        """
        code = ErrorHandler.classify_error(error, stage)
        session_emitter.session_failed(
            session_id=session_id,
            error_code=code.name,
            stage=stage,
            detail=ErrorHandler.redact(error),
        )
        return code

    @staticmethod
    def get_user_message(code: ErrorCode, confirmation: Optional[str] = None) -> str:
        """
        Spoken message for an outcome.
        On OK this is the action's confirmation text.
        """
        if code == ErrorCode.OK:
            return confirmation or ""

        messages = {
            ErrorCode.PARSE_FAILED: SORRY_UNDERSTAND,
            ErrorCode.RECOGNITION_FAILED: SORRY_SERVICE,
            ErrorCode.SAVE_FAILED: SORRY_NETWORK,
            ErrorCode.EXECUTE_FAILED: SORRY_EXECUTE,
        }
        return messages[code]
