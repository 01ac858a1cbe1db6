"""
Error taxonomy for the voice-command pipeline.

ErrorCode values are part of the wire protocol (the `status` field of the
answer envelope) and must not change.
"""
from enum import IntEnum


class ErrorCode(IntEnum):
    """Closed set of session outcomes."""
    OK = 0
    PARSE_FAILED = 1
    EXECUTE_FAILED = 2  # reserved: no stage currently produces it
    SAVE_FAILED = 3
    RECOGNITION_FAILED = 100


class VoiceCommandError(Exception):
    """Base class for failures that end a session with a spoken apology."""

    code: ErrorCode = ErrorCode.EXECUTE_FAILED


class RecognitionError(VoiceCommandError):
    """Speech-to-text backend failed, was unavailable, or heard nothing."""

    code = ErrorCode.RECOGNITION_FAILED


class ParseError(VoiceCommandError):
    """Transcript could not be mapped to a known action."""

    code = ErrorCode.PARSE_FAILED


class ExecutionError(VoiceCommandError):
    """Execution-stage fault distinct from persistence."""

    code = ErrorCode.EXECUTE_FAILED


class SaveError(VoiceCommandError):
    """Identity resolution or reminder persistence call failed."""

    code = ErrorCode.SAVE_FAILED


class SynthesisError(Exception):
    """Speech synthesis failed; ends the audio part of a response only."""


class AudioSinkError(Exception):
    """Writing incoming audio to one of the sinks failed."""
