"""In-memory collaborators for session, responder and server tests."""
import asyncio
from typing import Optional, Sequence

from command_server.connection import ConnectionClosed
from voice_pipeline.errors import SynthesisError
from voice_pipeline.models import NO_HYPOTHESIS, Action, ResolvedAction, Transcript


class FakeConnection:
    """
    Plays a scripted list of client frames, then either waits for the
    session to finish (like a real client awaiting its answer) or hangs up
    once `hangup` is set.
    """

    def __init__(self, frames: Sequence = (), *, disconnect: bool = False, fail_sends: bool = False):
        self._frames = list(frames)
        self.hangup = asyncio.Event()
        if disconnect:
            self.hangup.set()
        self.fail_sends = fail_sends
        self.sent = []
        self.close_calls = 0
        self._peer_gone = False

    @property
    def is_open(self) -> bool:
        return self.close_calls == 0 and not self._peer_gone

    @property
    def texts(self):
        return [payload for kind, payload in self.sent if kind == "text"]

    @property
    def audio(self):
        return [payload for kind, payload in self.sent if kind == "bytes"]

    async def receive(self):
        if self._frames:
            return self._frames.pop(0)
        await self.hangup.wait()
        self._peer_gone = True
        raise ConnectionClosed("client disconnected (code 1006)")

    async def send_text(self, text: str) -> None:
        if self.fail_sends or not self.is_open:
            raise ConnectionClosed("send failed")
        self.sent.append(("text", text))

    async def send_bytes(self, data: bytes) -> None:
        if self.fail_sends or not self.is_open:
            raise ConnectionClosed("send failed")
        self.sent.append(("bytes", data))

    async def close(self) -> None:
        self.close_calls += 1


class FakeRecognizer:
    """Consumes the audio stream (or its first `stop_after` chunks), then returns or raises."""

    def __init__(
        self,
        transcript: Transcript = NO_HYPOTHESIS,
        *,
        error: Optional[BaseException] = None,
        hang: bool = False,
        stop_after: Optional[int] = None,
    ):
        self.transcript = transcript
        self.error = error
        self.hang = hang
        self.stop_after = stop_after
        self.audio = b""
        self.hints = None
        self.started = asyncio.Event()

    async def recognize(self, audio, hints, language) -> Transcript:
        self.started.set()
        self.hints = hints
        if self.hang:
            await asyncio.Event().wait()
        chunks = 0
        async for chunk in audio:
            self.audio += chunk
            chunks += 1
            if self.stop_after is not None and chunks >= self.stop_after:
                break
        if self.error is not None:
            raise self.error
        return self.transcript


class BackendCancellingRecognizer:
    """
    Behaves like a grpc.aio streaming call: errors from the request
    iterator are swallowed, the call cancels itself and the response read
    raises CancelledError.
    """

    def __init__(self):
        self.audio = b""
        self.stream_error: Optional[BaseException] = None

    async def recognize(self, audio, hints, language) -> Transcript:
        try:
            async for chunk in audio:
                self.audio += chunk
        except Exception as e:
            self.stream_error = e
        raise asyncio.CancelledError()


class FakeResolver:
    def __init__(self, error: BaseException):
        self.error = error

    async def parse(self, text: str) -> Action:
        raise self.error


class FakeExecutor:
    """Maps recipients through a fixed directory, or fails, or hangs."""

    def __init__(self, directory=None, *, error: Optional[BaseException] = None, hang: bool = False):
        self.directory = {"alice": 11, "bob": 12} if directory is None else directory
        self.error = error
        self.hang = hang
        self.calls = []
        self.started = asyncio.Event()
        self.cancelled = False

    async def execute(self, action: Action, token: str) -> ResolvedAction:
        self.calls.append((action, token))
        self.started.set()
        if self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return action.resolve(tuple(self.directory.get(name.lower()) for name in action.recipients))

    async def aclose(self) -> None:
        pass


class FakeSynthesizer:
    """Yields fixed audio chunks; optionally fails after `fail_after` chunks."""

    def __init__(self, chunks=(b"RIFF0000WAVE", b"\x00\x01" * 8), *, fail_after: Optional[int] = None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.requests = []
        self.closed = False

    async def synthesize(self, text: str, *, apology: bool = False):
        self.requests.append((text, apology))
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise SynthesisError("TTS backend unavailable")
            yield chunk

    async def aclose(self) -> None:
        self.closed = True
