"""Dual-sink writer for incoming command audio. PCM16 mono."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from logging_setup import get_logger, Component

from .errors import AudioSinkError


logger = get_logger(Component.AUDIO_SINK)

_EOF = None


class AudioSink:
    """
    Duplicates an incoming byte stream to two consumers.

    - the raw audio log file, written off the event loop as frames arrive
    - a live stream consumed by the recognition backend via `stream()`

    The live side is an unbounded FIFO so a slow recognizer never stalls
    logging, and both consumers see the same bytes in the same order.
    Frame boundaries are not meaningful. Once the recognizer is done
    (`detach()`, or its stream finished) frames only go to the raw log.

    Typical use
    -----------
    >>> sink = AudioSink(Path("log/3f2a.raw"))
    >>> await sink.write(frame)     # per binary frame
    >>> sink.close()                # on end of stream; idempotent
    >>> async for chunk in sink.stream(): ...
    """

    def __init__(self, raw_log_path: Union[str, Path], session_id: Optional[str] = None) -> None:
        self.raw_log_path = Path(raw_log_path)
        self.logger = logger.with_session(session_id) if session_id else logger
        self._rawlog = open(self.raw_log_path, "wb")
        self._queue: asyncio.Queue[Union[bytes, AudioSinkError, None]] = asyncio.Queue()
        self._closed = False
        self._error: Optional[AudioSinkError] = None
        self._detached = False
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[AudioSinkError]:
        return self._error

    @property
    def detached(self) -> bool:
        return self._detached

    async def write(self, chunk: bytes) -> None:
        """Append one chunk to both consumers.

        Raises AudioSinkError if the sink is closed or the raw log cannot be
        written; in the latter case the live stream fails with the same error.
        """
        if self._closed:
            raise AudioSinkError("write after end of stream")
        chunk = bytes(chunk)
        try:
            await asyncio.to_thread(self._rawlog.write, chunk)
        except (OSError, ValueError) as e:
            error = AudioSinkError(f"problem logging audio: {e}")
            self._fail(error)
            raise error from e

        if not self._detached:
            self._queue.put_nowait(chunk)
        self.bytes_written += len(chunk)

    def detach(self) -> None:
        """The live consumer is done: stop queueing and drop what it never read."""
        if self._detached:
            return
        self._detached = True
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, bytes):
                dropped += len(item)
        if dropped:
            self.logger.debug("Live stream detached", unread_bytes=dropped)

    def close(self) -> None:
        """Mark end of input and flush the raw log. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        if not self._detached:
            self._queue.put_nowait(_EOF)
        self._close_rawlog()
        self.logger.debug(
            "Audio sink closed",
            bytes_written=self.bytes_written,
            path=str(self.raw_log_path),
        )

    def _fail(self, error: AudioSinkError) -> None:
        self.logger.error("Audio sink failed", error=str(error))
        self._error = error
        self._closed = True
        if not self._detached:
            self._queue.put_nowait(error)
        self._close_rawlog()

    def _close_rawlog(self) -> None:
        if self._rawlog.closed:
            return
        try:
            self._rawlog.flush()
        except OSError as e:
            self.logger.warning("Raw audio log flush failed", error=str(e))
        finally:
            self._rawlog.close()

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield audio chunks in arrival order until the sink is closed."""
        try:
            while True:
                item = await self._queue.get()
                if item is _EOF:
                    return
                if isinstance(item, AudioSinkError):
                    raise item
                yield item
        finally:
            self.detach()
