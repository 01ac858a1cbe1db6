"""
Text-to-speech contract.

A synthesizer turns a message into a stream of WAV bytes. `apology=True`
asks the backend to render the message in its apologetic style; how that
is marked up is backend specific.
"""
from typing import AsyncIterator, Protocol

# Size of the binary frames audio is forwarded to the client in.
WAV_CHUNK_SIZE = 8192


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str, *, apology: bool = False) -> AsyncIterator[bytes]:
        """Yield WAV audio chunks in order; raise SynthesisError on failure."""
        ...

    async def aclose(self) -> None: ...
