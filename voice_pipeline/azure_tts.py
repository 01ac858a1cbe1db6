"""
Azure Text-to-Speech via REST API.

SSML in, WAV (RIFF 16 kHz 16-bit mono PCM) out, streamed as it arrives.
Apologies use the voice's `mstts:express-as` speaking style.
"""
import time
from typing import AsyncIterator, Optional
from xml.sax.saxutils import escape, quoteattr

from logging_setup import get_logger, Component

from .errors import SynthesisError
from .http import PooledHttpSession
from .synthesis import WAV_CHUNK_SIZE

logger = get_logger(Component.TTS)

DEFAULT_OUTPUT_FORMAT = "riff-16khz-16bit-mono-pcm"


class AzureSpeechSynthesizer:
    """Azure neural voices -> WAV chunks."""

    def __init__(
        self,
        *,
        speech_key: str,
        speech_region: str,
        voice: str = "en-US-AriaNeural",
        apology_style: str = "empathetic",
        output_format: str = DEFAULT_OUTPUT_FORMAT,
        endpoint: Optional[str] = None,
        http: Optional[PooledHttpSession] = None,
    ):
        if not speech_key:
            raise ValueError("Azure TTS requires AZURE_SPEECH_KEY")
        if not speech_region and not endpoint:
            raise ValueError("Azure TTS requires AZURE_SPEECH_REGION")
        self._speech_key = speech_key
        self._voice = voice
        self._apology_style = apology_style
        self._output_format = output_format
        self._endpoint = endpoint or (
            f"https://{speech_region}.tts.speech.microsoft.com/cognitiveservices/v1"
        )
        self._http = http or PooledHttpSession("azure-tts", Component.TTS)

    @property
    def provider(self) -> str:
        return "Azure TTS"

    def build_ssml(self, text: str, apology: bool = False) -> str:
        language = "-".join(self._voice.split("-")[:2])
        body = escape(text)
        if apology:
            body = f"<mstts:express-as style={quoteattr(self._apology_style)}>{body}</mstts:express-as>"
        return (
            '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" '
            'xmlns:mstts="https://www.w3.org/2001/mstts" '
            f'xml:lang={quoteattr(language)}>'
            f'<voice name={quoteattr(self._voice)}>{body}</voice>'
            '</speak>'
        )

    async def synthesize(self, text: str, *, apology: bool = False) -> AsyncIterator[bytes]:
        headers = {
            "Ocp-Apim-Subscription-Key": self._speech_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self._output_format,
            "User-Agent": "vaani-server",
        }
        ssml = self.build_ssml(text, apology)

        logger.info("TTS call started", text_length=len(text), apology=apology)
        t_start = time.perf_counter()
        t_first_chunk = None
        total_audio_bytes = 0
        try:
            session = self._http.get()
            async with session.post(self._endpoint, data=ssml.encode("utf-8"), headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        "Azure TTS error",
                        status_code=response.status,
                        error_text=error_text,
                    )
                    raise SynthesisError(f"Azure TTS API error: {response.status}")

                async for chunk in response.content.iter_chunked(WAV_CHUNK_SIZE):
                    if t_first_chunk is None:
                        t_first_chunk = time.perf_counter()
                    total_audio_bytes += len(chunk)
                    yield chunk
        except SynthesisError:
            raise
        except Exception as e:
            logger.error("Azure TTS exception", error=str(e), error_type=type(e).__name__)
            raise SynthesisError(f"Azure TTS exception: {e}") from e

        logger.info(
            "TTS call completed",
            total_audio_bytes=total_audio_bytes,
            time_to_first_audio_ms=int((t_first_chunk - t_start) * 1000) if t_first_chunk else None,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )

    async def aclose(self) -> None:
        await self._http.aclose()
