"""
Groq Whisper speech-to-text via the OpenAI-compatible REST API.

Whisper is not a streaming backend: the command audio is buffered until end
of stream, wrapped as WAV and uploaded in one request.
"""
import io
import math
import time
import wave
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence

import aiohttp

from logging_setup import get_logger, Component

from .errors import RecognitionError
from .http import PooledHttpSession
from .models import NO_HYPOTHESIS, Transcript
from .recognition import LanguageConfig

logger = get_logger(Component.STT)

GROQ_TRANSCRIPTIONS_URL = "https://api.groq.com/openai/v1/audio/transcriptions"

# Whisper prompts are capped at 224 tokens; a few dozen hints is plenty.
MAX_PROMPT_HINTS = 40


def pcm16_to_wav(pcm: bytes, sample_rate_hz: int) -> bytes:
    """Wrap raw PCM16 little-endian mono audio in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate_hz)
        wav.writeframes(pcm)
    return buffer.getvalue()


def segment_confidence(segments: Iterable[Mapping[str, Any]]) -> float:
    """
    Confidence of a Whisper transcript from its segments.

    Mean of exp(avg_logprob) over segments, clamped to [0, 1]. Without
    segment detail the confidence is unknown and reported as 1.0.
    """
    probabilities = [
        math.exp(segment["avg_logprob"])
        for segment in segments
        if segment.get("avg_logprob") is not None
    ]
    if not probabilities:
        return 1.0
    return max(0.0, min(1.0, sum(probabilities) / len(probabilities)))


class GroqWhisperRecognizer:
    """Buffered recognizer backed by Groq's Whisper endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "whisper-large-v3",
        url: str = GROQ_TRANSCRIPTIONS_URL,
        http: Optional[PooledHttpSession] = None,
    ):
        if not api_key:
            raise ValueError("Groq speech-to-text requires GROQ_API_KEY")
        self._api_key = api_key
        self._model = model
        self._url = url
        self._http = http or PooledHttpSession("groq-stt", Component.STT)

    @property
    def provider(self) -> str:
        return "Groq Whisper"

    async def recognize(
        self,
        audio: AsyncIterator[bytes],
        hints: Sequence[str],
        language: LanguageConfig,
    ) -> Transcript:
        pcm = bytearray()
        try:
            async for chunk in audio:
                pcm.extend(chunk)
        except Exception as e:
            raise RecognitionError(f"audio stream failed: {e}") from e

        if not pcm:
            logger.info("No audio received, nothing to recognize")
            return NO_HYPOTHESIS

        form = aiohttp.FormData()
        form.add_field(
            "file",
            pcm16_to_wav(bytes(pcm), language.sample_rate_hz),
            filename="command.wav",
            content_type="audio/wav",
        )
        form.add_field("model", self._model)
        form.add_field("response_format", "verbose_json")
        form.add_field("language", language.language_code.split("-")[0])
        if hints:
            form.add_field("prompt", ", ".join(list(hints)[:MAX_PROMPT_HINTS]))

        t_start = time.perf_counter()
        try:
            session = self._http.get()
            async with session.post(
                self._url,
                data=form,
                headers={"Authorization": f"Bearer {self._api_key}"},
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        "Groq transcription error",
                        status_code=response.status,
                        error_text=error_text,
                    )
                    raise RecognitionError(
                        f"Groq transcription API error: {response.status}"
                    )
                data = await response.json()
        except RecognitionError:
            raise
        except Exception as e:
            logger.error(
                "Groq transcription exception",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RecognitionError(f"Groq transcription exception: {e}") from e

        text = (data.get("text") or "").strip()
        if not text:
            return NO_HYPOTHESIS

        transcript = Transcript(
            text=text,
            confidence=segment_confidence(data.get("segments") or []),
        )
        logger.info(
            "Recognition completed",
            audio_bytes=len(pcm),
            confidence=transcript.confidence,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return transcript

    async def aclose(self) -> None:
        await self._http.aclose()
