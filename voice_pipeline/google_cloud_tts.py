"""
Google Cloud Text-to-Speech via REST API.

Uses API key authentication (not service account JSON) for simplicity.
Output: LINEAR16 16 kHz mono, which the REST API returns with a WAV header,
forwarded to the client in fixed-size chunks.
"""
import base64
import time
from typing import AsyncIterator, Optional
from xml.sax.saxutils import escape

from logging_setup import get_logger, Component

from .errors import SynthesisError
from .http import PooledHttpSession
from .synthesis import WAV_CHUNK_SIZE

logger = get_logger(Component.TTS)

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"


class GoogleCloudSynthesizer:
    """Google Cloud Text-to-Speech -> WAV chunks.

    Google voices have no speaking styles; apologies are rendered with SSML
    prosody instead (a little slower and lower).
    """

    def __init__(
        self,
        *,
        api_key: str,
        voice: str = "en-US-Standard-C",
        sample_rate: int = 16000,
        url: str = GOOGLE_TTS_URL,
        http: Optional[PooledHttpSession] = None,
    ):
        if not api_key:
            raise ValueError("Google Cloud TTS requires a valid API key in GOOGLE_TTS_API_KEY")
        self._api_key = api_key
        self._voice = voice
        self._sample_rate = sample_rate
        self._url = url
        self._http = http or PooledHttpSession("google-tts", Component.TTS)

    @property
    def provider(self) -> str:
        return "Google Cloud TTS"

    @staticmethod
    def build_ssml(text: str, apology: bool = False) -> str:
        body = escape(text)
        if apology:
            body = f'<prosody rate="95%" pitch="-2st">{body}</prosody>'
        return f"<speak>{body}</speak>"

    async def synthesize(self, text: str, *, apology: bool = False) -> AsyncIterator[bytes]:
        payload = {
            "input": {"ssml": self.build_ssml(text, apology)},
            "voice": {
                "languageCode": "-".join(self._voice.split("-")[:2]),
                "name": self._voice,
            },
            "audioConfig": {
                "audioEncoding": "LINEAR16",
                "sampleRateHertz": self._sample_rate,
            },
        }

        logger.info("TTS call started", text_length=len(text), apology=apology)
        t_api_start = time.perf_counter()
        try:
            session = self._http.get()
            async with session.post(self._url, params={"key": self._api_key}, json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        "Google Cloud TTS error",
                        status_code=response.status,
                        error_text=error_text,
                    )
                    raise SynthesisError(f"Google Cloud TTS API error: {response.status}")
                data = await response.json()
        except SynthesisError:
            raise
        except Exception as e:
            logger.error("Google Cloud TTS exception", error=str(e), error_type=type(e).__name__)
            raise SynthesisError(f"Google Cloud TTS exception: {e}") from e

        audio_b64 = data.get("audioContent")
        if not audio_b64:
            logger.error("Google Cloud TTS: no audioContent field in response")
            raise SynthesisError("Google Cloud TTS: no audioContent in response")

        wav = base64.b64decode(audio_b64)
        logger.info(
            "TTS call completed",
            total_audio_bytes=len(wav),
            latency_ms=int((time.perf_counter() - t_api_start) * 1000),
        )
        for offset in range(0, len(wav), WAV_CHUNK_SIZE):
            yield wav[offset:offset + WAV_CHUNK_SIZE]

    async def aclose(self) -> None:
        await self._http.aclose()
