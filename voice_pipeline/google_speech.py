"""
Google Cloud Speech-to-Text with bidirectional streaming.

Audio is forwarded to the backend as it arrives, so recognition runs while
the client is still talking. Requires service account authentication
(GOOGLE_APPLICATION_CREDENTIALS).
"""
import time
from typing import AsyncIterator, Optional, Sequence

from google.cloud import speech

from logging_setup import get_logger, Component

from .errors import AudioSinkError, RecognitionError
from .models import Transcript
from .recognition import LanguageConfig, best_hypothesis

logger = get_logger(Component.STT)


class GoogleSpeechRecognizer:
    """
    Streaming recognizer backed by SpeechAsyncClient.streaming_recognize.

    Runs in single-utterance mode without interim results; the best final
    alternative over the whole call is returned.
    """

    def __init__(self, *, endpoint: Optional[str] = None, client=None):
        self._endpoint = endpoint
        self._client = client

    @property
    def provider(self) -> str:
        return "Google Cloud Speech (Streaming)"

    def _get_client(self):
        # Created lazily so missing credentials surface as a recognition
        # failure of the session, not as a startup crash.
        if self._client is None:
            client_options = {"api_endpoint": self._endpoint} if self._endpoint else None
            self._client = speech.SpeechAsyncClient(client_options=client_options)
            logger.info("Google Cloud Speech client initialized", endpoint=self._endpoint)
        return self._client

    async def recognize(
        self,
        audio: AsyncIterator[bytes],
        hints: Sequence[str],
        language: LanguageConfig,
    ) -> Transcript:
        streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding[language.encoding],
                sample_rate_hertz=language.sample_rate_hz,
                language_code=language.language_code,
                speech_contexts=[speech.SpeechContext(phrases=list(hints))],
            ),
            interim_results=False,
            single_utterance=True,
        )

        # grpc.aio swallows request-iterator errors and cancels the call, so an
        # audio failure is kept here and re-raised once the call has ended.
        audio_failure: list[AudioSinkError] = []

        # Config request must be first in stream, audio follows.
        async def request_generator():
            yield speech.StreamingRecognizeRequest(streaming_config=streaming_config)
            try:
                async for chunk in audio:
                    yield speech.StreamingRecognizeRequest(audio_content=chunk)
            except AudioSinkError as e:
                audio_failure.append(e)

        t_start = time.perf_counter()
        results = []
        try:
            client = self._get_client()
            stream = await client.streaming_recognize(requests=request_generator())
            async for response in stream:
                results.extend(response.results)
        except Exception as e:
            logger.error(
                "Google Cloud Speech streaming exception",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RecognitionError(f"Google Cloud Speech streaming exception: {e}") from e

        if audio_failure:
            raise RecognitionError(f"audio stream failed: {audio_failure[0]}") from audio_failure[0]

        transcript = best_hypothesis(results)
        logger.info(
            "Recognition completed",
            results_received=len(results),
            confidence=transcript.confidence,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return transcript

    async def aclose(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.transport.close()
        except Exception as e:
            logger.warning(
                "Error closing Google Cloud Speech client",
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            self._client = None
