"""
Voice command server.

One WebSocket connection per spoken command at `/`, authorized by the
`authtoken` query parameter, plus a liveness probe at `/health`.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.responses import PlainTextResponse

from logging_setup import get_logger, Component
from voice_pipeline.azure_tts import AzureSpeechSynthesizer
from voice_pipeline.executor import CalendarExecutor
from voice_pipeline.google_cloud_tts import GoogleCloudSynthesizer
from voice_pipeline.google_speech import GoogleSpeechRecognizer
from voice_pipeline.groq_stt import GroqWhisperRecognizer
from voice_pipeline.hints import load_phrase_hints
from voice_pipeline.intent import ReminderGrammar
from voice_pipeline.recognition import LanguageConfig, RecognitionClient
from voice_pipeline.synthesis import SpeechSynthesizer

from .config import ServerConfig, get_config
from .connection import WebSocketConnection
from .registry import SessionRegistry
from .responder import ResponseComposer
from .session import Pipeline

logger = get_logger(Component.SERVER)

ALIVE_MESSAGE = "I am alive!"


def build_recognizer(config: ServerConfig) -> RecognitionClient:
    provider = config.stt_provider
    if provider == "google":
        return GoogleSpeechRecognizer(endpoint=config.google_speech_endpoint)
    if provider == "groq":
        return GroqWhisperRecognizer(api_key=config.groq_api_key, model=config.groq_model_stt)
    raise ValueError(f"Unknown STT_PROVIDER: {provider!r} (expected 'google' or 'groq')")


def build_synthesizer(config: ServerConfig) -> SpeechSynthesizer:
    provider = config.tts_provider
    if provider == "azure":
        return AzureSpeechSynthesizer(
            speech_key=config.azure_speech_key,
            speech_region=config.azure_speech_region,
            voice=config.azure_speech_voice,
            apology_style=config.azure_apology_style,
        )
    if provider == "google":
        return GoogleCloudSynthesizer(
            api_key=config.google_tts_api_key,
            voice=config.google_tts_voice,
            sample_rate=config.stt_sample_rate,
        )
    raise ValueError(f"Unknown TTS_PROVIDER: {provider!r} (expected 'azure' or 'google')")


def build_pipeline(config: ServerConfig) -> Pipeline:
    """Create the process-wide collaborators from configuration."""
    config.log_dir.mkdir(parents=True, exist_ok=True)
    hints = load_phrase_hints(config.user_names_path)
    pipeline = Pipeline(
        recognizer=build_recognizer(config),
        resolver=ReminderGrammar(),
        executor=CalendarExecutor(base_url=config.calendar_api_url),
        composer=ResponseComposer(build_synthesizer(config)),
        hints=hints,
        language=LanguageConfig(
            language_code=config.stt_language,
            sample_rate_hz=config.stt_sample_rate,
        ),
        log_dir=config.log_dir,
        stage_timeout=config.stage_timeout_seconds,
    )
    logger.info(
        "Pipeline ready",
        stt_provider=config.stt_provider,
        tts_provider=config.tts_provider,
        hints=len(hints),
        log_dir=str(config.log_dir),
        stage_timeout_s=config.stage_timeout_seconds,
    )
    return pipeline


def create_app(
    pipeline: Optional[Pipeline] = None,
    config: Optional[ServerConfig] = None,
) -> FastAPI:
    """
    Build the application.

    Without an explicit pipeline, one is built from configuration at startup
    and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.pipeline is None:
            app.state.pipeline = build_pipeline(config or get_config())
        try:
            yield
        finally:
            if app.state.pipeline is not None:
                await app.state.pipeline.aclose()

    app = FastAPI(title="Voice Command Server", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.registry = SessionRegistry()

    @app.websocket("/")
    async def voice_command(websocket: WebSocket):
        """One connection, one spoken command, one answer."""
        await websocket.accept()
        current: Optional[Pipeline] = websocket.app.state.pipeline
        if current is None:
            logger.error("Connection refused, pipeline not ready")
            await websocket.close(code=1011)
            return

        token = websocket.query_params.get("authtoken", "")
        registry: SessionRegistry = websocket.app.state.registry
        session = registry.open_session(WebSocketConnection(websocket), token, current)
        await session.run()

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        """Liveness probe."""
        return ALIVE_MESSAGE

    @app.get("/")
    async def root():
        return {"status": "approved"}

    return app


app = create_app()
