"""
Command server configuration.

Loads server, logging and provider configuration from environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from logging_setup import get_logger, Component
from voice_pipeline.executor import DEFAULT_CALENDAR_API_URL

logger = get_logger(Component.CONFIG)

# Local dev convenience: .env_local / .env.local, never overriding the environment.
_root = Path(__file__).parent.parent
for _name in (".env_local", ".env.local"):
    _p = _root / _name
    if _p.exists():
        load_dotenv(_p, override=False)


def _strip_comment(value: Optional[str]) -> str:
    if not value:
        return ""
    if "#" in value:
        value = value.split("#")[0]
    return value.strip()


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    "443  # tls" -> 443, unset or invalid -> default
    """
    value = _strip_comment(os.environ.get(key))
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid integer in environment, using default", key=key, default=default)
        return default


def _parse_float_env(key: str) -> Optional[float]:
    value = _strip_comment(os.environ.get(key))
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Invalid number in environment, ignoring", key=key)
        return None
    return parsed if parsed > 0 else None


def _parse_bool_env(key: str, default: bool = False) -> bool:
    value = _strip_comment(os.environ.get(key)).lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Command server configuration."""

    # Listener
    host: str
    port: int
    secure: bool
    ssl_dir: Path
    ssl_passphrase: Optional[str]

    # Logging
    log_dir: Path
    log_level: str

    # Recognition
    user_names_path: Path
    stt_provider: str  # "google" | "groq"
    stt_language: str
    stt_sample_rate: int
    google_speech_endpoint: Optional[str] = None
    groq_api_key: Optional[str] = None
    groq_model_stt: str = "whisper-large-v3"

    # Synthesis
    tts_provider: str = "azure"  # "azure" | "google"
    azure_speech_key: Optional[str] = None
    azure_speech_region: Optional[str] = None
    azure_speech_voice: str = "en-US-AriaNeural"
    azure_apology_style: str = "empathetic"
    google_tts_api_key: Optional[str] = None
    google_tts_voice: str = "en-US-Standard-C"

    # Calendar
    calendar_api_url: str = DEFAULT_CALENDAR_API_URL

    # None: no per-stage deadline
    stage_timeout_seconds: Optional[float] = None

    @property
    def ssl_keyfile(self) -> Path:
        return self.ssl_dir / "server-key.pem"

    @property
    def ssl_certfile(self) -> Path:
        return self.ssl_dir / "server-crt.pem"

    @property
    def ssl_ca_certs(self) -> Path:
        return self.ssl_dir / "ca-crt.pem"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        secure = _parse_bool_env("SECURE")
        return cls(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_parse_int_env("PORT", default=443 if secure else 80),
            secure=secure,
            ssl_dir=Path(os.environ.get("SSL_DIR", "./resources/ssl/")),
            ssl_passphrase=os.environ.get("SSL_PASSPHRASE") or None,
            log_dir=Path(os.environ.get("LOG_DIR", "./log/")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            user_names_path=Path(os.environ.get("USER_NAMES_PATH", "user-names.yaml")),
            stt_provider=os.environ.get("STT_PROVIDER", "google").lower(),
            stt_language=os.environ.get("STT_LANGUAGE", "en-US"),
            stt_sample_rate=_parse_int_env("STT_SAMPLE_RATE", default=16000),
            google_speech_endpoint=os.environ.get("GOOGLE_SPEECH_ENDPOINT") or None,
            groq_api_key=os.environ.get("GROQ_API_KEY"),
            groq_model_stt=os.environ.get("GROQ_MODEL_STT", "whisper-large-v3"),
            tts_provider=os.environ.get("TTS_PROVIDER", "azure").lower(),
            azure_speech_key=os.environ.get("AZURE_SPEECH_KEY"),
            azure_speech_region=os.environ.get("AZURE_SPEECH_REGION"),
            azure_speech_voice=os.environ.get("AZURE_SPEECH_VOICE", "en-US-AriaNeural"),
            azure_apology_style=os.environ.get("AZURE_APOLOGY_STYLE", "empathetic"),
            google_tts_api_key=os.environ.get("GOOGLE_TTS_API_KEY") or os.environ.get("GOOGLE_API_KEY"),
            google_tts_voice=os.environ.get("GOOGLE_TTS_VOICE", "en-US-Standard-C"),
            calendar_api_url=os.environ.get("CALENDAR_API_URL", DEFAULT_CALENDAR_API_URL),
            stage_timeout_seconds=_parse_float_env("STAGE_TIMEOUT_SECONDS"),
        )


def get_config() -> ServerConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[ServerConfig] = None
