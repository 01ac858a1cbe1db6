"""
Server configuration tests.
"""
from pathlib import Path

import pytest

from command_server.config import ServerConfig
from voice_pipeline.executor import DEFAULT_CALENDAR_API_URL

_ENV = [
    "HOST", "PORT", "SECURE", "SSL_DIR", "SSL_PASSPHRASE", "LOG_DIR", "LOG_LEVEL",
    "USER_NAMES_PATH", "STT_PROVIDER", "STT_LANGUAGE", "STT_SAMPLE_RATE",
    "GOOGLE_SPEECH_ENDPOINT", "GROQ_API_KEY", "GROQ_MODEL_STT", "TTS_PROVIDER",
    "AZURE_SPEECH_KEY", "AZURE_SPEECH_REGION", "AZURE_SPEECH_VOICE", "AZURE_APOLOGY_STYLE",
    "GOOGLE_TTS_API_KEY", "GOOGLE_API_KEY", "GOOGLE_TTS_VOICE", "CALENDAR_API_URL",
    "STAGE_TIMEOUT_SECONDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV:
        monkeypatch.delenv(key, raising=False)


def test_config_defaults():
    config = ServerConfig.from_env()

    assert config.host == "0.0.0.0"
    assert config.port == 80
    assert config.secure is False
    assert config.log_dir == Path("./log/")
    assert config.log_level == "INFO"
    assert config.user_names_path == Path("user-names.yaml")
    assert config.stt_provider == "google"
    assert config.stt_language == "en-US"
    assert config.stt_sample_rate == 16000
    assert config.tts_provider == "azure"
    assert config.azure_speech_voice == "en-US-AriaNeural"
    assert config.azure_apology_style == "empathetic"
    assert config.google_tts_voice == "en-US-Standard-C"
    assert config.calendar_api_url == DEFAULT_CALENDAR_API_URL
    assert config.stage_timeout_seconds is None


def test_secure_defaults_to_443(monkeypatch):
    monkeypatch.setenv("SECURE", "true")
    monkeypatch.setenv("SSL_DIR", "/etc/vaani/ssl")

    config = ServerConfig.from_env()

    assert config.secure is True
    assert config.port == 443
    assert config.ssl_keyfile == Path("/etc/vaani/ssl/server-key.pem")
    assert config.ssl_certfile == Path("/etc/vaani/ssl/server-crt.pem")
    assert config.ssl_ca_certs == Path("/etc/vaani/ssl/ca-crt.pem")


def test_config_from_env_all_fields(monkeypatch):
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_DIR", "/var/log/vaani")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("STT_PROVIDER", "Groq")
    monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
    monkeypatch.setenv("TTS_PROVIDER", "GOOGLE")
    monkeypatch.setenv("GOOGLE_TTS_API_KEY", "g_test")
    monkeypatch.setenv("CALENDAR_API_URL", "https://calendar.example.org/api/v2")
    monkeypatch.setenv("STAGE_TIMEOUT_SECONDS", "7.5")

    config = ServerConfig.from_env()

    assert config.host == "127.0.0.1"
    assert config.port == 8080
    assert config.log_dir == Path("/var/log/vaani")
    assert config.log_level == "DEBUG"
    assert config.stt_provider == "groq"
    assert config.groq_api_key == "gsk_test"
    assert config.tts_provider == "google"
    assert config.google_tts_api_key == "g_test"
    assert config.calendar_api_url == "https://calendar.example.org/api/v2"
    assert config.stage_timeout_seconds == 7.5


def test_integer_env_tolerates_comments(monkeypatch):
    monkeypatch.setenv("PORT", "8443  # behind the proxy")
    monkeypatch.setenv("STT_SAMPLE_RATE", "not-a-number")

    config = ServerConfig.from_env()

    assert config.port == 8443
    assert config.stt_sample_rate == 16000


@pytest.mark.parametrize("value", ["", "0", "-3", "soon"])
def test_stage_timeout_unset_for_invalid_values(monkeypatch, value):
    monkeypatch.setenv("STAGE_TIMEOUT_SECONDS", value)

    assert ServerConfig.from_env().stage_timeout_seconds is None


def test_google_api_key_fallback(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "fallback")

    assert ServerConfig.from_env().google_tts_api_key == "fallback"
