import pytest
from pydantic import ValidationError

from companion.config import Settings


def test_defaults(monkeypatch):
    for name in ("REQUEST_TIMEOUT", "AUDIO_OUTPUT", "PORT", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)
    assert settings.request_timeout == 30.0
    assert settings.text_model == "gemini-2.5-flash"
    assert settings.audio_output == "client"
    assert settings.cors_origins == ["*"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    monkeypatch.setenv("REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("USE_NGROK", "true")
    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example.com"]')
    settings = Settings(_env_file=None)
    assert settings.gemini_api_key == "from-env"
    assert settings.request_timeout == 12.5
    assert settings.use_ngrok is True
    assert settings.cors_origins == ["https://app.example.com"]


def test_dotenv_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TTS_VOICE", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("TTS_VOICE=Puck\n")
    assert Settings(_env_file=env_file).tts_voice == "Puck"


@pytest.mark.parametrize("name, value", [
    ("PORT", "eighty"),
    ("REQUEST_TIMEOUT", "soon"),
    ("AUDIO_OUTPUT", "speakerphone"),
])
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
