from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Read from the environment (or `.env`), matched case-insensitively to the
    field names, e.g. GEMINI_API_KEY, TEXT_MODEL, REQUEST_TIMEOUT.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Gemini settings
    gemini_api_key: str = ""
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    text_model: str = "gemini-2.5-flash"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    image_model: str = "imagen-4.0-generate-001"
    tts_voice: str = "Kore"

    # Seconds; no transport default is inherited, every provider call uses this
    request_timeout: float = 30.0

    # Emergency dial target
    emergency_contact_number: str = "+16199600598"

    # Audio / speech capabilities
    audio_sample_rate: int = 24000
    audio_channels: int = 1
    audio_output: Literal["client", "device"] = "client"
    speech_input: Literal["upload", "microphone"] = "upload"
    speech_language: str = "en-US"

    # Server settings; CORS_ORIGINS is a JSON list
    cors_origins: List[str] = ["*"]
    host: str = "127.0.0.1"
    port: int = 8000
    use_ngrok: bool = False


def get_settings() -> Settings:
    return Settings()
