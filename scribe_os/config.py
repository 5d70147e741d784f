"""Configuration management for ScribeOS."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Field encryption
    encryption_key: str = Field(
        default="",
        description="Fernet key protecting every PHI field at rest",
    )
    encryption_previous_keys: list[str] = Field(
        default_factory=list,
        description="Retired Fernet keys still accepted for decryption",
    )

    # Record persistence
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/scribe.db",
        description="Async SQLAlchemy DSN for session records",
    )

    # Speech-to-text (OpenAI-compatible audio endpoint)
    stt_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Endpoint exposing /audio/transcriptions",
    )
    stt_api_key: str = Field(default="", description="API key for speech-to-text")
    stt_model: str = Field(default="whisper-1")
    stt_language: str = Field(default="fr", description="Spoken language of encounters")
    stt_timeout: int = Field(default=120, description="Timeout in seconds for transcription")

    # Text structuring / coding
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="Which structuring backend to use",
    )
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible chat completions endpoint",
    )
    llm_api_key: str = Field(default="", description="API key for the chat endpoint")
    llm_model: str = Field(default="gpt-4o-mini")
    llm_timeout: int = Field(default=60, description="Timeout in seconds for structuring calls")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    anthropic_model: str = Field(default="claude-sonnet-4-20250514")
    notes_temperature: float = Field(default=0.3)
    coding_temperature: float = Field(default=0.2)

    # Pipeline
    pipeline_max_attempts: int = Field(
        default=3,
        description="Attempts for a retryable transcription failure",
    )
    pipeline_retry_wait_max: float = Field(default=10.0)

    # Storage
    audio_storage_dir: Path = Field(default=Path("./data/audio"))
    export_storage_dir: Path = Field(default=Path("./data/exports"))
    audit_log_path: Path = Field(default=Path("./data/logs/audit.jsonl"))

    # Observability
    observability_enabled: bool = Field(default=True)
    observability_log_dir: Path = Field(default=Path("./data/logs"))

    # Export
    report_page_break_y: float = Field(
        default=250.0,
        description="Vertical cursor position (mm) beyond which the report starts a new page",
    )
    report_transcript_cap: int = Field(default=500)
    clinic_name: str = Field(default="ScribeOS")
    fhir_identifier_system: str = Field(default="https://scribe-os.example/exports")

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    api_key: str = Field(
        default="",
        description="API key for machine clients (paired with X-Practitioner-Id)",
    )
    jwt_secret: str = Field(default="", description="Secret used to verify bearer tokens")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Debug
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (exposes error details in responses)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def has_encryption_key(self) -> bool:
        """Check if a field encryption key is configured."""
        return bool(self.encryption_key)

    @property
    def has_anthropic_key(self) -> bool:
        """Check if Anthropic API key is configured."""
        return bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
