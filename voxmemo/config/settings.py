from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_MIME_TYPES = [
    "audio/webm",
    "audio/wav",
    "audio/mp4",
    "audio/mpeg",
    "audio/mp3",
]


class OpenAIConfig(BaseSettings):
    """OpenAI endpoint configuration."""

    api_key: SecretStr | None = Field(default=None)
    base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    extraction_model: str = "gpt-4o"
    request_timeout: float = Field(default=60.0, gt=0)
    verify_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for validating a key against the live provider.",
    )

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class RateLimitConfig(BaseSettings):
    """Token bucket defaults applied to each governed endpoint."""

    requests_per_minute: float = Field(default=3, gt=0)
    burst: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class RetryConfig(BaseSettings):
    """Exponential backoff policy for transient provider failures."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=8.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class AudioValidationConfig(BaseSettings):
    """Pre-flight checks applied to captured audio."""

    max_file_size: int = Field(default=25 * 1024 * 1024, gt=0)
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES)
    )
    min_duration: Optional[float] = Field(default=None, gt=0)
    max_duration: Optional[float] = Field(default=None, gt=0)
    ffprobe_binary: str = "ffprobe"

    @property
    def checks_duration(self) -> bool:
        return self.min_duration is not None or self.max_duration is not None

    model_config = SettingsConfigDict(
        env_prefix="AUDIO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class StorageConfig(BaseSettings):
    """On-disk locations and at-rest encryption material."""

    data_dir: Path = Field(default=Path.home() / ".voxmemo")
    encryption_secret: SecretStr = Field(default=SecretStr("change-me"))
    credential_key: str = "openai_api_key"

    @property
    def failed_recordings_path(self) -> Path:
        return self.data_dir / "failed-recordings.blob"

    @property
    def secure_dir(self) -> Path:
        return self.data_dir / "secure"

    @property
    def local_settings_path(self) -> Path:
        return self.data_dir / "local-settings.json"

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class PipelineConfig(BaseSettings):
    """Pipeline behaviour switches."""

    persist_rate_limited: bool = Field(
        default=False,
        description="Queue recordings refused by the rate limiter as failed recordings.",
    )

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "voxmemo"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/pipeline.log"

    # OpenAI
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)

    # Rate limiting
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    # Retries
    retry: RetryConfig = Field(default_factory=RetryConfig)

    # Audio validation
    audio: AudioValidationConfig = Field(default_factory=AudioValidationConfig)

    # Storage
    storage: StorageConfig = Field(default_factory=StorageConfig)

    # Pipeline
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
