from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "oral_assessments"
    schema_name: Optional[str] = Field(default=None, validation_alias="DB_SCHEMA")
    dsn: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the host/port/credential fields.",
    )
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    sqlite_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="How long a SQLite writer waits on a locked database before failing.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        if self.dsn:
            return self.dsn
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration for student recordings."""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    bucket_name: str = "student-recordings"
    signed_url_ttl_seconds: int = Field(default=3600, ge=60)

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class TranscribeConfig(BaseSettings):
    """Amazon Transcribe streaming configuration."""

    enabled: bool = True
    region: str = "us-east-1"
    language_code: str = "en-US"
    sample_rate_hz: int = 16000
    timeout_seconds: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIBE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="amazon.nova-micro-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    max_tokens: int = Field(
        default=400,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=4096,
    )
    temperature: float = Field(
        default=0.0,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )
    read_timeout_seconds: float = Field(
        default=60.0,
        validation_alias="BEDROCK_READ_TIMEOUT_SECONDS",
        gt=0,
    )
    max_attempts: int = Field(
        default=4,
        validation_alias="BEDROCK_MAX_ATTEMPTS",
        ge=1,
        le=10,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class SecurityConfig(BaseSettings):
    """JWT and application security configuration."""

    jwt_secret_key: SecretStr = Field(
        default=SecretStr("change-me"),
        validation_alias="JWT_SECRET",
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expires_minutes: int = Field(
        default=60,
        validation_alias="JWT_EXPIRATION_MINUTES",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class PipelineConfig(BaseSettings):
    """Per-response processing pipeline configuration."""

    off_topic_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    fallback_followup: str = "Tell me one more detail about your reasoning."
    max_error_length: int = Field(default=500, ge=50)
    stuck_after_minutes: int = Field(default=15, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class ScoringConfig(BaseSettings):
    """Rubric scoring dispatcher configuration."""

    response_wait_seconds: float = Field(default=120.0, ge=0)
    response_poll_seconds: float = Field(default=2.0, gt=0)
    max_justification_length: int = Field(default=1000, ge=50)
    max_error_length: int = Field(default=800, ge=50)
    batch_limit: int = Field(default=3, ge=1, le=10)
    stuck_after_minutes: int = Field(default=30, ge=1)
    cron_secret: SecretStr | None = None

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class IntegrityConfig(BaseSettings):
    """Thresholds for rolling client integrity signals up into teacher flags."""

    tab_switch_count_threshold: int = Field(default=3, ge=0)
    tab_switch_duration_threshold_ms: int = Field(default=20000, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="INTEGRITY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Oral Assessment Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/pipeline.log"
    transcript_log_file: str = "logs/transcripts.log"
    persist_request_logs: bool = False

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Transcribe
    transcribe: TranscribeConfig = Field(default_factory=TranscribeConfig)

    # Bedrock
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)

    # Security
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # Response pipeline and scoring
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    # Integrity signals
    integrity: IntegrityConfig = Field(default_factory=IntegrityConfig)

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
