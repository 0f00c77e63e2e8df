"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EmbeddingProviderName(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    OLLAMA = "ollama"


class PostgresSettings(BaseSettings):
    """PostgreSQL (pgvector) database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "regtruth"
    password: SecretStr = SecretStr("regtruth_dev_password")
    db: str = "regtruth"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"

    @property
    def sync_url(self) -> str:
        """Generate sync SQLAlchemy connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"


class EmbeddingSettings(BaseSettings):
    """Embedding capability configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    provider: EmbeddingProviderName = EmbeddingProviderName.OLLAMA
    model: str = "nomic-embed-text"
    api_key: SecretStr = SecretStr("")
    ollama_host: str = "http://localhost:11434"
    timeout_seconds: float = 30.0
    max_retries: int = 3

    # Long texts are truncated before embedding
    max_text_chars: int = 1000


class DiscoverySettings(BaseSettings):
    """Sitemap discovery configuration."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_")

    # Per-domain politeness band
    min_delay_ms: int = 2000
    max_delay_ms: int = 5000

    max_child_failures: int = 50
    fetch_timeout_seconds: float = 30.0
    user_agent: str = "RegTruth-Backfill/1.0 (regulatory-monitoring)"

    # Streaming parser safety limits
    max_loc_length_chars: int = 2048
    max_locs_per_file: int = 100_000
    max_bytes_per_file: int = 50 * 1024 * 1024


class CircuitBreakerSettings(BaseSettings):
    """Circuit breaker configuration."""

    model_config = SettingsConfigDict(env_prefix="CIRCUIT_BREAKER_")

    threshold: int = 5
    cooldown_seconds: float = 3600.0


class RetrySettings(BaseSettings):
    """HTTP retry configuration for rate-limited fetches."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


class WatchdogSettings(BaseSettings):
    """Endpoint health watchdog configuration."""

    model_config = SettingsConfigDict(env_prefix="WATCHDOG_")

    sla_hours: float = 24.0
    consecutive_errors_threshold: int = 3
    recovery_lookback_days: int = 7


class SearchSettings(BaseSettings):
    """Semantic search defaults."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    default_limit: int = 10
    default_min_similarity: float = 0.7
    default_min_confidence: float = 0.0
    overfetch_factor: float = 2.0


class AlertingSettings(BaseSettings):
    """Operational alerting configuration."""

    model_config = SettingsConfigDict(env_prefix="ALERTING_")

    enabled: bool = True
    slack_webhook_url: SecretStr = SecretStr("")
    timeout_seconds: float = 10.0


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO
    port: int = Field(default=8010, alias="REGULATORY_TRUTH_PORT")

    # Project paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    # Storage
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)

    # Pipeline components
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    watchdog: WatchdogSettings = Field(default_factory=WatchdogSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    alerting: AlertingSettings = Field(default_factory=AlertingSettings)

    # HTTP
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
