"""Configuration settings using pydantic-settings."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigValidationError


class PipelineConfig(BaseModel):
    """Sizing and concurrency options for a single pipeline run."""

    batch_size: int = Field(5, description="Records requested per page fetch")
    max_queue_size: int = Field(15, description="Upper bound on records fetched but not yet settled")
    fetch_concurrency: int = Field(1, description="Concurrent page fetches")
    enrich_concurrency: int = Field(5, description="Concurrent enrichment lookups")
    delivery_concurrency: int = Field(5, description="Concurrent batch deliveries")
    max_batch_size: int = Field(5, description="Maximum records per delivered batch")
    flush_timeout_ms: int = Field(500, description="Rolling buffer timeout, 0 disables it")
    enrichment_errors_fatal: bool = Field(
        False, description="Fail the run on the first enrichment error instead of dropping the record"
    )

    @property
    def flush_timeout(self) -> float:
        """Flush timeout in seconds."""
        return self.flush_timeout_ms / 1000


def validate_config(config: PipelineConfig) -> None:
    """
    Check the size relationships between stages.

    Raises:
        ConfigValidationError: naming the first offending option.
    """
    if config.batch_size <= 0:
        raise ConfigValidationError("batch_size", f"must be > 0, got {config.batch_size}")
    if config.max_queue_size < config.batch_size:
        raise ConfigValidationError(
            "max_queue_size",
            f"{config.max_queue_size} must be >= batch_size {config.batch_size}",
        )
    for name in ("fetch_concurrency", "enrich_concurrency", "delivery_concurrency"):
        value = getattr(config, name)
        if value < 1:
            raise ConfigValidationError(name, f"must be >= 1, got {value}")
    if config.max_batch_size < 1:
        raise ConfigValidationError("max_batch_size", f"must be >= 1, got {config.max_batch_size}")
    if config.max_batch_size > config.batch_size:
        raise ConfigValidationError(
            "max_batch_size",
            f"{config.max_batch_size} cannot be higher than batch_size {config.batch_size}",
        )
    if config.flush_timeout_ms < 0:
        raise ConfigValidationError("flush_timeout_ms", f"must be >= 0, got {config.flush_timeout_ms}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Pipeline defaults
    batch_size: int = Field(5, description="Records requested per page fetch")
    max_queue_size: int = Field(15, description="Maximum records in flight")
    fetch_concurrency: int = Field(1, description="Concurrent page fetches")
    enrich_concurrency: int = Field(5, description="Concurrent enrichment lookups")
    delivery_concurrency: int = Field(5, description="Concurrent batch deliveries")
    max_batch_size: int = Field(5, description="Maximum records per delivered batch")
    flush_timeout_ms: int = Field(500, description="Rolling buffer timeout in milliseconds")
    enrichment_errors_fatal: bool = Field(False, description="Treat enrichment errors as fatal")

    # Caching
    cache_dir: str = Field(".cache", description="Directory for disk cache")
    cache_ttl_days: int = Field(7, description="Cache TTL in days")

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    # Timeouts
    http_timeout: float = Field(30.0, description="HTTP request timeout in seconds")

    def pipeline_config(self, **overrides) -> PipelineConfig:
        """Build a pipeline config from these settings, with per-run overrides."""
        values = {name: getattr(self, name) for name in PipelineConfig.model_fields}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return PipelineConfig(**values)


# Global settings instance
settings = Settings()
