"""
Configuration management with environment variable support and validation.

Design principles:
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no API tokens in code)

The polling controller takes a ``PollingConfig`` object directly; reading it
from the environment is only a convenience for the monitor CLI.
"""

import logging
import os
import sys
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class TreatmentSourceConfig(BaseModel):
    """Where and how to reach the session API."""

    base_url: str = Field(
        default="http://localhost:3000/api", description="Base URL of the session API"
    )
    api_token: str | None = Field(default=None, description="Bearer token (optional)")
    timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single active-effects request"
    )

    @field_validator("base_url")
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class PollingConfig(BaseModel):
    """Cadence of the slow network poll and the fast local recompute."""

    poll_interval_ms: int = Field(
        default=5000, gt=0, description="How often to fetch active treatments"
    )
    update_interval_ms: int = Field(
        default=1000, gt=0, description="How often to recompute effects locally"
    )
    enabled: bool = Field(default=True, description="Whether the controller polls at all")

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def update_interval_seconds(self) -> float:
        return self.update_interval_ms / 1000


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    source: TreatmentSourceConfig = Field(default_factory=TreatmentSourceConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
    v = val.strip().lower()
    if v in {"dev", "development"}:
        return "development"
    if v in {"stage", "staging"}:
        return "staging"
    return "production"


def _level_to_literal(val: str) -> LogLevel:
    v = val.strip().upper()
    return cast(LogLevel, v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO")


def _parse_bool(val: str | None, default: bool) -> bool:
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    source_config = TreatmentSourceConfig(
        base_url=os.getenv("EFFECTS_API_BASE_URL", "http://localhost:3000/api"),
        api_token=os.getenv("EFFECTS_API_TOKEN") or None,
        timeout_seconds=float(os.getenv("EFFECTS_API_TIMEOUT_SECONDS", "10.0")),
    )

    polling_config = PollingConfig(
        poll_interval_ms=int(os.getenv("POLL_INTERVAL_MS", "5000")),
        update_interval_ms=int(os.getenv("UPDATE_INTERVAL_MS", "1000")),
        enabled=_parse_bool(os.getenv("EFFECTS_ENABLED"), True),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        source=source_config,
        polling=polling_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog on top of the stdlib logger factory."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=config.level)

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
