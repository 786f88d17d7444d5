"""
Centralized configuration for the Meta Ads performance core.

Configuration is loaded from environment variables with sensible defaults.

Usage:
    from adsperf.config import config

    token = config.meta.access_token
    tz_name = config.performance.reference_timezone
"""

import os
from dataclasses import dataclass, field
from typing import List, Tuple

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    try:
        return int(value) if value.strip() else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class MetaAPIConfig:
    """Meta Graph API configuration."""

    api_version: str = field(default_factory=lambda: os.getenv("META_API_VERSION", "v16.0"))
    access_token: str = field(default_factory=lambda: os.getenv("META_ACCESS_TOKEN", ""))
    ad_account_id: str = field(default_factory=lambda: os.getenv("META_AD_ACCOUNT_ID", ""))
    request_timeout: float = 30.0
    page_limit: int = 500
    max_pages: int = 20


@dataclass(frozen=True)
class PerformanceConfig:
    """Date handling and upstream policy for the performance pipeline."""

    reference_timezone: str = field(
        default_factory=lambda: os.getenv("REFERENCE_TIMEZONE", "UTC")
    )
    max_range_days: int = 366
    # 1 means a single attempt: retrying is opt-in
    retry_attempts: int = field(default_factory=lambda: _env_int("UPSTREAM_RETRY_ATTEMPTS", 1))
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0


@dataclass(frozen=True)
class SimulationConfig:
    """Bands for placeholder metrics (inclusive lower, exclusive upper)."""

    impressions: Tuple[int, int] = (1000, 1500)
    clicks: Tuple[int, int] = (50, 80)
    spend: Tuple[float, float] = (100.0, 150.0)
    conversions: Tuple[int, int] = (5, 10)
    roas: Tuple[float, float] = (2.0, 3.5)
    frequency: Tuple[float, float] = (1.2, 1.7)
    reach_ratio: float = 0.8


@dataclass(frozen=True)
class CacheConfig:
    """Insights caching configuration."""

    ttl_seconds: int = field(default_factory=lambda: _env_int("INSIGHTS_CACHE_TTL", 0))
    max_entries: int = 256


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_format: bool = field(default_factory=lambda: _env_bool("LOG_JSON", False))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "0.3.0"
    meta: MetaAPIConfig = field(default_factory=MetaAPIConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global config instance
config = AppConfig()


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(cfg: AppConfig = None, require_credentials: bool = False) -> None:
    """
    Validate that all required configuration is present.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Args:
        cfg: Configuration to check (defaults to the global config)
        require_credentials: If True, the environment must provide a token and
            an ad account (deployments without an account database)

    Raises:
        ConfigurationError: If required configuration is missing
    """
    cfg = cfg or config
    errors: List[str] = []

    if require_credentials:
        if not cfg.meta.access_token:
            errors.append("META_ACCESS_TOKEN is required but not set")
        if not cfg.meta.ad_account_id:
            errors.append("META_AD_ACCOUNT_ID is required but not set")

    if not cfg.meta.api_version.startswith("v"):
        errors.append(
            f"META_API_VERSION appears to be invalid (expected format: v16.0, got {cfg.meta.api_version!r})"
        )

    account_id = cfg.meta.ad_account_id
    if account_id and not account_id.removeprefix("act_").isdigit():
        errors.append("META_AD_ACCOUNT_ID must be numeric, optionally prefixed with 'act_'")

    if cfg.performance.retry_attempts < 1:
        errors.append("UPSTREAM_RETRY_ATTEMPTS must be at least 1")

    if cfg.cache.ttl_seconds < 0:
        errors.append("INSIGHTS_CACHE_TTL cannot be negative")

    try:
        from zoneinfo import ZoneInfo

        ZoneInfo(cfg.performance.reference_timezone)
    except (KeyError, ValueError):
        errors.append(f"REFERENCE_TIMEZONE {cfg.performance.reference_timezone!r} is not a known timezone")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
