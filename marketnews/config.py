"""Configuration management for MarketNews.

Loads configuration from environment variables with sane defaults.
Uses python-dotenv to load from .env file if present.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

CRYPTO_FALLBACK_MODES = ("synthetic", "none")


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.getenv(key, default)


def _get_env_bool(key: str, default: bool) -> bool:
    """Get bool from environment variable ("true"/"1"/"yes" are truthy)."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LoggingConfig:
    """Logging-related configuration."""

    level: str
    format: str

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create LoggingConfig from environment variables."""
        return cls(
            level=_get_env_str("LOG_LEVEL", "INFO"),
            format=_get_env_str("LOG_FORMAT", "json"),
        )


@dataclass(frozen=True)
class AggregatorSettings:
    """News aggregation configuration.

    Attributes:
        cache_timeout_minutes: Age after which a per-source cache is stale.
        max_articles_per_source: Entries converted per feed fetch.
        sentiment_analysis: Attach a SentimentResult to every item.
        symbol_extraction: Attach ``$TICKER`` symbols to every item.
        retry_attempts: Network attempts per fetch (1 = no retry).
        request_timeout: Per-source fetch deadline in seconds.
        crypto_fallback: ``"synthetic"`` or ``"none"`` when no crypto news exists.
    """

    cache_timeout_minutes: float = 15.0
    max_articles_per_source: int = 20
    sentiment_analysis: bool = True
    symbol_extraction: bool = True
    retry_attempts: int = 1
    request_timeout: float = 10.0
    crypto_fallback: str = "synthetic"

    def __post_init__(self) -> None:
        if self.crypto_fallback not in CRYPTO_FALLBACK_MODES:
            raise ValueError(
                f"Invalid crypto_fallback '{self.crypto_fallback}'. "
                f"Must be one of: {CRYPTO_FALLBACK_MODES}"
            )
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")

    @classmethod
    def from_env(cls) -> "AggregatorSettings":
        """Create AggregatorSettings from environment variables."""
        fallback = _get_env_str("NEWS_CRYPTO_FALLBACK", "synthetic").strip().lower()
        if fallback not in CRYPTO_FALLBACK_MODES:
            fallback = "synthetic"
        return cls(
            cache_timeout_minutes=_get_env_float("NEWS_CACHE_TIMEOUT_MINUTES", 15.0),
            max_articles_per_source=_get_env_int("NEWS_MAX_ARTICLES_PER_SOURCE", 20),
            sentiment_analysis=_get_env_bool("NEWS_SENTIMENT_ANALYSIS", True),
            symbol_extraction=_get_env_bool("NEWS_SYMBOL_EXTRACTION", True),
            retry_attempts=max(1, _get_env_int("NEWS_RETRY_ATTEMPTS", 1)),
            request_timeout=_get_env_float("NEWS_REQUEST_TIMEOUT", 10.0),
            crypto_fallback=fallback,
        )


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    logging: LoggingConfig
    news: AggregatorSettings
    sources_file: Path | None
    random_seed: int
    reports_dir: Path

    @classmethod
    def from_env(cls) -> "Config":
        """Create Config from environment variables."""
        sources_file = _get_env_str("NEWS_SOURCES_FILE", "")
        return cls(
            logging=LoggingConfig.from_env(),
            news=AggregatorSettings.from_env(),
            sources_file=Path(sources_file) if sources_file else None,
            random_seed=_get_env_int("RANDOM_SEED", 42),
            reports_dir=Path(_get_env_str("REPORTS_DIR", "./reports")),
        )


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
