"""
Configuration for Visitor Analytics.
"""
import logging
import os
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "visitor_info"
DEFAULT_PRIMARY_GEOLOCATION_URL = "https://ipapi.co/{ip}/json/"
DEFAULT_FALLBACK_GEOLOCATION_URL = "https://ipinfo.io/{ip}/json"

# Table names are interpolated into SQL, so only plain identifiers are allowed
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(ValueError):
    """Raised when the analytics configuration is unusable."""
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(name: str, default: float | None) -> float | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


@dataclass
class AnalyticsConfig:
    """Configuration for a single analytics instance."""

    # Required
    database_url: str

    # Storage
    table_name: str = DEFAULT_TABLE_NAME
    ssl_verify: bool = False  # Hosted Postgres is reached over TLS without cert checks
    pool_min_size: int = 1
    pool_max_size: int = 5

    # Geolocation services ({ip} is substituted)
    primary_geolocation_url: str = DEFAULT_PRIMARY_GEOLOCATION_URL
    fallback_geolocation_url: str = DEFAULT_FALLBACK_GEOLOCATION_URL
    geolocation_timeout: float | None = None

    # Dashboard
    display_name: str = "Visitor Analytics"
    fetch_timeout_seconds: float = 10.0
    api_base_url: str | None = None  # None = call the API in-process

    # Error responses include a traceback when set
    expose_error_details: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.database_url:
            raise ConfigurationError("database_url is required")

        if not _IDENTIFIER_RE.match(self.table_name):
            raise ConfigurationError(
                f"table_name must be a plain SQL identifier, got {self.table_name!r}"
            )

        for attr in ("primary_geolocation_url", "fallback_geolocation_url"):
            if "{ip}" not in getattr(self, attr):
                raise ConfigurationError(f"{attr} must contain an '{{ip}}' placeholder")

        if self.pool_min_size < 0 or self.pool_max_size < max(self.pool_min_size, 1):
            raise ConfigurationError(
                f"Invalid pool size: min={self.pool_min_size} max={self.pool_max_size}"
            )

        if self.fetch_timeout_seconds <= 0:
            raise ConfigurationError("fetch_timeout_seconds must be positive")

        if self.expose_error_details:
            logger.warning(
                "expose_error_details is enabled: error responses will include tracebacks"
            )

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        """Build a config from environment variables.

        DATABASE_URL (or NEON_DATABASE_URL) selects the database. Everything
        else is optional and prefixed with ANALYTICS_.
        """
        database_url = os.environ.get("DATABASE_URL") or os.environ.get("NEON_DATABASE_URL")
        if not database_url:
            raise ConfigurationError("DATABASE_URL (or NEON_DATABASE_URL) is not set")

        return cls(
            database_url=database_url,
            table_name=os.environ.get("ANALYTICS_TABLE_NAME", DEFAULT_TABLE_NAME),
            ssl_verify=_env_bool("ANALYTICS_SSL_VERIFY", False),
            primary_geolocation_url=os.environ.get(
                "ANALYTICS_PRIMARY_GEOLOCATION_URL", DEFAULT_PRIMARY_GEOLOCATION_URL
            ),
            fallback_geolocation_url=os.environ.get(
                "ANALYTICS_FALLBACK_GEOLOCATION_URL", DEFAULT_FALLBACK_GEOLOCATION_URL
            ),
            geolocation_timeout=_env_float("ANALYTICS_GEOLOCATION_TIMEOUT", None),
            display_name=os.environ.get("ANALYTICS_DISPLAY_NAME", "Visitor Analytics"),
            fetch_timeout_seconds=_env_float("ANALYTICS_FETCH_TIMEOUT", 10.0),
            api_base_url=os.environ.get("ANALYTICS_API_BASE_URL") or None,
            expose_error_details=_env_bool("ANALYTICS_EXPOSE_ERROR_DETAILS", False),
        )
