import logging

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class GuideSettings(BaseSettings):
    """Client settings loaded from TVGUIDE_* environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    base_url: str = "https://json.schedulesdirect.org"
    api_version: str = "20141201"
    username: str = ""
    password: SecretStr = SecretStr("")
    user_agent: str = "tvguide-client/1.0"

    http_timeout_sec: float = 60.0
    http_max_retries: int = 3
    http_backoff_factor: float = 2.0  # wait = backoff_factor ^ attempt

    cache_enabled: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TVGUIDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Validate the upstream URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"base_url must be HTTP/HTTPS: {value}")
        return value.rstrip("/")

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, value: str) -> str:
        """API versions are release dates, e.g. 20141201."""
        if not (value.isdigit() and len(value) == 8):
            raise ValueError(f"api_version must look like YYYYMMDD, got '{value}'")
        return value

    @field_validator("http_timeout_sec")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        return value

    @field_validator("http_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("http_max_retries must be >= 1")
        return value

    @field_validator("http_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, value: float) -> float:
        """Ensure the backoff factor is at least 1."""
        if value < 1:
            raise ValueError("http_backoff_factor must be >= 1")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return normalized

    @model_validator(mode="after")
    def validate_credentials(self):
        """Validate cross-field configuration."""
        if not self.username or not self.password.get_secret_value():
            logger.warning(
                "No upstream credentials configured - every authenticated request will fail"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Upstream: %s (API %s)", self.base_url, self.api_version)
        logger.info("  User: %s", self.username or "<not set>")
        logger.info("  User-Agent: %s", self.user_agent)
        logger.info("  HTTP Timeout: %ss", self.http_timeout_sec)
        logger.info(
            "  HTTP Retries: %s (backoff factor %.1f)",
            self.http_max_retries,
            self.http_backoff_factor,
        )
        logger.info("  Entity Cache: %s", "enabled" if self.cache_enabled else "disabled")


settings = GuideSettings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
