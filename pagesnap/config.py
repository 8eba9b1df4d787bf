import logging
import secrets

from pydantic_settings import BaseSettings
from typing import List

_logger = logging.getLogger(__name__)


def _generate_secret(name: str) -> str:
    """Generate a random secret and warn that it should be set explicitly."""
    value = secrets.token_urlsafe(32)
    _logger.warning(
        "%s not set, using auto-generated value. "
        "Set %s in your .env or environment for production.",
        name,
        name,
    )
    return value


class Settings(BaseSettings):
    # App
    APP_NAME: str = "PageSnap"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Security: auto-generated if not provided (with startup warning)
    API_KEY: str = ""

    def model_post_init(self, __context) -> None:
        if not self.API_KEY:
            object.__setattr__(self, "API_KEY", _generate_secret("API_KEY"))

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Storage (S3 or any S3-compatible endpoint)
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = ""
    S3_ENDPOINT_URL: str = ""  # empty = AWS
    # Keys the owner-id hash in storage paths. Never auto-generated: a random
    # value would move every owner to a new prefix on restart.
    STORAGE_KEY_SECRET: str = ""

    # Browser
    BROWSER_HEADLESS: bool = True

    # Capture
    CAPTURE_MAX_RETRIES: int = 4
    CAPTURE_RETRY_DELAY_MS: int = 1500
    CAPTURE_SCREENSHOT_TIMEOUT_MS: int = 50000
    CAPTURE_LOAD_STRATEGIES: List[str] = ["load", "networkidle", "domcontentloaded"]
    CAPTURE_TIMEOUTS_MS: List[int] = [60000, 120000]
    CAPTURE_ENHANCED_TIMEOUTS_MS: List[int] = [90000, 150000, 180000]
    CAPTURE_PREWARM_URL: str = "https://www.google.com"
    CAPTURE_JPEG_QUALITY: int = 80
    CAPTURE_REQUIRE_CHALLENGE_RESOLUTION: bool = False
    CAPTURE_PARALLEL_DEVICES: bool = False

    # Hosts that get the enhanced anti-detection profile (exact or subdomain match)
    PROTECTED_DOMAINS: List[str] = ["braip.com", "ev.braip.com"]

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2
    SENTRY_ENVIRONMENT: str = "development"

    # Logging
    LOG_FORMAT: str = "json"  # "json" for production, "text" for development
    LOG_LEVEL: str = "INFO"

    # Metrics
    METRICS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def storage_configured(self) -> bool:
        return bool(self.S3_BUCKET_NAME and self.STORAGE_KEY_SECRET)

    @property
    def credentials_configured(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)


settings = Settings()
