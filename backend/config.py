"""
Receipt OCR Core - Configuration Management

Centralized configuration for environment variables, OCR service credentials,
polling limits and deployment settings.
This module ensures:
- No hardcoded secrets
- OCR credentials present before production start
- Environment-specific settings (dev/staging/prod)
- Bounded polling by default
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings

from ocr.models import ProcessingSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== OCR SERVICE ====================
    OCR_SERVER_URL: str = Field(
        default="https://cloud.ocrsdk.com",
        description="Base URL of the recognition service"
    )
    OCR_APPLICATION_ID: str = Field(
        default="",
        description="Application id used as the basic-auth user name"
    )
    OCR_PASSWORD: str = Field(
        default="",
        description="Application password used as the basic-auth secret"
    )
    OCR_COUNTRY: str = Field(default="usa")
    OCR_IMAGE_SOURCE: str = Field(default="auto")
    OCR_CORRECT_ORIENTATION: bool = Field(default=True)
    OCR_CORRECT_SKEW: bool = Field(default=True)

    # ==================== POLLING ====================
    OCR_POLL_INTERVAL_SECONDS: float = Field(
        default=5.0,
        description="Delay before each task status query"
    )
    OCR_MAX_POLL_ATTEMPTS: int = Field(
        default=120,
        description="Status queries before giving up (0 = poll until terminal)"
    )
    OCR_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Timeout for a single request to the recognition service"
    )

    # ==================== STORAGE ====================
    OCR_RESULT_DIR: str = Field(
        default="storage/results",
        description="Directory downloaded recognition results are written to"
    )
    OCR_UPLOAD_DIR: str = Field(
        default="storage/uploads",
        description="Directory uploaded receipt images are staged in"
    )
    UPLOAD_MAX_SIZE_MB: int = Field(
        default=10,
        description="Maximum receipt upload size in MB"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(
        default="Receipt OCR API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def ocr_credentials_configured(self) -> bool:
        return bool(self.OCR_APPLICATION_ID and self.OCR_PASSWORD)

    @property
    def max_poll_attempts(self):
        """Poll bound as the poller expects it: None means unbounded."""
        return self.OCR_MAX_POLL_ATTEMPTS or None

    @property
    def upload_max_bytes(self) -> int:
        return self.UPLOAD_MAX_SIZE_MB * 1024 * 1024

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS_ORIGINS into a list.

        Development adds the usual localhost front-end origins.
        """
        if self.CORS_ORIGINS and self.CORS_ORIGINS != "*":
            origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        else:
            origins = []

        dev_origins = [
            "http://localhost:3000",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return sorted(all_origins)

    def processing_settings(self) -> ProcessingSettings:
        """Build the per-submit processing settings from configuration."""
        return ProcessingSettings(
            country=self.OCR_COUNTRY,
            image_source=self.OCR_IMAGE_SOURCE,
            correct_orientation=self.OCR_CORRECT_ORIENTATION,
            correct_skew=self.OCR_CORRECT_SKEW,
        )

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        if not self.OCR_APPLICATION_ID:
            errors.append("OCR_APPLICATION_ID is required")
        if not self.OCR_PASSWORD:
            errors.append("OCR_PASSWORD is required")

        if self.OCR_POLL_INTERVAL_SECONDS <= 0:
            errors.append("OCR_POLL_INTERVAL_SECONDS must be positive")
        if self.OCR_MAX_POLL_ATTEMPTS < 0:
            errors.append("OCR_MAX_POLL_ATTEMPTS cannot be negative")

        if self.is_production:
            if not self.OCR_SERVER_URL.startswith("https://"):
                errors.append("OCR_SERVER_URL must use https in production")
            if self.CORS_ORIGINS == "*":
                errors.append("CORS_ORIGINS cannot be '*' in production")
            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"OCR service: {settings.OCR_SERVER_URL}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== CORS CONFIGURATION ====================

def get_cors_config() -> dict:
    """Get CORS middleware configuration."""
    settings = get_settings()

    return {
        "allow_origins": settings.cors_origins_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": [
            "Authorization",
            "Content-Type",
            "Accept",
            "Origin",
            "X-Request-ID",
        ],
        "expose_headers": ["X-Request-ID", "X-Process-Time"],
        "max_age": 600,
    }


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment() -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results. Secrets are reported
    only as set / not set.
    """
    settings = get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    required_vars = [
        ("OCR_APPLICATION_ID", settings.OCR_APPLICATION_ID),
        ("OCR_PASSWORD", settings.OCR_PASSWORD),
    ]

    for name, value in required_vars:
        if not value:
            status["errors"].append(f"{name} is not set")
            status["valid"] = False
        else:
            status["variables"][name] = "✓ Set"

    if not settings.SENTRY_DSN:
        status["warnings"].append("Error tracking disabled")
        status["variables"]["SENTRY_DSN"] = "⚠ Not set"
    else:
        status["variables"]["SENTRY_DSN"] = "✓ Set"

    if not settings.OCR_MAX_POLL_ATTEMPTS:
        status["warnings"].append("Task polling is unbounded")

    for error in settings.validate_production_config():
        if error not in status["errors"] and not error.endswith("is required"):
            status["errors"].append(error)
            status["valid"] = False

    return status
