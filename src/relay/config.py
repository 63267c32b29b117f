"""Relay configuration using pydantic-settings.

This module defines the RelaySettings class that reads configuration from
environment variables with the RELAY_ prefix (or a local .env file). Every
field has a default so the service can start for local development; the
validators only reject values that are present but malformed.
"""

from enum import Enum
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenerationBackendType(str, Enum):
    """Text-generation backends the relay can talk to."""

    OPENAI = "openai"
    HUGGINGFACE = "huggingface"


class DiffMode(str, Enum):
    """How the pull request changes are retrieved from GitHub.

    Attributes:
        DIFF: Fetch the unified diff of the whole pull request.
        FILES: List the changed files and use their individual patches.
    """

    DIFF = "diff"
    FILES = "files"


# Richness thresholds per backend when not configured explicitly.
# Chat models produce longer reviews, so the bar is higher.
_DEFAULT_RICHNESS = {
    GenerationBackendType.OPENAI: (200, 5),
    GenerationBackendType.HUGGINGFACE: (100, 3),
}


class RelaySettings(BaseSettings):
    """Review relay configuration from environment variables.

    All environment variables are prefixed with RELAY_ (e.g.,
    RELAY_GITHUB_CLIENT_ID).
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_client_id: str = ""
    github_client_secret: str = ""
    github_base_url: str = "https://api.github.com"
    github_oauth_url: str = "https://github.com/login/oauth/access_token"

    # Used when a registration carries no user credential of its own
    github_token: str = ""

    # Public URL of this service's /webhook endpoint, registered with GitHub
    public_webhook_url: str = "http://localhost:5000/webhook"

    # -------------------------------------------------------------------------
    # Webhook Secret Configuration
    # -------------------------------------------------------------------------
    # per_repository | shared | disabled (see registry.models.SecretMode)
    webhook_secret_mode: str = "per_repository"

    # Only read in shared mode
    webhook_secret: str = ""

    # -------------------------------------------------------------------------
    # Generation Backend Configuration
    # -------------------------------------------------------------------------
    generation_backend: GenerationBackendType = GenerationBackendType.HUGGINGFACE

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None

    huggingface_api_key: str = ""
    huggingface_model: str = "microsoft/codereviewer"
    huggingface_base_url: str = "https://api-inference.huggingface.co/models"

    generation_timeout_seconds: float = 120.0

    # -------------------------------------------------------------------------
    # Retry Configuration
    # -------------------------------------------------------------------------
    retry_max_retries: int = 3
    retry_initial_delay_ms: int = 5000

    # -------------------------------------------------------------------------
    # Review Configuration
    # -------------------------------------------------------------------------
    diff_mode: DiffMode = DiffMode.DIFF
    max_prompt_chars: int = 12000
    update_pull_request: bool = True
    min_review_chars: Optional[int] = None
    min_review_lines: Optional[int] = None

    # -------------------------------------------------------------------------
    # Storage Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; in-memory storage when empty
    database_url: str = ""

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    cors_origin: str = "*"
    session_cookie_name: str = "relay_session"
    # Sessions older than this are rejected and pruned
    session_ttl_seconds: int = 86400
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_base_url", "github_oauth_url", "huggingface_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Validate that service URLs use http or https."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("public_webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str) -> str:
        """Validate that the public webhook URL is absolute."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("public_webhook_url must start with http:// or https://")
        return v

    @field_validator("webhook_secret_mode")
    @classmethod
    def validate_secret_mode(cls, v: str) -> str:
        """Validate the webhook secret mode name."""
        normalized = v.strip().lower()
        if normalized not in {"per_repository", "shared", "disabled"}:
            raise ValueError(
                "webhook_secret_mode must be one of: per_repository, shared, disabled"
            )
        return normalized

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate the database URL format when one is given."""
        if v and not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("retry_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that the retry budget is not negative."""
        if v < 0:
            raise ValueError("retry_max_retries cannot be negative")
        return v

    @field_validator("retry_initial_delay_ms", "max_prompt_chars", "session_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that sizes and delays are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def retry_initial_delay_seconds(self) -> float:
        return self.retry_initial_delay_ms / 1000.0

    @property
    def richness_thresholds(self) -> tuple[int, int]:
        """Minimum (characters, lines) a review body needs to count as rich.

        Explicit settings win; otherwise the backend's default applies.
        """
        default_chars, default_lines = _DEFAULT_RICHNESS[self.generation_backend]
        return (
            self.min_review_chars if self.min_review_chars is not None else default_chars,
            self.min_review_lines if self.min_review_lines is not None else default_lines,
        )


def get_settings() -> RelaySettings:
    """Create and return a RelaySettings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return RelaySettings()
