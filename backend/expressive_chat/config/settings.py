"""
Configuration Settings.
"""

from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Only ever used outside production, and always reported at startup.
INSECURE_DEV_SECRET = "insecure-dev-secret-do-not-use-in-production"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # App info
    app_name: str = "Expressive Chat"
    app_version: str = "1.0.0"
    environment: Literal["development", "production"] = "development"
    debug: bool = True

    # Security
    secret_key: Optional[str] = None
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days
    bcrypt_rounds: int = Field(10, ge=10, le=31)

    # Session cookie
    session_cookie_name: str = "token"
    session_cookie_secure: bool = True
    session_cookie_samesite: Literal["lax", "strict", "none"] = "none"

    # Database
    database_url: str = "sqlite+aiosqlite:///./chat.db"
    database_echo: bool = False

    # LLM Provider settings
    llm_provider: str = "gemini"  # "gemini" or "openai" (any OpenAI-compatible endpoint)
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None  # uses provider default if not set
    llm_base_url: Optional[str] = None  # uses provider default if not set
    llm_timeout_seconds: float = 120.0
    assumed_image_media_type: str = "image/jpeg"

    # Localisation
    default_language: Literal["en", "fr"] = "en"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/expressive_chat.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses
    log_llm_calls: bool = True  # Log all LLM calls with token usage

    @model_validator(mode="after")
    def _check_secret_key(self) -> "Settings":
        """Refuse to start in production without a real signing key."""
        if self.environment == "production":
            if not self.secret_key or self.secret_key == INSECURE_DEV_SECRET:
                raise ValueError("SECRET_KEY must be set to a non-default value in production")
        elif not self.secret_key:
            self.secret_key = INSECURE_DEV_SECRET
        return self

    @property
    def using_insecure_secret(self) -> bool:
        return self.secret_key == INSECURE_DEV_SECRET

    @property
    def access_token_expire_seconds(self) -> int:
        return self.access_token_expire_minutes * 60


settings = Settings()
