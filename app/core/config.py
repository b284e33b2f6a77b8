"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "resume_platform"

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7

    # Email verification (OTP)
    otp_expiry_minutes: int = 10
    # Resend is allowed once the outstanding code has this many minutes (or fewer) left
    otp_resend_window_minutes: int = 2

    # Resume version control
    resume_lock_ttl_seconds: int = 30
    resume_lock_wait_seconds: float = 5.0
    resume_history_default_limit: int = 10

    # LLM (OpenAI-compatible API, e.g. DeepSeek)
    llm_api_key: str = ""
    llm_base_url: str = "https://api.deepseek.com/v1"
    llm_model: str = "deepseek-chat"

    # SMTP delivery
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = "AI Interviewer <noreply@aiinterviewer.com>"
    smtp_use_ssl: bool = False
    smtp_timeout_seconds: int = 12

    # Uploads
    max_upload_mb: int = 5

    # App
    app_name: str = "AI Interviewer"
    log_level: str = "INFO"
    debug: bool = False

    @property
    def smtp_enabled(self) -> bool:
        """SMTP delivery is only attempted when credentials are configured."""
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
