# relay/core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    api_title: str = Field(default="Contact Relay API", alias="API_TITLE")
    port: int = Field(default=3000, alias="PORT")

    # Comma-separated allow-list; empty means no cross-origin callers
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")

    # Mail account used for SMTP login; also the From address
    email_user: Optional[str] = Field(default=None, alias="EMAIL_USER")
    email_pass: Optional[str] = Field(default=None, alias="EMAIL_PASS")

    # Every contact message goes here
    receiver_email: Optional[str] = Field(default=None, alias="RECEIVER_EMAIL")

    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=465, alias="SMTP_PORT")
    smtp_timeout_seconds: float = Field(default=10.0, alias="SMTP_TIMEOUT_SECONDS")

    # mailboxlayer (apilayer) address verification
    mailboxlayer_api_key: Optional[str] = Field(default=None, alias="MAILBOXLAYER_API_KEY")
    mailboxlayer_url: str = Field(default="https://apilayer.net/api/check", alias="MAILBOXLAYER_URL")
    verify_timeout_seconds: float = Field(default=10.0, alias="VERIFY_TIMEOUT_SECONDS")
    min_quality_score: float = Field(default=0.3, alias="MIN_QUALITY_SCORE")

    rate_limit_max: int = Field(default=5, alias="RATE_LIMIT_MAX")
    rate_limit_window_seconds: int = Field(default=15 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")

    # Shared rate-limit store; if unset counters live in process memory
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Take the caller address from X-Forwarded-For (behind a reverse proxy)
    trust_proxy: bool = Field(default=False, alias="TRUST_PROXY")

    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
