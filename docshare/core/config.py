from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | List[str]) -> List[str]:
    if isinstance(value, list):
        return value
    return [v.strip() for v in str(value).split(",") if v and v.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCSHARE_",
        extra="ignore",
    )

    app_name: str = "DocShare API"
    database_url: str = "sqlite:///./docshare.db"
    db_echo: bool = False
    # store calls must fail fast rather than hang a request
    db_pool_timeout_seconds: int = 5
    db_statement_timeout_ms: int = 5000

    # values must come from environment/.env in production
    jwt_secret: str = "change-me"
    jwt_issuer: str = "docshare"
    access_token_exp_minutes: int = 60

    otp_digits: int = 6
    otp_valid_minutes: int = 10
    share_token_bytes: int = 32
    allow_pending_private_recipients: bool = True

    public_app_url: str = "http://localhost:5173"
    public_api_url: str = "http://localhost:8000"
    file_root: str = "uploads"

    notifier_backend: str = "log"  # log | smtp | http
    mail_from: str = "no-reply@docshare.local"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: int = 10
    mail_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    mail_api_key: str = ""
    mail_api_timeout_seconds: float = 10.0

    cors_origins_raw: str = "http://localhost:5173"
    enable_docs: bool = True
    log_level: str = "INFO"

    @property
    def cors_origins(self) -> List[str]:
        parsed = _split_csv(self.cors_origins_raw)
        return parsed or ["http://localhost:5173"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
