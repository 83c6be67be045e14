"""Runtime configuration for the storefront, read once from the environment."""
import os
from typing import NamedTuple, Optional

from dotenv import load_dotenv

load_dotenv()


class Settings(NamedTuple):
    database_url: str = "sqlite:///./storefront.db"
    jwt_secret: str = "dev-secret"
    jwt_expires_seconds: int = 60 * 60 * 24  # 1 day
    paystack_secret_key: Optional[str] = None
    paystack_base_url: str = "https://api.paystack.co"
    paystack_timeout: float = 10.0
    frontend_success_url: Optional[str] = None
    email_provider: str = "gmail"
    gmail_user: Optional[str] = None
    gmail_pass: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    email_from: str = "noreply@ecommerce.com"
    email_from_name: str = "E-commerce Store"
    port: int = 8000
    environment: str = "development"
    log_level: str = "INFO"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_str(name: str) -> Optional[str]:
    # Treat empty strings the same as unset
    value = os.getenv(name)
    return value or None


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        jwt_secret=os.getenv("JWT_SECRET", defaults.jwt_secret),
        jwt_expires_seconds=int(os.getenv("JWT_EXPIRES_SECONDS", defaults.jwt_expires_seconds)),
        paystack_secret_key=_env_str("PAYSTACK_SECRET_KEY"),
        paystack_base_url=os.getenv("PAYSTACK_BASE_URL", defaults.paystack_base_url),
        paystack_timeout=float(os.getenv("PAYSTACK_TIMEOUT", defaults.paystack_timeout)),
        frontend_success_url=_env_str("FRONTEND_SUCCESS_URL"),
        email_provider=os.getenv("EMAIL_PROVIDER", defaults.email_provider).lower(),
        gmail_user=_env_str("GMAIL_USER"),
        gmail_pass=_env_str("GMAIL_PASS"),
        smtp_host=_env_str("SMTP_HOST"),
        smtp_port=int(os.getenv("SMTP_PORT", defaults.smtp_port)),
        smtp_secure=_env_bool("SMTP_SECURE", defaults.smtp_secure),
        smtp_user=_env_str("SMTP_USER"),
        smtp_pass=_env_str("SMTP_PASS"),
        email_from=os.getenv("EMAIL_FROM", defaults.email_from),
        email_from_name=os.getenv("EMAIL_FROM_NAME", defaults.email_from_name),
        port=int(os.getenv("PORT", defaults.port)),
        environment=os.getenv("ENVIRONMENT", defaults.environment),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


# Built once at startup; routes receive it through get_settings()
settings = load_settings()


def get_settings() -> Settings:
    return settings
