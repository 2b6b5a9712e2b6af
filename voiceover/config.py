import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _split(value: str) -> tuple:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    jwt_secret: str = ""
    jwt_expire_minutes: int = 60
    admin_email: str = "admin@example.com"
    frontend_url: str = "http://localhost:3000"
    currency: str = "USD"
    cors_origins: tuple = ("http://localhost:3000",)
    log_level: str = "INFO"
    provider_timeout: float = 15.0

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    square_access_token: str = ""
    square_environment: str = "sandbox"
    square_location_id: str = ""
    square_signature_key: str = ""
    square_webhook_url: str = ""

    paypal_client_id: str = ""
    paypal_secret_key: str = ""
    paypal_api_url: str = "https://api-m.sandbox.paypal.com"
    paypal_webhook_id: str = ""

    aws_region: str = "us-east-1"
    aws_s3_bucket_name: str = ""
    download_url_ttl: int = 900

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    mail_from: str = ""
    order_alert_email: str = ""

    webhook_secrets: dict = field(default_factory=dict)

    def webhook_secret_for(self, provider: str) -> str:
        return self.webhook_secrets.get(provider, "")

    def default_return_url(self, order_id: int) -> str:
        return f"{self.frontend_url}/order/{order_id}/status"

    def default_cancel_url(self) -> str:
        return f"{self.frontend_url}/order/cancel"


def load_settings() -> Settings:
    """Read settings from the environment (after .env has been loaded)."""
    env = os.getenv
    stripe_webhook_secret = env("STRIPE_WEBHOOK_SECRET", "")
    square_signature_key = env("SQUARE_SIGNATURE_KEY", "")
    paypal_webhook_id = env("PAYPAL_WEBHOOK_ID", "")

    return Settings(
        database_url=env("DATABASE_URL", ""),
        jwt_secret=env("JWT_SECRET", ""),
        jwt_expire_minutes=int(env("JWT_EXPIRE_MINUTES", "60")),
        admin_email=env("ADMIN_EMAIL", "admin@example.com"),
        frontend_url=env("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        currency=env("CURRENCY", "USD").upper(),
        cors_origins=_split(env("CORS_ORIGINS", "http://localhost:3000")),
        log_level=env("LOG_LEVEL", "INFO").upper(),
        provider_timeout=float(env("PROVIDER_TIMEOUT", "15")),
        stripe_secret_key=env("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=stripe_webhook_secret,
        square_access_token=env("SQUARE_ACCESS_TOKEN", ""),
        square_environment=env("SQUARE_ENVIRONMENT", "sandbox").lower(),
        square_location_id=env("SQUARE_LOCATION_ID", ""),
        square_signature_key=square_signature_key,
        square_webhook_url=env("SQUARE_WEBHOOK_URL", ""),
        paypal_client_id=env("PAYPAL_CLIENT_ID", ""),
        paypal_secret_key=env("PAYPAL_SECRET_KEY", ""),
        paypal_api_url=env("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com").rstrip("/"),
        paypal_webhook_id=paypal_webhook_id,
        aws_region=env("AWS_REGION", "us-east-1"),
        aws_s3_bucket_name=env("AWS_S3_BUCKET_NAME", ""),
        download_url_ttl=int(env("DOWNLOAD_URL_TTL", "900")),
        smtp_host=env("SMTP_HOST", ""),
        smtp_port=int(env("SMTP_PORT", "587")),
        smtp_user=env("SMTP_USER", ""),
        smtp_password=env("SMTP_PASSWORD", ""),
        mail_from=env("MAIL_FROM", "") or env("SMTP_USER", ""),
        order_alert_email=env("ORDER_ALERT_EMAIL", "") or env("ADMIN_EMAIL", ""),
        webhook_secrets={
            "stripe": stripe_webhook_secret,
            "square": square_signature_key,
            "paypal": paypal_webhook_id,
        },
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
