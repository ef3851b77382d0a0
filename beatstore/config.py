import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    beatstore_host: str = "0.0.0.0"
    beatstore_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/beatstore.db"
    db_transaction_timeout_seconds: float = 10.0  # lock wait + body of a ledger transaction

    # Auth
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days
    admin_user_ids: str = ""  # Comma-separated user IDs with admin access (in addition to role=admin)

    # Verification codes
    verification_code_ttl_minutes: int = 15
    verification_code_max_attempts: int = 5

    # Payments
    payment_currency: str = "USD"
    payment_webhook_secret: str = ""  # HMAC-SHA256 key shared with the payment provider

    # Notifications (verification code delivery)
    notification_webhook_url: str = ""  # empty = log only
    notification_timeout_seconds: float = 5.0

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

_logger = logging.getLogger("beatstore.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "change-me-to-a-random-string",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if cfg.jwt_secret_key in _INSECURE_SECRETS:
        if is_prod:
            raise RuntimeError(
                "FATAL: JWT_SECRET_KEY is set to an insecure default. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable before deploying to production."
            )
        warnings.warn(
            "JWT_SECRET_KEY is set to the default insecure value. "
            "Set a strong random secret via the JWT_SECRET_KEY environment variable for production.",
            stacklevel=1,
        )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )

    if not cfg.payment_webhook_secret:
        if is_prod:
            raise RuntimeError(
                "FATAL: PAYMENT_WEBHOOK_SECRET must be set in production. "
                "Unsigned payment callbacks cannot be trusted."
            )
        _logger.warning(
            "PAYMENT_WEBHOOK_SECRET is empty; payment callback signatures are not verified."
        )


validate_security_posture(settings)
