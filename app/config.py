"""Configuration management using environment variables"""
import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Development placeholder for secrets (not secure - for local testing only)
DEV_SECRET_PLACEHOLDER = "test_secret_dev"


class Settings:
    """Application settings read once at import time"""

    def __init__(self):
        # Environment
        self.environment = os.getenv("ENVIRONMENT", "development")

        # JWT configuration for bearer authentication
        if self.environment == "production":
            self.jwt_secret = self._get_required("JWT_SECRET")
            if self.jwt_secret == DEV_SECRET_PLACEHOLDER:
                raise ValueError(
                    f"Cannot use test secret '{DEV_SECRET_PLACEHOLDER}' in production mode. "
                    "Set a real JWT_SECRET."
                )
        else:
            self.jwt_secret = os.getenv("JWT_SECRET", DEV_SECRET_PLACEHOLDER)

        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_expiration_hours = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

        # Server configuration
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "8000"))

        # Database configuration
        self.database_url = os.getenv(
            "DATABASE_URL",
            "sqlite+aiosqlite:///./camp_registration.db"
        )

        # Frontend URL for payment redirects and email links
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")

        # CORS origins (comma-separated list)
        self.cors_origins = os.getenv("CORS_ORIGINS", "")

        # Stripe (core_config values override these)
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY", "")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET", "")

        # PayPal (core_config values override these)
        self.paypal_client_id = os.getenv("PAYPAL_CLIENT_ID", "")
        self.paypal_client_secret = os.getenv("PAYPAL_CLIENT_SECRET", "")
        self.paypal_mode = os.getenv("PAYPAL_MODE", "sandbox").lower()

        # SMTP (core_config values override these)
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_use_ssl = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
        self.sender_email = os.getenv("SENDER_EMAIL", "")
        self.sender_name = os.getenv("SENDER_NAME", "")

        # Outbound HTTP (PayPal REST API)
        self.http_timeout = float(os.getenv("HTTP_TIMEOUT", "15.0"))  # seconds

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        if self.environment != "production":
            self._warn_missing_credentials()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def _get_required(self, key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key, "").strip()
        if not value:
            raise ValueError(
                f"Missing required environment variable: {key}. "
                f"Required in production mode."
            )
        return value

    def _warn_missing_credentials(self) -> None:
        """Warn about missing credentials in development mode."""
        logger = logging.getLogger(__name__)

        if self.jwt_secret == DEV_SECRET_PLACEHOLDER:
            logger.warning(
                "⚠️  Using default JWT_SECRET - tokens are signed with a development placeholder"
            )

        optional_credentials = {
            "STRIPE_SECRET_KEY": "Stripe checkout and refunds are unavailable unless set in core config.",
            "STRIPE_WEBHOOK_SECRET": "Stripe webhooks will be rejected.",
            "PAYPAL_CLIENT_ID": "PayPal orders and refunds are unavailable unless set in core config.",
        }

        missing = [
            f"{key} - {desc}"
            for key, desc in optional_credentials.items()
            if not getattr(self, key.lower(), "").strip()
        ]

        if missing:
            logger.warning(
                "⚠️  Missing configuration:\n" +
                "\n".join(f"  - {config}" for config in missing)
            )


# Global settings instance
settings = Settings()
