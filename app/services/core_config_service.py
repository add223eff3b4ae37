"""
Core Config Service - single-row site configuration.

The row holds camp branding, registration windows and the payment/SMTP
credentials admins manage from the back office. When no row exists,
callers get an unsaved default so the public site still renders.
"""
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.config import settings
from app.db.models import CoreConfig, PaypalMode
from app.domain.errors import BadRequestError

logger = logging.getLogger(__name__)

DEFAULT_CAMP_NAME = "PlayaPlan"

# Fields that never leave the server through the public endpoint
SECRET_FIELDS = (
    "stripe_api_key",
    "stripe_webhook_secret",
    "paypal_client_secret",
    "smtp_password",
)


class CoreConfigService:
    """Service for reading and updating the site configuration"""

    @staticmethod
    def build_default() -> CoreConfig:
        """Unsaved configuration used until an admin creates one."""
        return CoreConfig(
            id="default",
            camp_name=DEFAULT_CAMP_NAME,
            camp_description="A camp registration and planning tool",
            home_page_blurb=f"<h2>Welcome to {DEFAULT_CAMP_NAME}</h2>"
                            "<p>Please log in as an admin and configure your site.</p>",
            camp_banner_url="/images/playa-plan-banner.png",
            camp_banner_alt_text="Desert landscape at sunset with art installations",
            camp_icon_url="/icons/playa-plan-icon.png",
            camp_icon_alt_text=f"{DEFAULT_CAMP_NAME} camp icon",
            registration_year=datetime.now().year,
            early_registration_open=False,
            registration_open=False,
            allow_deferred_dues_payment=False,
            stripe_enabled=False,
            paypal_enabled=False,
            paypal_mode=PaypalMode.SANDBOX,
            email_enabled=False,
            smtp_use_ssl=False,
            time_zone="UTC",
        )

    @staticmethod
    async def get(db: AsyncSession) -> Optional[CoreConfig]:
        """Return the stored configuration row, if any."""
        result = await db.execute(
            select(CoreConfig).order_by(CoreConfig.created_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_current(db: AsyncSession, use_default: bool = True) -> Optional[CoreConfig]:
        config = await CoreConfigService.get(db)
        if config is None and use_default:
            logger.info("No configuration found in database, using default configuration")
            return CoreConfigService.build_default()
        return config

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> CoreConfig:
        """
        Create the configuration row.

        Raises:
            BadRequestError: If a configuration already exists
        """
        if await CoreConfigService.get(db) is not None:
            raise BadRequestError("Core configuration already exists. Use update instead.")

        config = CoreConfig(**values)
        db.add(config)
        await db.flush()

        logger.info(f"✅ Created core configuration: {config.camp_name} ({config.registration_year})")
        return config

    @staticmethod
    async def update(db: AsyncSession, values: dict) -> CoreConfig:
        """Update the configuration, creating it when none exists yet."""
        config = await CoreConfigService.get(db)
        if config is None:
            defaults = CoreConfigService.build_default()
            base = {
                column.name: getattr(defaults, column.name)
                for column in CoreConfig.__table__.columns
                if column.name not in ("id", "created_at", "updated_at")
            }
            base.update(values)
            return await CoreConfigService.create(db, base)

        for key, value in values.items():
            setattr(config, key, value)
        await db.flush()

        logger.info(f"Updated core configuration fields: {', '.join(sorted(values))}")
        return config

    @staticmethod
    async def get_camp_name(db: AsyncSession) -> str:
        try:
            config = await CoreConfigService.get(db)
        except Exception as e:
            logger.warning(f"⚠️ Failed to read camp name from configuration: {e}")
            return DEFAULT_CAMP_NAME
        return config.camp_name if config and config.camp_name else DEFAULT_CAMP_NAME

    @staticmethod
    async def get_email_configuration(db: AsyncSession) -> dict:
        """
        SMTP settings with environment fallbacks.

        email_enabled only comes from the database row; environment SMTP
        settings alone never switch email on.
        """
        config = await CoreConfigService.get(db)
        return {
            "email_enabled": bool(config and config.email_enabled),
            "smtp_host": (config and config.smtp_host) or settings.smtp_host or None,
            "smtp_port": (config and config.smtp_port) or settings.smtp_port,
            "smtp_username": (config and config.smtp_username) or settings.smtp_username or None,
            "smtp_password": (config and config.smtp_password) or settings.smtp_password or None,
            "smtp_use_ssl": bool(config.smtp_use_ssl) if config else settings.smtp_use_ssl,
            "sender_email": (config and config.sender_email) or settings.sender_email or None,
            "sender_name": (config and config.sender_name) or settings.sender_name or None,
            "reply_to_email": config.reply_to_email if config else None,
        }

    @staticmethod
    async def get_stripe_credentials(db: AsyncSession) -> dict:
        config = await CoreConfigService.get(db)
        return {
            "api_key": (config and config.stripe_api_key) or settings.stripe_secret_key or None,
            "webhook_secret": (config and config.stripe_webhook_secret) or settings.stripe_webhook_secret or None,
        }

    @staticmethod
    async def get_paypal_credentials(db: AsyncSession) -> dict:
        config = await CoreConfigService.get(db)
        if config and config.paypal_client_id:
            mode = "live" if config.paypal_mode == PaypalMode.LIVE else "sandbox"
            return {
                "client_id": config.paypal_client_id,
                "client_secret": config.paypal_client_secret,
                "mode": mode,
            }
        return {
            "client_id": settings.paypal_client_id or None,
            "client_secret": settings.paypal_client_secret or None,
            "mode": settings.paypal_mode,
        }

    @staticmethod
    def to_public_dict(config: CoreConfig) -> dict:
        """Configuration safe for unauthenticated clients."""
        return {
            "camp_name": config.camp_name,
            "camp_description": config.camp_description,
            "home_page_blurb": config.home_page_blurb,
            "camp_banner_url": config.camp_banner_url,
            "camp_banner_alt_text": config.camp_banner_alt_text,
            "camp_icon_url": config.camp_icon_url,
            "camp_icon_alt_text": config.camp_icon_alt_text,
            "registration_year": config.registration_year,
            "early_registration_open": config.early_registration_open,
            "registration_open": config.registration_open,
            "registration_terms": config.registration_terms,
            "allow_deferred_dues_payment": config.allow_deferred_dues_payment,
            "stripe_enabled": config.stripe_enabled,
            "stripe_public_key": config.stripe_public_key,
            "paypal_enabled": config.paypal_enabled,
            "paypal_client_id": config.paypal_client_id,
            "paypal_mode": config.paypal_mode.value if config.paypal_mode else None,
            "time_zone": config.time_zone,
        }
