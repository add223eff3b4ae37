"""
Email Service - SMTP delivery with aiosmtplib.

SMTP settings come from core_config (with environment fallbacks) and are
cached for five minutes so a burst of notifications doesn't re-read the
row each time. Every attempt is written to the email audit table.
"""
from typing import Optional, List, Union
from dataclasses import dataclass, field
from email.message import EmailMessage
import time
import logging

import aiosmtplib
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import NotificationType
from app.services.core_config_service import CoreConfigService
from app.services.email_audit_service import EmailAuditService

logger = logging.getLogger(__name__)

CONFIG_CACHE_TTL_SECONDS = 5 * 60
SMTP_TIMEOUT_SECONDS = 30


@dataclass
class EmailOptions:
    """A single outbound email"""
    to: Union[str, List[str]]
    subject: str
    html: str
    notification_type: NotificationType
    text: Optional[str] = None
    from_address: Optional[str] = None
    reply_to: Optional[str] = None
    user_id: Optional[str] = None
    cc_emails: List[str] = field(default_factory=list)
    bcc_emails: List[str] = field(default_factory=list)

    @property
    def recipients(self) -> List[str]:
        return self.to if isinstance(self.to, list) else [self.to]


class EmailService:
    """
    Sends email through the configured SMTP server.

    In development, sends that are skipped because email is disabled or
    unconfigured report success so local flows (login codes) keep working;
    the message body is logged instead.
    """

    def __init__(self):
        self._config_cache: Optional[dict] = None
        self._cache_expiry: float = 0.0

    def invalidate_cache(self) -> None:
        self._config_cache = None
        self._cache_expiry = 0.0

    async def get_email_config(self, db: AsyncSession, force_refresh: bool = False) -> dict:
        now = time.monotonic()
        if not force_refresh and self._config_cache is not None and now < self._cache_expiry:
            return self._config_cache

        try:
            self._config_cache = await CoreConfigService.get_email_configuration(db)
            logger.debug("Email configuration refreshed from database")
        except Exception as e:
            logger.error(f"Failed to refresh email configuration from database: {e}")
            if self._config_cache is None:
                self._config_cache = {"email_enabled": False}
            else:
                logger.warning("⚠️ Using stale email configuration cache due to database error")

        self._cache_expiry = now + CONFIG_CACHE_TTL_SECONDS
        return self._config_cache

    async def send_email(self, db: AsyncSession, options: EmailOptions) -> bool:
        """
        Send an email and record the attempt.

        Returns:
            True if the SMTP server accepted the message (or the send was
            skipped in development), False otherwise. Never raises.
        """
        primary_recipient = options.recipients[0]
        config = await self.get_email_config(db)

        if settings.is_development:
            logger.info(
                f"📧 Email ({options.notification_type.value}) to {', '.join(options.recipients)}: "
                f"{options.subject}\n{options.text or ''}"
            )

        if not config.get("email_enabled"):
            await EmailAuditService.log_email_disabled(
                db, primary_recipient, options.subject, options.notification_type,
                user_id=options.user_id, cc_emails=options.cc_emails, bcc_emails=options.bcc_emails,
            )
            logger.debug("Email sending disabled globally")
            return settings.is_development

        if not config.get("smtp_host") or not config.get("smtp_username") or not config.get("smtp_password"):
            await EmailAuditService.log_email_failed(
                db, primary_recipient, options.subject, options.notification_type,
                "SMTP configuration incomplete",
                user_id=options.user_id, cc_emails=options.cc_emails, bcc_emails=options.bcc_emails,
            )
            logger.warning("⚠️ SMTP not configured, skipping send")
            return settings.is_development

        message = self._build_message(options, config)

        try:
            await aiosmtplib.send(
                message,
                hostname=config["smtp_host"],
                port=config.get("smtp_port") or 587,
                username=config["smtp_username"],
                password=config["smtp_password"],
                use_tls=bool(config.get("smtp_use_ssl")),
                timeout=SMTP_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send email to {primary_recipient}: {e}")
            await EmailAuditService.log_email_failed(
                db, primary_recipient, options.subject, options.notification_type, str(e),
                user_id=options.user_id, cc_emails=options.cc_emails, bcc_emails=options.bcc_emails,
            )
            return False

        await EmailAuditService.log_email_sent(
            db, primary_recipient, options.subject, options.notification_type,
            user_id=options.user_id, cc_emails=options.cc_emails, bcc_emails=options.bcc_emails,
        )
        logger.info(f"✅ Email sent to {primary_recipient}: {options.subject}")
        return True

    @staticmethod
    def _build_message(options: EmailOptions, config: dict) -> EmailMessage:
        sender_email = config.get("sender_email")
        sender_name = config.get("sender_name")
        if sender_email:
            default_from = f"{sender_name} <{sender_email}>" if sender_name else sender_email
        else:
            default_from = "noreply@example.com"
        from_address = options.from_address or default_from

        message = EmailMessage()
        message["From"] = from_address
        message["To"] = ", ".join(options.recipients)
        if options.cc_emails:
            message["Cc"] = ", ".join(options.cc_emails)
        if options.bcc_emails:
            message["Bcc"] = ", ".join(options.bcc_emails)
        message["Subject"] = options.subject
        message["Reply-To"] = options.reply_to or config.get("reply_to_email") or from_address

        message.set_content(options.text or "")
        message.add_alternative(options.html, subtype="html")
        return message


# Shared instance (keeps the SMTP config cache across requests)
email_service = EmailService()
