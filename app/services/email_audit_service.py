"""
Email Audit Service - records every outbound email attempt.

Audit writes never raise: a broken audit table must not stop an email
(or the operation that triggered it) from going out.
"""
from typing import Optional, List
from datetime import datetime
from collections import Counter
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.db.models import EmailAudit, EmailAuditStatus, NotificationType, utcnow

logger = logging.getLogger(__name__)


class EmailAuditService:
    """Service for the email_audit table"""

    @staticmethod
    async def log_email_attempt(
        db: AsyncSession,
        recipient_email: str,
        subject: str,
        notification_type: NotificationType,
        status: EmailAuditStatus,
        user_id: Optional[str] = None,
        error_message: Optional[str] = None,
        cc_emails: Optional[List[str]] = None,
        bcc_emails: Optional[List[str]] = None,
        sent_at: Optional[datetime] = None,
    ) -> None:
        try:
            db.add(EmailAudit(
                recipient_email=recipient_email,
                cc_emails=",".join(cc_emails) if cc_emails else None,
                bcc_emails=",".join(bcc_emails) if bcc_emails else None,
                subject=subject,
                notification_type=notification_type,
                status=status,
                error_message=error_message,
                sent_at=sent_at,
                user_id=user_id,
            ))
            await db.flush()
            logger.debug(f"Email audit logged for {recipient_email} with status {status.value}")
        except Exception as e:
            logger.error(f"Failed to log email audit for {recipient_email}: {e}")

    @staticmethod
    async def log_email_sent(db: AsyncSession, recipient_email: str, subject: str,
                             notification_type: NotificationType, user_id: Optional[str] = None,
                             cc_emails: Optional[List[str]] = None,
                             bcc_emails: Optional[List[str]] = None) -> None:
        await EmailAuditService.log_email_attempt(
            db, recipient_email, subject, notification_type, EmailAuditStatus.SENT,
            user_id=user_id, cc_emails=cc_emails, bcc_emails=bcc_emails, sent_at=utcnow(),
        )

    @staticmethod
    async def log_email_failed(db: AsyncSession, recipient_email: str, subject: str,
                               notification_type: NotificationType, error_message: str,
                               user_id: Optional[str] = None,
                               cc_emails: Optional[List[str]] = None,
                               bcc_emails: Optional[List[str]] = None) -> None:
        await EmailAuditService.log_email_attempt(
            db, recipient_email, subject, notification_type, EmailAuditStatus.FAILED,
            user_id=user_id, error_message=error_message, cc_emails=cc_emails, bcc_emails=bcc_emails,
        )

    @staticmethod
    async def log_email_disabled(db: AsyncSession, recipient_email: str, subject: str,
                                 notification_type: NotificationType, user_id: Optional[str] = None,
                                 cc_emails: Optional[List[str]] = None,
                                 bcc_emails: Optional[List[str]] = None) -> None:
        await EmailAuditService.log_email_attempt(
            db, recipient_email, subject, notification_type, EmailAuditStatus.DISABLED,
            user_id=user_id, cc_emails=cc_emails, bcc_emails=bcc_emails,
        )

    @staticmethod
    async def get_email_statistics(db: AsyncSession, start_date: datetime, end_date: datetime) -> dict:
        """
        Aggregate send outcomes in a date range.

        Returns:
            Dict with total/sent/failed/disabled counts and counts by notification type
        """
        result = await db.execute(
            select(EmailAudit.status, EmailAudit.notification_type).where(
                EmailAudit.created_at >= start_date,
                EmailAudit.created_at <= end_date,
            )
        )
        rows = result.all()

        statuses = Counter(row.status for row in rows)
        by_type = Counter(row.notification_type.value for row in rows)

        return {
            "total_emails": len(rows),
            "sent_emails": statuses.get(EmailAuditStatus.SENT, 0),
            "failed_emails": statuses.get(EmailAuditStatus.FAILED, 0),
            "disabled_emails": statuses.get(EmailAuditStatus.DISABLED, 0),
            "by_notification_type": dict(by_type),
        }

    @staticmethod
    async def get_recent_failures(db: AsyncSession, limit: int = 50) -> List[EmailAudit]:
        result = await db.execute(
            select(EmailAudit)
            .where(EmailAudit.status == EmailAuditStatus.FAILED)
            .order_by(EmailAudit.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
