"""
Notification endpoints (ADMIN): SMTP test email and email audit reports.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime, timedelta
from typing import Optional, List, Dict
import logging

from app.api.auth import require_admin
from app.db.connection import get_db_session
from app.db.models import User, EmailAuditStatus, NotificationType, utcnow
from app.services.email_audit_service import EmailAuditService
from app.services.email_service import email_service
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class TestEmailRequest(BaseModel):
    recipients: str = Field(..., min_length=3, description="One or more comma-separated addresses")
    subject: Optional[str] = Field(None, max_length=200)
    message: Optional[str] = Field(None, max_length=5000)
    format: str = Field("html", pattern="^(html|text)$")
    include_smtp_details: bool = True


class TestEmailResponse(BaseModel):
    success: bool
    message: str
    recipients: List[str]
    timestamp: datetime


class EmailStatisticsResponse(BaseModel):
    total_emails: int
    sent_emails: int
    failed_emails: int
    disabled_emails: int
    by_notification_type: Dict[str, int]
    start_date: datetime
    end_date: datetime


class EmailAuditResponse(BaseModel):
    id: str
    recipient_email: str
    subject: str
    notification_type: NotificationType
    status: EmailAuditStatus
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================
# Endpoints
# ============================================

@router.post("/notifications/test", response_model=TestEmailResponse)
async def send_test_email(
    request: TestEmailRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    """Send the SMTP test email, reporting the effective SMTP settings."""
    config = await email_service.get_email_config(db, force_refresh=True)
    details = {
        "admin_user_name": f"{admin.first_name} {admin.last_name}".strip(),
        "admin_email": admin.email,
        "smtp_host": config.get("smtp_host"),
        "smtp_port": config.get("smtp_port"),
        "smtp_secure": config.get("smtp_use_ssl"),
        "sender_email": config.get("sender_email"),
        "sender_name": config.get("sender_name"),
    }
    custom_content = {
        "subject": request.subject,
        "message": request.message,
        "format": request.format,
        "include_smtp_details": request.include_smtp_details,
    }

    try:
        success = await NotificationService.send_test_email(
            db, request.recipients, details, admin.id, custom_content,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    recipients = [address.strip() for address in request.recipients.split(",") if address.strip()]
    logger.info(f"Test email by admin {admin.id} to {len(recipients)} recipient(s): {'sent' if success else 'failed'}")
    return TestEmailResponse(
        success=success,
        message="Test email sent successfully" if success else "Failed to send test email. Check the email audit log.",
        recipients=recipients,
        timestamp=utcnow(),
    )


@router.get("/notifications/email-audit/statistics", response_model=EmailStatisticsResponse)
async def get_email_statistics(
    days: int = Query(30, ge=1, le=365),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    end_date = utcnow()
    start_date = end_date - timedelta(days=days)
    stats = await EmailAuditService.get_email_statistics(db, start_date, end_date)
    return EmailStatisticsResponse(**stats, start_date=start_date, end_date=end_date)


@router.get("/notifications/email-audit/failures", response_model=List[EmailAuditResponse])
async def get_recent_failures(
    limit: int = Query(50, ge=1, le=500),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    return await EmailAuditService.get_recent_failures(db, limit)
