"""
Admin Notification Service - tells participants about back-office changes.

Used by the admin registration edit/cancel workflow. Both senders return
False instead of raising so the admin operation's outcome is unaffected.
"""
from typing import Optional, List
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import User, Registration, CampingOption, NotificationType
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def summarize_registration(registration: Registration,
                           camping_options: Optional[List[CampingOption]] = None,
                           status: Optional[str] = None) -> dict:
    """
    Registration details for email templates.

    Expects registration.jobs with job.category and job.shift loaded.
    """
    jobs = []
    for registration_job in registration.jobs:
        job = registration_job.job
        jobs.append({
            "name": job.name,
            "category": job.category.name if job.category else "",
            "location": job.location,
            "shift": {
                "name": job.shift.name,
                "start_time": job.shift.start_time,
                "end_time": job.shift.end_time,
                "day_of_week": job.shift.day_of_week.value,
            } if job.shift else {},
        })

    return {
        "id": registration.id,
        "year": registration.year,
        "status": status or registration.status.value,
        "camping_options": [
            {"name": option.name, "description": option.description}
            for option in (camping_options or [])
        ],
        "jobs": jobs,
    }


def _admin_info(admin_user: User, reason: str) -> dict:
    return {
        "name": f"{admin_user.first_name} {admin_user.last_name}".strip(),
        "email": admin_user.email,
        "reason": reason,
    }


class AdminNotificationService:
    """Notifications triggered by admin registration changes"""

    @staticmethod
    async def send_registration_modification_notification(
        db: AsyncSession,
        admin_user: User,
        target_user: User,
        registration_details: dict,
        reason: str,
    ) -> bool:
        try:
            logger.info(
                f"Sending registration modification notification to {target_user.email} "
                f"for registration {registration_details.get('id')}"
            )
            return await NotificationService.send_notification(
                db,
                target_user.email,
                NotificationType.REGISTRATION_CONFIRMATION,
                {
                    "name": target_user.first_name,
                    "playa_name": target_user.playa_name,
                    "user_id": target_user.id,
                    "registration_details": registration_details,
                    "admin_info": _admin_info(admin_user, reason),
                },
            )
        except Exception as e:
            logger.error(f"❌ Failed to send registration modification notification: {e}")
            return False

    @staticmethod
    async def send_registration_cancellation_notification(
        db: AsyncSession,
        admin_user: User,
        target_user: User,
        registration_details: dict,
        reason: str,
        refund_info: Optional[dict] = None,
    ) -> bool:
        """
        Args:
            refund_info: {"amount", "currency", "processed"} when payments existed
        """
        try:
            logger.info(
                f"Sending registration cancellation notification to {target_user.email} "
                f"for registration {registration_details.get('id')}"
            )
            return await NotificationService.send_notification(
                db,
                target_user.email,
                NotificationType.REGISTRATION_CONFIRMATION,
                {
                    "cancellation": True,
                    "name": target_user.first_name,
                    "playa_name": target_user.playa_name,
                    "user_id": target_user.id,
                    "registration_details": dict(registration_details, status="CANCELLED"),
                    "admin_info": _admin_info(admin_user, reason),
                    "refund_info": refund_info,
                },
            )
        except Exception as e:
            logger.error(f"❌ Failed to send registration cancellation notification: {e}")
            return False
