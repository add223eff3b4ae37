"""
Registration Cleanup Service - releases what a registration holds.

Used by the admin edit and cancel workflows. Every removed work shift and
released camping option gets its own audit record under the caller's
transaction id.
"""
from typing import Optional, List, Iterable
from dataclasses import dataclass, field
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.db.models import (
    Registration, RegistrationJob, CampingOptionRegistration, Payment, PaymentStatus,
    AdminAuditActionType, AdminAuditTargetType,
)
from app.domain.errors import NotFoundError
from app.services.admin_audit_service import AdminAuditService, AuditEntry

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    work_shifts_removed: int = 0
    camping_options_released: int = 0
    audit_records: List[str] = field(default_factory=list)


@dataclass
class RefundInfo:
    has_payments: bool
    total_amount: float
    payment_ids: List[str]
    message: str
    refunded_amount: float = 0.0
    refunded_payment_ids: List[str] = field(default_factory=list)


def calculate_refund_info(payments: Iterable[Payment]) -> RefundInfo:
    """Refund summary over COMPLETED and PENDING payments."""
    eligible = [p for p in payments if p.status in (PaymentStatus.COMPLETED, PaymentStatus.PENDING)]
    total = sum(p.amount for p in eligible)

    if eligible:
        message = f"Refund of ${total:.2f} needs to be processed manually for {len(eligible)} payment(s)"
    else:
        message = "No payments to refund"

    return RefundInfo(
        has_payments=bool(eligible),
        total_amount=total,
        payment_ids=[p.id for p in eligible],
        message=message,
    )


class RegistrationCleanupService:
    """Removes work shifts and camping options with audit records"""

    @staticmethod
    async def cleanup_work_shifts(
        db: AsyncSession,
        registration_id: str,
        admin_user_id: str,
        reason: str,
        transaction_id: Optional[str] = None,
        job_ids: Optional[List[str]] = None,
        registration_status: Optional[str] = None,
    ) -> int:
        """
        Remove work shifts from a registration.

        Args:
            job_ids: Only remove these jobs; all jobs when None

        Returns:
            Number of work shifts removed
        """
        transaction_id = transaction_id or str(uuid.uuid4())

        query = (
            select(RegistrationJob)
            .options(selectinload(RegistrationJob.job))
            .where(RegistrationJob.registration_id == registration_id)
        )
        if job_ids is not None:
            query = query.where(RegistrationJob.job_id.in_(job_ids))
        registration_jobs = list((await db.execute(query)).scalars().all())

        if not registration_jobs:
            return 0

        entries = []
        for registration_job in registration_jobs:
            old_values = {
                "registration_id": registration_job.registration_id,
                "job_id": registration_job.job_id,
                "job_name": registration_job.job.name,
            }
            if registration_status:
                old_values["registration_status"] = registration_status
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.WORK_SHIFT_REMOVE,
                target_record_type=AdminAuditTargetType.WORK_SHIFT,
                target_record_id=registration_job.job_id,
                old_values=old_values,
                reason=reason,
            ))
            await db.delete(registration_job)

        await db.flush()
        await AdminAuditService.create_multiple_audit_records(db, entries, transaction_id)

        logger.info(f"Removed {len(registration_jobs)} work shifts for registration {registration_id}")
        return len(registration_jobs)

    @staticmethod
    async def cleanup_camping_options(
        db: AsyncSession,
        user_id: str,
        camping_option_ids: Optional[List[str]],
        admin_user_id: str,
        reason: str,
        transaction_id: Optional[str] = None,
        registration_status: Optional[str] = None,
    ) -> int:
        """
        Release a user's camping option sign-ups (all of them when
        camping_option_ids is None), including their custom field answers.

        Returns:
            Number of camping options released
        """
        transaction_id = transaction_id or str(uuid.uuid4())

        query = (
            select(CampingOptionRegistration)
            .options(
                selectinload(CampingOptionRegistration.camping_option),
                selectinload(CampingOptionRegistration.field_values),
            )
            .where(CampingOptionRegistration.user_id == user_id)
        )
        if camping_option_ids is not None:
            query = query.where(CampingOptionRegistration.camping_option_id.in_(camping_option_ids))
        camping_registrations = list((await db.execute(query)).scalars().all())

        if not camping_registrations:
            return 0

        entries = []
        for camping_registration in camping_registrations:
            old_values = {
                "user_id": camping_registration.user_id,
                "camping_option_id": camping_registration.camping_option_id,
                "camping_option_name": camping_registration.camping_option.name,
            }
            if registration_status:
                old_values["registration_status"] = registration_status
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.CAMPING_OPTION_REMOVE,
                target_record_type=AdminAuditTargetType.CAMPING_OPTION,
                target_record_id=camping_registration.camping_option_id,
                old_values=old_values,
                reason=reason,
            ))
            await db.delete(camping_registration)

        await db.flush()
        await AdminAuditService.create_multiple_audit_records(db, entries, transaction_id)

        logger.info(f"Released {len(camping_registrations)} camping options for user {user_id}")
        return len(camping_registrations)

    @staticmethod
    async def cleanup_registration(
        db: AsyncSession,
        registration_id: str,
        admin_user_id: str,
        reason: str,
        transaction_id: Optional[str] = None,
    ) -> CleanupResult:
        """
        Release every work shift of the registration and every camping
        option sign-up of its user.

        Raises:
            NotFoundError: If the registration doesn't exist
        """
        transaction_id = transaction_id or str(uuid.uuid4())
        logger.info(f"Starting cleanup for registration {registration_id} by admin {admin_user_id}")

        registration = await db.get(Registration, registration_id)
        if not registration:
            raise NotFoundError(f"Registration {registration_id} not found")
        status = registration.status.value

        try:
            work_shifts_removed = await RegistrationCleanupService.cleanup_work_shifts(
                db, registration_id, admin_user_id,
                f"Removed due to registration cancellation: {reason}",
                transaction_id,
                registration_status=status,
            )
            camping_options_released = await RegistrationCleanupService.cleanup_camping_options(
                db, registration.user_id, None, admin_user_id,
                f"Released due to registration cancellation: {reason}",
                transaction_id,
                registration_status=status,
            )
        except Exception as e:
            logger.error(f"❌ Failed to cleanup registration {registration_id}: {e}")
            raise

        records = await AdminAuditService.get_audit_records_by_transaction(db, transaction_id)
        return CleanupResult(
            work_shifts_removed=work_shifts_removed,
            camping_options_released=camping_options_released,
            audit_records=[
                record.id for record in records
                if record.action_type in (AdminAuditActionType.WORK_SHIFT_REMOVE,
                                          AdminAuditActionType.CAMPING_OPTION_REMOVE)
            ],
        )
