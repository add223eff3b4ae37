"""
Registration Admin Service - back-office edit and cancel of registrations.

Both workflows write their audit records under one transaction id, commit,
and only then notify the participant. Notification and refund failures are
reported in the result instead of failing the operation.
"""
from typing import Optional, List
from dataclasses import dataclass, asdict
import math
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload

from app.db.models import (
    Registration, RegistrationJob, RegistrationStatus, User, Job, CampingOption,
    CampingOptionRegistration, PaymentStatus, PaymentProvider, AdminAuditActionType, AdminAuditTargetType, utcnow,
)
from app.domain.errors import NotFoundError, BadRequestError, ConflictError
from app.services.admin_audit_service import AdminAuditService, AuditEntry
from app.services.admin_notification_service import AdminNotificationService, summarize_registration
from app.services.camping_option_service import CampingOptionService
from app.services.payment_service import PaymentService
from app.services.registration_cleanup_service import (
    RegistrationCleanupService, RefundInfo, calculate_refund_info,
)
from app.services.registration_service import REGISTRATION_LOAD
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

# Payments the cancel workflow can refund through an API; everything else is settled by hand
PROVIDER_REFUNDABLE = (PaymentProvider.STRIPE, PaymentProvider.PAYPAL)

NO_NOTIFICATION = "No notification sent"
ADMIN_NOT_FOUND = "Failed to send notification: Admin user not found"


@dataclass
class RegistrationFilters:
    user_id: Optional[str] = None
    year: Optional[int] = None
    status: Optional[RegistrationStatus] = None
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass
class RegistrationEdit:
    reason: str
    status: Optional[RegistrationStatus] = None
    job_ids: Optional[List[str]] = None
    camping_option_ids: Optional[List[str]] = None
    send_notification: bool = False


@dataclass
class RegistrationCancellation:
    reason: str
    process_refund: bool = True
    send_notification: bool = False


class RegistrationAdminService:
    """Administrative registration management"""

    @staticmethod
    async def _get_registration(db: AsyncSession, registration_id: str) -> Registration:
        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .where(Registration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        registration = result.scalar_one_or_none()
        if not registration:
            raise NotFoundError(f"Registration {registration_id} not found")
        return registration

    @staticmethod
    async def _user_camping_registrations(db: AsyncSession, user_id: str) -> List[CampingOptionRegistration]:
        result = await db.execute(
            select(CampingOptionRegistration)
            .options(selectinload(CampingOptionRegistration.camping_option))
            .where(CampingOptionRegistration.user_id == user_id)
            .order_by(CampingOptionRegistration.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_registrations(db: AsyncSession, filters: RegistrationFilters,
                                page: int = 1, limit: int = 50) -> dict:
        """Filtered, paginated registrations, newest first."""
        conditions = []
        if filters.user_id:
            conditions.append(Registration.user_id == filters.user_id)
        if filters.year:
            conditions.append(Registration.year == filters.year)
        if filters.status:
            conditions.append(Registration.status == filters.status)
        if filters.email:
            conditions.append(User.email.ilike(f"%{filters.email}%"))
        if filters.name:
            pattern = f"%{filters.name}%"
            conditions.append(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.playa_name.ilike(pattern),
            ))

        total = (await db.execute(
            select(func.count(Registration.id)).join(User, Registration.user_id == User.id).where(*conditions)
        )).scalar_one()

        result = await db.execute(
            select(Registration)
            .join(User, Registration.user_id == User.id)
            .options(*REGISTRATION_LOAD)
            .where(*conditions)
            .order_by(Registration.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "registrations": list(result.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    # ============================================
    # Edit
    # ============================================

    @staticmethod
    async def edit_registration(db: AsyncSession, registration_id: str, edit: RegistrationEdit,
                                admin_user_id: str) -> dict:
        """
        Apply status, work shift and camping option changes.

        job_ids and camping_option_ids are the complete desired sets; only
        the difference to the current state is written.

        Raises:
            NotFoundError: If the registration doesn't exist
            BadRequestError: If it is cancelled or references unknown jobs/options
            ConflictError: If an added camping option is at capacity
        """
        transaction_id = str(uuid.uuid4())
        logger.info(f"Admin {admin_user_id} editing registration {registration_id}")

        registration = await RegistrationAdminService._get_registration(db, registration_id)
        if registration.status == RegistrationStatus.CANCELLED:
            raise BadRequestError("Cannot edit a cancelled registration")

        entries: List[AuditEntry] = []

        if edit.status and edit.status != registration.status:
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.REGISTRATION_EDIT,
                target_record_type=AdminAuditTargetType.REGISTRATION,
                target_record_id=registration_id,
                old_values={"status": registration.status.value},
                new_values={"status": edit.status.value},
                reason=edit.reason,
            ))
            registration.status = edit.status
            registration.updated_at = utcnow()

        if edit.job_ids is not None:
            entries.extend(await RegistrationAdminService._apply_job_changes(
                db, registration, list(dict.fromkeys(edit.job_ids)), edit.reason, admin_user_id, transaction_id,
            ))

        if edit.camping_option_ids is not None:
            entries.extend(await RegistrationAdminService._apply_camping_option_changes(
                db, registration, list(dict.fromkeys(edit.camping_option_ids)), edit.reason,
                admin_user_id, transaction_id,
            ))

        await db.flush()
        if entries:
            await AdminAuditService.create_multiple_audit_records(db, entries, transaction_id)

        await db.commit()
        registration = await RegistrationAdminService._get_registration(db, registration_id)

        notification_status = NO_NOTIFICATION
        if edit.send_notification:
            notification_status = await RegistrationAdminService._notify_modification(
                db, registration, admin_user_id, edit.reason,
            )

        return {
            "registration": registration,
            "transaction_id": transaction_id,
            "message": "Registration successfully updated",
            "notification_status": notification_status,
        }

    @staticmethod
    async def _apply_job_changes(db: AsyncSession, registration: Registration, new_job_ids: List[str],
                                 reason: str, admin_user_id: str, transaction_id: str) -> List[AuditEntry]:
        current_job_ids = [registration_job.job_id for registration_job in registration.jobs]
        to_remove = [job_id for job_id in current_job_ids if job_id not in new_job_ids]
        to_add = [job_id for job_id in new_job_ids if job_id not in current_job_ids]

        jobs = {}
        for job_id in to_add:
            job = await db.get(Job, job_id)
            if not job:
                raise BadRequestError(f"Job {job_id} not found")
            jobs[job_id] = job

        if to_remove:
            await RegistrationCleanupService.cleanup_work_shifts(
                db, registration.id, admin_user_id,
                f"Work shifts modified: {reason}",
                transaction_id,
                job_ids=to_remove,
            )

        entries = []
        for job_id in to_add:
            db.add(RegistrationJob(registration_id=registration.id, job_id=job_id))
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.WORK_SHIFT_ADD,
                target_record_type=AdminAuditTargetType.WORK_SHIFT,
                target_record_id=job_id,
                new_values={"registration_id": registration.id, "job_id": job_id, "job_name": jobs[job_id].name},
                reason=f"Work shift added: {reason}",
            ))

        if to_remove or to_add:
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.REGISTRATION_EDIT,
                target_record_type=AdminAuditTargetType.REGISTRATION,
                target_record_id=registration.id,
                old_values={"job_ids": current_job_ids},
                new_values={"job_ids": new_job_ids},
                reason=reason,
            ))
        return entries

    @staticmethod
    async def _apply_camping_option_changes(db: AsyncSession, registration: Registration, new_option_ids: List[str],
                                            reason: str, admin_user_id: str,
                                            transaction_id: str) -> List[AuditEntry]:
        user_id = registration.user_id
        current = await RegistrationAdminService._user_camping_registrations(db, user_id)
        current_option_ids = [camping_registration.camping_option_id for camping_registration in current]
        to_remove = [option_id for option_id in current_option_ids if option_id not in new_option_ids]
        to_add = [option_id for option_id in new_option_ids if option_id not in current_option_ids]

        options = {}
        for option_id in to_add:
            option = await db.get(CampingOption, option_id)
            if not option:
                raise BadRequestError(f"Camping option {option_id} not found")
            if option.max_signups > 0:
                signups = await CampingOptionService.get_registration_count(db, option_id)
                if signups >= option.max_signups:
                    raise ConflictError(f"Camping option {option.name} is at capacity")
            options[option_id] = option

        if to_remove:
            await RegistrationCleanupService.cleanup_camping_options(
                db, user_id, to_remove, admin_user_id,
                f"Camping options modified: {reason}",
                transaction_id,
            )

        entries = []
        for option_id in to_add:
            db.add(CampingOptionRegistration(user_id=user_id, camping_option_id=option_id))
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.CAMPING_OPTION_ADD,
                target_record_type=AdminAuditTargetType.CAMPING_OPTION,
                target_record_id=option_id,
                new_values={
                    "user_id": user_id,
                    "camping_option_id": option_id,
                    "camping_option_name": options[option_id].name,
                },
                reason=f"Camping option added: {reason}",
            ))

        if to_remove or to_add:
            entries.append(AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.REGISTRATION_EDIT,
                target_record_type=AdminAuditTargetType.REGISTRATION,
                target_record_id=registration.id,
                old_values={"camping_option_ids": current_option_ids},
                new_values={"camping_option_ids": new_option_ids},
                reason=reason,
            ))
        return entries

    @staticmethod
    async def _notify_modification(db: AsyncSession, registration: Registration, admin_user_id: str,
                                   reason: str) -> str:
        try:
            admin_user = await UserService.get_by_id(db, admin_user_id)
            if not admin_user:
                return ADMIN_NOT_FOUND

            camping_registrations = await RegistrationAdminService._user_camping_registrations(
                db, registration.user_id,
            )
            details = summarize_registration(
                registration, [camping_registration.camping_option for camping_registration in camping_registrations],
            )
            sent = await AdminNotificationService.send_registration_modification_notification(
                db, admin_user, registration.user, details, reason,
            )
            return "Notification sent successfully to user" if sent else "Failed to send notification to user"
        except Exception as e:
            logger.warning(f"⚠️ Failed to send modification notification for registration {registration.id}: {e}")
            return "Failed to send notification to user"

    # ============================================
    # Cancel
    # ============================================

    @staticmethod
    async def cancel_registration(db: AsyncSession, registration_id: str, cancellation: RegistrationCancellation,
                                  admin_user_id: str) -> dict:
        """
        Cancel a registration, release its work shifts and camping options
        and, when requested, refund its completed payments.

        Refunds go through the payment provider. A refund that fails leaves
        the payment as is and the response explains the manual refund still
        owed; the cancellation itself always proceeds.

        Raises:
            NotFoundError: If the registration doesn't exist
            BadRequestError: If it is already cancelled
        """
        transaction_id = str(uuid.uuid4())
        logger.info(f"Admin {admin_user_id} cancelling registration {registration_id}")

        registration = await RegistrationAdminService._get_registration(db, registration_id)
        if registration.status == RegistrationStatus.CANCELLED:
            raise BadRequestError("Registration is already cancelled")

        old_status = registration.status
        refund_info = calculate_refund_info(registration.payments)

        registration.status = RegistrationStatus.CANCELLED
        registration.updated_at = utcnow()
        await db.flush()

        await AdminAuditService.create_audit_record(db, AuditEntry(
            admin_user_id=admin_user_id,
            action_type=AdminAuditActionType.REGISTRATION_CANCEL,
            target_record_type=AdminAuditTargetType.REGISTRATION,
            target_record_id=registration_id,
            old_values={"status": old_status.value},
            new_values={"status": RegistrationStatus.CANCELLED.value},
            reason=cancellation.reason,
            transaction_id=transaction_id,
        ))

        cleanup = await RegistrationCleanupService.cleanup_registration(
            db, registration_id, admin_user_id, cancellation.reason, transaction_id,
        )
        logger.info(
            f"Registration {registration_id} cancelled. Cleaned up {cleanup.work_shifts_removed} work shifts "
            f"and {cleanup.camping_options_released} camping options"
        )

        if cancellation.process_refund and refund_info.has_payments:
            refund_info = await RegistrationAdminService._refund_payments(
                db, registration, cancellation.reason, admin_user_id, transaction_id,
            )

        await db.commit()
        registration = await RegistrationAdminService._get_registration(db, registration_id)

        notification_status = NO_NOTIFICATION
        if cancellation.send_notification:
            notification_status = await RegistrationAdminService._notify_cancellation(
                db, registration, admin_user_id, cancellation, refund_info,
            )

        return {
            "registration": registration,
            "transaction_id": transaction_id,
            "message": "Registration successfully cancelled",
            "refund_info": asdict(refund_info) if cancellation.process_refund and refund_info.has_payments else None,
            "notification_status": notification_status,
        }

    @staticmethod
    async def _refund_payments(db: AsyncSession, registration: Registration, reason: str,
                               admin_user_id: str, transaction_id: str) -> RefundInfo:
        """
        Refund each COMPLETED Stripe or PayPal payment through its provider.
        Manual payments, PENDING ones and provider refunds that fail stay in
        the manual summary untouched.
        """
        eligible = [p for p in registration.payments if p.status in (PaymentStatus.COMPLETED, PaymentStatus.PENDING)]
        refunded = []
        outstanding = []

        for payment in eligible:
            if payment.status != PaymentStatus.COMPLETED or payment.provider not in PROVIDER_REFUNDABLE:
                outstanding.append(payment)
                continue

            old_values = {"status": payment.status.value, "amount": payment.amount, "provider": payment.provider.value}
            try:
                result = await PaymentService.process_refund(
                    db, payment.id, reason=f"Registration cancelled: {reason}", cancel_registration=False,
                )
            except Exception as e:
                logger.error(f"❌ Refund failed for payment {payment.id}, manual refund required: {e}")
                outstanding.append(payment)
                continue

            refunded.append((payment, result["refund_amount"]))
            await AdminAuditService.create_audit_record(db, AuditEntry(
                admin_user_id=admin_user_id,
                action_type=AdminAuditActionType.PAYMENT_REFUND,
                target_record_type=AdminAuditTargetType.PAYMENT,
                target_record_id=payment.id,
                old_values=old_values,
                new_values={
                    "status": PaymentStatus.REFUNDED.value,
                    "refund_amount": result["refund_amount"],
                    "provider_refund_id": result["provider_refund_id"],
                },
                reason=reason,
                transaction_id=transaction_id,
            ), throw_on_error=False)

        refunded_amount = sum(amount for _, amount in refunded)
        messages = []
        if refunded:
            messages.append(f"Refund of ${refunded_amount:.2f} processed for {len(refunded)} payment(s)")
        if outstanding:
            messages.append(calculate_refund_info(outstanding).message)

        return RefundInfo(
            has_payments=True,
            total_amount=sum(p.amount for p in eligible),
            payment_ids=[p.id for p in eligible],
            message="; ".join(messages),
            refunded_amount=refunded_amount,
            refunded_payment_ids=[p.id for p, _ in refunded],
        )

    @staticmethod
    async def _notify_cancellation(db: AsyncSession, registration: Registration, admin_user_id: str,
                                   cancellation: RegistrationCancellation, refund_info: RefundInfo) -> str:
        try:
            admin_user = await UserService.get_by_id(db, admin_user_id)
            if not admin_user:
                return ADMIN_NOT_FOUND

            notice_refund = None
            if cancellation.process_refund and refund_info.has_payments:
                processed = bool(refund_info.refunded_payment_ids)
                notice_refund = {
                    "amount": refund_info.refunded_amount if processed else refund_info.total_amount,
                    "currency": "USD",
                    "processed": processed,
                }

            sent = await AdminNotificationService.send_registration_cancellation_notification(
                db, admin_user, registration.user, summarize_registration(registration),
                cancellation.reason, notice_refund,
            )
            if sent:
                return "Cancellation notification sent successfully to user"
            return "Failed to send cancellation notification to user"
        except Exception as e:
            logger.warning(f"⚠️ Failed to send cancellation notification for registration {registration.id}: {e}")
            return "Failed to send notification to user"

    # ============================================
    # Lookups
    # ============================================

    @staticmethod
    async def get_registration_audit_trail(db: AsyncSession, registration_id: str):
        return await AdminAuditService.get_audit_trail(db, AdminAuditTargetType.REGISTRATION, registration_id)

    @staticmethod
    async def get_user_camping_options(db: AsyncSession, registration_id: str) -> List[CampingOptionRegistration]:
        """Camping option sign-ups of the registration's user."""
        registration = await RegistrationAdminService._get_registration(db, registration_id)
        return await RegistrationAdminService._user_camping_registrations(db, registration.user_id)
