"""
Registration Service - a user's sign-up for an event year.

A registration holds work shifts (jobs). It is WAITLISTED as soon as any
of its jobs is at capacity, counting only registrations that are not
cancelled. Camp registration bundles the job registration with camping
option sign-ups and their custom field answers.
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
import logging

from app.db.models import (
    Registration, RegistrationJob, RegistrationStatus, Job, User,
    CampingOption, CampingOptionRegistration, CampingOptionFieldValue, utcnow,
)
from app.domain.errors import (
    DomainError, NotFoundError, ConflictError, BadRequestError, ForbiddenError,
)
from app.services.admin_notification_service import summarize_registration
from app.services.camping_option_service import CampingOptionService, validate_field_value
from app.services.core_config_service import CoreConfigService
from app.services.job_service import JobService
from app.services.notification_service import NotificationService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

REGISTRATION_LOAD = (
    selectinload(Registration.user),
    selectinload(Registration.jobs).selectinload(RegistrationJob.job).selectinload(Job.category),
    selectinload(Registration.jobs).selectinload(RegistrationJob.job).selectinload(Job.shift),
    selectinload(Registration.payments),
)

CAMPING_REGISTRATION_LOAD = (
    selectinload(CampingOptionRegistration.camping_option).selectinload(CampingOption.fields),
    selectinload(CampingOptionRegistration.field_values).selectinload(CampingOptionFieldValue.field),
)


def registration_error_suggestions(error: Exception) -> List[str]:
    """Hints for the registration-error email, by failure kind."""
    if isinstance(error, ConflictError):
        return [
            "Check if you already have a registration for this year",
            "Review your camping option selections for duplicates",
            "Contact support if you believe this is an error",
        ]
    if isinstance(error, NotFoundError):
        return [
            "Verify that all selected options are still available",
            "Refresh the page and try again",
            "Contact support if options should be available",
        ]
    if isinstance(error, BadRequestError):
        return [
            "Ensure you have accepted the terms and conditions",
            "Check that all required fields are filled out",
            "Verify your selections are valid",
        ]
    return [
        "Try again in a few minutes",
        "Clear your browser cache and reload the page",
        "Contact support if the problem persists",
    ]


class RegistrationService:
    """Service for registrations and their work shifts"""

    @staticmethod
    async def _get_loaded(db: AsyncSession, registration_id: str) -> Optional[Registration]:
        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .where(Registration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_one(db: AsyncSession, registration_id: str) -> Registration:
        """
        Raises:
            NotFoundError: If the registration doesn't exist
        """
        registration = await RegistrationService._get_loaded(db, registration_id)
        if not registration:
            raise NotFoundError(f"Registration with ID {registration_id} not found")
        return registration

    @staticmethod
    async def create(db: AsyncSession, user_id: str, year: int, job_ids: List[str]) -> Registration:
        """
        Create a registration holding the given jobs.

        Raises:
            NotFoundError: If the user or any job doesn't exist
            ConflictError: If the user already registered for the year
        """
        await UserService.find_one(db, user_id)

        existing = await RegistrationService.get_by_user_and_year(db, user_id, year)
        if existing:
            raise ConflictError(f"User already has a registration for year {year}")

        job_ids = list(dict.fromkeys(job_ids))
        waitlisted = False
        for job_id in job_ids:
            job = await db.get(Job, job_id)
            if not job:
                raise NotFoundError(f"Job with ID {job_id} not found")
            if await JobService.is_full(db, job):
                waitlisted = True

        status = RegistrationStatus.WAITLISTED if waitlisted else RegistrationStatus.PENDING
        registration = Registration(user_id=user_id, year=year, status=status)
        registration.jobs = [RegistrationJob(job_id=job_id) for job_id in job_ids]
        db.add(registration)
        await db.flush()

        logger.info(f"✅ Created registration {registration.id} for user {user_id} ({year}, {status.value})")
        return await RegistrationService.find_one(db, registration.id)

    @staticmethod
    async def find_all(db: AsyncSession) -> List[Registration]:
        result = await db.execute(
            select(Registration).options(*REGISTRATION_LOAD).order_by(Registration.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_by_user(db: AsyncSession, user_id: str) -> List[Registration]:
        await UserService.find_one(db, user_id)
        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .where(Registration.user_id == user_id)
            .order_by(Registration.year.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_by_user_and_year(db: AsyncSession, user_id: str, year: int) -> Optional[Registration]:
        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .where(Registration.user_id == user_id, Registration.year == year)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_user_and_year(db: AsyncSession, user_id: str, year: int) -> Optional[Registration]:
        await UserService.find_one(db, user_id)
        return await RegistrationService.get_by_user_and_year(db, user_id, year)

    @staticmethod
    async def find_by_job(db: AsyncSession, job_id: str) -> List[Registration]:
        await JobService.find_one(db, job_id)
        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .join(RegistrationJob, RegistrationJob.registration_id == Registration.id)
            .where(RegistrationJob.job_id == job_id)
            .order_by(Registration.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update(db: AsyncSession, registration_id: str, values: dict) -> Registration:
        registration = await RegistrationService.find_one(db, registration_id)
        for key, value in values.items():
            setattr(registration, key, value)
        registration.updated_at = utcnow()
        await db.flush()
        logger.info(f"Updated registration {registration_id}: {', '.join(sorted(values))}")
        return await RegistrationService.find_one(db, registration_id)

    @staticmethod
    async def remove(db: AsyncSession, registration_id: str) -> Registration:
        registration = await RegistrationService.find_one(db, registration_id)
        await db.delete(registration)
        await db.flush()
        logger.info(f"Deleted registration: {registration_id}")
        return registration

    @staticmethod
    async def cancel_own(db: AsyncSession, registration_id: str, current_user: User) -> Registration:
        """
        Participant self-service cancellation.

        Raises:
            ForbiddenError: If the registration belongs to someone else
            BadRequestError: If it is already cancelled
        """
        registration = await RegistrationService.find_one(db, registration_id)
        if registration.user_id != current_user.id:
            raise ForbiddenError("You can only cancel your own registration")
        if registration.status == RegistrationStatus.CANCELLED:
            raise BadRequestError("Registration is already cancelled")

        registration.status = RegistrationStatus.CANCELLED
        registration.updated_at = utcnow()
        await db.flush()
        logger.info(f"User {current_user.id} cancelled registration {registration_id}")
        return registration

    @staticmethod
    async def add_job(db: AsyncSession, registration_id: str, job_id: str) -> Registration:
        """
        Add a work shift. The registration becomes WAITLISTED when the job
        is already full.

        Raises:
            NotFoundError: If the registration or job doesn't exist
            ConflictError: If the job is already on the registration
        """
        registration = await RegistrationService.find_one(db, registration_id)
        job = await JobService.find_one(db, job_id)

        if any(registration_job.job_id == job_id for registration_job in registration.jobs):
            raise ConflictError("Job is already part of this registration")

        # Capacity is measured before this registration takes a slot
        full = await JobService.is_full(db, job)

        db.add(RegistrationJob(registration_id=registration_id, job_id=job_id))
        if full and registration.status != RegistrationStatus.WAITLISTED:
            registration.status = RegistrationStatus.WAITLISTED
            logger.info(f"Registration {registration_id} waitlisted: job {job_id} is full")
        await db.flush()

        return await RegistrationService.find_one(db, registration_id)

    @staticmethod
    async def remove_job(db: AsyncSession, registration_id: str, job_id: str) -> Registration:
        """
        Raises:
            NotFoundError: If the registration doesn't exist or doesn't hold the job
        """
        await RegistrationService.find_one(db, registration_id)

        result = await db.execute(
            select(RegistrationJob).where(
                RegistrationJob.registration_id == registration_id,
                RegistrationJob.job_id == job_id,
            )
        )
        registration_job = result.scalar_one_or_none()
        if not registration_job:
            raise NotFoundError("Job not found in this registration")

        await db.delete(registration_job)
        await db.flush()
        return await RegistrationService.find_one(db, registration_id)

    # ============================================
    # Camp registration
    # ============================================

    @staticmethod
    async def create_camp_registration(
        db: AsyncSession,
        user_id: str,
        camping_option_ids: List[str],
        custom_fields: Optional[dict],
        job_ids: List[str],
        accepted_terms: bool,
    ) -> dict:
        """
        Register a user for the configured year: jobs, camping options and
        custom field answers in one step.

        On success a confirmation email is sent; on failure a registration
        error email with suggestions is sent and the error re-raised. Email
        problems never change the outcome. A rejected request writes nothing
        but the error email's notification and audit rows, which are committed
        before the error propagates.
        """
        try:
            user = await UserService.find_one(db, user_id)
            result = await RegistrationService._create_camp_registration(
                db, user, camping_option_ids, custom_fields or {}, job_ids, accepted_terms,
            )
        except DomainError as e:
            logger.error(f"❌ Registration creation failed for user {user_id}: {e.message}")
            await RegistrationService._send_registration_error_email(db, user_id, e)
            # The request session rolls back on the re-raise; keep the email audit trail
            await db.commit()
            raise

        await RegistrationService._send_registration_confirmation_email(db, user, result)
        return result

    @staticmethod
    async def _create_camp_registration(db: AsyncSession, user: User, camping_option_ids: List[str],
                                        custom_fields: dict, job_ids: List[str],
                                        accepted_terms: bool) -> dict:
        if not accepted_terms:
            raise BadRequestError("Terms and conditions must be accepted")

        config = await CoreConfigService.find_current(db)
        year = config.registration_year

        if not user.allow_registration:
            raise ForbiddenError("Registration is not allowed for this account")
        early_access = config.early_registration_open and user.allow_early_registration
        if not config.registration_open and not early_access:
            raise ForbiddenError("Registration is currently closed")

        if await RegistrationService.get_by_user_and_year(db, user.id, year):
            raise ConflictError(f"User already has a registration for {year}")

        # Every check runs before the first write so a rejected request leaves nothing behind
        options = []
        for option_id in dict.fromkeys(camping_option_ids or []):
            option = await CampingOptionService.get(db, option_id)
            if not option:
                raise NotFoundError(f"Camping option with ID {option_id} not found")

            existing = await db.execute(
                select(CampingOptionRegistration).where(
                    CampingOptionRegistration.user_id == user.id,
                    CampingOptionRegistration.camping_option_id == option_id,
                )
            )
            if existing.scalar_one_or_none():
                raise ConflictError(f"User already registered for camping option: {option.name}")

            if not option.enabled:
                raise BadRequestError(f"Camping option {option.name} is not available")
            if option.max_signups > 0:
                signups = await CampingOptionService.get_registration_count(db, option_id)
                if signups >= option.max_signups:
                    raise BadRequestError(f"Camping option {option.name} is full")

            errors = [
                error for error in (validate_field_value(field, custom_fields.get(field.id))
                                    for field in option.fields)
                if error
            ]
            if errors:
                raise BadRequestError("; ".join(errors))
            options.append(option)

        for job_id in dict.fromkeys(job_ids or []):
            if not await db.get(Job, job_id):
                raise NotFoundError(f"Job with ID {job_id} not found")

        job_registration = None
        if job_ids:
            job_registration = await RegistrationService.create(db, user.id, year, job_ids)

        camping_registrations = []
        for option in options:
            camping_registration = CampingOptionRegistration(user_id=user.id, camping_option_id=option.id)
            camping_registration.field_values = [
                CampingOptionFieldValue(field_id=field.id, value=_field_value_to_str(custom_fields[field.id]))
                for field in option.fields
                if custom_fields.get(field.id) not in (None, "")
            ]
            db.add(camping_registration)
            await db.flush()
            camping_registrations.append(camping_registration)

        loaded = []
        for camping_registration in camping_registrations:
            loaded.append(await RegistrationService._get_camping_registration(db, camping_registration.id))

        logger.info(
            f"✅ Camp registration completed for user {user.id}: "
            f"{len(job_ids or [])} jobs, {len(loaded)} camping options"
        )
        return {
            "job_registration": job_registration,
            "camping_option_registrations": loaded,
            "year": year,
            "message": "Camp registration completed successfully",
        }

    @staticmethod
    async def _get_camping_registration(db: AsyncSession, camping_registration_id: str) -> CampingOptionRegistration:
        result = await db.execute(
            select(CampingOptionRegistration)
            .options(*CAMPING_REGISTRATION_LOAD)
            .where(CampingOptionRegistration.id == camping_registration_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    async def _send_registration_confirmation_email(db: AsyncSession, user: User, result: dict) -> None:
        try:
            job_registration = result["job_registration"]
            options = [registration.camping_option for registration in result["camping_option_registrations"]]
            total_cost = sum(option.participant_dues or 0.0 for option in options)

            if job_registration:
                details = summarize_registration(job_registration, options)
            else:
                details = {
                    "id": "pending",
                    "year": result["year"],
                    "status": RegistrationStatus.PENDING.value,
                    "camping_options": [{"name": o.name, "description": o.description} for o in options],
                    "jobs": [],
                }
            details["total_cost"] = total_cost if total_cost > 0 else None
            details["currency"] = "USD"

            sent = await NotificationService.send_registration_confirmation_email(
                db, user.email, details, user.id, user.first_name, user.playa_name,
            )
            if sent:
                logger.info(f"Registration confirmation email sent to {user.email}")
            else:
                logger.warning(f"⚠️ Failed to send registration confirmation email to {user.email}")
        except Exception as e:
            logger.error(f"❌ Error sending registration confirmation email: {e}")

    @staticmethod
    async def _send_registration_error_email(db: AsyncSession, user_id: str, error: DomainError) -> None:
        try:
            user = await UserService.get_by_id(db, user_id)
            if not user:
                return
            await NotificationService.send_registration_error_email(
                db,
                user.email,
                {
                    "error": type(error).__name__,
                    "message": error.message,
                    "suggestions": registration_error_suggestions(error),
                },
                user_id,
            )
        except Exception as e:
            logger.error(f"❌ Error sending registration error email: {e}")

    @staticmethod
    async def get_my_camp_registration(db: AsyncSession, user_id: str) -> dict:
        """Camping option sign-ups, custom field answers and job registrations of a user."""
        await UserService.find_one(db, user_id)

        result = await db.execute(
            select(CampingOptionRegistration)
            .options(*CAMPING_REGISTRATION_LOAD)
            .where(CampingOptionRegistration.user_id == user_id)
            .order_by(CampingOptionRegistration.created_at)
        )
        camping_registrations = list(result.scalars().all())

        result = await db.execute(
            select(Registration)
            .options(*REGISTRATION_LOAD)
            .where(Registration.user_id == user_id)
            .order_by(Registration.year.desc())
        )
        job_registrations = list(result.scalars().all())

        custom_field_values = [
            value for registration in camping_registrations for value in registration.field_values
        ]

        return {
            "camping_options": camping_registrations,
            "custom_field_values": custom_field_values,
            "job_registrations": job_registrations,
            "has_registration": bool(camping_registrations or job_registrations),
        }


def _field_value_to_str(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
