"""
Job Service - work shifts participants sign up for, and their categories.
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError
import logging

from app.db.models import Job, JobCategory, Shift, RegistrationJob, Registration, RegistrationStatus, utcnow
from app.domain.errors import NotFoundError, ConflictError, BadRequestError

logger = logging.getLogger(__name__)

JOB_LOAD = (selectinload(Job.category), selectinload(Job.shift))


class JobCategoryService:
    """Service for job categories"""

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> JobCategory:
        """
        Raises:
            ConflictError: If a category with the same name exists
        """
        existing = await db.execute(select(JobCategory).where(JobCategory.name == values["name"]))
        if existing.scalar_one_or_none():
            raise ConflictError(f"Job category '{values['name']}' already exists")

        category = JobCategory(**values)
        db.add(category)
        await db.flush()
        logger.info(f"Created job category: {category.id} ({category.name})")
        return category

    @staticmethod
    async def find_all(db: AsyncSession) -> List[JobCategory]:
        result = await db.execute(
            select(JobCategory).options(selectinload(JobCategory.jobs)).order_by(JobCategory.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_one(db: AsyncSession, category_id: str) -> JobCategory:
        result = await db.execute(
            select(JobCategory).options(selectinload(JobCategory.jobs)).where(JobCategory.id == category_id)
        )
        category = result.scalar_one_or_none()
        if not category:
            raise NotFoundError(f"Category with ID {category_id} not found")
        return category

    @staticmethod
    async def update(db: AsyncSession, category_id: str, values: dict) -> JobCategory:
        category = await JobCategoryService.find_one(db, category_id)

        new_name = values.get("name")
        if new_name and new_name != category.name:
            existing = await db.execute(select(JobCategory).where(JobCategory.name == new_name))
            if existing.scalar_one_or_none():
                raise ConflictError(f"Job category '{new_name}' already exists")

        for key, value in values.items():
            setattr(category, key, value)
        category.updated_at = utcnow()
        await db.flush()
        return category

    @staticmethod
    async def remove(db: AsyncSession, category_id: str) -> JobCategory:
        """
        Raises:
            BadRequestError: If jobs still use the category
        """
        category = await JobCategoryService.find_one(db, category_id)
        if category.jobs:
            raise BadRequestError(
                f"Cannot delete category with ID {category_id} because it has {len(category.jobs)} jobs"
            )
        await db.delete(category)
        await db.flush()
        logger.info(f"Deleted job category: {category_id}")
        return category


class JobService:
    """Service for jobs"""

    @staticmethod
    async def _validate_references(db: AsyncSession, category_id: Optional[str], shift_id: Optional[str]) -> None:
        if category_id and not await db.get(JobCategory, category_id):
            raise NotFoundError(f"Category with ID {category_id} not found")
        if shift_id and not await db.get(Shift, shift_id):
            raise NotFoundError(f"Shift with ID {shift_id} not found")

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> Job:
        """
        Raises:
            NotFoundError: If the category or shift doesn't exist
        """
        await JobService._validate_references(db, values.get("category_id"), values.get("shift_id"))

        job = Job(**values)
        db.add(job)
        await db.flush()
        logger.info(f"Created job: {job.id} ({job.name})")
        return await JobService.find_one(db, job.id)

    @staticmethod
    async def find_all(db: AsyncSession) -> List[Job]:
        result = await db.execute(select(Job).options(*JOB_LOAD).order_by(Job.name))
        return list(result.scalars().all())

    @staticmethod
    async def get(db: AsyncSession, job_id: str) -> Optional[Job]:
        result = await db.execute(
            select(Job).options(*JOB_LOAD).where(Job.id == job_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_one(db: AsyncSession, job_id: str) -> Job:
        job = await JobService.get(db, job_id)
        if not job:
            raise NotFoundError(f"Job with ID {job_id} not found")
        return job

    @staticmethod
    async def update(db: AsyncSession, job_id: str, values: dict) -> Job:
        job = await JobService.find_one(db, job_id)
        await JobService._validate_references(db, values.get("category_id"), values.get("shift_id"))

        for key, value in values.items():
            setattr(job, key, value)
        job.updated_at = utcnow()
        await db.flush()
        return await JobService.find_one(db, job_id)

    @staticmethod
    async def remove(db: AsyncSession, job_id: str) -> Job:
        """
        Raises:
            BadRequestError: If registrations still hold the job
        """
        job = await JobService.find_one(db, job_id)
        try:
            signups = await JobService.count_active_registrations(db, job_id)
            if signups:
                raise BadRequestError(
                    f"Cannot delete job with ID {job_id} because it has {signups} registrations"
                )
            await db.delete(job)
            await db.flush()
        except IntegrityError:
            raise BadRequestError(f"Cannot delete job with ID {job_id} while it is referenced")
        logger.info(f"Deleted job: {job_id}")
        return job

    @staticmethod
    async def count_active_registrations(db: AsyncSession, job_id: str) -> int:
        """Registrations holding the job, excluding cancelled ones."""
        result = await db.execute(
            select(func.count(RegistrationJob.id))
            .join(Registration, Registration.id == RegistrationJob.registration_id)
            .where(
                RegistrationJob.job_id == job_id,
                Registration.status != RegistrationStatus.CANCELLED,
            )
        )
        return result.scalar_one()

    @staticmethod
    async def is_full(db: AsyncSession, job: Job) -> bool:
        return await JobService.count_active_registrations(db, job.id) >= job.max_registrations
