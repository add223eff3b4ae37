"""
Shift Service - time slots on event days.
"""
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, case
from sqlalchemy.orm import selectinload
import logging

from app.db.models import Shift, Job, RegistrationJob, Registration, DayOfWeek, utcnow
from app.domain.errors import NotFoundError, BadRequestError

logger = logging.getLogger(__name__)

# Calendar order of event days; alphabetical order of the enum values is meaningless
DAY_ORDER = case(
    {day.value: position for position, day in enumerate(DayOfWeek)},
    value=Shift.day_of_week,
)


class ShiftService:
    """Service for shifts"""

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> Shift:
        shift = Shift(**values)
        db.add(shift)
        await db.flush()
        logger.info(f"Created shift: {shift.id} ({shift.name}, {shift.day_of_week.value})")
        return shift

    @staticmethod
    async def find_all(db: AsyncSession) -> List[Shift]:
        """Shifts ordered by event day, then start time."""
        result = await db.execute(select(Shift).order_by(DAY_ORDER, Shift.start_time))
        return list(result.scalars().all())

    @staticmethod
    async def find_one(db: AsyncSession, shift_id: str) -> Shift:
        result = await db.execute(
            select(Shift).options(selectinload(Shift.jobs)).where(Shift.id == shift_id)
        )
        shift = result.scalar_one_or_none()
        if not shift:
            raise NotFoundError(f"Shift with ID {shift_id} not found")
        return shift

    @staticmethod
    async def update(db: AsyncSession, shift_id: str, values: dict) -> Shift:
        shift = await ShiftService.find_one(db, shift_id)
        for key, value in values.items():
            setattr(shift, key, value)
        shift.updated_at = utcnow()
        await db.flush()
        return shift

    @staticmethod
    async def remove(db: AsyncSession, shift_id: str) -> Shift:
        """
        Raises:
            BadRequestError: If jobs are still scheduled in the shift
        """
        shift = await ShiftService.find_one(db, shift_id)
        if shift.jobs:
            raise BadRequestError(
                f"Cannot delete shift with ID {shift_id} because it has {len(shift.jobs)} jobs"
            )
        await db.delete(shift)
        await db.flush()
        logger.info(f"Deleted shift: {shift_id}")
        return shift

    @staticmethod
    async def find_all_with_jobs_and_registrations(db: AsyncSession) -> List[Shift]:
        """
        Staffing view: every shift with its jobs, each job's category and
        the registrations (with users) holding it.
        """
        result = await db.execute(
            select(Shift)
            .options(
                selectinload(Shift.jobs).selectinload(Job.category),
                selectinload(Shift.jobs)
                .selectinload(Job.registrations)
                .selectinload(RegistrationJob.registration)
                .selectinload(Registration.user),
            )
            .order_by(DAY_ORDER, Shift.start_time)
        )
        return list(result.scalars().all())
