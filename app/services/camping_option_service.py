"""
Camping Option Service - camping options and their custom fields.

Options carry dues, a signup cap (max_signups, 0 = unlimited) and the job
categories whose shifts satisfy their work requirement. Fields are custom
registration questions validated when a participant signs up.
"""
from typing import Optional, List
from datetime import date
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from sqlalchemy.orm import selectinload
import logging

from app.db.models import (
    CampingOption, CampingOptionField, CampingOptionJobCategory, CampingOptionRegistration,
    JobCategory, FieldType, utcnow,
)
from app.domain.errors import NotFoundError, BadRequestError

logger = logging.getLogger(__name__)

OPTION_LOAD = (
    selectinload(CampingOption.job_categories),
    selectinload(CampingOption.fields),
)


class CampingOptionService:
    """Service for camping options"""

    @staticmethod
    async def _validate_job_categories(db: AsyncSession, job_category_ids: List[str]) -> None:
        if not job_category_ids:
            return
        result = await db.execute(
            select(func.count(JobCategory.id)).where(JobCategory.id.in_(job_category_ids))
        )
        if result.scalar_one() != len(set(job_category_ids)):
            raise NotFoundError("One or more job categories not found")

    @staticmethod
    async def create(db: AsyncSession, values: dict, job_category_ids: Optional[List[str]] = None) -> CampingOption:
        """
        Raises:
            NotFoundError: If any job category id is unknown
        """
        job_category_ids = job_category_ids or []
        await CampingOptionService._validate_job_categories(db, job_category_ids)

        option = CampingOption(**values)
        option.job_categories = [
            CampingOptionJobCategory(job_category_id=category_id) for category_id in dict.fromkeys(job_category_ids)
        ]
        db.add(option)
        await db.flush()

        logger.info(f"✅ Created camping option: {option.id} ({option.name})")
        return await CampingOptionService.find_one(db, option.id)

    @staticmethod
    async def find_all(db: AsyncSession, include_disabled: bool = False) -> List[CampingOption]:
        query = select(CampingOption).options(*OPTION_LOAD).order_by(CampingOption.name)
        if not include_disabled:
            query = query.where(CampingOption.enabled.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get(db: AsyncSession, option_id: str) -> Optional[CampingOption]:
        result = await db.execute(
            select(CampingOption).options(*OPTION_LOAD).where(CampingOption.id == option_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_one(db: AsyncSession, option_id: str) -> CampingOption:
        option = await CampingOptionService.get(db, option_id)
        if not option:
            raise NotFoundError(f"Camping option with ID {option_id} not found")
        return option

    @staticmethod
    async def get_registration_count(db: AsyncSession, option_id: str) -> int:
        result = await db.execute(
            select(func.count(CampingOptionRegistration.id))
            .where(CampingOptionRegistration.camping_option_id == option_id)
        )
        return result.scalar_one()

    @staticmethod
    async def get_registration_counts(db: AsyncSession) -> dict:
        """Signup counts keyed by camping option id."""
        result = await db.execute(
            select(CampingOptionRegistration.camping_option_id, func.count(CampingOptionRegistration.id))
            .group_by(CampingOptionRegistration.camping_option_id)
        )
        return {option_id: count for option_id, count in result.all()}

    @staticmethod
    async def update(db: AsyncSession, option_id: str, values: dict,
                     job_category_ids: Optional[List[str]] = None) -> CampingOption:
        """
        Update an option. job_category_ids, when given, replaces the
        existing category links.
        """
        option = await CampingOptionService.find_one(db, option_id)

        if job_category_ids is not None:
            await CampingOptionService._validate_job_categories(db, job_category_ids)
            await db.execute(
                delete(CampingOptionJobCategory).where(CampingOptionJobCategory.camping_option_id == option_id)
            )
            for category_id in dict.fromkeys(job_category_ids):
                db.add(CampingOptionJobCategory(camping_option_id=option_id, job_category_id=category_id))

        for key, value in values.items():
            setattr(option, key, value)
        option.updated_at = utcnow()
        await db.flush()

        logger.info(f"Updated camping option: {option_id}")
        return await CampingOptionService.find_one(db, option_id)

    @staticmethod
    async def remove(db: AsyncSession, option_id: str) -> CampingOption:
        """
        Raises:
            BadRequestError: If the option has registrations or custom fields
        """
        option = await CampingOptionService.find_one(db, option_id)

        registration_count = await CampingOptionService.get_registration_count(db, option_id)
        if registration_count > 0:
            raise BadRequestError(
                f"Cannot delete camping option with ID {option_id} because it has "
                f"{registration_count} registrations"
            )

        if option.fields:
            raise BadRequestError(
                f"Cannot delete camping option with ID {option_id} because it has "
                f"{len(option.fields)} custom fields. Delete the fields first."
            )

        await db.delete(option)
        await db.flush()
        logger.info(f"Deleted camping option: {option_id}")
        return option


class CampingOptionFieldService:
    """Service for camping option custom fields"""

    @staticmethod
    def _validate_bounds(values: dict) -> None:
        min_length, max_length = values.get("min_length"), values.get("max_length")
        if min_length is not None and max_length is not None and min_length > max_length:
            raise BadRequestError("min_length cannot be greater than max_length")

        min_value, max_value = values.get("min_value"), values.get("max_value")
        if min_value is not None and max_value is not None and min_value > max_value:
            raise BadRequestError("min_value cannot be greater than max_value")

    @staticmethod
    async def create(db: AsyncSession, option_id: str, values: dict) -> CampingOptionField:
        """
        Raises:
            NotFoundError: If the camping option doesn't exist
            BadRequestError: If length/value bounds are inconsistent
        """
        if not await CampingOptionService.get(db, option_id):
            raise NotFoundError(f"Camping option with ID {option_id} not found")
        CampingOptionFieldService._validate_bounds(values)

        if values.get("order") is None:
            result = await db.execute(
                select(func.max(CampingOptionField.order)).where(CampingOptionField.camping_option_id == option_id)
            )
            current_max = result.scalar_one()
            values = dict(values, order=(current_max + 1) if current_max is not None else 0)

        field = CampingOptionField(camping_option_id=option_id, **values)
        db.add(field)
        await db.flush()

        logger.info(f"Created field {field.id} ({field.display_name}) on camping option {option_id}")
        return field

    @staticmethod
    async def find_all(db: AsyncSession, option_id: str) -> List[CampingOptionField]:
        result = await db.execute(
            select(CampingOptionField)
            .where(CampingOptionField.camping_option_id == option_id)
            .order_by(CampingOptionField.order, CampingOptionField.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def find_one(db: AsyncSession, field_id: str) -> CampingOptionField:
        result = await db.execute(select(CampingOptionField).where(CampingOptionField.id == field_id))
        field = result.scalar_one_or_none()
        if not field:
            raise NotFoundError(f"Camping option field with ID {field_id} not found")
        return field

    @staticmethod
    async def update(db: AsyncSession, field_id: str, values: dict) -> CampingOptionField:
        field = await CampingOptionFieldService.find_one(db, field_id)

        merged = {
            key: values.get(key, getattr(field, key))
            for key in ("min_length", "max_length", "min_value", "max_value")
        }
        CampingOptionFieldService._validate_bounds(merged)

        for key, value in values.items():
            setattr(field, key, value)
        field.updated_at = utcnow()
        await db.flush()
        return field

    @staticmethod
    async def remove(db: AsyncSession, field_id: str) -> CampingOptionField:
        field = await CampingOptionFieldService.find_one(db, field_id)
        await db.delete(field)
        await db.flush()
        logger.info(f"Deleted camping option field: {field_id}")
        return field

    @staticmethod
    async def reorder(db: AsyncSession, option_id: str, field_ids: List[str]) -> List[CampingOptionField]:
        """
        Set field order to the position of each id in field_ids.

        Raises:
            BadRequestError: If field_ids doesn't list exactly the option's fields
        """
        fields = await CampingOptionFieldService.find_all(db, option_id)
        by_id = {field.id: field for field in fields}

        if set(field_ids) != set(by_id) or len(field_ids) != len(by_id):
            raise BadRequestError("Field ids must list every field of the camping option exactly once")

        for position, field_id in enumerate(field_ids):
            by_id[field_id].order = position
        await db.flush()
        return sorted(fields, key=lambda field: field.order)


def validate_field_value(field: CampingOptionField, value) -> Optional[str]:
    """
    Check a submitted value against a field definition.

    Returns:
        Error message, or None when the value is acceptable
    """
    if value is None or value == "":
        return f"{field.display_name} is required" if field.required else None

    if field.data_type in (FieldType.STRING, FieldType.MULTILINE_STRING):
        text = str(value)
        if field.min_length is not None and len(text) < field.min_length:
            return f"{field.display_name} must be at least {field.min_length} characters"
        if field.max_length is not None and len(text) > field.max_length:
            return f"{field.display_name} must be at most {field.max_length} characters"
        return None

    if field.data_type == FieldType.BOOLEAN:
        if isinstance(value, bool) or str(value).lower() in ("true", "false"):
            return None
        return f"{field.display_name} must be true or false"

    if field.data_type == FieldType.DATE:
        try:
            date.fromisoformat(str(value))
        except ValueError:
            return f"{field.display_name} must be a date (YYYY-MM-DD)"
        return None

    # INTEGER / NUMBER
    try:
        number = float(value)
    except (TypeError, ValueError):
        return f"{field.display_name} must be a number"
    if field.data_type == FieldType.INTEGER and not number.is_integer():
        return f"{field.display_name} must be a whole number"
    if field.min_value is not None and number < field.min_value:
        return f"{field.display_name} must be at least {field.min_value:g}"
    if field.max_value is not None and number > field.max_value:
        return f"{field.display_name} must be at most {field.max_value:g}"
    return None
