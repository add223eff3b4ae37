"""
Shift endpoints and the staffing overview.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import logging

from app.api.auth import get_current_user, require_admin, require_staff
from app.api.users import UserSummary
from app.db.connection import get_db_session
from app.db.models import User, DayOfWeek, RegistrationStatus, Shift
from app.services.shift_service import ShiftService

logger = logging.getLogger(__name__)

router = APIRouter()

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# ============================================
# Pydantic Models
# ============================================

class ShiftResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    start_time: str
    end_time: str
    day_of_week: DayOfWeek
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateShiftRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    day_of_week: DayOfWeek


class UpdateShiftRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    day_of_week: Optional[DayOfWeek] = None


class StaffingRegistration(BaseModel):
    registration_id: str
    status: RegistrationStatus
    year: int
    user: UserSummary


class StaffingJob(BaseModel):
    id: str
    name: str
    location: str
    category: Optional[str] = None
    max_registrations: int
    registrations: List[StaffingRegistration]


class ShiftWithJobsResponse(ShiftResponse):
    jobs: List[StaffingJob]


def staffing_view(shift: Shift) -> ShiftWithJobsResponse:
    jobs = [
        StaffingJob(
            id=job.id,
            name=job.name,
            location=job.location,
            category=job.category.name if job.category else None,
            max_registrations=job.max_registrations,
            registrations=[
                StaffingRegistration(
                    registration_id=registration_job.registration.id,
                    status=registration_job.registration.status,
                    year=registration_job.registration.year,
                    user=UserSummary.model_validate(registration_job.registration.user),
                )
                for registration_job in job.registrations
            ],
        )
        for job in shift.jobs
    ]
    return ShiftWithJobsResponse(**ShiftResponse.model_validate(shift).model_dump(), jobs=jobs)


# ============================================
# Endpoints
# ============================================

@router.get("/shifts", response_model=List[ShiftResponse])
async def list_shifts(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return await ShiftService.find_all(db)


@router.get("/shifts/with-jobs-and-registrations", response_model=List[ShiftWithJobsResponse])
async def list_shifts_with_jobs(_: User = Depends(require_staff), db: AsyncSession = Depends(get_db_session)):
    """Every shift with its jobs and who is signed up for them."""
    shifts = await ShiftService.find_all_with_jobs_and_registrations(db)
    return [staffing_view(shift) for shift in shifts]


@router.get("/shifts/{shift_id}", response_model=ShiftResponse)
async def get_shift(shift_id: str, _: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return await ShiftService.find_one(db, shift_id)


@router.post("/shifts", response_model=ShiftResponse, status_code=status.HTTP_201_CREATED)
async def create_shift(request: CreateShiftRequest, _: User = Depends(require_admin),
                       db: AsyncSession = Depends(get_db_session)):
    return await ShiftService.create(db, request.model_dump())


@router.patch("/shifts/{shift_id}", response_model=ShiftResponse)
async def update_shift(shift_id: str, request: UpdateShiftRequest, _: User = Depends(require_admin),
                       db: AsyncSession = Depends(get_db_session)):
    return await ShiftService.update(db, shift_id, request.model_dump(exclude_unset=True))


@router.delete("/shifts/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shift(shift_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    await ShiftService.remove(db, shift_id)
