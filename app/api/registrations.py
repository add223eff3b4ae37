"""
Registration endpoints.

Participants manage their own registrations; admins and staff can see
everyone's. Camp registration (jobs + camping options + custom fields in
one step) lives under /registrations/camp.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Any, Dict
import logging

from app.api.auth import get_current_user, require_admin, require_staff, ensure_self_or_roles
from app.api.camping_options import FieldResponse
from app.api.jobs import JobResponse
from app.api.users import UserSummary
from app.db.connection import get_db_session
from app.db.models import User, UserRole, RegistrationStatus, PaymentStatus, PaymentProvider
from app.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class PaymentSummary(BaseModel):
    id: str
    amount: float
    currency: str
    status: PaymentStatus
    provider: PaymentProvider
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegistrationJobResponse(BaseModel):
    id: str
    job_id: str
    job: JobResponse

    class Config:
        from_attributes = True


class RegistrationResponse(BaseModel):
    id: str
    user_id: str
    year: int
    status: RegistrationStatus
    user: Optional[UserSummary] = None
    jobs: List[RegistrationJobResponse] = []
    payments: List[PaymentSummary] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateRegistrationRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Defaults to the current user; staff may register others")
    year: int = Field(..., ge=2000, le=2100)
    job_ids: List[str] = []


class UpdateRegistrationRequest(BaseModel):
    status: RegistrationStatus


class CampingOptionInfo(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    participant_dues: float
    staff_dues: float

    class Config:
        from_attributes = True


class FieldValueResponse(BaseModel):
    id: str
    field_id: str
    value: str
    field: Optional[FieldResponse] = None

    class Config:
        from_attributes = True


class CampingOptionRegistrationResponse(BaseModel):
    id: str
    user_id: str
    camping_option_id: str
    camping_option: Optional[CampingOptionInfo] = None
    field_values: List[FieldValueResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampRegistrationRequest(BaseModel):
    camping_options: List[str] = Field(default_factory=list, description="Camping option ids")
    custom_fields: Dict[str, Any] = Field(default_factory=dict, description="Values keyed by field id")
    jobs: List[str] = Field(default_factory=list, description="Job ids")
    accepted_terms: bool = False


class CampRegistrationResponse(BaseModel):
    job_registration: Optional[RegistrationResponse] = None
    camping_option_registrations: List[CampingOptionRegistrationResponse]
    year: int
    message: str


class MyCampRegistrationResponse(BaseModel):
    camping_options: List[CampingOptionRegistrationResponse]
    custom_field_values: List[FieldValueResponse]
    job_registrations: List[RegistrationResponse]
    has_registration: bool


async def _get_visible_registration(db: AsyncSession, registration_id: str, current_user: User):
    registration = await RegistrationService.find_one(db, registration_id)
    ensure_self_or_roles(current_user, registration.user_id, UserRole.ADMIN, UserRole.STAFF)
    return registration


# ============================================
# Camp registration
# ============================================

@router.post("/registrations/camp", response_model=CampRegistrationResponse, status_code=status.HTTP_201_CREATED)
async def create_camp_registration(
    request: CampRegistrationRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Register the current user for this year's camp."""
    return await RegistrationService.create_camp_registration(
        db,
        current_user.id,
        request.camping_options,
        request.custom_fields,
        request.jobs,
        request.accepted_terms,
    )


@router.get("/registrations/camp/me", response_model=MyCampRegistrationResponse)
async def get_my_camp_registration(current_user: User = Depends(get_current_user),
                                   db: AsyncSession = Depends(get_db_session)):
    return await RegistrationService.get_my_camp_registration(db, current_user.id)


# ============================================
# Registrations
# ============================================

@router.post("/registrations", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def create_registration(
    request: CreateRegistrationRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    user_id = request.user_id or current_user.id
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.STAFF)
    return await RegistrationService.create(db, user_id, request.year, request.job_ids)


@router.get("/registrations", response_model=List[RegistrationResponse])
async def list_registrations(_: User = Depends(require_staff), db: AsyncSession = Depends(get_db_session)):
    return await RegistrationService.find_all(db)


@router.get("/registrations/me", response_model=List[RegistrationResponse])
async def list_my_registrations(current_user: User = Depends(get_current_user),
                                db: AsyncSession = Depends(get_db_session)):
    return await RegistrationService.find_by_user(db, current_user.id)


@router.get("/registrations/user/{user_id}", response_model=List[RegistrationResponse])
async def list_user_registrations(user_id: str, current_user: User = Depends(get_current_user),
                                  db: AsyncSession = Depends(get_db_session)):
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.STAFF)
    return await RegistrationService.find_by_user(db, user_id)


@router.get("/registrations/user/{user_id}/year/{year}", response_model=Optional[RegistrationResponse])
async def get_user_registration_for_year(user_id: str, year: int, current_user: User = Depends(get_current_user),
                                         db: AsyncSession = Depends(get_db_session)):
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.STAFF)
    return await RegistrationService.find_by_user_and_year(db, user_id, year)


@router.get("/registrations/job/{job_id}", response_model=List[RegistrationResponse])
async def list_job_registrations(job_id: str, _: User = Depends(require_staff),
                                 db: AsyncSession = Depends(get_db_session)):
    return await RegistrationService.find_by_job(db, job_id)


@router.get("/registrations/{registration_id}", response_model=RegistrationResponse)
async def get_registration(registration_id: str, current_user: User = Depends(get_current_user),
                           db: AsyncSession = Depends(get_db_session)):
    return await _get_visible_registration(db, registration_id, current_user)


@router.patch("/registrations/{registration_id}", response_model=RegistrationResponse)
async def update_registration(registration_id: str, request: UpdateRegistrationRequest,
                              _: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    return await RegistrationService.update(db, registration_id, {"status": request.status})


@router.delete("/registrations/{registration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(registration_id: str, _: User = Depends(require_admin),
                              db: AsyncSession = Depends(get_db_session)):
    await RegistrationService.remove(db, registration_id)


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_own_registration(registration_id: str, current_user: User = Depends(get_current_user),
                                  db: AsyncSession = Depends(get_db_session)):
    """Participant self-service cancellation."""
    await RegistrationService.cancel_own(db, registration_id, current_user)
    return await RegistrationService.find_one(db, registration_id)


@router.post("/registrations/{registration_id}/jobs/{job_id}", response_model=RegistrationResponse)
async def add_job(registration_id: str, job_id: str, current_user: User = Depends(get_current_user),
                  db: AsyncSession = Depends(get_db_session)):
    await _get_visible_registration(db, registration_id, current_user)
    return await RegistrationService.add_job(db, registration_id, job_id)


@router.delete("/registrations/{registration_id}/jobs/{job_id}", response_model=RegistrationResponse)
async def remove_job(registration_id: str, job_id: str, current_user: User = Depends(get_current_user),
                     db: AsyncSession = Depends(get_db_session)):
    await _get_visible_registration(db, registration_id, current_user)
    return await RegistrationService.remove_job(db, registration_id, job_id)
