"""
Camping option endpoints, including custom registration fields.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import logging

from app.api.auth import get_current_user, require_admin
from app.db.connection import get_db_session
from app.db.models import User, UserRole, CampingOption, FieldType
from app.services.camping_option_service import CampingOptionService, CampingOptionFieldService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class FieldResponse(BaseModel):
    id: str
    display_name: str
    description: Optional[str] = None
    data_type: FieldType
    required: bool
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    order: int
    camping_option_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampingOptionResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    enabled: bool
    work_shifts_required: int
    participant_dues: float
    staff_dues: float
    max_signups: int
    job_category_ids: List[str]
    fields: List[FieldResponse] = []
    current_registrations: int = 0
    available_spots: Optional[int] = None  # None when unlimited
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreateCampingOptionRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    enabled: bool = True
    work_shifts_required: int = Field(0, ge=0)
    participant_dues: float = Field(0.0, ge=0)
    staff_dues: float = Field(0.0, ge=0)
    max_signups: int = Field(0, ge=0, description="0 means unlimited")
    job_category_ids: List[str] = []


class UpdateCampingOptionRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    work_shifts_required: Optional[int] = Field(None, ge=0)
    participant_dues: Optional[float] = Field(None, ge=0)
    staff_dues: Optional[float] = Field(None, ge=0)
    max_signups: Optional[int] = Field(None, ge=0)
    job_category_ids: Optional[List[str]] = None


class CreateFieldRequest(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    data_type: FieldType
    required: bool = False
    max_length: Optional[int] = Field(None, ge=0)
    min_length: Optional[int] = Field(None, ge=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    order: Optional[int] = Field(None, ge=0)


class UpdateFieldRequest(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    data_type: Optional[FieldType] = None
    required: Optional[bool] = None
    max_length: Optional[int] = Field(None, ge=0)
    min_length: Optional[int] = Field(None, ge=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    order: Optional[int] = Field(None, ge=0)


class ReorderFieldsRequest(BaseModel):
    field_ids: List[str]


def option_response(option: CampingOption, registrations: int) -> CampingOptionResponse:
    return CampingOptionResponse(
        id=option.id,
        name=option.name,
        description=option.description,
        enabled=option.enabled,
        work_shifts_required=option.work_shifts_required,
        participant_dues=option.participant_dues,
        staff_dues=option.staff_dues,
        max_signups=option.max_signups,
        job_category_ids=[link.job_category_id for link in option.job_categories],
        fields=[FieldResponse.model_validate(field) for field in option.fields],
        current_registrations=registrations,
        available_spots=max(option.max_signups - registrations, 0) if option.max_signups > 0 else None,
        created_at=option.created_at,
        updated_at=option.updated_at,
    )


# ============================================
# Camping options
# ============================================

@router.get("/camping-options", response_model=List[CampingOptionResponse])
async def list_camping_options(
    include_disabled: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Enabled options by name; admins and staff may include disabled ones."""
    include_disabled = include_disabled and current_user.role in (UserRole.ADMIN, UserRole.STAFF)
    options = await CampingOptionService.find_all(db, include_disabled)
    counts = await CampingOptionService.get_registration_counts(db)
    return [option_response(option, counts.get(option.id, 0)) for option in options]


@router.get("/camping-options/{option_id}", response_model=CampingOptionResponse)
async def get_camping_option(
    option_id: str,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    option = await CampingOptionService.find_one(db, option_id)
    return option_response(option, await CampingOptionService.get_registration_count(db, option_id))


@router.post("/camping-options", response_model=CampingOptionResponse, status_code=status.HTTP_201_CREATED)
async def create_camping_option(
    request: CreateCampingOptionRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    values = request.model_dump(exclude={"job_category_ids"})
    option = await CampingOptionService.create(db, values, request.job_category_ids)
    return option_response(option, 0)


@router.patch("/camping-options/{option_id}", response_model=CampingOptionResponse)
async def update_camping_option(
    option_id: str,
    request: UpdateCampingOptionRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    values = request.model_dump(exclude_unset=True, exclude={"job_category_ids"})
    option = await CampingOptionService.update(db, option_id, values, request.job_category_ids)
    return option_response(option, await CampingOptionService.get_registration_count(db, option_id))


@router.delete("/camping-options/{option_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_camping_option(option_id: str, _: User = Depends(require_admin),
                                db: AsyncSession = Depends(get_db_session)):
    await CampingOptionService.remove(db, option_id)


# ============================================
# Custom fields
# ============================================

@router.get("/camping-options/{option_id}/fields", response_model=List[FieldResponse])
async def list_fields(option_id: str, _: User = Depends(get_current_user),
                      db: AsyncSession = Depends(get_db_session)):
    await CampingOptionService.find_one(db, option_id)
    return await CampingOptionFieldService.find_all(db, option_id)


@router.post("/camping-options/{option_id}/fields", response_model=FieldResponse,
             status_code=status.HTTP_201_CREATED)
async def create_field(
    option_id: str,
    request: CreateFieldRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    return await CampingOptionFieldService.create(db, option_id, request.model_dump())


@router.put("/camping-options/{option_id}/fields/order", response_model=List[FieldResponse])
async def reorder_fields(
    option_id: str,
    request: ReorderFieldsRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    return await CampingOptionFieldService.reorder(db, option_id, request.field_ids)


@router.get("/camping-options/{option_id}/fields/{field_id}", response_model=FieldResponse)
async def get_field(option_id: str, field_id: str, _: User = Depends(get_current_user),
                    db: AsyncSession = Depends(get_db_session)):
    return await CampingOptionFieldService.find_one(db, field_id)


@router.patch("/camping-options/{option_id}/fields/{field_id}", response_model=FieldResponse)
async def update_field(
    option_id: str,
    field_id: str,
    request: UpdateFieldRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    return await CampingOptionFieldService.update(db, field_id, request.model_dump(exclude_unset=True))


@router.delete("/camping-options/{option_id}/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_field(option_id: str, field_id: str, _: User = Depends(require_admin),
                       db: AsyncSession = Depends(get_db_session)):
    await CampingOptionFieldService.remove(db, field_id)
