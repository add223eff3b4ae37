"""
Job and job category endpoints.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import logging

from app.api.auth import get_current_user, require_admin
from app.db.connection import get_db_session
from app.db.models import User, DayOfWeek
from app.services.job_service import JobService, JobCategoryService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    staff_only: bool
    always_required: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateCategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    location: Optional[str] = None
    staff_only: bool = False
    always_required: bool = False


class UpdateCategoryRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    location: Optional[str] = None
    staff_only: Optional[bool] = None
    always_required: Optional[bool] = None


class JobShiftInfo(BaseModel):
    id: str
    name: str
    start_time: str
    end_time: str
    day_of_week: DayOfWeek

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    id: str
    name: str
    location: str
    category_id: str
    shift_id: str
    max_registrations: int
    always_required: bool
    staff_only: bool
    category: Optional[CategoryResponse] = None
    shift: Optional[JobShiftInfo] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateJobRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=200)
    category_id: str
    shift_id: str
    max_registrations: int = Field(10, ge=1)
    always_required: bool = False
    staff_only: bool = False


class UpdateJobRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    category_id: Optional[str] = None
    shift_id: Optional[str] = None
    max_registrations: Optional[int] = Field(None, ge=1)
    always_required: Optional[bool] = None
    staff_only: Optional[bool] = None


# ============================================
# Job categories
# ============================================

@router.get("/job-categories", response_model=List[CategoryResponse])
async def list_categories(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return await JobCategoryService.find_all(db)


@router.get("/job-categories/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: str, _: User = Depends(get_current_user),
                       db: AsyncSession = Depends(get_db_session)):
    return await JobCategoryService.find_one(db, category_id)


@router.post("/job-categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(request: CreateCategoryRequest, _: User = Depends(require_admin),
                          db: AsyncSession = Depends(get_db_session)):
    return await JobCategoryService.create(db, request.model_dump())


@router.patch("/job-categories/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: str, request: UpdateCategoryRequest, _: User = Depends(require_admin),
                          db: AsyncSession = Depends(get_db_session)):
    return await JobCategoryService.update(db, category_id, request.model_dump(exclude_unset=True))


@router.delete("/job-categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: str, _: User = Depends(require_admin),
                          db: AsyncSession = Depends(get_db_session)):
    await JobCategoryService.remove(db, category_id)


# ============================================
# Jobs
# ============================================

@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return await JobService.find_all(db)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, _: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return await JobService.find_one(db, job_id)


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(request: CreateJobRequest, _: User = Depends(require_admin),
                     db: AsyncSession = Depends(get_db_session)):
    return await JobService.create(db, request.model_dump())


@router.patch("/jobs/{job_id}", response_model=JobResponse)
async def update_job(job_id: str, request: UpdateJobRequest, _: User = Depends(require_admin),
                     db: AsyncSession = Depends(get_db_session)):
    return await JobService.update(db, job_id, request.model_dump(exclude_unset=True))


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(job_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    await JobService.remove(db, job_id)
