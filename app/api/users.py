"""
User management endpoints and staff notes.

Admins manage every account; other users may read and update their own
profile but not their role or registration permissions.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import logging

from app.api.auth import get_current_user, require_admin, require_staff, ensure_self_or_roles
from app.db.connection import get_db_session
from app.db.models import User, UserRole
from app.services.user_service import UserService, UserNoteService

logger = logging.getLogger(__name__)

router = APIRouter()

# Only admins may change these through PATCH /users/{id}
ADMIN_ONLY_FIELDS = (
    "role", "allow_registration", "allow_early_registration",
    "allow_deferred_dues_payment", "allow_no_job",
)


# ============================================
# Pydantic Models
# ============================================

class UserResponse(BaseModel):
    """User profile (credentials and tokens excluded)"""
    id: str
    email: str
    first_name: str
    last_name: str
    playa_name: Optional[str] = None
    profile_picture: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    emergency_contact: Optional[str] = None
    role: UserRole
    is_email_verified: bool
    allow_registration: bool
    allow_early_registration: bool
    allow_deferred_dues_payment: bool
    allow_no_job: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    playa_name: Optional[str] = None
    role: UserRole

    class Config:
        from_attributes = True


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: Optional[str] = Field(None, min_length=8)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    playa_name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    emergency_contact: Optional[str] = None
    role: UserRole = UserRole.PARTICIPANT
    allow_registration: bool = True
    allow_early_registration: bool = False
    allow_deferred_dues_payment: bool = False
    allow_no_job: bool = False


class UpdateUserRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    playa_name: Optional[str] = None
    profile_picture: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    emergency_contact: Optional[str] = None
    role: Optional[UserRole] = None
    allow_registration: Optional[bool] = None
    allow_early_registration: Optional[bool] = None
    allow_deferred_dues_payment: Optional[bool] = None
    allow_no_job: Optional[bool] = None


class NoteResponse(BaseModel):
    id: str
    user_id: str
    note: str
    created_by_id: str
    created_by: Optional[UserSummary] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreateNoteRequest(BaseModel):
    note: str = Field(..., min_length=1)


# ============================================
# Users
# ============================================

@router.get("/users", response_model=List[UserResponse])
async def list_users(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    return await UserService.find_all(db)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    user = await UserService.create(db, request.model_dump())
    logger.info(f"✅ Admin {admin.id} created user {user.id}")
    return user


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.STAFF)
    return await UserService.find_one(db, user_id)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN)

    values = request.model_dump(exclude_unset=True)
    if current_user.role != UserRole.ADMIN:
        restricted = [key for key in ADMIN_ONLY_FIELDS if key in values]
        if restricted:
            logger.warning(f"Permission denied: user {current_user.id} tried to change {', '.join(restricted)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only admins can change: {', '.join(restricted)}"
            )

    return await UserService.update(db, user_id, values)


@router.delete("/users/{user_id}", response_model=UserResponse)
async def delete_user(user_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    return await UserService.delete(db, user_id)


# ============================================
# Notes (ADMIN/STAFF)
# ============================================

@router.get("/users/{user_id}/notes", response_model=List[NoteResponse])
async def list_notes(user_id: str, _: User = Depends(require_staff), db: AsyncSession = Depends(get_db_session)):
    return await UserNoteService.find_all_by_user_id(db, user_id)


@router.post("/users/{user_id}/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    user_id: str,
    request: CreateNoteRequest,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    note = await UserNoteService.create(db, user_id, request.note, current_user.id)
    # Reload through the listing query so created_by is populated
    notes = await UserNoteService.find_all_by_user_id(db, user_id)
    return next(n for n in notes if n.id == note.id)


@router.delete("/users/notes/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: str,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    await UserNoteService.delete(db, note_id, current_user)
