"""
Admin registration management: search, edit and cancel with audit trail.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional, List
import logging

from app.api.admin_audit import AuditRecordResponse, audit_record_response
from app.api.auth import require_admin
from app.api.registrations import RegistrationResponse, CampingOptionRegistrationResponse
from app.db.connection import get_db_session
from app.db.models import User, RegistrationStatus
from app.services.registration_admin_service import (
    RegistrationAdminService, RegistrationFilters, RegistrationEdit, RegistrationCancellation,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class EditRegistrationRequest(BaseModel):
    status: Optional[RegistrationStatus] = None
    job_ids: Optional[List[str]] = Field(None, description="Complete list of jobs the registration should hold")
    camping_option_ids: Optional[List[str]] = Field(
        None, description="Complete list of camping options the user should hold"
    )
    reason: str = Field(..., min_length=1, max_length=1000)
    send_notification: bool = False


class CancelRegistrationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    process_refund: bool = True
    send_notification: bool = False


class RefundInfoResponse(BaseModel):
    has_payments: bool
    total_amount: float
    payment_ids: List[str]
    message: str
    refunded_amount: float = 0.0
    refunded_payment_ids: List[str] = []


class RegistrationListResponse(BaseModel):
    registrations: List[RegistrationResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AdminRegistrationResponse(BaseModel):
    registration: RegistrationResponse
    transaction_id: str
    message: str
    notification_status: str
    refund_info: Optional[RefundInfoResponse] = None


# ============================================
# Endpoints
# ============================================

@router.get("/admin/registrations", response_model=RegistrationListResponse)
async def list_registrations(
    user_id: Optional[str] = None,
    year: Optional[int] = None,
    status: Optional[RegistrationStatus] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    filters = RegistrationFilters(user_id=user_id, year=year, status=status, email=email, name=name)
    return await RegistrationAdminService.get_registrations(db, filters, page, limit)


@router.put("/admin/registrations/{registration_id}", response_model=AdminRegistrationResponse)
async def edit_registration(
    registration_id: str,
    request: EditRegistrationRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    edit = RegistrationEdit(**request.model_dump())
    result = await RegistrationAdminService.edit_registration(db, registration_id, edit, admin.id)
    logger.info(f"✅ Admin {admin.id} edited registration {registration_id} ({result['transaction_id']})")
    return result


@router.delete("/admin/registrations/{registration_id}", response_model=AdminRegistrationResponse)
async def cancel_registration(
    registration_id: str,
    request: CancelRegistrationRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    cancellation = RegistrationCancellation(**request.model_dump())
    result = await RegistrationAdminService.cancel_registration(db, registration_id, cancellation, admin.id)
    logger.info(f"✅ Admin {admin.id} cancelled registration {registration_id} ({result['transaction_id']})")
    return result


@router.get("/admin/registrations/{registration_id}/audit-trail", response_model=List[AuditRecordResponse])
async def get_audit_trail(registration_id: str, _: User = Depends(require_admin),
                          db: AsyncSession = Depends(get_db_session)):
    records = await RegistrationAdminService.get_registration_audit_trail(db, registration_id)
    return [audit_record_response(record) for record in records]


@router.get("/admin/registrations/{registration_id}/camping-options",
            response_model=List[CampingOptionRegistrationResponse])
async def get_user_camping_options(registration_id: str, _: User = Depends(require_admin),
                                   db: AsyncSession = Depends(get_db_session)):
    return await RegistrationAdminService.get_user_camping_options(db, registration_id)
