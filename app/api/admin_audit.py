"""
Admin audit log endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any
import logging

from app.api.auth import require_admin
from app.db.connection import get_db_session
from app.db.models import User, AdminAudit, AdminAuditActionType, AdminAuditTargetType
from app.services.admin_audit_service import AdminAuditService, admin_user_summary

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class AuditAdminUser(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str


class AuditRecordResponse(BaseModel):
    id: str
    admin_user_id: str
    action_type: AdminAuditActionType
    target_record_type: AdminAuditTargetType
    target_record_id: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    admin_user: Optional[AuditAdminUser] = None


class AuditRecordListResponse(BaseModel):
    records: List[AuditRecordResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AuditStatisticsResponse(BaseModel):
    total_records: int
    records_by_action_type: Dict[str, int]
    records_by_target_type: Dict[str, int]
    recent_activity_count: int


def audit_record_response(record: AdminAudit) -> AuditRecordResponse:
    return AuditRecordResponse(
        id=record.id,
        admin_user_id=record.admin_user_id,
        action_type=record.action_type,
        target_record_type=record.target_record_type,
        target_record_id=record.target_record_id,
        old_values=record.old_values,
        new_values=record.new_values,
        reason=record.reason,
        transaction_id=record.transaction_id,
        created_at=record.created_at,
        admin_user=admin_user_summary(record),
    )


# ============================================
# Endpoints
# ============================================

@router.get("/admin/audit", response_model=AuditRecordListResponse)
async def list_audit_records(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    admin_user_id: Optional[str] = None,
    action_type: Optional[AdminAuditActionType] = None,
    target_record_type: Optional[AdminAuditTargetType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    result = await AdminAuditService.get_all_audit_records(
        db, page, limit, admin_user_id, action_type, target_record_type, date_from, date_to,
    )
    result["records"] = [audit_record_response(record) for record in result["records"]]
    return result


@router.get("/admin/audit/statistics", response_model=AuditStatisticsResponse)
async def get_statistics(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    return await AdminAuditService.get_audit_statistics(db)


@router.get("/admin/audit/transaction/{transaction_id}", response_model=List[AuditRecordResponse])
async def get_transaction(transaction_id: str, _: User = Depends(require_admin),
                          db: AsyncSession = Depends(get_db_session)):
    """All records written by one admin operation, oldest first."""
    records = await AdminAuditService.get_audit_records_by_transaction(db, transaction_id)
    return [audit_record_response(record) for record in records]


@router.get("/admin/audit/{target_record_type}/{target_record_id}", response_model=List[AuditRecordResponse])
async def get_audit_trail(target_record_type: AdminAuditTargetType, target_record_id: str,
                          _: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    records = await AdminAuditService.get_audit_trail(db, target_record_type, target_record_id)
    return [audit_record_response(record) for record in records]
