"""
Admin Audit Service - log of administrative mutations.

Every admin edit/cancel writes one or more records sharing a
transaction_id. old_values/new_values hold JSON-safe snapshots.
"""
from typing import Optional, List
from dataclasses import dataclass
from datetime import datetime, timedelta
import math
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from app.db.models import AdminAudit, AdminAuditActionType, AdminAuditTargetType, utcnow

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    """Input for one audit record"""
    admin_user_id: str
    action_type: AdminAuditActionType
    target_record_type: AdminAuditTargetType
    target_record_id: str
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
    reason: Optional[str] = None
    transaction_id: Optional[str] = None


def admin_user_summary(record: AdminAudit) -> Optional[dict]:
    user = record.admin_user
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "first_name": user.first_name, "last_name": user.last_name}


class AdminAuditService:
    """Service for writing and querying admin audit records"""

    @staticmethod
    async def create_audit_record(db: AsyncSession, entry: AuditEntry, throw_on_error: bool = True) -> AdminAudit:
        """
        Write one audit record.

        With throw_on_error=False a failure is logged and an unsaved record
        with an empty id is returned, so auditing cannot block the caller.
        """
        record = AdminAudit(
            admin_user_id=entry.admin_user_id,
            action_type=entry.action_type,
            target_record_type=entry.target_record_type,
            target_record_id=entry.target_record_id,
            old_values=entry.old_values,
            new_values=entry.new_values,
            reason=entry.reason,
            transaction_id=entry.transaction_id,
        )
        try:
            db.add(record)
            await db.flush()
            return record
        except Exception as e:
            logger.error(f"❌ Failed to create audit record: {e}")
            if throw_on_error:
                raise
            if record in db:
                db.expunge(record)
            return AdminAudit(
                id="",
                admin_user_id=entry.admin_user_id,
                action_type=entry.action_type,
                target_record_type=entry.target_record_type,
                target_record_id=entry.target_record_id,
                reason=entry.reason,
                transaction_id=entry.transaction_id,
                created_at=utcnow(),
            )

    @staticmethod
    async def create_multiple_audit_records(db: AsyncSession, entries: List[AuditEntry],
                                            transaction_id: Optional[str] = None) -> List[AdminAudit]:
        """Write several records under one transaction id (generated when not given)."""
        transaction_id = transaction_id or str(uuid.uuid4())
        records = [
            AdminAudit(
                admin_user_id=entry.admin_user_id,
                action_type=entry.action_type,
                target_record_type=entry.target_record_type,
                target_record_id=entry.target_record_id,
                old_values=entry.old_values,
                new_values=entry.new_values,
                reason=entry.reason,
                transaction_id=transaction_id,
            )
            for entry in entries
        ]
        try:
            db.add_all(records)
            await db.flush()
        except Exception as e:
            logger.error(f"❌ Failed to create multiple audit records: {e}")
            raise
        return records

    @staticmethod
    async def get_audit_trail(db: AsyncSession, target_record_type: AdminAuditTargetType,
                              target_record_id: str) -> List[AdminAudit]:
        """Records about one target, newest first."""
        result = await db.execute(
            select(AdminAudit)
            .options(selectinload(AdminAudit.admin_user))
            .where(
                AdminAudit.target_record_type == target_record_type,
                AdminAudit.target_record_id == target_record_id,
            )
            .order_by(AdminAudit.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_audit_records_by_transaction(db: AsyncSession, transaction_id: str) -> List[AdminAudit]:
        """Records of one admin operation, in the order they were written."""
        result = await db.execute(
            select(AdminAudit)
            .options(selectinload(AdminAudit.admin_user))
            .where(AdminAudit.transaction_id == transaction_id)
            .order_by(AdminAudit.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_audit_records(
        db: AsyncSession,
        page: int = 1,
        limit: int = 50,
        admin_user_id: Optional[str] = None,
        action_type: Optional[AdminAuditActionType] = None,
        target_record_type: Optional[AdminAuditTargetType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> dict:
        conditions = []
        if admin_user_id:
            conditions.append(AdminAudit.admin_user_id == admin_user_id)
        if action_type:
            conditions.append(AdminAudit.action_type == action_type)
        if target_record_type:
            conditions.append(AdminAudit.target_record_type == target_record_type)
        if date_from:
            conditions.append(AdminAudit.created_at >= date_from)
        if date_to:
            conditions.append(AdminAudit.created_at <= date_to)

        total = (await db.execute(select(func.count(AdminAudit.id)).where(*conditions))).scalar_one()
        result = await db.execute(
            select(AdminAudit)
            .options(selectinload(AdminAudit.admin_user))
            .where(*conditions)
            .order_by(AdminAudit.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "records": list(result.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    @staticmethod
    async def get_audit_statistics(db: AsyncSession) -> dict:
        total = (await db.execute(select(func.count(AdminAudit.id)))).scalar_one()

        by_action = await db.execute(
            select(AdminAudit.action_type, func.count(AdminAudit.id)).group_by(AdminAudit.action_type)
        )
        by_target = await db.execute(
            select(AdminAudit.target_record_type, func.count(AdminAudit.id)).group_by(AdminAudit.target_record_type)
        )
        recent = await db.execute(
            select(func.count(AdminAudit.id)).where(AdminAudit.created_at >= utcnow() - timedelta(hours=24))
        )

        return {
            "total_records": total,
            "records_by_action_type": {action.value: count for action, count in by_action.all()},
            "records_by_target_type": {target.value: count for target, count in by_target.all()},
            "recent_activity_count": recent.scalar_one(),
        }
