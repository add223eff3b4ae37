"""
Tests for AdminAuditService.
"""
import pytest
from datetime import timedelta

from app.db.models import AdminAuditActionType, AdminAuditTargetType, UserRole, utcnow
from app.services.admin_audit_service import AdminAuditService, AuditEntry
from tests.conftest import create_user


def entry(admin_id, action=AdminAuditActionType.REGISTRATION_EDIT, target=AdminAuditTargetType.REGISTRATION,
          target_id="reg-1", **values):
    return AuditEntry(
        admin_user_id=admin_id,
        action_type=action,
        target_record_type=target,
        target_record_id=target_id,
        **values,
    )


@pytest.mark.asyncio
async def test_create_record_with_snapshots(db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)

    record = await AdminAuditService.create_audit_record(db, entry(
        admin.id, old_values={"status": "PENDING"}, new_values={"status": "CONFIRMED"}, reason="Paid",
    ))

    assert record.id
    assert record.old_values == {"status": "PENDING"}
    assert record.created_at is not None


@pytest.mark.asyncio
async def test_multiple_records_share_transaction(db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)

    records = await AdminAuditService.create_multiple_audit_records(db, [
        entry(admin.id),
        entry(admin.id, AdminAuditActionType.WORK_SHIFT_REMOVE, AdminAuditTargetType.WORK_SHIFT, "job-1"),
    ])

    transaction_ids = {record.transaction_id for record in records}
    assert len(transaction_ids) == 1
    [transaction_id] = transaction_ids
    assert transaction_id

    by_transaction = await AdminAuditService.get_audit_records_by_transaction(db, transaction_id)
    assert {record.target_record_id for record in by_transaction} == {"reg-1", "job-1"}


@pytest.mark.asyncio
async def test_audit_trail_for_one_target(db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)
    await AdminAuditService.create_audit_record(db, entry(admin.id, target_id="reg-1"))
    await AdminAuditService.create_audit_record(db, entry(admin.id, target_id="reg-2"))

    trail = await AdminAuditService.get_audit_trail(db, AdminAuditTargetType.REGISTRATION, "reg-1")

    assert [record.target_record_id for record in trail] == ["reg-1"]
    assert trail[0].admin_user.email == "admin@example.com"


@pytest.mark.asyncio
async def test_filtered_listing_and_pagination(db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)
    other_admin = await create_user(db, email="admin2@example.com", role=UserRole.ADMIN)
    for index in range(3):
        await AdminAuditService.create_audit_record(db, entry(admin.id, target_id=f"reg-{index}"))
    await AdminAuditService.create_audit_record(db, entry(
        other_admin.id, AdminAuditActionType.PAYMENT_REFUND, AdminAuditTargetType.PAYMENT, "pay-1",
    ))

    page = await AdminAuditService.get_all_audit_records(db, page=1, limit=2, admin_user_id=admin.id)
    refunds = await AdminAuditService.get_all_audit_records(db, action_type=AdminAuditActionType.PAYMENT_REFUND)
    future = await AdminAuditService.get_all_audit_records(db, date_from=utcnow() + timedelta(days=1))

    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert len(page["records"]) == 2
    assert [record.target_record_id for record in refunds["records"]] == ["pay-1"]
    assert future["total"] == 0


@pytest.mark.asyncio
async def test_statistics(db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)
    await AdminAuditService.create_multiple_audit_records(db, [
        entry(admin.id),
        entry(admin.id),
        entry(admin.id, AdminAuditActionType.CAMPING_OPTION_REMOVE, AdminAuditTargetType.CAMPING_OPTION, "opt-1"),
    ])

    stats = await AdminAuditService.get_audit_statistics(db)

    assert stats["total_records"] == 3
    assert stats["records_by_action_type"] == {"REGISTRATION_EDIT": 2, "CAMPING_OPTION_REMOVE": 1}
    assert stats["records_by_target_type"] == {"REGISTRATION": 2, "CAMPING_OPTION": 1}
    assert stats["recent_activity_count"] == 3
