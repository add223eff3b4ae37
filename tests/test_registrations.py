"""
Tests for RegistrationService: job registrations, waitlisting and camp registration.
"""
import pytest
from sqlalchemy import select

from app.db.models import (
    RegistrationStatus, FieldType, Notification, NotificationType, CampingOptionRegistration,
)
from app.domain.errors import NotFoundError, ConflictError, BadRequestError, ForbiddenError
from app.services.camping_option_service import CampingOptionFieldService
from app.services.registration_service import RegistrationService, registration_error_suggestions
from tests.conftest import (
    create_user, create_job, create_camping_option, create_registration, create_core_config,
)


class TestRegistrationService:

    @pytest.mark.asyncio
    async def test_create_pending_registration(self, db):
        user = await create_user(db)
        job = await create_job(db)

        registration = await RegistrationService.create(db, user.id, 2025, [job.id, job.id])

        assert registration.status == RegistrationStatus.PENDING
        assert [registration_job.job_id for registration_job in registration.jobs] == [job.id]
        assert registration.jobs[0].job.shift is not None

    @pytest.mark.asyncio
    async def test_full_job_waitlists(self, db):
        job = await create_job(db, max_registrations=1)
        first = await create_user(db, email="first@example.com")
        second = await create_user(db, email="second@example.com")
        await RegistrationService.create(db, first.id, 2025, [job.id])

        registration = await RegistrationService.create(db, second.id, 2025, [job.id])

        assert registration.status == RegistrationStatus.WAITLISTED

    @pytest.mark.asyncio
    async def test_one_registration_per_year(self, db):
        user = await create_user(db)
        await RegistrationService.create(db, user.id, 2025, [])

        with pytest.raises(ConflictError):
            await RegistrationService.create(db, user.id, 2025, [])

        other_year = await RegistrationService.create(db, user.id, 2026, [])
        assert other_year.year == 2026

    @pytest.mark.asyncio
    async def test_unknown_job(self, db):
        user = await create_user(db)

        with pytest.raises(NotFoundError):
            await RegistrationService.create(db, user.id, 2025, ["missing"])

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            await RegistrationService.create(db, "missing", 2025, [])

    @pytest.mark.asyncio
    async def test_add_job_to_full_shift_waitlists(self, db):
        job = await create_job(db, max_registrations=1)
        first = await create_user(db, email="first@example.com")
        second = await create_user(db, email="second@example.com")
        await create_registration(db, first, jobs=[job])
        registration = await create_registration(db, second)

        updated = await RegistrationService.add_job(db, registration.id, job.id)

        assert updated.status == RegistrationStatus.WAITLISTED
        assert [registration_job.job_id for registration_job in updated.jobs] == [job.id]

    @pytest.mark.asyncio
    async def test_add_job_twice(self, db):
        job = await create_job(db)
        user = await create_user(db)
        registration = await create_registration(db, user, jobs=[job])

        with pytest.raises(ConflictError):
            await RegistrationService.add_job(db, registration.id, job.id)

    @pytest.mark.asyncio
    async def test_remove_job(self, db):
        job = await create_job(db)
        user = await create_user(db)
        registration = await create_registration(db, user, jobs=[job])

        updated = await RegistrationService.remove_job(db, registration.id, job.id)

        assert updated.jobs == []

    @pytest.mark.asyncio
    async def test_remove_job_not_held(self, db):
        job = await create_job(db)
        user = await create_user(db)
        registration = await create_registration(db, user)

        with pytest.raises(NotFoundError) as exc_info:
            await RegistrationService.remove_job(db, registration.id, job.id)

        assert exc_info.value.message == "Job not found in this registration"

    @pytest.mark.asyncio
    async def test_find_by_job(self, db):
        job = await create_job(db)
        user = await create_user(db)
        registration = await create_registration(db, user, jobs=[job])
        await create_registration(db, await create_user(db, email="other@example.com"))

        found = await RegistrationService.find_by_job(db, job.id)

        assert [r.id for r in found] == [registration.id]

    @pytest.mark.asyncio
    async def test_cancel_own(self, db):
        user = await create_user(db)
        registration = await create_registration(db, user)

        cancelled = await RegistrationService.cancel_own(db, registration.id, user)

        assert cancelled.status == RegistrationStatus.CANCELLED
        with pytest.raises(BadRequestError):
            await RegistrationService.cancel_own(db, registration.id, user)

    @pytest.mark.asyncio
    async def test_cancel_someone_elses(self, db):
        owner = await create_user(db)
        other = await create_user(db, email="other@example.com")
        registration = await create_registration(db, owner)

        with pytest.raises(ForbiddenError):
            await RegistrationService.cancel_own(db, registration.id, other)


# ============================================
# Camp registration
# ============================================

class TestCampRegistration:

    @pytest.mark.asyncio
    async def test_full_camp_registration(self, db):
        await create_core_config(db, registration_year=2025)
        user = await create_user(db)
        job = await create_job(db)
        option = await create_camping_option(db)
        field = await CampingOptionFieldService.create(db, option.id, {
            "display_name": "Vehicle length", "data_type": FieldType.INTEGER, "required": True,
        })

        result = await RegistrationService.create_camp_registration(
            db, user.id, [option.id], {field.id: 24}, [job.id], accepted_terms=True,
        )

        assert result["year"] == 2025
        assert result["job_registration"].status == RegistrationStatus.PENDING
        [camping_registration] = result["camping_option_registrations"]
        assert camping_registration.camping_option.name == "RV Spot"
        assert [(value.field_id, value.value) for value in camping_registration.field_values] == [(field.id, "24")]

        confirmations = (await db.execute(
            select(Notification).where(Notification.type == NotificationType.REGISTRATION_CONFIRMATION)
        )).scalars().all()
        assert len(confirmations) == 1

    @pytest.mark.asyncio
    async def test_terms_must_be_accepted(self, db):
        await create_core_config(db)
        user = await create_user(db)

        with pytest.raises(BadRequestError):
            await RegistrationService.create_camp_registration(db, user.id, [], {}, [], accepted_terms=False)

        errors = (await db.execute(
            select(Notification).where(Notification.type == NotificationType.REGISTRATION_ERROR)
        )).scalars().all()
        assert len(errors) == 1
        assert errors[0].recipient == user.email

    @pytest.mark.asyncio
    async def test_closed_registration(self, db):
        await create_core_config(db, registration_open=False)
        user = await create_user(db)

        with pytest.raises(ForbiddenError):
            await RegistrationService.create_camp_registration(db, user.id, [], {}, [], accepted_terms=True)

    @pytest.mark.asyncio
    async def test_early_registration_for_allowed_users(self, db):
        await create_core_config(db, registration_open=False, early_registration_open=True)
        user = await create_user(db, allow_early_registration=True)

        result = await RegistrationService.create_camp_registration(db, user.id, [], {}, [], accepted_terms=True)

        assert result["job_registration"] is None
        assert result["camping_option_registrations"] == []

    @pytest.mark.asyncio
    async def test_user_not_allowed_to_register(self, db):
        await create_core_config(db)
        user = await create_user(db, allow_registration=False)

        with pytest.raises(ForbiddenError):
            await RegistrationService.create_camp_registration(db, user.id, [], {}, [], accepted_terms=True)

    @pytest.mark.asyncio
    async def test_required_field_missing(self, db):
        await create_core_config(db)
        user = await create_user(db)
        option = await create_camping_option(db)
        await CampingOptionFieldService.create(db, option.id, {
            "display_name": "Arrival", "data_type": FieldType.DATE, "required": True,
        })

        with pytest.raises(BadRequestError) as exc_info:
            await RegistrationService.create_camp_registration(
                db, user.id, [option.id], {}, [], accepted_terms=True,
            )

        assert exc_info.value.message == "Arrival is required"

    @pytest.mark.asyncio
    async def test_full_camping_option(self, db):
        await create_core_config(db)
        option = await create_camping_option(db, max_signups=1)
        taken_by = await create_user(db, email="early@example.com")
        db.add(CampingOptionRegistration(user_id=taken_by.id, camping_option_id=option.id))
        user = await create_user(db)

        with pytest.raises(BadRequestError) as exc_info:
            await RegistrationService.create_camp_registration(
                db, user.id, [option.id], {}, [], accepted_terms=True,
            )

        assert exc_info.value.message == "Camping option RV Spot is full"

    @pytest.mark.asyncio
    async def test_rejected_request_creates_no_job_registration(self, db):
        await create_core_config(db, registration_year=2025)
        job = await create_job(db)
        option = await create_camping_option(db, enabled=False)
        user = await create_user(db)

        with pytest.raises(BadRequestError):
            await RegistrationService.create_camp_registration(
                db, user.id, [option.id], {}, [job.id], accepted_terms=True,
            )

        assert await RegistrationService.get_by_user_and_year(db, user.id, 2025) is None

    @pytest.mark.asyncio
    async def test_disabled_camping_option(self, db):
        await create_core_config(db)
        option = await create_camping_option(db, enabled=False)
        user = await create_user(db)

        with pytest.raises(BadRequestError):
            await RegistrationService.create_camp_registration(
                db, user.id, [option.id], {}, [], accepted_terms=True,
            )

    @pytest.mark.asyncio
    async def test_already_registered_for_year(self, db):
        await create_core_config(db, registration_year=2025)
        user = await create_user(db)
        await create_registration(db, user, year=2025)

        with pytest.raises(ConflictError):
            await RegistrationService.create_camp_registration(db, user.id, [], {}, [], accepted_terms=True)

    @pytest.mark.asyncio
    async def test_my_camp_registration(self, db):
        await create_core_config(db)
        user = await create_user(db)
        option = await create_camping_option(db)
        await RegistrationService.create_camp_registration(
            db, user.id, [option.id], {}, [], accepted_terms=True,
        )

        mine = await RegistrationService.get_my_camp_registration(db, user.id)

        assert mine["has_registration"] is True
        assert [r.camping_option_id for r in mine["camping_options"]] == [option.id]
        assert mine["job_registrations"] == []


def test_error_suggestions_by_kind():
    assert "Ensure you have accepted the terms and conditions" in registration_error_suggestions(
        BadRequestError("terms"))
    assert "Try again in a few minutes" in registration_error_suggestions(RuntimeError("boom"))
