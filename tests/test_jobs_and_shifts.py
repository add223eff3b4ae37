"""
Tests for job categories, jobs and shifts.
"""
import pytest

from app.db.models import DayOfWeek, RegistrationStatus, UserRole
from app.domain.errors import NotFoundError, ConflictError, BadRequestError
from app.services.job_service import JobService, JobCategoryService
from app.services.shift_service import ShiftService
from tests.conftest import create_user, create_job, create_registration


# ============================================
# Categories
# ============================================

@pytest.mark.asyncio
async def test_category_names_are_unique(db):
    await JobCategoryService.create(db, {"name": "Kitchen"})

    with pytest.raises(ConflictError):
        await JobCategoryService.create(db, {"name": "Kitchen"})


@pytest.mark.asyncio
async def test_rename_category_to_existing_name(db):
    await JobCategoryService.create(db, {"name": "Kitchen"})
    gate = await JobCategoryService.create(db, {"name": "Gate"})

    with pytest.raises(ConflictError):
        await JobCategoryService.update(db, gate.id, {"name": "Kitchen"})


@pytest.mark.asyncio
async def test_category_with_jobs_cannot_be_deleted(db):
    job = await create_job(db)

    with pytest.raises(BadRequestError):
        await JobCategoryService.remove(db, job.category_id)


# ============================================
# Jobs
# ============================================

class TestJobService:

    @pytest.mark.asyncio
    async def test_create_loads_category_and_shift(self, db):
        category = await JobCategoryService.create(db, {"name": "Greeters"})
        shift = await ShiftService.create(db, {
            "name": "Morning", "start_time": "08:00", "end_time": "11:00", "day_of_week": DayOfWeek.TUESDAY,
        })

        job = await JobService.create(db, {
            "name": "Gate greeter", "location": "Front gate", "category_id": category.id,
            "shift_id": shift.id, "max_registrations": 4,
        })

        assert job.category.name == "Greeters"
        assert job.shift.day_of_week == DayOfWeek.TUESDAY

    @pytest.mark.asyncio
    async def test_create_with_unknown_shift(self, db):
        category = await JobCategoryService.create(db, {"name": "Greeters"})

        with pytest.raises(NotFoundError) as exc_info:
            await JobService.create(db, {
                "name": "Gate greeter", "location": "Front gate", "category_id": category.id, "shift_id": "nope",
            })

        assert exc_info.value.message == "Shift with ID nope not found"

    @pytest.mark.asyncio
    async def test_cancelled_registrations_do_not_count(self, db):
        job = await create_job(db, max_registrations=1)
        first = await create_user(db, email="first@example.com")
        second = await create_user(db, email="second@example.com")
        await create_registration(db, first, status=RegistrationStatus.CANCELLED, jobs=[job])

        assert await JobService.count_active_registrations(db, job.id) == 0
        assert await JobService.is_full(db, job) is False

        await create_registration(db, second, jobs=[job])

        assert await JobService.is_full(db, job) is True

    @pytest.mark.asyncio
    async def test_job_with_registrations_cannot_be_deleted(self, db):
        job = await create_job(db)
        user = await create_user(db)
        await create_registration(db, user, jobs=[job])

        with pytest.raises(BadRequestError):
            await JobService.remove(db, job.id)

    @pytest.mark.asyncio
    async def test_remove(self, db):
        job = await create_job(db)

        await JobService.remove(db, job.id)

        assert await JobService.get(db, job.id) is None


# ============================================
# Shifts
# ============================================

class TestShiftService:

    @pytest.mark.asyncio
    async def test_find_all_in_event_day_order(self, db):
        for name, day, start in [
            ("Closing", DayOfWeek.CLOSING_SUNDAY, "10:00"),
            ("Monday late", DayOfWeek.MONDAY, "18:00"),
            ("Build", DayOfWeek.PRE_OPENING, "09:00"),
            ("Monday early", DayOfWeek.MONDAY, "06:00"),
        ]:
            await ShiftService.create(db, {"name": name, "start_time": start, "end_time": "23:00", "day_of_week": day})

        shifts = await ShiftService.find_all(db)

        assert [shift.name for shift in shifts] == ["Build", "Monday early", "Monday late", "Closing"]

    @pytest.mark.asyncio
    async def test_shift_with_jobs_cannot_be_deleted(self, db):
        job = await create_job(db)

        with pytest.raises(BadRequestError):
            await ShiftService.remove(db, job.shift_id)

    @pytest.mark.asyncio
    async def test_missing_shift(self, db):
        with pytest.raises(NotFoundError):
            await ShiftService.find_one(db, "missing")

    @pytest.mark.asyncio
    async def test_staffing_view_loads_registered_users(self, db):
        job = await create_job(db)
        user = await create_user(db, role=UserRole.PARTICIPANT)
        await create_registration(db, user, jobs=[job])

        shifts = await ShiftService.find_all_with_jobs_and_registrations(db)

        assert len(shifts) == 1
        [staffed_job] = shifts[0].jobs
        assert staffed_job.category is not None
        assert [rj.registration.user.email for rj in staffed_job.registrations] == [user.email]
