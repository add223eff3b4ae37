"""
Tests for camping options, their custom fields and field value validation.
"""
import pytest

from app.db.models import CampingOptionField, FieldType, CampingOptionRegistration
from app.domain.errors import NotFoundError, BadRequestError
from app.services.camping_option_service import (
    CampingOptionService, CampingOptionFieldService, validate_field_value,
)
from tests.conftest import create_user, create_job, create_camping_option


# ============================================
# Camping options
# ============================================

class TestCampingOptionService:

    @pytest.mark.asyncio
    async def test_create_with_job_categories(self, db):
        job = await create_job(db)

        option = await CampingOptionService.create(
            db, {"name": "Tent", "participant_dues": 200.0, "staff_dues": 100.0, "max_signups": 20},
            job_category_ids=[job.category_id, job.category_id],
        )

        assert option.name == "Tent"
        assert [link.job_category_id for link in option.job_categories] == [job.category_id]

    @pytest.mark.asyncio
    async def test_create_with_unknown_category(self, db):
        with pytest.raises(NotFoundError):
            await CampingOptionService.create(db, {"name": "Tent"}, job_category_ids=["missing"])

    @pytest.mark.asyncio
    async def test_find_all_hides_disabled(self, db):
        await create_camping_option(db, name="Open")
        await create_camping_option(db, name="Closed", enabled=False)

        enabled = await CampingOptionService.find_all(db)
        everything = await CampingOptionService.find_all(db, include_disabled=True)

        assert [option.name for option in enabled] == ["Open"]
        assert [option.name for option in everything] == ["Closed", "Open"]

    @pytest.mark.asyncio
    async def test_update_replaces_categories(self, db):
        first = await create_job(db, name="Kitchen")
        second = await create_job(db, name="Gate")
        option = await CampingOptionService.create(db, {"name": "Tent"}, job_category_ids=[first.category_id])

        updated = await CampingOptionService.update(
            db, option.id, {"participant_dues": 250.0}, job_category_ids=[second.category_id],
        )

        assert updated.participant_dues == 250.0
        assert [link.job_category_id for link in updated.job_categories] == [second.category_id]

    @pytest.mark.asyncio
    async def test_registration_counts(self, db):
        user = await create_user(db)
        option = await create_camping_option(db)
        db.add(CampingOptionRegistration(user_id=user.id, camping_option_id=option.id))
        await db.flush()

        assert await CampingOptionService.get_registration_count(db, option.id) == 1
        assert await CampingOptionService.get_registration_counts(db) == {option.id: 1}

    @pytest.mark.asyncio
    async def test_remove_with_registrations(self, db):
        user = await create_user(db)
        option = await create_camping_option(db)
        db.add(CampingOptionRegistration(user_id=user.id, camping_option_id=option.id))
        await db.flush()

        with pytest.raises(BadRequestError) as exc_info:
            await CampingOptionService.remove(db, option.id)

        assert "1 registrations" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_remove_with_fields(self, db):
        option = await create_camping_option(db)
        await CampingOptionFieldService.create(db, option.id, {"display_name": "Arrival", "data_type": FieldType.DATE})

        with pytest.raises(BadRequestError) as exc_info:
            await CampingOptionService.remove(db, option.id)

        assert "Delete the fields first" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_remove(self, db):
        option = await create_camping_option(db)

        await CampingOptionService.remove(db, option.id)

        assert await CampingOptionService.get(db, option.id) is None


# ============================================
# Custom fields
# ============================================

class TestCampingOptionFieldService:

    @pytest.mark.asyncio
    async def test_fields_get_increasing_order(self, db):
        option = await create_camping_option(db)

        first = await CampingOptionFieldService.create(
            db, option.id, {"display_name": "Vehicle", "data_type": FieldType.STRING})
        second = await CampingOptionFieldService.create(
            db, option.id, {"display_name": "Length", "data_type": FieldType.INTEGER})

        assert (first.order, second.order) == (0, 1)

    @pytest.mark.asyncio
    async def test_create_for_missing_option(self, db):
        with pytest.raises(NotFoundError):
            await CampingOptionFieldService.create(
                db, "missing", {"display_name": "Vehicle", "data_type": FieldType.STRING})

    @pytest.mark.asyncio
    async def test_inconsistent_bounds(self, db):
        option = await create_camping_option(db)

        with pytest.raises(BadRequestError):
            await CampingOptionFieldService.create(db, option.id, {
                "display_name": "Length", "data_type": FieldType.NUMBER, "min_value": 10, "max_value": 1,
            })

    @pytest.mark.asyncio
    async def test_update_checks_merged_bounds(self, db):
        option = await create_camping_option(db)
        field = await CampingOptionFieldService.create(db, option.id, {
            "display_name": "Name", "data_type": FieldType.STRING, "max_length": 10,
        })

        with pytest.raises(BadRequestError):
            await CampingOptionFieldService.update(db, field.id, {"min_length": 20})

    @pytest.mark.asyncio
    async def test_reorder(self, db):
        option = await create_camping_option(db)
        first = await CampingOptionFieldService.create(
            db, option.id, {"display_name": "A", "data_type": FieldType.STRING})
        second = await CampingOptionFieldService.create(
            db, option.id, {"display_name": "B", "data_type": FieldType.STRING})

        reordered = await CampingOptionFieldService.reorder(db, option.id, [second.id, first.id])

        assert [field.id for field in reordered] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_reorder_requires_every_field(self, db):
        option = await create_camping_option(db)
        first = await CampingOptionFieldService.create(
            db, option.id, {"display_name": "A", "data_type": FieldType.STRING})
        await CampingOptionFieldService.create(db, option.id, {"display_name": "B", "data_type": FieldType.STRING})

        with pytest.raises(BadRequestError):
            await CampingOptionFieldService.reorder(db, option.id, [first.id])


# ============================================
# Field value validation
# ============================================

def make_field(data_type, **values):
    values.setdefault("display_name", "Answer")
    values.setdefault("required", False)
    return CampingOptionField(data_type=data_type, **values)


class TestValidateFieldValue:

    def test_required_missing(self):
        assert validate_field_value(make_field(FieldType.STRING, required=True), "") == "Answer is required"

    def test_optional_missing(self):
        assert validate_field_value(make_field(FieldType.INTEGER), None) is None

    def test_string_length(self):
        field = make_field(FieldType.STRING, min_length=3, max_length=5)

        assert validate_field_value(field, "ab") == "Answer must be at least 3 characters"
        assert validate_field_value(field, "abcdef") == "Answer must be at most 5 characters"
        assert validate_field_value(field, "abcd") is None

    def test_integer(self):
        field = make_field(FieldType.INTEGER, min_value=1, max_value=10)

        assert validate_field_value(field, "2.5") == "Answer must be a whole number"
        assert validate_field_value(field, 0) == "Answer must be at least 1"
        assert validate_field_value(field, 11) == "Answer must be at most 10"
        assert validate_field_value(field, "abc") == "Answer must be a number"
        assert validate_field_value(field, 5) is None

    def test_boolean(self):
        field = make_field(FieldType.BOOLEAN)

        assert validate_field_value(field, True) is None
        assert validate_field_value(field, "false") is None
        assert validate_field_value(field, "maybe") == "Answer must be true or false"

    def test_date(self):
        field = make_field(FieldType.DATE)

        assert validate_field_value(field, "2025-08-24") is None
        assert validate_field_value(field, "24/08/2025") == "Answer must be a date (YYYY-MM-DD)"
