"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database. API tests talk to the
app through httpx's ASGI transport so requests run on the test's event loop.
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.db import connection
from app.db.models import (
    User, UserRole, JobCategory, Shift, Job, DayOfWeek, CampingOption, Registration,
    RegistrationJob, RegistrationStatus, Payment, PaymentStatus, PaymentProvider, CoreConfig,
)
from app.services.auth_service import AuthService
from app.services.email_service import email_service
from app.utils.password_hash import hash_password

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "Passw0rd!"


@pytest_asyncio.fixture(scope="function", autouse=True)
async def clean_database():
    """Initialize a fresh database before each test."""
    await connection.init_db(TEST_DATABASE_URL)
    email_service.invalidate_cache()

    yield

    await connection.close_db()


@pytest_asyncio.fixture
async def db():
    async with connection.async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client():
    from app.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============================================
# Seed helpers
# ============================================

async def create_user(db, email="participant@example.com", role=UserRole.PARTICIPANT, **values) -> User:
    values.setdefault("first_name", "Pat")
    values.setdefault("last_name", "Camper")
    values.setdefault("is_email_verified", True)
    user = User(email=email, password=hash_password(TEST_PASSWORD), role=role, **values)
    db.add(user)
    await db.flush()
    return user


async def create_job(db, name="Kitchen", max_registrations=10, category_name="Food",
                     day=DayOfWeek.MONDAY, start_time="09:00", end_time="12:00") -> Job:
    category = JobCategory(name=f"{category_name} {name}", description="Category")
    shift = Shift(name=f"{name} shift", start_time=start_time, end_time=end_time, day_of_week=day)
    db.add_all([category, shift])
    await db.flush()

    job = Job(name=name, location="Camp center", category_id=category.id, shift_id=shift.id,
              max_registrations=max_registrations)
    db.add(job)
    await db.flush()
    return job


async def create_camping_option(db, name="RV Spot", max_signups=0, **values) -> CampingOption:
    values.setdefault("participant_dues", 100.0)
    values.setdefault("staff_dues", 50.0)
    option = CampingOption(name=name, max_signups=max_signups, **values)
    db.add(option)
    await db.flush()
    return option


async def create_registration(db, user: User, year=2025, status=RegistrationStatus.PENDING,
                              jobs=()) -> Registration:
    registration = Registration(user_id=user.id, year=year, status=status)
    registration.jobs = [RegistrationJob(job_id=job.id) for job in jobs]
    db.add(registration)
    await db.flush()
    return registration


async def create_payment(db, user: User, registration: Registration = None, amount=100.0,
                         status=PaymentStatus.COMPLETED, provider=PaymentProvider.MANUAL,
                         provider_ref_id="manual") -> Payment:
    payment = Payment(
        amount=amount,
        currency="USD",
        status=status,
        provider=provider,
        provider_ref_id=provider_ref_id,
        user_id=user.id,
        registration_id=registration.id if registration else None,
    )
    db.add(payment)
    await db.flush()
    return payment


async def create_core_config(db, **values) -> CoreConfig:
    values.setdefault("camp_name", "Test Camp")
    values.setdefault("registration_year", 2025)
    values.setdefault("registration_open", True)
    config = CoreConfig(**values)
    db.add(config)
    await db.flush()
    return config


def auth_headers(user: User) -> dict:
    token, _ = AuthService.create_access_token(user)
    return {"Authorization": f"Bearer {token}"}
