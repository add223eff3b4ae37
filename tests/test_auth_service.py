"""
Tests for registration, password login, login codes and password reset.
"""
import pytest
import jwt
from datetime import timedelta

from app.config import settings
from app.db.models import UserRole, NotificationType, EmailAudit, EmailAuditStatus, utcnow
from app.domain.errors import ConflictError, UnauthorizedError, BadRequestError
from app.services.auth_service import AuthService, DEVELOPMENT_LOGIN_CODE
from app.services.user_service import UserService
from app.utils.password_hash import verify_password
from sqlalchemy import select
from tests.conftest import create_user, TEST_PASSWORD


# ============================================
# Tokens
# ============================================

@pytest.mark.asyncio
async def test_access_token_claims(db):
    user = await create_user(db, role=UserRole.STAFF)

    token, expires_in = AuthService.create_access_token(user)
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    assert payload["sub"] == user.id
    assert payload["role"] == "STAFF"
    assert payload["type"] == "access"
    assert expires_in == settings.jwt_expiration_hours * 3600


@pytest.mark.asyncio
async def test_auth_response_contains_user_basics(db):
    user = await create_user(db)

    response = AuthService.build_auth_response(user)

    assert response["token_type"] == "bearer"
    assert response["user_id"] == user.id
    assert response["email"] == "participant@example.com"
    assert response["role"] == "PARTICIPANT"


# ============================================
# Registration and password login
# ============================================

class TestRegister:

    @pytest.mark.asyncio
    async def test_register_normalizes_email_and_hashes_password(self, db):
        user = await AuthService.register(db, "  New.User@Example.COM ", "Secret123", "New", "User")

        assert user.email == "new.user@example.com"
        assert user.password != "Secret123"
        assert verify_password("Secret123", user.password)
        assert user.role == UserRole.PARTICIPANT
        assert user.verification_token

    @pytest.mark.asyncio
    async def test_register_records_verification_email(self, db):
        await AuthService.register(db, "new@example.com", "Secret123", "New", "User")

        audits = (await db.execute(select(EmailAudit))).scalars().all()
        assert len(audits) == 1
        assert audits[0].notification_type == NotificationType.EMAIL_VERIFICATION
        # Email is disabled until configured
        assert audits[0].status == EmailAuditStatus.DISABLED

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, db):
        await create_user(db, email="taken@example.com")

        with pytest.raises(ConflictError):
            await AuthService.register(db, "TAKEN@example.com", "Secret123", "Dup", "User")

    @pytest.mark.asyncio
    async def test_register_weak_password(self, db):
        with pytest.raises(BadRequestError):
            await AuthService.register(db, "weak@example.com", "password", "Weak", "User")


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success(self, db):
        user = await create_user(db)

        logged_in = await AuthService.login(db, "Participant@Example.com", TEST_PASSWORD)

        assert logged_in.id == user.id

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, db):
        await create_user(db)

        with pytest.raises(UnauthorizedError) as exc_info:
            await AuthService.login(db, "participant@example.com", "Wrong123")

        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_unknown_email(self, db):
        with pytest.raises(UnauthorizedError):
            await AuthService.login(db, "nobody@example.com", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_login_code_only_account_cannot_use_password(self, db):
        await AuthService.generate_login_code(db, "codeonly@example.com")

        with pytest.raises(UnauthorizedError):
            await AuthService.login(db, "codeonly@example.com", TEST_PASSWORD)


# ============================================
# Login codes
# ============================================

class TestLoginCode:

    @pytest.mark.asyncio
    async def test_unknown_email_creates_pending_user(self, db):
        assert await AuthService.generate_login_code(db, "Fresh@Example.com") is True

        user = await UserService.get_by_email(db, "fresh@example.com")
        assert user is not None
        assert user.is_email_verified is False
        assert user.login_code == DEVELOPMENT_LOGIN_CODE
        assert user.login_code_expiry > utcnow()

    @pytest.mark.asyncio
    async def test_first_verified_user_becomes_admin(self, db):
        await AuthService.generate_login_code(db, "first@example.com")

        user = await AuthService.validate_login_code(db, "first@example.com", DEVELOPMENT_LOGIN_CODE)

        assert user.is_email_verified is True
        assert user.role == UserRole.ADMIN
        assert user.login_code is None
        assert user.login_code_expiry is None

    @pytest.mark.asyncio
    async def test_later_users_stay_participants(self, db):
        await create_user(db, email="existing@example.com", is_email_verified=True)
        await AuthService.generate_login_code(db, "second@example.com")

        user = await AuthService.validate_login_code(db, "second@example.com", DEVELOPMENT_LOGIN_CODE)

        assert user.role == UserRole.PARTICIPANT

    @pytest.mark.asyncio
    async def test_wrong_code_rejected(self, db):
        await AuthService.generate_login_code(db, "someone@example.com")

        with pytest.raises(UnauthorizedError):
            await AuthService.validate_login_code(db, "someone@example.com", "000000")

    @pytest.mark.asyncio
    async def test_expired_code_rejected(self, db):
        await AuthService.generate_login_code(db, "late@example.com")
        user = await UserService.get_by_email(db, "late@example.com")
        user.login_code_expiry = utcnow() - timedelta(minutes=1)
        await db.flush()

        with pytest.raises(UnauthorizedError):
            await AuthService.validate_login_code(db, "late@example.com", DEVELOPMENT_LOGIN_CODE)


# ============================================
# Email verification and password reset
# ============================================

@pytest.mark.asyncio
async def test_verify_email_clears_token(db):
    await create_user(db, email="admin@example.com", is_email_verified=True)
    user = await AuthService.register(db, "verify@example.com", "Secret123", "Ver", "Ify")
    token = user.verification_token

    verified = await AuthService.verify_email(db, token)

    assert verified.is_email_verified is True
    assert verified.verification_token is None
    assert verified.role == UserRole.PARTICIPANT


@pytest.mark.asyncio
async def test_verify_email_unknown_token(db):
    with pytest.raises(UnauthorizedError):
        await AuthService.verify_email(db, "not-a-token")


@pytest.mark.asyncio
async def test_password_reset_flow(db):
    user = await create_user(db)

    await AuthService.initiate_password_reset(db, user.email)
    assert user.reset_token

    await AuthService.reset_password(db, user.reset_token, "NewSecret9")

    assert user.reset_token is None
    assert verify_password("NewSecret9", user.password)


@pytest.mark.asyncio
async def test_password_reset_unknown_email_is_silent(db):
    await AuthService.initiate_password_reset(db, "ghost@example.com")


@pytest.mark.asyncio
async def test_password_reset_expired_token(db):
    user = await create_user(db)
    await AuthService.initiate_password_reset(db, user.email)
    user.reset_token_expiry = utcnow() - timedelta(minutes=1)
    await db.flush()

    with pytest.raises(UnauthorizedError):
        await AuthService.reset_password(db, user.reset_token, "NewSecret9")


@pytest.mark.asyncio
async def test_password_reset_weak_password(db):
    user = await create_user(db)
    await AuthService.initiate_password_reset(db, user.email)

    with pytest.raises(BadRequestError):
        await AuthService.reset_password(db, user.reset_token, "short")
