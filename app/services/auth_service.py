"""
Auth Service - registration, password and login-code authentication.

Two sign-in paths share one token format:
- email + password (bcrypt)
- passwordless: a 6-digit code emailed to the user, valid 15 minutes

The first user to verify an email address is promoted to ADMIN so a
fresh installation can be bootstrapped without seed scripts.
"""
from typing import Optional
from datetime import datetime, timedelta, timezone
import secrets
import uuid
import logging

import jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.config import settings
from app.db.models import User, UserRole, utcnow
from app.domain.errors import ConflictError, UnauthorizedError, BadRequestError
from app.services.notification_service import NotificationService
from app.services.user_service import UserService
from app.utils.email_utils import normalize_email
from app.utils.password_hash import hash_password, verify_password, is_strong_password

logger = logging.getLogger(__name__)

LOGIN_CODE_TTL_MINUTES = 15
RESET_TOKEN_TTL_HOURS = 1
DEVELOPMENT_LOGIN_CODE = "123456"


class AuthService:
    """Service for authenticating users and issuing access tokens"""

    @staticmethod
    def create_access_token(user: User) -> tuple:
        """
        Create a JWT access token for a user.

        Returns:
            Tuple of (token, expires_in_seconds)
        """
        expires_in = settings.jwt_expiration_hours * 3600
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return token, expires_in

    @staticmethod
    def build_auth_response(user: User) -> dict:
        token, expires_in = AuthService.create_access_token(user)
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": expires_in,
            "user_id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": user.role.value,
        }

    @staticmethod
    async def _should_make_first_user_admin(db: AsyncSession) -> bool:
        try:
            return await UserService.count_verified(db) == 0
        except Exception as e:
            logger.error(f"Error checking authenticated user count: {e}")
            return False

    @staticmethod
    async def _mark_verified(db: AsyncSession, user: User) -> None:
        """Mark the email verified, promoting the very first verified user."""
        should_be_admin = await AuthService._should_make_first_user_admin(db)
        user.is_email_verified = True
        if should_be_admin:
            user.role = UserRole.ADMIN
            logger.info(f"First user to authenticate promoted to ADMIN: {user.id}")

    @staticmethod
    async def register(db: AsyncSession, email: str, password: str, first_name: str,
                       last_name: str, playa_name: Optional[str] = None) -> User:
        """
        Register a new participant and send the verification email.

        Raises:
            ConflictError: If the email is already registered
            BadRequestError: If the password is too weak
        """
        normalized_email = normalize_email(email)

        if await UserService.get_by_email(db, normalized_email):
            logger.warning(f"Registration failed: User with email {normalized_email} already exists")
            raise ConflictError("User with this email already exists")

        if not is_strong_password(password):
            raise BadRequestError(
                "Password must be at least 8 characters and contain 1 uppercase letter, "
                "1 lowercase letter, and 1 number"
            )

        verification_token = str(uuid.uuid4())
        user = User(
            email=normalized_email,
            password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            playa_name=playa_name,
            role=UserRole.PARTICIPANT,
            verification_token=verification_token,
        )
        db.add(user)
        await db.flush()
        logger.info(f"User registered: {user.id}")

        sent = await NotificationService.send_email_verification_email(
            db, normalized_email, verification_token, user.id
        )
        if not sent:
            logger.warning(f"⚠️ Failed to send verification email to {normalized_email}")

        return user

    @staticmethod
    async def validate_credentials(db: AsyncSession, email: str, password: str) -> Optional[User]:
        """
        Validate email and password.

        Returns:
            User if credentials are valid, None otherwise
        """
        user = await UserService.get_by_email(db, email)
        if not user:
            logger.warning("Login attempt failed: unknown email")
            return None

        if not verify_password(password, user.password):
            logger.warning(f"Login attempt failed: Invalid password for user {user.id}")
            return None

        logger.info(f"User authenticated successfully: {user.id}")
        return user

    @staticmethod
    async def login(db: AsyncSession, email: str, password: str) -> User:
        user = await AuthService.validate_credentials(db, email, password)
        if not user:
            raise UnauthorizedError("Invalid email or password")
        return user

    @staticmethod
    async def generate_login_code(db: AsyncSession, email: str) -> bool:
        """
        Create and email a login code. Unknown emails get a pending user
        record so login and sign-up share one flow.
        """
        normalized_email = normalize_email(email)

        if settings.is_development:
            login_code = DEVELOPMENT_LOGIN_CODE
            logger.info(f"Development mode: Using fixed login code for {normalized_email}")
        else:
            login_code = f"{secrets.randbelow(900000) + 100000}"

        expiry = utcnow() + timedelta(minutes=LOGIN_CODE_TTL_MINUTES)

        user = await UserService.get_by_email(db, normalized_email)
        if user:
            user.login_code = login_code
            user.login_code_expiry = expiry
        else:
            user = User(
                email=normalized_email,
                login_code=login_code,
                login_code_expiry=expiry,
                role=UserRole.PARTICIPANT,
                first_name="",
                last_name="",
                is_email_verified=False,
            )
            db.add(user)
            logger.info(f"Created new user with email: {normalized_email} (pending verification)")
        await db.flush()

        sent = await NotificationService.send_login_code_email(db, normalized_email, login_code, user.id)
        if not sent:
            logger.warning(f"⚠️ Failed to send login code email to {normalized_email}")
        return True

    @staticmethod
    async def validate_login_code(db: AsyncSession, email: str, code: str) -> User:
        """
        Exchange a login code for a verified user.

        Raises:
            UnauthorizedError: If the code is wrong or expired
        """
        result = await db.execute(
            select(User).where(
                User.email == normalize_email(email),
                User.login_code == code,
                User.login_code_expiry > utcnow(),
            )
        )
        user = result.scalar_one_or_none()
        if not user:
            raise UnauthorizedError("Invalid or expired login code")

        user.login_code = None
        user.login_code_expiry = None
        await AuthService._mark_verified(db, user)
        await db.flush()
        return user

    @staticmethod
    async def verify_email(db: AsyncSession, token: str) -> User:
        """
        Raises:
            UnauthorizedError: If no user holds the verification token
        """
        result = await db.execute(select(User).where(User.verification_token == token))
        user = result.scalar_one_or_none()
        if not token or not user:
            raise UnauthorizedError("Invalid or expired verification token")

        user.verification_token = None
        await AuthService._mark_verified(db, user)
        await db.flush()
        return user

    @staticmethod
    async def initiate_password_reset(db: AsyncSession, email: str) -> None:
        """Issue a reset token when the user exists; silent otherwise."""
        user = await UserService.get_by_email(db, email)
        if not user:
            logger.info("Password reset requested for unknown email")
            return

        user.reset_token = secrets.token_urlsafe(32)
        user.reset_token_expiry = utcnow() + timedelta(hours=RESET_TOKEN_TTL_HOURS)
        await db.flush()

        await NotificationService.send_password_reset_email(db, user.email, user.reset_token, user.id)

    @staticmethod
    async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
        """
        Raises:
            UnauthorizedError: If the token is unknown or expired
            BadRequestError: If the new password is too weak
        """
        result = await db.execute(
            select(User).where(User.reset_token == token, User.reset_token_expiry > utcnow())
        )
        user = result.scalar_one_or_none()
        if not token or not user:
            raise UnauthorizedError("Invalid or expired reset token")

        if not is_strong_password(new_password):
            raise BadRequestError(
                "Password must be at least 8 characters and contain 1 uppercase letter, "
                "1 lowercase letter, and 1 number"
            )

        user.password = hash_password(new_password)
        user.reset_token = None
        user.reset_token_expiry = None
        await db.flush()
        logger.info(f"Password reset for user: {user.id}")
        return user
