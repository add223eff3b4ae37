"""
Authentication endpoints: sign-up, password and login-code sign-in,
email verification and password reset.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field, field_validator
from typing import Optional
import logging

from app.api.auth import get_current_user
from app.api.users import UserResponse
from app.db.connection import get_db_session
from app.db.models import User
from app.services.auth_service import AuthService
from app.utils.password_hash import is_strong_password

logger = logging.getLogger(__name__)

router = APIRouter()

PASSWORD_RULES = (
    "Password must be at least 8 characters and contain 1 uppercase letter, "
    "1 lowercase letter, and 1 number"
)


# ============================================
# Pydantic Models
# ============================================

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    playa_name: Optional[str] = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not is_strong_password(value):
            raise ValueError(PASSWORD_RULES)
        return value


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginCodeRequest(BaseModel):
    email: str


class LoginCodeVerifyRequest(BaseModel):
    email: str
    code: str = Field(..., min_length=6, max_length=6)


class VerifyEmailRequest(BaseModel):
    token: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not is_strong_password(value):
            raise ValueError(PASSWORD_RULES)
        return value


class AuthResponse(BaseModel):
    """Access token plus the signed-in user's basics"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    email: str
    first_name: str
    last_name: str
    role: str


class MessageResponse(BaseModel):
    message: str


# ============================================
# Endpoints
# ============================================

@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: AsyncSession = Depends(get_db_session)):
    """Create a participant account and email a verification link."""
    user = await AuthService.register(
        db, request.email, request.password, request.first_name, request.last_name, request.playa_name
    )
    logger.info(f"✅ User registered: {user.id}")
    return AuthService.build_auth_response(user)


@router.post("/auth/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db_session)):
    user = await AuthService.login(db, request.email, request.password)
    return AuthService.build_auth_response(user)


@router.post("/auth/login-code", response_model=MessageResponse)
async def request_login_code(request: LoginCodeRequest, db: AsyncSession = Depends(get_db_session)):
    """
    Email a one-time login code. The response is the same whether or not
    the address was known.
    """
    await AuthService.generate_login_code(db, request.email)
    return MessageResponse(message="If the email is valid, a login code has been sent")


@router.post("/auth/login-code/verify", response_model=AuthResponse)
async def login_with_code(request: LoginCodeVerifyRequest, db: AsyncSession = Depends(get_db_session)):
    user = await AuthService.validate_login_code(db, request.email, request.code)
    return AuthService.build_auth_response(user)


@router.post("/auth/verify-email", response_model=MessageResponse)
async def verify_email(request: VerifyEmailRequest, db: AsyncSession = Depends(get_db_session)):
    await AuthService.verify_email(db, request.token)
    return MessageResponse(message="Email verified successfully")


@router.post("/auth/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest, db: AsyncSession = Depends(get_db_session)):
    await AuthService.initiate_password_reset(db, request.email)
    return MessageResponse(message="If your email is registered, you will receive a password reset link")


@router.post("/auth/reset-password", response_model=MessageResponse)
async def reset_password(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db_session)):
    await AuthService.reset_password(db, request.token, request.new_password)
    return MessageResponse(message="Password has been reset successfully")


@router.get("/auth/profile", response_model=UserResponse)
async def profile(user: User = Depends(get_current_user)):
    return user
