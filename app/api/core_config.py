"""
Site configuration endpoints.

/public/config is unauthenticated and never exposes secrets; /config is
the admin view.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
import logging

from app.api.auth import require_admin
from app.db.connection import get_db_session
from app.db.models import User, PaypalMode
from app.services.core_config_service import CoreConfigService
from app.services.email_service import email_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class CoreConfigFields(BaseModel):
    """Every admin-editable configuration field; all optional for updates"""
    camp_name: Optional[str] = Field(None, min_length=1, max_length=200)
    camp_description: Optional[str] = None
    home_page_blurb: Optional[str] = None
    camp_banner_url: Optional[str] = None
    camp_banner_alt_text: Optional[str] = None
    camp_icon_url: Optional[str] = None
    camp_icon_alt_text: Optional[str] = None
    registration_year: Optional[int] = Field(None, ge=2000, le=2100)
    early_registration_open: Optional[bool] = None
    registration_open: Optional[bool] = None
    registration_terms: Optional[str] = None
    allow_deferred_dues_payment: Optional[bool] = None
    stripe_enabled: Optional[bool] = None
    stripe_public_key: Optional[str] = None
    stripe_api_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    paypal_enabled: Optional[bool] = None
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_mode: Optional[PaypalMode] = None
    email_enabled: Optional[bool] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_ssl: Optional[bool] = None
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    reply_to_email: Optional[str] = None
    time_zone: Optional[str] = None


class CreateCoreConfigRequest(CoreConfigFields):
    camp_name: str = Field(..., min_length=1, max_length=200)
    registration_year: int = Field(..., ge=2000, le=2100)


class CoreConfigResponse(CoreConfigFields):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicConfigResponse(BaseModel):
    camp_name: str
    camp_description: Optional[str] = None
    home_page_blurb: Optional[str] = None
    camp_banner_url: Optional[str] = None
    camp_banner_alt_text: Optional[str] = None
    camp_icon_url: Optional[str] = None
    camp_icon_alt_text: Optional[str] = None
    registration_year: int
    early_registration_open: bool
    registration_open: bool
    registration_terms: Optional[str] = None
    allow_deferred_dues_payment: bool
    stripe_enabled: bool
    stripe_public_key: Optional[str] = None
    paypal_enabled: bool
    paypal_client_id: Optional[str] = None
    paypal_mode: Optional[str] = None
    time_zone: str


class EmailConfigurationResponse(BaseModel):
    email_enabled: bool
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_username: Optional[str] = None
    smtp_use_ssl: bool
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    reply_to_email: Optional[str] = None


# ============================================
# Endpoints
# ============================================

@router.get("/public/config", response_model=PublicConfigResponse)
async def get_public_config(db: AsyncSession = Depends(get_db_session)):
    config = await CoreConfigService.find_current(db)
    return CoreConfigService.to_public_dict(config)


@router.get("/config", response_model=CoreConfigResponse)
async def get_config(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    """Current configuration; an unsaved default when none was created yet."""
    return await CoreConfigService.find_current(db)


@router.post("/config", response_model=CoreConfigResponse, status_code=status.HTTP_201_CREATED)
async def create_config(
    request: CreateCoreConfigRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    config = await CoreConfigService.create(db, request.model_dump(exclude_none=True))
    email_service.invalidate_cache()
    return config


@router.patch("/config", response_model=CoreConfigResponse)
async def update_config(
    request: CoreConfigFields,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    config = await CoreConfigService.update(db, request.model_dump(exclude_unset=True))
    email_service.invalidate_cache()
    return config


@router.get("/config/email", response_model=EmailConfigurationResponse)
async def get_email_configuration(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    """Effective SMTP settings (database values over environment), password excluded."""
    return await CoreConfigService.get_email_configuration(db)
