"""
Payment endpoints: records, Stripe/PayPal checkout, refunds and webhooks.

Webhooks are unauthenticated; Stripe events are verified by signature.
"""
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Any, Dict
import logging

from app.api.auth import get_current_user, require_admin, ensure_self_or_roles
from app.api.users import UserSummary
from app.db.connection import get_db_session
from app.db.models import User, UserRole, PaymentStatus, PaymentProvider
from app.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Pydantic Models
# ============================================

class PaymentResponse(BaseModel):
    id: str
    amount: float
    currency: str
    status: PaymentStatus
    provider: PaymentProvider
    provider_ref_id: Optional[str] = None
    notes: Optional[str] = None
    user_id: str
    registration_id: Optional[str] = None
    user: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class CreatePaymentRequest(BaseModel):
    amount: float = Field(..., ge=0.01)
    currency: str = Field("USD", min_length=3, max_length=3)
    provider: PaymentProvider
    provider_ref_id: Optional[str] = None
    user_id: str
    registration_id: Optional[str] = None


class UpdatePaymentRequest(BaseModel):
    amount: Optional[float] = Field(None, ge=0.01)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[PaymentStatus] = None
    provider_ref_id: Optional[str] = None
    notes: Optional[str] = None
    registration_id: Optional[str] = None


class ManualPaymentRequest(BaseModel):
    amount: float = Field(..., ge=0.01)
    currency: str = Field("USD", min_length=3, max_length=3)
    user_id: str
    registration_id: Optional[str] = None
    payment_reference: Optional[str] = Field(None, description="Check number, receipt id, ...")
    status: PaymentStatus = PaymentStatus.COMPLETED


class StripePaymentRequest(BaseModel):
    amount: int = Field(..., ge=50, description="Amount in cents")
    currency: str = Field("usd", min_length=3, max_length=3)
    user_id: Optional[str] = None
    registration_id: Optional[str] = None
    description: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class StripePaymentResponse(BaseModel):
    payment_id: str
    url: str


class PaypalPaymentRequest(BaseModel):
    amount: float = Field(..., ge=0.01)
    currency: str = Field("USD", min_length=3, max_length=3)
    user_id: Optional[str] = None
    registration_id: Optional[str] = None
    item_description: str = "Camp Registration Fee"
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PaypalPaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    approval_url: str


class RefundRequest(BaseModel):
    payment_id: str
    amount: Optional[float] = Field(None, ge=0.01)
    percentage_of_original: Optional[float] = Field(None, gt=0, le=100)
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    payment_id: str
    refund_amount: float
    provider_refund_id: Optional[str] = None
    success: bool


class StripeSessionStatusResponse(BaseModel):
    session_id: str
    payment_status: str
    payment_id: str
    registration_id: Optional[str] = None
    registration_status: Optional[str] = None


class WebhookResponse(BaseModel):
    received: bool
    type: str


async def _get_visible_payment(db: AsyncSession, payment_id: str, current_user: User):
    payment = await PaymentService.find_one(db, payment_id)
    ensure_self_or_roles(current_user, payment.user_id, UserRole.ADMIN, UserRole.STAFF)
    return payment


# ============================================
# Records
# ============================================

@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(request: CreatePaymentRequest, _: User = Depends(require_admin),
                         db: AsyncSession = Depends(get_db_session)):
    payment = await PaymentService.create(db, request.model_dump())
    return await PaymentService.find_one(db, payment.id)


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    skip: int = Query(0, ge=0),
    take: int = Query(10, ge=1, le=500),
    user_id: Optional[str] = None,
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Participants always get only their own payments."""
    if current_user.role not in (UserRole.ADMIN, UserRole.STAFF):
        if user_id and user_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail="You can only access your own records")
        user_id = current_user.id
    return await PaymentService.find_all(db, skip, take, user_id, payment_status)


@router.post("/payments/manual", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_manual_payment(request: ManualPaymentRequest, _: User = Depends(require_admin),
                                db: AsyncSession = Depends(get_db_session)):
    return await PaymentService.record_manual_payment(
        db,
        user_id=request.user_id,
        amount=request.amount,
        currency=request.currency,
        registration_id=request.registration_id,
        reference=request.payment_reference,
        status=request.status,
    )


# ============================================
# Stripe
# ============================================

@router.post("/payments/stripe", response_model=StripePaymentResponse, status_code=status.HTTP_201_CREATED)
async def initiate_stripe_payment(request: StripePaymentRequest, current_user: User = Depends(get_current_user),
                                  db: AsyncSession = Depends(get_db_session)):
    user_id = request.user_id or current_user.id
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN)
    return await PaymentService.initiate_stripe_payment(
        db,
        user_id=user_id,
        amount_cents=request.amount,
        currency=request.currency,
        description=request.description,
        registration_id=request.registration_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )


@router.get("/payments/stripe/session/{session_id}", response_model=StripeSessionStatusResponse)
async def verify_stripe_session(session_id: str, current_user: User = Depends(get_current_user),
                                db: AsyncSession = Depends(get_db_session)):
    """Reconcile a checkout session after the buyer returns from Stripe."""
    payment = await PaymentService.find_by_provider_ref(db, session_id)
    if payment:
        ensure_self_or_roles(current_user, payment.user_id, UserRole.ADMIN, UserRole.STAFF)
    return await PaymentService.verify_stripe_session(db, session_id)


@router.post("/payments/webhook/stripe", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db_session)
):
    if not stripe_signature:
        logger.warning("Stripe webhook rejected: Missing signature header")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe signature header")

    payload = await request.body()
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing raw body")

    return await PaymentService.handle_stripe_webhook(db, payload, stripe_signature)


# ============================================
# PayPal
# ============================================

@router.post("/payments/paypal", response_model=PaypalPaymentResponse, status_code=status.HTTP_201_CREATED)
async def initiate_paypal_payment(request: PaypalPaymentRequest, current_user: User = Depends(get_current_user),
                                  db: AsyncSession = Depends(get_db_session)):
    user_id = request.user_id or current_user.id
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN)
    return await PaymentService.initiate_paypal_payment(
        db,
        user_id=user_id,
        amount=request.amount,
        currency=request.currency,
        item_description=request.item_description,
        registration_id=request.registration_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )


@router.post("/payments/paypal/capture/{order_id}", response_model=PaymentResponse)
async def capture_paypal_payment(order_id: str, current_user: User = Depends(get_current_user),
                                 db: AsyncSession = Depends(get_db_session)):
    payment = await PaymentService.find_by_provider_ref(db, order_id)
    if payment:
        ensure_self_or_roles(current_user, payment.user_id, UserRole.ADMIN)
    return await PaymentService.capture_paypal_payment(db, order_id)


@router.post("/payments/webhook/paypal", response_model=WebhookResponse)
async def handle_paypal_webhook(payload: Dict[str, Any], db: AsyncSession = Depends(get_db_session)):
    return await PaymentService.handle_paypal_webhook(db, payload)


# ============================================
# Refunds and linking (ADMIN)
# ============================================

@router.post("/payments/refund", response_model=RefundResponse)
async def process_refund(request: RefundRequest, admin: User = Depends(require_admin),
                         db: AsyncSession = Depends(get_db_session)):
    result = await PaymentService.process_refund(
        db, request.payment_id, request.amount, request.percentage_of_original, request.reason,
    )
    logger.info(f"✅ Admin {admin.id} refunded payment {request.payment_id}")
    return result


@router.post("/payments/link/{payment_id}/registration/{registration_id}", response_model=PaymentResponse)
async def link_to_registration(payment_id: str, registration_id: str, _: User = Depends(require_admin),
                               db: AsyncSession = Depends(get_db_session)):
    return await PaymentService.link_to_registration(db, payment_id, registration_id)


# ============================================
# Single payment
# ============================================

@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str, current_user: User = Depends(get_current_user),
                      db: AsyncSession = Depends(get_db_session)):
    return await _get_visible_payment(db, payment_id, current_user)


@router.put("/payments/{payment_id}", response_model=PaymentResponse)
async def update_payment(payment_id: str, request: UpdatePaymentRequest, _: User = Depends(require_admin),
                         db: AsyncSession = Depends(get_db_session)):
    await PaymentService.update(db, payment_id, request.model_dump(exclude_unset=True))
    return await PaymentService.find_one(db, payment_id)
