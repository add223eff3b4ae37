"""
Payment Service - payment records and the Stripe/PayPal flows around them.

Flow for online payments:
1. initiate_* creates the provider checkout/order and a PENDING payment
   whose provider_ref_id is the session/order id
2. The provider reports completion (webhook, session verification or
   PayPal capture); the payment becomes COMPLETED and its registration
   CONFIRMED
3. process_refund calls the provider refund API and marks it REFUNDED

Provider clients are built per call from the site configuration through
get_stripe_client / open_paypal_client.
"""
from typing import Optional, AsyncIterator
from contextlib import asynccontextmanager
import logging
import time

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from app.clients.paypal_client import PaypalClient, extract_approval_url, extract_capture_id
from app.clients.stripe_client import StripeClient, MINIMUM_AMOUNT_CENTS
from app.config import settings
from app.db.models import (
    Payment, PaymentStatus, PaymentProvider, Registration, RegistrationStatus, utcnow,
)
from app.domain.errors import NotFoundError, BadRequestError, DomainError
from app.services.core_config_service import CoreConfigService
from app.services.notification_service import NotificationService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

PAYMENT_LOAD = (selectinload(Payment.user), selectinload(Payment.registration))


async def get_stripe_client(db: AsyncSession) -> StripeClient:
    credentials = await CoreConfigService.get_stripe_credentials(db)
    return StripeClient(credentials["api_key"], credentials["webhook_secret"])


@asynccontextmanager
async def open_paypal_client(db: AsyncSession) -> AsyncIterator[PaypalClient]:
    credentials = await CoreConfigService.get_paypal_credentials(db)
    camp_name = await CoreConfigService.get_camp_name(db)
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
        yield PaypalClient(
            http_client,
            credentials["client_id"],
            credentials["client_secret"],
            credentials["mode"],
            brand_name=camp_name,
        )


class PaymentService:
    """Service for payments and provider integrations"""

    # ============================================
    # Records
    # ============================================

    @staticmethod
    async def _validate_payer(db: AsyncSession, user_id: str, registration_id: Optional[str]) -> None:
        await UserService.find_one(db, user_id)

        if registration_id:
            registration = await db.get(Registration, registration_id)
            if not registration:
                raise NotFoundError(f"Registration with ID {registration_id} not found")
            if registration.user_id != user_id:
                raise BadRequestError("Registration does not belong to the specified user")

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> Payment:
        """
        Create a PENDING payment.

        Raises:
            NotFoundError: If the user or registration doesn't exist
            BadRequestError: If the registration belongs to another user
        """
        user_id = values["user_id"]
        registration_id = values.get("registration_id")
        logger.info(f"Creating payment record for user {user_id}")

        await PaymentService._validate_payer(db, user_id, registration_id)

        payment = Payment(
            amount=values["amount"],
            currency=(values.get("currency") or "USD").upper(),
            status=PaymentStatus.PENDING,
            provider=values["provider"],
            provider_ref_id=values.get("provider_ref_id"),
            user_id=user_id,
            registration_id=registration_id,
        )
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def find_all(db: AsyncSession, skip: int = 0, take: int = 10, user_id: Optional[str] = None,
                       status: Optional[PaymentStatus] = None) -> dict:
        conditions = []
        if user_id:
            conditions.append(Payment.user_id == user_id)
        if status:
            conditions.append(Payment.status == status)

        total = (await db.execute(select(func.count(Payment.id)).where(*conditions))).scalar_one()
        result = await db.execute(
            select(Payment)
            .options(*PAYMENT_LOAD)
            .where(*conditions)
            .order_by(Payment.created_at.desc())
            .offset(skip)
            .limit(take)
        )
        return {"payments": list(result.scalars().all()), "total": total}

    @staticmethod
    async def find_one(db: AsyncSession, payment_id: str) -> Payment:
        result = await db.execute(
            select(Payment).options(*PAYMENT_LOAD).where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(f"Payment with ID {payment_id} not found")
        return payment

    @staticmethod
    async def find_by_provider_ref(db: AsyncSession, provider_ref_id: str) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).options(*PAYMENT_LOAD).where(Payment.provider_ref_id == provider_ref_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def update(db: AsyncSession, payment_id: str, values: dict) -> Payment:
        payment = await PaymentService.find_one(db, payment_id)
        for key, value in values.items():
            setattr(payment, key, value)
        payment.updated_at = utcnow()
        await db.flush()
        return payment

    @staticmethod
    async def link_to_registration(db: AsyncSession, payment_id: str, registration_id: str) -> Payment:
        """
        Raises:
            NotFoundError: If the payment or registration doesn't exist
            BadRequestError: If they belong to different users or are already linked
        """
        payment = await PaymentService.find_one(db, payment_id)

        registration = await db.get(Registration, registration_id)
        if not registration:
            raise NotFoundError(f"Registration with ID {registration_id} not found")

        if registration.user_id != payment.user_id:
            raise BadRequestError("Registration does not belong to the same user as the payment")

        if payment.registration_id == registration_id:
            raise BadRequestError(f"Payment is already linked to registration {registration_id}")

        payment.registration_id = registration_id
        await db.flush()
        logger.info(f"Linked payment {payment_id} to registration {registration_id}")
        return await PaymentService.find_one(db, payment_id)

    @staticmethod
    async def record_manual_payment(db: AsyncSession, user_id: str, amount: float, currency: str = "USD",
                                    registration_id: Optional[str] = None, reference: Optional[str] = None,
                                    status: PaymentStatus = PaymentStatus.COMPLETED) -> Payment:
        """Record cash/check payments entered by an admin."""
        payment = await PaymentService.create(db, {
            "amount": amount,
            "currency": currency,
            "provider": PaymentProvider.MANUAL,
            "user_id": user_id,
            "registration_id": registration_id,
            "provider_ref_id": f"manual:{reference}" if reference else "manual",
        })
        if reference:
            payment.notes = reference

        if status == PaymentStatus.COMPLETED:
            await PaymentService._complete_payment(db, payment)
        else:
            payment.status = status
            await db.flush()

        logger.info(f"✅ Recorded manual payment {payment.id} for user {user_id}: {amount:.2f} {payment.currency}")
        return await PaymentService.find_one(db, payment.id)

    # ============================================
    # Completion
    # ============================================

    @staticmethod
    async def _complete_payment(db: AsyncSession, payment: Payment) -> Optional[Registration]:
        """
        Mark a payment COMPLETED, confirm its registration and send the
        payment confirmation email (failures logged only).
        """
        payment.status = PaymentStatus.COMPLETED
        payment.updated_at = utcnow()

        registration = None
        if payment.registration_id:
            registration = await db.get(Registration, payment.registration_id)
            if registration and registration.status != RegistrationStatus.CANCELLED:
                registration.status = RegistrationStatus.CONFIRMED
                logger.info(f"Registration {registration.id} confirmed by payment {payment.id}")
        await db.flush()

        try:
            user = await UserService.get_by_id(db, payment.user_id)
            if user:
                sent = await NotificationService.send_payment_confirmation_email(
                    db,
                    user.email,
                    {
                        "id": payment.id,
                        "amount": payment.amount,
                        "currency": payment.currency,
                        "date": utcnow().date().isoformat(),
                    },
                    user.id,
                )
                if not sent:
                    logger.warning(f"⚠️ Failed to send payment confirmation email to {user.email}")
        except Exception as e:
            logger.error(f"❌ Error sending payment confirmation email for payment {payment.id}: {e}")

        return registration

    # ============================================
    # Stripe
    # ============================================

    @staticmethod
    async def initiate_stripe_payment(
        db: AsyncSession,
        user_id: str,
        amount_cents: int,
        currency: str = "usd",
        description: Optional[str] = None,
        registration_id: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> dict:
        """
        Start a Stripe checkout.

        Returns:
            {"payment_id", "url"}
        """
        if amount_cents < MINIMUM_AMOUNT_CENTS:
            raise BadRequestError(f"Amount must be at least {MINIMUM_AMOUNT_CENTS} cents")
        await PaymentService._validate_payer(db, user_id, registration_id)

        logger.info(
            f"Initiating Stripe payment for user {user_id}, registration_id: {registration_id or 'none'}, "
            f"amount: {amount_cents}"
        )
        stripe_client = await get_stripe_client(db)
        session = await stripe_client.create_checkout_session(
            amount_cents=amount_cents,
            currency=currency,
            description=description or "Camp Registration Fee",
            user_id=user_id,
            registration_id=registration_id,
            success_url=success_url or f"{settings.frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{settings.frontend_url}/payment/cancel",
        )

        payment = await PaymentService.create(db, {
            "amount": amount_cents / 100,
            "currency": currency,
            "provider": PaymentProvider.STRIPE,
            "user_id": user_id,
            "registration_id": registration_id,
            "provider_ref_id": session.id,
        })
        return {"payment_id": payment.id, "url": session.url}

    @staticmethod
    async def verify_stripe_session(db: AsyncSession, session_id: str) -> dict:
        """
        Reconcile a payment with its checkout session after the buyer is
        redirected back, without relying on webhooks.

        Raises:
            NotFoundError: If no payment references the session
            BadRequestError: If Stripe can't be queried
        """
        payment = await PaymentService.find_by_provider_ref(db, session_id)
        if not payment:
            raise NotFoundError(f"Payment not found for Stripe session {session_id}")

        registration = payment.registration
        logger.info(
            f"Found payment {payment.id} for session {session_id}, "
            f"registration: {registration.id if registration else 'none'}"
        )

        try:
            stripe_client = await get_stripe_client(db)
            session = await stripe_client.get_checkout_session(session_id)
        except DomainError as e:
            logger.error(f"❌ Failed to verify Stripe session: {e.message}")
            raise BadRequestError("Failed to verify Stripe session") from e

        logger.info(f"Stripe session {session_id} status: {session.status}, payment_status: {session.payment_status}")

        if session.payment_status == "paid" and payment.status != PaymentStatus.COMPLETED:
            registration = await PaymentService._complete_payment(db, payment)
        elif (session.payment_status == "unpaid" and payment.status == PaymentStatus.PENDING
              and session.status == "expired"):
            logger.info(f"Updating payment {payment.id} status to FAILED based on expired Stripe session")
            payment.status = PaymentStatus.FAILED
            payment.notes = "Checkout session expired"
            await db.flush()

        return {
            "session_id": session_id,
            "payment_status": payment.status.value,
            "payment_id": payment.id,
            "registration_id": registration.id if registration else None,
            "registration_status": registration.status.value if registration else None,
        }

    @staticmethod
    async def handle_stripe_webhook(db: AsyncSession, payload: bytes, signature: str) -> dict:
        """
        Verify and apply a Stripe webhook event.

        Raises:
            PaymentProviderError: If the signature or payload is invalid
        """
        stripe_client = await get_stripe_client(db)
        event = stripe_client.construct_event(payload, signature)
        event_type = event["type"]
        data = event["data"]["object"]

        # provider_ref_id of a Stripe payment is its checkout session id
        if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            payment = await PaymentService.find_by_provider_ref(db, data["id"])
            if not payment:
                logger.warning(f"⚠️ Payment record not found for Stripe session {data['id']}")
            elif payment.status != PaymentStatus.COMPLETED:
                await PaymentService._complete_payment(db, payment)
        elif event_type in ("checkout.session.async_payment_failed", "checkout.session.expired"):
            payment = await PaymentService.find_by_provider_ref(db, data["id"])
            if not payment:
                logger.warning(f"⚠️ Payment record not found for Stripe session {data['id']}")
            elif payment.status == PaymentStatus.PENDING:
                payment.status = PaymentStatus.FAILED
                payment.notes = "Checkout session expired" if event_type.endswith("expired") else "Payment failed"
                await db.flush()
        else:
            logger.info(f"Ignored unhandled Stripe event type: {event_type}")

        return {"received": True, "type": event_type}

    # ============================================
    # PayPal
    # ============================================

    @staticmethod
    async def initiate_paypal_payment(
        db: AsyncSession,
        user_id: str,
        amount: float,
        currency: str = "USD",
        item_description: str = "Camp Registration Fee",
        registration_id: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> dict:
        """
        Create a PayPal order.

        Returns:
            {"payment_id", "order_id", "approval_url"}
        """
        await PaymentService._validate_payer(db, user_id, registration_id)

        async with open_paypal_client(db) as paypal_client:
            order = await paypal_client.create_order(
                amount=amount,
                currency=currency,
                description=item_description,
                user_id=user_id,
                registration_id=registration_id,
                return_url=success_url or f"{settings.frontend_url}/payment/success",
                cancel_url=cancel_url or f"{settings.frontend_url}/payment/cancel",
            )

        approval_url = extract_approval_url(order)
        if not approval_url:
            raise BadRequestError("PayPal order missing approval URL")

        payment = await PaymentService.create(db, {
            "amount": amount,
            "currency": currency,
            "provider": PaymentProvider.PAYPAL,
            "user_id": user_id,
            "registration_id": registration_id,
            "provider_ref_id": order["id"],
        })
        return {"payment_id": payment.id, "order_id": order["id"], "approval_url": approval_url}

    @staticmethod
    async def capture_paypal_payment(db: AsyncSession, order_id: str) -> Payment:
        """
        Capture an approved order. provider_ref_id switches from the order id
        to the capture id, which PayPal refunds are issued against.
        """
        payment = await PaymentService.find_by_provider_ref(db, order_id)
        if not payment:
            raise NotFoundError(f"Payment not found for PayPal order {order_id}")
        if payment.status == PaymentStatus.COMPLETED:
            return payment

        async with open_paypal_client(db) as paypal_client:
            capture = await paypal_client.capture_payment(order_id)

        if capture.get("status") == "COMPLETED":
            capture_id = extract_capture_id(capture)
            if capture_id:
                payment.provider_ref_id = capture_id
            payment.notes = f"PayPal order {order_id}"
            await PaymentService._complete_payment(db, payment)
        else:
            logger.warning(f"⚠️ PayPal order {order_id} capture status: {capture.get('status')}")
            payment.status = PaymentStatus.FAILED
            payment.notes = f"PayPal capture status {capture.get('status')}"
            await db.flush()

        return await PaymentService.find_one(db, payment.id)

    @staticmethod
    async def handle_paypal_webhook(db: AsyncSession, payload: dict) -> dict:
        """
        Apply capture events. The payment is found by capture id, or by
        the order id PayPal lists in supplementary_data.
        """
        event_type = payload.get("event_type") or "paypal.webhook"
        resource = payload.get("resource") or {}

        if event_type in ("PAYMENT.CAPTURE.COMPLETED", "PAYMENT.CAPTURE.DENIED"):
            capture_id = resource.get("id")
            order_id = ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")

            payment = None
            for ref in (capture_id, order_id):
                if ref and not payment:
                    payment = await PaymentService.find_by_provider_ref(db, ref)

            if not payment:
                logger.warning(f"⚠️ Payment record not found for PayPal capture {capture_id} / order {order_id}")
            elif event_type == "PAYMENT.CAPTURE.COMPLETED" and payment.status != PaymentStatus.COMPLETED:
                if capture_id:
                    payment.provider_ref_id = capture_id
                await PaymentService._complete_payment(db, payment)
            elif event_type == "PAYMENT.CAPTURE.DENIED":
                payment.status = PaymentStatus.FAILED
                payment.notes = "PayPal capture denied"
                await db.flush()
        else:
            logger.info(f"Ignored unhandled PayPal event type: {event_type}")

        return {"received": True, "type": event_type}

    # ============================================
    # Refunds
    # ============================================

    @staticmethod
    def calculate_refund_amount(payment_amount: float, amount: Optional[float] = None,
                                percentage_of_original: Optional[float] = None) -> float:
        """Explicit amount, else a percentage of the original, else the full amount."""
        if amount:
            refund_amount = amount
        elif percentage_of_original:
            refund_amount = payment_amount * percentage_of_original / 100
        else:
            refund_amount = payment_amount

        if refund_amount > payment_amount:
            raise BadRequestError("Refund amount cannot exceed the payment amount")
        return round(refund_amount, 2)

    @staticmethod
    async def process_refund(db: AsyncSession, payment_id: str, amount: Optional[float] = None,
                             percentage_of_original: Optional[float] = None, reason: Optional[str] = None,
                             cancel_registration: bool = True) -> dict:
        """
        Refund a COMPLETED payment through its provider.

        Raises:
            BadRequestError: If the payment isn't COMPLETED or has no provider reference
            PaymentProviderError: If the provider rejects the refund
        """
        payment = await PaymentService.find_one(db, payment_id)

        if payment.status != PaymentStatus.COMPLETED:
            raise BadRequestError(f"Cannot refund payment with status {payment.status.value}")

        refund_amount = PaymentService.calculate_refund_amount(payment.amount, amount, percentage_of_original)

        if payment.provider in (PaymentProvider.STRIPE, PaymentProvider.PAYPAL) and not payment.provider_ref_id:
            raise BadRequestError("Payment has no provider reference ID")

        if payment.provider == PaymentProvider.STRIPE:
            stripe_client = await get_stripe_client(db)
            refund = await stripe_client.create_refund(payment.provider_ref_id, round(refund_amount * 100), reason)
            provider_refund_id = refund.id
        elif payment.provider == PaymentProvider.PAYPAL:
            async with open_paypal_client(db) as paypal_client:
                refund = await paypal_client.create_refund(
                    payment.provider_ref_id, refund_amount, payment.currency, reason,
                )
            provider_refund_id = refund.get("id")
        else:
            provider_refund_id = f"manual-refund-{int(time.time() * 1000)}"

        payment.status = PaymentStatus.REFUNDED
        payment.notes = f"Refunded {refund_amount} {payment.currency}. Reason: {reason or 'No reason provided'}"
        payment.updated_at = utcnow()

        if cancel_registration and payment.registration:
            payment.registration.status = RegistrationStatus.CANCELLED
        await db.flush()

        logger.info(f"✅ Refunded {refund_amount} {payment.currency} for payment {payment.id} ({provider_refund_id})")
        return {
            "payment_id": payment.id,
            "refund_amount": refund_amount,
            "provider_refund_id": provider_refund_id,
            "success": True,
        }
