"""
Tests for PaymentService: records, refunds and the Stripe/PayPal flows.

Provider clients are replaced with fakes through the get_stripe_client and
open_paypal_client factories.
"""
import pytest
from contextlib import asynccontextmanager
from types import SimpleNamespace
from sqlalchemy import select

from app.db.models import (
    PaymentStatus, PaymentProvider, RegistrationStatus, Notification, NotificationType,
)
from app.domain.errors import BadRequestError, NotFoundError
from app.services.payment_service import PaymentService
from tests.conftest import create_user, create_registration, create_payment


class FakeStripe:
    def __init__(self, event=None, session=None):
        self.event = event
        self.session = session
        self.refunds = []
        self.checkouts = []

    def construct_event(self, payload, signature):
        return self.event

    async def create_checkout_session(self, **params):
        self.checkouts.append(params)
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

    async def get_checkout_session(self, session_id):
        return self.session

    async def create_refund(self, provider_ref_id, amount_cents=None, reason=None):
        self.refunds.append((provider_ref_id, amount_cents, reason))
        return SimpleNamespace(id="re_1")


class FakePaypal:
    def __init__(self, capture=None):
        self.capture = capture
        self.orders = []

    async def create_order(self, **params):
        self.orders.append(params)
        return {
            "id": "ORDER-1",
            "status": "CREATED",
            "links": [{"rel": "approve", "href": "https://paypal.test/approve/ORDER-1"}],
        }

    async def capture_payment(self, order_id):
        return self.capture

    async def create_refund(self, capture_id, amount=None, currency="USD", note=None):
        return {"id": "PP-REFUND-1", "status": "COMPLETED"}


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()

    async def get_fake_stripe(db):
        return fake

    monkeypatch.setattr("app.services.payment_service.get_stripe_client", get_fake_stripe)
    return fake


@pytest.fixture
def fake_paypal(monkeypatch):
    fake = FakePaypal()

    @asynccontextmanager
    async def open_fake_paypal(db):
        yield fake

    monkeypatch.setattr("app.services.payment_service.open_paypal_client", open_fake_paypal)
    return fake


# ============================================
# Records
# ============================================

class TestPaymentRecords:

    @pytest.mark.asyncio
    async def test_create_for_someone_elses_registration(self, db):
        owner = await create_user(db)
        other = await create_user(db, email="other@example.com")
        registration = await create_registration(db, owner)

        with pytest.raises(BadRequestError):
            await PaymentService.create(db, {
                "amount": 10.0, "provider": PaymentProvider.MANUAL, "user_id": other.id,
                "registration_id": registration.id,
            })

    @pytest.mark.asyncio
    async def test_create_uppercases_currency(self, db):
        user = await create_user(db)

        payment = await PaymentService.create(db, {
            "amount": 10.0, "currency": "eur", "provider": PaymentProvider.MANUAL, "user_id": user.id,
        })

        assert payment.currency == "EUR"
        assert payment.status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_find_all_filters_by_user(self, db):
        user = await create_user(db)
        other = await create_user(db, email="other@example.com")
        await create_payment(db, user)
        await create_payment(db, other, status=PaymentStatus.PENDING)

        mine = await PaymentService.find_all(db, user_id=user.id)
        pending = await PaymentService.find_all(db, status=PaymentStatus.PENDING)

        assert mine["total"] == 1
        assert [p.user_id for p in mine["payments"]] == [user.id]
        assert [p.user_id for p in pending["payments"]] == [other.id]

    @pytest.mark.asyncio
    async def test_find_missing(self, db):
        with pytest.raises(NotFoundError):
            await PaymentService.find_one(db, "missing")

    @pytest.mark.asyncio
    async def test_link_to_registration(self, db):
        user = await create_user(db)
        registration = await create_registration(db, user)
        payment = await create_payment(db, user)

        linked = await PaymentService.link_to_registration(db, payment.id, registration.id)

        assert linked.registration.id == registration.id
        with pytest.raises(BadRequestError) as exc_info:
            await PaymentService.link_to_registration(db, payment.id, registration.id)
        assert "already linked" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_link_across_users(self, db):
        user = await create_user(db)
        other = await create_user(db, email="other@example.com")
        registration = await create_registration(db, other)
        payment = await create_payment(db, user)

        with pytest.raises(BadRequestError):
            await PaymentService.link_to_registration(db, payment.id, registration.id)

    @pytest.mark.asyncio
    async def test_manual_payment_confirms_registration(self, db):
        user = await create_user(db)
        registration = await create_registration(db, user)

        payment = await PaymentService.record_manual_payment(
            db, user.id, 75.0, registration_id=registration.id, reference="check 1042",
        )

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.provider == PaymentProvider.MANUAL
        assert payment.provider_ref_id == "manual:check 1042"
        assert payment.registration.status == RegistrationStatus.CONFIRMED
        confirmations = (await db.execute(
            select(Notification).where(Notification.type == NotificationType.PAYMENT_CONFIRMATION)
        )).scalars().all()
        assert [n.recipient for n in confirmations] == [user.email]

    @pytest.mark.asyncio
    async def test_cancelled_registration_stays_cancelled(self, db):
        user = await create_user(db)
        registration = await create_registration(db, user, status=RegistrationStatus.CANCELLED)

        await PaymentService.record_manual_payment(db, user.id, 75.0, registration_id=registration.id)

        assert registration.status == RegistrationStatus.CANCELLED


# ============================================
# Refunds
# ============================================

class TestRefunds:

    def test_refund_amount_defaults_to_full(self):
        assert PaymentService.calculate_refund_amount(120.0) == 120.0

    def test_refund_amount_explicit_wins(self):
        assert PaymentService.calculate_refund_amount(120.0, amount=20.0, percentage_of_original=50) == 20.0

    def test_refund_amount_percentage(self):
        assert PaymentService.calculate_refund_amount(99.99, percentage_of_original=50) == 50.0

    def test_refund_amount_cannot_exceed_payment(self):
        with pytest.raises(BadRequestError):
            PaymentService.calculate_refund_amount(10.0, amount=11.0)

    @pytest.mark.asyncio
    async def test_manual_refund_cancels_registration(self, db):
        user = await create_user(db)
        registration = await create_registration(db, user, status=RegistrationStatus.CONFIRMED)
        payment = await create_payment(db, user, registration)

        result = await PaymentService.process_refund(db, payment.id, reason="Changed plans")

        assert result["success"] is True
        assert result["refund_amount"] == 100.0
        assert result["provider_refund_id"].startswith("manual-refund-")
        assert payment.status == PaymentStatus.REFUNDED
        assert "Changed plans" in payment.notes
        assert registration.status == RegistrationStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_only_completed_payments_refund(self, db):
        user = await create_user(db)
        payment = await create_payment(db, user, status=PaymentStatus.PENDING)

        with pytest.raises(BadRequestError) as exc_info:
            await PaymentService.process_refund(db, payment.id)

        assert exc_info.value.message == "Cannot refund payment with status PENDING"

    @pytest.mark.asyncio
    async def test_provider_payment_needs_reference(self, db):
        user = await create_user(db)
        payment = await create_payment(db, user, provider=PaymentProvider.STRIPE, provider_ref_id=None)

        with pytest.raises(BadRequestError):
            await PaymentService.process_refund(db, payment.id)

    @pytest.mark.asyncio
    async def test_partial_stripe_refund(self, db, fake_stripe):
        user = await create_user(db)
        payment = await create_payment(db, user, provider=PaymentProvider.STRIPE, provider_ref_id="pi_1")

        result = await PaymentService.process_refund(db, payment.id, amount=40.0, reason="requested_by_customer")

        assert fake_stripe.refunds == [("pi_1", 4000, "requested_by_customer")]
        assert result["provider_refund_id"] == "re_1"

    @pytest.mark.asyncio
    async def test_paypal_refund(self, db, fake_paypal):
        user = await create_user(db)
        payment = await create_payment(db, user, provider=PaymentProvider.PAYPAL, provider_ref_id="CAP-1")

        result = await PaymentService.process_refund(db, payment.id)

        assert result["provider_refund_id"] == "PP-REFUND-1"
        assert payment.status == PaymentStatus.REFUNDED


# ============================================
# Stripe
# ============================================

class TestStripeFlows:

    @pytest.mark.asyncio
    async def test_initiate_creates_pending_payment(self, db, fake_stripe):
        user = await create_user(db)
        registration = await create_registration(db, user)

        result = await PaymentService.initiate_stripe_payment(db, user.id, 12500, registration_id=registration.id)

        payment = await PaymentService.find_one(db, result["payment_id"])
        assert result["url"] == "https://checkout.stripe.test/cs_test_1"
        assert payment.amount == 125.0
        assert payment.provider_ref_id == "cs_test_1"
        assert payment.status == PaymentStatus.PENDING
        assert fake_stripe.checkouts[0]["registration_id"] == registration.id

    @pytest.mark.asyncio
    async def test_initiate_below_minimum(self, db, fake_stripe):
        user = await create_user(db)

        with pytest.raises(BadRequestError):
            await PaymentService.initiate_stripe_payment(db, user.id, 49)

        assert fake_stripe.checkouts == []

    @pytest.mark.asyncio
    async def test_initiate_for_foreign_registration_never_reaches_stripe(self, db, fake_stripe):
        owner = await create_user(db)
        other = await create_user(db, email="other@example.com")
        registration = await create_registration(db, owner)

        with pytest.raises(BadRequestError):
            await PaymentService.initiate_stripe_payment(db, other.id, 5000, registration_id=registration.id)

        assert fake_stripe.checkouts == []

    @pytest.mark.asyncio
    async def test_webhook_completes_checkout(self, db, fake_stripe):
        user = await create_user(db)
        registration = await create_registration(db, user)
        payment = await create_payment(
            db, user, registration, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE,
            provider_ref_id="cs_test_1",
        )
        fake_stripe.event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        result = await PaymentService.handle_stripe_webhook(db, b"{}", "t=1,v1=sig")

        assert result == {"received": True, "type": "checkout.session.completed"}
        assert payment.status == PaymentStatus.COMPLETED
        assert registration.status == RegistrationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_webhook_expired_session_fails_payment(self, db, fake_stripe):
        user = await create_user(db)
        payment = await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE, provider_ref_id="cs_test_9",
        )
        fake_stripe.event = {"type": "checkout.session.expired", "data": {"object": {"id": "cs_test_9"}}}

        await PaymentService.handle_stripe_webhook(db, b"{}", "t=1,v1=sig")

        assert payment.status == PaymentStatus.FAILED
        assert payment.notes == "Checkout session expired"

    @pytest.mark.asyncio
    async def test_webhook_async_payment_failed(self, db, fake_stripe):
        user = await create_user(db)
        payment = await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE, provider_ref_id="cs_test_9",
        )
        fake_stripe.event = {"type": "checkout.session.async_payment_failed", "data": {"object": {"id": "cs_test_9"}}}

        await PaymentService.handle_stripe_webhook(db, b"{}", "t=1,v1=sig")

        assert payment.status == PaymentStatus.FAILED
        assert payment.notes == "Payment failed"

    @pytest.mark.asyncio
    async def test_webhook_payment_intent_events_are_ignored(self, db, fake_stripe):
        user = await create_user(db)
        payment = await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE, provider_ref_id="cs_test_9",
        )
        fake_stripe.event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_9"}}}

        result = await PaymentService.handle_stripe_webhook(db, b"{}", "t=1,v1=sig")

        assert result == {"received": True, "type": "payment_intent.succeeded"}
        assert payment.status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_webhook_for_unknown_payment_is_acknowledged(self, db, fake_stripe):
        fake_stripe.event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_unknown"}}}

        result = await PaymentService.handle_stripe_webhook(db, b"{}", "t=1,v1=sig")

        assert result["received"] is True

    @pytest.mark.asyncio
    async def test_verify_paid_session(self, db, fake_stripe):
        user = await create_user(db)
        registration = await create_registration(db, user)
        await create_payment(
            db, user, registration, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE,
            provider_ref_id="cs_test_1",
        )
        fake_stripe.session = SimpleNamespace(status="complete", payment_status="paid")

        result = await PaymentService.verify_stripe_session(db, "cs_test_1")

        assert result["payment_status"] == "COMPLETED"
        assert result["registration_status"] == "CONFIRMED"

    @pytest.mark.asyncio
    async def test_verify_expired_session(self, db, fake_stripe):
        user = await create_user(db)
        await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.STRIPE, provider_ref_id="cs_old",
        )
        fake_stripe.session = SimpleNamespace(status="expired", payment_status="unpaid")

        result = await PaymentService.verify_stripe_session(db, "cs_old")

        assert result["payment_status"] == "FAILED"
        assert result["registration_id"] is None

    @pytest.mark.asyncio
    async def test_verify_unknown_session(self, db, fake_stripe):
        with pytest.raises(NotFoundError):
            await PaymentService.verify_stripe_session(db, "cs_missing")


# ============================================
# PayPal
# ============================================

class TestPaypalFlows:

    @pytest.mark.asyncio
    async def test_initiate_returns_approval_url(self, db, fake_paypal):
        user = await create_user(db)

        result = await PaymentService.initiate_paypal_payment(db, user.id, 80.0)

        assert result["order_id"] == "ORDER-1"
        assert result["approval_url"] == "https://paypal.test/approve/ORDER-1"
        payment = await PaymentService.find_one(db, result["payment_id"])
        assert payment.provider == PaymentProvider.PAYPAL
        assert payment.provider_ref_id == "ORDER-1"

    @pytest.mark.asyncio
    async def test_initiate_for_missing_registration_never_reaches_paypal(self, db, fake_paypal):
        user = await create_user(db)

        with pytest.raises(NotFoundError):
            await PaymentService.initiate_paypal_payment(db, user.id, 80.0, registration_id="missing")

        assert fake_paypal.orders == []

    @pytest.mark.asyncio
    async def test_capture_switches_reference_to_capture_id(self, db, fake_paypal):
        user = await create_user(db)
        registration = await create_registration(db, user)
        await create_payment(
            db, user, registration, status=PaymentStatus.PENDING, provider=PaymentProvider.PAYPAL,
            provider_ref_id="ORDER-1",
        )
        fake_paypal.capture = {
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{"payments": {"captures": [{"id": "CAP-1", "status": "COMPLETED"}]}}],
        }

        payment = await PaymentService.capture_paypal_payment(db, "ORDER-1")

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.provider_ref_id == "CAP-1"
        assert payment.registration.status == RegistrationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_capture_not_completed(self, db, fake_paypal):
        user = await create_user(db)
        await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.PAYPAL, provider_ref_id="ORDER-2",
        )
        fake_paypal.capture = {"id": "ORDER-2", "status": "PAYER_ACTION_REQUIRED"}

        payment = await PaymentService.capture_paypal_payment(db, "ORDER-2")

        assert payment.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_webhook_capture_completed_by_order_id(self, db):
        user = await create_user(db)
        payment = await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.PAYPAL, provider_ref_id="ORDER-3",
        )

        await PaymentService.handle_paypal_webhook(db, {
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {"id": "CAP-3", "supplementary_data": {"related_ids": {"order_id": "ORDER-3"}}},
        })

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.provider_ref_id == "CAP-3"

    @pytest.mark.asyncio
    async def test_webhook_capture_denied(self, db):
        user = await create_user(db)
        payment = await create_payment(
            db, user, status=PaymentStatus.PENDING, provider=PaymentProvider.PAYPAL, provider_ref_id="CAP-4",
        )

        result = await PaymentService.handle_paypal_webhook(db, {
            "event_type": "PAYMENT.CAPTURE.DENIED", "resource": {"id": "CAP-4"},
        })

        assert result["type"] == "PAYMENT.CAPTURE.DENIED"
        assert payment.status == PaymentStatus.FAILED
