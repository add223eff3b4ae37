"""
Stripe API client for checkout sessions, refunds and webhooks.

The stripe SDK is synchronous; calls run in a worker thread so the event
loop keeps serving requests. Amounts are in cents, as Stripe expects.
"""
import asyncio
import logging
from typing import Optional

import stripe

from app.domain.errors import PaymentProviderError

logger = logging.getLogger(__name__)

PROVIDER = "STRIPE"

# Stripe rejects charges below 50 cents
MINIMUM_AMOUNT_CENTS = 50


class StripeClient:
    """
    Client for the Stripe API.

    Credentials are passed per instance because admins can change them in
    the site configuration at any time.
    """

    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str] = None,
                 logger_instance: logging.Logger = logger):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._logger = logger_instance

        if not api_key:
            self._logger.warning("⚠️ Stripe secret key not configured. Stripe payment processing will be unavailable.")

    def _require_key(self) -> str:
        if not self._api_key:
            raise PaymentProviderError("Stripe is not configured", provider=PROVIDER)
        return self._api_key

    async def _call(self, action: str, func, **params):
        api_key = self._require_key()
        try:
            return await asyncio.to_thread(func, api_key=api_key, **params)
        except stripe.StripeError as e:
            self._logger.error(f"❌ Stripe {action} failed: {e.user_message or e}")
            raise PaymentProviderError(
                f"Stripe {action} failed: {e.user_message or e}", provider=PROVIDER, response_body=e.json_body,
            ) from e

    async def create_checkout_session(
        self,
        amount_cents: int,
        currency: str,
        description: str,
        user_id: str,
        registration_id: Optional[str],
        success_url: str,
        cancel_url: str,
    ):
        """
        Create a hosted checkout session for a single line item.

        Returns:
            Stripe Session object (id, url)
        """
        self._logger.info(f"Creating checkout session for user {user_id} for amount {amount_cents}")
        session = await self._call(
            "checkout session creation",
            stripe.checkout.Session.create,
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": description},
                    "unit_amount": amount_cents,
                },
                "quantity": 1,
            }],
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"user_id": user_id, "registration_id": registration_id or ""},
        )
        self._logger.info(f"✅ Created checkout session {session.id}")
        return session

    async def get_checkout_session(self, session_id: str):
        return await self._call("checkout session retrieval", stripe.checkout.Session.retrieve, id=session_id)

    async def create_refund(self, provider_ref_id: str, amount_cents: Optional[int] = None,
                            reason: Optional[str] = None):
        """
        Refund a charge.

        Args:
            provider_ref_id: Checkout session id ("cs_...") or payment intent id
            amount_cents: Partial refund amount; full refund when None
            reason: Only Stripe's reason codes are forwarded
        """
        payment_intent_id = provider_ref_id
        if provider_ref_id.startswith("cs_"):
            session = await self.get_checkout_session(provider_ref_id)
            payment_intent_id = session.payment_intent
            if not payment_intent_id:
                raise PaymentProviderError(
                    f"Checkout session {provider_ref_id} has no payment intent to refund", provider=PROVIDER
                )

        params = {"payment_intent": payment_intent_id}
        if amount_cents:
            params["amount"] = amount_cents
        if reason in ("duplicate", "fraudulent", "requested_by_customer"):
            params["reason"] = reason

        self._logger.info(f"Creating refund for payment {payment_intent_id}")
        refund = await self._call("refund", stripe.Refund.create, **params)
        self._logger.info(f"✅ Created refund {refund.id} for payment {payment_intent_id}")
        return refund

    def construct_event(self, payload: bytes, signature: str):
        """
        Verify a webhook signature and parse the event.

        Raises:
            PaymentProviderError: If the secret is missing, the signature is
                invalid or the payload is malformed
        """
        if not self._webhook_secret:
            raise PaymentProviderError("Stripe webhook secret not configured", provider=PROVIDER)
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            self._logger.error(f"❌ Failed to verify Stripe webhook: {e}")
            raise PaymentProviderError(f"Invalid Stripe webhook: {e}", provider=PROVIDER) from e
