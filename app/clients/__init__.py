"""Payment provider API clients"""
from app.clients.stripe_client import StripeClient, MINIMUM_AMOUNT_CENTS
from app.clients.paypal_client import PaypalClient, build_custom_id

__all__ = ["StripeClient", "MINIMUM_AMOUNT_CENTS", "PaypalClient", "build_custom_id"]
