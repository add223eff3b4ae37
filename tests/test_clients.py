"""
Tests for the payment provider clients.
"""
import json

import httpx
import pytest

from app.clients.paypal_client import (
    PaypalClient, build_custom_id, extract_capture_id, extract_approval_url,
    SANDBOX_BASE_URL, LIVE_BASE_URL,
)
from app.clients.stripe_client import StripeClient
from app.domain.errors import PaymentProviderError


def paypal_transport(requests, order_status=201, order_body=None):
    """Mock PayPal API: token endpoint plus a canned response for everything else."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "token-123", "token_type": "Bearer"})
        return httpx.Response(order_status, json=order_body or {})

    return httpx.MockTransport(handler)


class TestPaypalClient:

    @pytest.mark.asyncio
    async def test_create_order(self):
        requests = []
        body = {"id": "ORDER-1", "links": [{"rel": "approve", "href": "https://paypal.test/approve"}]}
        async with httpx.AsyncClient(transport=paypal_transport(requests, order_body=body)) as http_client:
            client = PaypalClient(http_client, "client-id", "client-secret", brand_name="Dust Camp")

            order = await client.create_order(
                amount=80, currency="usd", description="Dues", user_id="user-1", registration_id="reg-1",
                return_url="https://camp.test/ok", cancel_url="https://camp.test/cancel",
            )

        assert order["id"] == "ORDER-1"
        token_request, order_request = requests
        assert str(token_request.url) == f"{SANDBOX_BASE_URL}/v1/oauth2/token"
        assert token_request.headers["Authorization"].startswith("Basic ")
        assert order_request.headers["Authorization"] == "Bearer token-123"

        sent = json.loads(order_request.content)
        unit = sent["purchase_units"][0]
        assert unit["amount"] == {"currency_code": "USD", "value": "80.00"}
        assert unit["custom_id"] == "userid:user-1;registrationid:reg-1"
        assert sent["application_context"]["brand_name"] == "Dust Camp"

    @pytest.mark.asyncio
    async def test_live_mode_uses_live_api(self):
        requests = []
        async with httpx.AsyncClient(transport=paypal_transport(requests)) as http_client:
            client = PaypalClient(http_client, "client-id", "client-secret", mode="live")
            await client.get_access_token()

        assert str(requests[0].url).startswith(LIVE_BASE_URL)

    @pytest.mark.asyncio
    async def test_error_response_raises_provider_error(self):
        requests = []
        transport = paypal_transport(requests, order_status=422, order_body={"message": "Order already captured"})
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = PaypalClient(http_client, "client-id", "client-secret")

            with pytest.raises(PaymentProviderError) as exc_info:
                await client.capture_payment("ORDER-1")

        assert exc_info.value.provider == "PAYPAL"
        assert "Order already captured" in exc_info.value.message
        assert exc_info.value.response_body == {"message": "Order already captured"}

    @pytest.mark.asyncio
    async def test_full_refund_sends_no_amount(self):
        requests = []
        async with httpx.AsyncClient(transport=paypal_transport(requests, order_body={"id": "R-1"})) as http_client:
            client = PaypalClient(http_client, "client-id", "client-secret")
            refund = await client.create_refund("CAP-1")

        assert refund == {"id": "R-1"}
        assert requests[1].url.path == "/v2/payments/captures/CAP-1/refund"

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        async with httpx.AsyncClient(transport=paypal_transport([])) as http_client:
            client = PaypalClient(http_client, None, None)

            with pytest.raises(PaymentProviderError) as exc_info:
                await client.get_access_token()

        assert exc_info.value.message == "PayPal is not configured"


def test_custom_id():
    assert build_custom_id("user-1") == "userid:user-1"
    assert build_custom_id("user-1", "reg-1") == "userid:user-1;registrationid:reg-1"


def test_response_helpers():
    capture = {"purchase_units": [{"payments": {}}, {"payments": {"captures": [{"id": "CAP-9"}]}}]}
    assert extract_capture_id(capture) == "CAP-9"
    assert extract_capture_id({}) is None
    assert extract_approval_url({"links": [{"rel": "self", "href": "a"}, {"rel": "payer-action", "href": "b"}]}) == "b"
    assert extract_approval_url({"links": []}) is None


class TestStripeClient:

    @pytest.mark.asyncio
    async def test_calls_require_api_key(self):
        client = StripeClient(None)

        with pytest.raises(PaymentProviderError) as exc_info:
            await client.get_checkout_session("cs_test_1")

        assert exc_info.value.message == "Stripe is not configured"

    def test_webhook_requires_secret(self):
        client = StripeClient("sk_test_123")

        with pytest.raises(PaymentProviderError):
            client.construct_event(b"{}", "t=1,v1=sig")

    def test_webhook_rejects_bad_signature(self):
        client = StripeClient("sk_test_123", "whsec_test")

        with pytest.raises(PaymentProviderError) as exc_info:
            client.construct_event(b'{"id": "evt_1"}', "t=1,v1=not-a-signature")

        assert exc_info.value.message.startswith("Invalid Stripe webhook")
