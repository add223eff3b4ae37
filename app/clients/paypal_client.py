"""
PayPal REST API client for orders, captures and refunds.
"""
import httpx
import logging
from typing import Optional

from app.domain.errors import PaymentProviderError

logger = logging.getLogger(__name__)

PROVIDER = "PAYPAL"
SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"
LIVE_BASE_URL = "https://api-m.paypal.com"


def build_custom_id(user_id: str, registration_id: Optional[str] = None) -> str:
    """Order metadata PayPal echoes back: "userid:<id>;registrationid:<id>"."""
    custom_id = f"userid:{user_id}"
    if registration_id:
        custom_id += f";registrationid:{registration_id}"
    return custom_id


class PaypalClient:
    """
    Client for the PayPal Orders and Payments APIs.

    Each call fetches a client-credentials access token first; PayPal
    tokens are cheap and credentials can change between requests.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        client_id: Optional[str],
        client_secret: Optional[str],
        mode: str = "sandbox",
        brand_name: str = "PlayaPlan",
        logger_instance: logging.Logger = logger,
    ):
        self._http_client = http_client
        self._client_id = client_id
        self._client_secret = client_secret
        self._brand_name = brand_name
        self._logger = logger_instance
        self._base_url = LIVE_BASE_URL if mode == "live" else SANDBOX_BASE_URL

        if not client_id or not client_secret:
            self._logger.warning("⚠️ PayPal credentials not configured. PayPal payment processing will be unavailable.")

    async def _request(self, action: str, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._http_client.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.RequestError as e:
            self._logger.error(f"❌ PayPal {action} request error: {e}")
            raise PaymentProviderError(f"PayPal {action} request error: {e}", provider=PROVIDER) from e

        data = response.json() if response.text else {}
        if response.status_code >= 400:
            self._logger.error(f"❌ PayPal {action} error - status: {response.status_code}, body: {data}")
            raise PaymentProviderError(
                f"PayPal {action} error: {data.get('message') or data.get('error_description') or response.status_code}",
                provider=PROVIDER,
                response_body=data,
            )
        return data

    async def get_access_token(self) -> str:
        if not self._client_id or not self._client_secret:
            raise PaymentProviderError("PayPal is not configured", provider=PROVIDER)

        data = await self._request(
            "access token",
            "POST",
            "/v1/oauth2/token",
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return data["access_token"]

    async def _authorized(self, action: str, method: str, path: str, json: Optional[dict] = None) -> dict:
        token = await self.get_access_token()
        return await self._request(
            action,
            method,
            path,
            json=json,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {token}"},
        )

    async def create_order(
        self,
        amount: float,
        currency: str,
        description: str,
        user_id: str,
        registration_id: Optional[str],
        return_url: str,
        cancel_url: str,
    ) -> dict:
        """
        Create a CAPTURE order.

        Returns:
            Order with id, status and links (rel "approve" is the buyer URL)
        """
        self._logger.info(f"Creating PayPal order for user {user_id} for amount {amount}")
        order = await self._authorized("order creation", "POST", "/v2/checkout/orders", json={
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": currency.upper(), "value": f"{amount:.2f}"},
                "description": description,
                "custom_id": build_custom_id(user_id, registration_id),
            }],
            "application_context": {
                "brand_name": self._brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        })
        self._logger.info(f"✅ Created PayPal order {order.get('id')}")
        return order

    async def capture_payment(self, order_id: str) -> dict:
        self._logger.info(f"Capturing payment for PayPal order {order_id}")
        capture = await self._authorized("payment capture", "POST", f"/v2/checkout/orders/{order_id}/capture")
        self._logger.info(f"✅ Captured payment for order {order_id}, status: {capture.get('status')}")
        return capture

    async def get_order_details(self, order_id: str) -> dict:
        return await self._authorized("order details", "GET", f"/v2/checkout/orders/{order_id}")

    async def create_refund(self, capture_id: str, amount: Optional[float] = None,
                            currency: str = "USD", note: Optional[str] = None) -> dict:
        """Refund a capture; full refund when amount is None."""
        body = {}
        if amount:
            body["amount"] = {"value": f"{amount:.2f}", "currency_code": currency.upper()}
        if note:
            body["note_to_payer"] = note

        self._logger.info(f"Creating refund for PayPal capture {capture_id}")
        refund = await self._authorized(
            "refund", "POST", f"/v2/payments/captures/{capture_id}/refund", json=body or None,
        )
        self._logger.info(f"✅ Created refund for capture {capture_id}, status: {refund.get('status')}")
        return refund


def extract_capture_id(capture_response: dict) -> Optional[str]:
    """First capture id in an order capture response."""
    for unit in capture_response.get("purchase_units") or []:
        captures = (unit.get("payments") or {}).get("captures") or []
        if captures:
            return captures[0].get("id")
    return None


def extract_approval_url(order: dict) -> Optional[str]:
    for link in order.get("links") or []:
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None
