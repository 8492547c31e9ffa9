import logging
from typing import Optional

import httpx

from ..helpers import make_order_no

log = logging.getLogger(__name__)


class PayPalError(Exception):
    pass


def paypal_order_no(booking_id: str, now_ms: Optional[int] = None) -> str:
    return make_order_no("PP", booking_id, now_ms)


class PayPalClient:
    """Minimal PayPal Orders v2 client: token, create, capture."""

    def __init__(self, api_url: str, client_id: str, secret: str,
                 currency: str = "THB",
                 brand_name: str = "ThaiBoxingHub") -> None:
        self.api_url = api_url.rstrip("/")
        self.client_id = client_id
        self.secret = secret
        self.currency = currency
        self.brand_name = brand_name

    async def access_token(self, http: httpx.AsyncClient) -> str:
        resp = await http.post(
            f"{self.api_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.secret),
        )
        if resp.status_code // 100 != 2:
            log.error("paypal auth error %s: %.200s",
                      resp.status_code, resp.text)
            raise PayPalError(
                f"Failed to get PayPal access token: {resp.status_code}"
            )
        token = resp.json().get("access_token")
        if not token:
            raise PayPalError("PayPal token response without access_token")
        return token

    async def create_order(
        self,
        http: httpx.AsyncClient,
        token: str,
        amount: float,
        reference_id: str,
        custom_id: str,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> dict:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "custom_id": custom_id,
                    "description": description,
                    "amount": {
                        "currency_code": self.currency,
                        "value": f"{amount:.2f}",
                    },
                }
            ],
            "application_context": {
                "return_url": return_url,
                "cancel_url": cancel_url,
                "brand_name": self.brand_name,
                "user_action": "PAY_NOW",
                "shipping_preference": "NO_SHIPPING",
            },
        }
        log.info("paypal create order: ref=%s custom=%s amount=%.2f %s",
                 reference_id, custom_id, amount, self.currency)
        resp = await http.post(
            f"{self.api_url}/v2/checkout/orders",
            json=payload,
            headers={
                "Authorization": f"Bearer {token}",
                "Prefer": "return=representation",
            },
        )
        if resp.status_code // 100 != 2:
            log.error("paypal create order error %s: %.200s",
                      resp.status_code, resp.text)
            raise PayPalError(
                f"Failed to create PayPal order: {resp.status_code}"
            )
        return resp.json()

    async def capture_order(self, http: httpx.AsyncClient, token: str,
                            order_id: str) -> dict:
        resp = await http.post(
            f"{self.api_url}/v2/checkout/orders/{order_id}/capture",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
        )
        if resp.status_code // 100 != 2:
            log.error("paypal capture error %s: %.200s",
                      resp.status_code, resp.text)
            raise PayPalError(
                f"Failed to capture PayPal payment: {resp.status_code}"
            )
        return resp.json()

    @staticmethod
    def approval_url(order: dict) -> str:
        for link in order.get("links") or ():
            if link.get("rel") == "approve":
                return link["href"]
        raise PayPalError("No approval URL found in PayPal response")


def capture_details(capture: dict) -> tuple[Optional[str], Optional[str]]:
    """(booking id, capture id) from a capture response."""
    units = capture.get("purchase_units") or [{}]
    unit = units[0]
    captures = (unit.get("payments") or {}).get("captures") or [{}]
    return unit.get("reference_id"), captures[0].get("id")
