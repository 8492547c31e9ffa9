import hashlib
import hmac
import json
import logging
from typing import Optional

import httpx

from ..helpers import make_order_no

log = logging.getLogger(__name__)

# ChillPay payment page fixed values
CHANNEL_CODE = "creditcard"
CURRENCY_THB = "764"
LANG_CODE = "EN"
ROUTE_NO = "1"
TOKEN_FLAG = "N"

# field order is part of the checksum contract
REQUEST_CHECKSUM_FIELDS = (
    "MerchantCode", "OrderNo", "CustomerId", "Amount", "PhoneNumber",
    "Description", "ChannelCode", "Currency", "LangCode", "RouteNo",
    "IPAddress", "ApiKey", "TokenFlag", "CreditToken", "CreditMonth",
    "ShopID", "ProductImageUrl", "CustEmail", "CardType",
)

NOTIFICATION_CHECKSUM_FIELDS = (
    "TransactionId", "Amount", "OrderNo", "CustomerId", "BankCode",
    "PaymentDate", "PaymentStatus", "BankRefCode", "CurrentDate",
    "CurrentTime", "PaymentDescription", "CreditCardToken", "Currency",
    "CustomerName",
)


class ChillPayError(Exception):
    pass


def chillpay_order_no(booking_id: str, now_ms: Optional[int] = None) -> str:
    return make_order_no("CP", booking_id, now_ms)


def to_satang(amount: float) -> int:
    return round(amount * 100)


def _md5(fields, values: dict, md5_secret: str) -> str:
    raw = "".join(str(values.get(f) or "") for f in fields)
    raw += (md5_secret or "").strip()
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def request_checksum(payload: dict, md5_secret: str) -> str:
    """CheckSum of a payment request. Token fields default to empty."""
    values = {"TokenFlag": TOKEN_FLAG, **payload}
    return _md5(REQUEST_CHECKSUM_FIELDS, values, md5_secret)


def notification_checksum(fields: dict, md5_secret: str) -> str:
    return _md5(NOTIFICATION_CHECKSUM_FIELDS, fields, md5_secret)


def verify_notification(fields: dict, md5_secret: str) -> bool:
    got = str(fields.get("CheckSum") or "").lower()
    expected = notification_checksum(fields, md5_secret)
    return hmac.compare_digest(expected.encode(), got.encode())


def _clip(value: Optional[str], n: int = 10) -> str:
    if not value:
        return ""
    return value[:n] + "..."


class ChillPayClient:
    def __init__(self, endpoint: str, merchant_code: str, api_key: str,
                 md5_secret: str) -> None:
        self.endpoint = endpoint
        self.merchant_code = merchant_code
        self.api_key = api_key
        self.md5_secret = md5_secret.strip()

    def build_payload(
        self,
        order_no: str,
        customer_id: str,
        amount: float,
        description: str,
        phone: str,
        email: str,
        return_url: str,
        notify_url: str,
        ip_address: str,
    ) -> dict:
        payload = {
            "MerchantCode": self.merchant_code,
            "OrderNo": order_no,
            "CustomerId": customer_id,
            "Amount": str(to_satang(amount)),
            "Description": description,
            "PhoneNumber": phone,
            "CustEmail": email,
            "ApiKey": self.api_key,
            "ReturnUrl": return_url,
            "NotifyUrl": notify_url,
            "LangCode": LANG_CODE,
            "ChannelCode": CHANNEL_CODE,
            "RouteNo": ROUTE_NO,
            "Currency": CURRENCY_THB,
            "IPAddress": ip_address,
        }
        payload["CheckSum"] = request_checksum(payload, self.md5_secret)
        return payload

    async def create_payment(self, http: httpx.AsyncClient,
                             payload: dict) -> dict:
        log.info(
            "chillpay request: order=%s customer=%s amount=%s ip=%s "
            "apikey=%s secret=%s",
            payload.get("OrderNo"), payload.get("CustomerId"),
            payload.get("Amount"), payload.get("IPAddress"),
            _clip(self.api_key), _clip(self.md5_secret),
        )
        resp = await http.post(
            self.endpoint,
            data=payload,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Cache-Control": "no-cache",
            },
        )
        try:
            data = json.loads(resp.text)
        except json.JSONDecodeError:
            log.error("chillpay answered non-JSON (HTTP %s): %.200s",
                      resp.status_code, resp.text)
            raise ChillPayError("Invalid JSON response from payment gateway")
        if not isinstance(data, dict):
            raise ChillPayError("Invalid JSON response from payment gateway")
        log.info("chillpay response: status=%s code=%s message=%s",
                 data.get("Status"), data.get("Code"), data.get("Message"))
        return data

    @staticmethod
    def accepted(data: dict) -> bool:
        return data.get("Status") == 0 and data.get("Code") == 200
