import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse, RedirectResponse
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..deps import get_db, http_client
from ..errors import ProcedureError
from ..helpers import client_ip, is_valid_email, now_ms
from ..model.db import (
    PAYMENT_CANCELLED, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_PENDING,
    PAYMENT_PROCESSING, Booking, Customer,
)
from ..payments.chillpay import (
    ChillPayClient, ChillPayError, chillpay_order_no, to_satang,
    verify_notification,
)
from ..payments.paypal import (
    PayPalClient, PayPalError, capture_details, paypal_order_no,
)
from ..procedures import booking as bookings

log = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])

CONFIRMATION = "/checkout/confirmation"


class ChillPayIn(BaseModel):
    bookingId: str
    amount: float
    email: str
    phone: Optional[str] = None
    eventTitle: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        if not is_valid_email(v):
            raise ValueError("email must be a valid email address")
        return v.strip()


class PayPalIn(ChillPayIn):
    customerName: str


def _error(status: int, error: str, /, **extra) -> ORJSONResponse:
    return ORJSONResponse({"error": error, **extra}, status_code=status)


def _origin(request: Request) -> str:
    return (request.headers.get("origin") or config.PUBLIC_BASE_URL).rstrip("/")


def _confirmation(method: str, booking_id: Optional[str], status: str,
                  message: Optional[str] = None) -> RedirectResponse:
    params = {
        "paymentMethod": method,
        "bookingId": booking_id or "",
        "status": status,
    }
    if message:
        params["message"] = message
    return RedirectResponse(
        url=f"{CONFIRMATION}?{urlencode(params)}", status_code=302
    )


def _settle(booking: Booking, status: str, authoritative: bool) -> bool:
    """Move a booking to a final status.

    A browser redirect is not authoritative and never downgrades a booking
    the gateway webhook already completed.
    """
    if (not authoritative
            and booking.payment_status == PAYMENT_COMPLETED
            and status != PAYMENT_COMPLETED):
        log.warning("booking %s: ignoring %s from redirect, already %s",
                    booking.id, status, booking.payment_status)
        return False
    booking.payment_status = status
    return True


async def _booking_by_ref(db: AsyncSession, ref: str) -> Optional[Booking]:
    booking = await db.get(Booking, ref)
    if booking is None:
        booking = await db.scalar(
            select(Booking).where(Booking.payment_order_no == ref).limit(1)
        )
    return booking


# ----------------------------
# ChillPay
# ----------------------------
def chillpay_client() -> ChillPayClient:
    return ChillPayClient(
        config.CHILLPAY_API_ENDPOINT,
        config.CHILLPAY_MERCHANT_CODE,
        config.CHILLPAY_API_KEY,
        config.CHILLPAY_MD5_SECRET,
    )


@router.post("/api/checkout/chillpay")
async def chillpay_initiate(
    data: ChillPayIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(http_client),
):
    if not config.chillpay_configured():
        log.error("missing ChillPay configuration")
        return _error(500, "Missing payment gateway configuration")

    booking = await db.scalar(
        select(Booking).where(
            Booking.id == data.bookingId,
            Booking.payment_status == PAYMENT_PENDING,
        )
    )
    if booking is None:
        return _error(404, "Booking not found or already processed")

    if to_satang(data.amount) != to_satang(booking.total_amount):
        log.warning("booking %s: client amount %s, charging %s",
                    booking.id, data.amount, booking.total_amount)
    order_no = chillpay_order_no(booking.id, now_ms())
    booking.payment_status = PAYMENT_PROCESSING
    booking.payment_order_no = order_no
    await db.commit()

    origin = _origin(request)
    client = chillpay_client()
    payload = client.build_payload(
        order_no=order_no,
        customer_id=booking.customer_id,
        amount=booking.total_amount,
        description=data.eventTitle or f"Booking for event {booking.event_id}",
        phone=config.CHILLPAY_PHONE_NUMBER,
        email=data.email,
        return_url=f"{origin}/events/{booking.event_id}?payment=success",
        notify_url=f"{origin}/api/checkout/chillpay/webhook",
        ip_address=client_ip(request.headers),
    )
    try:
        answer = await client.create_payment(http, payload)
    except ChillPayError as e:
        booking.payment_status = PAYMENT_PENDING
        await db.commit()
        return _error(500, "Error processing payment gateway response",
                      details=str(e))
    except httpx.HTTPError as e:
        log.error("chillpay request failed: %s", e)
        booking.payment_status = PAYMENT_PENDING
        await db.commit()
        return _error(500, "Failed to process payment request",
                      details=str(e))

    if client.accepted(answer):
        return {"paymentUrl": answer.get("PaymentUrl")}

    booking.payment_status = PAYMENT_PENDING
    await db.commit()
    return _error(
        400, "Failed to initiate payment",
        details=answer.get("Message") or "Unknown error from payment gateway",
        code=answer.get("Code"),
        status=answer.get("Status"),
    )


@router.post("/api/checkout/chillpay/webhook")
async def chillpay_webhook(request: Request,
                           db: AsyncSession = Depends(get_db)):
    """Server-to-server notification. This is the authoritative result."""
    form = await request.form()
    fields = {k: str(v) for k, v in form.items()}
    if not config.CHILLPAY_MD5_SECRET:
        log.error("webhook: missing CHILLPAY_MD5_SECRET")
        return ORJSONResponse(
            {"status": "error", "message": "Configuration error"},
            status_code=500,
        )
    if not verify_notification(fields, config.CHILLPAY_MD5_SECRET):
        log.error("webhook: checksum mismatch for order %s",
                  fields.get("OrderNo"))
        return ORJSONResponse(
            {"status": "error", "message": "Invalid checksum"},
            status_code=400,
        )

    order_no = fields.get("OrderNo", "")
    booking = await db.scalar(
        select(Booking).where(Booking.payment_order_no == order_no).limit(1)
    )
    if booking is None:
        log.error("webhook: no booking for order %s", order_no)
        return ORJSONResponse(
            {"status": "error", "message": "Booking not found"},
            status_code=404,
        )

    ok = fields.get("PaymentStatus") == "0"
    expected = str(to_satang(booking.total_amount))
    if ok and fields.get("Amount", "").strip() != expected:
        log.error("webhook: booking %s paid %r satang, expected %s",
                  booking.id, fields.get("Amount"), expected)
        ok = False
    _settle(booking, PAYMENT_COMPLETED if ok else PAYMENT_FAILED,
            authoritative=True)
    booking.payment_transaction_id = fields.get("TransactionId")
    booking.payment_bank_code = fields.get("BankCode")
    booking.payment_bank_ref_code = fields.get("BankRefCode")
    booking.payment_date = fields.get("PaymentDate")
    booking.payment_method = "credit-card"
    await db.commit()
    log.info("webhook: booking %s -> %s", booking.id, booking.payment_status)
    return {"status": "success"}


@router.get("/api/checkout/chillpay/callback")
async def chillpay_return(request: Request,
                          db: AsyncSession = Depends(get_db)):
    q = request.query_params
    ref = q.get("bookingId") or q.get("OrderNo")
    ok = q.get("Status") == "0" and q.get("Code") == "200"
    booking_id = ref
    try:
        booking = await _booking_by_ref(db, ref) if ref else None
        if booking is not None:
            booking_id = booking.id
            _settle(booking, PAYMENT_COMPLETED if ok else PAYMENT_FAILED,
                    authoritative=False)
            await db.commit()
    except Exception:
        log.exception("chillpay redirect for %s failed", ref)
        return _confirmation("credit-card", booking_id, "error",
                             "Internal server error")
    if ok:
        return _confirmation("credit-card", booking_id, "success")
    return _confirmation("credit-card", booking_id, "failed",
                         q.get("Message") or "Payment failed")


@router.post("/api/checkout/chillpay/callback")
async def chillpay_legacy_notify(request: Request,
                                 db: AsyncSession = Depends(get_db)):
    log.warning("POST to chillpay/callback, the webhook should be used")
    form = await request.form()
    order_no = form.get("orderNo")
    if not order_no:
        return ORJSONResponse(
            {"status": "error", "message": "Missing orderNo parameter"},
            status_code=400,
        )
    if form.get("status") == "cancel":
        booking = await db.scalar(
            select(Booking).where(Booking.payment_order_no == order_no)
            .limit(1)
        )
        if booking is not None:
            _settle(booking, PAYMENT_CANCELLED, authoritative=False)
            await db.commit()
    return {"status": "success"}


# ----------------------------
# PayPal
# ----------------------------
def paypal_client() -> PayPalClient:
    return PayPalClient(
        config.PAYPAL_API_URL,
        config.PAYPAL_CLIENT_ID,
        config.PAYPAL_SECRET,
        currency=config.PAYPAL_CURRENCY,
        brand_name=config.PAYPAL_BRAND_NAME,
    )


@router.post("/api/checkout/paypal")
async def paypal_initiate(
    data: PayPalIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(http_client),
):
    if not config.paypal_configured():
        log.error("missing PayPal configuration")
        return _error(500, "Missing payment gateway configuration")

    booking = await db.get(Booking, data.bookingId)
    if booking is None:
        return _error(404, "Booking not found")
    customer = await db.get(Customer, booking.customer_id)
    if customer is None:
        log.error("customer %s of booking %s is missing",
                  booking.customer_id, booking.id)
        return _error(404, "Customer record not found")

    customer.name = data.customerName
    customer.email = data.email
    customer.phone = data.phone or None
    booking.customer_name_snapshot = data.customerName
    booking.customer_email_snapshot = data.email
    booking.customer_phone_snapshot = data.phone or None
    booking.payment_status = PAYMENT_PROCESSING
    booking.payment_order_no = paypal_order_no(booking.id, now_ms())
    await db.commit()

    origin = _origin(request)
    client = paypal_client()
    try:
        token = await client.access_token(http)
        order = await client.create_order(
            http, token,
            amount=booking.total_amount,
            reference_id=booking.id,
            custom_id=booking.payment_order_no,
            description=(
                data.eventTitle or f"Booking for event {booking.event_id}"
            ),
            return_url=f"{origin}/api/checkout/paypal/callback",
            cancel_url=f"{origin}{CONFIRMATION}?" + urlencode({
                "paymentMethod": "paypal",
                "bookingId": booking.id,
                "status": "failed",
                "message": "Payment cancelled",
            }),
        )
        return {"paymentUrl": client.approval_url(order)}
    except (PayPalError, httpx.HTTPError) as e:
        log.error("paypal initiation for %s failed: %s", booking.id, e)
        return _error(500, "Failed to process payment request",
                      details=str(e))


@router.get("/api/checkout/paypal/callback")
async def paypal_return(
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(http_client),
):
    if not token:
        log.error("paypal callback without order token")
        return _confirmation("paypal", None, "error",
                             "Missing payment information")
    booking_id = None
    try:
        client = paypal_client()
        access = await client.access_token(http)
        capture = await client.capture_order(http, access, token)
        ok = capture.get("status") == "COMPLETED"
        booking_id, capture_id = capture_details(capture)
        booking = await db.get(Booking, booking_id) if booking_id else None
        if booking is None:
            log.error("paypal order %s names no known booking", token)
        else:
            _settle(booking, PAYMENT_COMPLETED if ok else PAYMENT_FAILED,
                    authoritative=True)
            booking.payment_transaction_id = capture_id
            booking.payment_method = "paypal"
            await db.commit()
    except Exception:
        log.exception("paypal capture for order %s failed", token)
        return _confirmation("paypal", booking_id, "error",
                             "Payment processing failed")
    if ok:
        return _confirmation("paypal", booking_id, "success")
    return _confirmation("paypal", booking_id, "failed",
                         "Payment was not completed")


# ----------------------------
# Other providers and partner bookings
# ----------------------------
@router.post("/api/checkout/payment-callback")
async def provider_callback(
    request: Request,
    source: Optional[str] = None,
    bookingId: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if not bookingId:
        return _error(400, "Missing bookingId parameter")
    if source != "modernpay":
        return _error(400, f"Unknown payment source: {source}")
    try:
        body = await request.json()
    except ValueError:
        return _error(400, "Invalid JSON body")
    if not isinstance(body, dict):
        return _error(400, "Invalid JSON body")
    booking = await db.get(Booking, bookingId)
    if booking is None:
        return _error(404, "Booking not found")

    ok = str(body.get("status")) in ("success", "0")
    _settle(booking, PAYMENT_COMPLETED if ok else PAYMENT_FAILED,
            authoritative=True)
    booking.payment_transaction_id = body.get("transactionId")
    booking.payment_method = body.get("paymentMethod") or "modernpay"
    booking.payment_bank_code = body.get("bankCode")
    booking.payment_bank_ref_code = body.get("bankRefCode")
    booking.payment_date = body.get("paymentDate")
    await db.commit()
    log.info("%s callback: booking %s -> %s",
             source, booking.id, booking.payment_status)
    return {
        "success": True,
        "message": (
            f"Payment {'completed' if ok else 'failed'} and booking updated"
        ),
        "bookingId": booking.id,
    }


@router.get("/api/checkout/payment-callback")
async def provider_redirect(
    bookingId: Optional[str] = None,
    status: str = "success",
    db: AsyncSession = Depends(get_db),
):
    if not bookingId:
        return _error(400, "Missing bookingId parameter")
    ok = status == "success"
    booking = await db.get(Booking, bookingId)
    if booking is not None:
        _settle(booking, PAYMENT_COMPLETED if ok else PAYMENT_FAILED,
                authoritative=False)
        await db.commit()
    page = "payment-success" if ok else "payment-failed"
    return RedirectResponse(
        url=f"/checkout/{page}?" + urlencode({"bookingId": bookingId}),
        status_code=302,
    )


@router.post("/api/external-booking")
async def external_booking(data: bookings.ExternalBookingIn,
                           request: Request,
                           db: AsyncSession = Depends(get_db)):
    try:
        return await bookings.create_external_booking(
            db, data, _origin(request)
        )
    except ProcedureError as e:
        details = e.message
        error = (
            "Missing required fields" if e.status_code == 400
            else "Failed to process booking"
        )
        return _error(e.status_code, error, details=details)


@router.post("/api/bookings")
async def guest_booking(data: bookings.BookingIn,
                        db: AsyncSession = Depends(get_db)):
    booking = await bookings.create_booking(db, data)
    return {
        "success": True,
        "bookingId": booking.id,
        "customerId": booking.customer_id,
        "totalAmount": booking.total_amount,
        "message": "Booking created successfully",
    }
