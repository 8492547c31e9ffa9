import os
import sys


# ----------------------------
# Config & Constants
# ----------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", None)

if DATABASE_URL is None:
    print("NEED DATABASE_URL! e.g. sqlite:///./thaiboxinghub.db")
    sys.exit(1)

SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "supasecret")

PUBLIC_BASE_URL = os.environ.get(
    "PUBLIC_BASE_URL", "http://localhost:8000"
).rstrip("/")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "10.0"))
CRON_SECRET = os.environ.get("CRON_SECRET") or None

# ChillPay
CHILLPAY_MERCHANT_CODE = os.environ.get("CHILLPAY_MERCHANT_CODE")
CHILLPAY_API_KEY = os.environ.get("CHILLPAY_API_KEY")
CHILLPAY_MD5_SECRET = os.environ.get("CHILLPAY_MD5_SECRET")
CHILLPAY_API_ENDPOINT = os.environ.get("CHILLPAY_API_ENDPOINT")
# ChillPay rejects many customer phone formats, so the company number is sent
CHILLPAY_PHONE_NUMBER = os.environ.get("CHILLPAY_PHONE_NUMBER", "0815350971")

# PayPal
PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID")
PAYPAL_SECRET = os.environ.get("PAYPAL_SECRET")
PAYPAL_API_URL = (os.environ.get("PAYPAL_API_URL") or "").rstrip("/") or None
PAYPAL_CURRENCY = os.environ.get("PAYPAL_CURRENCY", "THB")
PAYPAL_BRAND_NAME = os.environ.get("PAYPAL_BRAND_NAME", "ThaiBoxingHub")

PAGE_SIZES = (10, 20, 50, 100)


def chillpay_configured() -> bool:
    return all((
        CHILLPAY_MERCHANT_CODE, CHILLPAY_API_KEY,
        CHILLPAY_MD5_SECRET, CHILLPAY_API_ENDPOINT,
    ))


def paypal_configured() -> bool:
    return all((PAYPAL_CLIENT_ID, PAYPAL_SECRET, PAYPAL_API_URL))
