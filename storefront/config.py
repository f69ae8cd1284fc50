import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173").rstrip("/")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))
STRIPE_MAX_NETWORK_RETRIES = int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2"))

CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "usd")
SHIPPING_COUNTRIES = [
    c.strip().upper()
    for c in os.getenv("SHIPPING_COUNTRIES", "US,CA,GB,KE").split(",")
    if c.strip()
]

# Amounts in cents
GIFT_COUPON_THRESHOLD = 20000
GIFT_COUPON_PREFIX = "GIFT"
GIFT_COUPON_PERCENT = 10
GIFT_COUPON_VALID_DAYS = 30


def is_development() -> bool:
    return APP_ENV == "development"


def stripe_webhook_secret():
    return os.getenv("STRIPE_WEBHOOK_SECRET")


def jwt_secret():
    return os.getenv("JWT_SECRET")
