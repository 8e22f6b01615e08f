"""
Environment-driven configuration for the Welin membership backend.

Values are read once at import time (after loading an optional .env file).
"""
import os

from dotenv import load_dotenv

load_dotenv()

APP_ENV = os.getenv("APP_ENV", "development")
PORT = int(os.getenv("PORT", "5000"))

# Use env vars for JWT secret/key expiration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "devsecretkey")
JWT_ALGORITHM = "HS256"
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = 60

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./welin.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR")

CORS_ORIGINS = [
    "https://welin.in",
    "https://portal.welin.in",
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
    "http://localhost:8080",
]

# ---- Payment gateway (Cashfree PG) ----
CASHFREE_ENV = os.getenv("CASHFREE_ENV", "sandbox")
CASHFREE_SANDBOX_APP_ID = os.getenv("CASHFREE_SANDBOX_APP_ID")
CASHFREE_SANDBOX_SECRET = os.getenv("CASHFREE_SANDBOX_SECRET")
CASHFREE_PROD_APP_ID = os.getenv("CASHFREE_PROD_APP_ID")
CASHFREE_PROD_SECRET = os.getenv("CASHFREE_PROD_SECRET")
CASHFREE_API_VERSION = os.getenv("CASHFREE_API_VERSION", "2023-08-01")
CASHFREE_TIMEOUT_SECONDS = 20

PAYMENT_RETURN_URL = os.getenv("PAYMENT_RETURN_URL", "https://welin.in/payment/status")
PAYMENT_LINK_BASE_URL = os.getenv("PAYMENT_LINK_BASE_URL", "https://welin.in/pay")

# ---- Pending payment expiry ----
PAYMENT_CLEANUP_ENABLED = os.getenv("PAYMENT_CLEANUP_ENABLED", "true").lower() == "true"
PAYMENT_CLEANUP_INTERVAL_SECONDS = int(os.getenv("PAYMENT_CLEANUP_INTERVAL_SECONDS", "60"))
PENDING_PAYMENT_TTL_MINUTES = 5
INTENT_EXPIRY_HOURS = 24

WELIN_ID_PREFIX = os.getenv("WELIN_ID_PREFIX", "WELIN")


def is_production() -> bool:
    return APP_ENV == "production"
