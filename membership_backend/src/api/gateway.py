"""
Cashfree payment-gateway client used by the gateway-order payment flow.

Credentials and the base URL are selected by CASHFREE_ENV ("sandbox" or "production").
"""
from typing import Optional

import requests
from loguru import logger

from src.api import config
from src.api.errors import GatewayError

CASHFREE_BASE_URLS = {
    "sandbox": "https://sandbox.cashfree.com/pg",
    "production": "https://api.cashfree.com/pg",
}


class CashfreeGateway:
    """Thin wrapper over the Cashfree PG orders API."""

    def __init__(self, environment: str, app_id: Optional[str], secret_key: Optional[str],
                 api_version: str = config.CASHFREE_API_VERSION,
                 timeout: int = config.CASHFREE_TIMEOUT_SECONDS):
        if environment not in CASHFREE_BASE_URLS:
            raise ValueError(f"Unknown Cashfree environment: {environment}")
        self.environment = environment
        self.base_url = CASHFREE_BASE_URLS[environment]
        self.app_id = app_id
        self.secret_key = secret_key
        self.api_version = api_version
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "CashfreeGateway":
        if config.CASHFREE_ENV == "production":
            return cls("production", config.CASHFREE_PROD_APP_ID, config.CASHFREE_PROD_SECRET)
        return cls("sandbox", config.CASHFREE_SANDBOX_APP_ID, config.CASHFREE_SANDBOX_SECRET)

    def _headers(self) -> dict:
        return {
            "x-client-id": self.app_id or "",
            "x-client-secret": self.secret_key or "",
            "x-api-version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def create_order(self, order_id: str, amount: float, currency: str, customer_id: str,
                     customer_name: str, customer_email: str, customer_phone: str,
                     return_url: str, note: Optional[str] = None) -> dict:
        """
        Create a gateway order and return the gateway's order document
        (order_id, order_status, payment_session_id, ...).
        """
        payload = {
            "order_id": order_id,
            "order_amount": round(amount, 2),
            "order_currency": currency,
            "customer_details": {
                "customer_id": customer_id,
                "customer_name": customer_name,
                "customer_email": customer_email,
                "customer_phone": customer_phone,
            },
            "order_meta": {"return_url": f"{return_url}?order_id={order_id}"},
        }
        if note:
            payload["order_note"] = note

        url = f"{self.base_url}/orders"
        logger.info("Creating {} gateway order {} for {} {}", self.environment, order_id, amount, currency)
        try:
            resp = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout:
            logger.error("Gateway timeout creating order {}", order_id)
            raise GatewayError("Payment gateway timeout", status_code=504)
        except requests.ConnectionError:
            logger.error("Gateway unreachable creating order {}", order_id)
            raise GatewayError("Unable to reach payment gateway", status_code=503)

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code not in (200, 201):
            message = body.get("message") or f"Gateway responded with HTTP {resp.status_code}"
            logger.error("Gateway rejected order {}: {}", order_id, message)
            raise GatewayError(f"Failed to create order: {message}")
        return body


# PUBLIC_INTERFACE
def get_gateway() -> CashfreeGateway:
    """FastAPI dependency returning the configured gateway client."""
    return CashfreeGateway.from_config()
