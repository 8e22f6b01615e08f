import pytest
import requests

from src.api import config, gateway as gateway_module
from src.api.errors import GatewayError
from src.api.gateway import CashfreeGateway


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


@pytest.fixture
def captured(monkeypatch):
    calls = []

    def respond(status_code=200, body=None, exc=None):
        def fake_post(url, json=None, headers=None, timeout=None):
            calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
            if exc:
                raise exc
            return FakeResponse(status_code, body)
        monkeypatch.setattr(gateway_module.requests, "post", fake_post)
        return calls
    return respond


def make_order(gw):
    return gw.create_order(
        order_id="PAY_1_abcd1234",
        amount=1180,
        currency="INR",
        customer_id="user_1",
        customer_name="Ravi",
        customer_email="ravi@welin.in",
        customer_phone="6123456789",
        return_url="https://welin.in/payment/status",
    )


def test_sandbox_order(captured):
    calls = captured(body={"order_id": "PAY_1_abcd1234", "payment_session_id": "sess", "order_status": "ACTIVE"})
    gw = CashfreeGateway("sandbox", "app-id", "secret")

    order = make_order(gw)

    assert order["payment_session_id"] == "sess"
    call = calls[0]
    assert call["url"] == "https://sandbox.cashfree.com/pg/orders"
    assert call["headers"]["x-client-id"] == "app-id"
    assert call["headers"]["x-client-secret"] == "secret"
    assert call["headers"]["x-api-version"] == config.CASHFREE_API_VERSION
    assert call["json"]["order_meta"]["return_url"] == "https://welin.in/payment/status?order_id=PAY_1_abcd1234"
    assert call["json"]["customer_details"]["customer_phone"] == "6123456789"


def test_production_base_url(captured):
    calls = captured(status_code=201, body={"order_id": "x"})
    make_order(CashfreeGateway("production", "prod-id", "prod-secret"))
    assert calls[0]["url"] == "https://api.cashfree.com/pg/orders"


def test_from_config_selects_credentials(monkeypatch):
    monkeypatch.setattr(config, "CASHFREE_ENV", "production")
    monkeypatch.setattr(config, "CASHFREE_PROD_APP_ID", "prod-id")
    assert CashfreeGateway.from_config().app_id == "prod-id"

    monkeypatch.setattr(config, "CASHFREE_ENV", "sandbox")
    monkeypatch.setattr(config, "CASHFREE_SANDBOX_APP_ID", "sandbox-id")
    gw = CashfreeGateway.from_config()
    assert (gw.environment, gw.app_id) == ("sandbox", "sandbox-id")


def test_unknown_environment():
    with pytest.raises(ValueError):
        CashfreeGateway("staging", "id", "secret")


def test_gateway_rejection(captured):
    captured(status_code=400, body={"message": "order_amount invalid"})
    with pytest.raises(GatewayError) as err:
        make_order(CashfreeGateway("sandbox", "id", "secret"))
    assert err.value.status_code == 502
    assert "order_amount invalid" in err.value.message


def test_gateway_timeout(captured):
    captured(exc=requests.Timeout())
    with pytest.raises(GatewayError) as err:
        make_order(CashfreeGateway("sandbox", "id", "secret"))
    assert err.value.status_code == 504


def test_gateway_unreachable(captured):
    captured(exc=requests.ConnectionError())
    with pytest.raises(GatewayError) as err:
        make_order(CashfreeGateway("sandbox", "id", "secret"))
    assert err.value.status_code == 503


def test_gateway_error_surfaces_through_api(client, make_user, headers, monkeypatch):
    captured_calls = []

    def failing_post(url, json=None, headers=None, timeout=None):
        captured_calls.append(url)
        return FakeResponse(500)
    monkeypatch.setattr(gateway_module.requests, "post", failing_post)

    resp = client.post("/api/payments/gateway/order", headers=headers(make_user()), json={
        "amount": 100, "customer_name": "Ravi", "customer_email": "ravi@welin.in", "customer_phone": "6123456789",
    })
    assert resp.status_code == 502
    assert resp.json()["status"] == "error"
    assert captured_calls
