import json
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from app.config import EzUpiConfig, MobalegendsConfig, Settings
from app.errors import (
    ConfigurationError,
    GatewayRejected,
    GatewayResponseInvalid,
    GatewayUnreachable,
)
from app.gateways import (
    CustomerInfo,
    EzUpiAdapter,
    MerchantMetadata,
    MobalegendsAdapter,
    build_gateways,
)
from app.models import PaymentStatus

CUSTOMER = CustomerInfo(name="Asha", email="asha@example.com", phone="9876543210", address="Pune")
METADATA = MerchantMetadata(transaction_id="TXN_1", description="Order #1", notes="gift")


def responder(status_code=200, body=None, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request)
        if isinstance(body, Exception):
            raise body
        content = body if isinstance(body, (bytes, str)) else json.dumps(body)
        return httpx.Response(status_code, content=content)
    return httpx.MockTransport(handler)


def mobalegends(transport):
    config = MobalegendsConfig(api_key="mk", base_url="https://mob.test/api", merchant_name="Shop")
    return MobalegendsAdapter(config, transport=transport)


def ezupi(transport):
    config = EzUpiConfig(api_key="ek", base_url="https://ez.test/api", callback_url="https://shop.test/cb")
    return EzUpiAdapter(config, transport=transport)


def test_mobalegends_requires_api_key():
    with pytest.raises(ConfigurationError):
        MobalegendsAdapter(MobalegendsConfig(api_key=None))


def test_ezupi_requires_api_key():
    with pytest.raises(ConfigurationError):
        EzUpiAdapter(EzUpiConfig(api_key=""))


def test_build_gateways_only_builds_enabled(monkeypatch):
    monkeypatch.setenv("ENABLED_GATEWAYS", "ezupi")
    monkeypatch.setenv("EZ_UPI_API_KEY", "ek")
    monkeypatch.delenv("MOBALEGENDS_API_KEY", raising=False)

    gateways = build_gateways(Settings.from_env())

    assert list(gateways) == ["ezupi"]


def test_build_gateways_fails_fast_on_missing_credentials(monkeypatch):
    monkeypatch.setenv("ENABLED_GATEWAYS", "mobalegends,ezupi")
    monkeypatch.setenv("EZ_UPI_API_KEY", "ek")
    monkeypatch.delenv("MOBALEGENDS_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        build_gateways(Settings.from_env())


def test_mobalegends_create_order_sends_json():
    calls = []
    adapter = mobalegends(responder(body={
        "success": True,
        "data": {"transactionId": "MOB-42", "paymentUrl": "upi://pay?tr=MOB-42"},
    }, calls=calls))

    order = adapter.create_order(Decimal("500.00"), CUSTOMER, METADATA)

    assert order.external_order_id == "MOB-42"
    assert order.payment_url == "upi://pay?tr=MOB-42"
    request = calls[0]
    assert request.url == "https://mob.test/api/payments/create"
    sent = json.loads(request.content)
    assert sent["apiKey"] == "mk"
    assert sent["amount"] == 500.0
    assert sent["client_txn_id"] == "TXN_1"
    assert sent["customerMobile"] == "9876543210"
    assert sent["merchantName"] == "Shop"


def test_mobalegends_create_order_rejected():
    adapter = mobalegends(responder(body={"success": False, "message": "Invalid API key"}))

    with pytest.raises(GatewayRejected, match="Invalid API key"):
        adapter.create_order(Decimal("10.00"), CUSTOMER, METADATA)


def test_mobalegends_client_error_is_rejection():
    adapter = mobalegends(responder(status_code=400, body={"message": "amount too low"}))

    with pytest.raises(GatewayRejected, match="amount too low"):
        adapter.create_order(Decimal("1.00"), CUSTOMER, METADATA)


def test_server_error_is_unreachable():
    adapter = mobalegends(responder(status_code=502, body="Bad Gateway"))

    with pytest.raises(GatewayUnreachable):
        adapter.query_status("MOB-42")


def test_transport_error_is_unreachable():
    adapter = ezupi(responder(body=httpx.ConnectError("connection refused")))

    with pytest.raises(GatewayUnreachable):
        adapter.create_order(Decimal("10.00"), CUSTOMER, METADATA)


@pytest.mark.parametrize("body", [
    {"status": "SUCCESS", "utr": "UTR1"},
    {"success": True, "data": {"status": "SUCCESS", "utr": 1}},
])
def test_mobalegends_status_shapes(body):
    adapter = mobalegends(responder(body=body))

    observation = adapter.query_status("MOB-42")

    assert observation.external_order_id == "MOB-42"
    assert observation.status is PaymentStatus.COMPLETED
    assert observation.raw_status == "SUCCESS"
    assert observation.utr in ("UTR1", "1")


@pytest.mark.parametrize("body", [
    {"success": True},
    {"data": {"state": "SUCCESS"}},
    ["SUCCESS"],
    "not json",
])
def test_mobalegends_unknown_status_shape_is_invalid(body):
    adapter = mobalegends(responder(body=body))

    with pytest.raises(GatewayResponseInvalid):
        adapter.query_status("MOB-42")


@pytest.mark.parametrize("raw,expected", [
    ("SUCCESS", PaymentStatus.COMPLETED),
    ("FAILED", PaymentStatus.FAILED),
    ("CANCELLED", PaymentStatus.FAILED),
    ("CREATED", PaymentStatus.PENDING),
    ("something-new", PaymentStatus.PENDING),
])
def test_mobalegends_status_mapping(raw, expected):
    adapter = mobalegends(responder(body={"status": raw}))

    assert adapter.query_status("MOB-42").status is expected


def test_mobalegends_parse_webhook():
    adapter = mobalegends(None)

    observation = adapter.parse_webhook({"transactionId": "MOB-42", "status": "FAILED", "amount": 12.5})

    assert observation.status is PaymentStatus.FAILED
    assert observation.amount == Decimal("12.5")
    assert adapter.parse_webhook({"status": "FAILED"}) is None


def test_ezupi_create_order_sends_form():
    calls = []
    adapter = ezupi(responder(body={
        "status": True,
        "message": "Order Created",
        "result": {"orderId": "EZ-7", "payment_url": "https://ez.test/pay/EZ-7"},
    }, calls=calls))

    order = adapter.create_order(Decimal("500.00"), CUSTOMER, METADATA)

    assert order.external_order_id == "EZ-7"
    request = calls[0]
    assert request.url == "https://ez.test/api/create-order"
    assert request.headers["Authorization"] == "Bearer ek"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["500.00"]
    assert form["order_id"] == ["TXN_1"]
    assert form["redirect_url"] == ["https://shop.test/cb"]


def test_ezupi_create_order_rejected():
    adapter = ezupi(responder(body={"status": False, "message": "Duplicate order"}))

    with pytest.raises(GatewayRejected, match="Duplicate order"):
        adapter.create_order(Decimal("10.00"), CUSTOMER, METADATA)


@pytest.mark.parametrize("result,expected", [
    ({"txnStatus": "SUCCESS", "utr": "4455"}, PaymentStatus.COMPLETED),
    ({"status": "FAILURE"}, PaymentStatus.FAILED),
    ({"status": "SCANNING"}, PaymentStatus.PENDING),
])
def test_ezupi_query_status(result, expected):
    calls = []
    adapter = ezupi(responder(body={"status": True, "result": result}, calls=calls))

    observation = adapter.query_status("EZ-7")

    assert observation.status is expected
    assert parse_qs(calls[0].content.decode())["order_id"] == ["EZ-7"]


def test_ezupi_query_status_rejected():
    adapter = ezupi(responder(body={"status": False, "message": "Order not found"}))

    with pytest.raises(GatewayRejected):
        adapter.query_status("EZ-7")


def test_ezupi_does_not_take_webhooks():
    adapter = ezupi(None)

    assert adapter.supports_webhook is False
    with pytest.raises(NotImplementedError):
        adapter.parse_webhook({"transactionId": "EZ-7", "status": "SUCCESS"})


def test_mobalegends_status_query_rejected():
    adapter = mobalegends(responder(body={"success": False, "message": "Transaction not found"}))

    with pytest.raises(GatewayRejected, match="Transaction not found"):
        adapter.query_status("MOB-42")
