"""Tests for the carrier adapter abstraction."""

import base64
import hashlib
import hmac
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
import requests
from fulfillment.carrier import get_carrier, reset_carrier
from fulfillment.carrier.fake_adapter import FakeCarrier
from fulfillment.carrier.melhor_envio_adapter import PRODUCTION_URL, SANDBOX_URL, MelhorEnvioCarrier
from fulfillment.carrier.port import CarrierError, CarrierTrackingEvent, ShipmentRequest, tracking_event_from_dict
from shared.clock import FrozenClock, set_clock

REQUEST = ShipmentRequest(
    order_id="ord-001",
    service_code="1",
    recipient={"name": "Maria Silva", "phone": "11999990000", "email": "maria@example.com", "document": "123"},
    address={
        "street": "Rua das Flores",
        "number": "100",
        "neighborhood": "Centro",
        "city": "Sao Paulo",
        "state_abbr": "SP",
        "postal_code": "01001-000",
    },
    package={"weight": 1.2, "length": 20.0, "width": 15.0, "height": 10.0},
    products=[{"name": "Keyboard", "quantity": 1, "unitary_value": 29990}],
    insurance_value=29990,
)


class TestFakeCarrier:
    def test_label_pipeline_success(self):
        carrier = FakeCarrier()
        cart = carrier.add_to_cart(REQUEST)
        purchase = carrier.checkout(cart.shipment_id)
        label = carrier.generate_label(purchase.shipment_id)

        assert cart.success and cart.shipment_id.startswith("cart-")
        assert purchase.success and purchase.shipment_id.startswith("ship-")
        assert label.success
        assert label.label_url.endswith(f"{purchase.shipment_id}.pdf")
        assert label.tracking_number.startswith("FAKE")
        assert label.tracking_number.endswith("BR")

    def test_configure_failure_fails_everything(self):
        carrier = FakeCarrier()
        carrier.configure(should_succeed=False, failure_reason="Service unavailable")

        result = carrier.add_to_cart(REQUEST)
        assert not result.success
        assert result.error_message == "Service unavailable"
        assert carrier.cancel_shipment("ship-1") is False
        with pytest.raises(CarrierError):
            carrier.get_tracking_history("ship-1")

    def test_fail_for_limited_times(self):
        carrier = FakeCarrier()
        carrier.fail("checkout", reason="Timeout", times=2)

        assert carrier.checkout("cart-1").error_message == "Timeout"
        assert not carrier.checkout("cart-1").success
        assert carrier.checkout("cart-1").success

    def test_fail_only_named_operation(self):
        carrier = FakeCarrier()
        carrier.fail("generate_label")
        assert carrier.add_to_cart(REQUEST).success
        assert not carrier.generate_label("ship-1").success

    def test_fail_unknown_operation(self):
        with pytest.raises(ValueError):
            FakeCarrier().fail("teleport")

    def test_calls_are_recorded(self):
        carrier = FakeCarrier()
        carrier.add_to_cart(REQUEST)
        carrier.checkout("cart-1")
        assert [c["method"] for c in carrier.calls] == ["add_to_cart", "checkout"]
        assert carrier.calls_to("checkout") == [{"method": "checkout", "cart_id": "cart-1"}]

    def test_tracking_history(self):
        carrier = FakeCarrier()
        event = CarrierTrackingEvent(
            event_code="E1",
            status="posted",
            description="Objeto postado",
            event_at=datetime(2024, 6, 1, tzinfo=UTC),
        )
        carrier.set_tracking("ship-1", [event])
        assert carrier.get_tracking_history("ship-1") == [event]
        assert carrier.get_tracking_history("ship-2") == []

    def test_verify_webhook_signature(self):
        carrier = FakeCarrier()
        assert carrier.verify_webhook_signature(b"{}", "") is True
        carrier.accept_signatures = False
        assert carrier.verify_webhook_signature(b"{}", "any-sig") is False


class TestCarrierRegistry:
    def test_fake_by_default(self, monkeypatch):
        monkeypatch.delenv("CARRIER_ADAPTER", raising=False)
        reset_carrier()
        assert isinstance(get_carrier(), FakeCarrier)

    def test_melhor_envio_from_env(self, monkeypatch):
        monkeypatch.setenv("CARRIER_ADAPTER", "melhor_envio")
        monkeypatch.setenv("MELHOR_ENVIO_TOKEN", "token-123")
        monkeypatch.setenv("MELHOR_ENVIO_SANDBOX", "false")
        reset_carrier()
        carrier = get_carrier()
        assert isinstance(carrier, MelhorEnvioCarrier)
        assert carrier.token == "token-123"
        assert carrier.base_url == PRODUCTION_URL

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("CARRIER_ADAPTER", "pigeon")
        reset_carrier()
        with pytest.raises(ValueError):
            get_carrier()


class TestTrackingEventFromDict:
    def test_reads_carrier_fields(self):
        event = tracking_event_from_dict(
            {
                "code": "BDE-01",
                "status": "delivered",
                "description": "Objeto entregue",
                "date": "2024-06-03T14:30:00-03:00",
                "city": "Sao Paulo",
                "state": "SP",
            }
        )
        assert event.event_code == "BDE-01"
        assert event.status == "delivered"
        assert event.event_at == datetime(2024, 6, 3, 17, 30, tzinfo=UTC)
        assert event.city == "Sao Paulo"
        assert event.country == "BR"
        assert event.raw["code"] == "BDE-01"

    def test_naive_dates_are_utc(self):
        event = tracking_event_from_dict({"status": "posted", "date": "2024-06-01 08:00:00"})
        assert event.event_at == datetime(2024, 6, 1, 8, 0, tzinfo=UTC)

    def test_defaults(self):
        event = tracking_event_from_dict({})
        assert event.status == "unknown"
        assert event.description == "unknown"
        assert event.event_code == ""
        assert event.event_at.tzinfo is not None

    @pytest.mark.parametrize("date", [None, "", "yesterday"])
    def test_missing_or_unreadable_date_uses_clock(self, date):
        clock = FrozenClock(at=datetime(2024, 6, 2, 10, 0, tzinfo=UTC))
        set_clock(clock)
        event = tracking_event_from_dict({"code": "RO-01", "status": "in_transit", "date": date})
        assert event.event_at == clock.now()


def _response(data, status_code=200):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = data
    response.text = str(data)
    return response


@pytest.fixture()
def session():
    return MagicMock()


@pytest.fixture()
def melhor_envio(session):
    return MelhorEnvioCarrier(
        token="token-123",
        sandbox=True,
        origin={"name": "Loja", "postal_code": "01310100"},
        webhook_secret="secret",
        session=session,
    )


class TestMelhorEnvioCarrier:
    def test_uses_sandbox_url(self, melhor_envio):
        assert melhor_envio.base_url == SANDBOX_URL

    def test_add_to_cart(self, melhor_envio, session):
        session.post.return_value = _response({"id": "cart-abc", "protocol": "ORD-1"})

        result = melhor_envio.add_to_cart(REQUEST)

        assert result.success
        assert result.shipment_id == "cart-abc"
        args, kwargs = session.post.call_args
        assert args[0] == f"{SANDBOX_URL}/api/v2/me/cart"
        assert kwargs["headers"]["Authorization"] == "Bearer token-123"
        assert kwargs["timeout"] == 30
        payload = kwargs["json"]
        assert payload["service"] == "1"
        assert payload["to"]["postal_code"] == "01001000"
        assert payload["to"]["district"] == "Centro"
        assert payload["from"]["name"] == "Loja"
        assert payload["volumes"][0]["weight"] == 1.2
        assert payload["options"]["insurance_value"] == 299.9
        assert payload["options"]["tags"] == [{"tag": "ord-001"}]

    def test_add_to_cart_http_error(self, melhor_envio, session):
        session.post.return_value = _response({"message": "Unauthenticated."}, status_code=401)

        result = melhor_envio.add_to_cart(REQUEST)

        assert not result.success
        assert "Unauthenticated." in result.error_message

    def test_add_to_cart_timeout(self, melhor_envio, session):
        session.post.side_effect = requests.Timeout("read timed out")
        result = melhor_envio.add_to_cart(REQUEST)
        assert not result.success
        assert "timed out" in result.error_message

    def test_checkout(self, melhor_envio, session):
        session.post.return_value = _response({"purchase": {"id": "pur-1", "protocol": "PRO-1"}})
        result = melhor_envio.checkout("cart-abc")
        assert result.success
        assert result.shipment_id == "pur-1"
        assert session.post.call_args.kwargs["json"] == {"orders": ["cart-abc"]}

    def test_checkout_without_purchase_id(self, melhor_envio, session):
        session.post.return_value = _response({"purchase": {}})
        assert not melhor_envio.checkout("cart-abc").success

    def test_generate_label(self, melhor_envio, session):
        session.post.return_value = _response(
            {"pur-1": {"tracking": "ME123456789BR", "print": {"url": "https://me.example.com/l.pdf"}}}
        )
        result = melhor_envio.generate_label("pur-1")
        assert result.success
        assert result.tracking_number == "ME123456789BR"
        assert result.label_url == "https://me.example.com/l.pdf"

    def test_generate_label_without_tracking(self, melhor_envio, session):
        session.post.return_value = _response({"pur-1": {"status": "pending"}})
        assert not melhor_envio.generate_label("pur-1").success

    def test_print_label(self, melhor_envio, session):
        session.post.return_value = _response({"url": "https://me.example.com/print/1"})
        result = melhor_envio.print_label("pur-1")
        assert result.label_url == "https://me.example.com/print/1"

    def test_cancel_shipment(self, melhor_envio, session):
        session.post.return_value = _response({"pur-1": {"canceled": True}})
        assert melhor_envio.cancel_shipment("pur-1", "customer gave up") is True
        order = session.post.call_args.kwargs["json"]["order"]
        assert order == {"id": "pur-1", "reason_id": 2, "description": "customer gave up"}

    def test_cancel_shipment_refused(self, melhor_envio, session):
        session.post.return_value = _response({"error": "already posted"}, status_code=422)
        assert melhor_envio.cancel_shipment("pur-1") is False

    def test_tracking_history(self, melhor_envio, session):
        session.post.return_value = _response(
            {
                "pur-1": {
                    "events": [
                        {"code": "PO-01", "status": "posted", "date": "2024-06-01T10:00:00Z"},
                        {"code": "RO-01", "status": "in_transit", "date": "2024-06-02T10:00:00Z", "city": "Campinas"},
                    ]
                }
            }
        )
        events = melhor_envio.get_tracking_history("pur-1")
        assert [e.event_code for e in events] == ["PO-01", "RO-01"]
        assert events[1].city == "Campinas"

    def test_tracking_history_failure_raises(self, melhor_envio, session):
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(CarrierError) as exc_info:
            melhor_envio.get_tracking_history("pur-1")
        assert exc_info.value.operation == "get_tracking_history"
        assert exc_info.value.shipment_id == "pur-1"

    def test_webhook_signature(self, melhor_envio):
        body = b'{"shipment_id": "pur-1"}'
        signature = base64.b64encode(hmac.new(b"secret", body, hashlib.sha256).digest()).decode()
        assert melhor_envio.verify_webhook_signature(body, signature) is True
        assert melhor_envio.verify_webhook_signature(body, "forged") is False
        assert melhor_envio.verify_webhook_signature(body, "") is False

    def test_webhook_signature_without_secret(self, session):
        carrier = MelhorEnvioCarrier(token="t", session=session)
        assert carrier.verify_webhook_signature(b"{}", "anything") is False
