"""Tests for the payment gateway adapters and registry."""

import json
import time
from unittest.mock import MagicMock

import pytest
import requests
from payments.gateway import get_gateway, register_gateway, reset_gateways
from payments.gateway.fake_adapter import TEST_SIGNATURE, FakeGateway
from payments.gateway.mercadopago_adapter import MercadoPagoGateway, map_status
from payments.gateway.port import GatewayUnavailableError, MalformedPayloadError, UnknownGatewayError
from payments.payment.payment import PaymentStatus


class TestGatewayRegistry:
    def test_fake_is_built_by_default(self):
        reset_gateways()
        assert isinstance(get_gateway("fake"), FakeGateway)

    def test_same_instance_is_returned(self):
        assert get_gateway("fake") is get_gateway("fake")

    def test_unknown_gateway_raises(self):
        with pytest.raises(UnknownGatewayError) as exc_info:
            get_gateway("paypal")
        assert exc_info.value.name == "paypal"

    def test_register_overrides(self):
        custom = FakeGateway(signature="custom")
        register_gateway("mercadopago", custom)
        assert get_gateway("mercadopago") is custom


class TestFakeGateway:
    def test_accepts_configured_signature(self):
        gateway = FakeGateway()
        assert gateway.validate_signature(b"{}", TEST_SIGNATURE)

    def test_rejects_other_or_missing_signature(self):
        gateway = FakeGateway()
        assert not gateway.validate_signature(b"{}", "forged")
        assert not gateway.validate_signature(b"{}", "")

    def test_configure_changes_signature(self):
        gateway = FakeGateway()
        gateway.configure(signature="rotated")
        assert gateway.validate_signature(b"{}", "rotated")
        assert not gateway.validate_signature(b"{}", TEST_SIGNATURE)

    def test_parse_normalizes_body(self):
        body = json.dumps({"transaction_id": "tx1", "status": "approved", "metadata": {"k": "v"}}).encode()
        notification = FakeGateway().parse(body)
        assert notification.transaction_id == "tx1"
        assert notification.status == PaymentStatus.APPROVED.value
        assert notification.metadata == {"k": "v"}

    def test_parse_missing_transaction_id_is_empty(self):
        notification = FakeGateway().parse(b'{"status": "approved"}')
        assert notification.transaction_id == ""

    def test_parse_ignores_non_object_metadata(self):
        notification = FakeGateway().parse(b'{"transaction_id": "tx1", "metadata": [1, 2]}')
        assert notification.metadata == {}

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b""])
    def test_parse_rejects_unreadable_bodies(self, body):
        with pytest.raises(MalformedPayloadError):
            FakeGateway().parse(body)


def _response(data: dict, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.json.return_value = data
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code}")
    return response


class TestMercadoPagoSignature:
    def _gateway(self, **kwargs) -> MercadoPagoGateway:
        return MercadoPagoGateway(access_token="token", webhook_secret="secret", session=MagicMock(), **kwargs)

    def _header(self, gateway, data_id="123", request_id="req-1", ts=None) -> str:
        ts = ts if ts is not None else int(time.time())
        return f"ts={ts},v1={gateway.sign(data_id, request_id, ts)}"

    def test_valid_signature(self):
        gateway = self._gateway()
        body = json.dumps({"data": {"id": "123"}}).encode()
        assert gateway.validate_signature(body, self._header(gateway), request_id="req-1")

    def test_signature_bound_to_request_id(self):
        gateway = self._gateway()
        body = json.dumps({"data": {"id": "123"}}).encode()
        assert not gateway.validate_signature(body, self._header(gateway), request_id="req-2")

    def test_signature_bound_to_payment_id(self):
        gateway = self._gateway()
        body = json.dumps({"data": {"id": "999"}}).encode()
        assert not gateway.validate_signature(body, self._header(gateway), request_id="req-1")

    def test_expired_signature(self):
        gateway = self._gateway(tolerance_seconds=300)
        body = json.dumps({"data": {"id": "123"}}).encode()
        header = self._header(gateway, ts=int(time.time()) - 600)
        assert not gateway.validate_signature(body, header, request_id="req-1")

    @pytest.mark.parametrize("header", ["", "garbage", "ts=abc,v1=def", "v1=abc"])
    def test_malformed_headers(self, header):
        gateway = self._gateway()
        assert not gateway.validate_signature(b'{"data": {"id": "1"}}', header)

    def test_missing_secret_rejects_everything(self):
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="", session=MagicMock())
        assert not gateway.validate_signature(b"{}", "ts=1,v1=abc")


class TestMercadoPagoParse:
    def test_status_mapping(self):
        assert map_status("approved") == PaymentStatus.APPROVED
        assert map_status("in_process") == PaymentStatus.PENDING
        assert map_status("authorized") == PaymentStatus.PROCESSING
        assert map_status("rejected") == PaymentStatus.DECLINED
        assert map_status("charged_back") == PaymentStatus.REFUNDED
        assert map_status("something_new") == PaymentStatus.FAILED

    def test_parse_fetches_payment_status(self):
        session = MagicMock()
        session.get.return_value = _response(
            {"status": "approved", "status_detail": "accredited", "payment_type_id": "pix"}
        )
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="secret", session=session)

        notification = gateway.parse(json.dumps({"action": "payment.updated", "data": {"id": 123}}).encode())

        assert notification.transaction_id == "123"
        assert notification.status == PaymentStatus.APPROVED.value
        assert notification.metadata["status_detail"] == "accredited"
        assert notification.metadata["action"] == "payment.updated"
        args, kwargs = session.get.call_args
        assert args[0].endswith("/v1/payments/123")
        assert kwargs["headers"]["Authorization"] == "Bearer token"
        assert kwargs["timeout"] == 30

    def test_parse_converts_refunded_amount_to_minor_units(self):
        session = MagicMock()
        session.get.return_value = _response({"status": "refunded", "transaction_amount_refunded": 49.9})
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="secret", session=session)

        notification = gateway.parse(b'{"data": {"id": "55"}}')
        assert notification.metadata["refunded_amount"] == 4990

    def test_parse_without_payment_id(self):
        session = MagicMock()
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="secret", session=session)
        notification = gateway.parse(b'{"type": "test"}')
        assert notification.transaction_id == ""
        session.get.assert_not_called()

    def test_fetch_failure_raises_unavailable(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("timed out")
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="secret", session=session)
        with pytest.raises(GatewayUnavailableError):
            gateway.parse(b'{"data": {"id": "1"}}')

    def test_http_error_raises_unavailable(self):
        session = MagicMock()
        session.get.return_value = _response({}, status_code=500)
        gateway = MercadoPagoGateway(access_token="token", webhook_secret="secret", session=session)
        with pytest.raises(GatewayUnavailableError):
            gateway.parse(b'{"data": {"id": "1"}}')

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MERCADOPAGO_ACCESS_TOKEN", "env-token")
        monkeypatch.setenv("MERCADOPAGO_WEBHOOK_SECRET", "env-secret")
        monkeypatch.setenv("WEBHOOK_TOLERANCE_SECONDS", "60")
        gateway = MercadoPagoGateway.from_env()
        assert gateway.access_token == "env-token"
        assert gateway.webhook_secret == "env-secret"
        assert gateway.tolerance_seconds == 60
