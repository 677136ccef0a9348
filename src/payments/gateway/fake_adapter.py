"""Configurable fake payment gateway for development and testing.

Accepts webhooks signed with a fixed test signature and reads the
normalized fields straight from a JSON body:

    {"transaction_id": "tx1", "status": "approved", "metadata": {...}}

Unknown status strings are read as Pending.
"""

import json

from payments.gateway.port import MalformedPayloadError, PaymentGateway, WebhookNotification
from payments.payment.payment import PaymentStatus

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self, signature: str = TEST_SIGNATURE) -> None:
        self.signature = signature
        self.calls: list[dict] = []

    def configure(self, signature: str = TEST_SIGNATURE) -> None:
        """Change the signature the gateway accepts."""
        self.signature = signature

    def validate_signature(self, payload: bytes, signature: str, request_id: str = "") -> bool:  # noqa: ARG002
        self.calls.append({"method": "validate_signature", "signature": signature})
        return bool(signature) and signature == self.signature

    def parse(self, payload: bytes) -> WebhookNotification:
        self.calls.append({"method": "parse"})
        try:
            data = json.loads(payload or b"")
        except (TypeError, ValueError) as exc:
            raise MalformedPayloadError("Webhook body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise MalformedPayloadError("Webhook body must be a JSON object")

        metadata = data.get("metadata")
        return WebhookNotification(
            transaction_id=str(data.get("transaction_id") or ""),
            status=PaymentStatus.parse(data.get("status")).value,
            metadata=metadata if isinstance(metadata, dict) else {},
        )
