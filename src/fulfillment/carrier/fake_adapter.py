"""Fake carrier adapter — deterministic carrier for testing and development.

Generates mock cart ids, purchase ids, labels and tracking numbers.
Any operation can be told to fail, either always or for the next N calls,
and every call is recorded in ``calls`` so tests can assert on what the
fulfillment driver actually asked the carrier to do.
"""

from uuid import uuid4

from fulfillment.carrier.port import (
    CarrierError,
    CarrierPort,
    CarrierTrackingEvent,
    LabelResult,
    ShipmentRequest,
)

OPERATIONS = (
    "add_to_cart",
    "checkout",
    "generate_label",
    "print_label",
    "cancel_shipment",
    "get_tracking_history",
)


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.calls: list[dict] = []
        self.tracking: dict[str, list[CarrierTrackingEvent]] = {}
        self.accept_signatures = True
        self._failures: dict[str, list] = {}

    def configure(self, should_succeed: bool = True, failure_reason: str = "Carrier unavailable"):
        """Make every operation succeed, or every operation fail."""
        self._failures = {} if should_succeed else {op: [failure_reason, None] for op in OPERATIONS}

    def fail(self, operation: str, reason: str = "Carrier unavailable", times: int | None = None):
        """Make ``operation`` fail, forever or for the next ``times`` calls."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown carrier operation: {operation}")
        self._failures[operation] = [reason, times]

    def set_tracking(self, shipment_id: str, events: list[CarrierTrackingEvent]):
        self.tracking[shipment_id] = list(events)

    def calls_to(self, operation: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == operation]

    def _failure_for(self, operation: str) -> str | None:
        entry = self._failures.get(operation)
        if entry is None:
            return None
        reason, remaining = entry
        if remaining is not None:
            if remaining <= 1:
                del self._failures[operation]
            else:
                entry[1] = remaining - 1
        return reason

    def add_to_cart(self, request: ShipmentRequest) -> LabelResult:
        self.calls.append({"method": "add_to_cart", "order_id": request.order_id})
        reason = self._failure_for("add_to_cart")
        if reason:
            return LabelResult.failure(reason)
        return LabelResult(success=True, shipment_id=f"cart-{uuid4().hex[:10]}")

    def checkout(self, cart_id: str) -> LabelResult:
        self.calls.append({"method": "checkout", "cart_id": cart_id})
        reason = self._failure_for("checkout")
        if reason:
            return LabelResult.failure(reason)
        return LabelResult(success=True, shipment_id=f"ship-{uuid4().hex[:10]}")

    def generate_label(self, shipment_id: str) -> LabelResult:
        self.calls.append({"method": "generate_label", "shipment_id": shipment_id})
        reason = self._failure_for("generate_label")
        if reason:
            return LabelResult.failure(reason)
        return LabelResult(
            success=True,
            shipment_id=shipment_id,
            label_url=f"https://fake-carrier.example.com/labels/{shipment_id}.pdf",
            tracking_number=f"FAKE{uuid4().hex[:11].upper()}BR",
        )

    def print_label(self, shipment_id: str) -> LabelResult:
        self.calls.append({"method": "print_label", "shipment_id": shipment_id})
        reason = self._failure_for("print_label")
        if reason:
            return LabelResult.failure(reason)
        return LabelResult(
            success=True,
            shipment_id=shipment_id,
            label_url=f"https://fake-carrier.example.com/print/{shipment_id}.pdf",
        )

    def cancel_shipment(self, shipment_id: str, reason: str = "") -> bool:
        self.calls.append({"method": "cancel_shipment", "shipment_id": shipment_id, "reason": reason})
        return self._failure_for("cancel_shipment") is None

    def get_tracking_history(self, shipment_id: str) -> list[CarrierTrackingEvent]:
        self.calls.append({"method": "get_tracking_history", "shipment_id": shipment_id})
        reason = self._failure_for("get_tracking_history")
        if reason:
            raise CarrierError("get_tracking_history", reason, shipment_id=shipment_id)
        return list(self.tracking.get(shipment_id, []))

    def verify_webhook_signature(self, _payload: bytes, _signature: str) -> bool:
        # Accepts any signature unless told otherwise
        return self.accept_signatures
