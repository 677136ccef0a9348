"""Carrier port — abstract interface for shipping carrier integrations.

All carrier adapters must implement this interface. The domain code
programs against the port; adapters are swapped via configuration.

Label operations report failure through ``LabelResult(success=False)``
rather than raising, so adapters can turn HTTP errors and timeouts into a
result the fulfillment driver decides how to handle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

from shared.clock import get_clock


class CarrierError(RuntimeError):
    """A carrier call failed. Raised so the job runner retries."""

    def __init__(self, operation: str, message: str, shipment_id: str | None = None) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.shipment_id = shipment_id


class CarrierCancellationError(CarrierError):
    """The carrier refused or failed to cancel a purchased shipment."""


@dataclass(frozen=True)
class ShipmentRequest:
    """Everything the carrier needs to put a shipment in its cart."""

    order_id: str
    service_code: str
    recipient: dict
    address: dict
    package: dict
    products: list[dict] = field(default_factory=list)
    insurance_value: int = 0  # minor currency units


@dataclass(frozen=True)
class LabelResult:
    """Result of a cart, checkout, label or print call.

    ``shipment_id`` is the cart id after add_to_cart and the carrier's
    purchase id after checkout.
    """

    success: bool
    shipment_id: str | None = None
    label_url: str | None = None
    tracking_number: str | None = None
    error_message: str | None = None

    @classmethod
    def failure(cls, message: str) -> "LabelResult":
        return cls(success=False, error_message=message)


@dataclass(frozen=True)
class CarrierTrackingEvent:
    """One entry of a carrier's tracking history."""

    event_code: str
    status: str
    description: str
    event_at: datetime
    city: str = ""
    state: str = ""
    country: str = "BR"
    notes: str = ""
    raw: dict = field(default_factory=dict)


def _parse_event_time(value) -> datetime:
    # An event without a readable date is stamped with the current time, so
    # it never matches an earlier delivery of itself and is stored again.
    if isinstance(value, datetime):
        parsed = value
    elif value:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            parsed = get_clock().now()
    else:
        parsed = get_clock().now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def tracking_event_from_dict(data: dict) -> CarrierTrackingEvent:
    """Read one tracking event as carriers send it in webhooks and history calls.

    Recognized keys: code, status, description, city, state, country, notes
    and date (ISO 8601; naive values are taken as UTC; missing or unreadable
    dates fall back to now).
    """
    status = str(data.get("status") or "unknown")
    return CarrierTrackingEvent(
        event_code=str(data.get("code") or data.get("event_code") or ""),
        status=status,
        description=str(data.get("description") or status),
        event_at=_parse_event_time(data.get("date") or data.get("event_at")),
        city=str(data.get("city") or ""),
        state=str(data.get("state") or ""),
        country=str(data.get("country") or "BR"),
        notes=str(data.get("notes") or ""),
        raw=dict(data),
    )


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    @abstractmethod
    def add_to_cart(self, request: ShipmentRequest) -> LabelResult:
        """Add the shipment to the carrier cart. Returns the cart id."""
        ...

    @abstractmethod
    def checkout(self, cart_id: str) -> LabelResult:
        """Purchase a cart entry. Returns the carrier shipment id."""
        ...

    @abstractmethod
    def generate_label(self, shipment_id: str) -> LabelResult:
        """Generate the label. Returns label_url and tracking_number."""
        ...

    @abstractmethod
    def print_label(self, shipment_id: str) -> LabelResult:
        """Return a printable label_url for an already generated label."""
        ...

    @abstractmethod
    def cancel_shipment(self, shipment_id: str, reason: str = "") -> bool:
        """Cancel a purchased shipment. True only if the carrier confirmed."""
        ...

    @abstractmethod
    def get_tracking_history(self, shipment_id: str) -> list[CarrierTrackingEvent]:
        """Full tracking history. Raises CarrierError if it cannot be fetched."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a tracking webhook is authentic."""
        ...
