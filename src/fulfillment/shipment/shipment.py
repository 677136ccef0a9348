"""Shipment aggregate (CQRS) — the core of the fulfillment domain.

A Shipment carries one order through the carrier's label pipeline and then
follows the carrier's tracking until delivery or return.

State Machine:
    PENDING → CART_ADDED → PURCHASED → GENERATED → POSTED → IN_TRANSIT
        → OUT_FOR_DELIVERY → DELIVERED
    {PENDING, CART_ADDED, PURCHASED, GENERATED} → CANCELLED
    {POSTED, IN_TRANSIT, OUT_FOR_DELIVERY, DELIVERED} → RETURNED

The label stages only ever run from their exact precondition status, so a
stage that already succeeded is never repeated. Timestamps are set on first
entry to their status and never overwritten.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from fulfillment.carrier.port import CarrierTrackingEvent, ShipmentRequest
from fulfillment.domain import fulfillment
from fulfillment.shipment.events import (
    ShipmentCreated,
    ShipmentStageAdvanced,
    TrackingEventRecorded,
)
from shared.clock import get_clock


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ShipmentStatus(Enum):
    PENDING = "Pending"
    CART_ADDED = "CartAdded"
    PURCHASED = "Purchased"
    GENERATED = "Generated"
    POSTED = "Posted"
    IN_TRANSIT = "InTransit"
    OUT_FOR_DELIVERY = "OutForDelivery"
    DELIVERED = "Delivered"
    RETURNED = "Returned"
    CANCELLED = "Cancelled"


_HAPPY_PATH = [
    ShipmentStatus.PENDING,
    ShipmentStatus.CART_ADDED,
    ShipmentStatus.PURCHASED,
    ShipmentStatus.GENERATED,
    ShipmentStatus.POSTED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
]

LABEL_STATUSES = {
    ShipmentStatus.PENDING,
    ShipmentStatus.CART_ADDED,
    ShipmentStatus.PURCHASED,
}

_CANCELLABLE_STATUSES = LABEL_STATUSES | {ShipmentStatus.GENERATED}

_TRACKABLE_STATUSES = {
    ShipmentStatus.POSTED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
    ShipmentStatus.RETURNED,
}

# With the carrier and not yet at a terminal status
_IN_CARRIER_HANDS = {
    ShipmentStatus.POSTED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
}

# A return can follow a delivery the carrier later reversed
_RETURNABLE = _IN_CARRIER_HANDS | {ShipmentStatus.DELIVERED}

DELIVERY_STATUSES = {"delivered", "entregue"}
PROBLEM_STATUSES = {"returned", "undelivered", "exception", "devolvido", "problema"}

# Carrier tracking vocabulary for the in-transit leg
_CARRIER_PROGRESS = {
    "posted": ShipmentStatus.POSTED,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "first_delivery_attempt": ShipmentStatus.IN_TRANSIT,
    "out_for_delivery": ShipmentStatus.OUT_FOR_DELIVERY,
}


def carrier_status_to_shipment_status(status: str) -> ShipmentStatus | None:
    """Map a carrier tracking status onto the in-transit leg, if it names one."""
    return _CARRIER_PROGRESS.get((status or "").strip().lower())


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Shipment")
class Recipient:
    name = String(required=True, max_length=255)
    email = String(max_length=255)
    phone = String(max_length=50)
    document = String(max_length=20)


@fulfillment.value_object(part_of="Shipment")
class Address:
    street = String(required=True, max_length=255)
    number = String(max_length=20)
    complement = String(max_length=255)
    neighborhood = String(max_length=255)
    city = String(required=True, max_length=255)
    state_abbr = String(required=True, max_length=2)
    postal_code = String(required=True, max_length=10)


@fulfillment.value_object(part_of="Shipment")
class Package:
    """Physical dimensions (cm) and weight (kg) of the single volume."""

    weight = Float(required=True, min_value=0.0)
    length = Float(min_value=0.0)
    width = Float(min_value=0.0)
    height = Float(min_value=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Shipment")
class ShipmentTracking:
    """One event from the carrier's tracking history."""

    event_code = String(max_length=100)
    status = String(required=True, max_length=100)  # carrier vocabulary
    description = String(max_length=500)
    city = String(max_length=255)
    state = String(max_length=50)
    country = String(max_length=2, default="BR")
    notes = String(max_length=500)
    raw_data = Text()  # JSON object as the carrier sent it
    event_at = DateTime(required=True)

    def is_delivery_event(self) -> bool:
        return (self.status or "").lower() in DELIVERY_STATUSES

    def is_problem_event(self) -> bool:
        return (self.status or "").lower() in PROBLEM_STATUSES

    @property
    def formatted_location(self) -> str:
        parts = [p for p in (self.city, self.state) if p]
        return " - ".join(parts)

    @property
    def dedup_key(self) -> tuple[str, datetime]:
        return (self.event_code or "", _utc(self.event_at))


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Shipment:
    order_id = Identifier(required=True)
    carrier = String(max_length=50, default="fake")
    service_code = String(required=True, max_length=50)
    recipient = ValueObject(Recipient)
    address = ValueObject(Address)
    package = ValueObject(Package)
    products = Text()  # JSON list of {name, quantity, unitary_value}
    insurance_value = Integer(default=0, min_value=0)  # minor currency units
    status = String(
        choices=ShipmentStatus,
        default=ShipmentStatus.PENDING.value,
    )
    cart_id = String(max_length=255)
    carrier_shipment_id = String(max_length=255)
    tracking_number = String(max_length=255)
    label_url = String(max_length=1000)
    tracking_events = HasMany(ShipmentTracking)
    cancellation_reason = String(max_length=500)
    label_generated_at = DateTime()
    posted_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        service_code: str,
        recipient: dict,
        address: dict,
        package: dict,
        products: list[dict] | None = None,
        insurance_value: int = 0,
        carrier: str = "fake",
    ):
        """Create a pending shipment for an order that needs fulfillment."""
        now = get_clock().now()
        shipment = cls(
            order_id=order_id,
            carrier=carrier,
            service_code=service_code,
            recipient=Recipient(**recipient),
            address=Address(**address),
            package=Package(**package),
            products=json.dumps(products or []),
            insurance_value=insurance_value,
            status=ShipmentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        shipment.raise_(
            ShipmentCreated(
                shipment_id=str(shipment.id),
                order_id=order_id,
                carrier=carrier,
                service_code=service_code,
                created_at=now,
            )
        )
        return shipment

    # -------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> ShipmentStatus:
        return ShipmentStatus(self.status)

    def can_generate_label(self) -> bool:
        return self.current_status in LABEL_STATUSES

    def can_be_cancelled(self) -> bool:
        return self.current_status in _CANCELLABLE_STATUSES

    def is_trackable(self) -> bool:
        return self.current_status in _TRACKABLE_STATUSES and bool(self.tracking_number)

    def to_carrier_request(self) -> ShipmentRequest:
        return ShipmentRequest(
            order_id=str(self.order_id),
            service_code=self.service_code,
            recipient=self.recipient.to_dict() if self.recipient else {},
            address=self.address.to_dict() if self.address else {},
            package=self.package.to_dict() if self.package else {},
            products=json.loads(self.products) if self.products else [],
            insurance_value=self.insurance_value or 0,
        )

    # -------------------------------------------------------------------
    # Transition helpers
    # -------------------------------------------------------------------
    def _assert_status(self, expected: ShipmentStatus, action: str) -> None:
        if self.current_status != expected:
            raise ValidationError(
                {"status": [f"Cannot {action} a shipment in {self.status} state (expected {expected.value})"]}
            )

    def _move_to(self, target: ShipmentStatus, at: datetime) -> None:
        previous = self.status
        self.status = target.value
        self.updated_at = at
        self.raise_(
            ShipmentStageAdvanced(
                shipment_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=target.value,
                advanced_at=at,
            )
        )

    # -------------------------------------------------------------------
    # Label pipeline
    # -------------------------------------------------------------------
    def mark_cart_added(self, cart_id: str) -> None:
        self._assert_status(ShipmentStatus.PENDING, "add to cart")
        if not cart_id:
            raise ValidationError({"cart_id": ["Cart id cannot be empty"]})
        self.cart_id = cart_id
        self._move_to(ShipmentStatus.CART_ADDED, get_clock().now())

    def mark_purchased(self, carrier_shipment_id: str) -> None:
        self._assert_status(ShipmentStatus.CART_ADDED, "purchase")
        if not carrier_shipment_id:
            raise ValidationError({"carrier_shipment_id": ["Carrier shipment id cannot be empty"]})
        self.carrier_shipment_id = carrier_shipment_id
        self._move_to(ShipmentStatus.PURCHASED, get_clock().now())

    def mark_label_generated(self, label_url: str, tracking_number: str) -> None:
        self._assert_status(ShipmentStatus.PURCHASED, "generate a label for")
        if not tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number cannot be empty"]})
        now = get_clock().now()
        self.label_url = label_url
        self.tracking_number = tracking_number
        if self.label_generated_at is None:
            self.label_generated_at = now
        self._move_to(ShipmentStatus.GENERATED, now)

    def mark_posted(self) -> None:
        """Record that the package was handed to the carrier."""
        self._assert_status(ShipmentStatus.GENERATED, "post")
        now = get_clock().now()
        if self.posted_at is None:
            self.posted_at = now
        self._move_to(ShipmentStatus.POSTED, now)

    # -------------------------------------------------------------------
    # Carrier-reported progress
    # -------------------------------------------------------------------
    def progress_to(self, target: ShipmentStatus) -> bool:
        """Move forward along the in-transit leg. Never moves backwards."""
        current = self.current_status
        if current not in _IN_CARRIER_HANDS or target not in _IN_CARRIER_HANDS:
            return False
        if _HAPPY_PATH.index(target) <= _HAPPY_PATH.index(current):
            return False
        self._move_to(target, get_clock().now())
        return True

    def mark_delivered(self) -> bool:
        """Record delivery. Returns False if the shipment was already delivered."""
        if self.current_status == ShipmentStatus.DELIVERED:
            return False
        if self.current_status not in _IN_CARRIER_HANDS:
            raise ValidationError({"status": [f"Cannot deliver a shipment in {self.status} state"]})
        now = get_clock().now()
        if self.delivered_at is None:
            self.delivered_at = now
        self._move_to(ShipmentStatus.DELIVERED, now)
        return True

    def mark_returned(self) -> bool:
        """Record a return. Returns False if the shipment was already returned."""
        if self.current_status == ShipmentStatus.RETURNED:
            return False
        if self.current_status not in _RETURNABLE:
            raise ValidationError({"status": [f"Cannot return a shipment in {self.status} state"]})
        self._move_to(ShipmentStatus.RETURNED, get_clock().now())
        return True

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str = "") -> None:
        """Cancel the shipment locally. Only before it is posted."""
        if not self.can_be_cancelled():
            raise ValidationError({"status": [f"Cannot cancel shipment in {self.status} state"]})
        now = get_clock().now()
        self.cancellation_reason = reason
        if self.cancelled_at is None:
            self.cancelled_at = now
        self._move_to(ShipmentStatus.CANCELLED, now)

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def has_tracking_event(self, event_code: str, event_at: datetime) -> bool:
        key = (event_code or "", _utc(event_at))
        return any(existing.dedup_key == key for existing in self.tracking_events or [])

    def record_tracking_event(self, event: CarrierTrackingEvent) -> bool:
        """Store a carrier event unless one with the same code and time exists."""
        if self.has_tracking_event(event.event_code, event.event_at):
            return False

        event_at = _utc(event.event_at)
        self.add_tracking_events(
            ShipmentTracking(
                event_code=event.event_code,
                status=event.status,
                description=event.description,
                city=event.city,
                state=event.state,
                country=event.country or "BR",
                notes=event.notes,
                raw_data=json.dumps(event.raw, default=str),
                event_at=event_at,
            )
        )
        self.updated_at = get_clock().now()
        self.raise_(
            TrackingEventRecorded(
                shipment_id=str(self.id),
                event_code=event.event_code,
                status=event.status,
                description=event.description,
                event_at=event_at,
            )
        )
        return True

    def latest_tracking_event(self) -> ShipmentTracking | None:
        events = list(self.tracking_events or [])
        if not events:
            return None
        return max(events, key=lambda e: _utc(e.event_at))

    def reconcile_with_tracking(self) -> bool:
        """Bring the status in line with the most recent tracking event.

        A delivery event delivers and a problem event returns, even after
        delivery. Any other known carrier status can only move the shipment
        forward. Returns True if the status changed.
        """
        latest = self.latest_tracking_event()
        if latest is None or self.current_status not in _RETURNABLE:
            return False
        if self.current_status == ShipmentStatus.DELIVERED:
            return latest.is_problem_event() and self.mark_returned()
        if latest.is_delivery_event():
            return self.mark_delivered()
        if latest.is_problem_event():
            return self.mark_returned()
        target = carrier_status_to_shipment_status(latest.status)
        if target is None:
            return False
        return self.progress_to(target)
