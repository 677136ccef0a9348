"""Shipment domain events — immutable facts about shipment state changes."""

from protean.fields import DateTime, Identifier, String

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Shipment")
class ShipmentCreated:
    """A shipment was created for an order that needs fulfillment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    carrier = String(required=True)
    service_code = String(required=True)
    created_at = DateTime(required=True)


@fulfillment.event(part_of="Shipment")
class ShipmentStageAdvanced:
    """A shipment moved from one status to another."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    advanced_at = DateTime(required=True)


@fulfillment.event(part_of="Shipment")
class TrackingEventRecorded:
    """A carrier tracking event was stored for a shipment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    event_code = String()
    status = String(required=True)
    description = String()
    event_at = DateTime(required=True)
