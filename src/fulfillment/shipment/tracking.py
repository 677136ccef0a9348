"""Tracking reconciliation — carrier webhooks and full history syncs.

Carrier events are stored on the Shipment, deduplicated by event code and
event time, so the same event arriving through a webhook and again through a
history pull is kept once. A full sync also moves the shipment to the status
its most recent event describes.
"""

import json
from datetime import datetime

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Text
from protean.utils.globals import current_domain

from fulfillment.carrier import get_carrier
from fulfillment.carrier.port import CarrierTrackingEvent, tracking_event_from_dict
from fulfillment.domain import fulfillment
from fulfillment.shipment.shipment import Shipment
from shared.locks import get_locks

logger = structlog.get_logger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_WAIT_SECONDS = 10


def _serialize(event: CarrierTrackingEvent) -> dict:
    return {
        "event_code": event.event_code,
        "status": event.status,
        "description": event.description,
        "event_at": event.event_at.isoformat(),
        "city": event.city,
        "state": event.state,
        "country": event.country,
        "notes": event.notes,
        "raw": event.raw,
    }


def _deserialize(data: dict) -> CarrierTrackingEvent:
    return CarrierTrackingEvent(
        event_code=data["event_code"],
        status=data["status"],
        description=data["description"],
        event_at=datetime.fromisoformat(data["event_at"]),
        city=data["city"],
        state=data["state"],
        country=data["country"],
        notes=data["notes"],
        raw=data["raw"],
    )


@fulfillment.command(part_of="Shipment")
class RecordTrackingEvents:
    """Store carrier tracking events, optionally reconciling the status."""

    shipment_id = Identifier(required=True)
    events = Text(required=True)  # JSON list of serialized CarrierTrackingEvents
    reconcile = Boolean(default=False)


@fulfillment.command_handler(part_of=Shipment)
class TrackingHandler:
    @handle(RecordTrackingEvents)
    def record_tracking_events(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        previous = shipment.status

        recorded = 0
        for data in json.loads(command.events):
            if shipment.record_tracking_event(_deserialize(data)):
                recorded += 1
        changed = bool(command.reconcile) and shipment.reconcile_with_tracking()

        if recorded or changed:
            repo.add(shipment)
        if changed:
            logger.info(
                "Shipment status updated from tracking",
                shipment_id=command.shipment_id,
                previous_status=previous,
                new_status=shipment.status,
            )
        return recorded


def _record(shipment_id: str, events: list[CarrierTrackingEvent], reconcile: bool) -> int:
    with get_locks().hold(
        f"shipment-tracking:{shipment_id}",
        ttl=LOCK_TTL_SECONDS,
        blocking_timeout=LOCK_WAIT_SECONDS,
    ):
        return current_domain.process(
            RecordTrackingEvents(
                shipment_id=shipment_id,
                events=json.dumps([_serialize(e) for e in events], default=str),
                reconcile=reconcile,
            ),
            asynchronous=False,
        )


def full_sync(shipment_id: str) -> bool:
    """Pull the carrier's complete history and reconcile the shipment.

    Returns False for shipments that are not trackable yet. Raises
    CarrierError if the history cannot be fetched.
    """
    shipment = current_domain.repository_for(Shipment).get(shipment_id)
    if not shipment.is_trackable():
        logger.info("Shipment not trackable, skipping sync", shipment_id=shipment_id, status=shipment.status)
        return False

    events = get_carrier().get_tracking_history(shipment.carrier_shipment_id)
    recorded = _record(shipment_id, events, reconcile=True)
    logger.info(
        "Tracking synced",
        shipment_id=shipment_id,
        events_received=len(events),
        events_recorded=recorded,
    )
    return True


def ingest_webhook(payload: dict) -> bool:
    """Store the event a carrier webhook describes, then run a full sync.

    Payloads without a carrier shipment reference, or for a shipment this
    service does not know, are logged and dropped. Returns True when the
    payload matched a shipment.
    """
    carrier_shipment_id = payload.get("shipment_id")
    if not carrier_shipment_id:
        logger.warning("Tracking webhook missing shipment_id", payload=payload)
        return False

    shipment = current_domain.repository_for(Shipment).find_by_carrier_shipment_id(str(carrier_shipment_id))
    if shipment is None:
        logger.warning("Tracking webhook for unknown shipment", carrier_shipment_id=carrier_shipment_id)
        return False

    shipment_id = str(shipment.id)
    event_data = payload.get("tracking")
    if not isinstance(event_data, dict):
        event_data = payload
    if not event_data.get("status") and payload.get("status"):
        event_data = {**event_data, "status": payload["status"]}

    logger.info(
        "Processing tracking webhook",
        shipment_id=shipment_id,
        carrier_shipment_id=carrier_shipment_id,
        status=event_data.get("status", "unknown"),
    )
    _record(shipment_id, [tracking_event_from_dict(event_data)], reconcile=False)
    full_sync(shipment_id)
    return True


def tracking_info(tracking_number: str) -> dict | None:
    """Public tracking view of a shipment, events newest first."""
    shipment = current_domain.repository_for(Shipment).find_by_tracking_number(tracking_number)
    if shipment is None:
        return None

    events = sorted(shipment.tracking_events or [], key=lambda e: e.dedup_key[1], reverse=True)
    return {
        "tracking_number": shipment.tracking_number,
        "carrier": shipment.carrier,
        "service_code": shipment.service_code,
        "status": shipment.status,
        "recipient_city": shipment.address.city if shipment.address else None,
        "recipient_state": shipment.address.state_abbr if shipment.address else None,
        "posted_at": shipment.posted_at,
        "delivered_at": shipment.delivered_at,
        "events": [
            {
                "event_at": event.event_at,
                "description": event.description,
                "location": event.formatted_location,
                "status": event.status,
                "is_delivery": event.is_delivery_event(),
                "is_problem": event.is_problem_event(),
            }
            for event in events
        ],
    }
