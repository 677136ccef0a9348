"""Shipment cancellation — command, handler and the carrier-aware service.

A shipment that was already purchased from the carrier is only cancelled
locally after the carrier confirms its own cancellation. If the carrier
refuses, nothing changes locally and CarrierCancellationError is raised.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.carrier import get_carrier
from fulfillment.carrier.port import CarrierCancellationError
from fulfillment.domain import fulfillment
from fulfillment.shipment.driver import advance_lock_key
from fulfillment.shipment.shipment import Shipment
from shared.locks import get_locks

logger = structlog.get_logger(__name__)

LOCK_TTL_SECONDS = 60
LOCK_WAIT_SECONDS = 10


@fulfillment.command(part_of="Shipment")
class CancelShipment:
    shipment_id = Identifier(required=True)
    reason = String(max_length=500)


@fulfillment.command_handler(part_of=Shipment)
class CancelShipmentHandler:
    @handle(CancelShipment)
    def cancel_shipment(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        shipment.cancel(command.reason or "")
        repo.add(shipment)


def cancel_shipment(shipment_id: str, reason: str = "") -> None:
    """Cancel a shipment, with the carrier first when it holds a purchase.

    Holds the same lock as the label pipeline so a running ``advance`` cannot
    purchase the shipment while it is being cancelled.
    """
    with get_locks().hold(advance_lock_key(shipment_id), ttl=LOCK_TTL_SECONDS, blocking_timeout=LOCK_WAIT_SECONDS):
        shipment = current_domain.repository_for(Shipment).get(shipment_id)
        if not shipment.can_be_cancelled():
            raise ValidationError({"status": [f"Cannot cancel shipment in {shipment.status} state"]})

        if shipment.carrier_shipment_id:
            if not get_carrier().cancel_shipment(shipment.carrier_shipment_id, reason):
                logger.error(
                    "Carrier refused shipment cancellation",
                    shipment_id=shipment_id,
                    carrier_shipment_id=shipment.carrier_shipment_id,
                )
                raise CarrierCancellationError(
                    "cancel_shipment",
                    "Carrier did not confirm the cancellation",
                    shipment_id=shipment_id,
                )

        current_domain.process(CancelShipment(shipment_id=shipment_id, reason=reason), asynchronous=False)
        logger.info("Shipment cancelled", shipment_id=shipment_id, reason=reason)
