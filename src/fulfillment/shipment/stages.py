"""Label pipeline stages — commands and handler.

Each command persists the outcome of one successful carrier call. The
aggregate rejects a stage whose precondition status no longer holds, so a
duplicate job can never record the same stage twice.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Shipment")
class RecordCartAdded:
    shipment_id = Identifier(required=True)
    cart_id = String(required=True, max_length=255)


@fulfillment.command(part_of="Shipment")
class RecordPurchase:
    shipment_id = Identifier(required=True)
    carrier_shipment_id = String(required=True, max_length=255)


@fulfillment.command(part_of="Shipment")
class RecordLabelGenerated:
    shipment_id = Identifier(required=True)
    label_url = String(max_length=1000)
    tracking_number = String(required=True, max_length=255)


@fulfillment.command_handler(part_of=Shipment)
class LabelStageHandler:
    @handle(RecordCartAdded)
    def record_cart_added(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        shipment.mark_cart_added(command.cart_id)
        repo.add(shipment)
        logger.info("Shipment added to cart", shipment_id=command.shipment_id, cart_id=command.cart_id)

    @handle(RecordPurchase)
    def record_purchase(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        shipment.mark_purchased(command.carrier_shipment_id)
        repo.add(shipment)
        logger.info(
            "Shipment purchased",
            shipment_id=command.shipment_id,
            carrier_shipment_id=command.carrier_shipment_id,
        )

    @handle(RecordLabelGenerated)
    def record_label_generated(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        shipment.mark_label_generated(command.label_url or "", command.tracking_number)
        repo.add(shipment)
        logger.info(
            "Shipment label generated",
            shipment_id=command.shipment_id,
            tracking_number=command.tracking_number,
        )
