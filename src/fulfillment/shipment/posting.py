"""Shipment posting — command and handler.

Records that the labelled package was handed over to the carrier, which
makes the shipment trackable.
"""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.shipment.shipment import Shipment


@fulfillment.command(part_of="Shipment")
class MarkShipmentPosted:
    shipment_id = Identifier(required=True)


@fulfillment.command_handler(part_of=Shipment)
class PostingHandler:
    @handle(MarkShipmentPosted)
    def mark_posted(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        shipment.mark_posted()
        repo.add(shipment)
