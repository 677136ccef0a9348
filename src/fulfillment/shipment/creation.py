"""Shipment creation — command and handler."""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.shipment.shipment import Shipment


@fulfillment.command(part_of="Shipment")
class CreateShipment:
    """Create a pending shipment for an order that needs fulfillment."""

    order_id = Identifier(required=True)
    service_code = String(required=True, max_length=50)
    carrier = String(max_length=50, default="fake")
    recipient = Text(required=True)  # JSON object
    address = Text(required=True)  # JSON object
    package = Text(required=True)  # JSON object
    products = Text()  # JSON list
    insurance_value = Integer(default=0, min_value=0)


def _load(value):
    return json.loads(value) if isinstance(value, str) else value


@fulfillment.command_handler(part_of=Shipment)
class CreateShipmentHandler:
    @handle(CreateShipment)
    def create_shipment(self, command):
        shipment = Shipment.create(
            order_id=command.order_id,
            service_code=command.service_code,
            recipient=_load(command.recipient),
            address=_load(command.address),
            package=_load(command.package),
            products=_load(command.products) if command.products else [],
            insurance_value=command.insurance_value or 0,
            carrier=command.carrier or "fake",
        )
        current_domain.repository_for(Shipment).add(shipment)
        return str(shipment.id)
