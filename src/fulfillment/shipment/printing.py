"""Label printing for shipments whose label was already generated."""

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from fulfillment.carrier import get_carrier
from fulfillment.carrier.port import CarrierError
from fulfillment.shipment.shipment import Shipment, ShipmentStatus

_PRINTABLE_STATUSES = {ShipmentStatus.GENERATED, ShipmentStatus.POSTED}


def print_label(shipment_id: str) -> str:
    """Ask the carrier for a printable label. Returns its url."""
    shipment = current_domain.repository_for(Shipment).get(shipment_id)
    if shipment.current_status not in _PRINTABLE_STATUSES or not shipment.carrier_shipment_id:
        raise ValidationError({"status": [f"Shipment in {shipment.status} state has no label to print"]})

    result = get_carrier().print_label(shipment.carrier_shipment_id)
    if not result.success:
        raise CarrierError("print_label", result.error_message or "unknown carrier error", shipment_id=shipment_id)
    return result.label_url
