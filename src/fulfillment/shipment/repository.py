"""Repository for the Shipment aggregate."""

from fulfillment.domain import fulfillment
from fulfillment.shipment.shipment import Shipment


@fulfillment.repository(part_of=Shipment)
class ShipmentRepository:
    def _first(self, **filters) -> Shipment | None:
        results = self._dao.query.filter(**filters).all()
        if not results or not results.items:
            return None
        return self.get(str(results.first.id))

    def find_by_carrier_shipment_id(self, carrier_shipment_id: str) -> Shipment | None:
        """Find the shipment the carrier knows as ``carrier_shipment_id``."""
        if not carrier_shipment_id:
            return None
        return self._first(carrier_shipment_id=carrier_shipment_id)

    def find_by_tracking_number(self, tracking_number: str) -> Shipment | None:
        if not tracking_number:
            return None
        return self._first(tracking_number=tracking_number)
