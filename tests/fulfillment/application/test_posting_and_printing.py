"""Application tests for posting shipments and printing labels."""

import pytest
from fulfillment.carrier.port import CarrierError
from fulfillment.shipment.driver import advance
from fulfillment.shipment.posting import MarkShipmentPosted
from fulfillment.shipment.printing import print_label
from fulfillment.shipment.shipment import Shipment, ShipmentStatus
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain


def _shipment(shipment_id: str) -> Shipment:
    return current_domain.repository_for(Shipment).get(shipment_id)


class TestMarkPosted:
    def test_generated_shipment_is_posted(self, make_shipment):
        shipment_id = make_shipment()
        advance(shipment_id)

        current_domain.process(MarkShipmentPosted(shipment_id=shipment_id), asynchronous=False)

        shipment = _shipment(shipment_id)
        assert shipment.status == ShipmentStatus.POSTED.value
        assert shipment.posted_at is not None
        assert shipment.is_trackable()

    def test_pending_shipment_cannot_be_posted(self, make_shipment):
        shipment_id = make_shipment()
        with pytest.raises(ValidationError):
            current_domain.process(MarkShipmentPosted(shipment_id=shipment_id), asynchronous=False)
        assert _shipment(shipment_id).status == ShipmentStatus.PENDING.value


class TestPrintLabel:
    def test_print_generated_label(self, make_shipment, carrier):
        shipment_id = make_shipment()
        advance(shipment_id)
        carrier_shipment_id = _shipment(shipment_id).carrier_shipment_id

        url = print_label(shipment_id)

        assert url == f"https://fake-carrier.example.com/print/{carrier_shipment_id}.pdf"
        assert carrier.calls_to("print_label") == [{"method": "print_label", "shipment_id": carrier_shipment_id}]

    def test_print_posted_label(self, make_posted_shipment):
        assert print_label(make_posted_shipment()).startswith("https://fake-carrier.example.com/print/")

    def test_no_label_yet(self, make_shipment, carrier):
        shipment_id = make_shipment()
        with pytest.raises(ValidationError):
            print_label(shipment_id)
        assert carrier.calls_to("print_label") == []

    def test_carrier_failure(self, make_shipment, carrier):
        shipment_id = make_shipment()
        advance(shipment_id)
        carrier.fail("print_label", reason="Printer offline")

        with pytest.raises(CarrierError) as exc_info:
            print_label(shipment_id)
        assert "Printer offline" in str(exc_info.value)
