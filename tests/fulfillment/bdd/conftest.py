"""Shared BDD fixtures and step definitions for the Fulfillment domain."""

import pytest
from fulfillment.shipment.shipment import Shipment, ShipmentStatus
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

_RECIPIENT = {"name": "Ana Costa", "email": "ana@example.com"}
_ADDRESS = {
    "street": "Rua Augusta",
    "number": "500",
    "city": "Sao Paulo",
    "state_abbr": "SP",
    "postal_code": "01305000",
}
_PACKAGE = {"weight": 0.8, "length": 25.0, "width": 18.0, "height": 8.0}


def _new_shipment(order_id: str) -> Shipment:
    return Shipment.create(
        order_id=order_id,
        service_code="1",
        recipient=_RECIPIENT,
        address=_ADDRESS,
        package=_PACKAGE,
    )


def _with_label(order_id: str) -> Shipment:
    shipment = _new_shipment(order_id)
    shipment.mark_cart_added("cart-bdd")
    shipment.mark_purchased("ship-bdd")
    shipment.mark_label_generated("https://labels.example.com/bdd.pdf", "BR000000001")
    return shipment


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a pending shipment", target_fixture="shipment")
def pending_shipment():
    shipment = _new_shipment("ord-bdd-001")
    shipment._events.clear()
    return shipment


@given("a shipment with a generated label", target_fixture="shipment")
def labelled_shipment():
    shipment = _with_label("ord-bdd-002")
    shipment._events.clear()
    return shipment


@given("a posted shipment", target_fixture="shipment")
def posted_shipment():
    shipment = _with_label("ord-bdd-003")
    shipment.mark_posted()
    shipment._events.clear()
    return shipment


@given("a shipment out for delivery", target_fixture="shipment")
def out_for_delivery_shipment():
    shipment = _with_label("ord-bdd-004")
    shipment.mark_posted()
    shipment.progress_to(ShipmentStatus.OUT_FOR_DELIVERY)
    shipment._events.clear()
    return shipment


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the shipment status is "{status}"'))
def shipment_status_is(shipment, status):
    assert shipment.status == status


@then("the action fails with a validation error")
def action_fails(error):
    assert isinstance(error["exc"], ValidationError)
