import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def fulfillment_bed():
    from fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    with fulfillment_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def carrier():
    """A fresh FakeCarrier installed as the active carrier for every test."""
    from fulfillment.carrier import reset_carrier, set_carrier
    from fulfillment.carrier.fake_adapter import FakeCarrier

    fake = FakeCarrier()
    set_carrier(fake)
    yield fake
    reset_carrier()


@pytest.fixture()
def scheduler():
    """An in-memory scheduler installed as the active job scheduler."""
    from shared.jobs import set_scheduler
    from shared.jobs.memory_adapter import InMemoryScheduler

    memory = InMemoryScheduler()
    set_scheduler(memory)
    return memory


@pytest.fixture()
def make_shipment():
    """Factory that creates a pending shipment through CreateShipment."""
    import json
    from uuid import uuid4

    from fulfillment.shipment.creation import CreateShipment
    from protean.utils.globals import current_domain

    def _make(service_code: str = "1") -> str:
        return current_domain.process(
            CreateShipment(
                order_id=str(uuid4()),
                service_code=service_code,
                recipient=json.dumps({"name": "Maria Silva", "email": "maria@example.com"}),
                address=json.dumps(
                    {
                        "street": "Rua das Flores",
                        "number": "100",
                        "city": "Sao Paulo",
                        "state_abbr": "SP",
                        "postal_code": "01001000",
                    }
                ),
                package=json.dumps({"weight": 1.0, "length": 20.0, "width": 15.0, "height": 10.0}),
                products=json.dumps([{"name": "Keyboard", "quantity": 1, "unitary_value": 29990}]),
                insurance_value=29990,
            ),
            asynchronous=False,
        )

    return _make


@pytest.fixture()
def make_posted_shipment(make_shipment):
    """Factory for a shipment that has a label and was handed to the carrier."""
    from fulfillment.shipment.driver import advance
    from fulfillment.shipment.posting import MarkShipmentPosted
    from protean.utils.globals import current_domain

    def _make() -> str:
        shipment_id = make_shipment()
        advance(shipment_id)
        current_domain.process(MarkShipmentPosted(shipment_id=shipment_id), asynchronous=False)
        return shipment_id

    return _make
