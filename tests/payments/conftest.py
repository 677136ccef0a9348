import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(payments_bed):
    with payments_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def fake_gateway():
    """A fresh FakeGateway registered as "fake" for every test."""
    from payments.gateway import register_gateway, reset_gateways
    from payments.gateway.fake_adapter import FakeGateway

    reset_gateways()
    gateway = FakeGateway()
    register_gateway("fake", gateway)
    yield gateway
    reset_gateways()
