"""Payment gateway registry.

Gateways are looked up by the name used in the webhook URL
(``/payments/webhooks/{gateway}``):
- "fake": FakeGateway for development and testing
- "mercadopago": MercadoPagoGateway, configured from the environment

register_gateway() adds or overrides an adapter (useful for tests).
"""

from collections.abc import Callable

from payments.gateway.port import PaymentGateway, UnknownGatewayError


def _fake() -> PaymentGateway:
    from payments.gateway.fake_adapter import FakeGateway

    return FakeGateway()


def _mercadopago() -> PaymentGateway:
    from payments.gateway.mercadopago_adapter import MercadoPagoGateway

    return MercadoPagoGateway.from_env()


_FACTORIES: dict[str, Callable[[], PaymentGateway]] = {
    "fake": _fake,
    "mercadopago": _mercadopago,
}

_gateways: dict[str, PaymentGateway] = {}


def get_gateway(name: str = "fake") -> PaymentGateway:
    """Return the gateway registered under ``name``.

    Raises UnknownGatewayError if there is none.
    """
    if name not in _gateways:
        factory = _FACTORIES.get(name)
        if factory is None:
            raise UnknownGatewayError(name)
        _gateways[name] = factory()
    return _gateways[name]


def register_gateway(name: str, gateway: PaymentGateway) -> None:
    """Register or override the gateway for ``name``."""
    _gateways[name] = gateway


def reset_gateways() -> None:
    """Drop every registered instance; defaults are rebuilt on next lookup."""
    _gateways.clear()
