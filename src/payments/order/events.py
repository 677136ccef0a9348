"""Order domain events seen by the payments context."""

from protean.fields import DateTime, Identifier, Integer

from payments.domain import payments


@payments.event(part_of="Order")
class OrderRegistered:
    """An order that expects payment was registered."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier()
    total = Integer(required=True)
    registered_at = DateTime(required=True)


@payments.event(part_of="Order")
class OrderMarkedPaid:
    """The order's payment was approved."""

    __version__ = 1

    order_id = Identifier(required=True)
    paid_at = DateTime(required=True)
