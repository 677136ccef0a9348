"""Payment domain events — immutable facts about payment state changes."""

from protean.fields import DateTime, Identifier, Integer, String

from payments.domain import payments


@payments.event(part_of="Payment")
class PaymentInitiated:
    """Checkout started a charge; the payment is Pending."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    gateway = String(required=True)
    gateway_transaction_id = String()
    initiated_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentTransactionAssigned:
    """The gateway assigned its own id to the charge."""

    __version__ = 1

    payment_id = Identifier(required=True)
    gateway_transaction_id = String(required=True)
    assigned_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentStatusChanged:
    """A gateway webhook moved the payment to a new status."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
