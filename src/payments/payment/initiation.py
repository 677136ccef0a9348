"""Payment initiation — commands and handler.

Creates a Pending Payment for a registered order and records the
transaction id the gateway assigns to the charge.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.gateway import get_gateway
from payments.order.order import Order
from payments.payment.payment import Payment


@payments.command(part_of="Payment")
class InitiatePayment:
    """Initiate a new payment for an order."""

    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="BRL")
    gateway = String(max_length=50, default="fake")
    gateway_transaction_id = String(max_length=255)


@payments.command(part_of="Payment")
class AssignGatewayTransaction:
    """Record the id the gateway assigned to a charge."""

    payment_id = Identifier(required=True)
    gateway_transaction_id = String(required=True, max_length=255)


def _assert_transaction_unclaimed(gateway_transaction_id: str, payment_id: str | None = None) -> None:
    existing = current_domain.repository_for(Payment).find_by_transaction_id(gateway_transaction_id)
    if existing is not None and str(existing.id) != str(payment_id):
        raise ValidationError({"gateway_transaction_id": ["Transaction id already belongs to another payment"]})


@payments.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        gateway = command.gateway or "fake"
        # Fails with UnknownGatewayError before anything is stored
        get_gateway(gateway)

        # The order must exist so an approval can mark it paid
        current_domain.repository_for(Order).get(command.order_id)

        if command.gateway_transaction_id:
            _assert_transaction_unclaimed(command.gateway_transaction_id)

        payment = Payment.create(
            order_id=command.order_id,
            amount=command.amount,
            currency=command.currency or "BRL",
            gateway=gateway,
            gateway_transaction_id=command.gateway_transaction_id,
        )
        current_domain.repository_for(Payment).add(payment)
        return str(payment.id)

    @handle(AssignGatewayTransaction)
    def assign_gateway_transaction(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        _assert_transaction_unclaimed(command.gateway_transaction_id, payment_id=command.payment_id)
        payment.assign_transaction(command.gateway_transaction_id)
        repo.add(payment)
