"""Gateway status updates — command and handler.

Applies one normalized gateway notification to the matching Payment. The
payment, the paid order and the audit entry are written in the handler's
single unit of work; PaymentStatusChanged is published when it commits.
"""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.order.order import Order
from payments.payment.payment import Payment, PaymentStatus, ReconcileOutcome

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payment")
class ApplyGatewayStatus:
    """Apply the status a gateway reported for one of its transactions."""

    gateway_transaction_id = String(required=True, max_length=255)
    status = String(required=True, max_length=50)
    metadata = Text()  # JSON object


@payments.command_handler(part_of=Payment)
class GatewayStatusHandler:
    @handle(ApplyGatewayStatus)
    def apply_gateway_status(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.find_by_transaction_id(command.gateway_transaction_id)
        if payment is None:
            logger.info(
                "Webhook for unknown transaction acknowledged",
                gateway_transaction_id=command.gateway_transaction_id,
                status=command.status,
            )
            return ReconcileOutcome.UNKNOWN_TRANSACTION.value

        target = PaymentStatus(command.status)
        previous = payment.status
        metadata = json.loads(command.metadata) if command.metadata else {}
        outcome = payment.apply_gateway_status(target, metadata)

        if outcome == ReconcileOutcome.NOOP:
            logger.debug("Duplicate webhook ignored", payment_id=str(payment.id), status=previous)
            return outcome.value

        if outcome == ReconcileOutcome.REGRESSION_REJECTED:
            logger.warning(
                "Rejected status change on final payment",
                payment_id=str(payment.id),
                current_status=previous,
                incoming_status=target.value,
            )
            return outcome.value

        if target == PaymentStatus.APPROVED:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(str(payment.order_id))
            if order.mark_as_paid():
                order_repo.add(order)

        repo.add(payment)
        logger.info(
            "Payment status updated from webhook",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            previous_status=previous,
            new_status=target.value,
        )
        return outcome.value
