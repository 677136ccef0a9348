"""Repository for the Payment aggregate."""

from payments.domain import payments
from payments.payment.payment import Payment


@payments.repository(part_of=Payment)
class PaymentRepository:
    def find_by_transaction_id(self, gateway_transaction_id: str) -> Payment | None:
        """Find the payment the gateway knows as ``gateway_transaction_id``."""
        results = self._dao.query.filter(gateway_transaction_id=gateway_transaction_id).all()
        if not results or not results.items:
            return None
        return self.get(str(results.first.id))
