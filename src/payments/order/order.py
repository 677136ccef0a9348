"""Order aggregate as seen by the payments context.

Orders are owned by checkout; payments only needs a place to record that an
order has been paid. ``mark_as_paid()`` is idempotent so a redelivered
approval webhook cannot pay an order twice.
"""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from payments.domain import payments
from payments.order.events import OrderMarkedPaid, OrderRegistered
from payments.payment.payment import PaymentStatus
from shared.clock import get_clock


class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


@payments.aggregate
class Order:
    customer_id = Identifier()
    total = Integer(required=True, min_value=0)  # minor currency units
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    payment_status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, total: int, customer_id: str | None = None, order_id: str | None = None):
        now = get_clock().now()
        attributes = {
            "customer_id": customer_id,
            "total": total,
            "created_at": now,
            "updated_at": now,
        }
        if order_id:
            attributes["id"] = order_id
        order = cls(**attributes)
        order.raise_(
            OrderRegistered(
                order_id=str(order.id),
                customer_id=customer_id,
                total=total,
                registered_at=now,
            )
        )
        return order

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    def mark_as_paid(self) -> bool:
        """Record payment approval. Returns False if the order was already paid."""
        if self.is_paid:
            return False

        now = get_clock().now()
        self.paid_at = now
        self.payment_status = PaymentStatus.APPROVED.value
        self.updated_at = now
        self.raise_(
            OrderMarkedPaid(
                order_id=str(self.id),
                paid_at=now,
            )
        )
        return True
