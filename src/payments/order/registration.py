"""Order registration — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.order.order import Order


@payments.command(part_of="Order")
class RegisterOrder:
    """Register an order that will be paid through a gateway."""

    order_id = Identifier()
    customer_id = Identifier()
    total = Integer(required=True, min_value=0)


@payments.command_handler(part_of=Order)
class RegisterOrderHandler:
    @handle(RegisterOrder)
    def register_order(self, command):
        order = Order.register(
            total=command.total,
            customer_id=command.customer_id,
            order_id=command.order_id,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
