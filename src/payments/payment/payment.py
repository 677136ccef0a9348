"""Payment aggregate (CQRS) — the core of the payments domain.

A Payment tracks one charge attempt against an order. It is created Pending
when checkout initiates the charge and is afterwards mutated only by gateway
webhooks, which may arrive duplicated, late or out of order.

State Machine:
    PENDING ⇄ PROCESSING → {APPROVED, DECLINED, CANCELLED, FAILED}
    APPROVED → REFUNDED (the only move allowed out of a final status)

Every applied webhook appends an entry to ``gateway_responses``; entries are
never edited or removed.
"""

import json
from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from payments.domain import payments
from payments.payment.events import (
    PaymentInitiated,
    PaymentStatusChanged,
    PaymentTransactionAssigned,
)
from shared.clock import get_clock


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    APPROVED = "Approved"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"
    FAILED = "Failed"

    @property
    def is_final(self) -> bool:
        return self in _FINAL_STATUSES

    @classmethod
    def parse(cls, value) -> "PaymentStatus":
        """Read a status name case-insensitively. Unknown values are Pending."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for status in cls:
            if status.value.lower() == text:
                return status
        return cls.PENDING


_FINAL_STATUSES = {
    PaymentStatus.APPROVED,
    PaymentStatus.DECLINED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
    PaymentStatus.FAILED,
}

# (from, to) pairs allowed even though ``from`` is final
_SANCTIONED_FINAL_TRANSITIONS = {
    (PaymentStatus.APPROVED, PaymentStatus.REFUNDED),
}


class ReconcileOutcome(Enum):
    """Result of feeding one gateway webhook to the reconciler."""

    APPLIED = "Applied"
    NOOP = "NoOp"
    UNKNOWN_TRANSACTION = "UnknownTransaction"
    REGRESSION_REJECTED = "RegressionRejected"
    SIGNATURE_INVALID = "SignatureInvalid"
    MALFORMED_PAYLOAD = "MalformedPayload"
    SOFT_FAILURE = "SoftFailure"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self, 200)


_HTTP_STATUS = {
    ReconcileOutcome.SIGNATURE_INVALID: 401,
    ReconcileOutcome.MALFORMED_PAYLOAD: 400,
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@payments.entity(part_of="Payment")
class GatewayResponseEntry:
    """One entry in the append-only gateway audit log."""

    kind = String(max_length=50, required=True)  # initiation, transaction_assigned, webhook_update
    previous_status = String(max_length=50)
    new_status = String(max_length=50)
    payload = Text()  # JSON object with the gateway metadata
    updated_at = DateTime(required=True)

    @property
    def data(self) -> dict:
        return json.loads(self.payload) if self.payload else {}


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@payments.aggregate
class Payment:
    order_id = Identifier(required=True)
    gateway = String(max_length=50, default="fake")
    gateway_transaction_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)  # minor currency units
    currency = String(max_length=3, default="BRL")
    status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    paid_at = DateTime()
    refunded_at = DateTime()
    refunded_amount = Integer()
    gateway_responses = HasMany(GatewayResponseEntry)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        amount: int,
        currency: str = "BRL",
        gateway: str = "fake",
        gateway_transaction_id: str | None = None,
    ):
        """Create a pending payment when checkout initiates a charge."""
        now = get_clock().now()
        payment = cls(
            order_id=order_id,
            amount=amount,
            currency=currency,
            gateway=gateway,
            gateway_transaction_id=gateway_transaction_id,
            status=PaymentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        payment._record_response("initiation", payload={"gateway": gateway}, at=now)
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=order_id,
                amount=amount,
                currency=currency,
                gateway=gateway,
                gateway_transaction_id=gateway_transaction_id or "",
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Gateway reference
    # -------------------------------------------------------------------
    def assign_transaction(self, gateway_transaction_id: str) -> None:
        """Record the id the gateway assigned to this charge. Set once."""
        if not gateway_transaction_id:
            raise ValidationError({"gateway_transaction_id": ["Transaction id cannot be empty"]})
        if self.gateway_transaction_id == gateway_transaction_id:
            return
        if self.gateway_transaction_id:
            raise ValidationError({"gateway_transaction_id": ["Payment already has a gateway transaction id"]})

        now = get_clock().now()
        self.gateway_transaction_id = gateway_transaction_id
        self.updated_at = now
        self._record_response(
            "transaction_assigned",
            payload={"gateway_transaction_id": gateway_transaction_id},
            at=now,
        )
        self.raise_(
            PaymentTransactionAssigned(
                payment_id=str(self.id),
                gateway_transaction_id=gateway_transaction_id,
                assigned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Webhook reconciliation
    # -------------------------------------------------------------------
    def can_move_to(self, target: PaymentStatus) -> bool:
        current = PaymentStatus(self.status)
        if not current.is_final:
            return True
        return (current, target) in _SANCTIONED_FINAL_TRANSITIONS

    def apply_gateway_status(self, target: PaymentStatus, metadata: dict | None = None) -> ReconcileOutcome:
        """Move to the status reported by the gateway.

        Returns NOOP when already there and REGRESSION_REJECTED when the
        current status is final; neither touches the payment.
        """
        current = PaymentStatus(self.status)
        if target == current:
            return ReconcileOutcome.NOOP
        if not self.can_move_to(target):
            return ReconcileOutcome.REGRESSION_REJECTED

        metadata = metadata or {}
        now = get_clock().now()
        self.status = target.value

        if target == PaymentStatus.APPROVED and self.paid_at is None:
            self.paid_at = now
        elif target == PaymentStatus.REFUNDED and self.refunded_at is None:
            self.refunded_at = now
            self.refunded_amount = self._refund_amount(metadata)

        self.updated_at = now
        self._record_response(
            "webhook_update",
            previous_status=current.value,
            new_status=target.value,
            payload=metadata,
            at=now,
        )
        self.raise_(
            PaymentStatusChanged(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )
        return ReconcileOutcome.APPLIED

    def _refund_amount(self, metadata: dict) -> int:
        """Full amount unless metadata names a smaller positive refund."""
        try:
            partial = int(metadata["refunded_amount"])
        except (KeyError, TypeError, ValueError):
            return self.amount
        if partial <= 0:
            return self.amount
        return min(partial, self.amount)

    def _record_response(
        self,
        kind: str,
        payload: dict,
        at: datetime,
        previous_status: str | None = None,
        new_status: str | None = None,
    ) -> None:
        self.add_gateway_responses(
            GatewayResponseEntry(
                kind=kind,
                previous_status=previous_status,
                new_status=new_status,
                payload=json.dumps(payload, default=str),
                updated_at=at,
            )
        )
