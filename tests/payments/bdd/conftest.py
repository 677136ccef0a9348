"""Shared BDD fixtures and step definitions for the Payments domain."""

from payments.payment.events import PaymentStatusChanged
from payments.payment.payment import Payment, PaymentStatus
from pytest_bdd import given, parsers, then, when

_PAYMENT_EVENT_CLASSES = {
    "PaymentStatusChanged": PaymentStatusChanged,
}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a pending payment of {amount:d}"), target_fixture="payment")
def _pending_payment(amount):
    payment = Payment.create(
        order_id="ord-bdd-001",
        amount=amount,
        gateway="fake",
        gateway_transaction_id="txn-bdd-001",
    )
    payment._events.clear()
    return payment


@given(parsers.cfparse("an approved payment of {amount:d}"), target_fixture="payment")
def _approved_payment(amount):
    payment = Payment.create(
        order_id="ord-bdd-002",
        amount=amount,
        gateway="fake",
        gateway_transaction_id="txn-bdd-002",
    )
    payment.apply_gateway_status(PaymentStatus.APPROVED)
    payment._events.clear()
    return payment


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the gateway reports "{status}"'), target_fixture="outcome")
def _gateway_reports(payment, status):
    return payment.apply_gateway_status(PaymentStatus.parse(status))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the outcome is "{expected}"'))
def _outcome_is(outcome, expected):
    assert outcome.value == expected


@then(parsers.cfparse('the payment status is "{status}"'))
def _payment_status_is(payment, status):
    assert payment.status == status


@then("the payment has a paid timestamp")
def _has_paid_timestamp(payment):
    assert payment.paid_at is not None


@then(parsers.cfparse("the refunded amount is {amount:d}"))
def _refunded_amount(payment, amount):
    assert payment.refunded_amount == amount
    assert payment.refunded_at is not None


@then(parsers.cfparse("a {event_type} event is raised"))
def _event_raised(payment, event_type):
    event_cls = _PAYMENT_EVENT_CLASSES[event_type]
    assert any(isinstance(e, event_cls) for e in payment._events)


@then("no events are raised")
def _no_events(payment):
    assert len(payment._events) == 0
