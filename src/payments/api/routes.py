"""FastAPI routes for the Payments domain."""

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from payments.api.schemas import (
    AssignTransactionRequest,
    GatewayResponseEntrySchema,
    InitiatePaymentRequest,
    OrderIdResponse,
    PaymentIdResponse,
    PaymentResponse,
    RegisterOrderRequest,
    StatusResponse,
    WebhookResponse,
)
from payments.gateway.port import UnknownGatewayError
from payments.order.registration import RegisterOrder
from payments.payment.initiation import AssignGatewayTransaction, InitiatePayment
from payments.payment.payment import Payment
from payments.payment.reconciler import reconcile

payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _process(command):
    try:
        return current_domain.process(command, asynchronous=False)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UnknownGatewayError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=409, detail=exc.messages) from exc


@payment_router.post("/orders", status_code=201, response_model=OrderIdResponse)
async def register_order(body: RegisterOrderRequest) -> OrderIdResponse:
    """Register an order that will be paid through a gateway."""
    command = RegisterOrder(
        order_id=body.order_id,
        customer_id=body.customer_id,
        total=body.total,
    )
    return OrderIdResponse(order_id=_process(command))


@payment_router.post("", status_code=201, response_model=PaymentIdResponse)
async def initiate_payment(body: InitiatePaymentRequest) -> PaymentIdResponse:
    """Initiate a new payment for an order."""
    command = InitiatePayment(
        order_id=body.order_id,
        amount=body.amount,
        currency=body.currency,
        gateway=body.gateway,
        gateway_transaction_id=body.gateway_transaction_id,
    )
    return PaymentIdResponse(payment_id=_process(command))


@payment_router.put("/{payment_id}/transaction", response_model=StatusResponse)
async def assign_transaction(payment_id: str, body: AssignTransactionRequest) -> StatusResponse:
    """Record the transaction id the gateway assigned to a payment."""
    command = AssignGatewayTransaction(
        payment_id=payment_id,
        gateway_transaction_id=body.gateway_transaction_id,
    )
    _process(command)
    return StatusResponse(status="transaction_assigned")


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str) -> PaymentResponse:
    try:
        payment = current_domain.repository_for(Payment).get(payment_id)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Payment not found") from exc

    return PaymentResponse(
        payment_id=str(payment.id),
        order_id=str(payment.order_id),
        gateway=payment.gateway,
        gateway_transaction_id=payment.gateway_transaction_id,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
        paid_at=payment.paid_at,
        refunded_at=payment.refunded_at,
        refunded_amount=payment.refunded_amount,
        gateway_responses=[
            GatewayResponseEntrySchema(
                kind=entry.kind,
                previous_status=entry.previous_status,
                new_status=entry.new_status,
                metadata=entry.data,
                updated_at=entry.updated_at,
            )
            for entry in sorted(payment.gateway_responses or [], key=lambda e: e.updated_at)
        ],
    )


@payment_router.post("/webhooks/{gateway}", response_model=WebhookResponse)
async def receive_webhook(
    gateway: str,
    request: Request,
    x_signature: str = Header(default=""),
    x_request_id: str = Header(default=""),
) -> JSONResponse:
    """Receive a payment gateway webhook.

    Answers 401 for a bad signature, 400 for an unreadable body and 200 for
    everything else, including events the service could not process.
    Reconciliation waits on locks and gateway HTTP, so it runs in the
    threadpool.
    """
    raw_payload = await request.body()
    try:
        outcome = await run_in_threadpool(reconcile, gateway, raw_payload, x_signature, request_id=x_request_id)
    except UnknownGatewayError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return JSONResponse(
        status_code=outcome.http_status,
        content=WebhookResponse(outcome=outcome.value).model_dump(),
    )
