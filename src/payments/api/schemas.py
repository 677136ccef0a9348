"""Pydantic request/response schemas for the Payments API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class RegisterOrderRequest(BaseModel):
    order_id: str | None = None
    customer_id: str | None = None
    total: int = Field(ge=0)


class InitiatePaymentRequest(BaseModel):
    order_id: str
    amount: int = Field(ge=0)
    currency: str = "BRL"
    gateway: str = "fake"
    gateway_transaction_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "ord-001",
                    "amount": 15990,
                    "currency": "BRL",
                    "gateway": "mercadopago",
                    "gateway_transaction_id": "1234567890",
                }
            ]
        }
    }


class AssignTransactionRequest(BaseModel):
    gateway_transaction_id: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class PaymentIdResponse(BaseModel):
    payment_id: str


class StatusResponse(BaseModel):
    status: str


class WebhookResponse(BaseModel):
    outcome: str


class GatewayResponseEntrySchema(BaseModel):
    kind: str
    previous_status: str | None = None
    new_status: str | None = None
    metadata: dict
    updated_at: datetime


class PaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    gateway: str
    gateway_transaction_id: str | None = None
    amount: int
    currency: str
    status: str
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    refunded_amount: int | None = None
    gateway_responses: list[GatewayResponseEntrySchema]
