"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class RecipientRequest(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    document: str | None = None


class AddressRequest(BaseModel):
    street: str
    number: str | None = None
    complement: str | None = None
    neighborhood: str | None = None
    city: str
    state_abbr: str = Field(min_length=2, max_length=2)
    postal_code: str


class PackageRequest(BaseModel):
    weight: float = Field(gt=0)
    length: float | None = None
    width: float | None = None
    height: float | None = None


class ProductRequest(BaseModel):
    name: str
    quantity: int = Field(ge=1)
    unitary_value: int = Field(ge=0)  # minor currency units


class CreateShipmentRequest(BaseModel):
    order_id: str
    service_code: str
    carrier: str = "fake"
    recipient: RecipientRequest
    address: AddressRequest
    package: PackageRequest
    products: list[ProductRequest] = []
    insurance_value: int = Field(default=0, ge=0)


class LabelBatchRequest(BaseModel):
    shipment_ids: list[str]


class CancelShipmentRequest(BaseModel):
    reason: str = ""


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class ShipmentIdResponse(BaseModel):
    shipment_id: str


class StatusResponse(BaseModel):
    status: str


class JobResponse(BaseModel):
    job_id: str


class LabelBatchResponse(BaseModel):
    job_id: str
    requested: int


class LabelUrlResponse(BaseModel):
    label_url: str


class TrackingSyncResponse(BaseModel):
    synced: bool
    status: str


class TrackingEventSchema(BaseModel):
    event_code: str | None = None
    status: str
    description: str | None = None
    location: str
    event_at: datetime
    is_delivery: bool
    is_problem: bool


class ShipmentResponse(BaseModel):
    shipment_id: str
    order_id: str
    carrier: str
    service_code: str
    status: str
    cart_id: str | None = None
    carrier_shipment_id: str | None = None
    tracking_number: str | None = None
    label_url: str | None = None
    cancellation_reason: str | None = None
    label_generated_at: datetime | None = None
    posted_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    tracking_events: list[TrackingEventSchema] = []


class PublicTrackingEventSchema(BaseModel):
    event_at: datetime
    description: str | None = None
    location: str
    status: str
    is_delivery: bool
    is_problem: bool


class PublicTrackingResponse(BaseModel):
    tracking_number: str
    carrier: str
    service_code: str
    status: str
    recipient_city: str | None = None
    recipient_state: str | None = None
    posted_at: datetime | None = None
    delivered_at: datetime | None = None
    events: list[PublicTrackingEventSchema]
