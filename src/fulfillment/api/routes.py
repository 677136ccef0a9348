"""FastAPI routes for the Fulfillment domain."""

import json

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from starlette.concurrency import run_in_threadpool

from fulfillment.api.schemas import (
    CancelShipmentRequest,
    CreateShipmentRequest,
    JobResponse,
    LabelBatchRequest,
    LabelBatchResponse,
    LabelUrlResponse,
    PublicTrackingResponse,
    ShipmentIdResponse,
    ShipmentResponse,
    StatusResponse,
    TrackingEventSchema,
    TrackingSyncResponse,
)
from fulfillment.carrier import get_carrier
from fulfillment.carrier.port import CarrierError
from fulfillment.shipment.cancellation import cancel_shipment
from fulfillment.shipment.creation import CreateShipment
from fulfillment.shipment.jobs import enqueue_tracking_webhook, request_label, request_label_batch
from fulfillment.shipment.posting import MarkShipmentPosted
from fulfillment.shipment.printing import print_label
from fulfillment.shipment.shipment import Shipment
from fulfillment.shipment.tracking import full_sync, tracking_info
from shared.locks import LockNotAcquired

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Shipment Router
# ---------------------------------------------------------------------------
shipment_router = APIRouter(prefix="/shipments", tags=["shipments"])


def _get_shipment(shipment_id: str) -> Shipment:
    try:
        return current_domain.repository_for(Shipment).get(shipment_id)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Shipment not found") from exc


def _run(func, *args, **kwargs):
    """Call a shipment operation, translating domain errors to HTTP.

    Operations that call the carrier block, so routes run them through
    ``run_in_threadpool``.
    """
    try:
        return func(*args, **kwargs)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Shipment not found") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=409, detail=exc.messages) from exc
    except LockNotAcquired as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except CarrierError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@shipment_router.post("", status_code=201, response_model=ShipmentIdResponse)
async def create_shipment(body: CreateShipmentRequest) -> ShipmentIdResponse:
    """Create a pending shipment for an order."""
    command = CreateShipment(
        order_id=body.order_id,
        service_code=body.service_code,
        carrier=body.carrier,
        recipient=json.dumps(body.recipient.model_dump()),
        address=json.dumps(body.address.model_dump()),
        package=json.dumps(body.package.model_dump()),
        products=json.dumps([p.model_dump() for p in body.products]),
        insurance_value=body.insurance_value,
    )
    result = current_domain.process(command, asynchronous=False)
    return ShipmentIdResponse(shipment_id=result)


@shipment_router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(shipment_id: str) -> ShipmentResponse:
    shipment = _get_shipment(shipment_id)
    events = sorted(shipment.tracking_events or [], key=lambda e: e.dedup_key[1], reverse=True)
    return ShipmentResponse(
        shipment_id=str(shipment.id),
        order_id=str(shipment.order_id),
        carrier=shipment.carrier,
        service_code=shipment.service_code,
        status=shipment.status,
        cart_id=shipment.cart_id,
        carrier_shipment_id=shipment.carrier_shipment_id,
        tracking_number=shipment.tracking_number,
        label_url=shipment.label_url,
        cancellation_reason=shipment.cancellation_reason,
        label_generated_at=shipment.label_generated_at,
        posted_at=shipment.posted_at,
        delivered_at=shipment.delivered_at,
        cancelled_at=shipment.cancelled_at,
        tracking_events=[
            TrackingEventSchema(
                event_code=event.event_code,
                status=event.status,
                description=event.description,
                location=event.formatted_location,
                event_at=event.event_at,
                is_delivery=event.is_delivery_event(),
                is_problem=event.is_problem_event(),
            )
            for event in events
        ],
    )


@shipment_router.post("/{shipment_id}/label", status_code=202, response_model=JobResponse)
async def generate_label(shipment_id: str) -> JobResponse:
    """Queue the carrier label pipeline for a shipment."""
    shipment = _get_shipment(shipment_id)
    if not shipment.can_generate_label():
        raise HTTPException(status_code=409, detail=f"Shipment in {shipment.status} state needs no label")
    return JobResponse(job_id=request_label(shipment_id))


@shipment_router.post("/labels/batch", status_code=202, response_model=LabelBatchResponse)
async def generate_label_batch(body: LabelBatchRequest) -> LabelBatchResponse:
    """Queue label generation for every listed shipment that still needs one."""
    job_id = request_label_batch(body.shipment_ids)
    return LabelBatchResponse(job_id=job_id, requested=len(body.shipment_ids))


@shipment_router.post("/{shipment_id}/cancel", response_model=StatusResponse)
async def cancel(shipment_id: str, body: CancelShipmentRequest) -> StatusResponse:
    """Cancel a shipment, with the carrier first if it was purchased."""
    await run_in_threadpool(_run, cancel_shipment, shipment_id, body.reason)
    return StatusResponse(status="cancelled")


@shipment_router.put("/{shipment_id}/posted", response_model=StatusResponse)
async def mark_posted(shipment_id: str) -> StatusResponse:
    """Record that the package was handed to the carrier."""
    _run(current_domain.process, MarkShipmentPosted(shipment_id=shipment_id), asynchronous=False)
    return StatusResponse(status="posted")


@shipment_router.get("/{shipment_id}/label/print", response_model=LabelUrlResponse)
async def print_shipment_label(shipment_id: str) -> LabelUrlResponse:
    label_url = await run_in_threadpool(_run, print_label, shipment_id)
    return LabelUrlResponse(label_url=label_url)


@shipment_router.post("/{shipment_id}/tracking/sync", response_model=TrackingSyncResponse)
async def sync_tracking(shipment_id: str) -> TrackingSyncResponse:
    """Pull the carrier's full tracking history for a shipment now."""
    synced = await run_in_threadpool(_run, full_sync, shipment_id)
    return TrackingSyncResponse(synced=synced, status=_get_shipment(shipment_id).status)


@shipment_router.post("/tracking/webhook", status_code=202, response_model=JobResponse)
async def receive_tracking_webhook(
    request: Request,
    x_carrier_signature: str = Header(default=""),
) -> JobResponse:
    """Receive a carrier tracking webhook and queue it for processing."""
    raw_payload = await request.body()
    if not get_carrier().verify_webhook_signature(raw_payload, x_carrier_signature):
        logger.warning("Invalid carrier webhook signature", signature_present=bool(x_carrier_signature))
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(raw_payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    return JobResponse(job_id=enqueue_tracking_webhook(payload))


@shipment_router.get("/tracking/{tracking_number}", response_model=PublicTrackingResponse)
async def public_tracking(tracking_number: str) -> PublicTrackingResponse:
    """Public tracking lookup by tracking number."""
    info = tracking_info(tracking_number)
    if info is None:
        raise HTTPException(status_code=404, detail="Tracking number not found")
    return PublicTrackingResponse(**info)
