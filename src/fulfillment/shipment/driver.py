"""Fulfillment driver — runs the carrier label pipeline for one shipment.

``advance()`` looks at the shipment's current status and runs every stage
from there on: add to cart, purchase, generate the label. Each carrier call
is followed by its own command, so the status is persisted as soon as a
stage succeeds. A run that fails half way raises CarrierError and the next
run resumes from the last persisted status.

Two overlapping runs for the same shipment could both see the same status
and submit the same carrier call twice, so runs hold a per-shipment lock and
a second run skips instead of waiting.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from fulfillment.carrier import get_carrier
from fulfillment.carrier.port import CarrierError, LabelResult
from fulfillment.shipment.shipment import Shipment, ShipmentStatus
from fulfillment.shipment.stages import RecordCartAdded, RecordLabelGenerated, RecordPurchase
from shared.locks import LockNotAcquired, get_locks

logger = structlog.get_logger(__name__)

LOCK_TTL_SECONDS = 120


def advance_lock_key(shipment_id: str) -> str:
    return f"shipment-advance:{shipment_id}"


def _require(result: LabelResult, operation: str, shipment_id: str) -> LabelResult:
    if not result.success:
        raise CarrierError(operation, result.error_message or "unknown carrier error", shipment_id=shipment_id)
    return result


def _notify_customer(shipment: Shipment) -> None:
    # Notification delivery lives outside this service
    logger.info(
        "Shipment label ready for customer notification",
        shipment_id=str(shipment.id),
        order_id=str(shipment.order_id),
        tracking_number=shipment.tracking_number,
    )


def _run_stages(shipment_id: str) -> ShipmentStatus:
    repo = current_domain.repository_for(Shipment)
    carrier = get_carrier()
    shipment = repo.get(shipment_id)
    log = logger.bind(shipment_id=shipment_id, order_id=str(shipment.order_id))
    generated_now = False

    if not shipment.can_generate_label():
        log.debug("No label stage to run", status=shipment.status)
        return shipment.current_status

    if shipment.current_status == ShipmentStatus.PENDING:
        result = _require(carrier.add_to_cart(shipment.to_carrier_request()), "add_to_cart", shipment_id)
        current_domain.process(
            RecordCartAdded(shipment_id=shipment_id, cart_id=result.shipment_id),
            asynchronous=False,
        )
        shipment = repo.get(shipment_id)

    if shipment.current_status == ShipmentStatus.CART_ADDED:
        result = _require(carrier.checkout(shipment.cart_id), "checkout", shipment_id)
        current_domain.process(
            RecordPurchase(shipment_id=shipment_id, carrier_shipment_id=result.shipment_id),
            asynchronous=False,
        )
        shipment = repo.get(shipment_id)

    if shipment.current_status == ShipmentStatus.PURCHASED:
        result = _require(carrier.generate_label(shipment.carrier_shipment_id), "generate_label", shipment_id)
        current_domain.process(
            RecordLabelGenerated(
                shipment_id=shipment_id,
                label_url=result.label_url,
                tracking_number=result.tracking_number,
            ),
            asynchronous=False,
        )
        shipment = repo.get(shipment_id)
        generated_now = True

    if shipment.current_status == ShipmentStatus.GENERATED and generated_now:
        _notify_customer(shipment)

    log.info("Label pipeline finished", status=shipment.status)
    return shipment.current_status


def advance(shipment_id: str) -> ShipmentStatus | None:
    """Run the remaining label stages for a shipment.

    Returns the status the shipment ended at, or None when another run
    already holds the shipment. Raises CarrierError when a carrier call
    fails; everything reached before the failure stays persisted.
    """
    try:
        with get_locks().hold(advance_lock_key(shipment_id), ttl=LOCK_TTL_SECONDS, blocking_timeout=0):
            return _run_stages(shipment_id)
    except LockNotAcquired:
        logger.info("Shipment is already being advanced, skipping", shipment_id=shipment_id)
        return None


def label_candidates(shipment_ids: list[str]) -> list[str]:
    """Keep the ids of shipments that still need label stages run.

    Unknown ids and shipments past the label stages are dropped quietly.
    """
    repo = current_domain.repository_for(Shipment)
    candidates = []
    for shipment_id in dict.fromkeys(shipment_ids):
        try:
            shipment = repo.get(shipment_id)
        except ObjectNotFoundError:
            logger.debug("Skipping unknown shipment in label batch", shipment_id=shipment_id)
            continue
        if shipment.can_generate_label():
            candidates.append(str(shipment.id))
    return candidates
