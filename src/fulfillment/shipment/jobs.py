"""Background jobs of the fulfillment domain.

All three run on the ``shipping`` queue. Job bodies only raise on failure;
the scheduler applies the retry policy and calls the failure hook once the
last attempt has failed. A shipment whose label job is exhausted stays at
the last status it reached.
"""

import structlog

from fulfillment.domain import fulfillment
from fulfillment.shipment.driver import advance, label_candidates
from fulfillment.shipment.tracking import ingest_webhook
from shared.jobs import get_scheduler
from shared.jobs.port import RetryPolicy, job

logger = structlog.get_logger(__name__)

SHIPPING_QUEUE = "shipping"

GENERATE_LABEL = "fulfillment.generate_label"
BATCH_GENERATE_LABELS = "fulfillment.batch_generate_labels"
PROCESS_TRACKING_WEBHOOK = "fulfillment.process_tracking_webhook"

LABEL_RETRY_POLICY = RetryPolicy(max_attempts=3, backoff_seconds=(60, 300, 900))
TRACKING_RETRY_POLICY = RetryPolicy(max_attempts=3, backoff_seconds=(30, 60, 120))


def _label_job_failed(payload: dict, exc: BaseException) -> None:
    logger.error(
        "Shipment label generation failed",
        shipment_id=payload.get("shipment_id"),
        error=str(exc),
    )


def _tracking_job_failed(payload: dict, exc: BaseException) -> None:
    logger.error("Tracking webhook job failed", payload=payload.get("payload"), error=str(exc))


@job(
    GENERATE_LABEL,
    queue=SHIPPING_QUEUE,
    policy=LABEL_RETRY_POLICY,
    domain=fulfillment,
    on_failure=_label_job_failed,
)
def generate_label(shipment_id: str) -> str | None:
    status = advance(shipment_id)
    return status.value if status else None


@job(BATCH_GENERATE_LABELS, queue=SHIPPING_QUEUE, domain=fulfillment)
def batch_generate_labels(shipment_ids: list[str]) -> int:
    return len(dispatch_label_batch(shipment_ids))


@job(
    PROCESS_TRACKING_WEBHOOK,
    queue=SHIPPING_QUEUE,
    policy=TRACKING_RETRY_POLICY,
    domain=fulfillment,
    on_failure=_tracking_job_failed,
)
def process_tracking_webhook(payload: dict) -> bool:
    return ingest_webhook(payload)


def request_label(shipment_id: str, delay: float = 0) -> str:
    """Queue the label pipeline for one shipment. Returns the job id."""
    return get_scheduler().enqueue(GENERATE_LABEL, {"shipment_id": shipment_id}, delay=delay)


def dispatch_label_batch(shipment_ids: list[str]) -> list[str]:
    """Queue one label job per shipment that still needs a label."""
    candidates = label_candidates(shipment_ids)
    for shipment_id in candidates:
        request_label(shipment_id)
    logger.info("Label batch dispatched", requested=len(shipment_ids), dispatched=len(candidates))
    return candidates


def request_label_batch(shipment_ids: list[str]) -> str:
    """Queue the batch job that filters and dispatches label jobs."""
    return get_scheduler().enqueue(BATCH_GENERATE_LABELS, {"shipment_ids": list(shipment_ids)})


def enqueue_tracking_webhook(payload: dict) -> str:
    return get_scheduler().enqueue(PROCESS_TRACKING_WEBHOOK, {"payload": payload})
