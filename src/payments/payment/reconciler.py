"""Payment webhook reconciliation.

``reconcile()`` is the whole webhook flow minus HTTP: resolve the gateway,
check the signature, normalize the body, then apply the status under a
per-transaction lock. It always returns a ReconcileOutcome; only an unknown
gateway name raises.

Processing errors after the body has been accepted are logged with their
traceback and reported as SOFT_FAILURE, which the HTTP layer acknowledges
with a 200 so the gateway does not keep resending the same event.
"""

import json

import structlog
from protean.utils.globals import current_domain

from payments.gateway import get_gateway
from payments.gateway.port import MalformedPayloadError
from payments.payment.payment import ReconcileOutcome
from payments.payment.webhook import ApplyGatewayStatus
from shared.locks import get_locks

logger = structlog.get_logger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_WAIT_SECONDS = 10


def reconcile(
    gateway_name: str,
    raw_payload: bytes,
    signature: str,
    request_id: str = "",
) -> ReconcileOutcome:
    gateway = get_gateway(gateway_name)
    log = logger.bind(gateway=gateway_name)

    if not gateway.validate_signature(raw_payload, signature, request_id):
        log.warning("Invalid webhook signature", signature_present=bool(signature))
        return ReconcileOutcome.SIGNATURE_INVALID

    try:
        notification = gateway.parse(raw_payload)
    except MalformedPayloadError as exc:
        log.warning("Malformed webhook payload", error=str(exc))
        return ReconcileOutcome.MALFORMED_PAYLOAD
    except Exception:
        log.exception("Webhook payload could not be normalized")
        return ReconcileOutcome.SOFT_FAILURE

    if not notification.transaction_id:
        log.warning("Webhook payload has no transaction id")
        return ReconcileOutcome.MALFORMED_PAYLOAD

    log = log.bind(gateway_transaction_id=notification.transaction_id, status=notification.status)
    try:
        with get_locks().hold(
            f"payment-webhook:{notification.transaction_id}",
            ttl=LOCK_TTL_SECONDS,
            blocking_timeout=LOCK_WAIT_SECONDS,
        ):
            result = current_domain.process(
                ApplyGatewayStatus(
                    gateway_transaction_id=notification.transaction_id,
                    status=notification.status,
                    metadata=json.dumps(notification.metadata, default=str),
                ),
                asynchronous=False,
            )
    except Exception:
        log.exception("Payment webhook processing failed")
        return ReconcileOutcome.SOFT_FAILURE

    return ReconcileOutcome(result)
