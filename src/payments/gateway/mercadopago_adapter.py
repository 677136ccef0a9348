"""MercadoPago payment gateway adapter.

Webhooks carry only the payment id; the adapter fetches the payment from the
REST API to learn its status. Signatures arrive in the ``X-Signature`` header
as ``ts=<unix seconds>,v1=<hex hmac>``, where the HMAC-SHA256 is computed with
the webhook secret over ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;``.
"""

import hashlib
import hmac
import json
import os
import time

import requests
import structlog

from payments.gateway.port import (
    GatewayUnavailableError,
    MalformedPayloadError,
    PaymentGateway,
    WebhookNotification,
)
from payments.payment.payment import PaymentStatus

logger = structlog.get_logger(__name__)

BASE_URL = "https://api.mercadopago.com"
DEFAULT_TOLERANCE_SECONDS = 300
DEFAULT_TIMEOUT_SECONDS = 30

STATUS_MAP = {
    "approved": PaymentStatus.APPROVED,
    "pending": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "in_mediation": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PROCESSING,
    "rejected": PaymentStatus.DECLINED,
    "cancelled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}


def map_status(gateway_status: str) -> PaymentStatus:
    """Translate a MercadoPago payment status. Anything unrecognized is Failed."""
    return STATUS_MAP.get((gateway_status or "").lower(), PaymentStatus.FAILED)


def _payment_id(data: dict) -> str:
    inner = data.get("data")
    if isinstance(inner, dict) and inner.get("id") is not None:
        return str(inner["id"])
    return ""


class MercadoPagoGateway(PaymentGateway):
    name = "mercadopago"

    def __init__(
        self,
        access_token: str,
        webhook_secret: str,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        base_url: str = BASE_URL,
    ) -> None:
        self.access_token = access_token
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> "MercadoPagoGateway":
        return cls(
            access_token=os.environ.get("MERCADOPAGO_ACCESS_TOKEN", ""),
            webhook_secret=os.environ.get("MERCADOPAGO_WEBHOOK_SECRET", ""),
            tolerance_seconds=int(os.environ.get("WEBHOOK_TOLERANCE_SECONDS", DEFAULT_TOLERANCE_SECONDS)),
        )

    # -------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------
    def sign(self, data_id: str, request_id: str, timestamp: int) -> str:
        manifest = f"id:{data_id};request-id:{request_id};ts:{timestamp};"
        return hmac.new(self.webhook_secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()

    def validate_signature(self, payload: bytes, signature: str, request_id: str = "") -> bool:
        if not self.webhook_secret:
            logger.warning("MercadoPago webhook secret not configured")
            return False
        if not signature:
            return False

        parts = {}
        for part in signature.split(","):
            key, sep, value = part.strip().partition("=")
            if sep:
                parts[key] = value

        timestamp, v1 = parts.get("ts", ""), parts.get("v1", "")
        if not timestamp or not v1:
            return False
        try:
            ts = int(timestamp)
        except ValueError:
            return False

        if abs(time.time() - ts) > self.tolerance_seconds:
            logger.warning("MercadoPago webhook signature expired", ts=ts)
            return False

        try:
            data = json.loads(payload or b"")
        except (TypeError, ValueError):
            return False
        data_id = _payment_id(data) if isinstance(data, dict) else ""

        return hmac.compare_digest(self.sign(data_id, request_id, ts), v1)

    # -------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------
    def fetch_payment(self, payment_id: str) -> dict:
        try:
            response = self.session.get(
                f"{self.base_url}/v1/payments/{payment_id}",
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.error("MercadoPago payment fetch failed", payment_id=payment_id, error=str(exc))
            raise GatewayUnavailableError(f"Could not fetch MercadoPago payment {payment_id}") from exc

    def parse(self, payload: bytes) -> WebhookNotification:
        try:
            data = json.loads(payload or b"")
        except (TypeError, ValueError) as exc:
            raise MalformedPayloadError("Webhook body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise MalformedPayloadError("Webhook body must be a JSON object")

        payment_id = _payment_id(data)
        if not payment_id:
            return WebhookNotification(transaction_id="", status=PaymentStatus.PENDING.value)

        payment = self.fetch_payment(payment_id)
        metadata = {
            "action": data.get("action", ""),
            "gateway_status": payment.get("status", ""),
            "status_detail": payment.get("status_detail", ""),
            "payment_type": payment.get("payment_type_id", ""),
            "external_reference": payment.get("external_reference", ""),
        }
        # MercadoPago reports decimal amounts; payments store minor units
        refunded = payment.get("transaction_amount_refunded")
        if refunded:
            metadata["refunded_amount"] = round(float(refunded) * 100)

        return WebhookNotification(
            transaction_id=payment_id,
            status=map_status(payment.get("status", "")).value,
            metadata=metadata,
        )
