"""Melhor Envio carrier adapter.

Talks to the Melhor Envio v2 API with a bearer token. A label takes three
calls: add the shipment to the cart, check the cart out (which purchases
it), then generate the label. Network errors and non-2xx answers become
failed LabelResults; only tracking raises CarrierError.
"""

import base64
import hashlib
import hmac
import os
import re

import requests
import structlog

from fulfillment.carrier.port import (
    CarrierError,
    CarrierPort,
    CarrierTrackingEvent,
    LabelResult,
    ShipmentRequest,
    tracking_event_from_dict,
)

logger = structlog.get_logger(__name__)

SANDBOX_URL = "https://sandbox.melhorenvio.com.br"
PRODUCTION_URL = "https://melhorenvio.com.br"
DEFAULT_TIMEOUT_SECONDS = 30
CANCEL_REASON_ID = 2  # requested by the seller


def _digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        if data.get("message"):
            return str(data["message"])
        if data.get("error"):
            return str(data["error"])
    return f"HTTP {response.status_code}"


class MelhorEnvioCarrier(CarrierPort):
    def __init__(
        self,
        token: str,
        sandbox: bool = True,
        origin: dict | None = None,
        webhook_secret: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        user_agent: str = "fulfillment-reconciliation",
    ) -> None:
        self.token = token
        self.base_url = SANDBOX_URL if sandbox else PRODUCTION_URL
        self.origin = origin or {}
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.session = session or requests.Session()
        self.user_agent = user_agent

    @classmethod
    def from_env(cls) -> "MelhorEnvioCarrier":
        return cls(
            token=os.environ.get("MELHOR_ENVIO_TOKEN", ""),
            sandbox=os.environ.get("MELHOR_ENVIO_SANDBOX", "true").lower() in ("1", "true", "yes"),
            webhook_secret=os.environ.get("MELHOR_ENVIO_WEBHOOK_SECRET", ""),
            origin={
                "name": os.environ.get("SHIPPING_ORIGIN_NAME", ""),
                "phone": os.environ.get("SHIPPING_ORIGIN_PHONE", ""),
                "email": os.environ.get("SHIPPING_ORIGIN_EMAIL", ""),
                "document": os.environ.get("SHIPPING_ORIGIN_DOCUMENT", ""),
                "address": os.environ.get("SHIPPING_ORIGIN_STREET", ""),
                "number": os.environ.get("SHIPPING_ORIGIN_NUMBER", ""),
                "district": os.environ.get("SHIPPING_ORIGIN_DISTRICT", ""),
                "city": os.environ.get("SHIPPING_ORIGIN_CITY", ""),
                "state_abbr": os.environ.get("SHIPPING_ORIGIN_STATE", ""),
                "postal_code": _digits(os.environ.get("SHIPPING_ORIGIN_ZIPCODE", "")),
            },
        )

    def _post(self, path: str, payload: dict) -> requests.Response:
        return self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
                "User-Agent": self.user_agent,
            },
            timeout=self.timeout,
        )

    def _call(self, operation: str, path: str, payload: dict, **context) -> requests.Response | LabelResult:
        """POST and return the response, or a failed LabelResult."""
        try:
            response = self._post(path, payload)
        except requests.RequestException as exc:
            logger.error("Melhor Envio request failed", operation=operation, error=str(exc), **context)
            return LabelResult.failure(str(exc))
        if not response.ok:
            logger.error(
                "Melhor Envio returned an error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
                **context,
            )
            return LabelResult.failure(f"{operation} failed: {_error_message(response)}")
        return response

    def _cart_payload(self, request: ShipmentRequest) -> dict:
        recipient, address, package = request.recipient, request.address, request.package
        return {
            "service": request.service_code,
            "from": {**self.origin, "country_id": "BR"},
            "to": {
                "name": recipient.get("name", ""),
                "phone": recipient.get("phone", ""),
                "email": recipient.get("email", ""),
                "document": recipient.get("document", ""),
                "address": address.get("street", ""),
                "complement": address.get("complement", ""),
                "number": address.get("number", ""),
                "district": address.get("neighborhood", ""),
                "city": address.get("city", ""),
                "state_abbr": address.get("state_abbr", ""),
                "country_id": "BR",
                "postal_code": _digits(address.get("postal_code")),
            },
            "products": request.products,
            "volumes": [
                {
                    "weight": package.get("weight"),
                    "width": package.get("width"),
                    "height": package.get("height"),
                    "length": package.get("length"),
                }
            ],
            "options": {
                "insurance_value": request.insurance_value / 100,
                "receipt": False,
                "own_hand": False,
                "reverse": False,
                "non_commercial": True,
                "platform": self.user_agent,
                "tags": [{"tag": request.order_id}],
            },
        }

    # -------------------------------------------------------------------
    # Label pipeline
    # -------------------------------------------------------------------
    def add_to_cart(self, request: ShipmentRequest) -> LabelResult:
        response = self._call("add_to_cart", "/api/v2/me/cart", self._cart_payload(request), order_id=request.order_id)
        if isinstance(response, LabelResult):
            return response

        cart_id = response.json().get("id")
        if not cart_id:
            return LabelResult.failure("Cart id missing from carrier response")
        logger.info("Shipment added to carrier cart", order_id=request.order_id, cart_id=cart_id)
        return LabelResult(success=True, shipment_id=str(cart_id))

    def checkout(self, cart_id: str) -> LabelResult:
        response = self._call("checkout", "/api/v2/me/shipment/checkout", {"orders": [cart_id]}, cart_id=cart_id)
        if isinstance(response, LabelResult):
            return response

        data = response.json()
        purchase = data.get("purchase") if isinstance(data, dict) else None
        if purchase is None and isinstance(data, list) and data:
            purchase = data[0]
        purchase = purchase or {}
        shipment_id = purchase.get("id") or purchase.get("protocol")
        if not shipment_id:
            return LabelResult.failure("Shipment id missing from checkout response")
        logger.info("Shipment purchased", cart_id=cart_id, shipment_id=shipment_id)
        return LabelResult(success=True, shipment_id=str(shipment_id))

    def generate_label(self, shipment_id: str) -> LabelResult:
        response = self._call(
            "generate_label",
            "/api/v2/me/shipment/generate",
            {"orders": [shipment_id]},
            shipment_id=shipment_id,
        )
        if isinstance(response, LabelResult):
            return response

        data = response.json()
        if isinstance(data, list):
            entry = data[0] if data else {}
        else:
            entry = data.get(shipment_id) or data
        label_url = (entry.get("print") or {}).get("url")
        tracking_number = entry.get("tracking")
        if not tracking_number:
            return LabelResult.failure("Tracking number missing from label response")
        return LabelResult(
            success=True,
            shipment_id=shipment_id,
            label_url=label_url or "",
            tracking_number=str(tracking_number),
        )

    def print_label(self, shipment_id: str) -> LabelResult:
        response = self._call("print_label", "/api/v2/me/shipment/print", {"orders": [shipment_id]}, shipment_id=shipment_id)
        if isinstance(response, LabelResult):
            return response

        url = response.json().get("url")
        if not url:
            return LabelResult.failure("Print url missing from carrier response")
        return LabelResult(success=True, shipment_id=shipment_id, label_url=url)

    def cancel_shipment(self, shipment_id: str, reason: str = "") -> bool:
        payload = {
            "order": {
                "id": shipment_id,
                "reason_id": CANCEL_REASON_ID,
                "description": reason or "Cancelled by the seller",
            }
        }
        response = self._call("cancel_shipment", "/api/v2/me/shipment/cancel", payload, shipment_id=shipment_id)
        if isinstance(response, LabelResult):
            return False
        logger.info("Shipment cancelled with carrier", shipment_id=shipment_id)
        return True

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def get_tracking_history(self, shipment_id: str) -> list[CarrierTrackingEvent]:
        response = self._call(
            "get_tracking_history",
            "/api/v2/me/shipment/tracking",
            {"orders": [shipment_id]},
            shipment_id=shipment_id,
        )
        if isinstance(response, LabelResult):
            raise CarrierError("get_tracking_history", response.error_message or "", shipment_id=shipment_id)

        data = response.json()
        if isinstance(data, list):
            entry = data[0] if data else {}
        else:
            entry = data.get(shipment_id) or {}
        events = entry.get("events") or entry.get("tracking") or []
        if not isinstance(events, list):
            return []
        return [tracking_event_from_dict(event) for event in events if isinstance(event, dict)]

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Melhor Envio signs the raw body with HMAC-SHA256, base64 encoded."""
        if not self.webhook_secret or not signature:
            return False
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).digest()
        return hmac.compare_digest(base64.b64encode(digest).decode(), signature)
