"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement: check
that a webhook really came from the gateway, and turn its provider-specific
body into a normalized WebhookNotification. Adapters are looked up by name,
so the reconciler never depends on a concrete provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class UnknownGatewayError(LookupError):
    """No gateway adapter is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown payment gateway: {name}")
        self.name = name


class MalformedPayloadError(ValueError):
    """The webhook body could not be understood."""


class GatewayUnavailableError(RuntimeError):
    """The gateway API could not be reached or answered with an error."""


@dataclass(frozen=True)
class WebhookNotification:
    """A gateway webhook reduced to what the reconciler needs."""

    transaction_id: str
    status: str  # a PaymentStatus value
    metadata: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = ""

    @abstractmethod
    def validate_signature(self, payload: bytes, signature: str, request_id: str = "") -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    @abstractmethod
    def parse(self, payload: bytes) -> WebhookNotification:
        """Normalize a webhook body.

        Raises MalformedPayloadError when the body cannot be read and
        GatewayUnavailableError when the gateway must be queried and fails.
        """
        ...
