"""Fulfillment bounded context — shipment label pipeline and carrier tracking.

Drives each Shipment through the carrier's cart, purchase and label steps in
background jobs, and keeps its delivery status in step with the carrier's
tracking webhooks and history. Uses CQRS because the carrier owns tracking
state and the pipeline is linear.
"""

import structlog
from protean.domain import Domain

from shared.logging import configure_logging

configure_logging()

fulfillment = Domain(name="fulfillment")

logger = structlog.get_logger(__name__)
