"""Payments bounded context — gateway webhook reconciliation.

Keeps each Payment's status in step with what the payment gateways report
through asynchronous, at-least-once webhooks, and marks orders paid when a
charge is approved.
"""

import structlog
from protean.domain import Domain

from shared.logging import configure_logging

configure_logging()

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
