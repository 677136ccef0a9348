"""Celery worker for the fulfillment background jobs.

Usage:
    JOB_SCHEDULER=celery celery -A worker worker -Q shipping --loglevel=INFO

Every job registered with ``shared.jobs.port.job`` becomes a Celery task
here; the job module is imported explicitly so the registry is populated
before ``bind_jobs`` runs.
"""

import os

from celery import Celery
from celery.signals import worker_init

import fulfillment.shipment.jobs  # noqa: F401
from fulfillment.domain import fulfillment
from shared.jobs.celery_adapter import bind_jobs

BROKER_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RESULT_URL = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

celery_app = Celery("reconciliation", broker=BROKER_URL, backend=RESULT_URL)

celery_app.conf.task_acks_late = True
celery_app.conf.worker_prefetch_multiplier = 1
celery_app.conf.task_default_queue = "shipping"
celery_app.conf.broker_transport_options = {"visibility_timeout": 3600}

# Tests and local runs execute tasks in-process
if os.getenv("CELERY_ALWAYS_EAGER") == "1":
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True

bind_jobs(celery_app)


@worker_init.connect
def _init_domain(**_kwargs):
    fulfillment.init()
