"""Main entry point for the IRSA Operator.

Run with ``kopf run -m irsa_operator.main``.
"""

from __future__ import annotations

import os
from typing import Any

import kopf

from . import health
from . import logging as structured_logging
from . import tracing
from .constants import FINALIZER
from .handlers import register_handlers, shared

ANNOTATION_PREFIX = "irsa-operator.giantswarm.io"

register_handlers()


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging()
    tracing.initialize_tracing()

    # kopf guards deletion with the operator's own finalizer
    settings.persistence.finalizer = FINALIZER
    # Use AnnotationsProgressStorage to avoid conflicts with status updates
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=ANNOTATION_PREFIX)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=ANNOTATION_PREFIX,
        key="last-handled-configuration",
    )

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    # Blocking AWS calls run in kopf's thread pool; kopf serializes handlers per object
    settings.execution.max_workers = 4

    # Start metrics HTTP server with health check endpoints on port 8080
    health.start_http_server(int(os.getenv("METRICS_PORT", "8080")))
    health.mark_ready()


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Stop in-flight reconciles before their next write."""
    shared.cancel_event.set()
    health.mark_ready(False)
