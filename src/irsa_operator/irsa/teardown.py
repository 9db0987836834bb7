"""Ordered teardown of a cluster's IRSA resources."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from ..utils.errors import wrap_error
from ..utils.retry import check_cancelled

logger = logging.getLogger(__name__)


class TeardownStep(str, Enum):
    OBJECTS = "objects"
    BUCKET = "bucket"
    PROVIDER = "provider"
    DISTRIBUTION_DISABLE = "distribution-disable"
    DISTRIBUTION_DELETE = "distribution-delete"
    OAI_DELETE = "oai-delete"
    RECORD_DELETE = "record-delete"
    CERTIFICATE_DELETE = "certificate-delete"
    SIGNING_KEY_DELETE = "signing-key-delete"
    FINALIZER_REMOVE = "finalizer-remove"


TEARDOWN_ORDER: tuple[TeardownStep, ...] = tuple(TeardownStep)

# Steps skipped when the trust relationship is kept on delete
KEPT_TRUST_STEPS = frozenset(
    {
        TeardownStep.PROVIDER,
        TeardownStep.DISTRIBUTION_DISABLE,
        TeardownStep.DISTRIBUTION_DELETE,
        TeardownStep.OAI_DELETE,
        TeardownStep.RECORD_DELETE,
        TeardownStep.CERTIFICATE_DELETE,
        TeardownStep.SIGNING_KEY_DELETE,
    }
)

# Managed control planes only carry an identity provider
MANAGED_ISSUER_STEPS = frozenset({TeardownStep.PROVIDER, TeardownStep.FINALIZER_REMOVE})


def plan_teardown(keep_provider: bool = False, managed_issuer: bool = False) -> list[TeardownStep]:
    """Steps to run, in order.

    Args:
        keep_provider: Leave provider, distribution, certificate and keys in place
        managed_issuer: Cluster has no bucket or distribution of its own

    Returns:
        Ordered list of steps, always ending with finalizer removal
    """
    steps = list(TEARDOWN_ORDER)
    if managed_issuer:
        steps = [s for s in steps if s in MANAGED_ISSUER_STEPS]
    if keep_provider:
        steps = [s for s in steps if s not in KEPT_TRUST_STEPS]
    return steps


def run_teardown(
    actions: Mapping[TeardownStep, Callable[[], None]],
    plan: Iterable[TeardownStep],
    cluster: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> list[TeardownStep]:
    """Run the planned steps strictly in order.

    There is no progress bookkeeping: a failed or interrupted teardown is
    started again from the first step, so every action must accept an
    already absent resource.

    Args:
        actions: Callable per step; steps without an action are no-ops
        plan: Steps to run
        cluster: Cluster name for error context
        cancel_event: Checked before every step

    Returns:
        The steps that ran

    Raises:
        IRSAError: The first step failure, wrapped with the step name
    """
    completed = []
    for step in plan:
        operation = f"teardown {step.value}"
        check_cancelled(cancel_event, operation)
        action = actions.get(step)
        if action is None:
            continue
        logger.debug(f"Running {operation} for cluster {cluster}")
        try:
            action()
        except Exception as e:
            raise wrap_error(e, operation, cluster)
        completed.append(step)
    return completed
