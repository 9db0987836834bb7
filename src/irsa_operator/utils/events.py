"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_IRSA_DELETED,
    EVENT_REASON_IRSA_RECONCILED,
    EVENT_REASON_NOT_YET_READY,
    EVENT_REASON_RECONCILE_FAILED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event attached to a resource.

    Args:
        body: Full resource body; kopf builds the involved object reference
            from its apiVersion, kind and metadata
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_irsa_reconciled(body: dict[str, Any], issuer: str | None) -> None:
    """Emit reconciled event."""
    message = f"IRSA resources reconciled, issuer {issuer}" if issuer else "IRSA resources reconciled"
    emit_event(body, EVENT_REASON_IRSA_RECONCILED, message)


def emit_irsa_deleted(body: dict[str, Any]) -> None:
    """Emit deleted event."""
    emit_event(body, EVENT_REASON_IRSA_DELETED, "IRSA resources deleted")


def emit_not_yet_ready(body: dict[str, Any], message: str, reason: str | None = None) -> None:
    """Emit an event for a condition expected to resolve on its own."""
    emit_event(body, reason or EVENT_REASON_NOT_YET_READY, message)
