"""Base handler class with common functionality for all cluster flavors."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Mapping, Optional, TypeVar

import kopf

from ..constants import FINALIZER, FINALIZER_DEPRECATED, RETRYABLE_REQUEUE_SECONDS
from ..irsa import ClusterResolver, IRSAService
from ..logging import CONTROLLER_NAME, log_resource_event
from ..scope import ClusterScope
from ..services.aws.factory import build_services
from ..tracing import add_span_attribute, trace_span
from ..utils.cache import default_cache
from ..utils.errors import ErrorKind, IRSAError, sanitize_exception, wrap_error
from ..utils.events import emit_irsa_deleted, emit_irsa_reconciled, emit_not_yet_ready, emit_reconcile_failed
from ..utils.secrets import StateStore
from . import shared

_T = TypeVar("_T")

FINALIZERS = (FINALIZER, FINALIZER_DEPRECATED)


def not_yet_ready_delay() -> float:
    return float(os.getenv("NOT_YET_READY_REQUEUE_SECONDS", "60"))


def deprecated_finalizer_only(meta: Mapping[str, Any], **_: Any) -> bool:
    """Filter for objects guarded only by the deprecated finalizer.

    kopf tracks deletion through the current finalizer alone, so these objects
    need an optional delete handler of their own.
    """
    finalizers = meta.get("finalizers") or []
    return FINALIZER_DEPRECATED in finalizers and FINALIZER not in finalizers


class BaseHandler:
    """Base class for all cluster handlers with common functionality."""

    def __init__(self, kind: str, flavor: str):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "AWSCluster")
            flavor: Cluster flavor used in metrics and traces
        """
        self.kind = kind
        self.flavor = flavor
        self.logger = logging.getLogger(__name__)

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        """Extract common resource context from metadata."""
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace", "default"),
            "uid": meta.get("uid", "unknown"),
        }

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **kwargs: Any) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            flavor=self.flavor,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            event: Event type (default: "info")
            reason: Reason for the event (default: "Info")
            **kwargs: Additional fields to include in the log
        """
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured log message."""
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        self._log(logging.ERROR, meta, message, event, reason, **log_data)

    def has_finalizer(self, meta: dict[str, Any]) -> bool:
        """Whether the current or the deprecated finalizer is present."""
        finalizers = meta.get("finalizers") or []
        return any(f in finalizers for f in FINALIZERS)

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Ensure finalizer is present in metadata."""
        finalizers = list(meta.get("finalizers") or [])
        if FINALIZER not in finalizers:
            finalizers.append(FINALIZER)
            patch.metadata["finalizers"] = finalizers

    def remove_finalizers(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Remove the current and the deprecated finalizer together."""
        finalizers = list(meta.get("finalizers") or [])
        remaining = [f for f in finalizers if f not in FINALIZERS]
        if remaining != finalizers:
            patch.metadata["finalizers"] = remaining if remaining else None

    def handle_irsa_error(self, body: dict[str, Any], error: IRSAError) -> None:
        """Translate an orchestration error into kopf's retry semantics.

        Raises:
            kopf.TemporaryError: For NotYetReady and retryable errors
            IRSAError: For fatal errors, retried with kopf's default backoff
        """
        meta = body.get("metadata") or {}
        message = str(error)
        if error.kind is ErrorKind.NOT_YET_READY:
            self.log_info(meta, message, event="not_ready", reason=error.reason or "NotYetReady")
            emit_not_yet_ready(body, message, error.reason)
            shared.metrics_sink.reconcile(self.flavor, "not_ready")
            raise kopf.TemporaryError(message, delay=error.requeue_after or not_yet_ready_delay()) from error
        if error.kind is ErrorKind.RETRYABLE:
            self.log_warning(meta, message, event="retry", reason="ReconcileRetry")
            emit_reconcile_failed(body, message)
            shared.metrics_sink.reconcile(self.flavor, "retry")
            raise kopf.TemporaryError(message, delay=RETRYABLE_REQUEUE_SECONDS) from error
        self.log_error(meta, "Reconciliation failed", error=error, reason="ReconcileFailed")
        emit_reconcile_failed(body, message)
        shared.metrics_sink.reconcile(self.flavor, "error")
        raise error

    def run_with_metrics(self, body: dict[str, Any], operation: str, fn: Callable[[], _T]) -> _T:
        """Execute ``fn`` with duration metrics and error translation.

        Args:
            body: Kubernetes resource body
            operation: Name used in error context ("reconcile", "delete")
            fn: Function to execute
        """
        start_time = time.time()
        try:
            result = fn()
        except IRSAError as e:
            self.handle_irsa_error(body, e)
            raise
        except kopf.TemporaryError:
            raise
        except Exception as e:
            self.handle_irsa_error(body, wrap_error(e, operation, (body.get("metadata") or {}).get("name")))
            raise
        finally:
            shared.metrics_sink.reconcile_duration(self.flavor, time.time() - start_time)
        shared.metrics_sink.reconcile(self.flavor, "success")
        return result


class ClusterHandler(BaseHandler):
    """Drives IRSAService for one cluster flavor."""

    resolver_class: type[ClusterResolver] = ClusterResolver

    def resolver(self) -> ClusterResolver:
        return self.resolver_class(
            shared.get_k8s_client(),
            shared.get_core_client(),
            installation=shared.installation(),
            cache=default_cache,
            cancel_event=shared.cancel_event,
        )

    def service(self, scope: ClusterScope, state_store: StateStore) -> IRSAService:
        return IRSAService(scope, build_services(scope, shared.metrics_sink), state_store, shared.metrics_sink)

    def before_reconcile(self, scope: ClusterScope, state_store: StateStore) -> None:
        """Hook run after the scope is resolved and before any AWS call."""

    def after_teardown(self, scope: ClusterScope, state_store: StateStore) -> None:
        """Hook run right before the cluster's finalizers are removed."""

    def reconcile(self, body: dict[str, Any], meta: dict[str, Any], patch: kopf.Patch, periodic: bool = False) -> Optional[str]:
        """Reconcile a cluster object.

        Returns:
            The issuer URL, None if the cluster is not managed
        """
        name = meta.get("name", "unknown")
        with trace_span(f"reconcile_{self.flavor}", flavor=self.flavor, attributes={"cluster.name": name}):
            scope = self.resolver().resolve(body)
            if scope is None:
                return None
            self.ensure_finalizer(meta, patch)

            state_store = shared.get_state_store()
            self.before_reconcile(scope, state_store)
            issuer = self.service(scope, state_store).reconcile()
            add_span_attribute("irsa.issuer", issuer)

        self.log_info(meta, "IRSA resources reconciled", event="reconciled", reason="IRSAReconciled", issuer=issuer)
        if not periodic:
            emit_irsa_reconciled(body, issuer)
        return issuer

    def delete(self, body: dict[str, Any], meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Tear down a cluster's resources and release its finalizers."""
        if not self.has_finalizer(meta):
            self.log_info(meta, "No IRSA finalizer present, skipping teardown", event="deletion", reason="Deletion")
            return

        name = meta.get("name", "unknown")
        with trace_span(f"delete_{self.flavor}", flavor=self.flavor, attributes={"cluster.name": name}):
            scope = self.resolver().resolve(body)
            if scope is None:
                self.remove_finalizers(meta, patch)
                return

            state_store = shared.get_state_store()

            def release() -> None:
                self.after_teardown(scope, state_store)
                self.remove_finalizers(meta, patch)

            self.service(scope, state_store).delete(release)

        self.log_info(meta, "IRSA resources deleted", event="deletion", reason="IRSADeleted")
        emit_irsa_deleted(body)

    def reconcile_handler(self, body: dict[str, Any], meta: dict[str, Any], patch: kopf.Patch, periodic: bool = False) -> None:
        if meta.get("deletionTimestamp"):
            return
        self.run_with_metrics(body, "reconcile", lambda: self.reconcile(body, meta, patch, periodic=periodic))

    def delete_handler(self, body: dict[str, Any], meta: dict[str, Any], patch: kopf.Patch) -> None:
        self.run_with_metrics(body, "delete", lambda: self.delete(body, meta, patch))
