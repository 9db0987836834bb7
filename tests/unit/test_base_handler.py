"""Tests for base handler functionality."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import kopf
import pytest

from irsa_operator.constants import FINALIZER, FINALIZER_DEPRECATED
from irsa_operator.handlers.base import BaseHandler, ClusterHandler
from irsa_operator.utils.errors import ErrorKind, IRSAError, not_yet_ready


@pytest.fixture
def shared():
    with patch("irsa_operator.handlers.base.shared") as mock_shared:
        yield mock_shared


class TestFinalizers:
    """Test cases for finalizer bookkeeping."""

    def test_ensure_finalizer_adds_when_missing(self):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")
        meta = {"finalizers": ["other-finalizer"]}
        patch_ = kopf.Patch()

        handler.ensure_finalizer(meta, patch_)

        assert patch_.metadata["finalizers"] == ["other-finalizer", FINALIZER]

    def test_ensure_finalizer_no_duplicate(self):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")
        patch_ = kopf.Patch()

        handler.ensure_finalizer({"finalizers": [FINALIZER]}, patch_)

        assert "finalizers" not in patch_.metadata

    def test_deprecated_finalizer_is_migrated(self):
        """Clusters carrying only the deprecated finalizer get the current one added."""
        handler = BaseHandler(kind="AWSCluster", flavor="legacy")
        meta = {"finalizers": [FINALIZER_DEPRECATED]}
        patch_ = kopf.Patch()

        assert handler.has_finalizer(meta)
        handler.ensure_finalizer(meta, patch_)

        assert patch_.metadata["finalizers"] == [FINALIZER_DEPRECATED, FINALIZER]

    def test_remove_finalizers_removes_both(self):
        handler = BaseHandler(kind="AWSCluster", flavor="legacy")
        meta = {"finalizers": [FINALIZER_DEPRECATED, "other-finalizer", FINALIZER]}
        patch_ = kopf.Patch()

        handler.remove_finalizers(meta, patch_)

        assert patch_.metadata["finalizers"] == ["other-finalizer"]

    def test_remove_finalizers_sets_none_when_empty(self):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")
        patch_ = kopf.Patch()

        handler.remove_finalizers({"finalizers": [FINALIZER]}, patch_)

        assert patch_.metadata["finalizers"] is None

    def test_has_finalizer(self):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")
        assert not handler.has_finalizer({})
        assert not handler.has_finalizer({"finalizers": ["other-finalizer"]})
        assert handler.has_finalizer({"finalizers": [FINALIZER]})


class TestHandleIRSAError:
    """Test cases for translating IRSAError kinds into kopf semantics."""

    body = {
        "apiVersion": "infrastructure.cluster.x-k8s.io/v1beta2",
        "kind": "AWSCluster",
        "metadata": {"name": "abc12", "namespace": "org-acme", "uid": "1234"},
    }

    @patch("irsa_operator.handlers.base.emit_not_yet_ready")
    def test_not_yet_ready_requeues_quietly(self, mock_emit, shared, monkeypatch):
        monkeypatch.delenv("NOT_YET_READY_REQUEUE_SECONDS", raising=False)
        handler = BaseHandler(kind="AWSCluster", flavor="capa")

        with pytest.raises(kopf.TemporaryError) as exc_info:
            handler.handle_irsa_error(self.body, not_yet_ready("certificate pending", reason="CertificateNotIssued"))

        assert exc_info.value.delay == 60.0
        mock_emit.assert_called_once_with(self.body, "certificate pending", "CertificateNotIssued")
        shared.metrics_sink.reconcile.assert_called_once_with("capa", "not_ready")

    @patch("irsa_operator.handlers.base.emit_not_yet_ready")
    def test_not_yet_ready_honours_requeue_after(self, mock_emit, shared):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")

        with pytest.raises(kopf.TemporaryError) as exc_info:
            handler.handle_irsa_error(self.body, not_yet_ready("no key", requeue_after=30))

        assert exc_info.value.delay == 30

    @patch("irsa_operator.handlers.base.emit_reconcile_failed")
    def test_retryable_requeues(self, mock_emit, shared):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")

        with pytest.raises(kopf.TemporaryError) as exc_info:
            handler.handle_irsa_error(self.body, IRSAError("throttled", kind=ErrorKind.RETRYABLE))

        assert exc_info.value.delay == 30
        mock_emit.assert_called_once()
        shared.metrics_sink.reconcile.assert_called_once_with("capa", "retry")

    @patch("irsa_operator.handlers.base.emit_reconcile_failed")
    def test_fatal_is_reraised(self, mock_emit, shared):
        handler = BaseHandler(kind="AWSCluster", flavor="capa")
        error = IRSAError("access denied", operation="reconcile", cluster="abc12")

        with pytest.raises(IRSAError) as exc_info:
            handler.handle_irsa_error(self.body, error)

        assert exc_info.value is error
        mock_emit.assert_called_once_with(self.body, "reconcile for cluster abc12: access denied")
        shared.metrics_sink.reconcile.assert_called_once_with("capa", "error")


class TestRunWithMetrics:
    """Test cases for run_with_metrics."""

    body = {"metadata": {"name": "abc12", "namespace": "org-acme"}}

    def test_success(self, shared):
        handler = BaseHandler(kind="AWSCluster", flavor="eks")

        result = handler.run_with_metrics(self.body, "reconcile", lambda: "issuer")

        assert result == "issuer"
        shared.metrics_sink.reconcile.assert_called_once_with("eks", "success")
        shared.metrics_sink.reconcile_duration.assert_called_once()

    @patch("irsa_operator.handlers.base.emit_reconcile_failed")
    def test_unexpected_error_is_wrapped(self, mock_emit, shared):
        handler = BaseHandler(kind="AWSCluster", flavor="eks")

        def failing():
            raise RuntimeError("boom")

        with pytest.raises(IRSAError) as exc_info:
            handler.run_with_metrics(self.body, "reconcile", failing)

        assert exc_info.value.kind is ErrorKind.FATAL
        assert exc_info.value.operation == "reconcile"
        shared.metrics_sink.reconcile_duration.assert_called_once()
        shared.metrics_sink.reconcile.assert_called_once_with("eks", "error")


class TestClusterHandler:
    """Test cases for the shared reconcile and delete flow."""

    @pytest.fixture
    def handler(self, shared):
        handler = ClusterHandler(kind="AWSCluster", flavor="capa")
        self.scope = MagicMock(cluster_name="abc12", cluster_namespace="org-acme")
        self.resolver = MagicMock()
        self.resolver.resolve.return_value = self.scope
        self.service = MagicMock()
        self.service.reconcile.return_value = "https://irsa.example.com"
        handler.resolver = MagicMock(return_value=self.resolver)
        handler.service = MagicMock(return_value=self.service)
        return handler

    @patch("irsa_operator.handlers.base.emit_irsa_reconciled")
    def test_reconcile_adds_finalizer_and_emits(self, mock_emit, handler):
        meta = {"name": "abc12", "namespace": "org-acme"}
        patch_ = kopf.Patch()

        body = {"kind": "AWSCluster", "metadata": meta}

        issuer = handler.reconcile(body, meta, patch_)

        assert issuer == "https://irsa.example.com"
        assert patch_.metadata["finalizers"] == [FINALIZER]
        mock_emit.assert_called_once_with(body, "https://irsa.example.com")

    @patch("irsa_operator.handlers.base.emit_irsa_reconciled")
    def test_periodic_reconcile_does_not_emit(self, mock_emit, handler):
        meta = {"name": "abc12", "namespace": "org-acme", "finalizers": [FINALIZER]}

        handler.reconcile({"metadata": meta}, meta, kopf.Patch(), periodic=True)

        mock_emit.assert_not_called()
        self.service.reconcile.assert_called_once_with()

    def test_unmanaged_cluster_is_left_alone(self, handler):
        self.resolver.resolve.return_value = None
        meta = {"name": "abc12", "namespace": "org-acme"}
        patch_ = kopf.Patch()

        assert handler.reconcile({"metadata": meta}, meta, patch_) is None
        assert "finalizers" not in patch_.metadata
        handler.service.assert_not_called()

    def test_reconcile_handler_skips_deleted_objects(self, handler):
        meta = {"name": "abc12", "deletionTimestamp": "2026-01-01T00:00:00Z"}

        handler.reconcile_handler({"metadata": meta}, meta, kopf.Patch())

        self.resolver.resolve.assert_not_called()

    @patch("irsa_operator.handlers.base.emit_irsa_deleted")
    def test_delete_releases_finalizers_through_service(self, mock_emit, handler):
        meta = {"name": "abc12", "namespace": "org-acme", "finalizers": [FINALIZER, FINALIZER_DEPRECATED]}
        patch_ = kopf.Patch()
        self.service.delete.side_effect = lambda release: release()

        body = {"kind": "AWSCluster", "metadata": meta}

        handler.delete(body, meta, patch_)

        assert patch_.metadata["finalizers"] is None
        mock_emit.assert_called_once_with(body)

    def test_failed_teardown_keeps_finalizers(self, handler):
        meta = {"name": "abc12", "namespace": "org-acme", "finalizers": [FINALIZER]}
        patch_ = kopf.Patch()
        self.service.delete.side_effect = not_yet_ready("distribution still enabled")

        with pytest.raises(IRSAError):
            handler.delete({"metadata": meta}, meta, patch_)

        assert "finalizers" not in patch_.metadata

    def test_delete_without_finalizer_is_skipped(self, handler):
        meta = {"name": "abc12", "namespace": "org-acme"}

        handler.delete({"metadata": meta}, meta, kopf.Patch())

        self.resolver.resolve.assert_not_called()
