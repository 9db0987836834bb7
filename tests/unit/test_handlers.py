"""Tests for flavor handlers and their registration."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import kopf

from irsa_operator.constants import FINALIZER, FINALIZER_DEPRECATED
from irsa_operator.handlers import enabled_flavors, register_handlers, shared
from irsa_operator.handlers.base import deprecated_finalizer_only, not_yet_ready_delay
from irsa_operator.handlers.capa import CAPAClusterHandler, release_capa_deprecated_finalizer
from irsa_operator.handlers.eks import EKSClusterHandler
from irsa_operator.handlers.legacy import LegacyClusterHandler
from irsa_operator.irsa import CAPAResolver, EKSResolver, LegacyResolver
from irsa_operator.utils.secrets import KIND_CONFIGMAP

VALUES = (KIND_CONFIGMAP, "org-acme", "abc12-cluster-values")


class TestCAPAClusterHandler:
    """The cluster-values configmap follows the cluster's finalizer."""

    def test_before_reconcile_adds_configmap_finalizer(self, make_scope, state_store):
        handler = CAPAClusterHandler()

        handler.before_reconcile(make_scope("capa"), state_store)
        handler.before_reconcile(make_scope("capa"), state_store)

        assert state_store.finalizers[VALUES] == [FINALIZER]

    def test_after_teardown_removes_both_finalizers(self, make_scope, state_store):
        state_store.finalizers[VALUES] = [FINALIZER_DEPRECATED, "helm", FINALIZER]

        CAPAClusterHandler().after_teardown(make_scope("capa"), state_store)

        assert state_store.finalizers[VALUES] == ["helm"]


class TestDeprecatedFinalizer:
    """Objects carrying only the deprecated finalizer still get torn down."""

    def test_filter_matches_deprecated_only(self):
        assert deprecated_finalizer_only({"finalizers": [FINALIZER_DEPRECATED]})
        assert deprecated_finalizer_only({"finalizers": ["helm", FINALIZER_DEPRECATED]})
        assert not deprecated_finalizer_only({"finalizers": [FINALIZER_DEPRECATED, FINALIZER]})
        assert not deprecated_finalizer_only({"finalizers": [FINALIZER]})
        assert not deprecated_finalizer_only({})

    @patch("irsa_operator.handlers.base.emit_irsa_deleted")
    @patch("irsa_operator.handlers.base.shared")
    def test_deleting_object_releases_deprecated_finalizer(self, mock_shared, mock_emit):
        meta = {
            "name": "abc12",
            "namespace": "org-acme",
            "deletionTimestamp": "2026-01-01T00:00:00Z",
            "finalizers": [FINALIZER_DEPRECATED],
        }
        body = {"kind": "AWSCluster", "metadata": meta}
        patch_ = kopf.Patch()
        service = MagicMock()
        service.delete.side_effect = lambda release: release()

        with patch("irsa_operator.handlers.capa._handler", CAPAClusterHandler()) as handler:
            handler.resolver = MagicMock()
            handler.service = MagicMock(return_value=service)
            release_capa_deprecated_finalizer(body=body, meta=meta, patch=patch_)

        service.delete.assert_called_once()
        assert patch_.metadata["finalizers"] is None
        mock_emit.assert_called_once_with(body)


class TestHandlerWiring:
    """Each flavor handler uses its own resolver."""

    def test_resolver_classes(self):
        assert LegacyClusterHandler.resolver_class is LegacyResolver
        assert CAPAClusterHandler.resolver_class is CAPAResolver
        assert EKSClusterHandler.resolver_class is EKSResolver

    def test_flavors(self):
        assert LegacyClusterHandler().flavor == "legacy"
        assert CAPAClusterHandler().flavor == "capa"
        assert EKSClusterHandler().flavor == "eks"

    @patch("irsa_operator.handlers.base.build_services")
    @patch("irsa_operator.handlers.base.shared")
    def test_service_is_built_for_scope(self, mock_shared, mock_build, make_scope, state_store):
        scope = make_scope("capa")
        handler = CAPAClusterHandler()

        service = handler.service(scope, state_store)

        mock_build.assert_called_once_with(scope, mock_shared.metrics_sink)
        assert service.scope is scope
        assert service.state_store is state_store


class TestRegistration:
    """Test cases for flavor toggles."""

    def test_all_flavors_enabled_by_default(self, monkeypatch):
        for variable in ("LEGACY_ENABLED", "CAPA_ENABLED", "EKS_ENABLED"):
            monkeypatch.delenv(variable, raising=False)
        assert enabled_flavors() == ["legacy", "capa", "eks"]

    def test_disabled_flavor_is_not_registered(self, monkeypatch):
        monkeypatch.setenv("LEGACY_ENABLED", "false")
        monkeypatch.setenv("CAPA_ENABLED", "true")
        monkeypatch.setenv("EKS_ENABLED", "False")

        with patch("irsa_operator.handlers.importlib") as mock_importlib:
            flavors = register_handlers()

        assert flavors == ["capa"]
        mock_importlib.import_module.assert_called_once_with("irsa_operator.handlers.capa")

    def test_not_yet_ready_delay_from_env(self, monkeypatch):
        monkeypatch.setenv("NOT_YET_READY_REQUEUE_SECONDS", "15")
        assert not_yet_ready_delay() == 15.0


def test_shared_state_store_uses_core_client():
    api = MagicMock()
    store = shared.get_state_store(api)

    assert store.api is api
