"""Handler for Cluster API AWSCluster resources."""

from __future__ import annotations

import os
from typing import Any

import kopf

from ..constants import (
    CAPA_API_GROUP,
    CAPA_API_VERSION,
    FINALIZER,
    FINALIZER_DEPRECATED,
    FLAVOR_CAPA,
    KIND_CAPA_CLUSTER,
    PLURAL_AWS_CLUSTERS,
)
from ..irsa import CAPAResolver
from ..scope import ClusterScope
from ..utils.naming import cluster_values_configmap_name
from ..utils.secrets import KIND_CONFIGMAP, StateStore
from .base import ClusterHandler, deprecated_finalizer_only

RESOURCE = (CAPA_API_GROUP, CAPA_API_VERSION, PLURAL_AWS_CLUSTERS)


class CAPAClusterHandler(ClusterHandler):
    """Handler for CAPA AWSCluster resources.

    The cluster-values configmap carries the finalizer too, so apps that
    depend on IRSA are not removed before the trust infrastructure is.
    """

    resolver_class = CAPAResolver

    def __init__(self):
        super().__init__(KIND_CAPA_CLUSTER, FLAVOR_CAPA)

    def before_reconcile(self, scope: ClusterScope, state_store: StateStore) -> None:
        state_store.add_finalizer(
            KIND_CONFIGMAP,
            scope.cluster_namespace,
            cluster_values_configmap_name(scope.cluster_name),
            FINALIZER,
        )

    def after_teardown(self, scope: ClusterScope, state_store: StateStore) -> None:
        name = cluster_values_configmap_name(scope.cluster_name)
        for finalizer in (FINALIZER, FINALIZER_DEPRECATED):
            state_store.remove_finalizer(KIND_CONFIGMAP, scope.cluster_namespace, name, finalizer)


_handler = CAPAClusterHandler()


@kopf.on.create(*RESOURCE)
@kopf.on.update(*RESOURCE)
@kopf.on.resume(*RESOURCE)
def handle_capa_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle CAPA AWSCluster reconciliation."""
    _handler.reconcile_handler(body, meta, patch)


@kopf.timer(*RESOURCE, interval=int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")))
def refresh_capa_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Periodic reconcile refreshing thumbprints and tags."""
    _handler.reconcile_handler(body, meta, patch, periodic=True)


@kopf.on.delete(*RESOURCE)
def handle_capa_cluster_delete(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle CAPA AWSCluster deletion."""
    _handler.delete_handler(body, meta, patch)


@kopf.on.delete(*RESOURCE, optional=True, when=deprecated_finalizer_only)
def release_capa_deprecated_finalizer(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Tear down CAPA clusters still guarded by the deprecated finalizer only."""
    _handler.delete_handler(body, meta, patch)
