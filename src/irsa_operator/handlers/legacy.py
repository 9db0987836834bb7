"""Handler for Giant Swarm (vintage) AWSCluster resources."""

from __future__ import annotations

import os
from typing import Any

import kopf

from ..constants import (
    ANNOTATION_IRSA,
    FLAVOR_LEGACY,
    KIND_LEGACY_CLUSTER,
    LEGACY_API_GROUP,
    LEGACY_API_VERSION,
    PLURAL_AWS_CLUSTERS,
)
from ..irsa import LegacyResolver
from .base import ClusterHandler, deprecated_finalizer_only

RESOURCE = (LEGACY_API_GROUP, LEGACY_API_VERSION, PLURAL_AWS_CLUSTERS)
IRSA_ENABLED = {ANNOTATION_IRSA: kopf.PRESENT}


class LegacyClusterHandler(ClusterHandler):
    """Handler for vintage AWSCluster resources."""

    resolver_class = LegacyResolver

    def __init__(self):
        super().__init__(KIND_LEGACY_CLUSTER, FLAVOR_LEGACY)


# Global handler instance
_handler = LegacyClusterHandler()


@kopf.on.create(*RESOURCE, annotations=IRSA_ENABLED)
@kopf.on.update(*RESOURCE, annotations=IRSA_ENABLED)
@kopf.on.resume(*RESOURCE, annotations=IRSA_ENABLED)
def handle_legacy_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle vintage AWSCluster reconciliation."""
    _handler.reconcile_handler(body, meta, patch)


@kopf.timer(*RESOURCE, annotations=IRSA_ENABLED, interval=int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")))
def refresh_legacy_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Periodic reconcile refreshing thumbprints and tags."""
    _handler.reconcile_handler(body, meta, patch, periodic=True)


@kopf.on.delete(*RESOURCE, annotations=IRSA_ENABLED)
def handle_legacy_cluster_delete(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle vintage AWSCluster deletion."""
    _handler.delete_handler(body, meta, patch)


@kopf.on.delete(*RESOURCE, annotations=IRSA_ENABLED, optional=True, when=deprecated_finalizer_only)
def release_legacy_deprecated_finalizer(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Tear down vintage clusters still guarded by the deprecated finalizer only."""
    _handler.delete_handler(body, meta, patch)
