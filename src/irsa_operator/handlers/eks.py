"""Handler for AWSManagedControlPlane resources."""

from __future__ import annotations

import os
from typing import Any

import kopf

from ..constants import (
    EKS_API_GROUP,
    EKS_API_VERSION,
    FLAVOR_EKS,
    KIND_EKS_CONTROL_PLANE,
    PLURAL_AWS_MANAGED_CONTROL_PLANES,
)
from ..irsa import EKSResolver
from .base import ClusterHandler, deprecated_finalizer_only

RESOURCE = (EKS_API_GROUP, EKS_API_VERSION, PLURAL_AWS_MANAGED_CONTROL_PLANES)


class EKSClusterHandler(ClusterHandler):
    """Registers the managed issuer of EKS clusters as identity provider."""

    resolver_class = EKSResolver

    def __init__(self):
        super().__init__(KIND_EKS_CONTROL_PLANE, FLAVOR_EKS)


_handler = EKSClusterHandler()


@kopf.on.create(*RESOURCE)
@kopf.on.update(*RESOURCE)
@kopf.on.resume(*RESOURCE)
def handle_eks_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    _handler.reconcile_handler(body, meta, patch)


@kopf.timer(*RESOURCE, interval=int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")))
def refresh_eks_cluster(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    _handler.reconcile_handler(body, meta, patch, periodic=True)


@kopf.on.delete(*RESOURCE)
def handle_eks_cluster_delete(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    _handler.delete_handler(body, meta, patch)


@kopf.on.delete(*RESOURCE, optional=True, when=deprecated_finalizer_only)
def release_eks_deprecated_finalizer(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    _handler.delete_handler(body, meta, patch)
