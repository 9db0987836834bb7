"""Per-reconcile cluster context shared by the orchestrator and the adapters."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .constants import FLAVOR_CAPA, FLAVOR_EKS, FLAVOR_LEGACY
from .utils.cache import TTLCache, default_cache, make_cache_key
from .utils.diff import merge_tags
from .utils.errors import invalid_input
from .utils.naming import (
    account_id_from_arn,
    bucket_name,
    bucket_origin,
    bucket_url,
    cloudfront_alias,
    config_name,
    internal_tags,
    is_china,
    is_cloudfront_release,
    secret_name,
    sts_client_id,
)
from .utils.secrets import KIND_CONFIGMAP, KIND_SECRET

FLAVORS = (FLAVOR_LEGACY, FLAVOR_CAPA, FLAVOR_EKS)

# Account IDs never change for a role ARN
ACCOUNT_ID_CACHE_TTL_SECONDS = 3600.0


@dataclass(frozen=True)
class ClusterScope:
    """Everything one reconcile needs to know about a cluster.

    Built fresh from the cluster object on every invocation and never
    persisted. Only ``cache`` and ``cancel_event`` are shared between
    reconciles.
    """

    account_id: str
    role_arn: str
    region: str
    cluster_name: str
    cluster_namespace: str
    bucket_name: str
    config_name: str
    secret_name: str
    installation: str
    flavor: str
    release_version: Optional[str] = None
    migration_needed: bool = False
    keep_oidc_provider_on_delete: bool = False
    pre_cloudfront_alias: bool = False
    base_domain: Optional[str] = None
    customer_tags: Mapping[str, str] = field(default_factory=dict)
    # Name of the managed control plane in EKS, when it differs from the cluster name
    managed_cluster_name: Optional[str] = None
    cache: TTLCache = field(default=default_cache, compare=False, repr=False)
    cancel_event: Optional[threading.Event] = field(default=None, compare=False, repr=False)

    @property
    def is_china(self) -> bool:
        return is_china(self.region)

    @property
    def uses_bucket(self) -> bool:
        """EKS serves its own issuer, so there is no bucket or key material."""
        return self.flavor != FLAVOR_EKS

    @property
    def cloudfront_enabled(self) -> bool:
        """Whether the documents are served through CloudFront."""
        if not self.uses_bucket or self.is_china:
            return False
        if self.flavor == FLAVOR_CAPA:
            return True
        return is_cloudfront_release(self.release_version) or self.migration_needed

    @property
    def cloudfront_alias(self) -> str:
        """Custom domain of the distribution, empty when there is none."""
        if not self.cloudfront_enabled:
            return ""
        return cloudfront_alias(self.base_domain)

    @property
    def generates_signing_key(self) -> bool:
        """Legacy clusters get a generated key; CAPA reuses the bootstrap key."""
        return self.flavor == FLAVOR_LEGACY

    @property
    def record_kind(self) -> str:
        """Kind of the object the distribution record is persisted in."""
        return KIND_CONFIGMAP if self.flavor == FLAVOR_LEGACY else KIND_SECRET

    @property
    def client_id(self) -> str:
        return sts_client_id(self.region)

    @property
    def bucket_url(self) -> str:
        return bucket_url(self.region, self.bucket_name)

    @property
    def bucket_origin(self) -> str:
        return bucket_origin(self.region, self.bucket_name)

    @property
    def internal_tags(self) -> dict[str, str]:
        return internal_tags(self.cluster_name, self.cluster_namespace, self.installation)

    @property
    def tags(self) -> dict[str, str]:
        """Internal tags plus customer tags; internal keys cannot be overridden."""
        return merge_tags(self.internal_tags, self.customer_tags)


def resolve_account_id(role_arn: str, cache: TTLCache) -> str:
    """Account ID of a role ARN, cached by ARN."""
    return cache.get_or_set(
        make_cache_key("account-id", role_arn),
        lambda: account_id_from_arn(role_arn),
        ttl=ACCOUNT_ID_CACHE_TTL_SECONDS,
    )


def new_cluster_scope(
    role_arn: str,
    region: str,
    cluster_name: str,
    cluster_namespace: str,
    flavor: str,
    installation: str = "",
    release_version: Optional[str] = None,
    migration_needed: bool = False,
    keep_oidc_provider_on_delete: bool = False,
    pre_cloudfront_alias: bool = False,
    base_domain: Optional[str] = None,
    customer_tags: Optional[Mapping[str, str]] = None,
    managed_cluster_name: Optional[str] = None,
    cache: Optional[TTLCache] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ClusterScope:
    """Validate cluster inputs and derive a ClusterScope.

    Raises:
        IRSAError: Fatal if a required input is missing or malformed
    """
    if not cluster_name:
        raise invalid_input("cluster name is empty")
    if not cluster_namespace:
        raise invalid_input("cluster namespace is empty", cluster=cluster_name)
    if not region:
        raise invalid_input("region is empty", cluster=cluster_name)
    if not role_arn:
        raise invalid_input("role ARN is empty", cluster=cluster_name)
    if flavor not in FLAVORS:
        raise invalid_input(f"unknown cluster flavor {flavor!r}", cluster=cluster_name)

    cache = cache if cache is not None else default_cache
    account_id = resolve_account_id(role_arn, cache)

    return ClusterScope(
        account_id=account_id,
        role_arn=role_arn,
        region=region,
        cluster_name=cluster_name,
        cluster_namespace=cluster_namespace,
        bucket_name=bucket_name(account_id, cluster_name),
        config_name=config_name(cluster_name),
        secret_name=secret_name(cluster_name),
        installation=installation,
        flavor=flavor,
        release_version=release_version,
        migration_needed=migration_needed,
        keep_oidc_provider_on_delete=keep_oidc_provider_on_delete,
        pre_cloudfront_alias=pre_cloudfront_alias,
        base_domain=base_domain,
        customer_tags=dict(customer_tags or {}),
        managed_cluster_name=managed_cluster_name,
        cache=cache,
        cancel_event=cancel_event,
    )
