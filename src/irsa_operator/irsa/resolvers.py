"""Turn the three cluster object flavors into a ClusterScope."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Mapping, Optional

from kubernetes import client

from ..constants import (
    ANNOTATION_IRSA,
    ANNOTATION_KEEP_OIDC_PROVIDER,
    ANNOTATION_PRE_CLOUDFRONT_ALIAS,
    CAPA_API_GROUP,
    CAPA_API_VERSION,
    CAPI_API_GROUP,
    CAPI_API_VERSION,
    FLAVOR_CAPA,
    FLAVOR_EKS,
    FLAVOR_LEGACY,
    LABEL_CLUSTER_NAME,
    LABEL_RELEASE_VERSION,
    LEGACY_CREDENTIAL_ARN_KEY,
    PLURAL_CLUSTERS,
    PLURAL_ROLE_IDENTITIES,
)
from ..scope import ClusterScope, new_cluster_scope
from ..utils.cache import TTLCache, default_cache
from ..utils.errors import invalid_input, not_yet_ready
from ..utils.naming import (
    base_domain_from_endpoint,
    customer_tags_from_labels,
    is_supported_legacy_release,
    parse_bool_annotation,
)
from ..utils.secrets import get_secret_value

logger = logging.getLogger(__name__)


class ClusterResolver:
    """Common lookups shared by the flavor-specific resolvers.

    ``resolve`` returns None for cluster objects the operator must leave alone.
    """

    flavor = ""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        installation: str = "",
        cache: Optional[TTLCache] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.custom_api = custom_api
        self.core_api = core_api
        self.installation = installation
        self.cache = cache if cache is not None else default_cache
        self.cancel_event = cancel_event

    def resolve(self, body: Mapping[str, Any]) -> Optional[ClusterScope]:
        raise NotImplementedError

    def get_capi_cluster(self, namespace: str, name: str) -> Optional[dict[str, Any]]:
        """Cluster API ``Cluster`` object, None if it does not exist."""
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=CAPI_API_GROUP,
                version=CAPI_API_VERSION,
                namespace=namespace,
                plural=PLURAL_CLUSTERS,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                logger.info(f"Cluster {namespace}/{name} not found")
                return None
            raise

    def get_role_arn(self, identity_name: Optional[str], cluster_name: str) -> str:
        """Role ARN of a cluster-scoped AWSClusterRoleIdentity.

        Raises:
            IRSAError: Fatal if the reference or the role ARN is missing,
                NotYetReady if the identity does not exist yet
        """
        if not identity_name:
            raise invalid_input("identityRef is not set", cluster=cluster_name)

        # Never cached, a changed roleARN applies on the next resolve
        try:
            identity = self.custom_api.get_cluster_custom_object(
                group=CAPA_API_GROUP,
                version=CAPA_API_VERSION,
                plural=PLURAL_ROLE_IDENTITIES,
                name=identity_name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                raise not_yet_ready(
                    f"AWSClusterRoleIdentity {identity_name} does not exist yet",
                    cluster=cluster_name,
                ) from e
            raise

        role_arn = identity.get("spec", {}).get("roleARN")
        if not role_arn:
            raise invalid_input(f"AWSClusterRoleIdentity {identity_name} has no roleARN", cluster=cluster_name)
        return role_arn

    @staticmethod
    def cluster_flags(annotations: Optional[Mapping[str, str]]) -> dict[str, bool]:
        return {
            "keep_oidc_provider_on_delete": parse_bool_annotation(annotations, ANNOTATION_KEEP_OIDC_PROVIDER),
            "pre_cloudfront_alias": parse_bool_annotation(annotations, ANNOTATION_PRE_CLOUDFRONT_ALIAS),
        }

    @staticmethod
    def base_domain(cluster: Optional[Mapping[str, Any]]) -> Optional[str]:
        if cluster is None:
            return None
        host = cluster.get("spec", {}).get("controlPlaneEndpoint", {}).get("host")
        return base_domain_from_endpoint(host)


class LegacyResolver(ClusterResolver):
    """Resolver for Giant Swarm ``AWSCluster`` (infrastructure.giantswarm.io) objects."""

    flavor = FLAVOR_LEGACY

    def migration_needed(self, cluster_name: str) -> bool:
        """Whether the cluster is listed in the migration configmap."""
        name = os.getenv("MIGRATION_CONFIGMAP_NAME", "irsa-migration")
        namespace = os.getenv("MIGRATION_CONFIGMAP_NAMESPACE", "giantswarm")
        try:
            configmap = self.core_api.read_namespaced_config_map(name=name, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return False
            raise
        return cluster_name in (configmap.data or {})

    def resolve(self, body: Mapping[str, Any]) -> Optional[ClusterScope]:
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        name = meta.get("name", "")
        namespace = meta.get("namespace", "")
        annotations = meta.get("annotations") or {}
        labels = meta.get("labels") or {}

        if ANNOTATION_IRSA not in annotations:
            logger.debug(f"Cluster {name} does not have IRSA enabled, skipping")
            return None
        release = labels.get(LABEL_RELEASE_VERSION)
        if not is_supported_legacy_release(release):
            logger.debug(f"Cluster {name} runs release {release}, skipping")
            return None

        provider = spec.get("provider", {})
        credential = provider.get("credentialSecret", {})
        if not credential.get("name"):
            raise invalid_input("spec.provider.credentialSecret is not set", cluster=name)
        try:
            role_arn = get_secret_value(
                self.core_api,
                credential.get("namespace") or namespace,
                credential["name"],
                LEGACY_CREDENTIAL_ARN_KEY,
            )
        except ValueError as e:
            raise invalid_input(str(e), cluster=name) from e

        cluster = self.get_capi_cluster(namespace, name)
        return new_cluster_scope(
            role_arn=role_arn,
            region=provider.get("region", ""),
            cluster_name=name,
            cluster_namespace=namespace,
            flavor=self.flavor,
            installation=self.installation,
            release_version=release,
            migration_needed=self.migration_needed(name),
            base_domain=self.base_domain(cluster),
            customer_tags=customer_tags_from_labels((cluster or {}).get("metadata", {}).get("labels")),
            cache=self.cache,
            cancel_event=self.cancel_event,
            **self.cluster_flags(annotations),
        )


class CAPAResolver(ClusterResolver):
    """Resolver for Cluster API ``AWSCluster`` objects."""

    flavor = FLAVOR_CAPA

    def resolve(self, body: Mapping[str, Any]) -> Optional[ClusterScope]:
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        name = meta.get("name", "")
        namespace = meta.get("namespace", "")
        labels = meta.get("labels") or {}

        role_arn = self.get_role_arn(spec.get("identityRef", {}).get("name"), name)
        cluster = self.get_capi_cluster(namespace, labels.get(LABEL_CLUSTER_NAME, name))
        return new_cluster_scope(
            role_arn=role_arn,
            region=spec.get("region", ""),
            cluster_name=name,
            cluster_namespace=namespace,
            flavor=self.flavor,
            installation=self.installation,
            release_version=labels.get(LABEL_RELEASE_VERSION),
            base_domain=self.base_domain(cluster),
            customer_tags=spec.get("additionalTags") or {},
            cache=self.cache,
            cancel_event=self.cancel_event,
            **self.cluster_flags(meta.get("annotations")),
        )


class EKSResolver(ClusterResolver):
    """Resolver for ``AWSManagedControlPlane`` objects."""

    flavor = FLAVOR_EKS

    def resolve(self, body: Mapping[str, Any]) -> Optional[ClusterScope]:
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        namespace = meta.get("namespace", "")
        labels = meta.get("labels") or {}
        name = labels.get(LABEL_CLUSTER_NAME) or meta.get("name", "")

        role_arn = self.get_role_arn(spec.get("identityRef", {}).get("name"), name)
        cluster = self.get_capi_cluster(namespace, name)
        return new_cluster_scope(
            role_arn=role_arn,
            region=spec.get("region", ""),
            cluster_name=name,
            cluster_namespace=namespace,
            flavor=self.flavor,
            installation=self.installation,
            customer_tags=customer_tags_from_labels((cluster or {}).get("metadata", {}).get("labels")),
            managed_cluster_name=spec.get("eksClusterName") or meta.get("name"),
            cache=self.cache,
            cancel_event=self.cancel_event,
            **self.cluster_flags(meta.get("annotations")),
        )
