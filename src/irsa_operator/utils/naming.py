"""Naming, partition and tag derivation helpers."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from packaging.version import InvalidVersion, Version

from ..constants import (
    CLOUDFRONT_MIN_RELEASE,
    CUSTOMER_TAG_LABEL_PREFIX,
    LEGACY_MIN_RELEASE,
    TAG_CLOUD_PROVIDER,
    TAG_CLUSTER,
    TAG_INSTALLATION,
    TAG_ORGANIZATION,
)
from .errors import invalid_input

_ACCOUNT_ID_RE = re.compile(r"\d+")


def is_china(region: str) -> bool:
    return region.startswith("cn-")


def aws_endpoint(region: str) -> str:
    """DNS suffix of the region's partition."""
    return "amazonaws.com.cn" if is_china(region) else "amazonaws.com"


def arn_prefix(region: str) -> str:
    """ARN partition of the region."""
    return "aws-cn" if is_china(region) else "aws"


def sts_client_id(region: str) -> str:
    """OIDC audience registered on the identity provider."""
    return f"sts.{aws_endpoint(region)}"


def s3_endpoint(region: str) -> str:
    return f"s3.{region}.{aws_endpoint(region)}"


def bucket_url(region: str, bucket: str) -> str:
    """Public HTTPS URL of a bucket, used as issuer in direct S3 mode."""
    return f"https://{s3_endpoint(region)}/{bucket}"


def bucket_origin(region: str, bucket: str) -> str:
    """Regional S3 domain of a bucket, used as CloudFront origin."""
    return f"{bucket}.{s3_endpoint(region)}"


def account_id_from_arn(arn: str) -> str:
    """Extract the AWS account ID from a role ARN.

    The account ID is the first base-10 digit run in the ARN.

    Raises:
        IRSAError: If the ARN carries no digits
    """
    if not arn:
        raise invalid_input("role ARN is empty")
    match = _ACCOUNT_ID_RE.search(arn)
    if match is None:
        raise invalid_input(f"unable to extract account ID from ARN {arn}")
    return match.group(0)


def bucket_name(account_id: str, cluster_name: str) -> str:
    return f"{account_id}-g8s-{cluster_name}-oidc-pod-identity-v2"


def config_name(cluster_name: str) -> str:
    """Name of the object persisting the distribution record."""
    return f"{cluster_name}-irsa-cloudfront"


def secret_name(cluster_name: str) -> str:
    """Name of the secret holding generated signing key material."""
    return f"{cluster_name}-service-account-v2"


def service_account_secret_name(cluster_name: str) -> str:
    """Name of the bootstrap-provider secret holding the service account key."""
    return f"{cluster_name}-sa"


def cluster_values_configmap_name(cluster_name: str) -> str:
    return f"{cluster_name}-cluster-values"


def distribution_comment(cluster_name: str) -> str:
    return f"Created by irsa-operator for cluster {cluster_name}"


def cloudfront_alias(base_domain: Optional[str]) -> str:
    """Custom domain fronting the distribution, empty if no base domain."""
    if not base_domain:
        return ""
    return f"irsa.{base_domain}"


def base_domain_from_endpoint(host: Optional[str]) -> Optional[str]:
    """Derive the base domain from a control plane endpoint host.

    Args:
        host: Control plane host (e.g. "api.mycluster.example.com")

    Returns:
        Base domain without the "api." prefix, or None if no host is set

    Raises:
        IRSAError: If the host does not start with "api."
    """
    if not host:
        return None
    if not host.startswith("api."):
        raise invalid_input(f"control plane endpoint {host} does not start with 'api.'")
    return host[len("api."):]


def ensure_https(url: str) -> str:
    if url.startswith("https://"):
        return url
    return f"https://{url}"


def trim_https(url: str) -> str:
    return url[len("https://"):] if url.startswith("https://") else url


def ensure_trailing_dot(domain: str) -> str:
    return domain if domain.endswith(".") else f"{domain}."


def organization_from_namespace(namespace: str) -> str:
    return namespace[len("org-"):] if namespace.startswith("org-") else namespace


def internal_tags(cluster_name: str, cluster_namespace: str, installation: str) -> dict[str, str]:
    """Tags every managed AWS resource carries."""
    return {
        TAG_ORGANIZATION: organization_from_namespace(cluster_namespace),
        TAG_CLUSTER: cluster_name,
        TAG_CLOUD_PROVIDER.format(cluster=cluster_name): "owned",
        TAG_INSTALLATION: installation,
    }


def customer_tags_from_labels(labels: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Collect customer tags declared as ``tag.provider.giantswarm.io/<key>`` labels."""
    return {
        key[len(CUSTOMER_TAG_LABEL_PREFIX):]: value
        for key, value in (labels or {}).items()
        if key.startswith(CUSTOMER_TAG_LABEL_PREFIX)
    }


def parse_release(release: Optional[str]) -> Optional[Version]:
    """Parse a release version label.

    Raises:
        IRSAError: If the value is not a valid version
    """
    if not release:
        return None
    try:
        return Version(release.lstrip("v"))
    except InvalidVersion as e:
        raise invalid_input(f"invalid release version {release!r}") from e


def is_cloudfront_release(release: Optional[str]) -> bool:
    """True for releases serving the discovery document through CloudFront."""
    version = parse_release(release)
    return version is not None and version >= Version(CLOUDFRONT_MIN_RELEASE)


def is_supported_legacy_release(release: Optional[str]) -> bool:
    version = parse_release(release)
    return version is not None and version >= Version(LEGACY_MIN_RELEASE)


def parse_bool_annotation(annotations: Optional[Mapping[str, Any]], name: str) -> bool:
    """Read a boolean feature-flag annotation.

    Raises:
        IRSAError: If the annotation holds anything but "true" or "false"
    """
    value = (annotations or {}).get(name)
    if value is None:
        return False
    normalized = str(value).strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise invalid_input(f"annotation {name} must be 'true' or 'false', got {value!r}")
