"""Capability contracts for the AWS services the orchestrator drives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ...constants import (
    RECORD_FIELD_ARN,
    RECORD_FIELD_DISTRIBUTION_ID,
    RECORD_FIELD_DOMAIN,
    RECORD_FIELD_OAI_ID,
)
from ...utils.errors import invalid_input


@dataclass(frozen=True)
class Distribution:
    """Identifiers of a CloudFront distribution fronting the bucket."""

    arn: str
    distribution_id: str
    domain: str
    origin_access_identity_id: str

    def to_record(self) -> dict[str, str]:
        """Fields persisted in the cluster's distribution record."""
        return {
            RECORD_FIELD_ARN: self.arn,
            RECORD_FIELD_DOMAIN: self.domain,
            RECORD_FIELD_DISTRIBUTION_ID: self.distribution_id,
            RECORD_FIELD_OAI_ID: self.origin_access_identity_id,
        }

    @classmethod
    def from_record(cls, data: dict[str, str]) -> "Distribution":
        """Parse a persisted distribution record.

        Raises:
            IRSAError: Fatal if any identifier is missing
        """
        missing = [
            name
            for name in (RECORD_FIELD_ARN, RECORD_FIELD_DOMAIN, RECORD_FIELD_DISTRIBUTION_ID, RECORD_FIELD_OAI_ID)
            if not data.get(name)
        ]
        if missing:
            raise invalid_input(f"distribution record is missing {', '.join(missing)}")
        return cls(
            arn=data[RECORD_FIELD_ARN],
            distribution_id=data[RECORD_FIELD_DISTRIBUTION_ID],
            domain=data[RECORD_FIELD_DOMAIN],
            origin_access_identity_id=data[RECORD_FIELD_OAI_ID],
        )

    def validate(self) -> None:
        """Raise a fatal error if an identifier is empty."""
        Distribution.from_record(self.to_record())


@dataclass(frozen=True)
class LiveDistribution:
    """A distribution as currently configured in AWS."""

    distribution: Distribution
    aliases: list[str] = field(default_factory=list)
    certificate_arn: Optional[str] = None
    tags: dict[str, str] = field(default_factory=dict)
    enabled: bool = True


@dataclass(frozen=True)
class DistributionSpec:
    """Desired distribution for one cluster."""

    cluster_name: str
    origin_domain: str
    origin_access_identity_id: str
    aliases: list[str] = field(default_factory=list)
    certificate_arn: Optional[str] = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IdentityProvider:
    """An IAM OIDC identity provider."""

    arn: str
    url: str
    client_ids: list[str] = field(default_factory=list)
    thumbprints: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CNAME:
    name: str
    value: str


@dataclass(frozen=True)
class Certificate:
    """ACM certificate state relevant for issuance."""

    arn: str
    status: str
    validated: bool = False
    validation_record: Optional[CNAME] = None
    not_after: Optional[float] = None

    @property
    def issued(self) -> bool:
        return self.status == "ISSUED"


class BucketService(Protocol):
    """Publication bucket operations."""

    def bucket_exists(self, name: str) -> bool:
        """Check if a bucket exists and is reachable."""
        ...

    def create_bucket(self, name: str) -> None:
        """Create a private bucket; already owned counts as success."""
        ...

    def encrypt_bucket(self, name: str) -> None:
        """Enable default server-side encryption."""
        ...

    def put_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        """Replace the bucket's tag set."""
        ...

    def get_object_etag(self, bucket: str, key: str) -> Optional[str]:
        """ETag (content MD5) of an object, None if absent."""
        ...

    def put_object(self, bucket: str, key: str, body: bytes, public_read: bool) -> None:
        """Upload an object."""
        ...

    def delete_objects(self, bucket: str, keys: list[str]) -> None:
        """Delete objects; absent bucket or keys count as success."""
        ...

    def delete_bucket(self, name: str) -> None:
        """Delete a bucket; absent bucket counts as success."""
        ...

    def put_bucket_policy(self, name: str, policy: dict[str, Any]) -> None:
        """Set the bucket policy."""
        ...

    def set_public_access_block(self, name: str, blocked: bool) -> None:
        """Block or allow public access to the bucket."""
        ...


class IdentityProviderService(Protocol):
    """IAM OIDC identity provider operations."""

    def list_providers(self) -> list[str]:
        """ARNs of all OIDC providers in the account."""
        ...

    def get_provider(self, arn: str) -> Optional[IdentityProvider]:
        """Describe a provider, None if absent."""
        ...

    def create_provider(self, url: str, client_ids: list[str], thumbprints: list[str], tags: dict[str, str]) -> str:
        """Create a provider and return its ARN; already existing returns the existing ARN."""
        ...

    def update_thumbprints(self, arn: str, thumbprints: list[str]) -> None:
        """Replace the thumbprint list."""
        ...

    def tag_provider(self, arn: str, tags: dict[str, str]) -> None:
        """Add or overwrite tags."""
        ...

    def untag_provider(self, arn: str, keys: list[str]) -> None:
        """Remove tags by key."""
        ...

    def delete_provider(self, arn: str) -> None:
        """Delete a provider; absent counts as success."""
        ...


class ThumbprintSource(Protocol):
    """TLS certificate fingerprinting for identity provider registration."""

    def get_thumbprint(self, host: str) -> str:
        """Fingerprint of the leaf certificate served by ``host``."""
        ...


class DistributionService(Protocol):
    """CloudFront distribution and origin access identity operations."""

    def find_distribution(self, cluster_name: str) -> Optional[LiveDistribution]:
        """Find the cluster's distribution, None if there is none."""
        ...

    def create_origin_access_identity(self, cluster_name: str) -> str:
        """Create an origin access identity and return its ID."""
        ...

    def create_distribution(self, spec: DistributionSpec) -> Distribution:
        """Create a distribution with tags."""
        ...

    def update_distribution(self, distribution_id: str, aliases: list[str], certificate_arn: Optional[str]) -> None:
        """Apply aliases and viewer certificate to an existing distribution."""
        ...

    def tag_distribution(self, arn: str, tags: dict[str, str]) -> None:
        ...

    def untag_distribution(self, arn: str, keys: list[str]) -> None:
        ...

    def disable_distribution(self, distribution_id: str) -> None:
        """Disable a distribution; absent counts as success."""
        ...

    def delete_distribution(self, distribution_id: str) -> None:
        """Delete a disabled distribution; absent counts as success.

        Raises:
            IRSAError: NotYetReady while the distribution is still enabled
        """
        ...

    def delete_origin_access_identity(self, oai_id: str) -> None:
        """Delete an origin access identity; absent counts as success."""
        ...


class CertificateService(Protocol):
    """ACM operations for the CloudFront alias certificate."""

    def find_certificate(self, domain: str) -> Optional[str]:
        """ARN of the certificate for ``domain``, None if absent."""
        ...

    def request_certificate(self, domain: str, tags: dict[str, str]) -> str:
        """Request a DNS-validated certificate and return its ARN."""
        ...

    def describe_certificate(self, arn: str) -> Certificate:
        ...

    def delete_certificate(self, arn: str) -> None:
        """Delete a certificate; absent counts as success."""
        ...


class DNSService(Protocol):
    """Route53 operations."""

    def find_hosted_zone(self, domain: str, public: bool = True) -> str:
        """ID of the hosted zone serving ``domain``."""
        ...

    def upsert_cname(self, zone_id: str, record: CNAME) -> None:
        """Create or update a CNAME record."""
        ...


class ManagedClusterService(Protocol):
    """EKS operations."""

    def get_oidc_issuer(self, cluster_name: str) -> str:
        """Issuer URL of the managed control plane."""
        ...


@dataclass
class AWSServices:
    """Capability clients bound to one cluster's account and region."""

    identity_providers: IdentityProviderService
    thumbprints: ThumbprintSource
    buckets: Optional[BucketService] = None
    distributions: Optional[DistributionService] = None
    certificates: Optional[CertificateService] = None
    dns: Optional[DNSService] = None
    managed_clusters: Optional[ManagedClusterService] = None
