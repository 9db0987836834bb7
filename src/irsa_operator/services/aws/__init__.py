"""AWS capability contracts and boto3 adapters."""

from .base import (
    AWSServices,
    BucketService,
    Certificate,
    CertificateService,
    CNAME,
    Distribution,
    DistributionService,
    DistributionSpec,
    DNSService,
    IdentityProvider,
    IdentityProviderService,
    LiveDistribution,
    ManagedClusterService,
    ThumbprintSource,
)

__all__ = [
    "AWSServices",
    "BucketService",
    "CNAME",
    "Certificate",
    "CertificateService",
    "DNSService",
    "Distribution",
    "DistributionService",
    "DistributionSpec",
    "IdentityProvider",
    "IdentityProviderService",
    "LiveDistribution",
    "ManagedClusterService",
    "ThumbprintSource",
]
