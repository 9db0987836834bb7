"""Build the capability adapters for one cluster."""

from __future__ import annotations

from typing import Optional

from ...metrics import MetricsSink
from ...scope import ClusterScope
from .acm import ACM_REGION, ACMCertificateService
from .base import AWSServices
from .cloudfront import CloudFrontDistributionService
from .eks import EKSManagedClusterService
from .iam import IAMIdentityProviderService, TLSThumbprintSource
from .route53 import Route53DNSService
from .s3 import S3BucketService
from .session import assume_role_session, make_client


def build_services(scope: ClusterScope, metrics: Optional[MetricsSink] = None) -> AWSServices:
    """Create the adapters a cluster's flavor and partition need.

    All clients share one assumed-role session. CloudFront, ACM and Route53
    clients exist whenever the partition offers CloudFront, so teardown can
    still remove a distribution created under earlier settings.
    """
    session = assume_role_session(scope.role_arn, scope.region, cache=scope.cache)

    services = AWSServices(
        identity_providers=IAMIdentityProviderService(make_client(session, "iam"), metrics),
        thumbprints=TLSThumbprintSource(),
    )
    if not scope.uses_bucket:
        services.managed_clusters = EKSManagedClusterService(make_client(session, "eks"), metrics)
        return services

    services.buckets = S3BucketService(make_client(session, "s3"), scope.region, metrics)
    if scope.is_china:
        return services

    services.distributions = CloudFrontDistributionService(make_client(session, "cloudfront"), metrics)
    services.certificates = ACMCertificateService(
        make_client(session, "acm", region=ACM_REGION),
        cache=scope.cache,
        metrics=metrics,
    )
    services.dns = Route53DNSService(
        make_client(session, "route53"),
        cache=scope.cache,
        cache_namespace=scope.role_arn,
        metrics=metrics,
    )
    return services
