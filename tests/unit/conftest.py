"""Shared fixtures: in-memory AWS capabilities and Kubernetes state."""

from __future__ import annotations

import hashlib
import threading
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from irsa_operator.metrics import MetricsSink
from irsa_operator.oidc import generate_signing_key
from irsa_operator.scope import new_cluster_scope
from irsa_operator.services.aws import (
    AWSServices,
    CNAME,
    Certificate,
    Distribution,
    DistributionSpec,
    IdentityProvider,
    LiveDistribution,
)
from irsa_operator.services.aws.iam import provider_arn
from irsa_operator.utils.cache import TTLCache
from irsa_operator.utils.errors import not_yet_ready
from irsa_operator.utils.naming import trim_https

ROLE_ARN = "arn:aws:iam::123456789012:role/giantswarm-irsa"
ACCOUNT_ID = "123456789012"
THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"


class FakeBuckets:
    """BucketService keeping buckets and objects in memory."""

    def __init__(self) -> None:
        self.buckets: set[str] = set()
        self.objects: dict[tuple[str, str], bytes] = {}
        self.public_read: dict[tuple[str, str], bool] = {}
        self.tags: dict[str, dict[str, str]] = {}
        self.policies: dict[str, dict[str, Any]] = {}
        self.public_access_blocked: dict[str, bool] = {}
        self.encrypted: set[str] = set()
        self.create_calls = 0
        self.put_calls = 0

    def bucket_exists(self, name: str) -> bool:
        return name in self.buckets

    def create_bucket(self, name: str) -> None:
        self.create_calls += 1
        self.buckets.add(name)

    def encrypt_bucket(self, name: str) -> None:
        self.encrypted.add(name)

    def put_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        self.tags[name] = dict(tags)

    def get_object_etag(self, bucket: str, key: str) -> Optional[str]:
        body = self.objects.get((bucket, key))
        if body is None:
            return None
        return hashlib.md5(body, usedforsecurity=False).hexdigest()

    def put_object(self, bucket: str, key: str, body: bytes, public_read: bool) -> None:
        self.put_calls += 1
        self.objects[(bucket, key)] = body
        self.public_read[(bucket, key)] = public_read

    def delete_objects(self, bucket: str, keys: list[str]) -> None:
        for key in keys:
            self.objects.pop((bucket, key), None)

    def delete_bucket(self, name: str) -> None:
        self.buckets.discard(name)

    def put_bucket_policy(self, name: str, policy: dict[str, Any]) -> None:
        self.policies[name] = policy

    def set_public_access_block(self, name: str, blocked: bool) -> None:
        self.public_access_blocked[name] = blocked


class FakeIdentityProviders:
    """IdentityProviderService keyed by provider ARN."""

    def __init__(self, account_id: str = ACCOUNT_ID, region: str = "eu-west-1") -> None:
        self.account_id = account_id
        self.region = region
        self.providers: dict[str, IdentityProvider] = {}
        self.calls: list[str] = []

    def add(self, url: str, tags: dict[str, str], thumbprints: Optional[list[str]] = None) -> str:
        arn = provider_arn(self.account_id, url, self.region)
        self.providers[arn] = IdentityProvider(
            arn=arn,
            url=url,
            client_ids=["sts.amazonaws.com"],
            thumbprints=list(thumbprints or [THUMBPRINT]),
            tags=dict(tags),
        )
        return arn

    def list_providers(self) -> list[str]:
        return list(self.providers)

    def get_provider(self, arn: str) -> Optional[IdentityProvider]:
        return self.providers.get(arn)

    def create_provider(self, url: str, client_ids: list[str], thumbprints: list[str], tags: dict[str, str]) -> str:
        self.calls.append("create")
        arn = provider_arn(self.account_id, url, self.region)
        self.providers.setdefault(
            arn,
            IdentityProvider(arn=arn, url=url, client_ids=list(client_ids), thumbprints=list(thumbprints), tags=dict(tags)),
        )
        return arn

    def _replace(self, arn: str, **changes: Any) -> None:
        current = self.providers[arn]
        fields = {
            "arn": current.arn,
            "url": current.url,
            "client_ids": current.client_ids,
            "thumbprints": current.thumbprints,
            "tags": current.tags,
        }
        fields.update(changes)
        self.providers[arn] = IdentityProvider(**fields)

    def update_thumbprints(self, arn: str, thumbprints: list[str]) -> None:
        self.calls.append("update_thumbprints")
        self._replace(arn, thumbprints=list(thumbprints))

    def tag_provider(self, arn: str, tags: dict[str, str]) -> None:
        self.calls.append("tag")
        self._replace(arn, tags={**self.providers[arn].tags, **tags})

    def untag_provider(self, arn: str, keys: list[str]) -> None:
        self.calls.append("untag")
        self._replace(arn, tags={k: v for k, v in self.providers[arn].tags.items() if k not in keys})

    def delete_provider(self, arn: str) -> None:
        self.calls.append("delete")
        self.providers.pop(arn, None)

    def urls(self) -> set[str]:
        return {trim_https(p.url) for p in self.providers.values()}


class FakeThumbprints:
    def __init__(self, thumbprint: str = THUMBPRINT) -> None:
        self.thumbprint = thumbprint
        self.hosts: list[str] = []

    def get_thumbprint(self, host: str) -> str:
        self.hosts.append(host)
        return self.thumbprint


class FakeDistributions:
    """DistributionService holding at most one distribution per cluster."""

    def __init__(self, domain: str = "d111111abcdef8.cloudfront.net") -> None:
        self.domain = domain
        self.live: dict[str, LiveDistribution] = {}
        self.origin_access_identities: set[str] = set()
        self.specs: list[DistributionSpec] = []
        self.updates: list[tuple[str, list[str], Optional[str]]] = []
        self.tag_calls: list[dict[str, str]] = []
        self.untag_calls: list[list[str]] = []
        self.disabled: set[str] = set()
        self.deleted: list[str] = []
        # Number of delete attempts rejected while the disable propagates
        self.pending_deletes = 0

    def _cluster_of(self, distribution_id: str) -> Optional[str]:
        for cluster, live in self.live.items():
            if live.distribution.distribution_id == distribution_id:
                return cluster
        return None

    def seed(self, cluster_name: str, aliases: Optional[list[str]] = None, certificate_arn: Optional[str] = None, tags: Optional[dict[str, str]] = None) -> Distribution:
        self.origin_access_identities.add("E2QWRUHAPOMQZL")
        distribution = Distribution(
            arn="arn:aws:cloudfront::123456789012:distribution/EDFDVBD6EXAMPLE",
            distribution_id="EDFDVBD6EXAMPLE",
            domain=self.domain,
            origin_access_identity_id="E2QWRUHAPOMQZL",
        )
        self.live[cluster_name] = LiveDistribution(
            distribution=distribution,
            aliases=list(aliases or []),
            certificate_arn=certificate_arn,
            tags=dict(tags or {}),
        )
        return distribution

    def find_distribution(self, cluster_name: str) -> Optional[LiveDistribution]:
        return self.live.get(cluster_name)

    def create_origin_access_identity(self, cluster_name: str) -> str:
        self.origin_access_identities.add("E2QWRUHAPOMQZL")
        return "E2QWRUHAPOMQZL"

    def create_distribution(self, spec: DistributionSpec) -> Distribution:
        self.specs.append(spec)
        distribution = Distribution(
            arn="arn:aws:cloudfront::123456789012:distribution/EDFDVBD6EXAMPLE",
            distribution_id="EDFDVBD6EXAMPLE",
            domain=self.domain,
            origin_access_identity_id=spec.origin_access_identity_id,
        )
        self.live[spec.cluster_name] = LiveDistribution(
            distribution=distribution,
            aliases=list(spec.aliases),
            certificate_arn=spec.certificate_arn,
            tags=dict(spec.tags),
        )
        return distribution

    def update_distribution(self, distribution_id: str, aliases: list[str], certificate_arn: Optional[str]) -> None:
        self.updates.append((distribution_id, list(aliases), certificate_arn))
        cluster = self._cluster_of(distribution_id)
        live = self.live[cluster]
        self.live[cluster] = LiveDistribution(
            distribution=live.distribution,
            aliases=list(aliases),
            certificate_arn=certificate_arn,
            tags=live.tags,
        )

    def _set_tags(self, arn: str, tags: dict[str, str]) -> None:
        for cluster, live in self.live.items():
            if live.distribution.arn == arn:
                self.live[cluster] = LiveDistribution(
                    distribution=live.distribution,
                    aliases=live.aliases,
                    certificate_arn=live.certificate_arn,
                    tags=tags,
                )

    def tag_distribution(self, arn: str, tags: dict[str, str]) -> None:
        self.tag_calls.append(dict(tags))
        for live in list(self.live.values()):
            if live.distribution.arn == arn:
                self._set_tags(arn, {**live.tags, **tags})

    def untag_distribution(self, arn: str, keys: list[str]) -> None:
        self.untag_calls.append(list(keys))
        for live in list(self.live.values()):
            if live.distribution.arn == arn:
                self._set_tags(arn, {k: v for k, v in live.tags.items() if k not in keys})

    def disable_distribution(self, distribution_id: str) -> None:
        if self._cluster_of(distribution_id) is not None:
            self.disabled.add(distribution_id)

    def delete_distribution(self, distribution_id: str) -> None:
        cluster = self._cluster_of(distribution_id)
        if cluster is None:
            return
        if self.pending_deletes > 0:
            self.pending_deletes -= 1
            raise not_yet_ready(f"distribution {distribution_id} is not disabled yet")
        del self.live[cluster]
        self.deleted.append(distribution_id)

    def delete_origin_access_identity(self, oai_id: str) -> None:
        self.origin_access_identities.discard(oai_id)


class FakeCertificates:
    """CertificateService; requested certificates start out as ``status``."""

    def __init__(self, status: str = "ISSUED", validated: bool = True) -> None:
        self.status = status
        self.validated = validated
        self.certificates: dict[str, str] = {}
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.deleted: list[str] = []

    def find_certificate(self, domain: str) -> Optional[str]:
        return self.certificates.get(domain)

    def request_certificate(self, domain: str, tags: dict[str, str]) -> str:
        self.requests.append((domain, dict(tags)))
        arn = f"arn:aws:acm:us-east-1:123456789012:certificate/{domain}"
        self.certificates[domain] = arn
        return arn

    def describe_certificate(self, arn: str) -> Certificate:
        domain = arn.rsplit("/", 1)[-1]
        return Certificate(
            arn=arn,
            status=self.status,
            validated=self.validated,
            validation_record=CNAME(name=f"_x1.{domain}.", value="_x2.acm-validations.aws."),
            not_after=1767225600.0,
        )

    def delete_certificate(self, arn: str) -> None:
        self.deleted.append(arn)
        self.certificates = {d: a for d, a in self.certificates.items() if a != arn}


class FakeDNS:
    def __init__(self, zones: Optional[dict[str, str]] = None) -> None:
        self.zones = zones if zones is not None else {"example.com": "Z0123456789"}
        self.records: dict[tuple[str, str], str] = {}

    def find_hosted_zone(self, domain: str, public: bool = True) -> str:
        return self.zones[domain]

    def upsert_cname(self, zone_id: str, record: CNAME) -> None:
        self.records[(zone_id, record.name)] = record.value


class FakeManagedClusters:
    def __init__(self, issuer: str = "https://oidc.eks.eu-west-1.amazonaws.com/id/EXAMPLED539D4633E53DE1B71EXAMPLE") -> None:
        self.issuer = issuer
        self.requested: list[str] = []

    def get_oidc_issuer(self, cluster_name: str) -> str:
        self.requested.append(cluster_name)
        return self.issuer


class FakeStateStore:
    """StateStore keeping secrets and configmaps in a dict."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, str]] = {}
        self.finalizers: dict[tuple[str, str, str], list[str]] = {}

    def read(self, kind: str, namespace: str, name: str) -> Optional[dict[str, str]]:
        data = self.objects.get((kind, namespace, name))
        return dict(data) if data is not None else None

    def create(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> bool:
        key = (kind, namespace, name)
        if key in self.objects:
            return False
        self.objects[key] = dict(data)
        return True

    def replace(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> None:
        self.objects[(kind, namespace, name)] = dict(data)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        self.objects.pop((kind, namespace, name), None)

    def add_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        finalizers = self.finalizers.setdefault((kind, namespace, name), [])
        if finalizer not in finalizers:
            finalizers.append(finalizer)

    def remove_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        finalizers = self.finalizers.get((kind, namespace, name), [])
        if finalizer in finalizers:
            finalizers.remove(finalizer)


@pytest.fixture
def state_store() -> FakeStateStore:
    return FakeStateStore()


@pytest.fixture
def metrics() -> MagicMock:
    return MagicMock(spec=MetricsSink)


@pytest.fixture
def make_scope():
    """Factory building a ClusterScope with a private cache."""

    def _make_scope(flavor: str = "capa", **overrides: Any):
        params: dict[str, Any] = {
            "role_arn": ROLE_ARN,
            "region": "eu-west-1",
            "cluster_name": "abc12",
            "cluster_namespace": "org-acme",
            "flavor": flavor,
            "installation": "gauss",
            "base_domain": "example.com",
            "cache": TTLCache(default_ttl=60.0),
            "cancel_event": threading.Event(),
        }
        if flavor == "legacy":
            params["release_version"] = "19.1.0"
        params.update(overrides)
        return new_cluster_scope(**params)

    return _make_scope


@pytest.fixture
def make_services():
    """Factory building fake AWSServices matching a scope's flavor and partition."""

    def _make_services(scope) -> AWSServices:
        services = AWSServices(
            identity_providers=FakeIdentityProviders(scope.account_id, scope.region),
            thumbprints=FakeThumbprints(),
        )
        if not scope.uses_bucket:
            services.managed_clusters = FakeManagedClusters()
            return services
        services.buckets = FakeBuckets()
        if not scope.is_china:
            services.distributions = FakeDistributions()
            services.certificates = FakeCertificates()
            services.dns = FakeDNS()
        return services

    return _make_services


@pytest.fixture(scope="session")
def signing_key():
    """One RSA key for the whole session; generation is slow."""
    return generate_signing_key()
