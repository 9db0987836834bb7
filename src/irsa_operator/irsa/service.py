"""Convergence engine for one cluster's IRSA footprint."""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from typing import Callable, Optional

from ..constants import (
    DISCOVERY_OBJECT_KEY,
    EVENT_REASON_CERTIFICATE_NOT_ISSUED,
    JWKS_OBJECT_KEY,
    RECORD_FIELD_DOMAIN_ALIAS,
    SERVICE_ACCOUNT_KEY_FIELD,
    SERVICE_ACCOUNT_REQUEUE_SECONDS,
    SIGNING_KEY_PRIVATE_FIELD,
    SIGNING_KEY_PUBLIC_FIELD,
    TAG_CLUSTER,
    TAG_INSTALLATION,
)
from ..metrics import MetricsSink
from ..oidc import (
    SigningKeyMaterial,
    build_discovery_document,
    build_jwks,
    discovery_urls,
    encode_document,
    generate_signing_key,
    load_signing_key,
)
from ..scope import ClusterScope
from ..services.aws import AWSServices, CNAME, Distribution, DistributionSpec
from ..services.aws.iam import provider_arn, provider_host
from ..services.aws.s3 import cloudfront_bucket_policy
from ..utils.diff import distribution_needs_update, tag_diff
from ..utils.errors import ErrorKind, classify_error, not_yet_ready, wrap_error
from ..utils.naming import cloudfront_alias, ensure_https, ensure_trailing_dot, service_account_secret_name
from ..utils.retry import DEFAULT_POLICY, RetryPolicy, check_cancelled, distribution_delete_policy, retry_with_backoff
from ..utils.secrets import KIND_SECRET, StateStore
from .teardown import TeardownStep, plan_teardown, run_teardown

logger = logging.getLogger(__name__)


class IRSAService:
    """Reconciles and tears down the AWS trust infrastructure of one cluster.

    The same engine serves all cluster flavors; the differences live in the
    ClusterScope the resolvers build and in which adapters ``services`` holds.
    Every step is idempotent, so a failed reconcile or teardown is simply run
    again from the top.
    """

    def __init__(
        self,
        scope: ClusterScope,
        services: AWSServices,
        state_store: StateStore,
        metrics: Optional[MetricsSink] = None,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
        delete_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.scope = scope
        self.services = services
        self.state_store = state_store
        self.metrics = metrics
        self.retry_policy = retry_policy
        self.delete_policy = delete_policy or distribution_delete_policy()
        self.sleep = sleep

    # Metrics

    def _record_result(self, error: Optional[Exception]) -> None:
        if self.metrics is None:
            return
        scope = self.scope
        if error is None:
            self.metrics.cluster_ok(scope.account_id, scope.cluster_name, scope.cluster_namespace)
        elif classify_error(error) is not ErrorKind.NOT_YET_READY:
            self.metrics.cluster_error(scope.account_id, scope.cluster_name, scope.cluster_namespace)

    def _retry(self, operation: str, fn: Callable[[], object], policy: Optional[RetryPolicy] = None) -> object:
        return retry_with_backoff(
            operation,
            fn,
            policy=policy or self.retry_policy,
            cancel_event=self.scope.cancel_event,
            sleep=self.sleep,
        )

    def _check_cancelled(self, operation: str) -> None:
        check_cancelled(self.scope.cancel_event, operation)

    # Reconcile

    def reconcile(self) -> str:
        """Converge the cluster's resources to the desired state.

        Returns:
            The issuer URL service account tokens have to carry

        Raises:
            IRSAError: Wrapped failure of the first step that failed
        """
        try:
            if self.scope.uses_bucket:
                issuer = self._reconcile_bucket()
            else:
                issuer = self._reconcile_managed_issuer()
        except Exception as e:
            self._record_result(e)
            raise wrap_error(e, "reconcile", self.scope.cluster_name)
        self._record_result(None)
        logger.info(f"Finished reconciling IRSA resources for cluster {self.scope.cluster_name}")
        return issuer

    def _reconcile_managed_issuer(self) -> str:
        scope = self.scope
        issuer = self.services.managed_clusters.get_oidc_issuer(scope.managed_cluster_name or scope.cluster_name)
        self._retry("ensure OIDC providers", lambda: self.ensure_oidc_providers([issuer]))
        return issuer

    def _reconcile_bucket(self) -> str:
        scope = self.scope
        signing_key = self.ensure_signing_key()
        self.ensure_bucket()

        distribution: Optional[Distribution] = None
        alias = ""
        if scope.cloudfront_enabled:
            certificate_arn: Optional[str] = None
            zone_id: Optional[str] = None
            if scope.cloudfront_alias:
                certificate_arn, zone_id = self.ensure_certificate(scope.cloudfront_alias)
                alias = scope.cloudfront_alias
            aliases = [alias] if alias else []
            distribution = self.ensure_distribution(aliases, certificate_arn)
            if alias and zone_id:
                self._check_cancelled("upsert alias record")
                self.services.dns.upsert_cname(zone_id, CNAME(name=alias, value=ensure_trailing_dot(distribution.domain)))
            self.ensure_distribution_record(distribution, alias)
        else:
            # Objects are uploaded with a public-read ACL
            self._check_cancelled("allow public access")
            self.services.buckets.set_public_access_block(scope.bucket_name, False)

        domain = None
        if distribution is not None:
            domain = alias if alias and not scope.pre_cloudfront_alias else distribution.domain
        issuer, _ = discovery_urls(domain, scope.bucket_name, scope.region)

        self._retry("upload OIDC documents", lambda: self.upload_documents(domain, signing_key))

        if distribution is not None:
            policy = cloudfront_bucket_policy(scope.bucket_name, distribution.origin_access_identity_id, scope.region)
            self._retry("update bucket policy", lambda: self.services.buckets.put_bucket_policy(scope.bucket_name, policy))
            self._check_cancelled("block public access")
            self.services.buckets.set_public_access_block(scope.bucket_name, True)

        if distribution is not None:
            urls = [ensure_https(distribution.domain)]
            if alias:
                urls.append(ensure_https(alias))
        else:
            urls = [scope.bucket_url]
        self._retry("ensure OIDC providers", lambda: self.ensure_oidc_providers(urls))
        return issuer

    def ensure_signing_key(self) -> SigningKeyMaterial:
        """Load the cluster's signing key, generating and persisting it once.

        Raises:
            IRSAError: NotYetReady while the bootstrap key is missing, fatal if
                the persisted key cannot be parsed
        """
        scope = self.scope
        if not scope.generates_signing_key:
            name = service_account_secret_name(scope.cluster_name)
            data = self.state_store.read(KIND_SECRET, scope.cluster_namespace, name)
            if not data or not data.get(SERVICE_ACCOUNT_KEY_FIELD):
                raise not_yet_ready(
                    f"service account secret {scope.cluster_namespace}/{name} does not exist yet",
                    requeue_after=SERVICE_ACCOUNT_REQUEUE_SECONDS,
                )
            return load_signing_key(data[SERVICE_ACCOUNT_KEY_FIELD])

        data = self.state_store.read(KIND_SECRET, scope.cluster_namespace, scope.secret_name)
        if data is None:
            key = generate_signing_key()
            self._check_cancelled("persist signing key")
            created = self.state_store.create(
                KIND_SECRET,
                scope.cluster_namespace,
                scope.secret_name,
                {SIGNING_KEY_PRIVATE_FIELD: key.private_pem, SIGNING_KEY_PUBLIC_FIELD: key.public_pem},
            )
            if created:
                logger.info(f"Generated signing key for cluster {scope.cluster_name}")
                return key
            # Lost a creation race, the persisted key wins
            data = self.state_store.read(KIND_SECRET, scope.cluster_namespace, scope.secret_name) or {}
        return load_signing_key(data.get(SIGNING_KEY_PRIVATE_FIELD, ""))

    def ensure_bucket(self) -> None:
        scope = self.scope
        buckets = self.services.buckets
        if not buckets.bucket_exists(scope.bucket_name):
            self._retry("create bucket", lambda: buckets.create_bucket(scope.bucket_name))
        self._check_cancelled("configure bucket")
        buckets.encrypt_bucket(scope.bucket_name)
        buckets.put_bucket_tags(scope.bucket_name, scope.tags)

    def ensure_certificate(self, alias: str) -> tuple[str, str]:
        """Make sure an issued certificate exists for the alias.

        Returns:
            Tuple of (certificate ARN, hosted zone ID)

        Raises:
            IRSAError: NotYetReady until the certificate is issued
        """
        scope = self.scope
        certificates = self.services.certificates
        arn = certificates.find_certificate(alias)
        if arn is None:
            self._check_cancelled("request certificate")
            arn = certificates.request_certificate(alias, scope.tags)

        certificate = certificates.describe_certificate(arn)
        if certificate.not_after is not None and self.metrics is not None:
            self.metrics.certificate_expiry(scope.account_id, scope.cluster_name, scope.cluster_namespace, certificate.not_after)

        zone_id = self.services.dns.find_hosted_zone(scope.base_domain)
        if not certificate.issued:
            if not certificate.validated and certificate.validation_record is not None:
                self._check_cancelled("upsert validation record")
                self.services.dns.upsert_cname(zone_id, certificate.validation_record)
            raise not_yet_ready(
                f"certificate for {alias} is not issued yet",
                reason=EVENT_REASON_CERTIFICATE_NOT_ISSUED,
            )
        return arn, zone_id

    def ensure_distribution(self, aliases: list[str], certificate_arn: Optional[str]) -> Distribution:
        """Create the cluster's distribution or bring the existing one up to date.

        Raises:
            IRSAError: Fatal if a persisted distribution record is incomplete
        """
        scope = self.scope
        distributions = self.services.distributions

        record = self.state_store.read(scope.record_kind, scope.cluster_namespace, scope.config_name)
        if record is not None:
            Distribution.from_record(record)

        live = distributions.find_distribution(scope.cluster_name)
        if live is None:
            self._check_cancelled("create distribution")
            oai_id = distributions.create_origin_access_identity(scope.cluster_name)
            return distributions.create_distribution(
                DistributionSpec(
                    cluster_name=scope.cluster_name,
                    origin_domain=scope.bucket_origin,
                    origin_access_identity_id=oai_id,
                    aliases=aliases,
                    certificate_arn=certificate_arn,
                    tags=scope.tags,
                )
            )

        distribution = live.distribution
        if distribution_needs_update(live.aliases, live.certificate_arn, aliases, certificate_arn):
            self._check_cancelled("update distribution")
            distributions.update_distribution(distribution.distribution_id, aliases, certificate_arn)

        diff = tag_diff(live.tags, scope.tags)
        if diff.to_add:
            distributions.tag_distribution(distribution.arn, diff.to_add)
        if diff.to_remove:
            distributions.untag_distribution(distribution.arn, diff.to_remove)
        return distribution

    def ensure_distribution_record(self, distribution: Distribution, alias: str) -> None:
        """Persist the distribution's identifiers for teardown."""
        scope = self.scope
        distribution.validate()
        data = distribution.to_record()
        if alias:
            data[RECORD_FIELD_DOMAIN_ALIAS] = alias

        existing = self.state_store.read(scope.record_kind, scope.cluster_namespace, scope.config_name)
        if existing == data:
            return
        self._check_cancelled("persist distribution record")
        if existing is None and self.state_store.create(scope.record_kind, scope.cluster_namespace, scope.config_name, data):
            return
        self.state_store.replace(scope.record_kind, scope.cluster_namespace, scope.config_name, data)

    def upload_documents(self, domain: Optional[str], signing_key: SigningKeyMaterial) -> None:
        """Upload discovery document and JWKS, skipping unchanged objects."""
        scope = self.scope
        buckets = self.services.buckets
        documents = (
            (DISCOVERY_OBJECT_KEY, build_discovery_document(domain, scope.bucket_name, scope.region)),
            (JWKS_OBJECT_KEY, build_jwks(signing_key.private_key)),
        )
        for key, document in documents:
            body = encode_document(document)
            if buckets.get_object_etag(scope.bucket_name, key) == hashlib.md5(body, usedforsecurity=False).hexdigest():
                continue
            self._check_cancelled(f"upload {key}")
            buckets.put_object(scope.bucket_name, key, body, public_read=not scope.cloudfront_enabled)

    def ensure_oidc_providers(self, urls: list[str]) -> None:
        """Register one identity provider per URL with a fresh thumbprint and tags."""
        scope = self.scope
        providers = self.services.identity_providers
        tags = scope.tags
        for url in urls:
            thumbprint = self.services.thumbprints.get_thumbprint(provider_host(url))
            arn = provider_arn(scope.account_id, url, scope.region)
            live = providers.get_provider(arn)
            self._check_cancelled(f"ensure OIDC provider {url}")
            if live is None:
                providers.create_provider(url, [scope.client_id], [thumbprint], tags)
                # A provider created concurrently keeps its own thumbprint and tags
                live = providers.get_provider(arn)
                if live is None:
                    continue

            if live.thumbprints != [thumbprint]:
                providers.update_thumbprints(arn, [thumbprint])
            diff = tag_diff(live.tags, tags)
            if diff.to_add:
                providers.tag_provider(arn, diff.to_add)
            if diff.to_remove:
                providers.untag_provider(arn, diff.to_remove)

    # Delete

    def delete(self, remove_finalizer: Callable[[], None]) -> list[TeardownStep]:
        """Tear down the cluster's resources, removing the finalizer last.

        Args:
            remove_finalizer: Drops the cluster's finalizers; only called once
                every other step succeeded

        Returns:
            The steps that ran

        Raises:
            IRSAError: Wrapped failure of the first step that failed
        """
        scope = self.scope
        plan = plan_teardown(scope.keep_oidc_provider_on_delete, managed_issuer=not scope.uses_bucket)
        try:
            actions = self._teardown_actions(remove_finalizer)
            completed = run_teardown(actions, plan, cluster=scope.cluster_name, cancel_event=scope.cancel_event)
        except Exception as e:
            self._record_result(e)
            raise wrap_error(e, "delete", scope.cluster_name)
        logger.info(f"Finished deleting IRSA resources for cluster {scope.cluster_name}")
        return completed

    def _teardown_actions(self, remove_finalizer: Callable[[], None]) -> dict[TeardownStep, Callable[[], None]]:
        scope = self.scope
        services = self.services
        actions: dict[TeardownStep, Callable[[], None]] = {
            TeardownStep.PROVIDER: self.delete_oidc_providers,
            TeardownStep.FINALIZER_REMOVE: lambda: self._finish_teardown(remove_finalizer),
        }
        if not scope.uses_bucket:
            return actions

        actions[TeardownStep.OBJECTS] = lambda: services.buckets.delete_objects(
            scope.bucket_name, [DISCOVERY_OBJECT_KEY, JWKS_OBJECT_KEY]
        )
        actions[TeardownStep.BUCKET] = lambda: services.buckets.delete_bucket(scope.bucket_name)
        if scope.generates_signing_key:
            actions[TeardownStep.SIGNING_KEY_DELETE] = lambda: self.state_store.delete(
                KIND_SECRET, scope.cluster_namespace, scope.secret_name
            )
        if services.distributions is None or scope.keep_oidc_provider_on_delete:
            return actions

        distributions = services.distributions

        # Looked up on first use, so bucket teardown never waits on CloudFront
        @functools.lru_cache(maxsize=None)
        def record() -> Optional[dict[str, str]]:
            return self.state_store.read(scope.record_kind, scope.cluster_namespace, scope.config_name)

        @functools.lru_cache(maxsize=None)
        def distribution() -> Optional[Distribution]:
            return self._distribution_for_teardown(record())

        def disable_distribution() -> None:
            found = distribution()
            if found is not None:
                distributions.disable_distribution(found.distribution_id)

        def delete_distribution() -> None:
            found = distribution()
            if found is not None:
                self._retry(
                    "delete distribution",
                    lambda: distributions.delete_distribution(found.distribution_id),
                    policy=self.delete_policy,
                )

        def delete_origin_access_identity() -> None:
            found = distribution()
            if found is not None:
                distributions.delete_origin_access_identity(found.origin_access_identity_id)

        def delete_record() -> None:
            # The certificate step still needs the alias stored in the record
            record()
            self.state_store.delete(scope.record_kind, scope.cluster_namespace, scope.config_name)

        def delete_certificate() -> None:
            alias = (record() or {}).get(RECORD_FIELD_DOMAIN_ALIAS) or cloudfront_alias(scope.base_domain)
            if alias:
                self.delete_certificate(alias)

        actions[TeardownStep.DISTRIBUTION_DISABLE] = disable_distribution
        actions[TeardownStep.DISTRIBUTION_DELETE] = delete_distribution
        actions[TeardownStep.OAI_DELETE] = delete_origin_access_identity
        actions[TeardownStep.RECORD_DELETE] = delete_record
        if services.certificates is not None:
            actions[TeardownStep.CERTIFICATE_DELETE] = delete_certificate
        return actions

    def _distribution_for_teardown(self, record: Optional[dict[str, str]]) -> Optional[Distribution]:
        """Distribution to remove: from the record, else looked up in AWS."""
        if record is not None:
            return Distribution.from_record(record)
        live = self.services.distributions.find_distribution(self.scope.cluster_name)
        return live.distribution if live is not None else None

    def delete_oidc_providers(self) -> None:
        """Delete every identity provider tagged with this cluster."""
        scope = self.scope
        providers = self.services.identity_providers
        for arn in providers.list_providers():
            provider = providers.get_provider(arn)
            if provider is None:
                continue
            tags = provider.tags
            if tags.get(TAG_CLUSTER) == scope.cluster_name and tags.get(TAG_INSTALLATION) == scope.installation:
                self._check_cancelled(f"delete OIDC provider {arn}")
                providers.delete_provider(arn)

    def delete_certificate(self, alias: str) -> None:
        arn = self.services.certificates.find_certificate(alias)
        if arn is None:
            logger.info(f"No certificate for {alias}, skipping deletion")
            return
        self.services.certificates.delete_certificate(arn)

    def _finish_teardown(self, remove_finalizer: Callable[[], None]) -> None:
        scope = self.scope
        if self.metrics is not None:
            self.metrics.forget_cluster(scope.account_id, scope.cluster_name, scope.cluster_namespace)
        remove_finalizer()

