"""Tests for session construction and adapter wiring."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from irsa_operator.services.aws.acm import ACMCertificateService
from irsa_operator.services.aws.cloudfront import CloudFrontDistributionService
from irsa_operator.services.aws.eks import EKSManagedClusterService
from irsa_operator.services.aws.factory import build_services
from irsa_operator.services.aws.route53 import Route53DNSService
from irsa_operator.services.aws.s3 import S3BucketService
from irsa_operator.services.aws.session import SESSION_NAME, assume_role_session
from irsa_operator.utils.cache import TTLCache

ROLE_ARN = "arn:aws:iam::123456789012:role/giantswarm-irsa"
CREDENTIALS = {
    "Credentials": {"AccessKeyId": "AKIA", "SecretAccessKey": "secret", "SessionToken": "token"},
}


class TestAssumeRoleSession:
    """Test cases for assume_role_session."""

    @patch("irsa_operator.services.aws.session.boto3.session.Session")
    def test_assumes_role(self, mock_session_cls):
        base_session = MagicMock()
        base_session.client.return_value.assume_role.return_value = CREDENTIALS

        assume_role_session(ROLE_ARN, "eu-west-1", base_session=base_session)

        base_session.client.return_value.assume_role.assert_called_once_with(
            RoleArn=ROLE_ARN, RoleSessionName=SESSION_NAME
        )
        mock_session_cls.assert_called_once_with(
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            aws_session_token="token",
            region_name="eu-west-1",
        )

    @patch("irsa_operator.services.aws.session.boto3.session.Session")
    def test_credentials_are_cached_but_sessions_are_not_shared(self, mock_session_cls):
        """Concurrent reconciles for one role reuse credentials, each with its own Session."""
        base_session = MagicMock()
        base_session.client.return_value.assume_role.return_value = CREDENTIALS
        mock_session_cls.side_effect = lambda **kwargs: MagicMock()
        cache = TTLCache(default_ttl=60.0)

        first = assume_role_session(ROLE_ARN, "eu-west-1", cache=cache, base_session=base_session)
        second = assume_role_session(ROLE_ARN, "eu-west-1", cache=cache, base_session=base_session)

        assert first is not second
        base_session.client.return_value.assume_role.assert_called_once()
        assert mock_session_cls.call_count == 2
        assert mock_session_cls.call_args.kwargs["aws_session_token"] == "token"


@patch("irsa_operator.services.aws.factory.make_client")
@patch("irsa_operator.services.aws.factory.assume_role_session")
class TestBuildServices:
    """Adapters follow the cluster's flavor and partition."""

    def test_cloudfront_partition(self, mock_session, mock_make_client, make_scope):
        services = build_services(make_scope("capa"))

        assert isinstance(services.buckets, S3BucketService)
        assert isinstance(services.distributions, CloudFrontDistributionService)
        assert isinstance(services.certificates, ACMCertificateService)
        assert isinstance(services.dns, Route53DNSService)
        assert services.managed_clusters is None
        mock_make_client.assert_any_call(mock_session.return_value, "acm", region="us-east-1")

    def test_china_has_no_cloudfront(self, mock_session, mock_make_client, make_scope):
        services = build_services(make_scope("legacy", region="cn-north-1"))

        assert isinstance(services.buckets, S3BucketService)
        assert services.distributions is None
        assert services.certificates is None
        assert services.dns is None

    def test_eks(self, mock_session, mock_make_client, make_scope):
        services = build_services(make_scope("eks"))

        assert isinstance(services.managed_clusters, EKSManagedClusterService)
        assert services.buckets is None
        assert services.distributions is None
