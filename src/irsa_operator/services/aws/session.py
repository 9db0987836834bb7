"""boto3 session construction with role assumption."""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ...metrics import MetricsSink
from ...utils.cache import TTLCache, make_cache_key
from ...utils.errors import aws_error_code

logger = logging.getLogger(__name__)

SESSION_NAME = "irsa-operator"
# Assumed role credentials last one hour
SESSION_TTL_SECONDS = 50 * 60

_client_config = Config(retries={"max_attempts": 5, "mode": "standard"})


def assume_role_session(
    role_arn: str,
    region: str,
    cache: Optional[TTLCache] = None,
    base_session: Optional[boto3.session.Session] = None,
) -> boto3.session.Session:
    """Create a boto3 session for an assumed role.

    The temporary credentials are cached per (role ARN, region) for less than
    their lifetime. Every call returns a new Session since sessions must not
    be shared between worker threads.

    Args:
        role_arn: Role to assume
        region: Region the session is bound to
        cache: Optional cache for credentials
        base_session: Session holding the operator's own credentials

    Returns:
        boto3 Session using the assumed role's temporary credentials
    """
    cache_key = make_cache_key("credentials", role_arn, region)
    credentials = cache.get(cache_key) if cache is not None else None
    if credentials is None:
        base_session = base_session or boto3.session.Session()
        sts = base_session.client("sts", region_name=region, config=_client_config)
        try:
            response = sts.assume_role(RoleArn=role_arn, RoleSessionName=SESSION_NAME)
        except ClientError as e:
            logger.error(f"Failed to assume role {role_arn}: {aws_error_code(e)}")
            raise
        credentials = response["Credentials"]
        if cache is not None:
            cache.set(cache_key, credentials, ttl=SESSION_TTL_SECONDS)

    return boto3.session.Session(
        aws_access_key_id=credentials["AccessKeyId"],
        aws_secret_access_key=credentials["SecretAccessKey"],
        aws_session_token=credentials["SessionToken"],
        region_name=region,
    )


def make_client(session: boto3.session.Session, service: str, region: Optional[str] = None) -> Any:
    """Create a boto3 client with the operator's retry configuration."""
    return session.client(service, region_name=region or session.region_name, config=_client_config)


class BotoAdapter:
    """Base class of the boto3 capability adapters.

    Every call goes through ``_call`` so API usage is counted per service and
    operation.
    """

    service = "aws"

    def __init__(self, client: Any, metrics: Optional[MetricsSink] = None) -> None:
        self.client = client
        self.metrics = metrics

    def _record(self, operation: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.aws_call(self.service, operation, result)

    def _call(self, operation: str, **kwargs: Any) -> Any:
        try:
            response = getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            self._record(operation, aws_error_code(e) or "error")
            raise
        self._record(operation, "success")
        return response
