"""EKS adapter."""

from __future__ import annotations

import logging

from botocore.exceptions import ClientError

from ...utils.errors import aws_error_code, invalid_input, not_yet_ready
from .session import BotoAdapter

logger = logging.getLogger(__name__)


class EKSManagedClusterService(BotoAdapter):
    """ManagedClusterService backed by boto3."""

    service = "eks"

    def get_oidc_issuer(self, cluster_name: str) -> str:
        """Issuer URL of the managed control plane.

        Raises:
            IRSAError: NotYetReady while the cluster or its issuer does not exist yet
        """
        try:
            response = self._call("describe_cluster", name=cluster_name)
        except ClientError as e:
            if aws_error_code(e) == "ResourceNotFoundException":
                raise not_yet_ready(f"EKS cluster {cluster_name} does not exist yet") from e
            raise
        issuer = response.get("cluster", {}).get("identity", {}).get("oidc", {}).get("issuer")
        if not issuer:
            raise not_yet_ready(f"EKS cluster {cluster_name} has no OIDC issuer yet")
        if not issuer.startswith("https://"):
            raise invalid_input(f"EKS cluster {cluster_name} reports invalid issuer {issuer!r}")
        return issuer
