"""IAM OIDC identity provider adapter and TLS thumbprint source."""

from __future__ import annotations

import hashlib
import logging
import socket
import ssl
from typing import Any, Optional
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from ...utils.diff import tags_from_list, tags_to_list
from ...utils.errors import aws_error_code
from ...utils.naming import arn_prefix, ensure_https, trim_https
from .base import IdentityProvider
from .session import BotoAdapter

logger = logging.getLogger(__name__)


def provider_arn(account_id: str, url: str, region: str) -> str:
    """ARN IAM assigns to the OIDC provider registered for ``url``."""
    return f"arn:{arn_prefix(region)}:iam::{account_id}:oidc-provider/{trim_https(url)}"


def provider_host(url: str) -> str:
    """Host a thumbprint has to be taken from."""
    return urlparse(ensure_https(url)).hostname or trim_https(url)


class TLSThumbprintSource:
    """ThumbprintSource performing a TLS handshake on port 443."""

    def __init__(self, port: int = 443, timeout: float = 10.0) -> None:
        self.port = port
        self.timeout = timeout

    def get_thumbprint(self, host: str) -> str:
        """SHA-1 fingerprint (hex) of the leaf certificate served by ``host``.

        Raises:
            OSError: If the handshake fails
        """
        context = ssl.create_default_context()
        with socket.create_connection((host, self.port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as tls:
                der = tls.getpeercert(binary_form=True)
        if not der:
            raise ssl.SSLError(f"{host} presented no certificate")
        return hashlib.sha1(der).hexdigest()


class IAMIdentityProviderService(BotoAdapter):
    """IdentityProviderService backed by boto3."""

    service = "iam"

    def list_providers(self) -> list[str]:
        response = self._call("list_open_id_connect_providers")
        return [p["Arn"] for p in response.get("OpenIDConnectProviderList", [])]

    def get_provider(self, arn: str) -> Optional[IdentityProvider]:
        try:
            response = self._call("get_open_id_connect_provider", OpenIDConnectProviderArn=arn)
        except ClientError as e:
            if aws_error_code(e) == "NoSuchEntity":
                return None
            raise
        return IdentityProvider(
            arn=arn,
            url=ensure_https(response.get("Url", "")),
            client_ids=list(response.get("ClientIDList", [])),
            thumbprints=list(response.get("ThumbprintList", [])),
            tags=tags_from_list(response.get("Tags")),
        )

    def create_provider(self, url: str, client_ids: list[str], thumbprints: list[str], tags: dict[str, str]) -> str:
        try:
            response = self._call(
                "create_open_id_connect_provider",
                Url=ensure_https(url),
                ClientIDList=client_ids,
                ThumbprintList=thumbprints,
                Tags=tags_to_list(tags),
            )
        except ClientError as e:
            if aws_error_code(e) != "EntityAlreadyExists":
                logger.error(f"Failed to create OIDC provider {url}: {e}")
                raise
            existing = self._find_by_url(url)
            if existing is None:
                raise
            logger.info(f"OIDC provider {url} already exists")
            return existing
        logger.info(f"Created OIDC provider {url}")
        return response["OpenIDConnectProviderArn"]

    def _find_by_url(self, url: str) -> Optional[str]:
        wanted = trim_https(url)
        for arn in self.list_providers():
            if arn.split("oidc-provider/", 1)[-1] == wanted:
                return arn
        return None

    def update_thumbprints(self, arn: str, thumbprints: list[str]) -> None:
        self._call(
            "update_open_id_connect_provider_thumbprint",
            OpenIDConnectProviderArn=arn,
            ThumbprintList=thumbprints,
        )

    def tag_provider(self, arn: str, tags: dict[str, str]) -> None:
        self._call("tag_open_id_connect_provider", OpenIDConnectProviderArn=arn, Tags=tags_to_list(tags))

    def untag_provider(self, arn: str, keys: list[str]) -> None:
        self._call("untag_open_id_connect_provider", OpenIDConnectProviderArn=arn, TagKeys=keys)

    def delete_provider(self, arn: str) -> None:
        try:
            self._call("delete_open_id_connect_provider", OpenIDConnectProviderArn=arn)
        except ClientError as e:
            if aws_error_code(e) == "NoSuchEntity":
                logger.info(f"OIDC provider {arn} already deleted")
                return
            raise
        logger.info(f"Deleted OIDC provider {arn}")
