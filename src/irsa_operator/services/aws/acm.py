"""ACM adapter for the CloudFront alias certificate."""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from ...utils.cache import TTLCache, make_cache_key
from ...utils.diff import tags_to_list
from ...utils.errors import aws_error_code, not_yet_ready
from .base import CNAME, Certificate
from .session import BotoAdapter

logger = logging.getLogger(__name__)

# CloudFront only accepts certificates from us-east-1
ACM_REGION = "us-east-1"
DESCRIBE_CACHE_TTL_SECONDS = 30.0


def parse_certificate(arn: str, detail: dict[str, Any]) -> Certificate:
    """Build a Certificate from a DescribeCertificate response body."""
    options = detail.get("DomainValidationOptions") or []
    first = options[0] if options else {}
    renewal_status = (detail.get("RenewalSummary") or {}).get("RenewalStatus")
    validated = first.get("ValidationStatus") == "SUCCESS" and renewal_status != "PENDING_VALIDATION"

    record = first.get("ResourceRecord")
    validation_record = CNAME(name=record["Name"], value=record["Value"]) if record else None

    not_after = detail.get("NotAfter")
    return Certificate(
        arn=arn,
        status=detail.get("Status", ""),
        validated=validated,
        validation_record=validation_record,
        not_after=not_after.timestamp() if not_after is not None else None,
    )


class ACMCertificateService(BotoAdapter):
    """CertificateService backed by boto3."""

    service = "acm"

    def __init__(self, client: Any, cache: Optional[TTLCache] = None, metrics: Any = None) -> None:
        super().__init__(client, metrics)
        self.cache = cache

    def find_certificate(self, domain: str) -> Optional[str]:
        paginator = self.client.get_paginator("list_certificates")
        for page in paginator.paginate(PaginationConfig={"PageSize": 100}):
            for summary in page.get("CertificateSummaryList", []):
                if summary.get("DomainName") == domain:
                    return summary["CertificateArn"]
        return None

    def request_certificate(self, domain: str, tags: dict[str, str]) -> str:
        response = self._call(
            "request_certificate",
            DomainName=domain,
            ValidationMethod="DNS",
            # Repeated requests for the same domain within an hour return the same certificate
            IdempotencyToken=hashlib.sha1(domain.encode("utf-8")).hexdigest()[:32],
            Tags=tags_to_list(tags),
        )
        logger.info(f"Requested certificate for {domain}")
        return response["CertificateArn"]

    def describe_certificate(self, arn: str) -> Certificate:
        cache_key = make_cache_key("acm", arn)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached
        response = self._call("describe_certificate", CertificateArn=arn)
        certificate = parse_certificate(arn, response.get("Certificate", {}))
        if self.cache is not None:
            self.cache.set(cache_key, certificate, ttl=DESCRIBE_CACHE_TTL_SECONDS)
        return certificate

    def delete_certificate(self, arn: str) -> None:
        try:
            self._call("delete_certificate", CertificateArn=arn)
        except ClientError as e:
            code = aws_error_code(e)
            if code == "ResourceNotFoundException":
                logger.info(f"Certificate {arn} already deleted")
                return
            if code == "ResourceInUseException":
                raise not_yet_ready(f"certificate {arn} is still in use") from e
            raise
        finally:
            if self.cache is not None:
                self.cache.invalidate(make_cache_key("acm", arn))
        logger.info(f"Deleted certificate {arn}")
