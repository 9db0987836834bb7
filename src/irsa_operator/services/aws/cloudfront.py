"""CloudFront adapter for the distribution fronting the publication bucket."""

from __future__ import annotations

import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from ...constants import EVENT_REASON_DISTRIBUTION_NOT_DISABLED
from ...utils.diff import live_distribution_settings, tags_from_list, tags_to_list
from ...utils.errors import aws_error_code, invalid_input, not_yet_ready
from ...utils.naming import distribution_comment
from .base import Distribution, DistributionSpec, LiveDistribution
from .session import BotoAdapter

logger = logging.getLogger(__name__)

# AWS managed "CachingDisabled" policy
CACHE_POLICY_ID = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
OAI_PREFIX = "origin-access-identity/cloudfront/"


def parse_origin_access_identity(value: str) -> str:
    """Extract the OAI ID from ``origin-access-identity/cloudfront/<id>``.

    Raises:
        IRSAError: Fatal if the value has an unexpected format
    """
    tokens = value.split("/")
    if len(tokens) != 3 or not tokens[2]:
        raise invalid_input(f"unexpected origin access identity format {value!r}")
    return tokens[2]


def viewer_certificate(certificate_arn: Optional[str]) -> dict[str, Any]:
    if not certificate_arn:
        return {"CloudFrontDefaultCertificate": True}
    return {
        "ACMCertificateArn": certificate_arn,
        "MinimumProtocolVersion": "TLSv1.2_2021",
        "SSLSupportMethod": "sni-only",
    }


def build_distribution_config(spec: DistributionSpec) -> dict[str, Any]:
    """DistributionConfig for a new distribution."""
    return {
        "CallerReference": f"distribution-cluster-{spec.cluster_name}",
        "Comment": distribution_comment(spec.cluster_name),
        "Aliases": {"Quantity": len(spec.aliases), "Items": list(spec.aliases)},
        "DefaultCacheBehavior": {
            "CachePolicyId": CACHE_POLICY_ID,
            "TargetOriginId": spec.origin_domain,
            "ViewerProtocolPolicy": "redirect-to-https",
        },
        "Enabled": True,
        "Origins": {
            "Quantity": 1,
            "Items": [
                {
                    "Id": spec.origin_domain,
                    "DomainName": spec.origin_domain,
                    "OriginShield": {"Enabled": False},
                    "S3OriginConfig": {"OriginAccessIdentity": f"{OAI_PREFIX}{spec.origin_access_identity_id}"},
                },
            ],
        },
        "Restrictions": {"GeoRestriction": {"RestrictionType": "none", "Quantity": 0}},
        "ViewerCertificate": viewer_certificate(spec.certificate_arn),
    }


class CloudFrontDistributionService(BotoAdapter):
    """DistributionService backed by boto3."""

    service = "cloudfront"

    def find_distribution(self, cluster_name: str) -> Optional[LiveDistribution]:
        # List results carry no tags, so the distribution is matched on its comment
        comment = distribution_comment(cluster_name)
        paginator = self.client.get_paginator("list_distributions")
        for page in paginator.paginate():
            for item in page.get("DistributionList", {}).get("Items", []):
                if item.get("Comment") != comment:
                    continue
                origins = item.get("Origins", {}).get("Items", [])
                oai = origins[0].get("S3OriginConfig", {}).get("OriginAccessIdentity", "") if origins else ""
                distribution = Distribution(
                    arn=item["ARN"],
                    distribution_id=item["Id"],
                    domain=item["DomainName"],
                    origin_access_identity_id=parse_origin_access_identity(oai),
                )
                aliases, certificate_arn = live_distribution_settings(item)
                tags = self._call("list_tags_for_resource", Resource=item["ARN"])
                return LiveDistribution(
                    distribution=distribution,
                    aliases=aliases,
                    certificate_arn=certificate_arn,
                    tags=tags_from_list(tags.get("Tags", {}).get("Items")),
                    enabled=item.get("Enabled", True),
                )
        return None

    def create_origin_access_identity(self, cluster_name: str) -> str:
        config = {
            "CallerReference": f"access-identity-cluster-{cluster_name}",
            "Comment": distribution_comment(cluster_name),
        }
        try:
            response = self._call(
                "create_cloud_front_origin_access_identity",
                CloudFrontOriginAccessIdentityConfig=config,
            )
        except ClientError as e:
            if aws_error_code(e) != "CloudFrontOriginAccessIdentityAlreadyExists":
                raise
            existing = self._find_origin_access_identity(config["Comment"])
            if existing is None:
                raise
            return existing
        oai_id = response["CloudFrontOriginAccessIdentity"]["Id"]
        logger.info(f"Created origin access identity {oai_id} for cluster {cluster_name}")
        return oai_id

    def _find_origin_access_identity(self, comment: str) -> Optional[str]:
        paginator = self.client.get_paginator("list_cloud_front_origin_access_identities")
        for page in paginator.paginate():
            for item in page.get("CloudFrontOriginAccessIdentityList", {}).get("Items", []):
                if item.get("Comment") == comment:
                    return item["Id"]
        return None

    def create_distribution(self, spec: DistributionSpec) -> Distribution:
        try:
            response = self._call(
                "create_distribution_with_tags",
                DistributionConfigWithTags={
                    "DistributionConfig": build_distribution_config(spec),
                    "Tags": {"Items": tags_to_list(spec.tags)},
                },
            )
        except ClientError as e:
            if aws_error_code(e) != "DistributionAlreadyExists":
                logger.error(f"Failed to create distribution for cluster {spec.cluster_name}: {e}")
                raise
            live = self.find_distribution(spec.cluster_name)
            if live is None:
                raise
            logger.info(f"Distribution for cluster {spec.cluster_name} already exists")
            return live.distribution
        created = response["Distribution"]
        logger.info(f"Created distribution {created['Id']} for cluster {spec.cluster_name}")
        return Distribution(
            arn=created["ARN"],
            distribution_id=created["Id"],
            domain=created["DomainName"],
            origin_access_identity_id=spec.origin_access_identity_id,
        )

    def _get_config(self, distribution_id: str) -> tuple[dict[str, Any], str]:
        response = self._call("get_distribution_config", Id=distribution_id)
        return response["DistributionConfig"], response["ETag"]

    def update_distribution(self, distribution_id: str, aliases: list[str], certificate_arn: Optional[str]) -> None:
        # Start from the live config so AWS-side defaults survive the update
        config, etag = self._get_config(distribution_id)
        config["Aliases"] = {"Quantity": len(aliases), "Items": list(aliases)}
        config["ViewerCertificate"] = viewer_certificate(certificate_arn)
        self._call("update_distribution", DistributionConfig=config, Id=distribution_id, IfMatch=etag)
        logger.info(f"Updated distribution {distribution_id}")

    def tag_distribution(self, arn: str, tags: dict[str, str]) -> None:
        self._call("tag_resource", Resource=arn, Tags={"Items": tags_to_list(tags)})

    def untag_distribution(self, arn: str, keys: list[str]) -> None:
        self._call("untag_resource", Resource=arn, TagKeys={"Items": keys})

    def disable_distribution(self, distribution_id: str) -> None:
        try:
            config, etag = self._get_config(distribution_id)
        except ClientError as e:
            if aws_error_code(e) == "NoSuchDistribution":
                logger.info(f"Distribution {distribution_id} no longer exists, skipping disable")
                return
            raise
        if not config.get("Enabled", True):
            return
        config["Enabled"] = False
        self._call("update_distribution", DistributionConfig=config, Id=distribution_id, IfMatch=etag)
        logger.info(f"Disabled distribution {distribution_id}")

    def delete_distribution(self, distribution_id: str) -> None:
        try:
            _, etag = self._get_config(distribution_id)
            self._call("delete_distribution", Id=distribution_id, IfMatch=etag)
        except ClientError as e:
            code = aws_error_code(e)
            if code == "NoSuchDistribution":
                logger.info(f"Distribution {distribution_id} already deleted")
                return
            if code == "DistributionNotDisabled":
                raise not_yet_ready(
                    f"distribution {distribution_id} is not disabled yet",
                    reason=EVENT_REASON_DISTRIBUTION_NOT_DISABLED,
                ) from e
            raise
        logger.info(f"Deleted distribution {distribution_id}")

    def delete_origin_access_identity(self, oai_id: str) -> None:
        try:
            response = self._call("get_cloud_front_origin_access_identity", Id=oai_id)
            self._call("delete_cloud_front_origin_access_identity", Id=oai_id, IfMatch=response["ETag"])
        except ClientError as e:
            code = aws_error_code(e)
            if code == "NoSuchCloudFrontOriginAccessIdentity":
                logger.info(f"Origin access identity {oai_id} already deleted")
                return
            if code == "CloudFrontOriginAccessIdentityInUse":
                raise not_yet_ready(f"origin access identity {oai_id} is still in use") from e
            raise
        logger.info(f"Deleted origin access identity {oai_id}")
