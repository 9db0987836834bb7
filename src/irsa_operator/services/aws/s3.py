"""S3 adapter for the publication bucket."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from ...utils.diff import tags_to_list
from ...utils.errors import aws_error_code
from ...utils.naming import arn_prefix
from .session import BotoAdapter

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchBucket", "NotFound", "NoSuchKey"}


def cloudfront_bucket_policy(bucket: str, oai_id: str, region: str) -> dict[str, Any]:
    """Bucket policy granting read access only to the distribution's OAI, over TLS.

    Args:
        bucket: Bucket name
        oai_id: CloudFront origin access identity ID
        region: Bucket region, selects the ARN partition

    Returns:
        Policy document
    """
    prefix = arn_prefix(region)
    return {
        "Version": "2012-10-17",
        "Id": "PolicyForCloudFrontPrivateContent",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {
                    "AWS": f"arn:{prefix}:iam::cloudfront:user/CloudFront Origin Access Identity {oai_id}",
                },
                "Action": "s3:GetObject",
                "Resource": f"arn:{prefix}:s3:::{bucket}/*",
            },
            {
                "Sid": "ForceSSLOnlyAccess",
                "Effect": "Deny",
                "Principal": "*",
                "Action": "s3:*",
                "Resource": [
                    f"arn:{prefix}:s3:::{bucket}",
                    f"arn:{prefix}:s3:::{bucket}/*",
                ],
                "Condition": {"Bool": {"aws:SecureTransport": "false"}},
            },
        ],
    }


class S3BucketService(BotoAdapter):
    """BucketService backed by boto3."""

    service = "s3"

    def __init__(self, client: Any, region: str, metrics: Any = None) -> None:
        super().__init__(client, metrics)
        self.region = region

    def bucket_exists(self, name: str) -> bool:
        try:
            self._call("head_bucket", Bucket=name)
            return True
        except ClientError as e:
            if aws_error_code(e) in NOT_FOUND_CODES:
                return False
            logger.error(f"Failed to check bucket {name}: {e}")
            raise

    def create_bucket(self, name: str) -> None:
        params: dict[str, Any] = {
            "Bucket": name,
            "ACL": "private",
            "ObjectOwnership": "ObjectWriter",
        }
        # us-east-1 rejects an explicit location constraint
        if self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._call("create_bucket", **params)
        except ClientError as e:
            if aws_error_code(e) in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                logger.info(f"Bucket {name} already exists")
                return
            logger.error(f"Failed to create bucket {name}: {e}")
            raise
        logger.info(f"Created bucket {name}")

    def encrypt_bucket(self, name: str) -> None:
        self._call(
            "put_bucket_encryption",
            Bucket=name,
            ServerSideEncryptionConfiguration={
                "Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}],
            },
        )

    def put_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        self._call("put_bucket_tagging", Bucket=name, Tagging={"TagSet": tags_to_list(tags)})

    def get_object_etag(self, bucket: str, key: str) -> Optional[str]:
        try:
            response = self._call("head_object", Bucket=bucket, Key=key)
        except ClientError as e:
            if aws_error_code(e) in NOT_FOUND_CODES:
                return None
            raise
        return response.get("ETag", "").strip('"')

    def put_object(self, bucket: str, key: str, body: bytes, public_read: bool) -> None:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ContentType": "application/json",
        }
        if public_read:
            params["ACL"] = "public-read"
        self._call("put_object", **params)
        logger.info(f"Uploaded {key} to bucket {bucket}")

    def delete_objects(self, bucket: str, keys: list[str]) -> None:
        try:
            self._call(
                "delete_objects",
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except ClientError as e:
            if aws_error_code(e) in ("NoSuchBucket", "NoSuchKey"):
                logger.info(f"Objects in bucket {bucket} already deleted")
                return
            raise

    def delete_bucket(self, name: str) -> None:
        try:
            self._call("delete_bucket", Bucket=name)
        except ClientError as e:
            if aws_error_code(e) == "NoSuchBucket":
                logger.info(f"Bucket {name} already deleted")
                return
            raise
        logger.info(f"Deleted bucket {name}")

    def put_bucket_policy(self, name: str, policy: dict[str, Any]) -> None:
        self._call("put_bucket_policy", Bucket=name, Policy=json.dumps(policy))

    def set_public_access_block(self, name: str, blocked: bool) -> None:
        self._call(
            "put_public_access_block",
            Bucket=name,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": blocked,
                "IgnorePublicAcls": blocked,
                "BlockPublicPolicy": blocked,
                "RestrictPublicBuckets": blocked,
            },
        )
