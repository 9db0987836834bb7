"""OIDC discovery document and JSON Web Key Set."""

from __future__ import annotations

import json
from typing import Any

from cryptography.hazmat.primitives.asymmetric import rsa

from ..utils.naming import bucket_url
from .keys import b64url, key_id

AUTHORIZATION_ENDPOINT = "urn:kubernetes:programmatic_authorization"


def _int_to_bytes(value: int) -> bytes:
    """Minimal big-endian encoding of a positive integer."""
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def build_jwks(private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    """Build the JWKS for a signing key.

    The key is published twice, once with the digest ``kid`` and once with an
    empty ``kid`` for verifiers that ignore key identifiers.
    """
    numbers = private_key.public_key().public_numbers()
    n = b64url(_int_to_bytes(numbers.n))
    e = b64url(_int_to_bytes(numbers.e))
    return {
        "keys": [
            {"kty": "RSA", "alg": "RS256", "use": "sig", "kid": kid, "n": n, "e": e}
            for kid in (key_id(private_key), "")
        ]
    }


def discovery_urls(domain: str | None, bucket: str, region: str) -> tuple[str, str]:
    """Issuer and JWKS URI.

    Args:
        domain: CloudFront (or alias) domain; None publishes straight from S3
        bucket: Publication bucket name
        region: Bucket region

    Returns:
        Tuple of (issuer, jwks_uri)
    """
    if domain:
        issuer = f"https://{domain}"
    else:
        issuer = bucket_url(region, bucket)
    return issuer, f"{issuer}/keys.json"


def build_discovery_document(domain: str | None, bucket: str, region: str) -> dict[str, Any]:
    """Build the OIDC discovery document."""
    issuer, jwks_uri = discovery_urls(domain, bucket, region)
    return {
        "issuer": issuer,
        "jwks_uri": jwks_uri,
        "authorization_endpoint": AUTHORIZATION_ENDPOINT,
        "response_types_supported": ["id_token"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": ["RS256"],
        "claims_supported": ["sub", "iss"],
    }


def encode_document(document: dict[str, Any]) -> bytes:
    return (json.dumps(document) + "\n").encode("utf-8")
