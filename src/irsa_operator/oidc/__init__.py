"""Signing key material and OIDC documents."""

from .documents import build_discovery_document, build_jwks, discovery_urls, encode_document
from .keys import SigningKeyMaterial, generate_signing_key, key_id, load_signing_key

__all__ = [
    "SigningKeyMaterial",
    "build_discovery_document",
    "build_jwks",
    "discovery_urls",
    "encode_document",
    "generate_signing_key",
    "key_id",
    "load_signing_key",
]
