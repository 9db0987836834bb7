"""RSA signing key generation and (de)serialization."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..utils.errors import invalid_input

KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537


def b64url(data: bytes) -> str:
    """Base64url encoding without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class SigningKeyMaterial:
    """RSA keypair used to sign service account tokens."""

    private_key: rsa.RSAPrivateKey

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @property
    def private_pem(self) -> str:
        """PKCS#1 PEM ("RSA PRIVATE KEY")."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    @property
    def public_pem(self) -> str:
        """PKIX PEM ("PUBLIC KEY")."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    @property
    def kid(self) -> str:
        return key_id(self.private_key)


def generate_signing_key(key_size: int = KEY_SIZE) -> SigningKeyMaterial:
    """Generate a fresh RSA keypair."""
    return SigningKeyMaterial(rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size))


def load_signing_key(pem: str | bytes) -> SigningKeyMaterial:
    """Deserialize a PEM private key (PKCS#1 or PKCS#8).

    Args:
        pem: PEM-encoded RSA private key

    Returns:
        SigningKeyMaterial wrapping the parsed key

    Raises:
        IRSAError: Fatal if the PEM is missing, unparseable or not RSA
    """
    if not pem:
        raise invalid_input("signing key is empty")
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    try:
        private_key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise invalid_input(f"signing key cannot be parsed: {e}") from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise invalid_input("signing key is not an RSA key")
    return SigningKeyMaterial(private_key)


def key_id(private_key: rsa.RSAPrivateKey) -> str:
    """Deterministic key identifier.

    SHA-256 over the PKCS#1 DER encoding of the private key, base64url without
    padding.
    """
    der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return b64url(hashlib.sha256(der).digest())
