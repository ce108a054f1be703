"""Keys shared by the tests."""

from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import ec, rsa

from porthor.algorithms import Algorithm, Key, KeyFamily

__all__ = [
    "EC_KEYS",
    "HMAC_SECRET",
    "RSA_KEY",
    "signing_key",
    "verification_key",
]

HMAC_SECRET = b"0123456789abcdef" * 4
"""Shared secret for the HMAC algorithms."""

RSA_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
"""RSA private key for signing and verifying tokens.

Generating this takes a surprisingly long time when summed across every test,
so generate one statically at import time for each test run.
"""

EC_KEYS = {
    Algorithm.ES256: ec.generate_private_key(ec.SECP256R1()),
    Algorithm.ES384: ec.generate_private_key(ec.SECP384R1()),
    Algorithm.ES512: ec.generate_private_key(ec.SECP521R1()),
}
"""Elliptic curve private key for each ECDSA algorithm."""


def signing_key(algorithm: Algorithm) -> Key:
    """Return a key suitable for signing with the given algorithm."""
    match algorithm.family:
        case KeyFamily.hmac:
            return HMAC_SECRET
        case KeyFamily.rsa:
            return RSA_KEY
        case KeyFamily.ec:
            return EC_KEYS[algorithm]
        case _:
            return None


def verification_key(algorithm: Algorithm) -> Key:
    """Return the public counterpart of `signing_key`."""
    key = signing_key(algorithm)
    if isinstance(key, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey):
        return key.public_key()
    return key
