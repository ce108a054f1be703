"""Read PEM-encoded keys for signing and verifying tokens."""

from __future__ import annotations

from contextlib import suppress
from typing import BinaryIO

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    load_pem_private_key,
    load_pem_public_key,
)

from .algorithms import Key
from .exceptions import KeyFormatError, KeyTypeError

__all__ = [
    "Key",
    "read_ec_private_key",
    "read_ec_public_key",
    "read_rsa_private_key",
    "read_rsa_public_key",
]


def read_ec_private_key(
    source: bytes | BinaryIO,
) -> ec.EllipticCurvePrivateKey:
    """Read a PEM-encoded elliptic curve private key.

    Parameters
    ----------
    source
        The PEM data or a binary file to read it from.  SEC 1 and PKCS #8
        encodings are accepted and must not be password-protected.

    Returns
    -------
    cryptography.hazmat.primitives.asymmetric.ec.EllipticCurvePrivateKey
        The private key.

    Raises
    ------
    KeyFormatError
        Raised if the data contains no PEM block or the key cannot be parsed.
    KeyTypeError
        Raised if the key is not an elliptic curve private key.
    """
    key = _load_private_key(_read_pem(source), "ECDSA")
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise KeyTypeError("Key is not an ECDSA private key")
    return key


def read_ec_public_key(
    source: bytes | BinaryIO,
) -> ec.EllipticCurvePublicKey:
    """Read a PEM-encoded elliptic curve public key.

    Parameters
    ----------
    source
        The PEM data or a binary file to read it from.  Either a PKIX
        SubjectPublicKeyInfo structure or an X.509 certificate.

    Returns
    -------
    cryptography.hazmat.primitives.asymmetric.ec.EllipticCurvePublicKey
        The public key.

    Raises
    ------
    KeyFormatError
        Raised if the data contains no PEM block or the key cannot be parsed.
    KeyTypeError
        Raised if the key is not an elliptic curve public key.
    """
    key = _load_public_key(_read_pem(source), "ECDSA")
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise KeyTypeError("Key is not an ECDSA public key")
    return key


def read_rsa_private_key(source: bytes | BinaryIO) -> rsa.RSAPrivateKey:
    """Read a PEM-encoded RSA private key.

    Parameters
    ----------
    source
        The PEM data or a binary file to read it from.  PKCS #1 and PKCS #8
        encodings are accepted and must not be password-protected.

    Returns
    -------
    cryptography.hazmat.primitives.asymmetric.rsa.RSAPrivateKey
        The private key.

    Raises
    ------
    KeyFormatError
        Raised if the data contains no PEM block or the key cannot be parsed.
    KeyTypeError
        Raised if the key is not an RSA private key.
    """
    key = _load_private_key(_read_pem(source), "RSA")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyTypeError("Key is not an RSA private key")
    return key


def read_rsa_public_key(source: bytes | BinaryIO) -> rsa.RSAPublicKey:
    """Read a PEM-encoded RSA public key.

    Parameters
    ----------
    source
        The PEM data or a binary file to read it from.  Either a PKIX
        SubjectPublicKeyInfo structure or an X.509 certificate.

    Returns
    -------
    cryptography.hazmat.primitives.asymmetric.rsa.RSAPublicKey
        The public key.

    Raises
    ------
    KeyFormatError
        Raised if the data contains no PEM block or the key cannot be parsed.
    KeyTypeError
        Raised if the key is not an RSA public key.
    """
    key = _load_public_key(_read_pem(source), "RSA")
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyTypeError("Key is not an RSA public key")
    return key


def _read_pem(source: bytes | BinaryIO) -> bytes:
    return source if isinstance(source, bytes) else source.read()


def _load_private_key(pem: bytes, kind: str) -> object:
    try:
        return load_pem_private_key(pem, password=None)
    except (TypeError, UnsupportedAlgorithm, ValueError) as e:
        raise KeyFormatError(f"Cannot parse the {kind} key: {e!s}") from e


def _load_public_key(pem: bytes, kind: str) -> object:
    """Load a PKIX public key, falling back to an X.509 certificate."""
    with suppress(UnsupportedAlgorithm, ValueError):
        return load_pem_public_key(pem)
    try:
        certificate = x509.load_pem_x509_certificate(pem)
        return certificate.public_key()
    except (UnsupportedAlgorithm, ValueError) as e:
        raise KeyFormatError(f"Cannot parse the {kind} key: {e!s}") from e
