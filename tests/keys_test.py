"""Tests for the porthor.keys package."""

from __future__ import annotations

from datetime import timedelta
from io import BytesIO

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from cryptography.x509.oid import NameOID

from porthor.algorithms import Algorithm
from porthor.exceptions import KeyFormatError, KeyTypeError
from porthor.keys import (
    read_ec_private_key,
    read_ec_public_key,
    read_rsa_private_key,
    read_rsa_public_key,
)
from porthor.util import current_datetime

from .support.keys import EC_KEYS, RSA_KEY

EC_KEY = EC_KEYS[Algorithm.ES256]
PRIVATE_FORMATS = (PrivateFormat.TraditionalOpenSSL, PrivateFormat.PKCS8)


def build_certificate(
    key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey,
) -> bytes:
    """Build a PEM-encoded self-signed certificate for a key."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "porthor")])
    now = current_datetime()
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(Encoding.PEM)


def test_rsa_private_key() -> None:
    for private_format in PRIVATE_FORMATS:
        pem = RSA_KEY.private_bytes(
            Encoding.PEM, private_format, NoEncryption()
        )
        key = read_rsa_private_key(pem)
        assert key.private_numbers() == RSA_KEY.private_numbers()
        key = read_rsa_private_key(BytesIO(pem))
        assert key.private_numbers() == RSA_KEY.private_numbers()


def test_rsa_public_key() -> None:
    expected = RSA_KEY.public_key().public_numbers()
    pem = RSA_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    )
    assert read_rsa_public_key(pem).public_numbers() == expected
    assert read_rsa_public_key(BytesIO(pem)).public_numbers() == expected

    certificate = build_certificate(RSA_KEY)
    assert read_rsa_public_key(certificate).public_numbers() == expected

    pkcs1 = RSA_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.PKCS1
    )
    assert read_rsa_public_key(pkcs1).public_numbers() == expected


def test_ec_private_key() -> None:
    for private_format in PRIVATE_FORMATS:
        pem = EC_KEY.private_bytes(
            Encoding.PEM, private_format, NoEncryption()
        )
        key = read_ec_private_key(pem)
        assert key.private_numbers() == EC_KEY.private_numbers()


def test_ec_public_key() -> None:
    expected = EC_KEY.public_key().public_numbers()
    pem = EC_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    )
    assert read_ec_public_key(pem).public_numbers() == expected

    certificate = build_certificate(EC_KEY)
    assert read_ec_public_key(certificate).public_numbers() == expected


def test_wrong_type() -> None:
    rsa_pem = RSA_KEY.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    )
    ec_pem = EC_KEY.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    )
    rsa_public_pem = RSA_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    )
    ec_public_pem = EC_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    )

    with pytest.raises(KeyTypeError) as excinfo:
        read_ec_private_key(rsa_pem)
    assert str(excinfo.value) == "Key is not an ECDSA private key"
    with pytest.raises(KeyTypeError):
        read_rsa_private_key(ec_pem)
    with pytest.raises(KeyTypeError) as excinfo:
        read_rsa_public_key(ec_public_pem)
    assert str(excinfo.value) == "Key is not an RSA public key"
    with pytest.raises(KeyTypeError):
        read_ec_public_key(rsa_public_pem)


def test_invalid() -> None:
    garbage = (
        b"-----BEGIN PUBLIC KEY-----\nZ2FyYmFnZQ==\n-----END PUBLIC KEY-----\n"
    )
    with pytest.raises(KeyFormatError) as excinfo:
        read_rsa_private_key(b"not a key")
    assert str(excinfo.value).startswith("Cannot parse the RSA key: ")
    with pytest.raises(KeyFormatError):
        read_rsa_public_key(b"")
    with pytest.raises(KeyFormatError):
        read_ec_public_key(garbage)
    with pytest.raises(KeyFormatError):
        read_ec_public_key(BytesIO(garbage))

    # A public key is not a private key.
    public_pem = RSA_KEY.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    )
    with pytest.raises(KeyFormatError):
        read_rsa_private_key(public_pem)

    encrypted = EC_KEY.private_bytes(
        Encoding.PEM,
        PrivateFormat.PKCS8,
        BestAvailableEncryption(b"password"),
    )
    with pytest.raises(KeyFormatError):
        read_ec_private_key(encrypted)
