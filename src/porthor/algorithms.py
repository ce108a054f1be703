"""Signing and verification algorithms for JSON Web Tokens.

Each `Algorithm` is bound to a key family and a hash function.  The actual
work is done by one strategy object per algorithm, looked up in a table keyed
by the algorithm.  Every strategy checks that the key belongs to its family
before doing any cryptographic work so that a wrong key type is reported as
`~porthor.exceptions.AlgorithmKeyMismatchError` and never as a signature
mismatch.
"""

from __future__ import annotations

import hmac
from abc import ABCMeta, abstractmethod
from enum import StrEnum
from typing import TypeAlias

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from jwt.utils import der_to_raw_signature, raw_to_der_signature

from .exceptions import (
    AlgorithmKeyMismatchError,
    InvalidSignatureError,
    SigningError,
)

Key: TypeAlias = (
    bytes
    | rsa.RSAPrivateKey
    | rsa.RSAPublicKey
    | ec.EllipticCurvePrivateKey
    | ec.EllipticCurvePublicKey
    | None
)
"""Key used to sign or verify a token.

The concrete type depends on the algorithm: raw secret bytes for HMAC, RSA
keys for RSA and RSA-PSS, elliptic curve keys for ECDSA, and `None` for the
``none`` algorithm.
"""

__all__ = [
    "Algorithm",
    "Key",
    "KeyFamily",
]


class KeyFamily(StrEnum):
    """Family of keys accepted by an algorithm."""

    hmac = "hmac"
    rsa = "rsa"
    ec = "ec"
    none = "none"


class Algorithm(StrEnum):
    """A supported JWT signature algorithm.

    The value is the identifier used in the ``alg`` header of a token.
    """

    HS256 = "HS256"
    HS384 = "HS384"
    HS512 = "HS512"
    RS256 = "RS256"
    RS384 = "RS384"
    RS512 = "RS512"
    PS256 = "PS256"
    PS384 = "PS384"
    PS512 = "PS512"
    ES256 = "ES256"
    ES384 = "ES384"
    ES512 = "ES512"
    NONE = "none"

    @property
    def family(self) -> KeyFamily:
        """The family of keys this algorithm signs and verifies with."""
        return _STRATEGIES[self].family

    def sign(self, data: bytes, key: Key) -> bytes:
        """Sign data.

        Parameters
        ----------
        data
            Data to sign, normally the encoded header and claims of a token
            joined by a period.
        key
            Key to sign with.  Must belong to the family of this algorithm.

        Returns
        -------
        bytes
            The raw signature, empty for the ``none`` algorithm.

        Raises
        ------
        AlgorithmKeyMismatchError
            Raised if the key does not fit this algorithm.
        SigningError
            Raised if the cryptography library could not create a signature.
        """
        return _STRATEGIES[self].sign(data, key)

    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        """Verify the signature of some data.

        Parameters
        ----------
        data
            Data that was signed.
        signature
            The raw signature.
        key
            Key to verify with.  For asymmetric algorithms either the public
            key or the private key may be passed.

        Raises
        ------
        AlgorithmKeyMismatchError
            Raised if the key does not fit this algorithm.
        InvalidSignatureError
            Raised if the signature does not match the data.
        """
        _STRATEGIES[self].verify(data, signature, key)


def _key_type_name(key: object) -> str:
    """Name the type of a key for error messages."""
    return "empty" if key is None else type(key).__name__


class _Strategy(metaclass=ABCMeta):
    """Signing and verification for one algorithm.

    Parameters
    ----------
    algorithm
        The algorithm identifier, used in error messages.
    """

    family: KeyFamily

    def __init__(self, algorithm: str) -> None:
        self._algorithm = algorithm

    @abstractmethod
    def sign(self, data: bytes, key: Key) -> bytes:
        """Sign data after checking the key type."""

    @abstractmethod
    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        """Verify a signature after checking the key type."""

    def _mismatch(self, key: object) -> AlgorithmKeyMismatchError:
        msg = (
            f"Invalid combination of algorithm {self._algorithm} and key type"
            f" {_key_type_name(key)}"
        )
        return AlgorithmKeyMismatchError(msg)


class _HMACStrategy(_Strategy):
    """Keyed hash with a shared secret."""

    family = KeyFamily.hmac

    def __init__(self, algorithm: str, digest: str) -> None:
        super().__init__(algorithm)
        self._digest = digest

    def sign(self, data: bytes, key: Key) -> bytes:
        if not isinstance(key, bytes):
            raise self._mismatch(key)
        return hmac.digest(key, data, self._digest)

    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        expected = self.sign(data, key)
        if not hmac.compare_digest(expected, signature):
            raise InvalidSignatureError("Signature does not match")


class _RSAStrategy(_Strategy):
    """RSASSA-PKCS1-v1_5 signatures."""

    family = KeyFamily.rsa

    def __init__(self, algorithm: str, hash_: hashes.HashAlgorithm) -> None:
        super().__init__(algorithm)
        self._hash = hash_

    def sign(self, data: bytes, key: Key) -> bytes:
        if not isinstance(key, rsa.RSAPrivateKey):
            raise self._mismatch(key)
        try:
            return key.sign(data, self._padding(), self._hash)
        except (UnsupportedAlgorithm, ValueError) as e:
            raise SigningError(f"Cannot create signature: {e!s}") from e

    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        if isinstance(key, rsa.RSAPrivateKey):
            key = key.public_key()
        if not isinstance(key, rsa.RSAPublicKey):
            raise self._mismatch(key)
        try:
            key.verify(signature, data, self._padding(), self._hash)
        except InvalidSignature as e:
            raise InvalidSignatureError("Signature does not match") from e

    def _padding(self) -> padding.AsymmetricPadding:
        return padding.PKCS1v15()


class _RSAPSSStrategy(_RSAStrategy):
    """RSASSA-PSS signatures with MGF1 and a salt as long as the digest."""

    def _padding(self) -> padding.AsymmetricPadding:
        return padding.PSS(
            mgf=padding.MGF1(self._hash),
            salt_length=padding.PSS.DIGEST_LENGTH,
        )


class _ECDSAStrategy(_Strategy):
    """ECDSA signatures in the fixed-width ``r || s`` form used by JWS."""

    family = KeyFamily.ec

    def __init__(self, algorithm: str, hash_: hashes.HashAlgorithm) -> None:
        super().__init__(algorithm)
        self._hash = hash_

    def sign(self, data: bytes, key: Key) -> bytes:
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise self._mismatch(key)
        try:
            der_signature = key.sign(data, ec.ECDSA(self._hash))
        except (UnsupportedAlgorithm, ValueError) as e:
            raise SigningError(f"Cannot create signature: {e!s}") from e
        return der_to_raw_signature(der_signature, key.curve)

    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        if isinstance(key, ec.EllipticCurvePrivateKey):
            key = key.public_key()
        if not isinstance(key, ec.EllipticCurvePublicKey):
            raise self._mismatch(key)
        try:
            der_signature = raw_to_der_signature(signature, key.curve)
        except ValueError as e:
            msg = "Signature has the wrong length for the curve"
            raise InvalidSignatureError(msg) from e
        try:
            key.verify(der_signature, data, ec.ECDSA(self._hash))
        except InvalidSignature as e:
            raise InvalidSignatureError("Signature does not match") from e


class _NoneStrategy(_Strategy):
    """Unsigned tokens.

    Tokens using this algorithm are not authenticated in any way.  They are
    only supported for interoperability and testing.
    """

    family = KeyFamily.none

    def sign(self, data: bytes, key: Key) -> bytes:
        if key is not None:
            raise self._mismatch(key)
        return b""

    def verify(self, data: bytes, signature: bytes, key: Key) -> None:
        if key is not None:
            raise self._mismatch(key)


_STRATEGIES: dict[Algorithm, _Strategy] = {
    Algorithm.HS256: _HMACStrategy("HS256", "sha256"),
    Algorithm.HS384: _HMACStrategy("HS384", "sha384"),
    Algorithm.HS512: _HMACStrategy("HS512", "sha512"),
    Algorithm.RS256: _RSAStrategy("RS256", hashes.SHA256()),
    Algorithm.RS384: _RSAStrategy("RS384", hashes.SHA384()),
    Algorithm.RS512: _RSAStrategy("RS512", hashes.SHA512()),
    Algorithm.PS256: _RSAPSSStrategy("PS256", hashes.SHA256()),
    Algorithm.PS384: _RSAPSSStrategy("PS384", hashes.SHA384()),
    Algorithm.PS512: _RSAPSSStrategy("PS512", hashes.SHA512()),
    Algorithm.ES256: _ECDSAStrategy("ES256", hashes.SHA256()),
    Algorithm.ES384: _ECDSAStrategy("ES384", hashes.SHA384()),
    Algorithm.ES512: _ECDSAStrategy("ES512", hashes.SHA512()),
    Algorithm.NONE: _NoneStrategy("none"),
}
"""Strategy for each supported algorithm."""
