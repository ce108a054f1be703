"""Encoding, decoding, and verification of JSON Web Tokens."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from .algorithms import Algorithm, Key
from .claims import Claims
from .constants import TOKEN_TYPE
from .exceptions import (
    CryptoError,
    InvalidPayloadError,
    MalformedTokenError,
    NoKeyError,
    PorthorError,
    UnknownAlgorithmError,
)
from .util import base64url_decode, base64url_encode

__all__ = [
    "Token",
    "decode",
    "encode",
    "verify",
]


class Token:
    """A JSON Web Token.

    Tokens are only created by `encode`, `decode`, and `verify` and never
    change afterwards.  The compact serialization the token was created from
    is the single source of truth for its string form and for equality, so
    tokens can be shared freely and used as dictionary keys.

    Parameters
    ----------
    encoded
        The compact serialization of the token.
    claims
        The claims of the token.  They are made read-only.
    algorithm
        The algorithm named in the token header.
    key
        The key used to sign or verify the token.
    has_key
        Whether ``key`` is meaningful.  `False` for decoded tokens.
    """

    __slots__ = ("_algorithm", "_claims", "_encoded", "_has_key", "_key")

    def __init__(
        self,
        encoded: str,
        claims: Claims,
        algorithm: Algorithm,
        key: Key = None,
        *,
        has_key: bool = False,
    ) -> None:
        claims.freeze()
        self._encoded = encoded
        self._claims = claims
        self._algorithm = algorithm
        self._key = key
        self._has_key = has_key

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Token):
            return self._encoded == other._encoded
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._encoded)

    def __repr__(self) -> str:
        return f"Token(algorithm={self._algorithm!s}, claims={self._claims!r})"

    def __str__(self) -> str:
        """Return the compact serialization the token was created from."""
        return self._encoded

    @property
    def algorithm(self) -> Algorithm:
        """The algorithm named in the header of the token."""
        return self._algorithm

    @property
    def claims(self) -> Claims:
        """The read-only claims of the token."""
        return self._claims

    @property
    def header(self) -> dict[str, Any]:
        """A copy of the JOSE header of the token."""
        return json.loads(base64url_decode(self._encoded.split(".", 1)[0]))

    @property
    def key(self) -> Key:
        """The key used to encode or verify the token.

        Raises
        ------
        NoKeyError
            Raised if the token was decoded without verification.
        """
        if not self._has_key:
            msg = "No key available, only after encoding or verifying"
            raise NoKeyError(msg)
        return self._key

    def is_valid(self, leeway: timedelta) -> bool:
        """Check the ``nbf`` and ``exp`` claims of the token.

        Parameters
        ----------
        leeway
            Tolerance for clock skew.

        Returns
        -------
        bool
            Whether the current time is inside the validity window.
        """
        return self._claims.is_valid(leeway)


def encode(claims: Claims, key: Key, algorithm: Algorithm) -> Token:
    """Create a signed token.

    Parameters
    ----------
    claims
        Claims of the token.  The token holds the claims as serialized into
        it, so datetimes become seconds since the epoch and later changes by
        the caller do not affect the token.
    key
        Key to sign the token with.  Its type must match the algorithm.
    algorithm
        Signature algorithm.

    Returns
    -------
    Token
        The new token.

    Raises
    ------
    InvalidClaimError
        Raised if the claims cannot be serialized to JSON.
    AlgorithmKeyMismatchError
        Raised if the key does not fit the algorithm.
    SigningError
        Raised if the signature cannot be created.
    """
    header = {"alg": algorithm.value, "typ": TOKEN_TYPE}
    header_part = base64url_encode(_dump_json(header))
    try:
        payload = claims.to_json()
    except PorthorError as e:
        raise _annotate(e, "Cannot encode the claims") from e
    signed = f"{header_part}.{base64url_encode(payload)}"
    try:
        signature = algorithm.sign(signed.encode(), key)
    except CryptoError as e:
        raise _annotate(e, "Cannot encode the signature") from e
    encoded = f"{signed}.{base64url_encode(signature)}"

    signed_claims = Claims.from_json(payload)
    return Token(encoded, signed_claims, algorithm, key, has_key=True)


def decode(token: str) -> Token:
    """Decode a token without verifying its signature.

    The resulting token has no key.  Nothing about its contents can be
    trusted.

    Parameters
    ----------
    token
        Compact serialization of the token.

    Returns
    -------
    Token
        The decoded token.

    Raises
    ------
    MalformedTokenError
        Raised if the token does not have three parts.
    InvalidEncodingError
        Raised if a part is not valid base64url.
    InvalidPayloadError
        Raised if the header or the claims are not JSON objects.
    UnknownAlgorithmError
        Raised if the header names an unsupported algorithm.
    """
    parts = _split(token, "Cannot decode the parts")
    algorithm = _decode_header(parts[0], "Cannot decode the header")
    claims = _decode_claims(parts[1], "Cannot decode the claims")
    return Token(token, claims, algorithm)


def verify(token: str, key: Key) -> Token:
    """Decode a token and verify its signature.

    The signature is checked with the algorithm named in the token header
    before the claims are decoded, so the claims of a token with a bad
    signature are never returned.  Tokens using the ``none`` algorithm only
    verify if the key is `None`.

    Parameters
    ----------
    token
        Compact serialization of the token.
    key
        Key to verify the signature with.

    Returns
    -------
    Token
        The verified token.

    Raises
    ------
    MalformedTokenError
        Raised if the token does not have three parts.
    InvalidEncodingError
        Raised if a part is not valid base64url.
    InvalidPayloadError
        Raised if the header or the claims are not JSON objects.
    UnknownAlgorithmError
        Raised if the header names an unsupported algorithm.
    AlgorithmKeyMismatchError
        Raised if the key does not fit the algorithm of the token.
    InvalidSignatureError
        Raised if the signature does not match.
    """
    parts = _split(token, "Cannot verify the parts")
    algorithm = _decode_header(parts[0], "Cannot verify the header")
    signed = f"{parts[0]}.{parts[1]}".encode()
    try:
        signature = base64url_decode(parts[2])
        algorithm.verify(signed, signature, key)
    except PorthorError as e:
        raise _annotate(e, "Cannot verify the signature") from e
    claims = _decode_claims(parts[1], "Cannot verify the claims")
    return Token(token, claims, algorithm, key, has_key=True)


def _annotate(exc: PorthorError, context: str) -> PorthorError:
    """Return a copy of an exception with the failed operation prepended."""
    return type(exc)(f"{context}: {exc!s}")


def _decode_claims(part: str, context: str) -> Claims:
    try:
        return Claims.from_json(base64url_decode(part))
    except PorthorError as e:
        raise _annotate(e, context) from e


def _decode_header(part: str, context: str) -> Algorithm:
    """Decode the header and return the algorithm it names."""
    try:
        data = base64url_decode(part)
        try:
            header = json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            msg = f"Header is not valid JSON: {e!s}"
            raise InvalidPayloadError(msg) from e
        if not isinstance(header, dict):
            raise InvalidPayloadError("Header is not a JSON object")
        alg = header.get("alg")
        if not isinstance(alg, str):
            raise InvalidPayloadError("Header contains no algorithm")
        try:
            return Algorithm(alg)
        except ValueError as e:
            msg = f"Unsupported algorithm {alg}"
            raise UnknownAlgorithmError(msg) from e
    except PorthorError as e:
        raise _annotate(e, context) from e


def _dump_json(value: dict[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode()


def _split(token: str, context: str) -> list[str]:
    parts = token.split(".")
    if len(parts) != 3:
        msg = f"{context}: expected 3 parts but found {len(parts)}"
        raise MalformedTokenError(msg)
    return parts
