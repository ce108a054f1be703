"""Exceptions for Porthor."""

from __future__ import annotations

from typing import ClassVar

from fastapi import status

__all__ = [
    "AlgorithmKeyMismatchError",
    "AuthorizationHeaderError",
    "CacheActionTimeoutError",
    "CacheError",
    "CryptoError",
    "InvalidAuthorizationError",
    "InvalidClaimError",
    "InvalidEncodingError",
    "InvalidPayloadError",
    "InvalidSignatureError",
    "KeyFormatError",
    "KeyLoadError",
    "KeyTypeError",
    "MalformedTokenError",
    "MissingAuthorizationError",
    "NoKeyError",
    "PermissionDeniedError",
    "PorthorError",
    "SigningError",
    "TokenError",
    "TokenNotValidError",
    "UnknownAlgorithmError",
]


class PorthorError(Exception):
    """Base class for all Porthor errors.

    Every error carries the HTTP status code that the middleware returns when
    the error prevents a request from being authenticated.
    """

    status_code: ClassVar[int] = status.HTTP_401_UNAUTHORIZED
    """The status code to use for this HTTP error."""


class TokenError(PorthorError):
    """A token could not be decoded."""


class MalformedTokenError(TokenError):
    """The token does not consist of three parts separated by periods."""


class InvalidEncodingError(TokenError):
    """A part of the token is not valid unpadded base64url."""


class InvalidPayloadError(TokenError):
    """The header or the claims of the token are not a JSON object."""


class UnknownAlgorithmError(TokenError):
    """The token header names an algorithm that is not supported."""


class CryptoError(PorthorError):
    """Base class for failures while signing or verifying a token."""


class AlgorithmKeyMismatchError(CryptoError):
    """The key does not belong to the family required by the algorithm.

    Raised before any cryptographic work is attempted, so it never indicates
    a wrong signature.
    """


class InvalidSignatureError(CryptoError):
    """The signature of the token does not match its contents."""


class SigningError(CryptoError):
    """The cryptography library failed to produce a signature."""


class KeyLoadError(PorthorError):
    """Base class for failures while reading key material."""


class KeyFormatError(KeyLoadError):
    """The key material is not PEM or its contents cannot be parsed."""


class KeyTypeError(KeyLoadError):
    """The key material contains a key of another type than requested."""


class InvalidClaimError(PorthorError):
    """A claim cannot be serialized or does not have the expected shape."""


class NoKeyError(PorthorError):
    """The token has no key because it was decoded without verification."""


class TokenNotValidError(PorthorError):
    """The token is outside of the window given by its ``nbf`` and ``exp``."""

    status_code = status.HTTP_403_FORBIDDEN


class CacheError(PorthorError):
    """Base class for errors of the token cache."""


class CacheActionTimeoutError(CacheError):
    """The cache did not process an action in time or has been stopped."""


class AuthorizationHeaderError(PorthorError):
    """Base class for problems with the ``Authorization`` header."""


class MissingAuthorizationError(AuthorizationHeaderError):
    """The request contains no ``Authorization`` header."""


class InvalidAuthorizationError(AuthorizationHeaderError):
    """The ``Authorization`` header does not contain a bearer token."""


class PermissionDeniedError(PorthorError):
    """A gatekeeper rejected the claims of an otherwise valid token."""
