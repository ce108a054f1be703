"""General utility functions."""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime

from safir.datetime import current_datetime as _current_datetime

from .exceptions import InvalidEncodingError

__all__ = [
    "add_padding",
    "base64url_decode",
    "base64url_encode",
    "current_datetime",
]

_BASE64URL_REGEX = re.compile("[A-Za-z0-9_-]*")
"""Characters allowed in unpadded base64url data."""


def add_padding(encoded: str) -> str:
    """Add padding to base64 encoded bytes.

    Parameters
    ----------
    encoded
        A base64-encoded string, possibly with the padding removed.

    Returns
    -------
    str
        A correctly-padded version of the encoded string.
    """
    underflow = len(encoded) % 4
    if underflow:
        return encoded + ("=" * (4 - underflow))
    else:
        return encoded


def base64url_decode(encoded: str) -> bytes:
    """Decode unpadded base64url data.

    Parameters
    ----------
    encoded
        Data encoded with the URL-safe alphabet and without padding, as used
        in every part of a compact JWT.

    Returns
    -------
    bytes
        The decoded data.

    Raises
    ------
    InvalidEncodingError
        Raised if the string contains characters outside of the URL-safe
        alphabet, contains padding, has an impossible length, or is not the
        canonical encoding of the data because unused bits are set.
    """
    if not _BASE64URL_REGEX.fullmatch(encoded):
        raise InvalidEncodingError("Part contains invalid base64url data")
    try:
        data = base64.urlsafe_b64decode(add_padding(encoded))
    except (binascii.Error, ValueError) as e:
        msg = f"Part contains invalid base64url data: {e!s}"
        raise InvalidEncodingError(msg) from e

    # Unused trailing bits must be zero so every value has one encoding.
    if base64url_encode(data) != encoded:
        raise InvalidEncodingError("Part contains non-canonical base64url")
    return data


def base64url_encode(data: bytes) -> str:
    """Encode data as base64url without padding.

    Parameters
    ----------
    data
        Data to encode.

    Returns
    -------
    str
        The encoded data using the URL-safe alphabet with padding removed.
    """
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def current_datetime() -> datetime:
    """Return the current time with microsecond precision in UTC."""
    return _current_datetime(microseconds=True)
