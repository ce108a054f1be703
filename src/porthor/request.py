"""Bearer tokens in HTTP requests."""

from __future__ import annotations

from collections.abc import Generator

import httpx
from starlette.requests import HTTPConnection

from .algorithms import Key
from .constants import AUTHORIZATION_SCHEME
from .exceptions import InvalidAuthorizationError, MissingAuthorizationError
from .token import Token, decode, verify

__all__ = [
    "BearerAuth",
    "parse_authorization",
    "request_decode",
    "request_verify",
]


def parse_authorization(request: HTTPConnection) -> str:
    """Find the bearer token in the ``Authorization`` header.

    Parameters
    ----------
    request
        The incoming request.

    Returns
    -------
    str
        The compact serialization of the token.

    Raises
    ------
    MissingAuthorizationError
        Raised if the request has no ``Authorization`` header.
    InvalidAuthorizationError
        Raised if the header does not consist of exactly two fields separated
        by whitespace with the first being ``Bearer``.
    """
    header = request.headers.get("Authorization")
    if not header:
        raise MissingAuthorizationError(
            "Request contains no authorization header"
        )
    fields = header.split()
    if len(fields) != 2 or fields[0] != AUTHORIZATION_SCHEME:
        msg = f"Invalid authorization header: {header!r}"
        raise InvalidAuthorizationError(msg)
    return fields[1]


def request_decode(request: HTTPConnection) -> Token:
    """Decode the bearer token of a request without verifying it.

    Parameters
    ----------
    request
        The incoming request.

    Returns
    -------
    Token
        The decoded token.

    Raises
    ------
    AuthorizationHeaderError
        Raised if the request carries no usable bearer token.
    TokenError
        Raised if the token cannot be decoded.
    """
    return decode(parse_authorization(request))


def request_verify(request: HTTPConnection, key: Key) -> Token:
    """Verify the bearer token of a request.

    Parameters
    ----------
    request
        The incoming request.
    key
        Key to verify the signature of the token with.

    Returns
    -------
    Token
        The verified token.

    Raises
    ------
    AuthorizationHeaderError
        Raised if the request carries no usable bearer token.
    PorthorError
        Raised if the token cannot be decoded or its signature is invalid.
    """
    return verify(parse_authorization(request), key)


class BearerAuth(httpx.Auth):
    """Authenticate outgoing HTTPX requests with a bearer token.

    Parameters
    ----------
    token
        Token to send in the ``Authorization`` header.

    Examples
    --------
    .. code-block:: python

       async with httpx.AsyncClient(auth=BearerAuth(token)) as client:
           r = await client.get(url)
    """

    def __init__(self, token: Token) -> None:
        self._token = token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        header = f"{AUTHORIZATION_SCHEME} {self._token!s}"
        request.headers["Authorization"] = header
        yield request
