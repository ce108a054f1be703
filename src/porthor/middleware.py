"""Middleware requiring a valid JSON Web Token on every request."""

from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import override
from xml.etree import ElementTree

import structlog
from fastapi import FastAPI, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import HTTPConnection
from structlog.stdlib import BoundLogger

from .algorithms import Algorithm, Key
from .cache import TokenCache
from .claims import Claims
from .config import Config
from .constants import AUTHORIZATION_SCHEME, DEFAULT_LEEWAY, LOGGER_NAME
from .exceptions import (
    PermissionDeniedError,
    PorthorError,
    TokenNotValidError,
)
from .request import request_decode, request_verify
from .token import Token

type Gatekeeper = Callable[[Request, Claims], Awaitable[None] | None]
"""Check run over the claims of a valid token.

The gatekeeper rejects the request by raising
`~porthor.exceptions.PermissionDeniedError`.  Any other exception it raises
rejects the request as well.
"""

__all__ = [
    "Gatekeeper",
    "JWTMiddleware",
    "get_request_token",
]


def get_request_token(request: HTTPConnection) -> Token | None:
    """Return the token accepted by `JWTMiddleware` for a request.

    Parameters
    ----------
    request
        The request being handled.

    Returns
    -------
    Token or None
        The token, or `None` if the request did not pass through the
        middleware.
    """
    return getattr(request.state, "token", None)


class JWTMiddleware(BaseHTTPMiddleware):
    """Require a valid bearer token before passing on requests.

    The token of each request is verified with ``key``, or only decoded if no
    key is given, using ``cache`` if one is configured.  It must be within its
    validity window and, if a gatekeeper is configured, be accepted by it.
    The token is then stored in the request state, from where handlers
    retrieve it with `get_request_token`.

    Requests failing any of these checks are answered directly with a 401
    response, or a 403 response if the token is merely outside of its
    validity window.  The body of the response is JSON, XML, or plain text
    depending on the ``Accept`` and ``Content-Type`` headers of the request.

    Parameters
    ----------
    app
        The ASGI application.
    cache
        Cache of tokens to use.  Tokens are decoded or verified on every
        request if not given.
    key
        Key to verify tokens with.  Tokens are only decoded if not given.
    leeway
        Tolerance for clock skew when checking the validity window.  Taken
        from ``config`` if not given.
    gatekeeper
        Optional sync or async callable checking the claims of the token.
    allow_none_algorithm
        Whether to accept tokens using the ``none`` algorithm.  Taken from
        ``config`` if not given.
    config
        Porthor configuration supplying the settings not passed explicitly.
        Without one, the leeway defaults to one minute and unsigned tokens
        are rejected.
    logger
        Logger to use.  Defaults to the ``porthor`` logger.
    """

    def __init__(
        self,
        app: FastAPI,
        *,
        cache: TokenCache | None = None,
        key: Key = None,
        leeway: timedelta | None = None,
        gatekeeper: Gatekeeper | None = None,
        allow_none_algorithm: bool | None = None,
        config: Config | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        super().__init__(app)
        if leeway is None:
            leeway = config.leeway if config else DEFAULT_LEEWAY
        if allow_none_algorithm is None:
            allow_none_algorithm = bool(config and config.allow_none_algorithm)
        self._cache = cache
        self._key = key
        self._leeway = leeway
        self._gatekeeper = gatekeeper
        self._allow_none_algorithm = allow_none_algorithm
        self._logger = logger or structlog.get_logger(LOGGER_NAME)

    @override
    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        try:
            token = await self._authenticate(request)
        except PorthorError as e:
            return self._deny(request, e.status_code, str(e))
        request.state.token = token
        return await call_next(request)

    async def _authenticate(self, request: Request) -> Token:
        """Obtain and check the token of a request.

        Raises
        ------
        PorthorError
            Raised if the request must be denied.  The status code of the
            exception is used for the response.
        """
        token = await self._get_token(request)
        unsigned = token.algorithm == Algorithm.NONE
        if unsigned and not self._allow_none_algorithm:
            raise PermissionDeniedError("Unsigned tokens are not accepted")
        if not token.is_valid(self._leeway):
            msg = "The JSON Web Token claims 'nbf' and/or 'exp' are not valid"
            raise TokenNotValidError(msg)
        if self._gatekeeper:
            try:
                result = self._gatekeeper(request, token.claims)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                msg = f"Access rejected by gatekeeper: {e!s}"
                raise PermissionDeniedError(msg) from e
        return token

    async def _get_token(self, request: Request) -> Token:
        if self._cache:
            if self._key is None:
                return await self._cache.request_decode(request)
            return await self._cache.request_verify(request, self._key)
        if self._key is None:
            return request_decode(request)
        return request_verify(request, self._key)

    def _deny(self, request: Request, status_code: int, msg: str) -> Response:
        """Build the response rejecting a request."""
        self._logger.info(
            "Denied request",
            path=request.url.path,
            status_code=status_code,
            error=msg,
        )
        headers = {"Cache-Control": "no-cache, no-store"}
        if status_code == status.HTTP_401_UNAUTHORIZED:
            headers["WWW-Authenticate"] = AUTHORIZATION_SCHEME
        feedback = {"statusCode": str(status_code), "message": msg}
        media_type = _negotiate(request)
        if media_type == "application/json":
            body = json.dumps(feedback)
        elif media_type == "application/xml":
            root = ElementTree.Element("feedback")
            for name, value in feedback.items():
                ElementTree.SubElement(root, name).text = value
            body = ElementTree.tostring(root, encoding="unicode")
        else:
            body = msg
        return Response(
            body,
            status_code=status_code,
            headers=headers,
            media_type=media_type,
        )


def _negotiate(request: Request) -> str:
    """Choose the media type of a denial from the request headers."""
    for header in ("Accept", "Content-Type"):
        value = request.headers.get(header, "")
        if "application/json" in value:
            return "application/json"
        if "application/xml" in value:
            return "application/xml"
    return "text/plain"
