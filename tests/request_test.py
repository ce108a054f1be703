"""Tests for the porthor.request package."""

from __future__ import annotations

import httpx
import pytest

from porthor.algorithms import Algorithm
from porthor.claims import Claims
from porthor.exceptions import (
    InvalidAuthorizationError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingAuthorizationError,
)
from porthor.request import (
    BearerAuth,
    parse_authorization,
    request_decode,
    request_verify,
)
from porthor.token import encode

from .support.keys import HMAC_SECRET
from .support.requests import build_request


def test_parse_authorization() -> None:
    assert parse_authorization(build_request("Bearer abc")) == "abc"
    assert parse_authorization(build_request("  Bearer \t abc  ")) == "abc"

    with pytest.raises(MissingAuthorizationError) as excinfo:
        parse_authorization(build_request())
    assert str(excinfo.value) == "Request contains no authorization header"
    with pytest.raises(MissingAuthorizationError):
        parse_authorization(build_request(""))

    for header in ("Bearer", "bearer abc", "Basic abc", "Bearer abc def"):
        with pytest.raises(InvalidAuthorizationError) as excinfo:
            parse_authorization(build_request(header))
        expected = f"Invalid authorization header: {header!r}"
        assert str(excinfo.value) == expected


def test_request_decode_verify() -> None:
    claims = Claims({"sub": "some-user"})
    token = encode(claims, HMAC_SECRET, Algorithm.HS256)
    request = build_request(f"Bearer {token}")

    decoded = request_decode(request)
    assert decoded == token
    assert decoded.claims == claims
    verified = request_verify(request, HMAC_SECRET)
    assert verified.claims == claims
    assert verified.key == HMAC_SECRET

    with pytest.raises(InvalidSignatureError):
        request_verify(request, b"wrong secret")
    with pytest.raises(MalformedTokenError):
        request_decode(build_request("Bearer not-a-token"))
    with pytest.raises(MissingAuthorizationError):
        request_verify(build_request(), HMAC_SECRET)


@pytest.mark.asyncio
async def test_bearer_auth() -> None:
    token = encode(Claims({"sub": "some-user"}), HMAC_SECRET, Algorithm.HS256)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json={"ok": True})

    transport = httpx.MockTransport(handler)
    auth = BearerAuth(token)
    async with httpx.AsyncClient(transport=transport, auth=auth) as client:
        r = await client.get("https://example.com/")
    assert r.status_code == 200
    assert seen == [f"Bearer {token}"]
