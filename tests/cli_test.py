"""Tests for the command-line interface."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_private_key,
)

from porthor.algorithms import Algorithm
from porthor.cli import main
from porthor.claims import Claims
from porthor.token import decode, encode, verify
from porthor.util import current_datetime

from .support.keys import HMAC_SECRET


def test_help() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["help"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "generate-key" in result.output

    result = runner.invoke(main, ["help", "encode"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "--claim" in result.output


def test_generate_key() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["generate-key"], catch_exceptions=False)
    assert result.exit_code == 0
    key = load_pem_private_key(result.output.encode(), password=None)
    assert isinstance(key, rsa.RSAPrivateKey)

    result = runner.invoke(
        main, ["generate-key", "--type", "ec"], catch_exceptions=False
    )
    assert result.exit_code == 0
    key = load_pem_private_key(result.output.encode(), password=None)
    assert isinstance(key, ec.EllipticCurvePrivateKey)

    result = runner.invoke(
        main, ["generate-key", "--type", "hmac"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert len(result.output.strip()) >= 32


def test_encode_hmac() -> None:
    runner = CliRunner()
    result = runner.invoke(
        main,
        [
            "encode",
            "--secret",
            HMAC_SECRET.decode(),
            "--claim",
            "sub=some-user",
            "--claim",
            "uid=4711",
            "--claim",
            'groups=["admin", "users"]',
            "--claim",
            "note=not json",
            "--lifetime",
            "1h",
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    token = verify(result.output.strip(), HMAC_SECRET)
    assert token.algorithm == Algorithm.HS256
    assert token.claims.subject() == "some-user"
    assert token.claims.get("uid") == 4711
    assert token.claims.get("groups") == ["admin", "users"]
    assert token.claims.get("note") == "not json"
    expiration = token.claims.expiration()
    issued_at = token.claims.issued_at()
    assert expiration
    assert issued_at
    assert (expiration - issued_at).total_seconds() == 3600


def test_encode_rsa(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["generate-key"], catch_exceptions=False)
    key_path = tmp_path / "key.pem"
    key_path.write_text(result.output)

    result = runner.invoke(
        main,
        [
            "encode",
            "-a",
            "PS256",
            "--key-file",
            str(key_path),
            "-c",
            "sub=some-user",
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    encoded = result.output.strip()
    assert decode(encoded).algorithm == Algorithm.PS256

    # Verify with both the private key and the public key.
    result = runner.invoke(
        main,
        ["verify", encoded, "--key-file", str(key_path)],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["claims"] == {"sub": "some-user"}

    private_key = load_pem_private_key(key_path.read_bytes(), password=None)
    public_path = tmp_path / "public.pem"
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
        )
    )
    result = runner.invoke(
        main,
        ["verify", encoded, "--key-file", str(public_path)],
        catch_exceptions=False,
    )
    assert result.exit_code == 0

    result = runner.invoke(main, ["encode", "-a", "ES256", "-c", "sub=x"])
    assert result.exit_code != 0
    assert "--key-file is required" in result.output


def test_decode() -> None:
    token = encode(Claims({"sub": "some-user"}), HMAC_SECRET, Algorithm.HS384)
    runner = CliRunner()
    result = runner.invoke(
        main, ["decode", str(token)], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "header": {"alg": "HS384", "typ": "JWT"},
        "claims": {"sub": "some-user"},
    }

    result = runner.invoke(main, ["decode", "not-a-token"])
    assert result.exit_code == 1
    assert "Cannot decode the parts" in result.output


def test_verify_errors() -> None:
    claims = Claims({"sub": "some-user"})
    token = str(encode(claims, HMAC_SECRET, Algorithm.HS256))
    runner = CliRunner()

    result = runner.invoke(main, ["verify", token, "--secret", "wrong"])
    assert result.exit_code == 1
    assert "Cannot verify the signature" in result.output

    result = runner.invoke(main, ["verify", token])
    assert result.exit_code != 0
    assert "--secret is required" in result.output

    claims.set_expiration(current_datetime() - timedelta(hours=1))
    expired = str(encode(claims, HMAC_SECRET, Algorithm.HS256))
    secret = HMAC_SECRET.decode()
    result = runner.invoke(main, ["verify", expired, "--secret", secret])
    assert result.exit_code == 1
    assert "Token is not valid at this time" in result.output

    result = runner.invoke(
        main,
        ["verify", expired, "--secret", secret, "--leeway", "2h"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0

    result = runner.invoke(main, ["encode", "--claim", "no-separator"])
    assert result.exit_code == 2
    assert "not of the form name=value" in result.output


def test_verify_leeway_from_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    claims = Claims({"sub": "some-user"})
    claims.set_expiration(current_datetime() - timedelta(hours=1))
    expired = str(encode(claims, HMAC_SECRET, Algorithm.HS256))
    args = ["verify", expired, "--secret", HMAC_SECRET.decode()]
    runner = CliRunner()

    monkeypatch.setenv("PORTHOR_LEEWAY", "2h")
    result = runner.invoke(main, args, catch_exceptions=False)
    assert result.exit_code == 0
    assert "some-user" in result.output

    result = runner.invoke(main, [*args, "--leeway", "0s"])
    assert result.exit_code == 1
    assert "Token is not valid at this time" in result.output

    monkeypatch.setenv("PORTHOR_LEEWAY", "sometime")
    result = runner.invoke(main, args)
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
