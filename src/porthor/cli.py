"""Command-line interface for creating and inspecting tokens."""

from __future__ import annotations

import json
import secrets
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

import click
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from pydantic import ValidationError
from safir.click import display_help
from safir.datetime import parse_timedelta

from .algorithms import Algorithm, Key, KeyFamily
from .claims import Claims
from .config import Config
from .constants import HMAC_KEY_SIZE, RSA_KEY_SIZE
from .exceptions import KeyFormatError, PorthorError
from .keys import (
    read_ec_private_key,
    read_ec_public_key,
    read_rsa_private_key,
    read_rsa_public_key,
)
from .token import Token, decode, encode, verify
from .util import current_datetime

__all__ = [
    "decode_token",
    "encode_token",
    "generate_key",
    "help",
    "main",
    "verify_token",
]


def _parse_claim(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, Any]:
    """Parse ``name=value`` claims, reading the value as JSON if possible."""
    claims = {}
    for value in values:
        name, sep, raw = value.partition("=")
        if not sep or not name:
            msg = f"Claim {value!r} is not of the form name=value"
            raise click.BadParameter(msg, ctx=ctx, param=param)
        try:
            claims[name] = json.loads(raw)
        except ValueError:
            claims[name] = raw
    return claims


def _parse_duration(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> timedelta | None:
    if value is None:
        return None
    try:
        return parse_timedelta(value)
    except ValueError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


def _load_key(
    algorithm: Algorithm,
    secret: str | None,
    key_file: Path | None,
    *,
    private: bool,
) -> Key:
    """Load the key matching the family of an algorithm."""
    family = algorithm.family
    if family == KeyFamily.none:
        return None
    if family == KeyFamily.hmac:
        if secret is None:
            raise click.UsageError(f"--secret is required for {algorithm}")
        return secret.encode()
    if key_file is None:
        raise click.UsageError(f"--key-file is required for {algorithm}")
    pem = key_file.read_bytes()
    if family == KeyFamily.rsa:
        if private:
            return read_rsa_private_key(pem)
        try:
            return read_rsa_public_key(pem)
        except KeyFormatError:
            return read_rsa_private_key(pem)
    if private:
        return read_ec_private_key(pem)
    try:
        return read_ec_public_key(pem)
    except KeyFormatError:
        return read_ec_private_key(pem)


def _print_token(token: Token) -> None:
    output = {"header": token.header, "claims": dict(token.claims)}
    click.echo(json.dumps(output, indent=2, sort_keys=True))


secret_option = click.option(
    "--secret",
    envvar="PORTHOR_SECRET",
    default=None,
    help="Shared secret for HMAC algorithms.",
)
key_file_option = click.option(
    "--key-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="PEM-encoded key for RSA and ECDSA algorithms.",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Create and inspect JSON Web Tokens."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.option(
    "--type",
    "key_type",
    type=click.Choice(["rsa", "ec", "hmac"]),
    default="rsa",
    show_default=True,
    help="Type of key to generate.",
)
def generate_key(*, key_type: str) -> None:
    """Generate a new key for signing tokens.

    RSA and ECDSA keys are written as PEM-encoded private keys, from which
    the public key can be recovered.  HMAC secrets are written as a random
    URL-safe string.
    """
    if key_type == "hmac":
        click.echo(secrets.token_urlsafe(HMAC_KEY_SIZE))
        return
    key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
    if key_type == "rsa":
        key = rsa.generate_private_key(
            public_exponent=65537, key_size=RSA_KEY_SIZE
        )
    else:
        key = ec.generate_private_key(ec.SECP256R1())
    pem = key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    )
    sys.stdout.write(pem.decode())


@main.command("encode")
@click.option(
    "--algorithm",
    "-a",
    type=click.Choice([a.value for a in Algorithm]),
    default=Algorithm.HS256.value,
    show_default=True,
    help="Signature algorithm.",
)
@secret_option
@key_file_option
@click.option(
    "--claim",
    "-c",
    "claims",
    multiple=True,
    callback=_parse_claim,
    help="Claim as name=value. Values are parsed as JSON if possible.",
)
@click.option(
    "--lifetime",
    default=None,
    callback=_parse_duration,
    help="Lifetime of the token, such as 1h. Sets iat and exp.",
)
def encode_token(
    *,
    algorithm: str,
    secret: str | None,
    key_file: Path | None,
    claims: dict[str, Any],
    lifetime: timedelta | None,
) -> None:
    """Create a signed token and print it."""
    alg = Algorithm(algorithm)
    token_claims = Claims(claims)
    if lifetime:
        now = current_datetime()
        token_claims.set_issued_at(now)
        token_claims.set_expiration(now + lifetime)
    try:
        key = _load_key(alg, secret, key_file, private=True)
        token = encode(token_claims, key, alg)
    except PorthorError as e:
        raise click.ClickException(str(e)) from e
    click.echo(str(token))


@main.command("decode")
@click.argument("token")
def decode_token(*, token: str) -> None:
    """Print the header and claims of a token without verifying it."""
    try:
        _print_token(decode(token))
    except PorthorError as e:
        raise click.ClickException(str(e)) from e


@main.command("verify")
@click.argument("token")
@secret_option
@key_file_option
@click.option(
    "--leeway",
    default=None,
    callback=_parse_duration,
    help=(
        "Tolerance for clock skew when checking nbf and exp.  Defaults to"
        " PORTHOR_LEEWAY or one minute."
    ),
)
def verify_token(
    *,
    token: str,
    secret: str | None,
    key_file: Path | None,
    leeway: timedelta | None,
) -> None:
    """Verify a token and print its header and claims.

    The key is chosen by the algorithm named in the token.  For RSA and ECDSA
    tokens, either the public or the private key may be given.
    """
    try:
        unverified = decode(token)
        key = _load_key(unverified.algorithm, secret, key_file, private=False)
        verified = verify(token, key)
    except PorthorError as e:
        raise click.ClickException(str(e)) from e
    if leeway is None:
        try:
            leeway = Config().leeway
        except ValidationError as e:
            raise click.ClickException(f"Invalid configuration: {e!s}") from e
    if not verified.is_valid(leeway):
        raise click.ClickException("Token is not valid at this time")
    _print_token(verified)
