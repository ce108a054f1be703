"""The claims payload of a JSON Web Token."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterator, Mapping
from copy import deepcopy
from datetime import UTC, datetime, timedelta
from typing import Any, Self, TypeVar

from pydantic import TypeAdapter, ValidationError

from .exceptions import InvalidClaimError, InvalidPayloadError
from .util import current_datetime

T = TypeVar("T")
"""Type into which a structured claim is unmarshalled."""

_TRUE_STRINGS = frozenset(("1", "T", "TRUE", "true"))
"""Strings accepted as a true boolean claim."""

_FALSE_STRINGS = frozenset(("0", "F", "FALSE", "false"))
"""Strings accepted as a false boolean claim."""

_INT_REGEX = re.compile("[+-]?[0-9]+")
"""Strings accepted as an integer claim."""

_FLOAT_REGEX = re.compile(
    r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?"
)
"""Strings accepted as a float claim."""

_RFC3339_REGEX = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]{1,6})?"
    r"(Z|[+-][0-9]{2}:[0-9]{2})"
)
"""Strings accepted as a time claim."""

__all__ = [
    "CLAIM_AUDIENCE",
    "CLAIM_EXPIRATION",
    "CLAIM_IDENTIFIER",
    "CLAIM_ISSUED_AT",
    "CLAIM_ISSUER",
    "CLAIM_NOT_BEFORE",
    "CLAIM_SUBJECT",
    "Claims",
]

CLAIM_AUDIENCE = "aud"
"""Recipients the token is intended for."""

CLAIM_EXPIRATION = "exp"
"""Time after which the token must not be accepted."""

CLAIM_IDENTIFIER = "jti"
"""Unique identifier of the token."""

CLAIM_ISSUED_AT = "iat"
"""Time at which the token was issued."""

CLAIM_ISSUER = "iss"
"""Principal that issued the token."""

CLAIM_NOT_BEFORE = "nbf"
"""Time before which the token must not be accepted."""

CLAIM_SUBJECT = "sub"
"""Principal that is the subject of the token."""


def _to_numeric_date(value: datetime) -> int:
    """Convert a datetime to seconds since the epoch.

    Naive datetimes are taken to be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp())


def _json_default(value: Any) -> Any:
    """Serialize claim values that JSON does not support natively."""
    if isinstance(value, datetime):
        return _to_numeric_date(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON")


class Claims(Mapping[str, Any]):
    """The claims of a JSON Web Token.

    A mapping from claim name to any JSON-serializable value, with typed
    accessors for the registered claims and a check of the validity window
    given by ``nbf`` and ``exp``.  All setters and deleters return the
    previous value of the claim, or `None` if it was not set.  All getters
    return `None` if the claim is missing or cannot be converted to the
    requested type.

    Claims are mutable until they are embedded in a
    `~porthor.token.Token`.  After that they are read-only, and a new token
    has to be encoded to change them.

    Parameters
    ----------
    claims
        Initial claims, copied into the new object.
    """

    def __init__(self, claims: Mapping[str, Any] | None = None) -> None:
        self._claims: dict[str, Any] = dict(claims) if claims else {}
        self._read_only = False

    @classmethod
    def from_json(cls, data: bytes | str) -> Self:
        """Parse the JSON payload of a token.

        Parameters
        ----------
        data
            JSON serialization of the claims.

        Returns
        -------
        Claims
            The parsed claims.

        Raises
        ------
        InvalidPayloadError
            Raised if the data is not JSON or not a JSON object.
        """
        try:
            claims = json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            msg = f"Claims are not valid JSON: {e!s}"
            raise InvalidPayloadError(msg) from e
        if not isinstance(claims, dict):
            raise InvalidPayloadError("Claims are not a JSON object")
        return cls(claims)

    def __contains__(self, name: object) -> bool:
        return name in self._claims

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Claims):
            return self._claims == other._claims
        return NotImplemented

    def __getitem__(self, name: str) -> Any:
        value = self._claims[name]
        return deepcopy(value) if self._read_only else value

    def __iter__(self) -> Iterator[str]:
        return iter(self._claims)

    def __len__(self) -> int:
        return len(self._claims)

    def __repr__(self) -> str:
        return f"Claims({self._claims!r})"

    @property
    def read_only(self) -> bool:
        """Whether the claims belong to a token and can no longer change."""
        return self._read_only

    def contains(self, name: str) -> bool:
        """Return whether a claim is present."""
        return name in self._claims

    def copy(self) -> Claims:
        """Return a mutable copy of the claims."""
        return Claims(deepcopy(self._claims))

    def freeze(self) -> None:
        """Make the claims read-only.

        Called when the claims are embedded in a token. Values are copied so
        that nothing outside the claims shares them, and values handed out
        afterwards are copies as well.
        """
        self._claims = deepcopy(self._claims)
        self._read_only = True

    def delete(self, name: str) -> Any:
        """Delete a claim.

        Parameters
        ----------
        name
            Name of the claim.

        Returns
        -------
        Any
            The previous value or `None` if the claim was not set.
        """
        self._check_writable()
        return self._claims.pop(name, None)

    def set(self, name: str, value: Any) -> Any:
        """Set a claim.

        Parameters
        ----------
        name
            Name of the claim.
        value
            New value, which must be serializable to JSON.

        Returns
        -------
        Any
            The previous value or `None` if the claim was not set.
        """
        self._check_writable()
        previous = self._claims.get(name)
        self._claims[name] = value
        return previous

    def set_time(self, name: str, value: datetime) -> datetime | None:
        """Set a claim to a time.

        The time is stored as seconds since the epoch, the NumericDate format
        used for the registered time claims.

        Parameters
        ----------
        name
            Name of the claim.
        value
            The time.  Naive datetimes are taken to be in UTC.

        Returns
        -------
        datetime or None
            The previous value as a time, or `None` if the claim was not set
            or was not a time.
        """
        previous = self.get_time(name)
        self.set(name, _to_numeric_date(value))
        return previous

    def get(self, name: str, default: Any = None) -> Any:
        """Return the raw value of a claim.

        Parameters
        ----------
        name
            Name of the claim.
        default
            Value to return if the claim is not set.

        Returns
        -------
        Any
            Value of the claim or the default.
        """
        if name not in self._claims:
            return default
        return self[name]

    def get_bool(self, name: str) -> bool | None:
        """Return a claim as a boolean.

        Booleans are returned as-is.  The strings ``1``, ``T``, ``TRUE``, and
        ``true`` are true, and ``0``, ``F``, ``FALSE``, and ``false`` are
        false.  Anything else is treated as missing.
        """
        value = self._claims.get(name)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            if value in _TRUE_STRINGS:
                return True
            if value in _FALSE_STRINGS:
                return False
        return None

    def get_float(self, name: str) -> float | None:
        """Return a claim as a float.

        Numbers and strings holding a finite decimal number are converted.
        """
        value = self._claims.get(name)
        if isinstance(value, bool):
            return None
        if isinstance(value, int | float):
            return float(value)
        if isinstance(value, str) and _FLOAT_REGEX.fullmatch(value):
            result = float(value)
            return result if math.isfinite(result) else None
        return None

    def get_int(self, name: str) -> int | None:
        """Return a claim as an integer.

        Integers, floats without a fractional part, and strings of ASCII
        digits with an optional sign are converted.
        """
        value = self._claims.get(name)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if math.isfinite(value) and value.is_integer():
                return int(value)
            return None
        if isinstance(value, str) and _INT_REGEX.fullmatch(value):
            return int(value)
        return None

    def get_marshalled(self, name: str, type_: type[T]) -> T | None:
        """Return a structured claim converted to a given type.

        The stored value is serialized to JSON and parsed again as the
        requested type, which may be anything pydantic can validate, such as
        a model, a dataclass, or a list of either.

        Parameters
        ----------
        name
            Name of the claim.
        type_
            Type to convert the claim into.

        Returns
        -------
        Any or None
            The converted claim or `None` if the claim is not set.

        Raises
        ------
        InvalidClaimError
            Raised if the claim does not have the shape of the requested type.
        """
        if name not in self._claims:
            return None
        try:
            data = json.dumps(self._claims[name], default=_json_default)
            return TypeAdapter(type_).validate_json(data)
        except (TypeError, ValueError, ValidationError) as e:
            msg = f"Claim {name} cannot be converted: {e!s}"
            raise InvalidClaimError(msg) from e

    def get_string(self, name: str) -> str | None:
        """Return a claim as a string.

        Strings are returned as-is.  Booleans become ``true`` or ``false``,
        and numbers are formatted in decimal.
        """
        value = self._claims.get(name)
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if math.isfinite(value) and value.is_integer():
                return str(int(value))
            return repr(value)
        return None

    def get_time(self, name: str) -> datetime | None:
        """Return a claim as a time.

        Datetimes, whole seconds since the epoch, and RFC 3339 date-time
        strings are converted.  The result is always in UTC.
        """
        value = self._claims.get(name)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value.astimezone(UTC)
        if isinstance(value, bool):
            return None
        if isinstance(value, float):
            if not (math.isfinite(value) and value.is_integer()):
                return None
            value = int(value)
        if isinstance(value, int):
            try:
                return datetime.fromtimestamp(value, tz=UTC)
            except (OverflowError, OSError, ValueError):
                return None
        if isinstance(value, str) and _RFC3339_REGEX.fullmatch(value):
            try:
                return datetime.fromisoformat(value).astimezone(UTC)
            except ValueError:
                return None
        return None

    def to_json(self) -> bytes:
        """Serialize the claims as compact JSON.

        Returns
        -------
        bytes
            UTF-8 JSON object.  Datetimes are converted to seconds since the
            epoch.

        Raises
        ------
        InvalidClaimError
            Raised if a claim value cannot be serialized.
        """
        try:
            data = json.dumps(
                self._claims, default=_json_default, separators=(",", ":")
            )
        except (TypeError, ValueError) as e:
            msg = f"Claims cannot be serialized: {e!s}"
            raise InvalidClaimError(msg) from e
        return data.encode()

    # Registered claims.

    def audience(self) -> list[str] | None:
        """Return the ``aud`` claim.

        A single string is returned as a list with one element.
        """
        value = self._claims.get(CLAIM_AUDIENCE)
        if isinstance(value, str):
            return [value]
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
        return None

    def set_audience(self, *audience: str) -> list[str] | None:
        """Set the ``aud`` claim and return the previous audience."""
        previous = self.audience()
        self.set(CLAIM_AUDIENCE, list(audience))
        return previous

    def delete_audience(self) -> list[str] | None:
        """Delete the ``aud`` claim and return the previous audience."""
        previous = self.audience()
        self.delete(CLAIM_AUDIENCE)
        return previous

    def expiration(self) -> datetime | None:
        """Return the ``exp`` claim."""
        return self.get_time(CLAIM_EXPIRATION)

    def set_expiration(self, expiration: datetime) -> datetime | None:
        """Set the ``exp`` claim and return the previous expiration."""
        return self.set_time(CLAIM_EXPIRATION, expiration)

    def delete_expiration(self) -> datetime | None:
        """Delete the ``exp`` claim and return the previous expiration."""
        previous = self.expiration()
        self.delete(CLAIM_EXPIRATION)
        return previous

    def identifier(self) -> str | None:
        """Return the ``jti`` claim."""
        return self.get_string(CLAIM_IDENTIFIER)

    def set_identifier(self, identifier: str) -> str | None:
        """Set the ``jti`` claim and return the previous identifier."""
        previous = self.identifier()
        self.set(CLAIM_IDENTIFIER, identifier)
        return previous

    def delete_identifier(self) -> str | None:
        """Delete the ``jti`` claim and return the previous identifier."""
        previous = self.identifier()
        self.delete(CLAIM_IDENTIFIER)
        return previous

    def issued_at(self) -> datetime | None:
        """Return the ``iat`` claim."""
        return self.get_time(CLAIM_ISSUED_AT)

    def set_issued_at(self, issued_at: datetime) -> datetime | None:
        """Set the ``iat`` claim and return the previous issue time."""
        return self.set_time(CLAIM_ISSUED_AT, issued_at)

    def delete_issued_at(self) -> datetime | None:
        """Delete the ``iat`` claim and return the previous issue time."""
        previous = self.issued_at()
        self.delete(CLAIM_ISSUED_AT)
        return previous

    def issuer(self) -> str | None:
        """Return the ``iss`` claim."""
        return self.get_string(CLAIM_ISSUER)

    def set_issuer(self, issuer: str) -> str | None:
        """Set the ``iss`` claim and return the previous issuer."""
        previous = self.issuer()
        self.set(CLAIM_ISSUER, issuer)
        return previous

    def delete_issuer(self) -> str | None:
        """Delete the ``iss`` claim and return the previous issuer."""
        previous = self.issuer()
        self.delete(CLAIM_ISSUER)
        return previous

    def not_before(self) -> datetime | None:
        """Return the ``nbf`` claim."""
        return self.get_time(CLAIM_NOT_BEFORE)

    def set_not_before(self, not_before: datetime) -> datetime | None:
        """Set the ``nbf`` claim and return the previous value."""
        return self.set_time(CLAIM_NOT_BEFORE, not_before)

    def delete_not_before(self) -> datetime | None:
        """Delete the ``nbf`` claim and return the previous value."""
        previous = self.not_before()
        self.delete(CLAIM_NOT_BEFORE)
        return previous

    def subject(self) -> str | None:
        """Return the ``sub`` claim."""
        return self.get_string(CLAIM_SUBJECT)

    def set_subject(self, subject: str) -> str | None:
        """Set the ``sub`` claim and return the previous subject."""
        previous = self.subject()
        self.set(CLAIM_SUBJECT, subject)
        return previous

    def delete_subject(self) -> str | None:
        """Delete the ``sub`` claim and return the previous subject."""
        previous = self.subject()
        self.delete(CLAIM_SUBJECT)
        return previous

    # Validity window.

    def is_already_valid(self, leeway: timedelta) -> bool:
        """Check the ``nbf`` claim.

        A missing ``nbf`` claim does not restrict the validity, but one that
        is present and not a time does not pass.

        Parameters
        ----------
        leeway
            Tolerance for clock skew, added to the current time.

        Returns
        -------
        bool
            Whether the current time plus the leeway is not before ``nbf``.
        """
        not_before = self.not_before()
        if not_before is None:
            return CLAIM_NOT_BEFORE not in self._claims
        return current_datetime() + leeway >= not_before

    def is_still_valid(self, leeway: timedelta) -> bool:
        """Check the ``exp`` claim.

        A missing ``exp`` claim does not restrict the validity, but one that
        is present and not a time does not pass.

        Parameters
        ----------
        leeway
            Tolerance for clock skew, subtracted from the current time.

        Returns
        -------
        bool
            Whether the current time minus the leeway is before ``exp``.
        """
        expiration = self.expiration()
        if expiration is None:
            return CLAIM_EXPIRATION not in self._claims
        return current_datetime() - leeway < expiration

    def is_valid(self, leeway: timedelta) -> bool:
        """Check both ``nbf`` and ``exp``."""
        return self.is_already_valid(leeway) and self.is_still_valid(leeway)

    def _check_writable(self) -> None:
        if self._read_only:
            raise RuntimeError("Claims of a token are read-only")
