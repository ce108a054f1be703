"""Constants for Porthor."""

from datetime import timedelta

__all__ = [
    "AUTHORIZATION_SCHEME",
    "CACHE_ACTION_TIMEOUT",
    "CACHE_INTERVAL",
    "CACHE_MAX_ENTRIES",
    "CACHE_TTL",
    "DEFAULT_LEEWAY",
    "HMAC_KEY_SIZE",
    "LOGGER_NAME",
    "RSA_KEY_SIZE",
    "TOKEN_TYPE",
]

AUTHORIZATION_SCHEME = "Bearer"
"""Required first field of an ``Authorization`` header carrying a JWT.

The comparison is case-sensitive.
"""

CACHE_ACTION_TIMEOUT = timedelta(seconds=5)
"""How long a caller waits for the cache to process one of its actions."""

CACHE_INTERVAL = timedelta(minutes=5)
"""Default period of the background cleanup of the token cache."""

CACHE_MAX_ENTRIES = 1000
"""Default soft limit of the number of tokens in the cache.

When the cache grows beyond this size, the idle lifetime used for the cleanup
triggered by the insertion is reduced in proportion to the overshoot.
"""

CACHE_TTL = timedelta(minutes=10)
"""Default time a cached token may stay unused before it is evicted."""

DEFAULT_LEEWAY = timedelta(minutes=1)
"""Default tolerance for clock skew when checking ``nbf`` and ``exp``."""

HMAC_KEY_SIZE = 32
"""Size in bytes of HMAC secrets generated by the command-line interface."""

LOGGER_NAME = "porthor"
"""Name of the logger used for all Porthor log messages."""

RSA_KEY_SIZE = 2048
"""Size in bits of RSA keys generated by the command-line interface."""

TOKEN_TYPE = "JWT"
"""Value of the ``typ`` header of every issued token."""
