"""Test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import timedelta

import pytest_asyncio

from porthor.cache import TokenCache


@pytest_asyncio.fixture
async def cache() -> AsyncIterator[TokenCache]:
    """Return a started token cache.

    The cleanup interval is long enough that no periodic cleanup runs during
    a test unless the test waits for it.
    """
    async with TokenCache(
        ttl=timedelta(minutes=1),
        leeway=timedelta(seconds=1),
        interval=timedelta(minutes=1),
        max_entries=100,
        timeout=timedelta(seconds=1),
    ) as cache:
        yield cache
