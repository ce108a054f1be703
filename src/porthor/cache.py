"""Cache of decoded and verified tokens."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from types import TracebackType
from typing import Any, Self

import structlog
from starlette.requests import HTTPConnection
from structlog.stdlib import BoundLogger

from .algorithms import Key
from .config import CacheConfig
from .constants import (
    CACHE_ACTION_TIMEOUT,
    CACHE_INTERVAL,
    CACHE_MAX_ENTRIES,
    CACHE_TTL,
    DEFAULT_LEEWAY,
    LOGGER_NAME,
)
from .exceptions import CacheActionTimeoutError, NoKeyError
from .request import parse_authorization
from .token import Token, decode, verify
from .util import current_datetime

__all__ = ["TokenCache"]


@dataclass
class _CacheEntry:
    """A cached token and the last time it was handed out."""

    token: Token
    accessed: datetime


@dataclass
class _Action:
    """A unit of work for the cache worker.

    If ``future`` is `None`, nobody waits for the result and failures are
    only logged.
    """

    func: Callable[[], Any]
    future: asyncio.Future[Any] | None = None


class TokenCache:
    """Cache of tokens so that they are not decoded or verified repeatedly.

    All access to the cached entries happens inside a single worker task that
    processes queued actions in arrival order.  Callers enqueue an action and
    wait for its result for at most ``timeout``.  A second task periodically
    queues a cleanup that evicts every entry whose token is no longer valid or
    that was not requested for longer than ``ttl``.

    Parameters
    ----------
    ttl
        How long a token may stay in the cache without being requested.
    leeway
        Tolerance for clock skew when checking the validity of tokens.
    interval
        How often to run the periodic cleanup.
    max_entries
        Soft limit on the number of cached tokens.  Whenever an insertion
        pushes the size above this limit, a cleanup runs with ``ttl`` reduced
        by the ratio of the limit to the current size.
    timeout
        How long callers wait for their action to be processed.
    shutdown
        Shared event that stops the cache when set, such as the shutdown
        event of the application.  The cache only waits for it and never sets
        it, so `stop` leaves it untouched.
    logger
        Logger to use.  Defaults to the ``porthor`` logger.

    Raises
    ------
    ValueError
        Raised if ``max_entries`` is smaller than one or if ``interval`` or
        ``timeout`` is not positive.

    Notes
    -----
    The cache must be started with `start`, or used as an async context
    manager, from within the event loop that will use it.  Once stopped, it
    cannot be started again.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = CACHE_TTL,
        leeway: timedelta = DEFAULT_LEEWAY,
        interval: timedelta = CACHE_INTERVAL,
        max_entries: int = CACHE_MAX_ENTRIES,
        timeout: timedelta = CACHE_ACTION_TIMEOUT,
        shutdown: asyncio.Event | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        if timeout <= timedelta(0):
            raise ValueError("timeout must be positive")
        self._ttl = ttl
        self._leeway = leeway
        self._interval = interval
        self._max_entries = max_entries
        self._timeout = timeout
        self._shutdown = shutdown
        self._stopping = asyncio.Event()
        self._logger = logger or structlog.get_logger(LOGGER_NAME)

        self._entries: dict[str, _CacheEntry] = {}
        self._queue: asyncio.Queue[_Action | None] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._watcher: asyncio.Task[None] | None = None
        self._stopped = False

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        *,
        shutdown: asyncio.Event | None = None,
        logger: BoundLogger | None = None,
    ) -> Self:
        """Create a cache from its configuration.

        Parameters
        ----------
        config
            Cache configuration.
        shutdown
            Event that stops the cache when set.
        logger
            Logger to use.

        Returns
        -------
        TokenCache
            The new, not yet started, cache.
        """
        return cls(
            ttl=config.ttl,
            leeway=config.leeway,
            interval=config.interval,
            max_entries=config.max_entries,
            timeout=config.timeout,
            shutdown=shutdown,
            logger=logger,
        )

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    @property
    def leeway(self) -> timedelta:
        """Tolerance for clock skew used for validity checks."""
        return self._leeway

    async def start(self) -> None:
        """Start the worker and the periodic cleanup.

        Raises
        ------
        RuntimeError
            Raised if the cache was already started.
        """
        if self._worker is not None:
            raise RuntimeError("Token cache already started")
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        self._ticker = asyncio.create_task(self._tick())
        self._watcher = asyncio.create_task(self._watch())
        self._logger.debug(
            "Started token cache",
            ttl=self._ttl.total_seconds(),
            interval=self._interval.total_seconds(),
            max_entries=self._max_entries,
        )

    async def stop(self) -> None:
        """Stop the cache and drop all cached tokens.

        Actions still waiting in the queue fail with
        `~porthor.exceptions.CacheActionTimeoutError`.  Calling this method
        more than once is harmless.
        """
        self._stopping.set()
        if self._worker is None:
            return
        await self._worker
        for task in (self._ticker, self._watcher):
            if task:
                with suppress(asyncio.CancelledError):
                    await task

    async def get(self, token: str) -> Token | None:
        """Retrieve a cached token.

        A cached token that is no longer valid is evicted.  Otherwise the
        access time of the entry is refreshed.

        Parameters
        ----------
        token
            Compact serialization of the token.

        Returns
        -------
        Token or None
            The cached token, or `None` if it is not cached or no longer
            valid.

        Raises
        ------
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        """
        return await self._call(partial(self._get, token))

    async def put(self, token: Token) -> int:
        """Add a token to the cache.

        Tokens that are not valid at the moment are not cached.

        Parameters
        ----------
        token
            Token to cache.

        Returns
        -------
        int
            Number of cached tokens after the insertion.

        Raises
        ------
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        """
        return await self._call(partial(self._put, token))

    async def cleanup(self) -> None:
        """Evict invalid tokens and tokens unused for longer than the TTL.

        Raises
        ------
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        """
        await self._call(partial(self._cleanup, self._ttl))

    async def size(self) -> int:
        """Return the number of cached tokens.

        Raises
        ------
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        """
        return await self._call(lambda: len(self._entries))

    async def request_decode(self, request: HTTPConnection) -> Token:
        """Return the decoded bearer token of a request.

        The token is taken from the cache if possible.  Otherwise it is
        decoded and added to the cache.

        Parameters
        ----------
        request
            The incoming request.

        Returns
        -------
        Token
            The token of the request.

        Raises
        ------
        AuthorizationHeaderError
            Raised if the request carries no usable bearer token.
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        TokenError
            Raised if the token cannot be decoded.
        """
        encoded = parse_authorization(request)
        token = await self.get(encoded)
        if token:
            return token
        token = decode(encoded)
        await self.put(token)
        return token

    async def request_verify(self, request: HTTPConnection, key: Key) -> Token:
        """Return the verified bearer token of a request.

        A cached token is only returned if it was verified or created with
        the same key.  Otherwise the token is verified and added to the
        cache.

        Parameters
        ----------
        request
            The incoming request.
        key
            Key to verify the token with.

        Returns
        -------
        Token
            The verified token of the request.

        Raises
        ------
        AuthorizationHeaderError
            Raised if the request carries no usable bearer token.
        CacheActionTimeoutError
            Raised if the cache did not answer in time or is stopped.
        PorthorError
            Raised if the token cannot be decoded or its signature is invalid.
        """
        encoded = parse_authorization(request)
        token = await self.get(encoded)
        if token and _has_key(token, key):
            return token
        token = verify(encoded, key)
        await self.put(token)
        return token

    async def _call[T](self, func: Callable[[], T]) -> T:
        """Queue an action and wait for its result."""
        queue = self._get_queue()
        future = asyncio.get_running_loop().create_future()
        queue.put_nowait(_Action(func, future))
        try:
            return await asyncio.wait_for(
                future, self._timeout.total_seconds()
            )
        except TimeoutError as e:
            msg = f"Token cache did not answer within {self._timeout}"
            raise CacheActionTimeoutError(msg) from e

    def _enqueue(self, func: Callable[[], Any]) -> None:
        """Queue an action without waiting for it."""
        if self._queue is not None and not self._stopped:
            self._queue.put_nowait(_Action(func))

    def _get_queue(self) -> asyncio.Queue[_Action | None]:
        if self._queue is None:
            raise RuntimeError("Token cache not started")
        if self._stopped or self._is_stopping():
            raise CacheActionTimeoutError("Token cache is stopped")
        return self._queue

    async def _run(self) -> None:
        """Process queued actions until the shutdown sentinel arrives."""
        assert self._queue
        try:
            while True:
                action = await self._queue.get()
                if action is None:
                    break
                self._process(action)
        finally:
            self._finalize()

    def _process(self, action: _Action) -> None:
        future = action.future
        try:
            result = action.func()
        except Exception as e:
            if future is None:
                self._logger.exception("Token cache action failed")
            elif not future.done():
                future.set_exception(e)
            return
        if future is not None and not future.done():
            future.set_result(result)

    def _finalize(self) -> None:
        """Drop all entries and fail every action still in the queue."""
        self._stopped = True
        self._entries = {}
        for task in (self._ticker, self._watcher):
            if task:
                task.cancel()
        assert self._queue
        while not self._queue.empty():
            action = self._queue.get_nowait()
            if action and action.future and not action.future.done():
                error = CacheActionTimeoutError("Token cache is stopped")
                action.future.set_exception(error)
        self._logger.debug("Stopped token cache")

    async def _tick(self) -> None:
        """Queue a cleanup once per interval."""
        interval = self._interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            self._enqueue(partial(self._cleanup, self._ttl))

    def _is_stopping(self) -> bool:
        if self._stopping.is_set():
            return True
        return self._shutdown is not None and self._shutdown.is_set()

    async def _watch(self) -> None:
        """Wake up the worker once either stop event is set."""
        events = [self._stopping]
        if self._shutdown is not None:
            events.append(self._shutdown)
        waiters = [asyncio.create_task(e.wait()) for e in events]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        assert self._queue
        self._queue.put_nowait(None)

    def _get(self, encoded: str) -> Token | None:
        entry = self._entries.get(encoded)
        if not entry:
            return None
        if not entry.token.is_valid(self._leeway):
            del self._entries[encoded]
            return None
        entry.accessed = current_datetime()
        return entry.token

    def _put(self, token: Token) -> int:
        if not token.is_valid(self._leeway):
            return len(self._entries)
        entry = _CacheEntry(token=token, accessed=current_datetime())
        self._entries[str(token)] = entry
        size = len(self._entries)
        if size > self._max_entries:
            ttl = self._ttl * self._max_entries / size
            self._enqueue(partial(self._cleanup, ttl))
        return size

    def _cleanup(self, ttl: timedelta) -> None:
        now = current_datetime()
        before = len(self._entries)
        self._entries = {
            k: e
            for k, e in self._entries.items()
            if e.token.is_valid(self._leeway) and e.accessed + ttl > now
        }
        self._logger.debug(
            "Cleaned up token cache",
            ttl=ttl.total_seconds(),
            evicted=before - len(self._entries),
            size=len(self._entries),
        )


def _has_key(token: Token, key: Key) -> bool:
    """Whether a token was created or verified with the given key."""
    try:
        return token.key == key
    except NoKeyError:
        return False
