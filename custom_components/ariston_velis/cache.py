"""Cached device state with single-flight refresh and debounced confirmation.

The cache holds the last known DeviceState together with the monotonic time
of the fetch that produced it. Readers always get a value, possibly stale.
Refreshes are single-flight: callers arriving while a fetch is running await
that fetch instead of issuing a second remote call. A failed fetch keeps the
previous state and raises the same error in every caller that awaited it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from . import api
from .const import DEFAULT_CACHE_TTL
from .models import CacheEntry, DeviceState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .scheduler import ScheduledHandle, Scheduler

_LOGGER = logging.getLogger(__name__)


class StateCache:
    """Last known device state plus freshness metadata."""

    def __init__(
        self,
        fetch: Callable[[DeviceState], Awaitable[DeviceState]],
        scheduler: Scheduler,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        initial: DeviceState | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            fetch: Coroutine function fetching a fresh state; it receives
                the current state for fields the remote omits.
            scheduler: Scheduler owning the debounce timer.
            ttl: Default time-to-live in seconds.
            initial: State served until the first successful fetch.

        """
        self._fetch = fetch
        self._scheduler = scheduler
        self.clock = scheduler.clock
        self.ttl = ttl
        self._entry = CacheEntry(
            state=initial or DeviceState(), fetched_at=None, ttl=ttl
        )
        self._refresh_task: asyncio.Task[DeviceState] | None = None
        self._refresh_started_at: float | None = None
        self._debounce_handle: ScheduledHandle | None = None
        self._listeners: list[Callable[[DeviceState], None]] = []
        self.fetch_count = 0

    @property
    def entry(self) -> CacheEntry:
        """Return the current cache entry."""
        return self._entry

    @property
    def state(self) -> DeviceState:
        """Return the last known device state."""
        return self._entry.state

    @property
    def refreshing(self) -> bool:
        """Return True while a fetch is in flight."""
        return self._refresh_task is not None

    @property
    def debounce_pending(self) -> bool:
        """Return True while a debounced refresh is waiting to run."""
        return self._debounce_handle is not None and self._debounce_handle.active

    def read(self, field_name: str) -> Any:
        """Return the cached value of a state field, fresh or not."""
        if field_name not in DeviceState.field_names():
            raise KeyError(field_name)
        return getattr(self._entry.state, field_name)

    def is_stale(self, field_name: str | None = None, ttl: float | None = None) -> bool:
        """Return True if the entry, or one field of it, needs a refresh."""
        return self._entry.is_stale(self.clock(), field_name, ttl)

    def invalidate(self, field_name: str | None = None) -> None:
        """Mark one field, or all fields, stale without fetching."""
        if field_name is None:
            fields = DeviceState.field_names()
        elif field_name in DeviceState.field_names():
            fields = frozenset({field_name})
        else:
            raise KeyError(field_name)
        self._entry = replace(self._entry, invalidated=self._entry.invalidated | fields)
        _LOGGER.debug("Invalidated cached fields: %s", sorted(fields))

    def async_add_listener(
        self, callback: Callable[[DeviceState], None]
    ) -> Callable[[], None]:
        """Register a callback for new states.

        Returns:
            A function to unregister the callback.

        """
        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    async def async_refresh_if_stale(
        self,
        ttl: float | None = None,
        *,
        field_name: str | None = None,
        not_before: float | None = None,
    ) -> DeviceState:
        """Return a state no older than ``ttl``, fetching it if needed.

        Args:
            ttl: Maximum accepted age in seconds; 0 forces a fetch and None
                uses the cache default.
            field_name: Only consider the freshness of this field.
            not_before: Do not join a fetch that started before this
                monotonic time; wait it out and use a newer one.

        Returns:
            The current device state.

        Raises:
            AristonApiClientError: If the fetch this call awaited failed.

        """
        while True:
            task = self._refresh_task
            if task is None:
                if ttl != 0 and not self.is_stale(field_name, ttl):
                    _LOGGER.debug("Cache hit for %s", field_name or "state")
                    return self._entry.state
                task = self._start_refresh()
                return await asyncio.shield(task)

            started_at = self._refresh_started_at
            if not_before is None or (
                started_at is not None and started_at >= not_before
            ):
                _LOGGER.debug("Joining refresh already in flight")
                return await asyncio.shield(task)

            _LOGGER.debug("Waiting out refresh started before the command")
            with contextlib.suppress(api.AristonApiClientError):
                await asyncio.shield(task)
            ttl = 0

    def _start_refresh(self) -> asyncio.Task[DeviceState]:
        self._refresh_started_at = self.clock()
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._async_fetch(), name="ariston_velis_refresh"
        )
        return self._refresh_task

    async def _async_fetch(self) -> DeviceState:
        self.fetch_count += 1
        try:
            state = await self._fetch(self._entry.state)
        except api.AristonApiClientError as err:
            _LOGGER.debug("Fetch failed, keeping last known state: %s", err)
            raise
        finally:
            self._refresh_task = None
            self._refresh_started_at = None

        self._entry = CacheEntry(state=state, fetched_at=self.clock(), ttl=self.ttl)
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception:
                _LOGGER.exception("Error in state listener %s", callback)
        return state

    def schedule_debounced_refresh(self, quiet: float) -> None:
        """Schedule one confirmatory fetch after ``quiet`` seconds of calm.

        Calling this again before the timer fires restarts it, so a burst
        of writes yields a single fetch.
        """
        if self._debounce_handle is not None:
            _LOGGER.debug("Restarting debounce timer")
            self._debounce_handle.cancel()
        self._debounce_handle = self._scheduler.schedule_once(
            quiet, self._async_debounced_refresh, name="debounced_refresh"
        )

    async def _async_debounced_refresh(self) -> None:
        # A write arriving during the fetch must start a new timer.
        self._debounce_handle = None
        try:
            await self.async_refresh_if_stale(ttl=0, not_before=self.clock())
        except api.AristonApiClientError as err:
            _LOGGER.warning("Confirmatory refresh after write failed: %s", err)

    async def async_shutdown(self) -> None:
        """Cancel the debounce timer and any fetch in flight."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        task = self._refresh_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, api.AristonApiClientError):
                await task
        self._listeners.clear()
