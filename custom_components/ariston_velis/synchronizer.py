"""Top-level orchestration of the water heater state.

The synchronizer owns the token manager, request executor, state cache,
command sequencer and the scheduler running its timers. Hosts read through
``async_get`` and write through ``async_set``; a background loop refreshes
the cache at a fixed rate to pick up changes made by other clients.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from homeassistant.const import CONF_PASSWORD, CONF_USERNAME

from . import api
from .auth import TokenManager
from .cache import StateCache
from .const import (
    ATTR_MODE,
    ATTR_TARGET_TEMPERATURE,
    CONF_CACHE_TTL,
    CONF_DEBOUNCE_DELAY,
    CONF_MAX_TEMPERATURE,
    CONF_MIN_TEMPERATURE,
    CONF_PLANT_ID,
    CONF_REFRESH_INTERVAL,
    CONF_REQUEST_TIMEOUT,
    CONF_RETRY_ATTEMPTS,
    CONF_RETRY_BACKOFF,
    CONF_TOKEN_LIFETIME,
    DEFAULT_CACHE_TTL,
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_MAX_TEMPERATURE,
    DEFAULT_MIN_TEMPERATURE,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_TOKEN_LIFETIME,
    DEVICE_MIN_TEMPERATURE,
)
from .executor import RequestExecutor, RetryPolicy
from .models import (
    DeviceState,
    HeaterMode,
    OperationName,
    PrimitiveOperation,
    Reading,
    SyncState,
    TargetMode,
)
from .scheduler import Scheduler
from .sequencer import CommandSequencer

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx

    from .models import CommandResult
    from .scheduler import ScheduledHandle

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SynchronizerConfig:
    """Settings of one synchronized water heater."""

    username: str
    password: str
    plant_id: str
    min_temperature: float = DEFAULT_MIN_TEMPERATURE
    max_temperature: float = DEFAULT_MAX_TEMPERATURE
    cache_ttl: float = DEFAULT_CACHE_TTL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    token_lifetime: float = DEFAULT_TOKEN_LIFETIME
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if self.min_temperature < DEVICE_MIN_TEMPERATURE:
            error_msg = (
                f"min_temperature {self.min_temperature} is below the device "
                f"floor of {DEVICE_MIN_TEMPERATURE}"
            )
            raise api.AristonValidationError(error_msg)
        if self.max_temperature < self.min_temperature:
            error_msg = (
                f"max_temperature {self.max_temperature} is below "
                f"min_temperature {self.min_temperature}"
            )
            raise api.AristonValidationError(error_msg)

    @classmethod
    def from_entry_data(
        cls, data: Mapping[str, Any], options: Mapping[str, Any] | None = None
    ) -> SynchronizerConfig:
        """Build the config from config entry data and options."""
        merged = {**data, **(options or {})}
        return cls(
            username=merged[CONF_USERNAME],
            password=merged[CONF_PASSWORD],
            plant_id=str(merged[CONF_PLANT_ID]),
            min_temperature=float(
                merged.get(CONF_MIN_TEMPERATURE, DEFAULT_MIN_TEMPERATURE)
            ),
            max_temperature=float(
                merged.get(CONF_MAX_TEMPERATURE, DEFAULT_MAX_TEMPERATURE)
            ),
            cache_ttl=float(merged.get(CONF_CACHE_TTL, DEFAULT_CACHE_TTL)),
            refresh_interval=float(
                merged.get(CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL)
            ),
            debounce_delay=float(
                merged.get(CONF_DEBOUNCE_DELAY, DEFAULT_DEBOUNCE_DELAY)
            ),
            retry_attempts=int(merged.get(CONF_RETRY_ATTEMPTS, DEFAULT_RETRY_ATTEMPTS)),
            retry_backoff=float(merged.get(CONF_RETRY_BACKOFF, DEFAULT_RETRY_BACKOFF)),
            token_lifetime=float(
                merged.get(CONF_TOKEN_LIFETIME, DEFAULT_TOKEN_LIFETIME)
            ),
            request_timeout=float(
                merged.get(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)
            ),
        )

    def clamp(self, value: float) -> float:
        """Clamp a temperature to the configured bounds."""
        return min(max(value, self.min_temperature), self.max_temperature)


class DeviceStateSynchronizer:
    """Keeps a local view of one water heater in sync with the cloud."""

    def __init__(
        self,
        session: httpx.AsyncClient,
        config: SynchronizerConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler | None = None,
        executor: RequestExecutor | None = None,
    ) -> None:
        """Initialize the synchronizer and the components it owns.

        Args:
            session: HTTP client session.
            config: Synchronizer settings.
            clock: Monotonic time source, ignored when ``scheduler`` is given.
            scheduler: Scheduler for the background loop and debounce timer.
            executor: Request executor, built from ``config`` when omitted.

        """
        self._session = session
        self.config = config
        self.scheduler = scheduler or Scheduler(clock)
        self.token_manager = TokenManager(
            session,
            config.username,
            config.password,
            lifetime=config.token_lifetime,
            timeout=config.request_timeout,
            clock=self.scheduler.clock,
        )
        self.executor = executor or RequestExecutor(
            self.token_manager,
            RetryPolicy(
                max_attempts=config.retry_attempts, backoff=config.retry_backoff
            ),
        )
        self.cache = StateCache(
            self._async_fetch_state,
            self.scheduler,
            ttl=config.cache_ttl,
            initial=DeviceState(target_temperature=config.min_temperature),
        )
        self.sequencer = CommandSequencer(
            session,
            self.executor,
            self.cache,
            config.plant_id,
            timeout=config.request_timeout,
        )
        self._sync_state = SyncState.IDLE
        self._background: ScheduledHandle | None = None

    @property
    def sync_state(self) -> SyncState:
        """Return the lifecycle state of the synchronizer."""
        return self._sync_state

    @property
    def state(self) -> DeviceState:
        """Return the last known device state."""
        return self.cache.state

    @property
    def running(self) -> bool:
        """Return True while the background loop is scheduled."""
        return self._background is not None and self._background.active

    def async_add_listener(
        self, callback: Callable[[DeviceState], None]
    ) -> Callable[[], None]:
        """Register a callback notified with every freshly fetched state."""
        return self.cache.async_add_listener(callback)

    async def _async_fetch_state(self, previous: DeviceState) -> DeviceState:
        session, plant_id = self._session, self.config.plant_id
        timeout = self.config.request_timeout

        async def _fetch(token: str) -> DeviceState:
            return await api.async_get_device_state(
                session, token, plant_id, previous, timeout
            )

        return await self.executor.async_execute(
            _fetch, description=f"fetch plant {plant_id}"
        )

    async def async_start(self) -> None:
        """Fetch the initial state and start the background loop.

        Raises:
            AristonApiClientError: If the initial fetch fails.

        """
        await self.async_refresh()
        if self._background is None:
            self._background = self.scheduler.schedule_periodic(
                self.config.refresh_interval,
                self._async_background_refresh,
                name="background_refresh",
            )
            _LOGGER.debug(
                "Background refresh every %ss for plant %s",
                self.config.refresh_interval,
                self.config.plant_id,
            )

    async def async_stop(self) -> None:
        """Cancel every timer and any fetch in flight."""
        if self._background is not None:
            self._background.cancel()
            self._background = None
        self.scheduler.cancel_all()
        await self.cache.async_shutdown()
        _LOGGER.debug("Stopped synchronizer for plant %s", self.config.plant_id)

    async def _async_background_refresh(self) -> None:
        try:
            await self.async_refresh()
        except api.AristonApiClientError as err:
            _LOGGER.warning(
                "Background refresh of plant %s failed: %s", self.config.plant_id, err
            )
        except Exception:
            _LOGGER.exception(
                "Unexpected error during background refresh of plant %s",
                self.config.plant_id,
            )

    async def async_refresh(
        self, ttl: float = 0, field_name: str | None = None
    ) -> DeviceState:
        """Refresh the cache, tracking the outcome in ``sync_state``."""
        applying = self._sync_state is SyncState.APPLYING
        if not applying:
            self._sync_state = SyncState.REFRESHING
        try:
            state = await self.cache.async_refresh_if_stale(
                ttl=ttl, field_name=field_name
            )
        except Exception:
            if self._sync_state is not SyncState.APPLYING:
                self._sync_state = SyncState.FAILED
            raise
        if self._sync_state is not SyncState.APPLYING:
            self._sync_state = SyncState.IDLE
        return state

    async def async_get(self, attribute: str) -> Reading:
        """Return the best known value of ``attribute``.

        A stale value triggers (or joins) one refresh. If that refresh fails
        the last known value is returned together with the error.
        """
        field_name = None if attribute == ATTR_MODE else attribute
        if field_name is not None:
            self.cache.read(field_name)

        error: Exception | None = None
        if self.cache.is_stale(field_name):
            try:
                await self.async_refresh(self.config.cache_ttl, field_name)
            except api.AristonApiClientError as err:
                _LOGGER.warning(
                    "Serving last known %s after refresh failure: %s", attribute, err
                )
                error = err

        if field_name is None:
            return Reading(target_mode_of(self.cache.state), error)
        return Reading(self.cache.read(field_name), error)

    async def async_set(self, attribute: str, value: Any) -> Any:
        """Apply a host write to ``target_temperature`` or ``mode``."""
        if attribute == ATTR_TARGET_TEMPERATURE:
            return await self.async_set_temperature(value)
        if attribute == ATTR_MODE:
            try:
                target = TargetMode(value)
            except ValueError as err:
                error_msg = f"Invalid mode: {value!r}"
                raise api.AristonValidationError(error_msg) from err
            return await self.async_set_mode(target)
        error_msg = f"Attribute {attribute} is not writable"
        raise api.AristonValidationError(error_msg)

    async def async_set_temperature(self, value: float) -> float:
        """Set the target temperature, clamped to the configured bounds.

        Returns:
            The temperature sent to the device.

        Raises:
            AristonValidationError: If ``value`` is not a number.
            AristonApiClientError: If the remote call fails.

        """
        try:
            requested = float(value)
        except (TypeError, ValueError) as err:
            error_msg = f"Invalid temperature: {value!r}"
            raise api.AristonValidationError(error_msg) from err
        if math.isnan(requested):
            error_msg = "Invalid temperature: NaN"
            raise api.AristonValidationError(error_msg)

        applied = self.config.clamp(requested)
        if applied != requested:
            _LOGGER.warning(
                "Requested temperature %s clamped to %s (limits %s-%s)",
                requested,
                applied,
                self.config.min_temperature,
                self.config.max_temperature,
            )

        current = self.cache.state
        try:
            await self.sequencer.async_run_operation(
                PrimitiveOperation(OperationName.SET_TEMPERATURE, applied),
                current,
            )
        except api.AristonApiClientError:
            self._sync_state = SyncState.FAILED
            self.cache.invalidate(ATTR_TARGET_TEMPERATURE)
            raise

        self._sync_state = SyncState.IDLE
        _LOGGER.info(
            "Temperature set: %s°C -> %s°C", current.target_temperature, applied
        )
        self.cache.schedule_debounced_refresh(self.config.debounce_delay)
        return applied

    async def async_set_mode(self, target: TargetMode) -> CommandResult:
        """Move the heater to ``target`` through the command sequencer.

        The power steps are skipped when the heater is already on, so a
        stale power reading is refreshed first. If that refresh fails the
        command is built from the last known state.

        Raises:
            AristonPartialCommandFailure: If a step of the command failed.

        """
        if self.cache.is_stale("power"):
            try:
                await self.async_refresh(self.config.cache_ttl, "power")
            except api.AristonApiClientError as err:
                _LOGGER.warning(
                    "Applying %s from last known state after refresh failure: %s",
                    target,
                    err,
                )
        self._sync_state = SyncState.APPLYING
        try:
            result = await self.sequencer.async_apply(target)
        except api.AristonApiClientError:
            self._sync_state = SyncState.FAILED
            raise
        self._sync_state = SyncState.IDLE
        _LOGGER.info("Plant %s switched to %s", self.config.plant_id, target)
        return result


def target_mode_of(state: DeviceState) -> TargetMode:
    """Return the logical mode a device state corresponds to."""
    if not state.power:
        return TargetMode.OFF
    if state.eco or state.mode is HeaterMode.TIMER:
        return TargetMode.AUTO
    return TargetMode.HEAT
