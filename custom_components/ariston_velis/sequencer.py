"""Translation of logical mode changes into ordered remote operations."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from . import api
from .const import DEFAULT_REQUEST_TIMEOUT
from .models import (
    CommandResult,
    CompositeCommand,
    HeaterMode,
    OperationName,
    PrimitiveOperation,
    TargetMode,
)

if TYPE_CHECKING:
    import httpx

    from .cache import StateCache
    from .executor import RequestExecutor
    from .models import DeviceState

_LOGGER = logging.getLogger(__name__)


def _op(name: OperationName, value: object) -> PrimitiveOperation:
    return PrimitiveOperation(name=name, value=value)


class CommandSequencer:
    """Builds and runs composite commands for the water heater.

    Steps run strictly in order and the first failure aborts the rest.
    Nothing is rolled back: the refresh that follows every run reports the
    state the device actually reached. Commands run one at a time; a command
    waiting for the lock is built from the state the previous one left.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        executor: RequestExecutor,
        cache: StateCache,
        plant_id: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._executor = executor
        self._cache = cache
        self._plant_id = plant_id
        self._timeout = timeout
        self._lock = asyncio.Lock()

    @staticmethod
    def build(target: TargetMode, current: DeviceState) -> CompositeCommand:
        """Return the ordered operations moving ``current`` to ``target``."""
        target = TargetMode(target)
        if target is TargetMode.OFF:
            operations = [
                _op(OperationName.SWITCH_POWER, False),
                _op(OperationName.SWITCH_ECO, False),
            ]
        elif target is TargetMode.HEAT:
            operations = [
                _op(OperationName.SWITCH_ECO, False),
                _op(OperationName.SET_MODE, HeaterMode.MANUAL),
            ]
            if not current.power:
                operations.append(_op(OperationName.SWITCH_POWER, True))
        else:
            operations = []
            if not current.power:
                operations.append(_op(OperationName.SWITCH_POWER, True))
            operations += [
                _op(OperationName.SWITCH_ECO, True),
                _op(OperationName.SET_MODE, HeaterMode.TIMER),
            ]
        return CompositeCommand(target=target, operations=tuple(operations))

    async def async_apply(
        self, target: TargetMode, current: DeviceState | None = None
    ) -> CommandResult:
        """Run the command for ``target`` and refresh the cache afterwards.

        Args:
            target: Logical mode to reach.
            current: State to build the command from; the cached state at
                the time the command acquires the lock when omitted.

        Returns:
            The command and the operations it applied.

        Raises:
            AristonPartialCommandFailure: If a step failed; the underlying
                error is chained as its cause.

        """
        async with self._lock:
            return await self._async_apply_locked(
                target, self._cache.state if current is None else current
            )

    async def _async_apply_locked(
        self, target: TargetMode, current: DeviceState
    ) -> CommandResult:
        command = self.build(target, current)
        _LOGGER.debug(
            "Applying %s as %s",
            command.target,
            [str(operation) for operation in command.operations],
        )
        completed: list[PrimitiveOperation] = []
        try:
            for index, operation in enumerate(command.operations):
                try:
                    await self.async_run_operation(operation, current)
                except api.AristonApiClientError as err:
                    _LOGGER.warning(
                        "Step %d (%s) of %s failed: %s",
                        index,
                        operation,
                        command.target,
                        err,
                    )
                    raise api.AristonPartialCommandFailure(
                        index, operation, tuple(completed)
                    ) from err
                completed.append(operation)
        except api.AristonPartialCommandFailure:
            await self._async_refresh_after_command()
            raise

        await self._async_refresh_after_command()
        return CommandResult(command=command, completed=tuple(completed))

    async def async_run_operation(
        self, operation: PrimitiveOperation, current: DeviceState
    ) -> None:
        """Send one primitive operation through the executor."""
        session, plant_id, timeout = self._session, self._plant_id, self._timeout
        name, value = operation.name, operation.value

        async def _send(token: str) -> None:
            if name is OperationName.SWITCH_POWER:
                await api.async_switch_power(session, token, plant_id, value, timeout)
            elif name is OperationName.SWITCH_ECO:
                await api.async_switch_eco(session, token, plant_id, value, timeout)
            elif name is OperationName.SET_MODE:
                await api.async_set_mode(session, token, plant_id, value, timeout)
            else:
                await api.async_set_temperature(
                    session,
                    token,
                    plant_id,
                    current.target_temperature,
                    value,
                    current.eco,
                    timeout,
                )

        await self._executor.async_execute(_send, description=str(operation))

    async def _async_refresh_after_command(self) -> None:
        not_before = self._cache.clock()
        try:
            await self._cache.async_refresh_if_stale(ttl=0, not_before=not_before)
        except api.AristonApiClientError as err:
            _LOGGER.warning("Refresh after command failed: %s", err)
            self._cache.invalidate()
