"""Data models for Ariston Velis integration."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import StrEnum
from typing import Any, NamedTuple


class HeaterMode(StrEnum):
    """Operating program reported by the heater."""

    MANUAL = "manual"
    TIMER = "timer"


class TargetMode(StrEnum):
    """Logical mode requested by the host."""

    OFF = "off"
    HEAT = "heat"
    AUTO = "auto"


class SyncState(StrEnum):
    """Lifecycle state of the synchronizer."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    APPLYING = "applying"
    FAILED = "failed"


class OperationName(StrEnum):
    """Primitive remote operations a composite command is built from."""

    SWITCH_POWER = "switch_power"
    SWITCH_ECO = "switch_eco"
    SET_MODE = "set_mode"
    SET_TEMPERATURE = "set_temperature"


@dataclass(frozen=True)
class AuthToken:
    """Represents an auth token with its expiration on the monotonic clock."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        """Return True while the token has not reached its expiry."""
        return now < self.expires_at


@dataclass(frozen=True, slots=True)
class DeviceState:
    """Represents the current operating state reported by the Ariston API."""

    power: bool = False
    mode: HeaterMode = HeaterMode.MANUAL
    eco: bool = False
    current_temperature: float = 0.0
    target_temperature: float = 0.0
    heating_active: bool = False

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """Return the names of all state fields."""
        return frozenset(f.name for f in fields(cls))


@dataclass(frozen=True)
class CacheEntry:
    """A cached device state with the freshness metadata of its fetch.

    Attributes:
        state: Last known device state.
        fetched_at: Monotonic time of the fetch, None if never fetched.
        ttl: Default time-to-live in seconds.
        invalidated: Fields explicitly marked stale since the fetch.

    """

    state: DeviceState
    fetched_at: float | None
    ttl: float
    invalidated: frozenset[str] = field(default_factory=frozenset)

    def is_stale(
        self, now: float, field_name: str | None = None, ttl: float | None = None
    ) -> bool:
        """Return True if the entry (or a single field) needs a refresh."""
        if self.fetched_at is None:
            return True
        if field_name is None:
            if self.invalidated:
                return True
        elif field_name in self.invalidated:
            return True
        limit = self.ttl if ttl is None else ttl
        return now - self.fetched_at > limit


@dataclass(frozen=True, slots=True)
class PrimitiveOperation:
    """A single remote operation and its argument."""

    name: OperationName
    value: Any

    def __str__(self) -> str:
        return f"{self.name}({self.value})"


@dataclass(frozen=True, slots=True)
class CompositeCommand:
    """Ordered operations implementing one logical transition."""

    target: TargetMode
    operations: tuple[PrimitiveOperation, ...]


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a fully applied composite command."""

    command: CompositeCommand
    completed: tuple[PrimitiveOperation, ...]


class Reading(NamedTuple):
    """Best known value of an attribute and the error of its refresh, if any."""

    value: Any
    error: Exception | None = None
