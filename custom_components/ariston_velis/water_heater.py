"""Water heater entity for Ariston Velis devices.

The entity is a thin view over the DeviceStateSynchronizer: reads come from
the synchronizer's cache and every write goes through ``async_set``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.components.water_heater import (
    WaterHeaterEntity,
    WaterHeaterEntityFeature,
)
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceInfo

from . import api
from .const import (
    ATTR_MODE,
    ATTR_TARGET_TEMPERATURE,
    CONF_MODEL,
    CONF_SERIAL_NUMBER,
    DEFAULT_MODEL,
    DEFAULT_SERIAL_NUMBER,
    DOMAIN,
    MANUFACTURER,
    OPERATION_MODES,
)
from .models import DeviceState, TargetMode
from .synchronizer import target_mode_of

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .synchronizer import DeviceStateSynchronizer

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the water heater entity for a config entry."""
    synchronizer = hass.data[DOMAIN][entry.entry_id]["synchronizer"]
    async_add_entities([AristonVelisWaterHeater(synchronizer, entry)])


class AristonVelisWaterHeater(WaterHeaterEntity):
    """Water heater entity backed by a DeviceStateSynchronizer."""

    _attr_temperature_unit = UnitOfTemperature.CELSIUS
    _attr_target_temperature_step = 1.0
    _attr_has_entity_name = True
    _attr_name = None
    _attr_should_poll = False
    _attr_supported_features = (
        WaterHeaterEntityFeature.TARGET_TEMPERATURE
        | WaterHeaterEntityFeature.OPERATION_MODE
        | WaterHeaterEntityFeature.ON_OFF
    )

    def __init__(
        self, synchronizer: DeviceStateSynchronizer, entry: ConfigEntry
    ) -> None:
        """Initialize the entity.

        Args:
            synchronizer: Synchronizer owning the device state.
            entry: Config entry the device belongs to.

        """
        self._synchronizer = synchronizer
        config = synchronizer.config
        self._attr_unique_id = config.plant_id
        self._attr_operation_list = [str(mode) for mode in OPERATION_MODES]
        self._attr_min_temp = config.min_temperature
        self._attr_max_temp = config.max_temperature
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, config.plant_id)},
            manufacturer=MANUFACTURER,
            model=entry.data.get(CONF_MODEL, DEFAULT_MODEL),
            serial_number=entry.data.get(CONF_SERIAL_NUMBER, DEFAULT_SERIAL_NUMBER),
            name=entry.title,
        )
        self._listener_unsub = None
        self._update_from_state(synchronizer.state)

    def _update_from_state(self, state: DeviceState) -> None:
        self._attr_current_temperature = state.current_temperature
        self._attr_target_temperature = state.target_temperature
        self._attr_current_operation = str(target_mode_of(state))
        self._attr_extra_state_attributes = {
            "eco": state.eco,
            "heater_mode": str(state.mode),
            "heating_active": state.heating_active,
            "sync_state": str(self._synchronizer.sync_state),
        }

    def _handle_state_update(self, state: DeviceState) -> None:
        """Handle a freshly fetched device state."""
        self._update_from_state(state)
        if self.hass is not None:
            self.async_write_ha_state()

    async def async_added_to_hass(self) -> None:
        """Subscribe to state updates from the synchronizer."""
        await super().async_added_to_hass()
        self._listener_unsub = self._synchronizer.async_add_listener(
            self._handle_state_update
        )

    async def async_will_remove_from_hass(self) -> None:
        """Unsubscribe from state updates."""
        await super().async_will_remove_from_hass()
        if self._listener_unsub is not None:
            self._listener_unsub()
            self._listener_unsub = None

    async def async_update(self) -> None:
        """Refresh stale values on an explicit update request."""
        reading = await self._synchronizer.async_get(ATTR_TARGET_TEMPERATURE)
        if reading.error is not None:
            _LOGGER.debug("%s: serving cached state (%s)", self.entity_id, reading.error)
        self._update_from_state(self._synchronizer.state)

    async def _async_set(self, attribute: str, value: Any) -> None:
        try:
            await self._synchronizer.async_set(attribute, value)
        except api.AristonPartialCommandFailure as err:
            error_msg = (
                f"Could not switch to {value}: step {err.step_index} "
                f"({err.operation}) failed: {err.__cause__}"
            )
            raise HomeAssistantError(error_msg) from err
        except api.AristonApiClientError as err:
            error_msg = f"Could not set {attribute} to {value}: {err}"
            raise HomeAssistantError(error_msg) from err

    async def async_set_temperature(self, **kwargs: Any) -> None:  # noqa: ANN401
        """Set the target temperature.

        Args:
            **kwargs: Keyword arguments containing temperature data.

        """
        temperature = kwargs.get(ATTR_TEMPERATURE)
        if temperature is None:
            return
        await self._async_set(ATTR_TARGET_TEMPERATURE, temperature)

    async def async_set_operation_mode(self, operation_mode: str) -> None:
        """Switch to the ``off``, ``heat`` or ``auto`` operation mode."""
        await self._async_set(ATTR_MODE, operation_mode)

    async def async_turn_on(self, **kwargs: Any) -> None:  # noqa: ANN401
        """Turn the heater on in manual heating mode."""
        await self._async_set(ATTR_MODE, TargetMode.HEAT)

    async def async_turn_off(self, **kwargs: Any) -> None:  # noqa: ANN401
        """Turn the heater off."""
        await self._async_set(ATTR_MODE, TargetMode.OFF)
