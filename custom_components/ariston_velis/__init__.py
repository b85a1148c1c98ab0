from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady

from . import api
from .api import create_session_client
from .const import DOMAIN
from .synchronizer import DeviceStateSynchronizer, SynchronizerConfig

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.WATER_HEATER]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Ariston Velis integration for entry %s", entry.entry_id)

    try:
        config = SynchronizerConfig.from_entry_data(entry.data, entry.options)
    except (KeyError, ValueError) as err:
        _LOGGER.error("Invalid configuration for entry %s: %s", entry.entry_id, err)
        return False

    session = create_session_client(hass, config.request_timeout)
    synchronizer = DeviceStateSynchronizer(session, config)

    try:
        await synchronizer.async_start()
    except api.AristonAuthError as err:
        await synchronizer.async_stop()
        raise ConfigEntryAuthFailed(f"Authentication failed: {err}") from err
    except api.AristonApiClientError as err:
        await synchronizer.async_stop()
        raise ConfigEntryNotReady(f"Could not reach Ariston API: {err}") from err

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "synchronizer": synchronizer,
    }
    _LOGGER.debug(
        "Stored synchronizer for entry %s (plant %s)", entry.entry_id, config.plant_id
    )

    entry.async_on_unload(entry.add_update_listener(async_reload_entry))
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info(
        "Successfully setup Ariston Velis integration for entry %s", entry.entry_id
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Ariston Velis integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not unload_ok:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)
        return False

    entry_data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if entry_data is not None:
        await entry_data["synchronizer"].async_stop()
        _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)

    _LOGGER.info(
        "Successfully unloaded Ariston Velis integration for entry %s", entry.entry_id
    )
    return True


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry after its options changed."""
    await hass.config_entries.async_reload(entry.entry_id)
