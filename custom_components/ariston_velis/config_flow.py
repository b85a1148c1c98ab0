"""
Configuration flow for Ariston Velis integration.

This module handles the setup and configuration of the Ariston Velis
integration through Home Assistant's config flow system.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import voluptuous as vol
from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import callback
from homeassistant.helpers.httpx_client import get_async_client

from . import api
from .const import (
    CONF_CACHE_TTL,
    CONF_DEBOUNCE_DELAY,
    CONF_MAX_TEMPERATURE,
    CONF_MIN_TEMPERATURE,
    CONF_MODEL,
    CONF_PLANT_ID,
    CONF_REFRESH_INTERVAL,
    CONF_REQUEST_TIMEOUT,
    CONF_RETRY_ATTEMPTS,
    CONF_RETRY_BACKOFF,
    CONF_SERIAL_NUMBER,
    CONF_TOKEN_LIFETIME,
    DEFAULT_CACHE_TTL,
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_MAX_TEMPERATURE,
    DEFAULT_MIN_TEMPERATURE,
    DEFAULT_MODEL,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_SERIAL_NUMBER,
    DEFAULT_TOKEN_LIFETIME,
    DEVICE_MIN_TEMPERATURE,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_INVALID_LIMITS,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
)

_LOGGER = logging.getLogger(__name__)

USER_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_USERNAME): str,
        vol.Required(CONF_PASSWORD): str,
        vol.Required(CONF_PLANT_ID): str,
        vol.Optional(CONF_MODEL, default=DEFAULT_MODEL): str,
        vol.Optional(CONF_SERIAL_NUMBER, default=DEFAULT_SERIAL_NUMBER): str,
    }
)


def options_schema(options: dict[str, Any]) -> vol.Schema:
    """Build the options schema, defaulting to the current options."""

    def _default(key: str, fallback: Any) -> Any:
        return options.get(key, fallback)

    return vol.Schema(
        {
            vol.Required(
                CONF_MIN_TEMPERATURE,
                default=_default(CONF_MIN_TEMPERATURE, DEFAULT_MIN_TEMPERATURE),
            ): vol.All(vol.Coerce(float), vol.Range(min=DEVICE_MIN_TEMPERATURE)),
            vol.Required(
                CONF_MAX_TEMPERATURE,
                default=_default(CONF_MAX_TEMPERATURE, DEFAULT_MAX_TEMPERATURE),
            ): vol.All(vol.Coerce(float), vol.Range(min=DEVICE_MIN_TEMPERATURE)),
            vol.Required(
                CONF_CACHE_TTL, default=_default(CONF_CACHE_TTL, DEFAULT_CACHE_TTL)
            ): vol.All(vol.Coerce(float), vol.Range(min=0)),
            vol.Required(
                CONF_REFRESH_INTERVAL,
                default=_default(CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL),
            ): vol.All(vol.Coerce(float), vol.Range(min=5)),
            vol.Required(
                CONF_DEBOUNCE_DELAY,
                default=_default(CONF_DEBOUNCE_DELAY, DEFAULT_DEBOUNCE_DELAY),
            ): vol.All(vol.Coerce(float), vol.Range(min=0)),
            vol.Required(
                CONF_RETRY_ATTEMPTS,
                default=_default(CONF_RETRY_ATTEMPTS, DEFAULT_RETRY_ATTEMPTS),
            ): vol.All(vol.Coerce(int), vol.Range(min=1, max=10)),
            vol.Required(
                CONF_RETRY_BACKOFF,
                default=_default(CONF_RETRY_BACKOFF, DEFAULT_RETRY_BACKOFF),
            ): vol.All(vol.Coerce(float), vol.Range(min=0)),
            vol.Required(
                CONF_TOKEN_LIFETIME,
                default=_default(CONF_TOKEN_LIFETIME, DEFAULT_TOKEN_LIFETIME),
            ): vol.All(vol.Coerce(float), vol.Range(min=60)),
            vol.Required(
                CONF_REQUEST_TIMEOUT,
                default=_default(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT),
            ): vol.All(vol.Coerce(float), vol.Range(min=1, max=60)),
        }
    )


class AristonVelisConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Ariston Velis integration."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        """Return the options flow handler."""
        return AristonVelisOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing credentials and plant id.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            password = user_input[CONF_PASSWORD]

            try:
                session = get_async_client(self.hass)
                await api.async_login(session, username, password)
                _LOGGER.info("Successfully authenticated with Ariston API")

            except api.AristonAuthError as err:
                _LOGGER.warning(
                    "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                )
                errors["base"] = ERROR_INVALID_AUTH
            except api.AristonTransientNetworkError as err:
                if isinstance(err.__cause__, httpx.TimeoutException):
                    _LOGGER.warning("Timeout error (%s): %s", ERROR_TIMEOUT, err)
                    errors["base"] = ERROR_TIMEOUT
                else:
                    _LOGGER.warning(
                        "Connection error (%s): %s", ERROR_CANNOT_CONNECT, err
                    )
                    errors["base"] = ERROR_CANNOT_CONNECT
            except api.AristonApiClientError:
                _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
                errors["base"] = ERROR_API_ERROR
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during authentication (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                plant_id = user_input[CONF_PLANT_ID].strip()
                await self.async_set_unique_id(plant_id)
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Ariston Velis ({plant_id})",
                    data={**user_input, CONF_PLANT_ID: plant_id},
                )

        return self.async_show_form(
            step_id="user",
            data_schema=USER_SCHEMA,
            errors=errors,
        )


class AristonVelisOptionsFlow(OptionsFlow):
    """Edit the tuning options of a configured water heater."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Show and validate the options form."""
        errors: dict[str, str] = {}

        if user_input is not None:
            if user_input[CONF_MAX_TEMPERATURE] < user_input[CONF_MIN_TEMPERATURE]:
                errors["base"] = ERROR_INVALID_LIMITS
            else:
                return self.async_create_entry(data=user_input)

        current = dict(self.config_entry.options)
        if user_input is not None:
            current.update(user_input)
        return self.async_show_form(
            step_id="init",
            data_schema=options_schema(current),
            errors=errors,
        )
