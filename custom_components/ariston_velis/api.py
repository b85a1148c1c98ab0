"""API client for Ariston Velis water heaters.

This module provides functions to interact with the Ariston NET API,
including authentication, state retrieval and the primitive write operations.
Every HTTP outcome is classified into the exception hierarchy defined here.
"""

import logging
import math
from typing import Any

import httpx
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    APP_ID,
    APP_OS,
    APP_VERSION,
    AUTH_HEADER,
    BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    HEATER_MODE_MAP,
    HEATER_MODE_REVERSE_MAP,
    LOGIN_PATH,
    PLANT_DATA_PATH,
)
from .models import DeviceState, HeaterMode, PrimitiveOperation

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class AristonApiClientError(Exception):
    """Base exception for Ariston API client errors."""


class AristonAuthError(AristonApiClientError):
    """Exception raised for authentication errors."""


class AristonUnauthorizedError(AristonAuthError):
    """Exception raised when an authenticated request is rejected with 401."""


class AristonRateLimitedError(AristonApiClientError):
    """Exception raised when the API keeps answering 429."""


class AristonTransientNetworkError(AristonApiClientError):
    """Exception raised for timeouts, connection failures and 5xx responses."""


class AristonRemoteError(AristonApiClientError):
    """Exception raised when the API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize the error with the HTTP status, if there was one."""
        super().__init__(message)
        self.status_code = status_code


class AristonValidationError(AristonApiClientError, ValueError):
    """Exception raised for values that can never be sent to the device."""


class AristonPartialCommandFailure(AristonApiClientError):
    """Exception raised when a composite command aborts mid-sequence.

    Attributes:
        step_index: Zero-based index of the failed step.
        operation: The operation that failed.
        completed: Operations applied before the failure.

    """

    def __init__(
        self,
        step_index: int,
        operation: PrimitiveOperation,
        completed: tuple[PrimitiveOperation, ...],
    ) -> None:
        """Initialize the failure report."""
        super().__init__(f"Step {step_index} ({operation}) failed")
        self.step_index = step_index
        self.operation = operation
        self.completed = completed


def create_headers(token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for Ariston API requests.

    Args:
        token: Optional auth token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "content-type": "application/json",
        "accept": "application/json, text/plain, */*",
    }
    if token:
        headers[AUTH_HEADER] = token
    return headers


def plant_url(plant_id: str, action: str | None = None) -> str:
    """Build the URL of a plant resource, optionally for a write action."""
    url = BASE_URL + PLANT_DATA_PATH.format(plant_id=plant_id)
    if action:
        url = f"{url}/{action}"
    return url


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error.

    Args:
        status: HTTP status code to check.

    Returns:
        True if status code is 400 or higher, False otherwise.

    """
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error."""
    return status == HTTP_UNAUTHORIZED


def is_rate_limited(status: int) -> bool:
    """Check if HTTP status code indicates rate limiting."""
    return status == HTTP_TOO_MANY_REQUESTS


def is_server_error(status: int) -> bool:
    """Check if HTTP status code is in the 5xx class."""
    return status >= HTTP_SERVER_ERROR


def validate_response(response: httpx.Response, *, login: bool = False) -> Any:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.
        login: Whether the response answers a login request, in which case
            any client error is a definitive authentication failure.

    Returns:
        Parsed JSON data from response, or None for an empty body.

    Raises:
        AristonUnauthorizedError: On HTTP 401.
        AristonAuthError: On any other 4xx answer to a login.
        AristonRateLimitedError: On HTTP 429.
        AristonTransientNetworkError: On HTTP 5xx.
        AristonRemoteError: On other 4xx statuses or an invalid body.

    """
    _validate_http_status(response, login=login)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as err:
        error_msg = f"Invalid JSON in response: {err}"
        raise AristonRemoteError(error_msg, response.status_code) from err


def _validate_http_status(response: httpx.Response, *, login: bool) -> None:
    status = response.status_code
    if not is_http_error(status):
        return

    if is_auth_error(status):
        raise AristonUnauthorizedError("Authentication error")

    if is_rate_limited(status):
        raise AristonRateLimitedError("Rate limited by Ariston API")

    if is_server_error(status):
        server_error = f"Server error: {status}"
        raise AristonTransientNetworkError(server_error)

    client_error = f"Request failed: {status}"
    if login:
        raise AristonAuthError(client_error)
    raise AristonRemoteError(client_error, status)


async def _async_request(
    session: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    timeout: float,
    token: str | None = None,
    json: Any = None,
) -> httpx.Response:
    """Send a request, mapping transport failures to transient errors."""
    kwargs: dict[str, Any] = {"headers": create_headers(token), "timeout": timeout}
    if json is not None:
        kwargs["json"] = json
    try:
        return await session.request(method, url, **kwargs)
    except httpx.TimeoutException as err:
        error_msg = f"Timeout after {timeout}s: {method} {url}"
        raise AristonTransientNetworkError(error_msg) from err
    except httpx.TransportError as err:
        error_msg = f"Connection error: {err}"
        raise AristonTransientNetworkError(error_msg) from err


def extract_token(data: Any) -> str:
    """Extract the auth token from a login response.

    Raises:
        AristonAuthError: If the response carries no token.

    """
    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise AristonAuthError("Login response did not contain a token")
    return token


def extract_success(data: Any) -> bool:
    """Extract result status from a write response.

    An empty body or a bare boolean are both accepted.
    """
    if data is None:
        return True
    if isinstance(data, bool):
        return data
    if isinstance(data, dict):
        return bool(data.get("success", True))
    return True


def _as_float(value: Any, fallback: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return fallback
    return fallback if math.isnan(result) else result


def parse_device_state(data: dict[str, Any], previous: DeviceState) -> DeviceState:
    """Build a DeviceState from a plant data response.

    Missing or malformed fields keep the value of the previous state. The
    target temperature prefers the processed request over the raw one.

    Args:
        data: Plant data response dictionary.
        previous: State used for fields the response lacks.

    Returns:
        The new device state.

    """
    raw_mode = data.get("mode")
    mode = HEATER_MODE_REVERSE_MAP.get(raw_mode, previous.mode)
    if raw_mode is not None and raw_mode not in HEATER_MODE_REVERSE_MAP:
        _LOGGER.debug("Unknown heater mode %s, keeping %s", raw_mode, mode)

    target = data.get("procReqTemp")
    if target is None:
        target = data.get("reqTemp")

    return DeviceState(
        power=bool(data.get("on", previous.power)),
        mode=mode,
        eco=bool(data.get("eco", previous.eco)),
        current_temperature=_as_float(
            data.get("temp"), previous.current_temperature
        ),
        target_temperature=_as_float(target, previous.target_temperature),
        heating_active=bool(data.get("heatReq", previous.heating_active)),
    )


def create_session_client(
    hass: HomeAssistant, timeout: float = DEFAULT_REQUEST_TIMEOUT
) -> httpx.AsyncClient:
    """Create HTTP client with connection retry logic for Ariston API.

    Only connection failures on idempotent requests are retried here;
    rate limiting and server errors are left to the request executor.

    Args:
        hass: Home Assistant instance.
        timeout: Default request timeout in seconds.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=timeout)
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=[],
        retry_on_exceptions=[httpx.ConnectError],
    )
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


async def async_login(
    session: httpx.AsyncClient,
    username: str,
    password: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> str:
    """Authenticate with Ariston API using username and password.

    Args:
        session: HTTP client session.
        username: Account user name (e-mail).
        password: Account password.
        timeout: Request timeout in seconds.

    Returns:
        The auth token.

    Raises:
        AristonAuthError: If the credentials are rejected.
        AristonTransientNetworkError: On timeouts or server errors.

    """
    payload = {
        "usr": username,
        "pwd": password,
        "imp": False,
        "notTrack": True,
        "appInfo": {"os": APP_OS, "appVer": APP_VERSION, "appId": APP_ID},
    }

    _LOGGER.debug("Authenticating with Ariston API")
    response = await _async_request(
        session, "POST", f"{BASE_URL}{LOGIN_PATH}", timeout=timeout, json=payload
    )
    try:
        data = validate_response(response, login=True)
    except AristonRemoteError as err:
        raise AristonAuthError(str(err)) from err
    token = extract_token(data)
    _LOGGER.debug("Successfully authenticated with Ariston API")
    return token


async def async_get_device_state(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    previous: DeviceState,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> DeviceState:
    """Fetch the current state of a plant.

    Args:
        session: HTTP client session.
        token: Auth token.
        plant_id: Plant identifier.
        previous: Last known state, used for missing fields.
        timeout: Request timeout in seconds.

    Returns:
        The decoded device state.

    """
    url = plant_url(plant_id)
    _LOGGER.debug("Fetching state of plant %s", plant_id)
    response = await _async_request(session, "GET", url, timeout=timeout, token=token)
    data = validate_response(response)
    if not isinstance(data, dict):
        error_msg = f"Unexpected plant data payload: {data!r}"
        raise AristonRemoteError(error_msg, response.status_code)
    state = parse_device_state(data, previous)
    _LOGGER.debug("Decoded state for plant %s: %s", plant_id, state)
    return state


async def _async_write(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    action: str,
    payload: Any,
    timeout: float,
) -> None:
    url = plant_url(plant_id, action)
    _LOGGER.debug("Sending %s to plant %s: %s", action, plant_id, payload)
    response = await _async_request(
        session, "POST", url, timeout=timeout, token=token, json=payload
    )
    data = validate_response(response)
    if not extract_success(data):
        error_msg = f"Plant {plant_id} rejected {action}"
        raise AristonRemoteError(error_msg, response.status_code)
    _LOGGER.debug("Plant %s accepted %s", plant_id, action)


async def async_set_temperature(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    old: float,
    new: float,
    eco: bool,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> None:
    """Change the target temperature of a plant."""
    payload = {"eco": eco, "new": new, "old": old}
    await _async_write(session, token, plant_id, "temperature", payload, timeout)


async def async_switch_power(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    on: bool,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> None:
    """Switch a plant on or off."""
    await _async_write(session, token, plant_id, "switch", on, timeout)


async def async_switch_eco(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    eco: bool,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> None:
    """Enable or disable eco mode on a plant."""
    await _async_write(session, token, plant_id, "switchEco", eco, timeout)


async def async_set_mode(
    session: httpx.AsyncClient,
    token: str,
    plant_id: str,
    mode: HeaterMode,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> None:
    """Select the manual or timer program of a plant."""
    payload = {"mode": HEATER_MODE_MAP[mode]}
    await _async_write(session, token, plant_id, "mode", payload, timeout)
