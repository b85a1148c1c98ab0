"""Tests for the Ariston Velis API client."""

import json
from unittest.mock import Mock

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.ariston_velis import api
from custom_components.ariston_velis.api import (
    AristonApiClientError,
    AristonAuthError,
    AristonPartialCommandFailure,
    AristonRateLimitedError,
    AristonRemoteError,
    AristonTransientNetworkError,
    AristonUnauthorizedError,
    AristonValidationError,
)
from custom_components.ariston_velis.const import AUTH_HEADER, BASE_URL
from custom_components.ariston_velis.models import (
    DeviceState,
    HeaterMode,
    OperationName,
    PrimitiveOperation,
)

from .conftest import PLANT_ID, TOKEN_VALUE

LOGIN_URL = f"{BASE_URL}/accounts/login"
PLANT_URL = f"{BASE_URL}/velis/medPlantData/{PLANT_ID}"


def _response(status_code: int, content: bytes = b"") -> Mock:
    response = Mock(spec=httpx.Response)
    response.status_code = status_code
    response.content = content
    response.json.side_effect = lambda: json.loads(content)
    return response


class TestExceptionHierarchy:
    """Tests for the exception hierarchy."""

    def test_unauthorized_is_auth_error(self) -> None:
        """Test that a 401 error is also an authentication error."""
        error = AristonUnauthorizedError("401")
        assert isinstance(error, AristonAuthError)
        assert isinstance(error, AristonApiClientError)

    def test_validation_error_is_value_error(self) -> None:
        """Test that validation errors can be handled as ValueError."""
        assert isinstance(AristonValidationError("bad"), ValueError)

    def test_remote_error_keeps_status_code(self) -> None:
        """Test that AristonRemoteError exposes the HTTP status."""
        error = AristonRemoteError("rejected", 404)
        assert error.status_code == 404

    def test_partial_command_failure_reports_step(self) -> None:
        """Test that AristonPartialCommandFailure names the failed step."""
        done = PrimitiveOperation(OperationName.SWITCH_POWER, True)
        failed = PrimitiveOperation(OperationName.SWITCH_ECO, True)
        error = AristonPartialCommandFailure(1, failed, (done,))
        assert error.step_index == 1
        assert error.operation == failed
        assert error.completed == (done,)
        assert "Step 1" in str(error)
        assert "switch_eco(True)" in str(error)


class TestCreateHeaders:
    """Tests for create_headers function."""

    def test_create_headers_returns_base_headers(self) -> None:
        """Test that create_headers returns JSON headers without a token."""
        headers = api.create_headers()
        assert headers["content-type"] == "application/json"
        assert AUTH_HEADER not in headers

    def test_create_headers_includes_token_when_provided(self) -> None:
        """Test that create_headers includes the auth header."""
        headers = api.create_headers(TOKEN_VALUE)
        assert headers[AUTH_HEADER] == TOKEN_VALUE


class TestStatusHelpers:
    """Tests for the status classification helpers."""

    def test_is_http_error(self) -> None:
        """Test that is_http_error flags 4xx and 5xx codes."""
        assert api.is_http_error(200) is False
        assert api.is_http_error(299) is False
        assert api.is_http_error(400) is True
        assert api.is_http_error(503) is True

    def test_is_auth_error(self) -> None:
        """Test that is_auth_error only matches 401."""
        assert api.is_auth_error(401) is True
        assert api.is_auth_error(403) is False

    def test_is_rate_limited(self) -> None:
        """Test that is_rate_limited only matches 429."""
        assert api.is_rate_limited(429) is True
        assert api.is_rate_limited(400) is False

    def test_is_server_error(self) -> None:
        """Test that is_server_error matches the 5xx class."""
        assert api.is_server_error(500) is True
        assert api.is_server_error(504) is True
        assert api.is_server_error(499) is False


class TestValidateResponse:
    """Tests for validate_response function."""

    def test_returns_parsed_json(self) -> None:
        """Test that validate_response returns the JSON body."""
        response = _response(200, b'{"success": true}')
        assert api.validate_response(response) == {"success": True}

    def test_returns_none_for_empty_body(self) -> None:
        """Test that an empty body yields None."""
        assert api.validate_response(_response(200)) is None

    def test_raises_unauthorized_on_401(self) -> None:
        """Test that HTTP 401 raises AristonUnauthorizedError."""
        with pytest.raises(AristonUnauthorizedError):
            api.validate_response(_response(401))

    def test_raises_rate_limited_on_429(self) -> None:
        """Test that HTTP 429 raises AristonRateLimitedError."""
        with pytest.raises(AristonRateLimitedError):
            api.validate_response(_response(429))

    def test_raises_transient_on_5xx(self) -> None:
        """Test that HTTP 5xx raises AristonTransientNetworkError."""
        with pytest.raises(AristonTransientNetworkError, match="503"):
            api.validate_response(_response(503))

    def test_raises_remote_error_on_other_4xx(self) -> None:
        """Test that other 4xx statuses raise AristonRemoteError."""
        with pytest.raises(AristonRemoteError, match="Request failed: 404") as info:
            api.validate_response(_response(404))
        assert info.value.status_code == 404

    def test_login_client_error_is_auth_error(self) -> None:
        """Test that a 4xx answer to a login is an authentication failure."""
        with pytest.raises(AristonAuthError, match="Request failed: 400"):
            api.validate_response(_response(400), login=True)

    def test_raises_remote_error_on_invalid_json(self) -> None:
        """Test that a malformed body raises AristonRemoteError."""
        with pytest.raises(AristonRemoteError, match="Invalid JSON"):
            api.validate_response(_response(200, b"<html>"))


class TestExtractors:
    """Tests for extract_token and extract_success."""

    def test_extract_token(self, sample_login_response: dict) -> None:
        """Test that extract_token returns the token."""
        assert api.extract_token(sample_login_response) == TOKEN_VALUE

    @pytest.mark.parametrize("data", [None, {}, {"token": ""}, ["token"]])
    def test_extract_token_raises_auth_error_without_token(self, data) -> None:
        """Test that a login answer without token is an auth failure."""
        with pytest.raises(AristonAuthError):
            api.extract_token(data)

    def test_extract_success(self) -> None:
        """Test the accepted shapes of a write response."""
        assert api.extract_success(None) is True
        assert api.extract_success(True) is True
        assert api.extract_success(False) is False
        assert api.extract_success({"success": True}) is True
        assert api.extract_success({"success": False}) is False
        assert api.extract_success({}) is True


class TestParseDeviceState:
    """Tests for parse_device_state function."""

    def test_parses_full_payload(
        self, sample_plant_data: dict, heating_state: DeviceState
    ) -> None:
        """Test that a full payload is decoded."""
        assert api.parse_device_state(sample_plant_data, DeviceState()) == heating_state

    def test_target_falls_back_to_requested_temperature(self) -> None:
        """Test that reqTemp is used when procReqTemp is missing."""
        state = api.parse_device_state({"reqTemp": 55}, DeviceState())
        assert state.target_temperature == 55.0

    def test_missing_fields_keep_previous_values(
        self, heating_state: DeviceState
    ) -> None:
        """Test that fields absent from the payload keep the previous value."""
        state = api.parse_device_state({"temp": 49.0}, heating_state)
        assert state.current_temperature == 49.0
        assert state.target_temperature == heating_state.target_temperature
        assert state.power is True
        assert state.heating_active is True

    def test_timer_mode(self) -> None:
        """Test that the timer program is decoded."""
        state = api.parse_device_state({"mode": 5}, DeviceState())
        assert state.mode is HeaterMode.TIMER

    def test_unknown_mode_keeps_previous(self) -> None:
        """Test that an unknown mode value keeps the previous mode."""
        previous = DeviceState(mode=HeaterMode.TIMER)
        state = api.parse_device_state({"mode": 42}, previous)
        assert state.mode is HeaterMode.TIMER

    def test_malformed_temperature_keeps_previous(self) -> None:
        """Test that a non-numeric temperature keeps the previous value."""
        previous = DeviceState(current_temperature=47.0)
        state = api.parse_device_state({"temp": "n/a"}, previous)
        assert state.current_temperature == 47.0


class TestAsyncLogin:
    """Tests for async_login function."""

    @pytest.mark.asyncio
    async def test_async_login_returns_token(
        self,
        httpx_mock: HTTPXMock,
        sample_login_response: dict,
    ) -> None:
        """Test that async_login posts the credentials and returns the token."""
        httpx_mock.add_response(
            url=LOGIN_URL, method="POST", json=sample_login_response
        )
        async with httpx.AsyncClient() as session:
            token = await api.async_login(session, "user@example.com", "secret")
        assert token == TOKEN_VALUE

        body = json.loads(httpx_mock.get_request().content)
        assert body["usr"] == "user@example.com"
        assert body["pwd"] == "secret"
        assert body["imp"] is False
        assert body["appInfo"]["appId"] == "com.remotethermo.aristonnet"

    @pytest.mark.asyncio
    async def test_async_login_raises_auth_error_on_http_401(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that async_login raises auth error on HTTP 401."""
        httpx_mock.add_response(url=LOGIN_URL, method="POST", status_code=401)
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonAuthError):
                await api.async_login(session, "user@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_async_login_raises_auth_error_on_http_403(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a forbidden login is a definitive auth failure."""
        httpx_mock.add_response(url=LOGIN_URL, method="POST", status_code=403)
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonAuthError):
                await api.async_login(session, "user@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_async_login_raises_auth_error_on_invalid_json(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a garbled login answer is an auth failure."""
        httpx_mock.add_response(url=LOGIN_URL, method="POST", content=b"<html>")
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonAuthError):
                await api.async_login(session, "user@example.com", "secret")

    @pytest.mark.asyncio
    async def test_async_login_raises_transient_on_server_error(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a 5xx login answer is a transient failure."""
        httpx_mock.add_response(url=LOGIN_URL, method="POST", status_code=502)
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonTransientNetworkError):
                await api.async_login(session, "user@example.com", "secret")

    @pytest.mark.asyncio
    async def test_async_login_raises_transient_on_timeout(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a timeout is mapped to AristonTransientNetworkError."""
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"))
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonTransientNetworkError, match="Timeout") as info:
                await api.async_login(session, "user@example.com", "secret", 1.0)
        assert isinstance(info.value.__cause__, httpx.TimeoutException)


class TestAsyncGetDeviceState:
    """Tests for async_get_device_state function."""

    @pytest.mark.asyncio
    async def test_returns_decoded_state(
        self,
        httpx_mock: HTTPXMock,
        sample_plant_data: dict,
        heating_state: DeviceState,
    ) -> None:
        """Test that the plant data is fetched with the token header."""
        httpx_mock.add_response(url=PLANT_URL, method="GET", json=sample_plant_data)
        async with httpx.AsyncClient() as session:
            state = await api.async_get_device_state(
                session, TOKEN_VALUE, PLANT_ID, DeviceState()
            )
        assert state == heating_state
        assert httpx_mock.get_request().headers[AUTH_HEADER] == TOKEN_VALUE

    @pytest.mark.asyncio
    async def test_raises_unauthorized_on_http_401(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a rejected token raises AristonUnauthorizedError."""
        httpx_mock.add_response(url=PLANT_URL, method="GET", status_code=401)
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonUnauthorizedError):
                await api.async_get_device_state(
                    session, TOKEN_VALUE, PLANT_ID, DeviceState()
                )

    @pytest.mark.asyncio
    async def test_raises_remote_error_on_unexpected_payload(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a non-object payload raises AristonRemoteError."""
        httpx_mock.add_response(url=PLANT_URL, method="GET", json=[1, 2, 3])
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonRemoteError, match="Unexpected plant data"):
                await api.async_get_device_state(
                    session, TOKEN_VALUE, PLANT_ID, DeviceState()
                )

    @pytest.mark.asyncio
    async def test_raises_transient_on_connection_error(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a connection failure is a transient error."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonTransientNetworkError, match="Connection"):
                await api.async_get_device_state(
                    session, TOKEN_VALUE, PLANT_ID, DeviceState()
                )


class TestWriteOperations:
    """Tests for the primitive write operations."""

    @pytest.mark.asyncio
    async def test_async_set_temperature_posts_old_new_and_eco(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that async_set_temperature sends the expected payload."""
        httpx_mock.add_response(
            url=f"{PLANT_URL}/temperature", method="POST", json={"success": True}
        )
        async with httpx.AsyncClient() as session:
            await api.async_set_temperature(
                session, TOKEN_VALUE, PLANT_ID, 50.0, 60.0, False
            )
        request = httpx_mock.get_request()
        assert json.loads(request.content) == {"eco": False, "new": 60.0, "old": 50.0}
        assert request.headers[AUTH_HEADER] == TOKEN_VALUE

    @pytest.mark.asyncio
    async def test_async_switch_power_posts_boolean(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that async_switch_power posts a bare boolean."""
        httpx_mock.add_response(url=f"{PLANT_URL}/switch", method="POST")
        async with httpx.AsyncClient() as session:
            await api.async_switch_power(session, TOKEN_VALUE, PLANT_ID, True)
        assert json.loads(httpx_mock.get_request().content) is True

    @pytest.mark.asyncio
    async def test_async_switch_eco_posts_boolean(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that async_switch_eco posts a bare boolean."""
        httpx_mock.add_response(url=f"{PLANT_URL}/switchEco", method="POST", json=True)
        async with httpx.AsyncClient() as session:
            await api.async_switch_eco(session, TOKEN_VALUE, PLANT_ID, False)
        assert json.loads(httpx_mock.get_request().content) is False

    @pytest.mark.asyncio
    async def test_async_set_mode_posts_wire_value(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that async_set_mode maps the heater mode to its wire value."""
        httpx_mock.add_response(url=f"{PLANT_URL}/mode", method="POST", json={})
        async with httpx.AsyncClient() as session:
            await api.async_set_mode(session, TOKEN_VALUE, PLANT_ID, HeaterMode.TIMER)
        assert json.loads(httpx_mock.get_request().content) == {"mode": 5}

    @pytest.mark.asyncio
    async def test_rejected_write_raises_remote_error(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a write answered with success=false raises."""
        httpx_mock.add_response(
            url=f"{PLANT_URL}/switch", method="POST", json={"success": False}
        )
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonRemoteError, match="rejected switch"):
                await api.async_switch_power(session, TOKEN_VALUE, PLANT_ID, False)

    @pytest.mark.asyncio
    async def test_rate_limited_write_raises(
        self,
        httpx_mock: HTTPXMock,
    ) -> None:
        """Test that a 429 answer to a write raises AristonRateLimitedError."""
        httpx_mock.add_response(url=f"{PLANT_URL}/mode", method="POST", status_code=429)
        async with httpx.AsyncClient() as session:
            with pytest.raises(AristonRateLimitedError):
                await api.async_set_mode(
                    session, TOKEN_VALUE, PLANT_ID, HeaterMode.MANUAL
                )
