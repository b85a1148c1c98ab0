"""Pytest configuration and fixtures for Ariston Velis tests."""

from unittest.mock import Mock

import httpx
import pytest

from custom_components.ariston_velis.models import DeviceState, HeaterMode
from custom_components.ariston_velis.scheduler import Scheduler
from custom_components.ariston_velis.synchronizer import SynchronizerConfig

PLANT_ID = "F0AD4E0000AB"
TOKEN_VALUE = "test_auth_token"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> Scheduler:
    """Fixture providing a scheduler driven by the fake clock."""
    return Scheduler(clock)


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def config() -> SynchronizerConfig:
    """Fixture providing a synchronizer config with fast timers."""
    return SynchronizerConfig(
        username="user@example.com",
        password="password123",
        plant_id=PLANT_ID,
        min_temperature=40.0,
        max_temperature=75.0,
        cache_ttl=30.0,
        refresh_interval=60.0,
        debounce_delay=0.05,
        retry_attempts=3,
        retry_backoff=0.0,
    )


@pytest.fixture
def sample_login_response() -> dict:
    """Fixture providing a sample login API response."""
    return {"token": TOKEN_VALUE}


@pytest.fixture
def sample_plant_data() -> dict:
    """Fixture providing a sample plant data API response.

    Returns:
        A dictionary representing a heater that is on, in manual mode,
        at 52.5°C with a 60°C target.

    """
    return {
        "on": True,
        "mode": 1,
        "eco": False,
        "temp": 52.5,
        "reqTemp": 58.0,
        "procReqTemp": 60.0,
        "heatReq": True,
    }


@pytest.fixture
def heating_state() -> DeviceState:
    """Fixture providing the state decoded from sample_plant_data."""
    return DeviceState(
        power=True,
        mode=HeaterMode.MANUAL,
        eco=False,
        current_temperature=52.5,
        target_temperature=60.0,
        heating_active=True,
    )


@pytest.fixture
def off_state() -> DeviceState:
    """Fixture providing a heater that is off, manual and not in eco mode."""
    return DeviceState(
        power=False,
        mode=HeaterMode.MANUAL,
        eco=False,
        current_temperature=45.0,
        target_temperature=50.0,
        heating_active=False,
    )
