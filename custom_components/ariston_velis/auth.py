"""Auth token lifecycle for the Ariston API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from . import api
from .const import DEFAULT_REQUEST_TIMEOUT, DEFAULT_TOKEN_LIFETIME
from .models import AuthToken

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

_LOGGER = logging.getLogger(__name__)


class TokenManager:
    """Owns the auth token and serializes logins.

    At most one login runs at a time; callers arriving while it is in flight
    share its outcome. The server never advertises an expiry, so a fixed,
    conservative lifetime is applied to every fresh token.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        username: str,
        password: str,
        *,
        lifetime: float = DEFAULT_TOKEN_LIFETIME,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._username = username
        self._password = password
        self._lifetime = lifetime
        self._timeout = timeout
        self._clock = clock
        self._token: AuthToken | None = None
        self._login_task: asyncio.Task[AuthToken] | None = None
        self.login_count = 0

    @property
    def token(self) -> AuthToken | None:
        """Return the current token, which may have expired."""
        return self._token

    @property
    def login_in_progress(self) -> bool:
        """Return True while a login is in flight."""
        return self._login_task is not None

    def invalidate(self) -> None:
        """Forget the current token."""
        self._token = None

    async def async_ensure_valid(self) -> AuthToken:
        """Return a valid token, logging in when none is held or it expired."""
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token
        return await self._async_join_login()

    async def async_force_refresh(self, rejected: AuthToken | None = None) -> AuthToken:
        """Log in again after the server rejected a token.

        Args:
            rejected: The token the server refused. When another caller has
                already replaced it with a valid token, that token is
                returned without a new login.

        """
        token = self._token
        if (
            rejected is not None
            and token is not None
            and token != rejected
            and token.is_valid(self._clock())
        ):
            _LOGGER.debug("Token already refreshed by a concurrent caller")
            return token
        return await self._async_join_login()

    async def _async_join_login(self) -> AuthToken:
        if self._login_task is None:
            self._login_task = asyncio.get_running_loop().create_task(
                self._async_login(), name="ariston_velis_login"
            )
        else:
            _LOGGER.debug("Joining login already in flight")
        return await asyncio.shield(self._login_task)

    async def _async_login(self) -> AuthToken:
        self.login_count += 1
        try:
            value = await api.async_login(
                self._session, self._username, self._password, self._timeout
            )
        except api.AristonAuthError:
            _LOGGER.warning("Login rejected for %s, clearing token", self._username)
            self._token = None
            raise
        except api.AristonApiClientError as err:
            _LOGGER.warning("Login failed, keeping previous token: %s", err)
            raise
        finally:
            self._login_task = None

        self._token = AuthToken(value=value, expires_at=self._clock() + self._lifetime)
        _LOGGER.info("Login successful for %s", self._username)
        return self._token
