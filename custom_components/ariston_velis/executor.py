"""Authenticated request execution with re-auth and rate-limit retries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from . import api
from .const import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_BACKOFF

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .auth import TokenManager

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy applied to rate-limited requests.

    Attributes:
        max_attempts: Total attempts, including the first one.
        backoff: Base delay in seconds between attempts.
        exponential: Double the delay after every attempt.

    """

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    backoff: float = DEFAULT_RETRY_BACKOFF
    exponential: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            error_msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(error_msg)
        if self.backoff < 0:
            error_msg = f"backoff must not be negative, got {self.backoff}"
            raise ValueError(error_msg)

    def delay(self, attempt: int) -> float:
        """Return the wait after the given (1-based) failed attempt."""
        if self.exponential:
            return self.backoff * 2 ** (attempt - 1)
        return self.backoff


class RequestExecutor:
    """Runs remote operations with a valid token.

    An operation is a coroutine function receiving the token value. On a
    401 the token is refreshed once and the operation retried once; on a
    429 the operation is retried after the policy's backoff until attempts
    run out. Every other error is raised to the caller unchanged.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._token_manager = token_manager
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def async_execute(
        self,
        operation: Callable[[str], Awaitable[T]],
        *,
        description: str = "request",
    ) -> T:
        """Execute ``operation`` and return its result.

        Raises:
            AristonAuthError: If login fails or the retry after a re-login
                is rejected again.
            AristonRateLimitedError: If every attempt was rate limited.
            AristonTransientNetworkError: On timeouts, connection or 5xx errors.
            AristonRemoteError: If the API rejects the request.

        """
        attempt = 0
        reauthenticated = False
        while True:
            token = await self._token_manager.async_ensure_valid()
            attempt += 1
            try:
                return await operation(token.value)
            except api.AristonUnauthorizedError as err:
                if reauthenticated:
                    error_msg = f"{description} rejected again after re-login"
                    raise api.AristonAuthError(error_msg) from err
                _LOGGER.warning("%s got 401, refreshing token", description)
                reauthenticated = True
                attempt -= 1
                await self._token_manager.async_force_refresh(rejected=token)
            except api.AristonRateLimitedError:
                if attempt >= self.policy.max_attempts:
                    _LOGGER.warning(
                        "%s still rate limited after %d attempts",
                        description,
                        attempt,
                    )
                    raise
                delay = self.policy.delay(attempt)
                _LOGGER.warning(
                    "%s rate limited, retrying in %.1fs (attempt %d/%d)",
                    description,
                    delay,
                    attempt,
                    self.policy.max_attempts,
                )
                await self._sleep(delay)
