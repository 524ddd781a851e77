"""Bearer-token lifecycle with coalesced refresh.

The manager owns the current :class:`TokenState` and decides, on every
request, whether the token can be used as is, should be refreshed in the
background, or must be refreshed before the request goes out.

Refreshes are coalesced: while one refresh exchange is in flight, every
caller that needs a token awaits that same exchange instead of starting
its own.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from ..exceptions import TokenRefreshError
from ..models.base_models import RefreshTokenResponse, TokenState
from ..transport.base import HttpTransport, TransportFailure
from .token_store import InMemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


class TokenStatus(str, Enum):
    """Usability of the current token."""

    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRING = "expiring"  # Usable, but within the refresh threshold
    EXPIRED = "expired"


class TokenManager:
    """Acquire, cache and refresh the bearer token for one client.

    :param transport: Transport used for the refresh exchange
    :param refresh_endpoint: Absolute URL of the credential-refresh endpoint
    :param refresh_token: Optional refresh token; falls back to the store
    :param refresh_threshold: Seconds before expiry at which a background
        refresh is started
    :param token_store: Where refresh and access tokens are kept
    :param timeout: Timeout in seconds for the refresh exchange
    :param clock: Wall-clock source returning epoch seconds
    """

    def __init__(
        self,
        transport: HttpTransport,
        refresh_endpoint: str,
        refresh_token: Optional[str] = None,
        refresh_threshold: float = 300.0,
        token_store: Optional[TokenStore] = None,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._transport = transport
        self._refresh_endpoint = refresh_endpoint
        self._refresh_token = refresh_token
        self._refresh_threshold = refresh_threshold
        self._token_store = token_store or InMemoryTokenStore()
        self._timeout = timeout
        self._clock = clock or time.time
        self._state: Optional[TokenState] = None
        self._refresh_task: Optional["asyncio.Task[TokenState]"] = None
        self.refresh_count = 0

    @property
    def state(self) -> Optional[TokenState]:
        return self._state

    @property
    def refreshing(self) -> bool:
        """Return whether a refresh exchange is in flight."""
        return self._refresh_task is not None and not self._refresh_task.done()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def status(self) -> TokenStatus:
        """Compute the status of the current token."""
        if self._state is None:
            return TokenStatus.NO_TOKEN
        remaining = self._state.seconds_remaining(self._now())
        if remaining <= 0:
            return TokenStatus.EXPIRED
        if remaining <= self._refresh_threshold:
            return TokenStatus.EXPIRING
        return TokenStatus.VALID

    def is_expired(self) -> bool:
        """Return True when there is no token or it is past its expiry."""
        return self._state is None or self._state.is_expired(self._now())

    def set_token(self, token: str, expires_in: float) -> TokenState:
        """Seed the manager with a known token.

        :param token: Bearer token value
        :param expires_in: Lifetime in seconds from now
        :return: The new token state
        """
        now = self._now()
        self._state = TokenState(
            token=token, expires_at=now + timedelta(seconds=expires_in), issued_at=now
        )
        return self._state

    def _refreshes_early(self) -> bool:
        lifetime = self._state.lifetime_seconds()
        return lifetime is None or lifetime > self._refresh_threshold

    def invalidate(self) -> None:
        """Forget the current token. The next request will refresh."""
        self._state = None

    async def get_token(self) -> str:
        """Return a usable bearer token.

        An expiring token is returned immediately while a refresh runs in
        the background. A token issued with a lifetime no longer than the
        refresh threshold is expiring from the start; it is used until it
        expires rather than refreshed on every call. A missing or expired
        token is first looked up in the token store, then refreshed.

        :raises TokenRefreshError: If a required refresh fails
        """
        status = self.status()
        if status in (TokenStatus.NO_TOKEN, TokenStatus.EXPIRED):
            await self._hydrate_from_store()
            status = self.status()

        if status is TokenStatus.VALID:
            return self._state.token

        if status is TokenStatus.EXPIRING:
            if not self.refreshing and self._refreshes_early():
                logger.debug("Token is expiring, refreshing in background")
                self._start_refresh()
            return self._state.token

        state = await self.refresh()
        return state.token

    async def refresh(self) -> TokenState:
        """Refresh the token, joining an in-flight refresh if there is one.

        :return: The new token state
        :raises TokenRefreshError: If the exchange fails; state is unchanged
        """
        task = self._start_refresh()
        # Shielded so one canceled caller does not cancel the shared exchange
        return await asyncio.shield(task)

    def _start_refresh(self) -> "asyncio.Task[TokenState]":
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh_access_token())
            self._refresh_task.add_done_callback(self._on_refresh_done)
        return self._refresh_task

    def _on_refresh_done(self, task: "asyncio.Task[TokenState]") -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Failures are already logged; retrieve so background ones are not reported twice
            task.exception()

    async def _hydrate_from_store(self) -> None:
        try:
            entry = await self._token_store.get_access_token(self._refresh_endpoint)
        except Exception as e:
            logger.error(f"Failed to refresh token: token store lookup failed: {e}")
            raise TokenRefreshError(f"Token store lookup failed: {e}") from e
        if entry is None or entry.is_expired(now=self._now()):
            return
        self._state = TokenState(
            token=entry.value,
            expires_at=entry.expires_at,
            token_type=entry.metadata.get("token_type", "Bearer"),
        )
        logger.debug("Retrieved access token from token store")

    async def _resolve_refresh_token(self) -> Optional[str]:
        if self._refresh_token:
            return self._refresh_token
        return await self._token_store.get_refresh_token(self._refresh_endpoint)

    async def _refresh_access_token(self) -> TokenState:
        """Exchange the refresh token for a new access token.

        Every failure, including unexpected transport or token store
        errors, surfaces as :class:`TokenRefreshError`.
        """
        try:
            return await self._exchange_refresh_token()
        except TokenRefreshError:
            raise
        except Exception as e:
            logger.error(f"Failed to refresh token: {type(e).__name__}: {e}")
            raise TokenRefreshError(
                f"Token refresh failed: {type(e).__name__}: {e}"
            ) from e

    async def _exchange_refresh_token(self) -> TokenState:
        refresh_token = await self._resolve_refresh_token()
        if not refresh_token:
            logger.error("Failed to refresh token: no refresh token available")
            raise TokenRefreshError("No refresh token available")

        self.refresh_count += 1
        logger.debug(f"Exchanging refresh token at {self._refresh_endpoint}")
        try:
            response = await self._transport.send(
                "POST",
                self._refresh_endpoint,
                None,
                {"refreshToken": refresh_token},
                {"Content-Type": "application/json"},
                None,
                self._timeout,
            )
        except TransportFailure as e:
            logger.error(f"Failed to refresh token: {e}")
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        if not response.ok:
            logger.error(f"Failed to refresh token: status {response.status}")
            raise TokenRefreshError(
                f"Token refresh failed with status {response.status}",
                status=response.status,
            )

        try:
            payload = RefreshTokenResponse.model_validate(response.data)
        except ValidationError as e:
            logger.error(f"Failed to refresh token: invalid response body: {e}")
            raise TokenRefreshError(
                "Token refresh response is missing token or expiresIn",
                status=response.status,
            ) from e

        now = self._now()
        expires_at = now + timedelta(seconds=payload.expires_in)
        state = TokenState(token=payload.token, expires_at=expires_at, issued_at=now)

        # Persist before switching state so a store failure leaves it unchanged
        if payload.refresh_token:
            await self._token_store.set_refresh_token(
                self._refresh_endpoint, payload.refresh_token
            )
            self._refresh_token = payload.refresh_token
        await self._token_store.set_access_token(
            self._refresh_endpoint,
            payload.token,
            expires_at,
            metadata={"token_type": state.token_type},
        )

        self._state = state
        logger.debug(f"Access token refreshed, expires at {expires_at}")
        return state

    async def authorization_header(self) -> Dict[str, str]:
        """Return the ``Authorization`` header for the current token."""
        token = await self.get_token()
        token_type = self._state.token_type if self._state else "Bearer"
        return {"Authorization": f"{token_type} {token}"}
