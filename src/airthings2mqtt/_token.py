"""OAuth2 client-credentials token manager.

:class:`TokenManager` obtains and caches the bearer token shared by
every poller.  It is the one component with an explicit single-flight
discipline: concurrent callers that find no valid token all await the
*same* refresh task, so a burst of pollers waking up together costs
exactly one credential exchange.

Expiry is tracked on the monotonic :class:`ClockPort`.  A token is
cached with ``expires_at = max(now, now + expires_in - margin)`` so it
is treated as stale slightly before the server would reject it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import aiohttp

from airthings2mqtt._clock import ClockPort
from airthings2mqtt._exceptions import AirthingsError, AuthError
from airthings2mqtt._http import DEFAULT_TIMEOUT, transport_errors

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = 60.0


@dataclass(frozen=True, slots=True)
class Token:
    """A cached bearer token.

    ``expires_at`` is on the monotonic clock and already includes the
    refresh margin.
    """

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenManager:
    """Fetch, cache and coalesce refreshes of the API bearer token.

    Args:
        session: Shared aiohttp session.
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        auth_url: Token endpoint.
        clock: Monotonic clock used for expiry checks.
        margin: Seconds subtracted from ``expires_in``.
        timeout: Deadline for the credential exchange.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        client_id: str,
        client_secret: str,
        auth_url: str,
        clock: ClockPort,
        margin: float = DEFAULT_REFRESH_MARGIN,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url
        self._clock = clock
        self._margin = margin
        self._timeout = timeout
        self._token: Token | None = None
        self._refresh_task: asyncio.Task[str] | None = None

    @property
    def token(self) -> Token | None:
        """The cached token, valid or not."""
        return self._token

    async def get_token(self) -> str:
        """Return a valid bearer token, refreshing it when needed.

        Raises:
            AuthError: The token endpoint rejected the credentials.
            RequestTimeoutError: The exchange exceeded its deadline.
            NetworkError: Transport failure during the exchange.
        """
        token = self._token
        if token is not None and token.is_valid(self._clock.now()):
            return token.value

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh())

        # Shielded: a cancelled caller must not cancel the shared refresh.
        return await asyncio.shield(self._refresh_task)

    def invalidate(self) -> None:
        """Drop the cached token so the next call performs an exchange."""
        self._token = None

    async def _refresh(self) -> str:
        try:
            return await self._exchange()
        except AirthingsError:
            self._token = None
            logger.error(
                "Failed to authenticate with Airthings API. "
                "Check Client ID and Secret."
            )
            raise
        finally:
            self._refresh_task = None

    async def _exchange(self) -> str:
        logger.debug("Fetching new Airthings auth token")
        form = {
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        with transport_errors(self._auth_url, self._timeout):
            async with self._session.post(
                self._auth_url,
                data=form,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                if not 200 <= response.status < 300:  # noqa: PLR2004
                    msg = (
                        f"Auth failed with status {response.status}: "
                        f"{response.reason or ''}"
                    )
                    raise AuthError(msg, status=response.status)
                try:
                    data = await response.json(content_type=None)
                except ValueError as exc:
                    msg = "Auth endpoint returned invalid JSON"
                    raise AuthError(msg, status=response.status) from exc

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            msg = "Auth response did not contain an access_token"
            raise AuthError(msg)

        try:
            expires_in = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0

        now = self._clock.now()
        self._token = Token(
            value=str(access_token),
            expires_at=max(now, now + expires_in - self._margin),
        )
        logger.debug("Successfully retrieved new auth token")
        return self._token.value
