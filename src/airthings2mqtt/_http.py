"""Timeout-bounded, bearer-authenticated HTTP requests.

:class:`HttpRequester` performs ``GET`` requests against the Airthings
API and classifies every outcome into the taxonomy of
:mod:`airthings2mqtt._exceptions`:

* 2xx → parsed JSON body
* 401 → token invalidated, request retried exactly once; a second 401
  raises :class:`AuthError`
* 403 → :class:`ForbiddenError` (scope problem, never retried)
* 429 → :class:`RateLimitError` (the caller decides how to back off)
* other → :class:`HttpError`
* deadline exceeded → :class:`RequestTimeoutError`
* transport failure / undecodable body → :class:`NetworkError`

Tokens come from any :class:`TokenProvider`; in production that is
:class:`~airthings2mqtt._token.TokenManager`.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

import aiohttp

from airthings2mqtt._exceptions import (
    AirthingsError,
    AuthError,
    ForbiddenError,
    HttpError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429

DEFAULT_TIMEOUT = 10.0


@runtime_checkable
class TokenProvider(Protocol):
    """Source of bearer tokens for authenticated requests."""

    async def get_token(self) -> str: ...

    def invalidate(self) -> None: ...


@contextlib.contextmanager
def transport_errors(url: str, timeout: float) -> Iterator[None]:
    """Translate aiohttp/asyncio transport failures into API errors.

    Errors already belonging to the API taxonomy pass through
    untouched.
    """
    try:
        yield
    except AirthingsError:
        raise
    except TimeoutError as exc:
        msg = f"Request to {url} timed out after {timeout:g}s"
        raise RequestTimeoutError(msg) from exc
    except aiohttp.ClientError as exc:
        msg = f"Request to {url} failed: {exc}"
        raise NetworkError(msg) from exc


def _parse_retry_after(headers: Mapping[str, str]) -> float | None:
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class HttpRequester:
    """Authenticated GET requests with single retry on 401.

    Args:
        session: Shared aiohttp session (owned by the caller).
        tokens: Bearer token source.
        base_url: Prefix prepended to every endpoint.
        timeout: Deadline in seconds applied to each individual request
            (a 401 retry gets its own deadline).
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        tokens: TokenProvider,
        *,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def request(self, endpoint: str) -> Any:
        """GET *endpoint* and return its decoded JSON body.

        Raises:
            AuthError: Token refresh failed or the retry got 401 again.
            ForbiddenError: HTTP 403.
            RateLimitError: HTTP 429.
            HttpError: Any other non-2xx status.
            RequestTimeoutError: The deadline elapsed.
            NetworkError: Transport failure or invalid JSON.
        """
        try:
            return await self._request(endpoint, is_retry=False)
        except AirthingsError as exc:
            logger.debug("API request failed for endpoint %s: %s", endpoint, exc)
            raise

    async def _request(self, endpoint: str, *, is_retry: bool) -> Any:
        token = await self._tokens.get_token()
        url = f"{self._base_url}{endpoint}"
        status, reason, headers, body = await self._get(url, token)

        if 200 <= status < 300:  # noqa: PLR2004
            return body

        if status == HTTP_STATUS_UNAUTHORIZED:
            if is_retry:
                msg = f"Bearer token rejected twice for {endpoint}"
                raise AuthError(msg, status=status)
            logger.debug("Token rejected (401), clearing and retrying %s", endpoint)
            self._tokens.invalidate()
            return await self._request(endpoint, is_retry=True)

        if status == HTTP_STATUS_FORBIDDEN:
            raise ForbiddenError(endpoint)

        if status == HTTP_STATUS_TOO_MANY_REQUESTS:
            raise RateLimitError(endpoint, retry_after=_parse_retry_after(headers))

        raise HttpError(status, reason)

    async def _get(
        self,
        url: str,
        token: str,
    ) -> tuple[int, str, Mapping[str, str], Any]:
        """Perform one GET; the body is decoded only for 2xx responses."""
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        with transport_errors(url, self._timeout):
            async with self._session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                body: Any = None
                if 200 <= response.status < 300:  # noqa: PLR2004
                    try:
                        body = await response.json(content_type=None)
                    except ValueError as exc:
                        msg = f"Invalid JSON from {url}"
                        raise NetworkError(msg) from exc
                return (
                    response.status,
                    response.reason or "",
                    dict(response.headers),
                    body,
                )
