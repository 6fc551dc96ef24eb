"""Exception taxonomy for the Airthings API client.

Every failure the HTTP layer can surface is mapped onto exactly one of
these types.  The classification matters to the poller, which treats
them differently:

=======================  ==========================================
Exception                Poller treatment
=======================  ==========================================
``RequestTimeoutError``  soft failure (counted toward the streak)
``RateLimitError``       absorbed, never faults the device
``AuthError``            hard failure (credentials rejected)
``ForbiddenError``       hard failure (missing API scope)
``HttpError``            hard failure (unexpected status)
``NetworkError``         hard failure (transport problem)
=======================  ==========================================

The token manager and the HTTP layer only *raise* these; they never
touch device fault state.
"""

from __future__ import annotations


class AirthingsError(Exception):
    """Base class for all Airthings API failures."""


class AuthError(AirthingsError):
    """The credential exchange or a bearer token was rejected.

    Attributes:
        status: HTTP status that caused the rejection, when known.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ForbiddenError(AirthingsError):
    """The API client lacks the scope required for an endpoint."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(
            f"API returned 403 Forbidden. Ensure your API client has the "
            f"necessary scopes for {endpoint}"
        )
        self.endpoint = endpoint


class RateLimitError(AirthingsError):
    """The upstream API throttled the request (HTTP 429).

    Attributes:
        retry_after: Seconds suggested by the ``Retry-After`` header,
            or ``None`` when the header was absent or unparsable.
    """

    def __init__(self, endpoint: str, *, retry_after: float | None = None) -> None:
        super().__init__(f"Rate limited by API on {endpoint}")
        self.endpoint = endpoint
        self.retry_after = retry_after


class RequestTimeoutError(AirthingsError, TimeoutError):
    """A request exceeded its deadline and was aborted."""


class HttpError(AirthingsError):
    """The API answered with an unexpected non-2xx status."""

    def __init__(self, status: int, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"API request failed with status {status}{detail}")
        self.status = status
        self.reason = reason


class NetworkError(AirthingsError):
    """Transport-level failure (DNS, connection reset, bad payload)."""
