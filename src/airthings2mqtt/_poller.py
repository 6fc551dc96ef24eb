"""Per-device polling state machine.

Lifecycle::

    IDLE ──start()──▶ SCHEDULED ──timer──▶ POLLING ──▶ SCHEDULED ──▶ …
      │                   │                   │
      └──────────── stop() (any time) ────────┴──▶ STOPPED (terminal)

Each poller owns one background task, so at most one timer is ever
outstanding.  The first fetch waits a random jitter in ``[0, jitter)``
seconds so that many devices started together do not hit the shared
rate limit in lockstep; after that fetches recur at the fixed interval.
The next timer is armed only after the previous fetch cycle (including
its notification) has completed, so a device never has two fetches in
flight.

Fetch-cycle outcomes:

=========================  ==========  ===============  ===========
Outcome                    Counter     ``is_faulted``   Notify
=========================  ==========  ===============  ===========
sample with readings       reset       cleared          yes
empty sample / timeout     +1          set at >= 3      at >= 3
rate limited (429)         reset       unchanged        no
any other error            reset       set              yes
=========================  ==========  ===============  ===========

``stop()`` never aborts an in-flight request; the outcome of that
request is discarded and no notification is emitted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import StrEnum

from airthings2mqtt._api import AirthingsApi
from airthings2mqtt._exceptions import (
    AuthError,
    ForbiddenError,
    RateLimitError,
    RequestTimeoutError,
)
from airthings2mqtt._state import DeviceState

logger = logging.getLogger(__name__)

FAULT_THRESHOLD = 3
DEFAULT_POLL_INTERVAL = 15 * 60.0
DEFAULT_JITTER = 5.0

StateCallback = Callable[[DeviceState], Awaitable[None]]
"""Async callback invoked with the device state after each notifying outcome."""

ErrorCallback = Callable[[Exception], Awaitable[None]]
"""Async callback invoked with the exception of each hard failure."""

SleepFunc = Callable[[float], Awaitable[None]]


class PollerStatus(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    POLLING = "polling"
    STOPPED = "stopped"


class DevicePoller:
    """Timer-driven fetch loop for a single device.

    Args:
        device_id: Upstream device id.
        api: Source of samples.
        state: The state record this poller exclusively mutates.
        on_update: Notified after every outcome that changes what the
            presentation layer should show.
        on_error: Optional sink for hard-failure exceptions.
        interval: Seconds between fetches.
        jitter: Exclusive upper bound of the startup delay, seconds.
        rng: Random source for the jitter (injectable for tests).
        sleep: Sleep coroutine (injectable for tests).
    """

    def __init__(
        self,
        device_id: str,
        api: AirthingsApi,
        state: DeviceState,
        *,
        on_update: StateCallback,
        on_error: ErrorCallback | None = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        jitter: float = DEFAULT_JITTER,
        rng: random.Random | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            msg = f"Poll interval must be positive, got {interval}"
            raise ValueError(msg)
        self._device_id = device_id
        self._api = api
        self._state = state
        self._on_update = on_update
        self._on_error = on_error
        self._interval = interval
        self._jitter = jitter
        self._rng = rng if rng is not None else random.Random()
        self._sleep = sleep
        self._status = PollerStatus.IDLE
        self._task: asyncio.Task[None] | None = None
        self._consecutive_failures = 0

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def status(self) -> PollerStatus:
        return self._status

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def is_running(self) -> bool:
        """True between ``start()`` and ``stop()``."""
        return self._status in (PollerStatus.SCHEDULED, PollerStatus.POLLING)

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Schedule the first fetch after a random jitter.

        No-op while already running.  A stopped poller stays stopped.
        """
        if self._status is PollerStatus.STOPPED:
            logger.debug("Poller for %s is stopped; start() ignored", self._device_id)
            return
        if self._task is not None:
            return
        delay = self._rng.random() * self._jitter
        self._status = PollerStatus.SCHEDULED
        self._task = asyncio.create_task(
            self._run(delay),
            name=f"poller-{self._device_id}",
        )
        logger.debug("Poller for %s starts in %.2fs", self._device_id, delay)

    def stop(self) -> None:
        """Cancel the pending timer and enter the terminal STOPPED state.

        Safe to call at any time, including from inside a fetch.  An
        in-flight request is left to finish; its outcome is dropped.
        """
        if self._status is PollerStatus.STOPPED:
            return
        was_polling = self._status is PollerStatus.POLLING
        self._status = PollerStatus.STOPPED
        task, self._task = self._task, None
        if task is not None and not was_polling:
            task.cancel()

    async def _run(self, delay: float) -> None:
        await self._sleep(delay)
        while self._status is not PollerStatus.STOPPED:
            self._status = PollerStatus.POLLING
            await self.poll()
            # stop() may have been called while the fetch was in flight
            if self._status is PollerStatus.STOPPED:
                break
            self._status = PollerStatus.SCHEDULED
            await self._sleep(self._interval)

    # -- Fetch cycle --------------------------------------------------------

    async def poll(self) -> None:
        """Run one fetch cycle.  Never raises (except on cancellation)."""
        logger.debug("Polling data for %s", self._device_id)
        try:
            sample = await self._api.get_latest_sample(self._device_id)
        except asyncio.CancelledError:
            raise
        except RequestTimeoutError:
            if self._discarded:
                return
            logger.debug(
                "Poll request for %s timed out. Will retry next cycle.",
                self._device_id,
            )
            await self._soft_failure()
            return
        except RateLimitError as exc:
            if self._discarded:
                return
            self._consecutive_failures = 0
            logger.info(
                "Rate limited while polling %s (retry after %s); "
                "waiting for the next cycle",
                self._device_id,
                "unknown" if exc.retry_after is None else f"{exc.retry_after:g}s",
            )
            return
        except Exception as exc:
            if self._discarded:
                return
            await self._hard_failure(exc)
            return

        if self._discarded:
            return

        if not sample:
            logger.warning(
                "API returned malformed or empty data for device %s.",
                self._device_id,
            )
            await self._soft_failure()
            return

        logger.debug("Raw sample data for %s: %s", self._device_id, sample)
        self._state.latest_sample = dict(sample)
        self._state.is_faulted = False
        self._consecutive_failures = 0
        await self._notify()

    @property
    def _discarded(self) -> bool:
        return self._status is PollerStatus.STOPPED

    async def _soft_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures < FAULT_THRESHOLD:
            return
        if self._consecutive_failures == FAULT_THRESHOLD:
            logger.warning(
                "Device %s failed %d consecutive polls. Marking as faulted.",
                self._device_id,
                FAULT_THRESHOLD,
            )
        self._state.is_faulted = True
        await self._notify()

    async def _hard_failure(self, exc: Exception) -> None:
        if isinstance(exc, AuthError):
            logger.error(
                "Authentication problem while polling %s: %s",
                self._device_id,
                exc,
            )
        elif isinstance(exc, ForbiddenError):
            logger.error(
                "Insufficient API scope while polling %s: %s",
                self._device_id,
                exc,
            )
        else:
            logger.error("Failed to poll %s: %s", self._device_id, exc)

        self._state.is_faulted = True
        self._consecutive_failures = 0
        await self._notify()
        # stop() may have been called from the update callback
        if self._discarded or self._on_error is None:
            return
        try:
            await self._on_error(exc)
        except Exception:
            logger.exception("Error callback failed for %s", self._device_id)

    async def _notify(self) -> None:
        try:
            await self._on_update(self._state)
        except Exception:
            logger.exception("State update callback failed for %s", self._device_id)
