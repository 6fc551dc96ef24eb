"""Monotonic clock port and system adapter.

Provides ClockPort (Protocol) and SystemClock.  The token manager uses
the clock to decide whether a cached bearer token is still valid, and
the health reporter uses it for uptime.

**Why monotonic?** Token lifetimes are relative ("expires in 3600
seconds"), so only *differences* between ``now()`` calls matter.
``time.monotonic()`` is immune to NTP adjustments that would otherwise
make a fresh token look expired (or an expired one look fresh).

Wall-clock time (for persisted orphan timestamps) is deliberately *not*
part of this port; see :mod:`airthings2mqtt._reconcile`.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Monotonic clock for timing measurements.

    The default implementation wraps ``time.monotonic()``. Tests
    inject a deterministic fake clock for reproducible expiry checks.
    """

    def now(self) -> float:
        """Return monotonic time in seconds.

        Returns:
            A float representing seconds from an arbitrary epoch.
            Only the *difference* between two calls is meaningful.
        """
        ...


class SystemClock:
    """Production clock wrapping ``time.monotonic()``.

    Satisfies :class:`ClockPort` via structural subtyping (PEP 544).
    """

    def now(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()
