"""Per-device state shared between a poller and the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass

from airthings2mqtt._models import Sample


@dataclass(slots=True)
class DeviceState:
    """Latest sample plus fault flag of one device.

    Mutated only by the device's :class:`~airthings2mqtt._poller.DevicePoller`;
    everything else reads it.
    """

    latest_sample: Sample | None = None
    is_faulted: bool = False
