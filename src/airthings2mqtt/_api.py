"""Typed façade over the Airthings consumer API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from airthings2mqtt._http import HttpRequester
from airthings2mqtt._models import Device, Sample, parse_sample

logger = logging.getLogger(__name__)


@runtime_checkable
class AirthingsApi(Protocol):
    """Port implemented by :class:`AirthingsClient` and test doubles."""

    async def list_devices(self) -> tuple[Device, ...]: ...

    async def get_latest_sample(self, device_id: str) -> Sample: ...


class AirthingsClient:
    """The two API operations the bridge needs.

    Errors from the HTTP layer propagate unchanged.
    """

    def __init__(self, http: HttpRequester) -> None:
        self._http = http

    async def list_devices(self) -> tuple[Device, ...]:
        """Return every device of the account.

        An absent or empty ``devices`` field yields an empty tuple.
        Entries without an id are skipped with a warning.
        """
        logger.debug("Fetching Airthings devices")
        body = await self._http.request("/devices")
        raw_devices = body.get("devices") if isinstance(body, Mapping) else None
        devices: list[Device] = []
        for entry in raw_devices or []:
            if not isinstance(entry, Mapping):
                continue
            try:
                devices.append(Device.from_dict(entry))
            except ValueError:
                logger.warning("Skipping malformed device entry: %r", entry)
        return tuple(devices)

    async def get_latest_sample(self, device_id: str) -> Sample:
        """Return the latest readings of *device_id*.

        An empty mapping means the response carried no usable data; the
        poller counts that as a malformed response.
        """
        logger.debug("Fetching latest samples for device %s", device_id)
        body = await self._http.request(f"/devices/{device_id}/latest-samples")
        data = body.get("data") if isinstance(body, Mapping) else None
        return parse_sample(data)
