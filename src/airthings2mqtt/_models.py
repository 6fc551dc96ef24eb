"""Value objects for the upstream Airthings API.

The upstream JSON is parsed leniently: unknown keys are ignored,
missing optional blocks become ``None`` and non-numeric sample values
are dropped.  A :class:`Device` is immutable and replaced wholesale on
every discovery refresh.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

DEVICE_TYPE_HUB = "HUB"

Sample = dict[str, float]
"""Latest normalized readings of one device, keyed by sensor kind.

A missing key means "not reported this cycle", never zero.
"""


@dataclass(frozen=True, slots=True)
class DeviceLocation:
    """Location (room/building) a device is assigned to."""

    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceLocation:
        return cls(id=str(data.get("id", "")), name=str(data.get("name", "")))

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True, slots=True)
class DeviceSegment:
    """Measurement segment (lifecycle metadata) of a device."""

    id: str
    name: str
    started: str = ""
    active: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceSegment:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            started=str(data.get("started", "")),
            active=bool(data.get("active", False)),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "started": self.started,
            "active": self.active,
        }


@dataclass(frozen=True, slots=True)
class Device:
    """A physical Airthings unit as reported by ``GET /devices``.

    ``to_dict`` produces the upstream camelCase shape so that persisted
    records and fresh API responses go through the same parser.
    """

    id: str
    device_type: str = ""
    sensors: tuple[str, ...] = field(default_factory=tuple)
    location: DeviceLocation | None = None
    segment: DeviceSegment | None = None

    @property
    def is_hub(self) -> bool:
        """Structural hub devices carry no sensors of their own."""
        return self.device_type == DEVICE_TYPE_HUB

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Device:
        """Parse one entry of the upstream ``devices`` array.

        Raises:
            ValueError: If the entry carries no ``id``.
        """
        device_id = data.get("id")
        if not device_id:
            msg = f"Device entry without id: {data!r}"
            raise ValueError(msg)

        raw_sensors = data.get("sensors") or []
        location = data.get("location")
        segment = data.get("segment")
        return cls(
            id=str(device_id),
            device_type=str(data.get("deviceType") or ""),
            sensors=tuple(str(s) for s in raw_sensors),
            location=DeviceLocation.from_dict(location)
            if isinstance(location, Mapping)
            else None,
            segment=DeviceSegment.from_dict(segment)
            if isinstance(segment, Mapping)
            else None,
        )

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.id,
            "deviceType": self.device_type,
            "sensors": list(self.sensors),
        }
        if self.location is not None:
            data["location"] = self.location.to_dict()
        if self.segment is not None:
            data["segment"] = self.segment.to_dict()
        return data


def parse_sample(data: object) -> Sample:
    """Extract numeric readings from a ``latest-samples`` ``data`` block.

    Booleans and non-numeric values are skipped.  Anything that is not
    a mapping yields an empty sample.
    """
    if not isinstance(data, Mapping):
        return {}
    sample: Sample = {}
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, int | float):
            continue
        sample[str(key)] = float(value)
    return sample
