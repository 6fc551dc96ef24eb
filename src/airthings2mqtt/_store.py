"""Accessory records and their persistence.

An :class:`AccessoryRecord` is the local counterpart of one upstream
device.  Its ``uuid`` is derived deterministically from the device id,
so a device that disappears and comes back maps onto the same record.

Records are persisted as a single JSON document so that orphan
timestamps survive restarts; otherwise a device that vanished just
before a restart would get a fresh grace period every time.

JSON layout::

    {
        "version": 1,
        "accessories": [
            {
                "uuid": "…",
                "display_name": "Basement Sensor",
                "device": {"id": "2930…", "deviceType": "WAVE_PLUS", …},
                "orphaned_since": "2026-03-01T12:00:00+00:00" | null
            }
        ]
    }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from airthings2mqtt._models import Device

logger = logging.getLogger(__name__)

_ACCESSORY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "airthings2mqtt")
_STORE_VERSION = 1


def accessory_uuid(device_id: str) -> str:
    """Stable accessory identifier for *device_id* (UUIDv5)."""
    return str(uuid.uuid5(_ACCESSORY_NAMESPACE, device_id))


def display_name_for(device: Device) -> str:
    if device.location is not None and device.location.name:
        return f"{device.location.name} Sensor"
    return f"Airthings {device.id}"


@dataclass(slots=True)
class AccessoryRecord:
    """Local, persisted state of one accessory."""

    uuid: str
    display_name: str
    device: Device
    orphaned_since: datetime | None = None

    @property
    def device_id(self) -> str:
        return self.device.id

    @property
    def is_orphaned(self) -> bool:
        return self.orphaned_since is not None

    @classmethod
    def for_device(cls, device: Device) -> AccessoryRecord:
        return cls(
            uuid=accessory_uuid(device.id),
            display_name=display_name_for(device),
            device=device,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "uuid": self.uuid,
            "display_name": self.display_name,
            "device": self.device.to_dict(),
            "orphaned_since": self.orphaned_since.isoformat()
            if self.orphaned_since is not None
            else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AccessoryRecord:
        """Rebuild a record from :meth:`to_dict` output.

        Raises:
            ValueError: If the device block or a timestamp is invalid.
            KeyError: If a required key is missing.
        """
        device_data = data["device"]
        if not isinstance(device_data, Mapping):
            msg = f"Device block is not an object: {device_data!r}"
            raise ValueError(msg)
        device = Device.from_dict(device_data)

        orphaned_since: datetime | None = None
        orphaned_raw = data.get("orphaned_since")
        if orphaned_raw:
            orphaned_since = datetime.fromisoformat(orphaned_raw)
            # Naive timestamps are read as UTC.
            if orphaned_since.tzinfo is None:
                orphaned_since = orphaned_since.replace(tzinfo=UTC)

        return cls(
            uuid=str(data.get("uuid") or accessory_uuid(device.id)),
            display_name=str(data.get("display_name") or display_name_for(device)),
            device=device,
            orphaned_since=orphaned_since,
        )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@runtime_checkable
class AccessoryStore(Protocol):
    """Persistence port for accessory records."""

    def load(self) -> list[AccessoryRecord]: ...

    def save(self, records: Iterable[AccessoryRecord]) -> None: ...


class MemoryAccessoryStore:
    """Keeps records for the lifetime of the process only."""

    def __init__(self, records: Iterable[AccessoryRecord] = ()) -> None:
        self._data = [r.to_dict() for r in records]

    def load(self) -> list[AccessoryRecord]:
        return [AccessoryRecord.from_dict(d) for d in self._data]

    def save(self, records: Iterable[AccessoryRecord]) -> None:
        self._data = [r.to_dict() for r in records]


class JsonAccessoryStore:
    """Persists records to a JSON file, replacing it atomically."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[AccessoryRecord]:
        """Read all records; a missing or corrupt file yields none.

        Individual malformed entries are skipped with a warning.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self._path, exc)
            return []

        entries = raw.get("accessories") if isinstance(raw, dict) else None
        records: list[AccessoryRecord] = []
        for entry in entries or []:
            try:
                records.append(AccessoryRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed accessory record: %s", exc)
        return records

    def save(self, records: Iterable[AccessoryRecord]) -> None:
        document = {
            "version": _STORE_VERSION,
            "accessories": [r.to_dict() for r in records],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
