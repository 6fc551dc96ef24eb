"""Health reporting and availability for the bridge.

Publishes bridge-level heartbeats and per-accessory availability over
MQTT, with LWT (Last Will and Testament) integration for crash
detection.

Topic layout::

    {prefix}/status                     ← bridge heartbeat (retained JSON)
    {prefix}/{device_id}/availability   ← accessory online/offline (retained)

Heartbeat payload schema::

    {
        "status": "online",
        "uptime_s": 3600,
        "version": "0.1.0",
        "devices": {
            "2930012345": {"status": "ok"},
            "2930067890": {"status": "fault"},
            "2930099999": {"status": "orphaned"}
        }
    }

Device status values:

- ``ok`` — the last poll outcome was healthy
- ``fault`` — the device is fault-flagged by its poller
- ``orphaned`` — the device is no longer reported upstream and waits
  out its grace period

LWT integration:

- The broker publishes ``"offline"`` to ``{prefix}/status`` if the
  client disconnects unexpectedly (crash, network loss).
- :func:`build_will_config` creates a :class:`WillConfig` for this
  topic.
- During graceful shutdown, ``"offline"`` is published explicitly for
  all tracked accessories and the bridge status topic.

Publication is retained, QoS 1 and fire-and-forget: failures are
logged, never propagated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field

from airthings2mqtt._clock import ClockPort
from airthings2mqtt._mqtt import MqttPort, WillConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeviceStatus:
    """Status snapshot for a single accessory."""

    status: str = "ok"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class HeartbeatPayload:
    """Bridge-level status snapshot ready for JSON serialisation."""

    status: str
    uptime_s: float
    version: str
    devices: dict[str, DeviceStatus] = field(default_factory=dict)

    def to_json(self) -> str:
        data: dict[str, object] = {
            "status": self.status,
            "uptime_s": self.uptime_s,
            "version": self.version,
            "devices": {
                name: device.to_dict() for name, device in self.devices.items()
            },
        }
        return json.dumps(data)


# ---------------------------------------------------------------------------
# Convenience builder
# ---------------------------------------------------------------------------


def build_will_config(topic_prefix: str) -> WillConfig:
    """Create the LWT targeting ``{topic_prefix}/status``.

    Parameters
    ----------
    topic_prefix:
        Bridge topic prefix (e.g. ``"airthings"``).

    Returns
    -------
    WillConfig
        ``"offline"``, QoS 1, retained.
    """
    return WillConfig(
        topic=f"{topic_prefix}/status",
        payload="offline",
        qos=1,
        retain=True,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class HealthReporter:
    """Publishes heartbeats and per-accessory availability to MQTT.

    Parameters
    ----------
    mqtt:
        MQTT port used for publishing.
    topic_prefix:
        Base prefix for health topics.
    version:
        Bridge version string included in heartbeats.
    clock:
        Monotonic clock for uptime measurement.
    """

    mqtt: MqttPort
    topic_prefix: str
    version: str
    clock: ClockPort
    _start_time: float = field(init=False, repr=False)
    _devices: dict[str, DeviceStatus] = field(
        init=False,
        default_factory=dict,
        repr=False,
    )

    def __post_init__(self) -> None:
        self._start_time = self.clock.now()

    @property
    def devices(self) -> dict[str, str]:
        """Tracked device ids mapped to their status strings."""
        return {name: device.status for name, device in self._devices.items()}

    def set_device_status(self, device: str, status: str = "ok") -> None:
        self._devices[device] = DeviceStatus(status=status)

    def update_device_statuses(self, statuses: Mapping[str, str]) -> None:
        """Refresh the status of already tracked devices.

        Ids not currently tracked are ignored, so a late status snapshot
        cannot resurrect an evicted accessory.
        """
        for device, status in statuses.items():
            if device in self._devices:
                self._devices[device] = DeviceStatus(status=status)

    def remove_device(self, device: str) -> None:
        self._devices.pop(device, None)

    async def publish_device_available(self, device: str) -> None:
        """Publish ``"online"`` and track the device as ``"ok"``."""
        topic = f"{self.topic_prefix}/{device}/availability"
        await self._safe_publish(topic, "online")
        self.set_device_status(device)

    async def publish_device_unavailable(self, device: str) -> None:
        """Publish ``"offline"`` and stop tracking the device."""
        topic = f"{self.topic_prefix}/{device}/availability"
        await self._safe_publish(topic, "offline")
        self.remove_device(device)

    async def publish_heartbeat(self) -> None:
        uptime = self.clock.now() - self._start_time
        payload = HeartbeatPayload(
            status="online",
            uptime_s=uptime,
            version=self.version,
            devices=dict(self._devices),
        )
        topic = f"{self.topic_prefix}/status"
        logger.debug("Publishing heartbeat to %s", topic)
        await self._safe_publish(topic, payload.to_json())

    async def shutdown(self) -> None:
        """Publish ``"offline"`` for every tracked accessory and the bridge."""
        logger.info("Health reporter shutting down, publishing offline")
        for device in list(self._devices):
            topic = f"{self.topic_prefix}/{device}/availability"
            await self._safe_publish(topic, "offline")

        await self._safe_publish(f"{self.topic_prefix}/status", "offline")
        self._devices.clear()

    async def _safe_publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = True,
    ) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=retain, qos=1)
        except Exception:
            logger.exception("Failed to publish health to %s", topic)
