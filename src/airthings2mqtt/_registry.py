"""Accessory registry port and adapters.

The registry is the capability-based accessory model the bridge writes
into.  An accessory is registered with a description (name, model,
services, custom characteristics); afterwards individual services
receive characteristic updates.

Two adapters:

- :class:`MqttAccessoryRegistry` — publishes the accessory model as
  retained MQTT messages
- :class:`MockAccessoryRegistry` — in-memory test double

MQTT topic layout::

    {prefix}/{device_id}/config              ← accessory description (retained)
    {prefix}/{device_id}/{service}/state     ← characteristic values (retained)

Service state messages always carry the *merged* set of characteristic
values known for that service, so a late subscriber sees a complete
picture even when the last update only touched ``status_fault``.
Unregistering publishes empty retained payloads, which clears the
topics on the broker.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from airthings2mqtt._characteristics import CharacteristicDescriptor, ServiceType
from airthings2mqtt._mqtt import MqttPort

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccessoryDescription:
    """Static description of an accessory and its services."""

    accessory_id: str
    uuid: str
    name: str
    model: str
    serial_number: str
    services: tuple[ServiceType, ...]
    manufacturer: str = "Airthings"
    custom_characteristics: Mapping[ServiceType, tuple[CharacteristicDescriptor, ...]] = (
        field(default_factory=dict)
    )

    def to_json(self) -> str:
        return json.dumps(
            {
                "uuid": self.uuid,
                "name": self.name,
                "manufacturer": self.manufacturer,
                "model": self.model,
                "serial_number": self.serial_number,
                "services": [str(s) for s in self.services],
                "custom_characteristics": {
                    str(service): [d.to_dict() for d in descriptors]
                    for service, descriptors in self.custom_characteristics.items()
                },
            }
        )


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------


@runtime_checkable
class AccessoryRegistry(Protocol):
    """Port the presentation layer writes accessory state into."""

    async def register(self, description: AccessoryDescription) -> None: ...

    async def update(
        self,
        accessory_id: str,
        service: ServiceType,
        values: Mapping[str, object],
    ) -> None: ...

    async def unregister(self, accessory_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Mock adapter
# ---------------------------------------------------------------------------


@dataclass
class MockAccessoryRegistry:
    """In-memory registry recording every interaction.

    ``values`` holds the merged characteristic values per accessory and
    service; ``updates`` the raw update calls in order.
    """

    descriptions: dict[str, AccessoryDescription] = field(default_factory=dict)
    values: dict[str, dict[ServiceType, dict[str, object]]] = field(
        default_factory=dict
    )
    updates: list[tuple[str, ServiceType, dict[str, object]]] = field(
        default_factory=list
    )
    registered: list[str] = field(default_factory=list)
    unregistered: list[str] = field(default_factory=list)

    async def register(self, description: AccessoryDescription) -> None:
        self.descriptions[description.accessory_id] = description
        self.registered.append(description.accessory_id)
        services = self.values.setdefault(description.accessory_id, {})
        for stale in set(services) - set(description.services):
            del services[stale]

    async def update(
        self,
        accessory_id: str,
        service: ServiceType,
        values: Mapping[str, object],
    ) -> None:
        self.updates.append((accessory_id, service, dict(values)))
        services = self.values.setdefault(accessory_id, {})
        services.setdefault(service, {}).update(values)

    async def unregister(self, accessory_id: str) -> None:
        self.descriptions.pop(accessory_id, None)
        self.values.pop(accessory_id, None)
        self.unregistered.append(accessory_id)

    def value(
        self,
        accessory_id: str,
        service: ServiceType,
        characteristic: str,
    ) -> object:
        """Current value of one characteristic (``None`` when unset)."""
        return (
            self.values.get(accessory_id, {}).get(service, {}).get(characteristic)
        )


# ---------------------------------------------------------------------------
# MQTT adapter
# ---------------------------------------------------------------------------


@dataclass
class MqttAccessoryRegistry:
    """Publishes the accessory model to MQTT.

    All publication is fire-and-forget: failures are logged, never
    propagated, so a broker outage cannot break polling.
    """

    mqtt: MqttPort
    topic_prefix: str
    _services: dict[str, tuple[ServiceType, ...]] = field(
        default_factory=dict, init=False, repr=False
    )
    _values: dict[tuple[str, ServiceType], dict[str, object]] = field(
        default_factory=dict, init=False, repr=False
    )

    def _config_topic(self, accessory_id: str) -> str:
        return f"{self.topic_prefix}/{accessory_id}/config"

    def _state_topic(self, accessory_id: str, service: ServiceType) -> str:
        return f"{self.topic_prefix}/{accessory_id}/{service}/state"

    async def register(self, description: AccessoryDescription) -> None:
        """Publish the description; clear topics of services no longer offered."""
        accessory_id = description.accessory_id
        previous = self._services.get(accessory_id, ())
        for stale in set(previous) - set(description.services):
            self._values.pop((accessory_id, stale), None)
            await self._safe_publish(self._state_topic(accessory_id, stale), "")
        self._services[accessory_id] = description.services
        await self._safe_publish(
            self._config_topic(accessory_id),
            description.to_json(),
        )

    async def update(
        self,
        accessory_id: str,
        service: ServiceType,
        values: Mapping[str, object],
    ) -> None:
        merged = self._values.setdefault((accessory_id, service), {})
        merged.update(values)
        await self._safe_publish(
            self._state_topic(accessory_id, service),
            json.dumps(merged),
        )

    async def unregister(self, accessory_id: str) -> None:
        for service in self._services.pop(accessory_id, ()):
            self._values.pop((accessory_id, service), None)
            await self._safe_publish(self._state_topic(accessory_id, service), "")
        await self._safe_publish(self._config_topic(accessory_id), "")

    async def _safe_publish(self, topic: str, payload: str) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=True, qos=1)
        except Exception:
            logger.exception("Failed to publish accessory update to %s", topic)
