"""Public test-support utilities for airthings2mqtt.

Re-exports test doubles and factories so that test suites can import
everything from a single ``airthings2mqtt.testing`` namespace.

Provided symbols:

- :class:`MockMqttClient` — in-memory MQTT double that records calls.
- :class:`NullMqttClient` — silent no-op MQTT adapter.
- :class:`MockAccessoryRegistry` — in-memory accessory registry.
- :class:`FakeClock` — deterministic monotonic clock.
- :class:`FakeWallClock` — deterministic wall clock.
- :func:`make_settings` — ``Settings`` factory that ignores ``.env``.
"""

from airthings2mqtt._mqtt import MockMqttClient, NullMqttClient
from airthings2mqtt._registry import MockAccessoryRegistry
from airthings2mqtt.testing._clock import FakeClock, FakeWallClock
from airthings2mqtt.testing._settings import make_settings

__all__ = [
    "FakeClock",
    "FakeWallClock",
    "MockAccessoryRegistry",
    "MockMqttClient",
    "NullMqttClient",
    "make_settings",
]
