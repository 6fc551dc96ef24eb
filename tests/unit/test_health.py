"""Tests for airthings2mqtt._health — heartbeats and accessory availability.

Test Techniques Used:
    - Specification-based Testing: DeviceStatus, HeartbeatPayload construction
    - State-based Testing: HealthReporter publishes to correct topics
    - Mock-based Isolation: MockMqttClient records publish calls
    - Clock Injection: Deterministic uptime via FakeClock
    - Exception Safety: _safe_publish swallows and logs errors
"""

from __future__ import annotations

import json
from dataclasses import FrozenInstanceError

import pytest

from airthings2mqtt._health import (
    DeviceStatus,
    HealthReporter,
    HeartbeatPayload,
    build_will_config,
)
from airthings2mqtt._mqtt import MockMqttClient
from airthings2mqtt.testing import FakeClock

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def reporter(mock_mqtt: MockMqttClient, fake_clock: FakeClock) -> HealthReporter:
    """HealthReporter wired to MockMqttClient and FakeClock."""
    fake_clock.advance(100.0)
    return HealthReporter(
        mqtt=mock_mqtt,
        topic_prefix="airthings",
        version="1.0.0",
        clock=fake_clock,
    )


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class TestDeviceStatus:
    def test_default_status_is_ok(self) -> None:
        assert DeviceStatus().status == "ok"

    def test_to_dict(self) -> None:
        assert DeviceStatus("orphaned").to_dict() == {"status": "orphaned"}

    def test_frozen(self) -> None:
        status = DeviceStatus()
        with pytest.raises(FrozenInstanceError):
            status.status = "fault"  # type: ignore[misc]


class TestHeartbeatPayload:
    def test_to_json_nests_device_statuses(self) -> None:
        payload = HeartbeatPayload(
            status="online",
            uptime_s=12.5,
            version="1.0.0",
            devices={"d1": DeviceStatus(), "d2": DeviceStatus("fault")},
        )

        assert json.loads(payload.to_json()) == {
            "status": "online",
            "uptime_s": 12.5,
            "version": "1.0.0",
            "devices": {"d1": {"status": "ok"}, "d2": {"status": "fault"}},
        }


class TestBuildWillConfig:
    def test_offline_on_status_topic(self) -> None:
        will = build_will_config("airthings")

        assert will.topic == "airthings/status"
        assert will.payload == "offline"
        assert will.qos == 1
        assert will.retain is True


# ---------------------------------------------------------------------------
# HealthReporter
# ---------------------------------------------------------------------------


class TestAvailability:
    """Technique: State-based Testing via MockMqttClient."""

    async def test_available_publishes_online_retained(
        self, reporter: HealthReporter, mock_mqtt: MockMqttClient
    ) -> None:
        await reporter.publish_device_available("d1")

        assert mock_mqtt.get_messages_for("airthings/d1/availability") == [
            ("online", True, 1)
        ]
        assert reporter.devices == {"d1": "ok"}

    async def test_unavailable_publishes_offline_and_untracks(
        self, reporter: HealthReporter, mock_mqtt: MockMqttClient
    ) -> None:
        await reporter.publish_device_available("d1")

        await reporter.publish_device_unavailable("d1")

        assert mock_mqtt.last_payload("airthings/d1/availability") == "offline"
        assert reporter.devices == {}


class TestDeviceStatuses:
    def test_set_and_remove(self, reporter: HealthReporter) -> None:
        reporter.set_device_status("d1", "fault")
        assert reporter.devices == {"d1": "fault"}

        reporter.remove_device("d1")
        assert reporter.devices == {}

    def test_update_only_touches_tracked_devices(
        self, reporter: HealthReporter
    ) -> None:
        reporter.set_device_status("d1")

        reporter.update_device_statuses({"d1": "orphaned", "gone": "ok"})

        assert reporter.devices == {"d1": "orphaned"}


class TestHeartbeat:
    """Technique: Clock Injection — deterministic uptime."""

    async def test_payload(
        self,
        reporter: HealthReporter,
        mock_mqtt: MockMqttClient,
        fake_clock: FakeClock,
    ) -> None:
        reporter.set_device_status("d1", "fault")
        fake_clock.advance(3600)

        await reporter.publish_heartbeat()

        [(payload, retain, qos)] = mock_mqtt.get_messages_for("airthings/status")
        data = json.loads(payload)
        assert data["status"] == "online"
        assert data["uptime_s"] == 3600
        assert data["version"] == "1.0.0"
        assert data["devices"] == {"d1": {"status": "fault"}}
        assert (retain, qos) == (True, 1)


class TestShutdown:
    async def test_devices_go_offline_before_bridge(
        self, reporter: HealthReporter, mock_mqtt: MockMqttClient
    ) -> None:
        await reporter.publish_device_available("d1")
        await reporter.publish_device_available("d2")
        mock_mqtt.reset()

        await reporter.shutdown()

        assert [(topic, payload) for topic, payload, *_ in mock_mqtt.published] == [
            ("airthings/d1/availability", "offline"),
            ("airthings/d2/availability", "offline"),
            ("airthings/status", "offline"),
        ]
        assert reporter.devices == {}


class TestSafePublish:
    """Technique: Exception Safety — failures are logged, not raised."""

    async def test_swallows_and_logs(
        self, fake_clock: FakeClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenMqtt:
            async def publish(
                self, topic: str, payload: str, *, retain: bool = False, qos: int = 1
            ) -> None:
                raise ConnectionError("broker gone")

        reporter = HealthReporter(
            mqtt=BrokenMqtt(),
            topic_prefix="airthings",
            version="1.0.0",
            clock=fake_clock,
        )

        await reporter.publish_heartbeat()

        assert "Failed to publish health to airthings/status" in caplog.text
