"""Tests for airthings2mqtt._accessory — state → characteristic mapping.

Test Techniques Used:
    - State-based Testing: MockAccessoryRegistry holds merged values
    - Decision Table Testing: faulted vs healthy state
    - Configuration Testing: sensor selection and custom characteristics
"""

from __future__ import annotations

import pytest

from airthings2mqtt._accessory import AccessoryPresenter, active_sensors
from airthings2mqtt._characteristics import RADON_CHARACTERISTIC_UUID, ServiceType
from airthings2mqtt._registry import MockAccessoryRegistry
from airthings2mqtt._settings import AccessorySettings
from airthings2mqtt._state import DeviceState
from airthings2mqtt._store import AccessoryRecord
from tests.fixtures.doubles import make_device

ALL_SENSORS = ("radonShortTermAvg", "co2", "voc", "temp", "humidity", "battery")


def make_presenter(
    registry: MockAccessoryRegistry,
    *,
    device_sensors: tuple[str, ...] = ALL_SENSORS,
    **settings: object,
) -> AccessoryPresenter:
    record = AccessoryRecord.for_device(
        make_device("d1", sensors=device_sensors, location="Basement")
    )
    return AccessoryPresenter(record, registry, AccessorySettings(**settings))


# ---------------------------------------------------------------------------
# Service selection
# ---------------------------------------------------------------------------


class TestActiveSensors:
    def test_only_reported_sensors_are_active(self) -> None:
        assert active_sensors(["radon", "co2"], ("radonShortTermAvg",)) == ["radon"]

    def test_battery_is_always_active(self) -> None:
        assert active_sensors(["battery"], ()) == ["battery"]

    def test_duplicates_collapse(self) -> None:
        assert active_sensors(["radon", "radon"], ("radonShortTermAvg",)) == ["radon"]


class TestConfigure:
    async def test_registers_description(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        presenter = make_presenter(mock_registry)

        await presenter.configure()

        description = mock_registry.descriptions["d1"]
        assert description.name == "Basement Sensor"
        assert description.manufacturer == "Airthings"
        assert description.serial_number == "d1"
        assert description.services == (
            ServiceType.LEAK_SENSOR,
            ServiceType.BATTERY,
        )

    async def test_all_configured_sensors(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        presenter = make_presenter(
            mock_registry,
            sensors=["radon", "co2", "voc", "temp", "humidity", "battery"],
        )

        await presenter.configure()

        assert set(presenter.services) == set(ServiceType)

    async def test_new_services_start_healthy(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        presenter = make_presenter(mock_registry)

        await presenter.configure()

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "status_fault") is False
        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is False
        assert (
            mock_registry.value("d1", ServiceType.BATTERY, "charging_state")
            == "not_chargeable"
        )

    async def test_reconfigure_keeps_existing_values(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        presenter = make_presenter(mock_registry)
        await presenter.configure()
        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 300.0}))

        await presenter.configure()

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is True

    async def test_custom_characteristic_only_when_enabled(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        plain = make_presenter(mock_registry)
        assert plain.describe().custom_characteristics == {}

        eve = make_presenter(mock_registry, enable_eve_custom_characteristics=True)
        custom = eve.describe().custom_characteristics

        (descriptor,) = custom[ServiceType.LEAK_SENSOR]
        assert descriptor.uuid == RADON_CHARACTERISTIC_UUID

    async def test_no_custom_characteristic_without_radon(
        self, mock_registry: MockAccessoryRegistry
    ) -> None:
        presenter = make_presenter(
            mock_registry,
            sensors=["co2"],
            enable_eve_custom_characteristics=True,
        )

        assert presenter.describe().custom_characteristics == {}


# ---------------------------------------------------------------------------
# apply()
# ---------------------------------------------------------------------------


class TestApply:
    """Technique: Decision Table Testing — faulted vs healthy state."""

    @pytest.fixture
    async def presenter(self, mock_registry: MockAccessoryRegistry) -> AccessoryPresenter:
        presenter = make_presenter(
            mock_registry,
            sensors=["radon", "co2", "voc", "temp", "humidity", "battery"],
            enable_eve_custom_characteristics=True,
        )
        await presenter.configure()
        return presenter

    async def test_radon_above_threshold_is_leak(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 200.0}))

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is True
        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "radon_level") == 200.0

    async def test_radon_below_threshold_is_not_leak(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 50.0}))

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is False

    async def test_full_sample(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(
            DeviceState(
                latest_sample={
                    "co2": 1200.0,
                    "voc": 600.0,
                    "temp": 21.5,
                    "humidity": 45.0,
                }
            )
        )

        co2 = mock_registry.values["d1"][ServiceType.CARBON_DIOXIDE_SENSOR]
        assert co2["carbon_dioxide_level"] == 1200.0
        assert co2["carbon_dioxide_detected"] is True
        air = mock_registry.values["d1"][ServiceType.AIR_QUALITY_SENSOR]
        assert air["air_quality"] == "fair"
        assert air["voc_density"] == 600.0
        assert (
            mock_registry.value("d1", ServiceType.TEMPERATURE_SENSOR, "current_temperature")
            == 21.5
        )
        assert (
            mock_registry.value(
                "d1", ServiceType.HUMIDITY_SENSOR, "current_relative_humidity"
            )
            == 45.0
        )

    async def test_low_battery_fans_out(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(latest_sample={"battery": 10.0}))

        assert mock_registry.value("d1", ServiceType.BATTERY, "battery_level") == 10.0
        for service in presenter.services:
            assert mock_registry.value("d1", service, "status_low_battery") is True

    async def test_fault_sets_flag_and_keeps_readings(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 200.0}))

        await presenter.apply(
            DeviceState(latest_sample={"radonShortTermAvg": 10.0}, is_faulted=True)
        )

        for service in presenter.services:
            assert mock_registry.value("d1", service, "status_fault") is True
        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is True

    async def test_recovery_clears_fault(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(is_faulted=True))

        await presenter.apply(DeviceState(latest_sample={"temp": 20.0}))

        for service in presenter.services:
            assert mock_registry.value("d1", service, "status_fault") is False

    async def test_missing_readings_leave_values_untouched(
        self, presenter: AccessoryPresenter, mock_registry: MockAccessoryRegistry
    ) -> None:
        await presenter.apply(DeviceState(latest_sample={"temp": 20.0}))

        await presenter.apply(DeviceState(latest_sample={"humidity": 40.0}))

        assert (
            mock_registry.value("d1", ServiceType.TEMPERATURE_SENSOR, "current_temperature")
            == 20.0
        )

    async def test_radon_level_in_pci(self, mock_registry: MockAccessoryRegistry) -> None:
        presenter = make_presenter(
            mock_registry,
            enable_eve_custom_characteristics=True,
            radon_unit="pCi/L",
        )
        await presenter.configure()

        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 148.0}))

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "radon_level") == 4.0
        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is False

    async def test_custom_threshold(self, mock_registry: MockAccessoryRegistry) -> None:
        presenter = make_presenter(mock_registry, radon_threshold=40)
        await presenter.configure()

        await presenter.apply(DeviceState(latest_sample={"radonShortTermAvg": 50.0}))

        assert mock_registry.value("d1", ServiceType.LEAK_SENSOR, "leak_detected") is True
