"""Translate device state into accessory characteristics.

:class:`AccessoryPresenter` is the presentation callback of one
device.  It decides which services the accessory exposes (configured
sensor kinds the device actually reports; battery whenever configured),
registers them, and on every poller notification maps the
:class:`~airthings2mqtt._state.DeviceState` onto characteristic values:

* faulted → ``status_fault = True`` on every service, readings untouched
* healthy → ``status_fault = False`` plus the classified readings of
  the latest sample

Readings absent from a sample leave the previous characteristic values
in place.
"""

from __future__ import annotations

import logging

from airthings2mqtt._characteristics import (
    SENSOR_BINDINGS,
    CharacteristicDescriptor,
    ServiceType,
    classify_air_quality,
    convert_radon,
    is_battery_low,
    is_co2_abnormal,
    is_leak,
    radon_level_characteristic,
)
from airthings2mqtt._models import Sample
from airthings2mqtt._registry import AccessoryDescription, AccessoryRegistry
from airthings2mqtt._settings import AccessorySettings, SensorKey
from airthings2mqtt._state import DeviceState
from airthings2mqtt._store import AccessoryRecord

logger = logging.getLogger(__name__)


def active_sensors(
    configured: list[SensorKey],
    device_sensors: tuple[str, ...],
) -> list[SensorKey]:
    """Configured sensor kinds that apply to a device, in config order."""
    active: list[SensorKey] = []
    for key in configured:
        if key in active:
            continue
        if key == "battery" or SENSOR_BINDINGS[key].sample_field in device_sensors:
            active.append(key)
    return active


class AccessoryPresenter:
    """Writes one accessory's characteristics into the registry."""

    def __init__(
        self,
        record: AccessoryRecord,
        registry: AccessoryRegistry,
        settings: AccessorySettings,
    ) -> None:
        self._record = record
        self._registry = registry
        self._settings = settings
        self._services: tuple[ServiceType, ...] = ()
        self._radon_char: CharacteristicDescriptor | None = None
        self._initialized: set[ServiceType] = set()

    @property
    def accessory_id(self) -> str:
        return self._record.device_id

    @property
    def services(self) -> tuple[ServiceType, ...]:
        return self._services

    def describe(self) -> AccessoryDescription:
        """Compute the services for the record's current device copy."""
        device = self._record.device
        keys = active_sensors(self._settings.sensors, device.sensors)
        self._services = tuple(SENSOR_BINDINGS[k].service for k in keys)

        custom: dict[ServiceType, tuple[CharacteristicDescriptor, ...]] = {}
        self._radon_char = None
        if (
            ServiceType.LEAK_SENSOR in self._services
            and self._settings.enable_eve_custom_characteristics
        ):
            self._radon_char = radon_level_characteristic(self._settings.radon_unit)
            custom[ServiceType.LEAK_SENSOR] = (self._radon_char,)

        return AccessoryDescription(
            accessory_id=device.id,
            uuid=self._record.uuid,
            name=self._record.display_name,
            model=device.device_type or "Sensor",
            serial_number=device.id,
            services=self._services,
            custom_characteristics=custom,
        )

    async def configure(self) -> None:
        """Register the accessory; newly added services start healthy.

        Safe to call again after the device copy changed: services kept
        from the previous configuration retain their values.
        """
        description = self.describe()
        logger.debug(
            "Configuring accessory %s with services %s",
            self._record.display_name,
            ", ".join(description.services) or "(none)",
        )
        await self._registry.register(description)
        self._initialized &= set(self._services)
        for service in self._services:
            if service in self._initialized:
                continue
            initial: dict[str, object] = {
                "name": self._service_name(service),
                "status_fault": False,
            }
            if service is ServiceType.LEAK_SENSOR:
                initial["leak_detected"] = False
            elif service is ServiceType.BATTERY:
                initial["charging_state"] = "not_chargeable"
            await self._registry.update(self.accessory_id, service, initial)
            self._initialized.add(service)

    async def apply(self, state: DeviceState) -> None:
        """Poller notification callback."""
        if state.is_faulted:
            await self.set_fault(True)
            return

        await self.set_fault(False)
        if state.latest_sample is not None:
            await self._apply_sample(state.latest_sample)

    async def set_fault(self, faulted: bool) -> None:
        for service in self._services:
            await self._registry.update(
                self.accessory_id, service, {"status_fault": faulted}
            )

    async def _apply_sample(self, sample: Sample) -> None:
        services = set(self._services)

        radon = sample.get("radonShortTermAvg")
        if radon is not None and ServiceType.LEAK_SENSOR in services:
            values: dict[str, object] = {
                "leak_detected": is_leak(radon, self._settings.radon_threshold)
            }
            if self._radon_char is not None:
                values["radon_level"] = convert_radon(radon, self._settings.radon_unit)
            await self._update(ServiceType.LEAK_SENSOR, values)

        co2 = sample.get("co2")
        if co2 is not None and ServiceType.CARBON_DIOXIDE_SENSOR in services:
            await self._update(
                ServiceType.CARBON_DIOXIDE_SENSOR,
                {
                    "carbon_dioxide_level": co2,
                    "carbon_dioxide_detected": is_co2_abnormal(co2),
                },
            )

        voc = sample.get("voc")
        if voc is not None and ServiceType.AIR_QUALITY_SENSOR in services:
            await self._update(
                ServiceType.AIR_QUALITY_SENSOR,
                {
                    "voc_density": voc,
                    "air_quality": classify_air_quality(voc).name.lower(),
                },
            )

        temp = sample.get("temp")
        if temp is not None and ServiceType.TEMPERATURE_SENSOR in services:
            await self._update(
                ServiceType.TEMPERATURE_SENSOR, {"current_temperature": temp}
            )

        humidity = sample.get("humidity")
        if humidity is not None and ServiceType.HUMIDITY_SENSOR in services:
            await self._update(
                ServiceType.HUMIDITY_SENSOR,
                {"current_relative_humidity": humidity},
            )

        battery = sample.get("battery")
        if battery is not None:
            await self._apply_battery(battery)

    async def _apply_battery(self, battery: float) -> None:
        low = is_battery_low(battery)
        if ServiceType.BATTERY in self._services:
            await self._update(
                ServiceType.BATTERY,
                {"battery_level": battery, "status_low_battery": low},
            )
        # Low battery fans out to every other service of the accessory.
        for service in self._services:
            if service is not ServiceType.BATTERY:
                await self._update(service, {"status_low_battery": low})

    async def _update(self, service: ServiceType, values: dict[str, object]) -> None:
        await self._registry.update(self.accessory_id, service, values)

    @staticmethod
    def _service_name(service: ServiceType) -> str:
        for binding in SENSOR_BINDINGS.values():
            if binding.service is service:
                return binding.display_name
        return str(service)
