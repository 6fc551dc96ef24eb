"""Accessory services, characteristic descriptors and classification rules.

Numeric readings are mapped onto categorical characteristic values
here, independent of any transport:

* radon above the configured threshold → leak detected
* VOC → air-quality tier (``<=250`` excellent … ``>2000`` poor)
* CO2 above 1000 ppm → abnormal
* battery below 20 % → low battery

The custom radon-level characteristic is a statically declared
descriptor.  :func:`radon_level_characteristic` builds it lazily, once
per display unit, and returns the same object on every later call.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from enum import IntEnum, StrEnum

from airthings2mqtt._settings import RadonUnit, SensorKey

RADON_CHARACTERISTIC_UUID = "B423235A-3D24-4B4F-8097-90035A0D2F30"

EXCELLENT_VOC_THRESHOLD = 250
GOOD_VOC_THRESHOLD = 500
FAIR_VOC_THRESHOLD = 1000
INFERIOR_VOC_THRESHOLD = 2000

HIGH_CO2_THRESHOLD = 1000
LOW_BATTERY_THRESHOLD = 20

BQ_PER_PCI = 37.0
"""1 pCi/L equals 37 Bq/m3."""


class ServiceType(StrEnum):
    """Accessory services, named after the topic segment they publish to."""

    LEAK_SENSOR = "leak_sensor"
    CARBON_DIOXIDE_SENSOR = "carbon_dioxide_sensor"
    AIR_QUALITY_SENSOR = "air_quality_sensor"
    TEMPERATURE_SENSOR = "temperature_sensor"
    HUMIDITY_SENSOR = "humidity_sensor"
    BATTERY = "battery"


class AirQuality(IntEnum):
    """Air-quality tiers (values follow the HomeKit enumeration)."""

    UNKNOWN = 0
    EXCELLENT = 1
    GOOD = 2
    FAIR = 3
    INFERIOR = 4
    POOR = 5


@dataclass(frozen=True, slots=True)
class SensorBinding:
    """Ties a configurable sensor key to its sample field and service."""

    key: SensorKey
    sample_field: str
    service: ServiceType
    display_name: str


SENSOR_BINDINGS: dict[SensorKey, SensorBinding] = {
    "radon": SensorBinding(
        "radon", "radonShortTermAvg", ServiceType.LEAK_SENSOR, "Radon"
    ),
    "co2": SensorBinding("co2", "co2", ServiceType.CARBON_DIOXIDE_SENSOR, "CO2"),
    "voc": SensorBinding(
        "voc", "voc", ServiceType.AIR_QUALITY_SENSOR, "Air Quality"
    ),
    "temp": SensorBinding(
        "temp", "temp", ServiceType.TEMPERATURE_SENSOR, "Temperature"
    ),
    "humidity": SensorBinding(
        "humidity", "humidity", ServiceType.HUMIDITY_SENSOR, "Humidity"
    ),
    "battery": SensorBinding("battery", "battery", ServiceType.BATTERY, "Battery"),
}


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_leak(radon: float, threshold: float) -> bool:
    """Radon strictly above *threshold* counts as a leak."""
    return radon > threshold


def classify_air_quality(voc: float) -> AirQuality:
    if voc <= EXCELLENT_VOC_THRESHOLD:
        return AirQuality.EXCELLENT
    if voc <= GOOD_VOC_THRESHOLD:
        return AirQuality.GOOD
    if voc <= FAIR_VOC_THRESHOLD:
        return AirQuality.FAIR
    if voc <= INFERIOR_VOC_THRESHOLD:
        return AirQuality.INFERIOR
    return AirQuality.POOR


def is_co2_abnormal(co2: float) -> bool:
    return co2 > HIGH_CO2_THRESHOLD


def is_battery_low(battery: float) -> bool:
    return battery < LOW_BATTERY_THRESHOLD


def convert_radon(bq_per_m3: float, unit: RadonUnit) -> float:
    """Express a Bq/m3 reading in *unit*."""
    if unit == "pCi/L":
        return round(bq_per_m3 / BQ_PER_PCI, 2)
    return bq_per_m3


# ---------------------------------------------------------------------------
# Custom characteristic descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CharacteristicDescriptor:
    """Static description of a non-standard characteristic."""

    name: str
    uuid: str
    format: str
    unit: str
    min_value: float
    max_value: float
    min_step: float
    perms: tuple[str, ...] = ("read", "notify")

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "uuid": self.uuid,
            "format": self.format,
            "unit": self.unit,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "min_step": self.min_step,
            "perms": list(self.perms),
        }


@functools.cache
def radon_level_characteristic(unit: RadonUnit = "Bq/m3") -> CharacteristicDescriptor:
    """Return the process-wide radon-level descriptor for *unit*."""
    if unit == "pCi/L":
        return CharacteristicDescriptor(
            name="Radon Level",
            uuid=RADON_CHARACTERISTIC_UUID,
            format="float",
            unit="pCi/L",
            min_value=0,
            max_value=round(10000 / BQ_PER_PCI, 2),
            min_step=0.01,
        )
    return CharacteristicDescriptor(
        name="Radon Level",
        uuid=RADON_CHARACTERISTIC_UUID,
        format="float",
        unit="Bq/m3",
        min_value=0,
        max_value=10000,
        min_step=1,
    )
