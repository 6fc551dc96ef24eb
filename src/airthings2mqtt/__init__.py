"""airthings2mqtt.

Polls Airthings air-quality monitors through the Airthings consumer API
and publishes them as accessories over MQTT.
"""

from importlib.metadata import PackageNotFoundError, version

from airthings2mqtt._accessory import AccessoryPresenter, active_sensors
from airthings2mqtt._api import AirthingsApi, AirthingsClient
from airthings2mqtt._app import Bridge
from airthings2mqtt._characteristics import (
    AirQuality,
    CharacteristicDescriptor,
    ServiceType,
    classify_air_quality,
    is_battery_low,
    is_co2_abnormal,
    is_leak,
    radon_level_characteristic,
)
from airthings2mqtt._clock import ClockPort, SystemClock
from airthings2mqtt._errors import ErrorPayload, ErrorPublisher, build_error_payload
from airthings2mqtt._exceptions import (
    AirthingsError,
    AuthError,
    ForbiddenError,
    HttpError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
)
from airthings2mqtt._health import (
    DeviceStatus,
    HealthReporter,
    HeartbeatPayload,
    build_will_config,
)
from airthings2mqtt._http import HttpRequester, TokenProvider
from airthings2mqtt._logging import JsonFormatter, configure_logging
from airthings2mqtt._models import Device, DeviceLocation, DeviceSegment, Sample
from airthings2mqtt._mqtt import (
    MockMqttClient,
    MqttClient,
    MqttLifecycle,
    MqttPort,
    NullMqttClient,
    WillConfig,
)
from airthings2mqtt._poller import DevicePoller, PollerStatus
from airthings2mqtt._reconcile import ManagedAccessory, Reconciler
from airthings2mqtt._registry import (
    AccessoryDescription,
    AccessoryRegistry,
    MockAccessoryRegistry,
    MqttAccessoryRegistry,
)
from airthings2mqtt._settings import (
    AccessorySettings,
    AirthingsSettings,
    LoggingSettings,
    MqttSettings,
    Settings,
)
from airthings2mqtt._state import DeviceState
from airthings2mqtt._store import (
    AccessoryRecord,
    AccessoryStore,
    JsonAccessoryStore,
    MemoryAccessoryStore,
    accessory_uuid,
)
from airthings2mqtt._token import Token, TokenManager

try:
    __version__ = version("airthings2mqtt")
except PackageNotFoundError:
    # Editable installs without metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Bridge
    "Bridge",
    # API
    "AirthingsApi",
    "AirthingsClient",
    "HttpRequester",
    "Token",
    "TokenManager",
    "TokenProvider",
    # Errors
    "AirthingsError",
    "AuthError",
    "ErrorPayload",
    "ErrorPublisher",
    "ForbiddenError",
    "HttpError",
    "NetworkError",
    "RateLimitError",
    "RequestTimeoutError",
    "build_error_payload",
    # Models
    "Device",
    "DeviceLocation",
    "DeviceSegment",
    "DeviceState",
    "Sample",
    # Polling
    "DevicePoller",
    "PollerStatus",
    # Accessories
    "AccessoryDescription",
    "AccessoryPresenter",
    "AccessoryRecord",
    "AccessoryRegistry",
    "AccessoryStore",
    "AirQuality",
    "CharacteristicDescriptor",
    "JsonAccessoryStore",
    "ManagedAccessory",
    "MemoryAccessoryStore",
    "MockAccessoryRegistry",
    "MqttAccessoryRegistry",
    "Reconciler",
    "ServiceType",
    "accessory_uuid",
    "active_sensors",
    "classify_air_quality",
    "is_battery_low",
    "is_co2_abnormal",
    "is_leak",
    "radon_level_characteristic",
    # Clock
    "ClockPort",
    "SystemClock",
    # Health
    "DeviceStatus",
    "HealthReporter",
    "HeartbeatPayload",
    "build_will_config",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # MQTT
    "MockMqttClient",
    "MqttClient",
    "MqttLifecycle",
    "MqttPort",
    "NullMqttClient",
    "WillConfig",
    # Settings
    "AccessorySettings",
    "AirthingsSettings",
    "LoggingSettings",
    "MqttSettings",
    "Settings",
]
