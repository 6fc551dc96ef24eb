"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  All variables carry the ``AIRTHINGS2MQTT_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``AIRTHINGS2MQTT_AIRTHINGS__CLIENT_ID=abc``.

The schema is split into four sections:

* **MQTT** — broker connection and topic layout.
* **Logging** — level, format, optional file sink, rotation.
* **Airthings** — API credentials, endpoints, polling cadence.
* **Accessories** — which sensors to expose and how to classify them,
  device filters, orphan grace period.

List-valued fields (``sensors``, ``ignored_devices``, ...) are read
from the environment as JSON arrays, e.g.
``AIRTHINGS2MQTT_ACCESSORIES__SENSORS='["radon","co2"]'``.

All durations are in **seconds** unless the field name says otherwise
(``orphan_grace_period_days``).
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

SensorKey = Literal["radon", "co2", "voc", "temp", "humidity", "battery"]
"""Sensor kinds that can be exposed as accessory services."""

RadonUnit = Literal["Bq/m3", "pCi/L"]

AIRTHINGS_API_URL = "https://ext-api.airthings.com/v1"
AIRTHINGS_AUTH_URL = "https://accounts-api.airthings.com/v1/token"

# -------------------------------------------------------------------
# Sub-models (BaseModel, not BaseSettings; nested via composition)
# -------------------------------------------------------------------


class MqttSettings(BaseModel):
    """MQTT broker connection and topic configuration.

    Environment variables (with ``__`` nesting)::

        AIRTHINGS2MQTT_MQTT__HOST=broker.local
        AIRTHINGS2MQTT_MQTT__PORT=1883
        AIRTHINGS2MQTT_MQTT__USERNAME=user
        AIRTHINGS2MQTT_MQTT__PASSWORD=secret
        AIRTHINGS2MQTT_MQTT__TOPIC_PREFIX=airthings
    """

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="MQTT broker port.",
    )
    username: str | None = Field(
        default=None,
        description="MQTT authentication username (optional).",
    )
    password: SecretStr | None = Field(
        default=None,
        description="MQTT authentication password (optional).",
    )
    client_id: str = Field(
        default="",
        description=(
            "MQTT client identifier. When empty, the bridge generates "
            "'airthings2mqtt-{hex8}' at startup."
        ),
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description=(
            "Initial seconds to wait before reconnecting after "
            "connection loss.  Doubles on each consecutive failure "
            "(exponential backoff with jitter) up to "
            "``reconnect_max_interval``."
        ),
    )
    reconnect_max_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Upper bound (seconds) for the reconnect backoff.",
    )
    topic_prefix: str = Field(
        default="airthings",
        description="Root prefix for all MQTT topics.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for container
      log aggregators.
    - ``"text"`` — human-readable timestamped format for local
      development and direct terminal use.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format ('json' or 'text').",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum log file size in megabytes before rotation.",
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


class AirthingsSettings(BaseModel):
    """Airthings consumer API credentials and polling cadence.

    ``client_id`` and ``client_secret`` default to empty strings rather
    than being required: a missing credential is reported as an error
    at startup and discovery is skipped, but the process keeps running
    (so the MQTT status topic still reports the bridge as online).
    """

    client_id: str = Field(
        default="",
        description="OAuth2 client id of the Airthings API client.",
    )
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="OAuth2 client secret of the Airthings API client.",
    )
    api_url: str = Field(
        default=AIRTHINGS_API_URL,
        description="Base URL of the Airthings consumer API.",
    )
    auth_url: str = Field(
        default=AIRTHINGS_AUTH_URL,
        description="OAuth2 token endpoint.",
    )
    request_timeout: Annotated[float, Field(gt=0)] = Field(
        default=10.0,
        description="Deadline for every HTTP request, in seconds.",
    )
    token_refresh_margin: Annotated[float, Field(ge=0)] = Field(
        default=60.0,
        description=(
            "Seconds before the advertised expiry at which a cached "
            "token is considered stale."
        ),
    )
    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=15 * 60.0,
        description="Seconds between two sample fetches for one device.",
    )
    poll_jitter: Annotated[float, Field(ge=0)] = Field(
        default=5.0,
        description=(
            "Upper bound (seconds, exclusive) of the random delay before "
            "a poller's first fetch."
        ),
    )

    @property
    def has_credentials(self) -> bool:
        """True when both client id and secret are configured."""
        return bool(self.client_id) and bool(self.client_secret.get_secret_value())


class AccessorySettings(BaseModel):
    """Presentation and device-lifecycle options.

    A device listed in both ``ignored_devices`` and ``included_devices``
    is excluded: the block-list is checked first.
    """

    radon_threshold: float = Field(
        default=150.0,
        description=(
            "Radon short-term average (Bq/m3) above which the leak "
            "sensor reports a leak.  Negative values are clamped to 0."
        ),
    )
    radon_unit: RadonUnit = Field(
        default="Bq/m3",
        description=(
            "Display unit of the custom radon-level characteristic.  "
            "Classification always uses raw Bq/m3."
        ),
    )
    sensors: list[SensorKey] = Field(
        default_factory=lambda: ["radon", "battery"],
        description="Sensor kinds to expose as accessory services.",
    )
    enable_eve_custom_characteristics: bool = Field(
        default=False,
        description="Attach the custom radon-level characteristic.",
    )
    orphan_grace_period_days: Annotated[float, Field(ge=0)] = Field(
        default=14.0,
        description=(
            "Days an accessory may be missing upstream before it is "
            "removed permanently."
        ),
    )
    ignored_devices: list[str] = Field(
        default_factory=list,
        description="Device ids never exposed.",
    )
    included_devices: list[str] = Field(
        default_factory=list,
        description="When non-empty, only these device ids are exposed.",
    )

    @field_validator("radon_threshold")
    @classmethod
    def _clamp_threshold(cls, value: float) -> float:
        return max(0.0, value)


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for the airthings2mqtt bridge.

    Loaded from environment variables with the prefix
    ``AIRTHINGS2MQTT_``, the nested delimiter ``__`` and an optional
    ``.env`` file in the working directory.

    Example ``.env``::

        AIRTHINGS2MQTT_AIRTHINGS__CLIENT_ID=abc
        AIRTHINGS2MQTT_AIRTHINGS__CLIENT_SECRET=s3cret
        AIRTHINGS2MQTT_ACCESSORIES__SENSORS=["radon","co2","battery"]
        AIRTHINGS2MQTT_MQTT__HOST=broker.local
        AIRTHINGS2MQTT_LOGGING__FORMAT=text
        AIRTHINGS2MQTT_DEBUG_MODE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="AIRTHINGS2MQTT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="MQTT broker connection settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
    airthings: AirthingsSettings = Field(
        default_factory=AirthingsSettings,
        description="Airthings API settings.",
    )
    accessories: AccessorySettings = Field(
        default_factory=AccessorySettings,
        description="Accessory presentation and lifecycle settings.",
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose tracing; forces the DEBUG log level.",
    )
    discovery_interval: Annotated[float, Field(gt=0)] | None = Field(
        default=None,
        description=(
            "Seconds between device rediscovery runs.  ``None`` runs "
            "discovery once at startup only."
        ),
    )
    state_file: str | None = Field(
        default=None,
        description=(
            "JSON file persisting accessory records (including orphan "
            "timestamps) across restarts.  ``None`` keeps them in memory."
        ),
    )
