"""Bridge orchestrator.

:class:`Bridge` is the composition root.  It builds the infrastructure
(settings, logging, MQTT, health, error publication), the Airthings
client stack (aiohttp session → :class:`TokenManager` →
:class:`HttpRequester` → :class:`AirthingsClient`) and the
:class:`Reconciler`, then runs the bridge lifecycle until shutdown.

Typical usage::

    from airthings2mqtt import Bridge

    Bridge().run()

Lifecycle:

1. Bootstrap infrastructure and connect MQTT.
2. Publish the initial heartbeat, restore persisted accessories.
3. Run initial discovery (skipped when credentials are missing), then
   rediscover every ``discovery_interval`` seconds when configured.
4. Block until SIGTERM/SIGINT (or the injected shutdown event).
5. Tear down: stop every poller, close the HTTP session, publish
   ``offline``, disconnect MQTT.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import signal
import uuid
from collections.abc import Callable
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version

import aiohttp

from airthings2mqtt._api import AirthingsApi, AirthingsClient
from airthings2mqtt._clock import ClockPort, SystemClock
from airthings2mqtt._errors import ErrorPublisher
from airthings2mqtt._health import HealthReporter, build_will_config
from airthings2mqtt._http import HttpRequester
from airthings2mqtt._logging import configure_logging
from airthings2mqtt._mqtt import MqttClient, MqttLifecycle, MqttPort
from airthings2mqtt._poller import DevicePoller, StateCallback
from airthings2mqtt._reconcile import Reconciler
from airthings2mqtt._registry import MqttAccessoryRegistry
from airthings2mqtt._settings import Settings
from airthings2mqtt._state import DeviceState
from airthings2mqtt._store import (
    AccessoryRecord,
    AccessoryStore,
    JsonAccessoryStore,
    MemoryAccessoryStore,
)
from airthings2mqtt._token import TokenManager

logger = logging.getLogger(__name__)

try:
    _DEFAULT_VERSION = version("airthings2mqtt")
except PackageNotFoundError:
    _DEFAULT_VERSION = "0.0.0+unknown"


class Bridge:
    """Composition root and lifecycle orchestrator of the bridge."""

    def __init__(
        self,
        name: str = "airthings2mqtt",
        version: str = _DEFAULT_VERSION,
        *,
        description: str = "Airthings cloud to MQTT bridge",
        settings_class: type[Settings] = Settings,
        heartbeat_interval: float | None = 60.0,
    ) -> None:
        """Initialise the bridge.

        Args:
            name: Application name (MQTT client-id prefix, log service).
            version: Version string for heartbeats and ``--version``.
            description: Short description for CLI help text.
            settings_class: Settings class instantiated at startup.
            heartbeat_interval: Seconds between heartbeats published to
                ``{prefix}/status``; ``None`` disables the periodic loop.
        """
        if heartbeat_interval is not None and heartbeat_interval <= 0:
            msg = f"heartbeat_interval must be positive, got {heartbeat_interval}"
            raise ValueError(msg)
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class
        self._heartbeat_interval = heartbeat_interval

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    @property
    def description(self) -> str:
        return self._description

    @property
    def settings_class(self) -> type[Settings]:
        return self._settings_class

    # --- Entry points ------------------------------------------------------

    def run(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
    ) -> None:
        """Start the bridge (blocking).

        All parameters are optional overrides for programmatic or test
        use; production calls ``run()`` with no arguments.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self.run_async(
                    mqtt=mqtt,
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                ),
            )

    def cli(self) -> None:
        """Start the bridge with command-line argument parsing."""
        from airthings2mqtt._cli import build_cli  # noqa: PLC0415

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def run_async(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        api: AirthingsApi | None = None,
        store: AccessoryStore | None = None,
        wall_clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Run the full lifecycle until the shutdown event is set.

        Args:
            mqtt: Override MQTT client (inject a mock for tests).
            settings: Override settings (skip env loading).
            shutdown_event: Override shutdown event (skip signal handlers).
            clock: Override monotonic clock.
            api: Override the Airthings API; no HTTP session is opened.
            store: Override accessory persistence.
            wall_clock: Override the wall clock used for orphan ageing.
            rng: Random source for poller jitter.
        """
        # --- Phase 1: Bootstrap infrastructure ---
        resolved_settings = settings if settings is not None else self._settings_class()
        prefix = resolved_settings.mqtt.topic_prefix or self._name
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
            debug=resolved_settings.debug_mode,
        )
        if resolved_settings.debug_mode:
            logger.debug("Debug mode enabled")

        resolved_clock = clock if clock is not None else SystemClock()
        mqtt = self._create_mqtt(mqtt, resolved_settings, prefix)
        health_reporter = HealthReporter(
            mqtt=mqtt,
            topic_prefix=prefix,
            version=self._version,
            clock=resolved_clock,
        )
        error_publisher = ErrorPublisher(
            mqtt=mqtt,
            topic_prefix=prefix,
            clock=wall_clock,
        )

        if isinstance(mqtt, MqttLifecycle):
            await mqtt.start()

        shutdown_event = self._install_signal_handlers(shutdown_event)

        async with contextlib.AsyncExitStack() as stack:
            can_discover = True
            if api is None:
                can_discover = resolved_settings.airthings.has_credentials
                session = await stack.enter_async_context(aiohttp.ClientSession())
                api = self._create_api(session, resolved_settings, resolved_clock)

            reconciler = Reconciler(
                api,
                MqttAccessoryRegistry(mqtt=mqtt, topic_prefix=prefix),
                resolved_settings.accessories,
                poller_factory=self._poller_factory(
                    api,
                    resolved_settings,
                    error_publisher,
                    rng,
                ),
                store=store if store is not None else self._create_store(
                    resolved_settings
                ),
                health=health_reporter,
                on_error=error_publisher.publish,
                clock=wall_clock,
            )

            # --- Phase 2: Run ---
            # Overwrites the LWT "offline" the broker may have retained.
            await health_reporter.publish_heartbeat()
            await reconciler.restore()

            tasks: list[asyncio.Task[None]] = []
            if can_discover:
                if not await reconciler.discover():
                    logger.error("Failed to run initial device discovery")
                if resolved_settings.discovery_interval is not None:
                    tasks.append(
                        asyncio.create_task(
                            self._discovery_loop(
                                reconciler,
                                resolved_settings.discovery_interval,
                            ),
                        ),
                    )
            else:
                logger.error(
                    "Airthings client_id and client_secret are required; "
                    "skipping device discovery"
                )

            if self._heartbeat_interval is not None:
                tasks.append(
                    asyncio.create_task(
                        self._heartbeat_loop(
                            health_reporter,
                            reconciler,
                            self._heartbeat_interval,
                        ),
                    ),
                )

            try:
                await shutdown_event.wait()
            finally:
                # --- Phase 3: Tear down ---
                await self._cancel_tasks(tasks)
                reconciler.shutdown()

        await health_reporter.shutdown()

        if isinstance(mqtt, MqttLifecycle):
            await mqtt.stop()

        logger.info("Shutdown complete")

    # --- run_async helpers -------------------------------------------------

    def _create_mqtt(
        self,
        mqtt: MqttPort | None,
        settings: Settings,
        prefix: str,
    ) -> MqttPort:
        """Create the MQTT client, or return the injected one.

        When no ``client_id`` is configured one is generated from the
        app name and a short random suffix.
        """
        if mqtt is not None:
            return mqtt
        mqtt_settings = settings.mqtt
        if not mqtt_settings.client_id:
            generated_id = f"{self._name}-{uuid.uuid4().hex[:8]}"
            mqtt_settings = mqtt_settings.model_copy(
                update={"client_id": generated_id},
            )
        return MqttClient(settings=mqtt_settings, will=build_will_config(prefix))

    @staticmethod
    def _create_api(
        session: aiohttp.ClientSession,
        settings: Settings,
        clock: ClockPort,
    ) -> AirthingsClient:
        airthings = settings.airthings
        tokens = TokenManager(
            session,
            client_id=airthings.client_id,
            client_secret=airthings.client_secret.get_secret_value(),
            auth_url=airthings.auth_url,
            clock=clock,
            margin=airthings.token_refresh_margin,
            timeout=airthings.request_timeout,
        )
        http = HttpRequester(
            session,
            tokens,
            base_url=airthings.api_url,
            timeout=airthings.request_timeout,
        )
        return AirthingsClient(http)

    @staticmethod
    def _create_store(settings: Settings) -> AccessoryStore:
        if settings.state_file is None:
            return MemoryAccessoryStore()
        return JsonAccessoryStore(settings.state_file)

    @staticmethod
    def _poller_factory(
        api: AirthingsApi,
        settings: Settings,
        error_publisher: ErrorPublisher,
        rng: random.Random | None,
    ) -> Callable[[AccessoryRecord, DeviceState, StateCallback], DevicePoller]:
        def build(
            record: AccessoryRecord,
            state: DeviceState,
            on_update: StateCallback,
        ) -> DevicePoller:
            device_id = record.device_id

            async def on_error(exc: Exception) -> None:
                await error_publisher.publish(exc, device=device_id)

            return DevicePoller(
                device_id,
                api,
                state,
                on_update=on_update,
                on_error=on_error,
                interval=settings.airthings.poll_interval,
                jitter=settings.airthings.poll_jitter,
                rng=rng,
            )

        return build

    @staticmethod
    def _install_signal_handlers(
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event

    @staticmethod
    async def _discovery_loop(reconciler: Reconciler, interval: float) -> None:
        """Rediscover devices at a fixed interval until cancelled."""
        while True:
            await asyncio.sleep(interval)
            await reconciler.discover()

    @staticmethod
    async def _heartbeat_loop(
        health_reporter: HealthReporter,
        reconciler: Reconciler,
        interval: float,
    ) -> None:
        """Publish heartbeats with fresh device statuses until cancelled.

        Sleeps first: the initial heartbeat is published at startup.
        """
        while True:
            await asyncio.sleep(interval)
            health_reporter.update_device_statuses(reconciler.device_statuses())
            await health_reporter.publish_heartbeat()

    @staticmethod
    async def _cancel_tasks(tasks: list[asyncio.Task[None]]) -> None:
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(
                result,
                asyncio.CancelledError,
            ):
                logger.error("Task error during shutdown: %s", result)
