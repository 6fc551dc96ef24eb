"""Device-lifecycle reconciliation.

:class:`Reconciler` owns the collection of accessory records.  Each
:meth:`~Reconciler.reconcile` run diffs the upstream device list
against that collection:

1. **Filter** — hub devices, block-listed devices and (when an
   allow-list is configured) devices missing from it are excluded.
   Checks run in that order; the first match wins.
2. **Adopt** — a kept device with a known record is refreshed in place
   and any orphan marker is cleared; an unknown one gets a new record.
   Either way it ends up with a running poller.
3. **Age out** — records whose device is not among the kept devices are
   orphaned: the first time, ``orphaned_since`` is stamped, the poller
   stopped and the accessory fault-flagged.  Once
   ``now - orphaned_since`` strictly exceeds the grace period the
   record is evicted for good.

An empty upstream list is valid (no hub reachable, empty account): it
orphans every record.

Orphan timestamps use wall-clock UTC time because they are persisted
and compared across restarts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from airthings2mqtt._accessory import AccessoryPresenter
from airthings2mqtt._api import AirthingsApi
from airthings2mqtt._health import HealthReporter
from airthings2mqtt._models import Device
from airthings2mqtt._poller import DevicePoller, ErrorCallback, StateCallback
from airthings2mqtt._registry import AccessoryRegistry
from airthings2mqtt._settings import AccessorySettings
from airthings2mqtt._state import DeviceState
from airthings2mqtt._store import AccessoryRecord, AccessoryStore, accessory_uuid

logger = logging.getLogger(__name__)

PollerFactory = Callable[[AccessoryRecord, DeviceState, StateCallback], DevicePoller]
"""Builds an (unstarted) poller for a record, its state and the presenter callback."""


@dataclass
class ManagedAccessory:
    """A record together with its runtime collaborators."""

    record: AccessoryRecord
    presenter: AccessoryPresenter
    state: DeviceState
    poller: DevicePoller | None = None

    @property
    def status(self) -> str:
        """Health status string: ``orphaned``, ``fault`` or ``ok``."""
        if self.record.is_orphaned:
            return "orphaned"
        if self.state.is_faulted:
            return "fault"
        return "ok"


class Reconciler:
    """Keeps local accessories in sync with the upstream device list.

    Args:
        api: Upstream device source.
        registry: Accessory model the presenters write into.
        settings: Filters, grace period and presentation options.
        poller_factory: Creates a poller for an adopted record.
        store: Optional persistence; saved after every reconcile run.
        health: Optional availability reporter.
        on_error: Optional sink for discovery failures caught by
            :meth:`discover`.
        clock: Wall-clock source, defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        api: AirthingsApi,
        registry: AccessoryRegistry,
        settings: AccessorySettings,
        *,
        poller_factory: PollerFactory,
        store: AccessoryStore | None = None,
        health: HealthReporter | None = None,
        on_error: ErrorCallback | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._api = api
        self._registry = registry
        self._settings = settings
        self._poller_factory = poller_factory
        self._store = store
        self._health = health
        self._on_error = on_error
        self._clock = clock if clock is not None else lambda: datetime.now(UTC)
        self._accessories: dict[str, ManagedAccessory] = {}

    # -- Queries ------------------------------------------------------------

    @property
    def accessories(self) -> list[ManagedAccessory]:
        return list(self._accessories.values())

    @property
    def records(self) -> list[AccessoryRecord]:
        return [entry.record for entry in self._accessories.values()]

    def get(self, device_id: str) -> ManagedAccessory | None:
        return self._accessories.get(accessory_uuid(device_id))

    def device_statuses(self) -> dict[str, str]:
        return {
            entry.record.device_id: entry.status
            for entry in self._accessories.values()
        }

    # -- Lifecycle ----------------------------------------------------------

    async def restore(self) -> None:
        """Load persisted records and re-register their accessories.

        Restored records get no poller until a reconcile run confirms
        their device still exists upstream.
        """
        if self._store is None:
            return
        for record in self._store.load():
            if record.uuid in self._accessories:
                continue
            logger.debug("Loading accessory from cache: %s", record.display_name)
            entry = self._track(record)
            await entry.presenter.configure()
            if record.is_orphaned:
                await entry.presenter.set_fault(True)

    async def discover(self) -> bool:
        """Run :meth:`reconcile`, logging instead of raising on failure.

        Returns:
            True when the run completed.
        """
        try:
            await self.reconcile()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to run device discovery. %s", exc)
            if self._on_error is not None:
                await self._on_error(exc)
            return False
        return True

    async def reconcile(self) -> None:
        """Diff the upstream device list against the local records."""
        logger.debug("Starting device discovery phase")
        devices = await self._api.list_devices()

        if not devices:
            logger.warning("No devices found in this Airthings account.")
            await self._age_out(set())
            self._persist()
            return

        count = len(devices)
        logger.info(
            "API returned %d total %s. Analyzing topology...",
            count,
            "device" if count == 1 else "devices",
        )

        kept = [device for device in devices if not self._is_excluded(device)]
        for device in kept:
            await self._adopt(device)

        await self._age_out({device.id for device in kept})
        self._persist()

    def shutdown(self) -> None:
        """Stop every poller."""
        logger.debug("Terminating all active polling loops for shutdown")
        for entry in self._accessories.values():
            self._stop_poller(entry)

    # -- Steps --------------------------------------------------------------

    def _is_excluded(self, device: Device) -> bool:
        if device.is_hub:
            logger.debug("Filtering out structural HUB device: %s", device.id)
            return True

        if device.id in self._settings.ignored_devices:
            logger.info("Ignoring device due to ignored_devices filter: %s", device.id)
            return True

        included = self._settings.included_devices
        if included and device.id not in included:
            logger.debug("Skipping device absent from included_devices: %s", device.id)
            return True

        return False

    async def _adopt(self, device: Device) -> None:
        entry = self._accessories.get(accessory_uuid(device.id))
        returned = False
        if entry is not None:
            record = entry.record
            logger.info("Restoring existing accessory: %s", record.display_name)
            record.device = device
            if record.orphaned_since is not None:
                logger.info("Accessory %s is reported again", record.display_name)
                record.orphaned_since = None
                returned = True
        else:
            entry = self._track(AccessoryRecord.for_device(device))
            logger.info("Adding new accessory: %s", entry.record.display_name)

        await entry.presenter.configure()
        if returned:
            await entry.presenter.set_fault(entry.state.is_faulted)
        if self._health is not None:
            await self._health.publish_device_available(device.id)

        if entry.poller is None or not entry.poller.is_running:
            entry.poller = self._poller_factory(
                entry.record,
                entry.state,
                entry.presenter.apply,
            )
            entry.poller.start()

    async def _age_out(self, kept_ids: set[str]) -> None:
        now = self._clock()
        grace = timedelta(days=self._settings.orphan_grace_period_days)

        for entry in list(self._accessories.values()):
            record = entry.record
            if record.device_id in kept_ids:
                continue

            if record.orphaned_since is None:
                logger.info(
                    "Accessory %s is no longer reported; grace period started",
                    record.display_name,
                )
                record.orphaned_since = now

            if now - record.orphaned_since > grace:
                await self._evict(entry)
                continue

            self._stop_poller(entry)
            await entry.presenter.set_fault(True)
            if self._health is not None:
                self._health.set_device_status(record.device_id, "orphaned")

    async def _evict(self, entry: ManagedAccessory) -> None:
        record = entry.record
        logger.info("Unregistering orphaned accessory: %s", record.display_name)
        self._stop_poller(entry)
        del self._accessories[record.uuid]
        await self._registry.unregister(record.device_id)
        if self._health is not None:
            await self._health.publish_device_unavailable(record.device_id)

    # -- Helpers ------------------------------------------------------------

    def _track(self, record: AccessoryRecord) -> ManagedAccessory:
        entry = ManagedAccessory(
            record=record,
            presenter=AccessoryPresenter(record, self._registry, self._settings),
            state=DeviceState(),
        )
        self._accessories[record.uuid] = entry
        return entry

    @staticmethod
    def _stop_poller(entry: ManagedAccessory) -> None:
        if entry.poller is not None:
            entry.poller.stop()
            entry.poller = None

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.records)
        except OSError as exc:
            logger.error("Failed to persist accessory records: %s", exc)
