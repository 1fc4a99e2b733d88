"""
Device snapshot store.

Holds the fleet-wide list of UPS device records used by the dashboard and
list views. The list is fetched in full on start and then every
``interval`` seconds. Manual ``refetch()`` calls may overlap with the timer;
each fetch carries a sequence number and only the newest completion is
applied. On failure the previous snapshot stays in place and ``error``
describes what went wrong.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from ..core.bus import SNAPSHOT_UPDATED, EventBus
from ..gateway.client import GatewayError, TransportFailure, UPSApiClient
from ..models import UPSDevice
from .sequence import SequenceGate

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300.0

FETCH_ERROR = "Failed to fetch UPS data"
NETWORK_ERROR = "Network error while fetching UPS data"


class DeviceSnapshotStore:
    """
    The single writer of the in-memory device list.
    """

    def __init__(self, api: UPSApiClient, *, interval: float = DEFAULT_INTERVAL, bus: Optional[EventBus] = None):
        """
        Initialize the store.

        Args:
            api: Gateway used for ``GET /ups``.
            interval: Seconds between automatic refreshes.
            bus: Optional event bus notified with ``SNAPSHOT_UPDATED``.
        """
        self.api = api
        self.interval = interval
        self.bus = bus
        self.records: Tuple[UPSDevice, ...] = ()
        self.is_loading = True
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None
        self._gate = SequenceGate()
        self._task: Optional[asyncio.Task] = None
        self._should_stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Start the refresh loop as a background task."""
        if self.running:
            logger.warning("Snapshot store is already running.")
            return

        logger.info(f"Starting device snapshot refresh every {self.interval:g}s")
        self._should_stop.clear()
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        """Stop the refresh loop. A fetch in progress is abandoned."""
        if not self.running:
            return

        self._should_stop.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Device snapshot refresh stopped.")

    async def _poll_loop(self):
        while not self._should_stop.is_set():
            await self.refetch()
            try:
                await asyncio.wait_for(self._should_stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def refetch(self) -> Tuple[UPSDevice, ...]:
        """
        Fetch the full device list and apply it if no newer fetch has completed.

        Safe to call while the timer-driven fetch is running.

        Returns:
            The current snapshot after this fetch settles.
        """
        seq = self._gate.issue()
        try:
            page = await self.api.list_ups()
        except TransportFailure as e:
            self._apply_error(seq, NETWORK_ERROR, e)
            return self.records
        except GatewayError as e:
            self._apply_error(seq, FETCH_ERROR, e)
            return self.records

        if not self._gate.accept(seq):
            logger.debug("Discarding stale UPS snapshot seq=%d applied=%d", seq, self._gate.applied)
            return self.records

        self.records = tuple(page.data)
        self.error = None
        self.is_loading = False
        self.last_updated = datetime.now(timezone.utc)
        logger.info("UPS snapshot updated: %d devices", len(self.records))

        if self.bus:
            await self.bus.publish(SNAPSHOT_UPDATED, self.records)
        return self.records

    def _apply_error(self, seq: int, message: str, exc: GatewayError) -> None:
        if not self._gate.accept(seq):
            logger.debug("Ignoring stale UPS snapshot failure seq=%d: %s", seq, exc)
            return
        self.error = message
        self.is_loading = False
        logger.warning(f"{message}: {exc} (keeping {len(self.records)} cached devices)")

    def get(self, ups_id: str) -> Optional[UPSDevice]:
        for record in self.records:
            if record.ups_id == ups_id:
                return record
        return None


def filter_devices(
    records: Iterable[UPSDevice],
    *,
    search: str = "",
    status: str = "all",
    location: str = "all",
) -> List[UPSDevice]:
    """
    Filter devices the way the list view does.

    ``search`` matches the UPS id or location case-insensitively; ``"all"``
    disables the status or location filter.
    """
    needle = search.strip().lower()
    result = []
    for ups in records:
        if needle and needle not in ups.ups_id.lower() and needle not in ups.location.lower():
            continue
        if status != "all" and ups.status != status:
            continue
        if location != "all" and ups.location != location:
            continue
        result.append(ups)
    return result


def _numeric_id(ups_id: str) -> int:
    digits = re.sub(r"\D", "", ups_id)
    return int(digits) if digits else 0


def sort_by_numeric_id(records: Iterable[UPSDevice]) -> List[UPSDevice]:
    """Sort by the digits in the id ("UPS002" -> 2); ids without digits sort as 0."""
    return sorted(records, key=lambda ups: _numeric_id(ups.ups_id))
