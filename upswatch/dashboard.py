"""
Composition root.

``Dashboard`` builds every reconciliation component once from a
``Settings`` object and owns their lifetimes: starting it begins polling
and opens the alert stream, stopping it cancels every timer, closes the
stream and releases the HTTP client.
"""

import logging
from typing import Optional

from .config import Settings
from .core.bus import EventBus
from .gateway.client import UPSApiClient
from .sync import queries
from .sync.alert_stream import LiveAlertStream
from .sync.predictions import PredictionPoller
from .sync.query_cache import QueryCache
from .sync.snapshot import DeviceSnapshotStore
from .sync.stats import StatsAggregator

logger = logging.getLogger(__name__)


class Dashboard:
    """
    All data sources of the monitoring dashboard, wired together.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        api: Optional[UPSApiClient] = None,
        alert_stream: Optional[LiveAlertStream] = None,
        enable_stream: bool = True,
    ):
        self.settings = settings
        self.bus = EventBus()
        self.api = api or UPSApiClient.from_settings(settings)
        self.queries = QueryCache()
        self.devices = DeviceSnapshotStore(self.api, interval=settings.SNAPSHOT_INTERVAL, bus=self.bus)
        self.predictions = PredictionPoller(
            self.api,
            interval=settings.PREDICTIONS_INTERVAL,
            limit=settings.PREDICTIONS_LIMIT,
            bus=self.bus,
        )
        self.stats = StatsAggregator(self.devices, self.predictions, bus=self.bus)
        self.alerts: Optional[LiveAlertStream] = None
        if enable_stream:
            self.alerts = alert_stream or LiveAlertStream.from_settings(settings, bus=self.bus)

        for spec in (
            queries.health_query(self.api),
            queries.alert_counts_query(self.api),
            queries.locations_query(self.api),
        ):
            self.queries.register(spec)

        self._started = False

    async def __aenter__(self) -> "Dashboard":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def start(self) -> None:
        if self._started:
            logger.warning("Dashboard is already running.")
            return
        self._started = True
        self.stats.attach()
        await self.devices.start()
        await self.predictions.start()
        await self.queries.start()
        if self.alerts is not None:
            await self.alerts.start()
        logger.info("Dashboard started (api=%s)", self.api.base_url)

    async def stop(self) -> None:
        if not self._started:
            await self.api.close()
            return
        self._started = False
        if self.alerts is not None:
            await self.alerts.stop()
        await self.queries.stop()
        await self.predictions.stop()
        await self.devices.stop()
        self.stats.detach()
        await self.api.close()
        logger.info("Dashboard stopped.")
