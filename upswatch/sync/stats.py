"""
Derived dashboard statistics.

``compute_dashboard_stats`` is a pure function of the device snapshot and
the prediction count. ``StatsAggregator`` recomputes it whenever either
input changes and republishes the result on the event bus.
"""

import logging
from collections import Counter
from typing import Iterable, Optional, Sequence

from ..core.bus import PREDICTIONS_UPDATED, SNAPSHOT_UPDATED, STATS_UPDATED, EventBus
from ..models import DashboardStats, UPSDevice
from .predictions import PredictionPoller
from .snapshot import DeviceSnapshotStore

logger = logging.getLogger(__name__)

# Weights for the alerts-in-the-last-24h estimate. This is a placeholder
# heuristic derived from current statuses, not a count of real alerts.
ALERT_WEIGHTS = {"failed": 3, "warning": 2, "risky": 1}


def estimate_alerts_last_24h(failed: int, warning: int, risky: int) -> int:
    return (
        failed * ALERT_WEIGHTS["failed"]
        + warning * ALERT_WEIGHTS["warning"]
        + risky * ALERT_WEIGHTS["risky"]
    )


def compute_dashboard_stats(records: Iterable[UPSDevice], predictions_count: int = 0) -> DashboardStats:
    """
    Group devices by status.

    Args:
        records: The current device snapshot.
        predictions_count: Number of predictions in the latest poll.

    Returns:
        DashboardStats: Counts per status, the alert estimate and the prediction count.
    """
    records = list(records)
    by_status = Counter(r.status for r in records)
    healthy = by_status["healthy"]
    warning = by_status["warning"]
    risky = by_status["risky"]
    failed = by_status["failed"]
    return DashboardStats(
        total_ups=len(records),
        active_ups=healthy,
        healthy_ups=healthy,
        warning_ups=warning,
        risky_ups=risky,
        failed_ups=failed,
        alerts_last_24h=estimate_alerts_last_24h(failed, warning, risky),
        predictions_count=predictions_count,
    )


class StatsAggregator:
    """
    Keeps ``DashboardStats`` in step with the snapshot store and the prediction poller.

    The result is memoized on the identity of the snapshot tuple and the
    prediction count, so repeated reads between updates are free.
    """

    def __init__(
        self,
        store: DeviceSnapshotStore,
        predictions: PredictionPoller,
        bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.predictions = predictions
        self.bus = bus
        self._records: Optional[Sequence[UPSDevice]] = None
        self._predictions_count: Optional[int] = None
        self._stats = DashboardStats()
        self.recompute_count = 0

    @property
    def stats(self) -> DashboardStats:
        self._refresh()
        return self._stats

    def _refresh(self) -> bool:
        records = self.store.records
        count = self.predictions.count
        if records is self._records and count == self._predictions_count:
            return False
        self._records = records
        self._predictions_count = count
        self._stats = compute_dashboard_stats(records, count)
        self.recompute_count += 1
        logger.debug(
            "Recomputed dashboard stats: total=%d failed=%d predictions=%d",
            self._stats.total_ups,
            self._stats.failed_ups,
            count,
        )
        return True

    def attach(self) -> None:
        """Subscribe to the bus so that every input update republishes the stats."""
        if self.bus is None:
            raise RuntimeError("StatsAggregator.attach() needs an event bus")
        self.bus.subscribe(SNAPSHOT_UPDATED, self._on_input_changed)
        self.bus.subscribe(PREDICTIONS_UPDATED, self._on_input_changed)

    def detach(self) -> None:
        if self.bus is None:
            return
        self.bus.unsubscribe(SNAPSHOT_UPDATED, self._on_input_changed)
        self.bus.unsubscribe(PREDICTIONS_UPDATED, self._on_input_changed)

    async def _on_input_changed(self, _data) -> None:
        if self._refresh():
            await self.bus.publish(STATS_UPDATED, self._stats)
