"""
Real-time reconciliation layer for upswatch.

This package keeps the fleet's device records, statuses and prediction
alerts consistent across independently paced sources:
- Poll-driven query cache with per-resource cadences
- Device snapshot store (full-list refresh)
- Prediction poller and severity classification
- Derived dashboard statistics
- Live alert stream client (WebSocket push)
"""

from .alert_stream import ConnectionState, LiveAlertStream, Notification, build_notification
from .predictions import PredictionPoller, Severity, classify_prediction, failure_reasons
from .query_cache import QueryCache, QuerySpec, QueryState
from .sequence import SequenceGate
from .snapshot import DeviceSnapshotStore, filter_devices, sort_by_numeric_id
from .stats import StatsAggregator, compute_dashboard_stats

__all__ = [
    "ConnectionState", "LiveAlertStream", "Notification", "build_notification",
    "PredictionPoller", "Severity", "classify_prediction", "failure_reasons",
    "QueryCache", "QuerySpec", "QueryState", "SequenceGate",
    "DeviceSnapshotStore", "filter_devices", "sort_by_numeric_id",
    "StatsAggregator", "compute_dashboard_stats",
]
