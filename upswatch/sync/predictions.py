"""
Prediction poller and severity classification.

The predictions endpoint is polled on its own cadence: every minute for the
dashboard, every 15 minutes for the alerts view (the backend's prediction
generation cycle). Each prediction is classified into a severity bucket,
trusting the backend's own risk label before falling back to the raw
failure probability.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.bus import PREDICTIONS_UPDATED, EventBus
from ..gateway.client import GatewayError, UPSApiClient
from ..models import AlertCountList, Prediction
from .sequence import SequenceGate

logger = logging.getLogger(__name__)

DASHBOARD_INTERVAL = 60.0
ALERTS_PAGE_INTERVAL = 900.0
DEFAULT_LIMIT = 50

RISK_LEVELS = ("high", "medium", "low")


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    HEALTHY = "healthy"


_LEVEL_TO_SEVERITY = {
    "high": Severity.CRITICAL,
    "medium": Severity.WARNING,
    "low": Severity.INFO,
}


def classify_probability(probability: float) -> Severity:
    if probability > 0.8:
        return Severity.CRITICAL
    if probability > 0.6:
        return Severity.WARNING
    if probability > 0.4:
        return Severity.INFO
    return Severity.HEALTHY


def classify_prediction(prediction: Prediction) -> Severity:
    """
    Map a prediction to a severity bucket.

    A backend-supplied ``risk_assessment.risk_level`` wins; the
    ``probability_failure`` thresholds apply only when it is absent or
    unrecognized.
    """
    severity = _LEVEL_TO_SEVERITY.get(prediction.risk_level or "")
    if severity is not None:
        return severity
    return classify_probability(prediction.probability_failure)


def _derived_reasons(data: Dict) -> List[str]:
    reasons: List[str] = []

    battery = data.get("battery_level")
    if battery is not None:
        if battery < 20:
            reasons.append(f"Critical battery level ({battery}%) - Replace battery")
        elif battery < 40:
            reasons.append(f"Low battery level ({battery}%)")
        else:
            reasons.append(f"Battery level: {battery}%")

    temperature = data.get("temperature")
    if temperature is not None:
        if temperature > 45:
            reasons.append(f"Critical temperature ({temperature}°C) - Overheating risk")
        elif temperature > 40:
            reasons.append(f"High temperature ({temperature}°C)")
        else:
            reasons.append(f"Temperature: {temperature}°C")

    efficiency = data.get("efficiency")
    if efficiency is not None:
        if efficiency < 80:
            reasons.append(f"Critical efficiency ({efficiency}%)")
        elif efficiency < 90:
            reasons.append(f"Low efficiency ({efficiency}%)")
        else:
            reasons.append(f"Efficiency: {efficiency}%")

    load = data.get("load")
    if load is not None:
        if load > 95:
            reasons.append(f"Critical load ({load}%) - Overload risk")
        elif load > 90:
            reasons.append(f"High load ({load}%)")
        else:
            reasons.append(f"Load: {load}%")

    for key, label in (
        ("power_input", "Power input"),
        ("power_output", "Power output"),
        ("uptime", "Uptime"),
        ("capacity", "Capacity"),
    ):
        if data.get(key) is not None:
            reasons.append(f"{label}: {data[key]}")
    return reasons


def failure_reasons(prediction: Prediction) -> List[str]:
    """
    Explain a prediction.

    Explicit reasons from the backend are returned unchanged. Otherwise the
    reasons are derived from ``prediction_data`` thresholds and the top three
    feature importances.
    """
    for explicit in (
        prediction.failure_reasons,
        prediction.risk_assessment.reasons if prediction.risk_assessment else None,
        prediction.reasons,
    ):
        if explicit:
            return list(explicit)

    reasons = _derived_reasons(prediction.prediction_data or {})

    if prediction.feature_importances:
        top = sorted(prediction.feature_importances.items(), key=lambda kv: kv[1], reverse=True)[:3]
        reasons.extend(f"{name.replace('_', ' ')} influence: {value * 100:.0f}%" for name, value in top)

    if not reasons:
        if prediction.probability_failure > 0.6:
            reasons.append("Multiple risk factors detected - System showing signs of potential failure")
        else:
            reasons.append("System operating within normal parameters")
    return reasons


def risk_level_counts(predictions: Iterable[Prediction]) -> Dict[str, int]:
    counts = {level: 0 for level in RISK_LEVELS}
    for prediction in predictions:
        if prediction.risk_level in counts:
            counts[prediction.risk_level] += 1
    return counts


def alert_counts_by_level(payload: AlertCountList) -> Dict[str, int]:
    """Flatten ``/alerts/count`` into ``{high, medium, low}``; unknown levels are ignored."""
    counts = {level: 0 for level in RISK_LEVELS}
    for item in payload.counts:
        level = item.risk_level.lower()
        if level in counts:
            counts[level] = item.count
    return counts


class PredictionPoller:
    """
    Polls ``/predictions`` and exposes the latest set.
    """

    def __init__(
        self,
        api: UPSApiClient,
        *,
        interval: float = DASHBOARD_INTERVAL,
        limit: int = DEFAULT_LIMIT,
        risk_level: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ):
        self.api = api
        self.interval = interval
        self.limit = limit
        self.risk_level = risk_level
        self.bus = bus
        self.predictions: Tuple[Prediction, ...] = ()
        self.last_update_time: Optional[datetime] = None
        self.error: Optional[str] = None
        self._gate = SequenceGate()
        self._task: Optional[asyncio.Task] = None
        self._should_stop = asyncio.Event()

    @property
    def count(self) -> int:
        return len(self.predictions)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def classified(self) -> List[Tuple[Prediction, Severity]]:
        return [(p, classify_prediction(p)) for p in self.predictions]

    async def start(self):
        if self.running:
            logger.warning("Prediction poller is already running.")
            return
        logger.info(f"Starting prediction poller every {self.interval:g}s (risk_level={self.risk_level or 'all'})")
        self._should_stop.clear()
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        if not self.running:
            return
        self._should_stop.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Prediction poller stopped.")

    async def _poll_loop(self):
        while not self._should_stop.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(self._should_stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def set_risk_filter(self, risk_level: Optional[str]) -> None:
        """Change the risk filter (``"all"`` or None clears it) and refresh immediately."""
        self.risk_level = None if risk_level in (None, "", "all") else risk_level
        await self.refresh()

    async def refresh(self) -> Tuple[Prediction, ...]:
        """
        Fetch predictions. On failure the previous set is kept.
        """
        seq = self._gate.issue()
        try:
            result = await self.api.list_predictions(risk_level=self.risk_level, limit=self.limit)
        except GatewayError as e:
            if self._gate.accept(seq):
                self.error = str(e)
                logger.warning(f"Failed to fetch predictions: {e}")
            return self.predictions

        if not self._gate.accept(seq):
            logger.debug("Discarding stale predictions seq=%d", seq)
            return self.predictions

        self.predictions = tuple(result.predictions)
        self.error = None
        self.last_update_time = datetime.now(timezone.utc)
        logger.info("Fetched %d predictions", len(self.predictions))

        if self.bus:
            await self.bus.publish(PREDICTIONS_UPDATED, self.predictions)
        return self.predictions
