"""
Tests for prediction classification and the prediction poller.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_prediction
from upswatch.core.bus import PREDICTIONS_UPDATED, EventBus
from upswatch.gateway.client import RequestFailure
from upswatch.models import AlertCountList, Prediction, PredictionList
from upswatch.sync.predictions import (
    Severity,
    PredictionPoller,
    alert_counts_by_level,
    classify_prediction,
    classify_probability,
    failure_reasons,
    risk_level_counts,
)


def prediction(**kwargs):
    return Prediction.model_validate(make_prediction(**kwargs))


@pytest.mark.parametrize("probability, expected", [
    (0.95, Severity.CRITICAL),
    (0.81, Severity.CRITICAL),
    (0.8, Severity.WARNING),
    (0.61, Severity.WARNING),
    (0.6, Severity.INFO),
    (0.41, Severity.INFO),
    (0.4, Severity.HEALTHY),
    (0.0, Severity.HEALTHY),
])
def test_classify_probability_thresholds(probability, expected):
    assert classify_probability(probability) == expected


def test_backend_risk_level_wins():
    assert classify_prediction(prediction(probability=0.1, risk_level="high")) == Severity.CRITICAL
    assert classify_prediction(prediction(probability=0.95, risk_level="low")) == Severity.INFO
    assert classify_prediction(prediction(probability=0.95, risk_level="Medium")) == Severity.WARNING


def test_unknown_risk_level_falls_back_to_probability():
    assert classify_prediction(prediction(probability=0.7, risk_level="extreme")) == Severity.WARNING
    assert classify_prediction(prediction(probability=0.7)) == Severity.WARNING


def test_explicit_reasons_are_returned_unchanged():
    p = prediction(failure_reasons=["Battery degradation"], prediction_data={"battery_level": 10})
    assert failure_reasons(p) == ["Battery degradation"]

    p = prediction(risk_level="high", risk_assessment={"risk_level": "high", "reasons": ["Overheating"]})
    assert failure_reasons(p) == ["Overheating"]


def test_reasons_derived_from_prediction_data():
    p = prediction(prediction_data={"battery_level": 15, "temperature": 42, "load": 50, "uptime": 99.5})

    reasons = failure_reasons(p)

    assert reasons[0] == "Critical battery level (15%) - Replace battery"
    assert reasons[1] == "High temperature (42°C)"
    assert "Load: 50%" in reasons
    assert "Uptime: 99.5" in reasons


def test_reasons_include_top_three_feature_importances():
    p = prediction(feature_importances={
        "battery_level": 0.4, "temperature": 0.3, "load": 0.2, "uptime": 0.1,
    })

    reasons = failure_reasons(p)

    assert reasons == [
        "battery level influence: 40%",
        "temperature influence: 30%",
        "load influence: 20%",
    ]


def test_fallback_reason():
    assert failure_reasons(prediction(probability=0.9)) == [
        "Multiple risk factors detected - System showing signs of potential failure"
    ]
    assert failure_reasons(prediction(probability=0.2)) == ["System operating within normal parameters"]


def test_risk_level_counts():
    predictions = [
        prediction(risk_level="high"),
        prediction(risk_level="high"),
        prediction(risk_level="low"),
        prediction(),
    ]
    assert risk_level_counts(predictions) == {"high": 2, "medium": 0, "low": 1}


def test_alert_counts_by_level():
    payload = AlertCountList.model_validate({"counts": [
        {"risk_level": "High", "count": 3},
        {"risk_level": "low", "count": 1},
        {"risk_level": "unknown", "count": 9},
    ]})
    assert alert_counts_by_level(payload) == {"high": 3, "medium": 0, "low": 1}


@pytest.fixture
def mock_api():
    api = MagicMock()
    api.list_predictions = AsyncMock(return_value=PredictionList.model_validate({"predictions": [
        make_prediction("UPS001", 0.9, risk_level="high"),
        make_prediction("UPS002", 0.3),
    ]}))
    return api


@pytest.mark.asyncio
async def test_poller_refresh_and_publish(mock_api):
    bus = EventBus()
    received = []

    async def on_predictions(predictions):
        received.append(predictions)

    bus.subscribe(PREDICTIONS_UPDATED, on_predictions)
    poller = PredictionPoller(mock_api, bus=bus)

    await poller.refresh()

    mock_api.list_predictions.assert_awaited_once_with(risk_level=None, limit=50)
    assert poller.count == 2
    assert [s for _, s in poller.classified()] == [Severity.CRITICAL, Severity.HEALTHY]
    assert received == [poller.predictions]


@pytest.mark.asyncio
async def test_poller_keeps_predictions_on_error(mock_api):
    poller = PredictionPoller(mock_api)
    await poller.refresh()

    mock_api.list_predictions.side_effect = RequestFailure(502, "Bad Gateway")
    await poller.refresh()

    assert poller.count == 2
    assert poller.error.startswith("API call failed: 502")


@pytest.mark.asyncio
async def test_risk_filter(mock_api):
    poller = PredictionPoller(mock_api, interval=900)

    await poller.set_risk_filter("high")
    mock_api.list_predictions.assert_awaited_with(risk_level="high", limit=50)

    await poller.set_risk_filter("all")
    mock_api.list_predictions.assert_awaited_with(risk_level=None, limit=50)


@pytest.mark.asyncio
async def test_poller_start_stop(mock_api):
    poller = PredictionPoller(mock_api, interval=0.01)

    await poller.start()
    await asyncio.sleep(0.035)
    await poller.stop()

    assert mock_api.list_predictions.await_count >= 2
    assert not poller.running


@pytest.mark.asyncio
async def test_polled_high_label_is_critical_despite_low_probability():
    api = MagicMock()
    api.list_predictions = AsyncMock(return_value=PredictionList.model_validate({"predictions": [
        make_prediction("UPS001", 0.3, risk_level="high"),
    ]}))
    poller = PredictionPoller(api)

    await poller.refresh()

    assert poller.classified()[0][1] == Severity.CRITICAL
