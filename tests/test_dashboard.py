"""
Tests for the Dashboard composition root.
"""

import asyncio

import pytest

from conftest import make_device, make_prediction
from upswatch.core.bus import STATS_UPDATED
from upswatch.dashboard import Dashboard
from upswatch.gateway.client import UPSApiClient
from upswatch.sync import queries
from upswatch.sync.alert_stream import LiveAlertStream


@pytest.fixture
def backend_routes(backend):
    backend.get("/ups").respond(200, json={"data": [
        make_device("UPS001"),
        make_device("UPS002", status="warning"),
        make_device("UPS003", status="failed"),
    ]})
    backend.get("/predictions").respond(200, json={"predictions": [make_prediction("UPS003", 0.9)]})
    backend.get("/health").respond(200, json={"status": "healthy", "db": True})
    backend.get("/alerts/count").respond(200, json={"counts": [{"risk_level": "high", "count": 2}]})
    backend.get("/locations").respond(200, json={"data": ["Data Center A"]})
    return backend


async def wait_for(condition, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_dashboard_runs_all_sources(settings, backend_routes):
    dashboard = Dashboard(settings, enable_stream=False)
    published = []

    async def on_stats(stats):
        published.append(stats)

    dashboard.bus.subscribe(STATS_UPDATED, on_stats)

    async with dashboard:
        await wait_for(lambda: dashboard.stats.stats.predictions_count == 1 and dashboard.devices.records)
        await wait_for(lambda: dashboard.queries.peek(queries.LOCATIONS_KEY).has_data)

        stats = dashboard.stats.stats
        assert stats.total_ups == 3
        assert stats.failed_ups == 1
        assert stats.warning_ups == 1
        assert dashboard.queries.peek(queries.HEALTH_KEY).data.status == "healthy"
        assert published

    assert dashboard.api._client.is_closed
    assert not dashboard.devices.running
    assert not dashboard.predictions.running


@pytest.mark.asyncio
async def test_dashboard_owns_alert_stream(settings, backend_routes):
    connected = asyncio.Event()

    async def refuse(url):
        connected.set()
        raise OSError("connection refused")

    stream = LiveAlertStream(settings.WS_URL, connect=refuse)
    dashboard = Dashboard(settings, alert_stream=stream)

    await dashboard.start()
    await asyncio.wait_for(connected.wait(), timeout=1.0)
    await wait_for(lambda: stream.retry_pending)
    await dashboard.stop()

    assert not stream.retry_pending


@pytest.mark.asyncio
async def test_stop_without_start_closes_client(settings):
    api = UPSApiClient(settings.API_BASE_URL)
    dashboard = Dashboard(settings, api=api, enable_stream=False)

    await dashboard.stop()

    assert api._client.is_closed
