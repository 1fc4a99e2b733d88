"""
Tests for query keys, cadences and invalidation groups.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from upswatch.sync import queries
from upswatch.sync.query_cache import QueryCache


@pytest.fixture
def mock_api():
    api = MagicMock()
    for name in (
        "health", "dashboard_stats", "list_ups", "get_ups", "get_ups_status", "get_ups_events",
        "get_bulk_status", "list_alerts", "alert_counts", "list_predictions",
        "performance_report", "locations",
    ):
        setattr(api, name, AsyncMock(return_value=name))
    return api


def test_keys_are_order_independent():
    assert queries.ups_list_key({"status": "failed", "search": "a"}) == \
        queries.ups_list_key({"search": "a", "status": "failed"})
    assert queries.ups_list_key() == ("ups", "all", ())
    assert queries.ups_list_key({"location": None}) == ("ups", "all", ())


def test_cadences(mock_api):
    assert queries.health_query(mock_api).interval == 30
    assert queries.dashboard_stats_query(mock_api).interval == 10
    assert queries.ups_list_query(mock_api).interval == 60
    assert queries.ups_detail_query(mock_api, "U1").interval == 300
    assert queries.ups_status_query(mock_api, "U1").interval == 5
    assert queries.bulk_status_query(mock_api, ["U1"]).interval == 10
    assert queries.alerts_query(mock_api).interval == 20
    assert queries.alert_counts_query(mock_api).interval == 30
    assert queries.predictions_query(mock_api).interval == 60
    assert queries.ups_events_query(mock_api, "U1").interval is None

    locations = queries.locations_query(mock_api)
    assert locations.interval is None
    assert locations.stale_time == 300


def test_detail_keeps_polling_in_background(mock_api):
    assert queries.ups_detail_query(mock_api, "U1").refetch_in_background
    assert not queries.ups_status_query(mock_api, "U1").refetch_in_background


def test_enabled_conditions(mock_api):
    assert not queries.ups_detail_query(mock_api, "").enabled
    assert not queries.ups_status_query(mock_api, "").enabled
    assert not queries.ups_events_query(mock_api, "").enabled
    assert not queries.predictions_by_ups_query(mock_api, "").enabled
    assert not queries.bulk_status_query(mock_api, []).enabled
    assert not queries.performance_report_query(mock_api).enabled

    assert queries.bulk_status_query(mock_api, ["U1"]).enabled
    assert queries.performance_report_query(mock_api, start_date="2024-05-01").enabled
    assert queries.performance_report_query(mock_api, end_date="2024-05-31").enabled


@pytest.mark.asyncio
async def test_factories_call_the_right_endpoint(mock_api):
    await queries.ups_list_query(mock_api, status="failed").fetch()
    mock_api.list_ups.assert_awaited_once_with(status="failed")

    await queries.predictions_by_ups_query(mock_api, "U1").fetch()
    mock_api.list_predictions.assert_awaited_once_with(ups_id="U1", limit=5)

    await queries.bulk_status_query(mock_api, ["U1", "U2"]).fetch()
    mock_api.get_bulk_status.assert_awaited_once_with(["U1", "U2"])

    await queries.performance_report_query(mock_api, start_date="2024-05-01").fetch()
    mock_api.performance_report.assert_awaited_once_with(start_date="2024-05-01", end_date=None, ups_ids=None)


@pytest.mark.asyncio
async def test_invalidation_groups(mock_api):
    cache = QueryCache()
    for spec in (
        queries.ups_list_query(mock_api),
        queries.ups_detail_query(mock_api, "U1"),
        queries.ups_status_query(mock_api, "U1"),
        queries.bulk_status_query(mock_api, ["U1", "U2"]),
        queries.alerts_query(mock_api),
        queries.alert_counts_query(mock_api),
        queries.dashboard_stats_query(mock_api),
        queries.health_query(mock_api),
    ):
        cache.register(spec)

    assert queries.invalidate_ups(cache) == 4
    assert queries.invalidate_alerts(cache) == 2
    assert queries.invalidate_dashboard(cache) == 1
    assert queries.invalidate_all(cache) == 8
