"""
Query keys, refresh cadences and spec factories for every backend resource.

Keys are tuples whose first element is the resource family, so that
``QueryCache.invalidate(("ups",))`` reaches every device query.
"""

from typing import Any, Dict, Iterable, List, Optional

from ..gateway.client import UPSApiClient
from .query_cache import QueryCache, QueryKey, QuerySpec

# Cadence table (seconds)
HEALTH_INTERVAL = 30.0
DASHBOARD_STATS_INTERVAL = 10.0
UPS_LIST_INTERVAL = 60.0
UPS_DETAIL_INTERVAL = 300.0
UPS_STATUS_INTERVAL = 5.0
BULK_STATUS_INTERVAL = 10.0
ALERTS_INTERVAL = 20.0
ALERT_COUNTS_INTERVAL = 30.0
PREDICTIONS_INTERVAL = 60.0
LOCATIONS_STALE_TIME = 300.0

PREDICTIONS_BY_UPS_LIMIT = 5


def freeze_params(params: Optional[Dict[str, Any]]) -> tuple:
    """Turn a filter dict into a hashable, order-independent key part."""
    if not params:
        return ()
    frozen = []
    for name, value in sorted(params.items()):
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            value = tuple(value)
        frozen.append((name, value))
    return tuple(frozen)


# Keys

HEALTH_KEY: QueryKey = ("health",)
DASHBOARD_STATS_KEY: QueryKey = ("dashboard", "stats")
ALERT_COUNTS_KEY: QueryKey = ("alerts", "counts")
LOCATIONS_KEY: QueryKey = ("locations", "all")


def ups_list_key(params: Optional[Dict[str, Any]] = None) -> QueryKey:
    return ("ups", "all", freeze_params(params))


def ups_detail_key(ups_id: str) -> QueryKey:
    return ("ups", "detail", ups_id)


def ups_status_key(ups_id: str) -> QueryKey:
    return ("ups", "status", ups_id)


def ups_events_key(ups_id: str, params: Optional[Dict[str, Any]] = None) -> QueryKey:
    return ("ups", "events", ups_id, freeze_params(params))


def bulk_status_key(ups_ids: Iterable[str]) -> QueryKey:
    return ("ups", "bulk-status", tuple(ups_ids))


def alerts_key(params: Optional[Dict[str, Any]] = None) -> QueryKey:
    return ("alerts", "all", freeze_params(params))


def predictions_key(params: Optional[Dict[str, Any]] = None) -> QueryKey:
    return ("predictions", "all", freeze_params(params))


def predictions_by_ups_key(ups_id: str) -> QueryKey:
    return ("predictions", "byUPS", ups_id)


def performance_key(params: Optional[Dict[str, Any]] = None) -> QueryKey:
    return ("reports", "performance", freeze_params(params))


# Spec factories

def health_query(api: UPSApiClient) -> QuerySpec:
    return QuerySpec(HEALTH_KEY, api.health, interval=HEALTH_INTERVAL)


def dashboard_stats_query(api: UPSApiClient) -> QuerySpec:
    return QuerySpec(DASHBOARD_STATS_KEY, api.dashboard_stats, interval=DASHBOARD_STATS_INTERVAL)


def ups_list_query(api: UPSApiClient, **params: Any) -> QuerySpec:
    return QuerySpec(
        ups_list_key(params),
        lambda: api.list_ups(**params),
        interval=UPS_LIST_INTERVAL,
    )


def ups_detail_query(api: UPSApiClient, ups_id: str) -> QuerySpec:
    return QuerySpec(
        ups_detail_key(ups_id),
        lambda: api.get_ups(ups_id),
        interval=UPS_DETAIL_INTERVAL,
        enabled=bool(ups_id),
        refetch_in_background=True,
    )


def ups_status_query(api: UPSApiClient, ups_id: str) -> QuerySpec:
    return QuerySpec(
        ups_status_key(ups_id),
        lambda: api.get_ups_status(ups_id),
        interval=UPS_STATUS_INTERVAL,
        enabled=bool(ups_id),
    )


def ups_events_query(api: UPSApiClient, ups_id: str, **params: Any) -> QuerySpec:
    return QuerySpec(
        ups_events_key(ups_id, params),
        lambda: api.get_ups_events(ups_id, **params),
        enabled=bool(ups_id),
    )


def bulk_status_query(api: UPSApiClient, ups_ids: List[str]) -> QuerySpec:
    ids = list(ups_ids)
    return QuerySpec(
        bulk_status_key(ids),
        lambda: api.get_bulk_status(ids),
        interval=BULK_STATUS_INTERVAL,
        enabled=len(ids) > 0,
    )


def alerts_query(api: UPSApiClient, **params: Any) -> QuerySpec:
    return QuerySpec(alerts_key(params), lambda: api.list_alerts(**params), interval=ALERTS_INTERVAL)


def alert_counts_query(api: UPSApiClient) -> QuerySpec:
    return QuerySpec(ALERT_COUNTS_KEY, api.alert_counts, interval=ALERT_COUNTS_INTERVAL)


def predictions_query(api: UPSApiClient, **params: Any) -> QuerySpec:
    return QuerySpec(
        predictions_key(params),
        lambda: api.list_predictions(**params),
        interval=PREDICTIONS_INTERVAL,
    )


def predictions_by_ups_query(api: UPSApiClient, ups_id: str, limit: int = PREDICTIONS_BY_UPS_LIMIT) -> QuerySpec:
    return QuerySpec(
        predictions_by_ups_key(ups_id),
        lambda: api.list_predictions(ups_id=ups_id, limit=limit),
        interval=PREDICTIONS_INTERVAL,
        enabled=bool(ups_id),
    )


def performance_report_query(
    api: UPSApiClient,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    ups_ids: Optional[List[str]] = None,
) -> QuerySpec:
    params = {"start_date": start_date, "end_date": end_date, "ups_ids": ups_ids}
    return QuerySpec(
        performance_key(params),
        lambda: api.performance_report(start_date=start_date, end_date=end_date, ups_ids=ups_ids),
        enabled=bool(start_date or end_date),
    )


def locations_query(api: UPSApiClient) -> QuerySpec:
    return QuerySpec(LOCATIONS_KEY, api.locations, stale_time=LOCATIONS_STALE_TIME)


# Invalidation groups

def invalidate_ups(cache: QueryCache) -> int:
    return cache.invalidate(("ups",))


def invalidate_alerts(cache: QueryCache) -> int:
    return cache.invalidate(("alerts",))


def invalidate_dashboard(cache: QueryCache) -> int:
    return cache.invalidate(("dashboard",))


def invalidate_all(cache: QueryCache) -> int:
    return cache.invalidate(())
