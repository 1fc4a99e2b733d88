import pytest
import pytest_asyncio
import respx

from upswatch.config import load_settings
from upswatch.gateway.client import UPSApiClient

API_URL = "http://backend.test/api"
WS_URL = "ws://backend.test/ws/ups-updates"


# Skip integration tests unless explicitly enabled
def pytest_addoption(parser):
    parser.addoption("--integration", action="store_true", default=False, help="Run integration tests")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def make_device(ups_id="UPS001", status="healthy", location="Data Center A", **extra):
    """A device record the way the backend serializes it."""
    device = {
        "upsId": ups_id,
        "name": f"{ups_id} Primary",
        "location": location,
        "status": status,
        "lastChecked": "2024-05-01T10:00:00Z",
        "batteryLevel": 95,
        "temperature": 27.5,
        "powerInput": 1200,
        "powerOutput": 1100,
        "load": 45,
        "efficiency": 92.0,
        "failureRisk": 0.1,
        "uptime": 99.9,
        "manufacturer": "APC",
        "model": "Smart-UPS 3000",
        "serialNumber": f"SN-{ups_id}",
        "capacity": 3000,
        "criticalLoad": 2400,
        "installationDate": "2022-01-15",
        "warrantyExpiry": "2027-01-15",
        "maintenanceSchedule": "monthly",
        "nextMaintenance": "2024-06-01",
        "events": [],
        "alerts": [],
        "performanceHistory": [],
    }
    device.update(extra)
    return device


def make_prediction(ups_id="UPS001", probability=0.2, risk_level=None, **extra):
    prediction = {
        "_id": f"pred-{ups_id}",
        "ups_id": ups_id,
        "timestamp": "2024-05-01T10:00:00Z",
        "probability_failure": probability,
        "confidence": 0.9,
        "prediction_data": {},
    }
    if risk_level is not None:
        prediction["risk_assessment"] = {"risk_level": risk_level}
    prediction.update(extra)
    return prediction


def make_live_alert(ups_id="UPS001", alert_type="critical", title="Battery low", **extra):
    alert = {
        "type": alert_type,
        "title": title,
        "message": f"{title} on {ups_id}",
        "timestamp": "2024-05-01T10:00:00Z",
    }
    alert.update(extra)
    return {"upsId": ups_id, "alert": alert}


@pytest.fixture
def settings():
    return load_settings(API_BASE_URL=API_URL, WS_URL=WS_URL)


@pytest_asyncio.fixture
async def api():
    client = UPSApiClient(API_URL)
    yield client
    await client.close()


@pytest.fixture
def backend():
    """respx router mounted on the backend base URL."""
    with respx.mock(base_url=API_URL, assert_all_called=False) as router:
        yield router
