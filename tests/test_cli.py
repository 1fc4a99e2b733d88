"""
Tests for the upswatch CLI.
"""

import asyncio
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import API_URL, WS_URL, make_device, make_live_alert, make_prediction
from upswatch.cli.main import app
from upswatch.sync.alert_stream import LiveAlertStream


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return CliRunner(env={
        "UPSWATCH_API_BASE_URL": API_URL,
        "UPSWATCH_WS_URL": WS_URL,
        "COLUMNS": "200",
    })


@pytest.fixture
def fleet(backend):
    backend.get("/ups").respond(200, json={"data": [
        make_device("UPS010", status="failed"),
        make_device("UPS002", status="warning"),
        make_device("UPS001"),
    ], "total": 3})
    backend.get("/predictions", name="predictions").respond(200, json={"predictions": [
        make_prediction("UPS010", 0.92, risk_level="high", failure_reasons=["Battery end of life"]),
    ]})
    return backend


def test_help(runner):
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("devices", "alerts", "predictions", "health", "stats", "monitor", "export"):
        assert command in result.output


def test_missing_configuration(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner(env={"UPSWATCH_API_BASE_URL": None, "UPSWATCH_WS_URL": None})

    result = runner.invoke(app, ["health"])

    assert result.exit_code == 1
    assert "Environment Configuration Error" in result.output
    assert "UPSWATCH_API_BASE_URL" in result.output


def test_health(runner, backend):
    backend.get("/health").respond(200, json={"status": "healthy", "db": True})

    result = runner.invoke(app, ["health"])

    assert result.exit_code == 0
    assert "Backend is healthy" in result.output


def test_health_unhealthy(runner, backend):
    backend.get("/health").respond(200, json={"status": "unhealthy", "db": False, "error": "db down"})

    result = runner.invoke(app, ["health"])

    assert result.exit_code == 1
    assert "db down" in result.output


def test_devices_list_sorted(runner, fleet):
    result = runner.invoke(app, ["devices", "list"])

    assert result.exit_code == 0
    out = result.output
    assert out.index("UPS001") < out.index("UPS002") < out.index("UPS010")


def test_devices_list_json(runner, fleet):
    result = runner.invoke(app, ["devices", "list", "--json", "--status", "failed"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert [d["upsId"] for d in data] == ["UPS001", "UPS002", "UPS010"]


def test_devices_show(runner, backend):
    alert = {
        "id": "a1", "timestamp": "2024-05-01T09:00:00Z", "type": "battery",
        "message": "Battery below threshold", "severity": "high", "status": "active",
    }
    backend.get("/ups/UPS001").respond(200, json=make_device("UPS001", alerts=[alert]))
    backend.get("/ups/UPS001/status").respond(200, json={"upsId": "UPS001", "status": "warning", "batteryLevel": 35})
    backend.get("/ups/UPS001/events").respond(200, json={"data": [
        {"id": "e1", "timestamp": "2024-05-01T08:00:00Z", "type": "warning", "message": "Switched to battery"},
    ]})

    result = runner.invoke(app, ["devices", "show", "UPS001"])

    assert result.exit_code == 0
    assert "Battery below threshold" in result.output
    assert "Switched to battery" in result.output
    assert "35%" in result.output


def test_devices_show_not_found(runner, backend):
    backend.get("/ups/NOPE").respond(404, json={"detail": "UPS not found"})

    result = runner.invoke(app, ["devices", "show", "NOPE"])

    assert result.exit_code == 1
    assert "UPS not found" in result.output


def test_devices_add(runner, backend):
    backend.get("/ups").respond(200, json={"data": []})
    create = backend.post("/ups").respond(201, json=make_device("UPS020"))

    result = runner.invoke(app, [
        "devices", "add", "--ups-id", "UPS020", "--name", "Rack 20", "--location", "Data Center B",
        "--capacity", "3000",
    ])

    assert result.exit_code == 0, result.output
    assert "has been added" in result.output
    body = json.loads(create.calls.last.request.content)
    assert body["upsId"] == "UPS020"
    assert body["capacity"] == 3000


def test_devices_add_duplicate(runner, backend):
    backend.get("/ups").respond(200, json={"data": [make_device("UPS020")]})
    create = backend.post("/ups").respond(201, json=make_device("UPS020"))

    result = runner.invoke(app, ["devices", "add", "--ups-id", "UPS020", "--name", "Rack", "--location", "B"])

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert not create.called


def test_devices_add_blank_field(runner, backend):
    result = runner.invoke(app, ["devices", "add", "--ups-id", "UPS020", "--name", " ", "--location", "B"])

    assert result.exit_code == 1
    assert "required fields" in result.output


def test_stats(runner, fleet):
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0, result.output
    assert "Total UPS" in result.output
    lines = {line.split("│")[1].strip(): line.split("│")[2].strip()
             for line in result.output.splitlines() if line.count("│") >= 3}
    assert lines["Total UPS"] == "3"
    assert lines["Failed"] == "1"
    assert lines["Predictions"] == "1"


def test_stats_fetch_error(runner, backend):
    backend.get("/ups").respond(500)
    backend.get("/predictions").respond(200, json={"predictions": []})

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 1
    assert "Failed to fetch UPS data" in result.output


def test_predictions(runner, fleet):
    result = runner.invoke(app, ["predictions", "--risk-level", "high"])

    assert result.exit_code == 0, result.output
    assert "UPS010" in result.output
    assert "critical" in result.output
    assert "Battery end of life" in result.output
    assert fleet["predictions"].calls.last.request.url.params["risk_level"] == "high"


def test_predictions_empty(runner, backend):
    backend.get("/predictions").respond(200, json={"predictions": []})

    result = runner.invoke(app, ["predictions"])

    assert result.exit_code == 0
    assert "No ML Predictions Yet" in result.output


def test_alert_counts(runner, backend):
    backend.get("/alerts/count").respond(200, json={"counts": [
        {"risk_level": "high", "count": 4},
        {"risk_level": "medium", "count": 1},
    ]})

    result = runner.invoke(app, ["alerts", "counts"])

    assert result.exit_code == 0
    assert "High risk: 4" in result.output
    assert "Medium risk: 1" in result.output
    assert "Low risk: 0" in result.output


def test_export_csv(runner, fleet, tmp_path):
    result = runner.invoke(app, ["export", "--format", "csv", "--output", str(tmp_path / "exports")])

    assert result.exit_code == 0, result.output
    files = list((tmp_path / "exports").glob("ups-export-*.csv"))
    assert len(files) == 1
    lines = files[0].read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert lines[1].startswith('"UPS001"')


def test_export_json_filtered(runner, fleet, tmp_path):
    result = runner.invoke(app, [
        "export", "--format", "json", "--status", "failed", "--include-alerts", "--output", str(tmp_path),
    ])

    assert result.exit_code == 0, result.output
    data = json.loads(next(tmp_path.glob("ups-export-*.json")).read_text(encoding="utf-8"))
    assert [d["upsId"] for d in data] == ["UPS010"]
    assert data[0]["alerts"] == []


def test_invalid_duration(runner):
    result = runner.invoke(app, ["monitor", "--duration", "forever"])

    assert result.exit_code == 2
    assert "Invalid duration" in result.output


class OneAlertSocket:
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self._closed = asyncio.Event()

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.frames:
            return self.frames.pop(0)
        await self._closed.wait()
        raise StopAsyncIteration


def test_alerts_watch(runner):
    def fake_from_settings(settings, bus=None):
        async def connect(url):
            return OneAlertSocket([json.dumps({
                "type": "new_alert",
                "data": make_live_alert("UPS007", "critical", "Battery failure"),
            })])
        return LiveAlertStream(settings.WS_URL, bus=bus, connect=connect)

    with patch.object(LiveAlertStream, "from_settings", fake_from_settings):
        result = runner.invoke(app, ["alerts", "watch", "--duration", "100ms"])

    assert result.exit_code == 0, result.output
    assert "Critical Alert: Battery failure" in result.output
    assert "UPS007" in result.output


def test_monitor(runner, fleet, backend):
    backend.get("/health").respond(200, json={"status": "healthy", "db": True})
    backend.get("/alerts/count").respond(200, json={"counts": []})
    backend.get("/locations").respond(200, json={"data": []})

    result = runner.invoke(app, ["monitor", "--no-stream", "--duration", "200ms"])

    assert result.exit_code == 0, result.output
    assert "Monitoring" in result.output
    assert "3 UPS" in result.output
