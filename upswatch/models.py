"""
Data models for the UPS monitoring backend.

This module defines the Pydantic models used to validate every JSON payload
the gateway receives. The backend mixes camelCase (device records) and
snake_case (predictions, alert counts); models accept the backend's names
through aliases and Python names through ``populate_by_name``.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DeviceStatus = Literal["healthy", "warning", "risky", "failed"]
DEVICE_STATUSES: tuple = ("healthy", "warning", "risky", "failed")

UPS_ID_ALIASES = AliasChoices("upsId", "ups_id")


class BackendModel(BaseModel):
    """Common configuration for backend payloads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UPSEvent(BackendModel):
    """Immutable log entry attached to a device."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str
    timestamp: str
    type: Literal["info", "warning", "error"]
    message: str
    severity: Optional[Literal["low", "medium", "high"]] = None
    category: Optional[str] = None
    resolved: Optional[bool] = None


class UPSAlert(BackendModel):
    """A flagged condition persisted on the device record."""

    id: str
    timestamp: str
    type: str
    message: str = ""
    severity: Literal["low", "medium", "high"]
    status: Literal["active", "resolved"]
    acknowledged: Optional[bool] = None
    acknowledged_by: Optional[str] = Field(None, alias="acknowledgedBy")
    acknowledged_at: Optional[str] = Field(None, alias="acknowledgedAt")
    resolved: Optional[bool] = None
    resolved_at: Optional[str] = Field(None, alias="resolvedAt")


class UPSDevice(BackendModel):
    """
    A UPS device record as returned by ``/ups`` and ``/ups/{id}``.

    Telemetry is optional because list endpoints may omit it, but when
    present it must be non-negative, and ``failure_risk`` must lie in [0, 1].
    """

    id: Optional[str] = Field(None, alias="_id")
    ups_id: str = Field(validation_alias=UPS_ID_ALIASES, serialization_alias="upsId")
    name: str = ""
    location: str = ""
    status: DeviceStatus
    last_checked: Optional[str] = Field(None, alias="lastChecked")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")

    battery_level: Optional[float] = Field(None, ge=0, alias="batteryLevel")
    temperature: Optional[float] = Field(None, ge=0)
    power_input: Optional[float] = Field(None, ge=0, alias="powerInput")
    power_output: Optional[float] = Field(None, ge=0, alias="powerOutput")
    load: Optional[float] = Field(None, ge=0)
    efficiency: Optional[float] = Field(None, ge=0)
    failure_risk: Optional[float] = Field(None, ge=0, le=1, alias="failureRisk")
    uptime: Optional[float] = Field(None, ge=0)

    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = Field(None, alias="serialNumber")
    capacity: Optional[float] = Field(None, ge=0)
    critical_load: Optional[float] = Field(None, ge=0, alias="criticalLoad")
    installation_date: Optional[str] = Field(None, alias="installationDate")
    warranty_expiry: Optional[str] = Field(None, alias="warrantyExpiry")
    maintenance_schedule: Optional[str] = Field(None, alias="maintenanceSchedule")
    next_maintenance: Optional[str] = Field(None, alias="nextMaintenance")
    cause: Optional[str] = None

    events: List[UPSEvent] = []
    alerts: List[UPSAlert] = []
    performance_history: List[Dict[str, Any]] = Field([], alias="performanceHistory")

    @property
    def active_alerts(self) -> List[UPSAlert]:
        return [a for a in self.alerts if a.status == "active"]


class StatusSnapshot(BackendModel):
    """Lightweight status returned by ``/ups/{id}/status`` and the bulk endpoint."""

    ups_id: str = Field(validation_alias=UPS_ID_ALIASES, serialization_alias="upsId")
    status: DeviceStatus
    last_checked: Optional[str] = Field(None, alias="lastChecked")
    battery_level: Optional[float] = Field(None, ge=0, alias="batteryLevel")
    temperature: Optional[float] = Field(None, ge=0)
    power_input: Optional[float] = Field(None, ge=0, alias="powerInput")
    power_output: Optional[float] = Field(None, ge=0, alias="powerOutput")


class HealthStatus(BackendModel):
    status: str
    db: bool
    error: Optional[str] = None


class DashboardStats(BackendModel):
    """Fleet-wide counts, either served by the backend or derived locally."""

    total_ups: int = Field(0, ge=0, alias="totalUPS")
    active_ups: int = Field(0, ge=0, alias="activeUPS")
    failed_ups: int = Field(0, ge=0, alias="failedUPS")
    warning_ups: int = Field(0, ge=0, alias="warningUPS")
    risky_ups: int = Field(0, ge=0, alias="riskyUPS")
    healthy_ups: int = Field(0, ge=0, alias="healthyUPS")
    alerts_last_24h: int = Field(0, ge=0, alias="alertsLast24h")
    predictions_count: int = Field(0, ge=0, alias="predictionsCount")


class RiskAssessment(BackendModel):
    risk_level: Optional[str] = None
    reasons: Optional[List[str]] = None

    @field_validator("risk_level")
    @classmethod
    def _normalize_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None


class Prediction(BackendModel):
    """A model-generated failure risk assessment for one device."""

    id: Optional[str] = Field(None, alias="_id")
    ups_id: Optional[str] = Field(None, validation_alias=UPS_ID_ALIASES, serialization_alias="ups_id")
    timestamp: Optional[str] = None
    probability_failure: float = Field(0.0, ge=0, le=1)
    confidence: Optional[float] = Field(None, ge=0, le=1)
    risk_assessment: Optional[RiskAssessment] = None
    failure_reasons: Optional[List[str]] = None
    reasons: Optional[List[str]] = None
    prediction_data: Dict[str, Any] = {}
    feature_importances: Optional[Dict[str, float]] = None

    @property
    def risk_level(self) -> Optional[str]:
        return self.risk_assessment.risk_level if self.risk_assessment else None


class AlertRecord(BackendModel):
    """Row of the ``/alerts`` listing."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(None, alias="_id")
    ups_id: Optional[str] = Field(None, validation_alias=UPS_ID_ALIASES, serialization_alias="ups_id")
    severity: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[str] = None


class AlertCount(BackendModel):
    risk_level: str
    count: int = Field(ge=0)


class PerformanceRow(BackendModel):
    """Row of the UPS performance report; columns beyond the id are passed through."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ups_id: Optional[str] = Field(None, validation_alias=UPS_ID_ALIASES, serialization_alias="ups_id")


class LiveAlert(BackendModel):
    type: str
    title: str
    message: str
    timestamp: str
    metric: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None


class LiveAlertEntry(BackendModel):
    """One entry of the live alert stream buffer."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    ups_id: str = Field(validation_alias=UPS_ID_ALIASES, serialization_alias="upsId")
    alert: LiveAlert


# Collection envelopes

class DevicePage(BackendModel):
    data: List[UPSDevice]
    total: int = 0
    limit: Optional[int] = None
    offset: Optional[int] = None


class EventList(BackendModel):
    data: List[UPSEvent]


class StatusList(BackendModel):
    data: List[StatusSnapshot]


class PredictionList(BackendModel):
    predictions: List[Prediction]


class AlertList(BackendModel):
    data: List[AlertRecord]


class AlertCountList(BackendModel):
    counts: List[AlertCount]


class ReportRows(BackendModel):
    data: List[PerformanceRow]


class LocationList(BackendModel):
    data: List[str]
