"""
Device registration.

Validates a new device on the client, checks the backend for an existing
device with the same id and creates it with the initial telemetry a fresh
unit reports.

The duplicate check is read-then-write: two clients registering the same id
at the same time can both pass it. Uniqueness has to be enforced by the
backend; a conflict it reports surfaces as ``RequestFailure`` with the
server's ``detail`` message.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .gateway.client import UPSApiClient
from .models import UPSDevice

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("ups_id", "name", "location")

INITIAL_TELEMETRY: Dict[str, Any] = {
    "status": "healthy",
    "powerInput": 0,
    "powerOutput": 0,
    "batteryLevel": 100,
    "temperature": 25.0,
    "efficiency": 95.0,
    "uptime": 100.0,
    "events": [],
    "alerts": [],
    "performanceHistory": [],
}


class DeviceValidationError(Exception):
    """The device failed client-side validation."""
    pass


class DuplicateDeviceError(DeviceValidationError):
    """A device with the same id already exists on the backend."""

    def __init__(self, ups_id: str):
        self.ups_id = ups_id
        super().__init__(f"A UPS with ID '{ups_id}' already exists. Please use a different ID.")


class NewDevice(BaseModel):
    """Form data for a new device."""

    model_config = ConfigDict(populate_by_name=True)

    ups_id: str = Field("", serialization_alias="upsId")
    name: str = ""
    location: str = ""
    manufacturer: str = ""
    model: str = ""
    serial_number: str = Field("", serialization_alias="serialNumber")
    capacity: float = Field(0, ge=0)
    critical_load: float = Field(0, ge=0, serialization_alias="criticalLoad")
    installation_date: str = Field("", serialization_alias="installationDate")
    warranty_expiry: str = Field("", serialization_alias="warrantyExpiry")
    maintenance_schedule: str = Field("monthly", serialization_alias="maintenanceSchedule")
    next_maintenance: str = Field("", serialization_alias="nextMaintenance")

    def missing_fields(self) -> list:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name).strip()]


def build_payload(device: NewDevice, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """The POST body: the form fields plus the initial telemetry."""
    now = now or datetime.now(timezone.utc)
    payload = device.model_dump(by_alias=True)
    payload.update(INITIAL_TELEMETRY)
    payload["lastChecked"] = now.isoformat()
    return payload


def validate_device(device: NewDevice) -> None:
    missing = device.missing_fields()
    if missing:
        raise DeviceValidationError(
            "Please fill in all required fields (UPS ID, Name, Location); missing: " + ", ".join(missing)
        )


async def register_device(api: UPSApiClient, device: NewDevice) -> UPSDevice:
    """
    Register a new device.

    Raises:
        DeviceValidationError: A required field is blank.
        DuplicateDeviceError: The backend already lists a device with this id.
        GatewayError: The lookup or the creation request failed.
    """
    validate_device(device)
    ups_id = device.ups_id.strip()

    existing = await api.list_ups(search=ups_id)
    if any(ups.ups_id == ups_id for ups in existing.data):
        raise DuplicateDeviceError(ups_id)
    logger.debug("Duplicate check passed for %s (advisory only, not atomic)", ups_id)

    created = await api.create_ups(build_payload(device.model_copy(update={"ups_id": ups_id})))
    logger.info(f"UPS {device.name} ({created.ups_id}) added")
    return created
