"""
Export of device snapshots to CSV, JSON and "Excel".

The Excel format is the CSV content written under an ``.xlsx`` extension,
not a real spreadsheet file.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from .models import UPSDevice

logger = logging.getLogger(__name__)

ExportFormat = Literal["csv", "json", "excel"]
EXPORT_FORMATS = ("csv", "json", "excel")

# (header, attribute, default when missing)
COLUMNS = [
    ("UPS ID", "ups_id", ""),
    ("Name", "name", ""),
    ("Location", "location", ""),
    ("Status", "status", ""),
    ("Last Checked", "last_checked", ""),
    ("Battery Level (%)", "battery_level", ""),
    ("Temperature (°C)", "temperature", ""),
    ("Power Input (W)", "power_input", ""),
    ("Power Output (W)", "power_output", ""),
    ("Efficiency (%)", "efficiency", 0),
    ("Uptime (%)", "uptime", 0),
    ("Manufacturer", "manufacturer", ""),
    ("Model", "model", ""),
    ("Serial Number", "serial_number", ""),
    ("Capacity (VA)", "capacity", 0),
    ("Critical Load (W)", "critical_load", 0),
    ("Installation Date", "installation_date", ""),
    ("Warranty Expiry", "warranty_expiry", ""),
    ("Maintenance Schedule", "maintenance_schedule", ""),
    ("Next Maintenance", "next_maintenance", ""),
]
CSV_HEADERS = [header for header, _, _ in COLUMNS]

# Descriptive fields included in every JSON record, by backend name
JSON_FIELDS = [
    "upsId", "name", "location", "status", "lastChecked", "batteryLevel",
    "temperature", "powerInput", "powerOutput", "efficiency", "uptime",
    "manufacturer", "model", "serialNumber", "capacity", "criticalLoad",
    "installationDate", "warrantyExpiry", "maintenanceSchedule", "nextMaintenance",
]

_EXTENSIONS = {"csv": "csv", "json": "json", "excel": "xlsx"}


@dataclass
class ExportOptions:
    format: ExportFormat = "csv"
    include_events: bool = False
    include_alerts: bool = False
    include_performance_history: bool = False


def _cell(ups: UPSDevice, attr: str, default: Any) -> Any:
    value = getattr(ups, attr)
    return default if value in (None, "") else value


def csv_rows(records: Iterable[UPSDevice]) -> List[List[Any]]:
    return [[_cell(ups, attr, default) for _, attr, default in COLUMNS] for ups in records]


def to_csv(records: Iterable[UPSDevice]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    writer.writerows(csv_rows(records))
    return buffer.getvalue()


def to_json(records: Iterable[UPSDevice], options: ExportOptions) -> str:
    items = []
    for ups in records:
        dumped = ups.model_dump(by_alias=True, mode="json")
        item: Dict[str, Any] = {name: dumped.get(name) for name in JSON_FIELDS}
        if options.include_events:
            item["events"] = dumped["events"]
        if options.include_alerts:
            item["alerts"] = dumped["alerts"]
        if options.include_performance_history:
            item["performanceHistory"] = dumped["performanceHistory"]
        items.append(item)
    return json.dumps(items, indent=2, ensure_ascii=False)


def export_filename(fmt: ExportFormat, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ups-export-{now.strftime('%Y-%m-%dT%H-%M-%S')}.{_EXTENSIONS[fmt]}"


def export_devices(
    records: Iterable[UPSDevice],
    directory: Path,
    options: Optional[ExportOptions] = None,
    *,
    now: Optional[datetime] = None,
) -> Path:
    """
    Write an export file into ``directory``.

    Returns:
        Path: The file written.

    Raises:
        ValueError: The format is not one of csv, json, excel.
    """
    options = options or ExportOptions()
    if options.format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {options.format}")

    records = list(records)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(options.format, now)

    if options.format == "json":
        content = to_json(records, options)
    else:
        content = to_csv(records)
        if options.format == "excel":
            logger.warning("Excel export is written as CSV content with an .xlsx extension.")

    path.write_text(content, encoding="utf-8")
    logger.info("Exported %d devices to %s", len(records), path)
    return path


def format_for_display(records: Iterable[UPSDevice]) -> List[Dict[str, Any]]:
    """Rows keyed by the CSV headers, with ``N/A`` for missing descriptive fields."""
    rows = []
    for ups in records:
        row = {}
        for header, attr, default in COLUMNS:
            value = getattr(ups, attr)
            if value in (None, ""):
                value = "N/A" if default == "" else default
            row[header] = value
        rows.append(row)
    return rows
