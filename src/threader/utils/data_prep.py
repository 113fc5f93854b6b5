"""Data preparation for export and persistence."""

import json
from typing import Any, Dict, Optional

from ..core.models import Snapshot, SynthesisReport

EXPORT_VERSION = "1.0.0"


def report_to_dict(report: SynthesisReport, report_id: Optional[str] = None) -> Dict[str, Any]:
    """Serializable report in the camelCase wire schema."""
    data = report.to_dict()
    data["metadata"]["exportTimestamp"] = None  # Will be set by export_to_json
    data["metadata"]["version"] = EXPORT_VERSION
    if report_id:
        data["id"] = report_id
    return data


def snapshot_from_record(record: Dict[str, Any]) -> Snapshot:
    """Snapshot from a stored record (id, company_name, created_at, report_data)."""
    data = record.get("report_data") or {}
    return Snapshot.from_dict({
        "id": record.get("id", ""),
        "companyName": record.get("company_name") or data.get("companyName", ""),
        "createdAt": record.get("created_at", ""),
        "focusAreas": data.get("focusAreas", []),
        "sentiment": data.get("sentiment") or {},
        "metadata": data.get("metadata") or {},
    })


def export_to_json(data: Dict[str, Any], filename: str) -> None:
    """Export data to JSON file."""
    import datetime

    # Add timestamp
    data.setdefault("metadata", {})["exportTimestamp"] = datetime.datetime.now().isoformat()

    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
