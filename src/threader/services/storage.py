"""Persistence of run reports and retrieval of the latest snapshot."""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from ..core.errors import StorageError
from ..core.models import Snapshot, SynthesisReport
from ..utils.data_prep import report_to_dict, snapshot_from_record

logger = logging.getLogger(__name__)

DEFAULT_TENANT = "public"


def company_key(company_name: str) -> str:
    return " ".join((company_name or "").lower().split())


class SnapshotStore:
    """Interface for report persistence."""

    def save_report(self, company_name: str, report: SynthesisReport,
                    is_public: bool = False, tenant_id: str = DEFAULT_TENANT) -> str:
        raise NotImplementedError

    def latest_snapshot(self, company_name: str, tenant_id: str = DEFAULT_TENANT) -> Optional[Snapshot]:
        raise NotImplementedError

    def get_report(self, report_id: str, tenant_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


class JsonFileSnapshotStore(SnapshotStore):
    """One JSON file per report under ``directory``.

    Stored record: id, company_name, tenant_id, is_public, created_at,
    report_data. Report ids are never reused.
    """

    def __init__(self, directory: str,
                 id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
                 now: Callable[[], str] = lambda: datetime.now(timezone.utc).isoformat()):
        self.directory = directory
        self.id_factory = id_factory
        self.now = now
        os.makedirs(directory, exist_ok=True)

    def _path(self, report_id: str) -> str:
        return os.path.join(self.directory, f"{report_id}.json")

    def save_report(self, company_name: str, report: SynthesisReport,
                    is_public: bool = False, tenant_id: str = DEFAULT_TENANT) -> str:
        report_id = self.id_factory()
        record = {
            "id": report_id,
            "company_name": company_name,
            "tenant_id": tenant_id,
            "is_public": bool(is_public),
            "created_at": self.now(),
            "report_data": report_to_dict(report, report_id),
        }
        try:
            # "x" refuses to overwrite an existing report
            with open(self._path(report_id), "x", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
        except FileExistsError as e:
            raise StorageError(f"Report {report_id} already exists") from e
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Could not save report {report_id}: {e}") from e

        logger.info(f"Saved report {report_id} for '{company_name}' (tenant={tenant_id}, public={is_public})")
        return report_id

    def _records(self) -> Iterator[Dict[str, Any]]:
        try:
            names = sorted(os.listdir(self.directory))
        except OSError as e:
            raise StorageError(f"Cannot list {self.directory}: {e}") from e
        for name in names:
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.directory, name)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    record = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable report file {path}: {e}")
                continue
            if isinstance(record, dict):
                yield record

    def latest_snapshot(self, company_name: str, tenant_id: str = DEFAULT_TENANT) -> Optional[Snapshot]:
        key = company_key(company_name)
        candidates = [
            r for r in self._records()
            if company_key(r.get("company_name", "")) == key and r.get("tenant_id", DEFAULT_TENANT) == tenant_id
        ]
        if not candidates:
            logger.info(f"No previous snapshot for '{company_name}' (tenant={tenant_id})")
            return None
        latest = max(candidates, key=lambda r: (r.get("created_at", ""), r.get("id", "")))
        logger.info(f"Previous snapshot for '{company_name}': {latest['id']} from {latest.get('created_at')}")
        return snapshot_from_record(latest)

    def get_report(self, report_id: str, tenant_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Stored record, visible when public or owned by ``tenant_id``."""
        path = self._path(report_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read report {report_id}: {e}") from e
        if record.get("is_public") or (tenant_id is not None and record.get("tenant_id") == tenant_id):
            return record
        return None
