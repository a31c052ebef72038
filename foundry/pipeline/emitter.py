"""Dataset emitter: serialize pipeline output and persist it as a Dataset row.

Called exactly once per successful run, by the executor, before the job is
marked completed.  Flushes but does not commit; the executor owns the
transaction boundary.
"""
from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from foundry.core.constants import DATASET_FORMATS
from foundry.db.models import Dataset
from foundry.db.repositories import DatasetRepository

logger = logging.getLogger(__name__)


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def render_records(records: list[dict[str, Any]], fmt: str) -> str:
    """Serialize *records* as jsonl, json or csv text."""
    if fmt == "jsonl":
        return "\n".join(json.dumps(record, default=str) for record in records)
    if fmt == "json":
        return json.dumps(records, default=str)
    if fmt == "csv":
        columns: list[str] = []
        for record in records:
            for key in record:
                if key not in columns:
                    columns.append(key)
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=columns, lineterminator="\n")
        writer.writeheader()
        for record in records:
            writer.writerow({key: _csv_cell(record.get(key)) for key in columns})
        return buf.getvalue()
    raise ValueError(f"Unsupported dataset format: {fmt!r}")


class DatasetEmitter:
    """Materialize a run's output into a downloadable ``Dataset``."""

    def __init__(self, db: Session, retention_days: int = 0) -> None:
        self.db = db
        self.retention_days = retention_days
        self.datasets = DatasetRepository(db)

    def emit(
        self,
        job_id: int,
        content: str,
        fmt: str,
        record_count: int,
        *,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Dataset:
        if fmt not in DATASET_FORMATS:
            raise ValueError(f"Unsupported dataset format: {fmt!r}")

        current = now or datetime.now(timezone.utc)
        expires_at = current + timedelta(days=self.retention_days) if self.retention_days > 0 else None

        dataset = self.datasets.create(
            processing_job_id=job_id,
            name=name or f"Dataset - {current.isoformat()}",
            format=fmt,
            record_count=record_count,
            file_size=len(content.encode("utf-8")),
            storage_key=f"dataset-{job_id}",
            data_content=content,
            metadata_json=metadata,
            expires_at=expires_at,
        )
        self.datasets.update(dataset, download_url=f"/datasets/{dataset.id}/download")

        logger.info(
            "Dataset %s emitted for job %s (format=%s records=%d bytes=%d)",
            dataset.id,
            job_id,
            fmt,
            record_count,
            dataset.file_size,
        )
        return dataset
