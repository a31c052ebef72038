"""Per-run state shared by the stage handlers.

The executor builds one ``StageContext`` from the database when a run
starts.  Handlers only see plain data here, never ORM rows, so they can be
swapped for real parsing/PII/mapping implementations without touching the
orchestration code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from foundry.core.security import SecurityService


class StageError(Exception):
    """A stage could not complete.  Recorded on the job, never raised to a caller."""


@dataclass(slots=True)
class SourcePayload:
    filename: str
    mime_type: str | None
    file_data: str  # base64


@dataclass
class StageContext:
    job_id: int
    source_id: int
    source_name: str
    source_type: str
    target_schema: dict[str, Any]
    field_mappings: dict[str, str]
    deidentification_rules: list[dict[str, Any]]
    security: SecurityService
    payload: SourcePayload | None = None
    output_format: str = "jsonl"

    records: list[dict[str, Any]] = field(default_factory=list)
    total_records: int | None = None
    pii_findings: dict[str, list[str]] = field(default_factory=dict)
    fields_deidentified: list[str] = field(default_factory=list)
    records_missing_required: int = 0

    def dataset_metadata(self) -> dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "targetSchema": self.target_schema.get("name"),
            "piiFieldsDetected": self.pii_findings,
            "piiFieldsRedacted": self.fields_deidentified,
            "recordsMissingRequiredFields": self.records_missing_required,
        }
