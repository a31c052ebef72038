"""Field mapping stage: project each record onto the target schema.

Every target field is resolved through the field mapping (source → target)
or, failing that, by an identically named source field.  Output records carry
exactly the target fields, in schema order; unresolved values are ``None``.
"""
from __future__ import annotations

import logging
from typing import Any

from foundry.pipeline.context import StageContext, StageError

logger = logging.getLogger(__name__)


def map_records(
    records: list[dict[str, Any]],
    target_schema: dict[str, Any],
    field_mappings: dict[str, str],
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(mapped_records, records_missing_required_fields)``."""
    fields = target_schema.get("fields") or []
    if not fields:
        raise StageError("Target schema has no fields")

    target_to_source = {target: source for source, target in field_mappings.items()}
    required = [f["name"] for f in fields if f.get("required")]

    mapped: list[dict[str, Any]] = []
    missing = 0
    for record in records:
        row = {f["name"]: record.get(target_to_source.get(f["name"], f["name"])) for f in fields}
        if any(row[name] in (None, "") for name in required):
            missing += 1
        mapped.append(row)
    return mapped, missing


def run_mapping(ctx: StageContext) -> None:
    ctx.records, ctx.records_missing_required = map_records(
        ctx.records, ctx.target_schema, ctx.field_mappings
    )
    if ctx.records_missing_required:
        logger.warning(
            "Job %s: %d record(s) missing required fields",
            ctx.job_id,
            ctx.records_missing_required,
        )
