"""Dataset routes.

GET    /datasets/{dataset_id}          : dataset detail
GET    /datasets/{dataset_id}/download : raw content as an attachment
GET    /datasets/{dataset_id}/preview  : first N records
DELETE /datasets/{dataset_id}          : hard delete
"""
from __future__ import annotations

import json
import logging
import re

from fastapi import APIRouter, Depends, Response

from foundry.api.deps import get_access_guard, get_current_user
from foundry.api.views import dataset_summary
from foundry.core.auth import AuthUser
from foundry.core.constants import DATASET_CONTENT_TYPES
from foundry.core.errors import NotFoundError
from foundry.db.models import Dataset
from foundry.services.access import AccessGuard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datasets", tags=["datasets"])

PREVIEW_DEFAULT_LIMIT = 10
PREVIEW_MAX_LIMIT = 100


@router.get("/{dataset_id}", summary="Get dataset detail")
def get_dataset(
    dataset_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    return {"data": dataset_summary(guard.authorize_dataset(dataset_id, caller))}


@router.get("/{dataset_id}/download", summary="Download dataset content")
def download_dataset(
    dataset_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    dataset = guard.authorize_dataset(dataset_id, caller)
    content = _content_or_404(dataset)
    filename = f"{re.sub(r'[^A-Za-z0-9]', '_', dataset.name)}.{dataset.format}"
    return Response(
        content=content.encode("utf-8"),
        media_type=DATASET_CONTENT_TYPES.get(dataset.format, "application/octet-stream"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{dataset_id}/preview", summary="Preview dataset records")
def preview_dataset(
    dataset_id: int,
    limit: int = PREVIEW_DEFAULT_LIMIT,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    dataset = guard.authorize_dataset(dataset_id, caller)
    content = _content_or_404(dataset)
    limit = max(1, min(limit, PREVIEW_MAX_LIMIT))

    records = preview_records(content, dataset.format, limit)
    return {"data": {"records": records, "total": dataset.record_count, "previewed": len(records)}}


@router.delete("/{dataset_id}", status_code=204, summary="Delete a dataset")
def delete_dataset(
    dataset_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    dataset = guard.authorize_dataset(dataset_id, caller)
    guard.db.delete(dataset)
    guard.db.flush()
    logger.info("Dataset %s deleted by user %s", dataset_id, caller.user_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _content_or_404(dataset: Dataset) -> str:
    if not dataset.data_content:
        raise NotFoundError("Dataset content not available")
    return dataset.data_content


def preview_records(content: str, fmt: str, limit: int) -> list:
    """First *limit* records of *content*; CSV previews as raw lines after the header.

    Content that does not parse previews as an empty list.
    """
    try:
        if fmt == "jsonl":
            lines = [line for line in content.split("\n") if line.strip()]
            return [json.loads(line) for line in lines[:limit]]
        if fmt == "json":
            parsed = json.loads(content)
            return parsed[:limit] if isinstance(parsed, list) else [parsed]
        return [{"raw": line} for line in content.splitlines()[: limit + 1]]
    except ValueError:
        return []
