"""Parsing stage: decode the uploaded source file into a list of records.

Supported formats
-----------------
csv    : pandas, every value read as a string, empty cells as ""
json   : an array of objects, or a single object
jsonl  : one object per non-empty line

The format is taken from the file extension, falling back to the mime type.
"""
from __future__ import annotations

import base64
import binascii
import io
import json
import logging
from pathlib import Path
from typing import Any

import pandas as pd

from foundry.core.constants import SOURCE_TYPE_FILE
from foundry.pipeline.context import StageContext, StageError

logger = logging.getLogger(__name__)

_EXTENSION_FORMATS: dict[str, str] = {
    ".csv": "csv",
    ".json": "json",
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
}

_MIME_FORMATS: dict[str, str] = {
    "text/csv": "csv",
    "application/csv": "csv",
    "application/json": "json",
    "application/x-ndjson": "jsonl",
    "application/jsonl": "jsonl",
}


def detect_format(filename: str, mime_type: str | None = None) -> str:
    ext = Path(filename).suffix.lower()
    if ext in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[ext]
    if mime_type and mime_type.lower() in _MIME_FORMATS:
        return _MIME_FORMATS[mime_type.lower()]
    raise StageError(f"Unsupported source file format: {filename!r}")


def _parse_csv(text: str) -> list[dict[str, Any]]:
    if not text.strip():
        return []
    frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    return [{str(k): v for k, v in row.items()} for row in frame.to_dict(orient="records")]


def _parse_json(text: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StageError(f"Invalid JSON: {exc.msg}") from exc
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise StageError("JSON source must be an object or an array of objects")
    return data


def _parse_jsonl(text: str) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as exc:
            raise StageError(f"Invalid JSON on line {line_no}") from exc
        if not isinstance(item, dict):
            raise StageError(f"Line {line_no} is not a JSON object")
        records.append(item)
    return records


_PARSERS = {
    "csv": _parse_csv,
    "json": _parse_json,
    "jsonl": _parse_jsonl,
}


def parse_records(payload: bytes, filename: str, mime_type: str | None = None) -> list[dict[str, Any]]:
    """Parse raw file bytes into a list of flat records."""
    fmt = detect_format(filename, mime_type)
    try:
        text = payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise StageError(f"Source file {filename!r} is not valid UTF-8") from exc
    return _PARSERS[fmt](text)


def run_parsing(ctx: StageContext) -> None:
    if ctx.payload is None:
        if ctx.source_type != SOURCE_TYPE_FILE:
            raise StageError(f"No parser available for source type {ctx.source_type!r}")
        raise StageError("Source file not found")

    try:
        raw = base64.b64decode(ctx.payload.file_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise StageError("Source file data is not valid base64") from exc

    ctx.records = parse_records(raw, ctx.payload.filename, ctx.payload.mime_type)
    ctx.total_records = len(ctx.records)
    logger.info("Job %s parsed %d record(s)", ctx.job_id, ctx.total_records)
