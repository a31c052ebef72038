"""Status, stage and enum vocabularies shared by the models, the pipeline
and the API layer.

Processing job lifecycle
------------------------
pending → running → completed
                  ↘ failed

Source lifecycle
----------------
pending → configured → processing → ready
                                  ↘ error
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Processing jobs
# ---------------------------------------------------------------------------

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

JOB_STATUSES: frozenset[str] = frozenset({JOB_PENDING, JOB_RUNNING, JOB_COMPLETED, JOB_FAILED})
ACTIVE_JOB_STATUSES: frozenset[str] = frozenset({JOB_PENDING, JOB_RUNNING})
TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({JOB_COMPLETED, JOB_FAILED})

STAGE_PARSING = "parsing"
STAGE_DETECTING_PII = "detecting_pii"
STAGE_DEIDENTIFYING = "deidentifying"
STAGE_MAPPING = "mapping"
STAGE_COMPLETE = "complete"

CANCELLED_MESSAGE = "Cancelled by user"
INTERRUPTED_MESSAGE = "Processing interrupted by server shutdown"
SOURCE_DELETED_MESSAGE = "Source was deleted"
PROJECT_DELETED_MESSAGE = "Project was deleted"

# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

PROJECT_DELETED = "deleted"

# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

SOURCE_PENDING = "pending"
SOURCE_CONFIGURED = "configured"
SOURCE_PROCESSING = "processing"
SOURCE_READY = "ready"
SOURCE_ERROR = "error"

SOURCE_TYPE_FILE = "file"
SOURCE_TYPE_TEAMWORK_DESK = "teamwork_desk"
SOURCE_TYPE_API = "api"

SOURCE_TYPES: frozenset[str] = frozenset({SOURCE_TYPE_FILE, SOURCE_TYPE_TEAMWORK_DESK, SOURCE_TYPE_API})

# ---------------------------------------------------------------------------
# De-identification and datasets
# ---------------------------------------------------------------------------

DEIDENTIFICATION_ACTIONS: frozenset[str] = frozenset({"redact", "tokenize", "hash", "mask", "remove"})

DATASET_FORMATS: frozenset[str] = frozenset({"jsonl", "csv", "json"})

DATASET_CONTENT_TYPES: dict[str, str] = {
    "jsonl": "application/x-ndjson",
    "json": "application/json",
    "csv": "text/csv",
}
