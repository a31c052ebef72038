"""Tests for foundry/pipeline/emitter.py.

Covers:
- render_records for jsonl, json and csv (column order, nested values, None)
- DatasetEmitter.emit: byte size, storage key, download URL, retention
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from foundry.db.models import ProcessingJob
from foundry.pipeline.emitter import DatasetEmitter, render_records
from helpers import make_source, make_tenant

RECORDS = [{"name": "Zoë", "tags": ["a", "b"]}, {"name": None, "city": "Oslo"}]


class TestRender:
    def test_jsonl(self):
        lines = render_records(RECORDS, "jsonl").split("\n")
        assert [json.loads(line) for line in lines] == RECORDS

    def test_json(self):
        assert json.loads(render_records(RECORDS, "json")) == RECORDS

    def test_csv(self):
        assert render_records(RECORDS, "csv") == 'name,tags,city\nZoë,"[""a"",""b""]",\n,,Oslo\n'

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            render_records(RECORDS, "xml")


class TestEmit:
    @pytest.fixture()
    def job_id(self, db):
        tenant = make_tenant(db)
        source = make_source(db, tenant.project_id)
        job = ProcessingJob(source_id=source.id, status="running")
        db.add(job)
        db.commit()
        return job.id

    def test_emit_persists_dataset(self, db, job_id):
        content = render_records(RECORDS, "jsonl")

        dataset = DatasetEmitter(db).emit(job_id, content, "jsonl", 2, name="Contacts", metadata={"k": 1})
        db.commit()

        assert dataset.id is not None
        assert dataset.file_size == len(content.encode("utf-8"))
        assert dataset.storage_key == f"dataset-{job_id}"
        assert dataset.download_url == f"/datasets/{dataset.id}/download"
        assert dataset.record_count == 2
        assert dataset.metadata_json == {"k": 1}
        assert dataset.expires_at is None

    def test_retention_sets_expiry(self, db, job_id):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)

        dataset = DatasetEmitter(db, retention_days=7).emit(job_id, "", "json", 0, now=now)

        assert dataset.expires_at == now + timedelta(days=7)
        assert dataset.name == f"Dataset - {now.isoformat()}"

    def test_rejects_unknown_format(self, db, job_id):
        with pytest.raises(ValueError):
            DatasetEmitter(db).emit(job_id, "", "parquet", 0)
