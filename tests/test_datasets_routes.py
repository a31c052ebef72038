"""Tests for the dataset routes.

Covers:
- GET /datasets/{id}: detail
- GET /datasets/{id}/download: content type and attachment name per format
- GET /datasets/{id}/preview: limits, CSV raw lines, unparsable content
- DELETE /datasets/{id}
- GET /projects/{id}/datasets
"""
from __future__ import annotations

import pytest

from foundry.api.routes.datasets import preview_records
from foundry.db.models import Dataset, ProcessingJob
from helpers import auth_headers, make_source, make_tenant


@pytest.fixture()
def tenant(db):
    return make_tenant(db)


def _dataset(db, project_id: int, content: str | None, fmt: str = "jsonl", name: str = "Contacts 2026") -> Dataset:
    source = make_source(db, project_id)
    job = ProcessingJob(source_id=source.id, status="completed", progress=100, stage="complete")
    db.add(job)
    db.flush()
    dataset = Dataset(
        processing_job_id=job.id,
        name=name,
        format=fmt,
        record_count=3,
        file_size=len((content or "").encode("utf-8")),
        storage_key=f"dataset-{job.id}",
        data_content=content,
    )
    db.add(dataset)
    db.flush()
    dataset.download_url = f"/datasets/{dataset.id}/download"
    db.commit()
    return dataset


JSONL = '{"n": 1}\n{"n": 2}\n{"n": 3}'


class TestDatasetDetail:
    def test_get(self, client, db, tenant):
        dataset = _dataset(db, tenant.project_id, JSONL)

        data = client.get(f"/datasets/{dataset.id}", headers=auth_headers(tenant)).json()["data"]

        assert data["id"] == dataset.id
        assert data["recordCount"] == 3
        assert data["downloadUrl"] == f"/datasets/{dataset.id}/download"

    def test_other_organization_is_forbidden(self, client, db, tenant):
        dataset = _dataset(db, tenant.project_id, JSONL)
        intruder = make_tenant(db, "globex")

        assert client.get(f"/datasets/{dataset.id}", headers=auth_headers(intruder)).status_code == 403


class TestDownload:
    @pytest.mark.parametrize(
        "fmt, content_type",
        [("jsonl", "application/x-ndjson"), ("json", "application/json"), ("csv", "text/csv")],
    )
    def test_content_type_and_filename(self, client, db, tenant, fmt, content_type):
        dataset = _dataset(db, tenant.project_id, "x", fmt=fmt)

        resp = client.get(f"/datasets/{dataset.id}/download", headers=auth_headers(tenant))

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(content_type)
        assert resp.headers["content-disposition"] == f'attachment; filename="Contacts_2026.{fmt}"'
        assert resp.text == "x"

    def test_missing_content(self, client, db, tenant):
        dataset = _dataset(db, tenant.project_id, None)

        resp = client.get(f"/datasets/{dataset.id}/download", headers=auth_headers(tenant))

        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Dataset content not available"


class TestPreview:
    def test_default_and_explicit_limit(self, client, db, tenant):
        dataset = _dataset(db, tenant.project_id, JSONL)
        headers = auth_headers(tenant)

        full = client.get(f"/datasets/{dataset.id}/preview", headers=headers).json()["data"]
        assert full == {"records": [{"n": 1}, {"n": 2}, {"n": 3}], "total": 3, "previewed": 3}

        one = client.get(f"/datasets/{dataset.id}/preview?limit=1", headers=headers).json()["data"]
        assert one["records"] == [{"n": 1}]

    def test_limit_is_capped(self):
        content = "\n".join(f'{{"n": {i}}}' for i in range(150))
        assert len(preview_records(content, "jsonl", 100)) == 100

    def test_csv_previews_header_plus_raw_lines(self):
        assert preview_records("a,b\n1,2\n3,4\n", "csv", 1) == [{"raw": "a,b"}, {"raw": "1,2"}]

    def test_json_object_and_array(self):
        assert preview_records('[{"a": 1}, {"a": 2}]', "json", 1) == [{"a": 1}]
        assert preview_records('{"a": 1}', "json", 5) == [{"a": 1}]

    def test_unparsable_content_is_empty(self):
        assert preview_records("{broken", "jsonl", 10) == []


class TestDeleteAndList:
    def test_delete(self, client, db, tenant):
        dataset = _dataset(db, tenant.project_id, JSONL)
        headers = auth_headers(tenant)

        assert client.delete(f"/datasets/{dataset.id}", headers=headers).status_code == 204
        assert client.get(f"/datasets/{dataset.id}", headers=headers).status_code == 404

    def test_project_datasets(self, client, db, tenant):
        first = _dataset(db, tenant.project_id, JSONL, name="First")
        second = _dataset(db, tenant.project_id, JSONL, name="Second")

        data = client.get(f"/projects/{tenant.project_id}/datasets", headers=auth_headers(tenant)).json()["data"]

        assert {d["id"] for d in data} == {first.id, second.id}
        assert all(d["sourceName"] == "Contacts export" for d in data)

    def test_project_of_other_organization(self, client, db, tenant):
        intruder = make_tenant(db, "globex")

        resp = client.get(f"/projects/{tenant.project_id}/datasets", headers=auth_headers(intruder))

        assert resp.status_code == 403
