"""Tests for the project routes.

Covers:
- POST /projects: create, validation
- GET /projects: organization scoping, source counts, paging
- GET /projects/{id}: detail, 403 across organizations, 404 when missing
- PUT /projects/{id}: partial update, explicit null description
- DELETE /projects/{id}: soft delete hides the project's sources and jobs
"""
from __future__ import annotations

import pytest

from foundry.db.models import ProcessingJob, Project
from helpers import auth_headers, make_source, make_tenant


@pytest.fixture()
def tenant(db):
    return make_tenant(db)


class TestCreateProject:
    def test_create_is_owned_by_caller(self, client, tenant, session_factory):
        resp = client.post(
            "/projects", json={"name": "Claims", "description": "2024 claims"}, headers=auth_headers(tenant)
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["name"] == "Claims"
        assert data["description"] == "2024 claims"
        assert data["status"] == "active"
        assert data["userId"] == tenant.user_id
        with session_factory() as s:
            assert s.get(Project, data["id"]).user_id == tenant.user_id

    @pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "x" * 101}, {"name": "ok", "description": "d" * 501}])
    def test_invalid_body_is_rejected(self, client, tenant, body):
        resp = client.post("/projects", json=body, headers=auth_headers(tenant))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_requires_authentication(self, client):
        assert client.post("/projects", json={"name": "Claims"}).status_code == 401


class TestListProjects:
    def test_only_callers_organization_with_source_counts(self, client, db, tenant):
        make_tenant(db, "globex")
        make_source(db, tenant.project_id)
        make_source(db, tenant.project_id, name="second")
        headers = auth_headers(tenant)
        created = client.post("/projects", json={"name": "Newer"}, headers=headers).json()["data"]

        body = client.get("/projects", headers=headers).json()

        assert [p["id"] for p in body["data"]] == [created["id"], tenant.project_id]
        assert [p["sourceCount"] for p in body["data"]] == [0, 2]
        assert body["pagination"] == {"page": 1, "pageSize": 20, "total": 2, "totalPages": 1}

    def test_page_size_is_capped(self, client, tenant):
        body = client.get("/projects", params={"pageSize": 500}, headers=auth_headers(tenant)).json()

        assert body["pagination"]["pageSize"] == 100


class TestGetProject:
    def test_detail(self, client, db, tenant):
        make_source(db, tenant.project_id)

        data = client.get(f"/projects/{tenant.project_id}", headers=auth_headers(tenant)).json()["data"]

        assert data["id"] == tenant.project_id
        assert data["sourceCount"] == 1

    def test_other_organization_is_forbidden(self, client, db, tenant):
        intruder = make_tenant(db, "globex")

        resp = client.get(f"/projects/{tenant.project_id}", headers=auth_headers(intruder))

        assert resp.status_code == 403

    def test_missing_project(self, client, tenant):
        resp = client.get("/projects/9999", headers=auth_headers(tenant))

        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Project not found"


class TestUpdateProject:
    def test_partial_update_keeps_omitted_fields(self, client, tenant):
        headers = auth_headers(tenant)
        client.put(f"/projects/{tenant.project_id}", json={"description": "kept"}, headers=headers)

        data = client.put(f"/projects/{tenant.project_id}", json={"name": "Renamed"}, headers=headers).json()["data"]

        assert data["name"] == "Renamed"
        assert data["description"] == "kept"

    def test_explicit_null_clears_description(self, client, tenant):
        headers = auth_headers(tenant)
        client.put(f"/projects/{tenant.project_id}", json={"description": "temporary"}, headers=headers)

        data = client.put(f"/projects/{tenant.project_id}", json={"description": None}, headers=headers).json()["data"]

        assert data["description"] is None

    def test_other_organization_is_forbidden(self, client, db, tenant):
        intruder = make_tenant(db, "globex")

        resp = client.put(f"/projects/{tenant.project_id}", json={"name": "Mine"}, headers=auth_headers(intruder))

        assert resp.status_code == 403


class TestDeleteProject:
    def test_soft_delete_hides_project_sources_and_jobs(self, client, db, tenant, session_factory):
        source = make_source(db, tenant.project_id)
        job = ProcessingJob(source_id=source.id, status="completed", stage="complete", progress=100)
        db.add(job)
        db.commit()
        headers = auth_headers(tenant)

        assert client.delete(f"/projects/{tenant.project_id}", headers=headers).status_code == 204

        assert client.get(f"/projects/{tenant.project_id}", headers=headers).status_code == 404
        assert client.get(f"/sources/{source.id}", headers=headers).status_code == 404
        assert client.get(f"/jobs/{job.id}", headers=headers).status_code == 404
        assert client.post(f"/jobs/{job.id}/cancel", headers=headers).status_code == 404
        assert client.get("/projects", headers=headers).json()["data"] == []
        with session_factory() as s:
            stored = s.get(Project, tenant.project_id)
            assert stored.status == "deleted"
            assert stored.deleted_at is not None

    def test_delete_fails_active_jobs(self, client, db, tenant, session_factory):
        source = make_source(db, tenant.project_id)
        job = ProcessingJob(source_id=source.id, status="running", stage="mapping", progress=75)
        db.add(job)
        db.commit()

        client.delete(f"/projects/{tenant.project_id}", headers=auth_headers(tenant))

        with session_factory() as s:
            stored = s.get(ProcessingJob, job.id)
            assert stored.status == "failed"
            assert stored.error_message == "Project was deleted"

    def test_other_organization_is_forbidden(self, client, db, tenant, session_factory):
        intruder = make_tenant(db, "globex")

        resp = client.delete(f"/projects/{tenant.project_id}", headers=auth_headers(intruder))

        assert resp.status_code == 403
        with session_factory() as s:
            assert s.get(Project, tenant.project_id).deleted_at is None
