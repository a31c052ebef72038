#!/usr/bin/env python3
"""Seed demo data: one organization, user and project with a configured CSV source.

Prints a bearer token for the demo user so the API can be exercised with curl.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import base64
import sys
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from foundry.core.settings import get_settings
from foundry.db.base import Base
from foundry.db.models import Organization, Project, Source, SourceConfiguration, SourceFile, User

DEMO_CSV = "\n".join(
    [
        "name,email,phone,notes",
        "Alice Johnson,alice.johnson@example.com,202-555-1001,renewal due",
        "Bob Smith,bob.smith@example.com,202-555-1002,card 4111 1111 1111 1111 on file",
        "Priya Patel,priya.patel@example.com,202-555-1003,",
        "Carlos Rivera,carlos.r@example.com,202-555-1004,called from 10.0.0.12",
        "Fatima Khan,,202-555-1005,no email on record",
    ]
) + "\n"


def seed(session: Session) -> tuple[User, Source]:
    """Insert the demo tenant and a ready-to-process source."""
    org = Organization(name="Demo Org", slug="demo-org")
    session.add(org)
    session.flush()

    user = User(organization_id=org.id, email="demo@demo-org.test", name="Demo Admin", role="admin")
    session.add(user)
    session.flush()

    project = Project(user_id=user.id, name="Customer contacts", description="Demo project")
    session.add(project)
    session.flush()

    source = Source(project_id=project.id, name="CRM export", type="file", status="configured")
    session.add(source)
    session.flush()

    raw = DEMO_CSV.encode("utf-8")
    session.add(
        SourceFile(
            source_id=source.id,
            filename="crm_export.csv",
            mime_type="text/csv",
            file_size=len(raw),
            file_data=base64.b64encode(raw).decode("ascii"),
        )
    )
    session.add(
        SourceConfiguration(
            source_id=source.id,
            target_schema={
                "name": "contacts",
                "fields": [
                    {"name": "full_name", "type": "string", "required": True},
                    {"name": "email", "type": "string", "required": True},
                    {"name": "phone", "type": "string"},
                    {"name": "notes", "type": "string"},
                ],
            },
            field_mappings={"name": "full_name"},
            deidentification_rules=[
                {"field": "email", "action": "hash", "pattern": None},
                {"field": "phone", "action": "mask", "pattern": None},
                {"field": "notes", "action": "redact", "pattern": r"\b(?:\d[ -]?){12,18}\d\b"},
            ],
        )
    )
    session.commit()
    print(f"Seeded organization {org.id}, user {user.id}, project {project.id}, source {source.id}.")
    return user, source


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, source = seed(session)
        token = jwt.encode(
            {
                "userId": user.id,
                "organizationId": user.organization_id,
                "role": user.role,
                "exp": datetime.now(timezone.utc) + timedelta(hours=12),
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )

    print(f"POST /sources/{source.id}/process with header:")
    print(f"Authorization: Bearer {token}")


if __name__ == "__main__":
    main()
