"""Seeding helpers shared by the API, executor and registry tests."""
from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy.orm import Session

from foundry.db.models import Organization, Project, Source, SourceConfiguration, SourceFile, User

JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"
TENANT_SALT = "test-salt"

CONTACTS_CSV = (
    "name,email,phone\n"
    "Alice,alice@example.com,555-123-4567\n"
    "Bob,bob@example.com,555-987-6543\n"
    ",carol@example.com,\n"
)

CONTACTS_SCHEMA = {
    "name": "contacts",
    "fields": [
        {"name": "full_name", "type": "string", "required": True},
        {"name": "email", "type": "string", "required": False},
        {"name": "phone", "type": "string", "required": False},
    ],
}
CONTACTS_MAPPINGS = {"name": "full_name"}
CONTACTS_RULES = [
    {"field": "email", "action": "hash", "pattern": None},
    {"field": "phone", "action": "mask", "pattern": None},
]


@dataclass
class Tenant:
    organization_id: int
    user_id: int
    project_id: int


def make_tenant(db: Session, slug: str = "acme") -> Tenant:
    org = Organization(name=slug.title(), slug=slug)
    db.add(org)
    db.flush()
    user = User(organization_id=org.id, email=f"owner@{slug}.test", name="Owner")
    db.add(user)
    db.flush()
    project = Project(user_id=user.id, name=f"{slug} project")
    db.add(project)
    db.commit()
    return Tenant(organization_id=org.id, user_id=user.id, project_id=project.id)


def make_source(
    db: Session,
    project_id: int,
    *,
    name: str = "Contacts export",
    source_type: str = "file",
    filename: str | None = "contacts.csv",
    mime_type: str = "text/csv",
    content: str = CONTACTS_CSV,
    target_schema: dict | None = None,
    field_mappings: dict | None = None,
    rules: list | None = None,
    configured: bool = True,
) -> Source:
    source = Source(
        project_id=project_id,
        name=name,
        type=source_type,
        status="configured" if configured else "pending",
    )
    db.add(source)
    db.flush()

    if filename is not None:
        raw = content.encode("utf-8")
        db.add(
            SourceFile(
                source_id=source.id,
                filename=filename,
                mime_type=mime_type,
                file_size=len(raw),
                file_data=base64.b64encode(raw).decode("ascii"),
            )
        )
    if configured:
        db.add(
            SourceConfiguration(
                source_id=source.id,
                target_schema=CONTACTS_SCHEMA if target_schema is None else target_schema,
                field_mappings=CONTACTS_MAPPINGS if field_mappings is None else field_mappings,
                deidentification_rules=CONTACTS_RULES if rules is None else rules,
            )
        )
    db.commit()
    return source


def auth_headers(tenant: Tenant, *, expired: bool = False, secret: str = JWT_SECRET) -> dict[str, str]:
    now = datetime.now(timezone.utc)
    claims = {
        "userId": tenant.user_id,
        "organizationId": tenant.organization_id,
        "role": "user",
        "iat": now,
        "exp": now - timedelta(minutes=5) if expired else now + timedelta(hours=1),
    }
    token = jwt.encode(claims, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}
