"""
tenant_identity.db.models

Persistence schema.

Responsibilities:
- UserRecord: binds a human identity to the tenant's provisioned identity bundle.
- WorkflowRun: durable progress of one provisioning/deprovisioning workflow (checkpointed state,
  including pending compensations).
- TenantLease: per-tenant mutual exclusion for in-flight workflows.
- AuditEvent: append-only trail of workflow events.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, Index, String, Text, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from tenant_identity.db.base import Base, utcnow
from tenant_identity.provisioning.models import UserRole


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [str(m.value) for m in enum_cls]


class WorkflowKind(enum.StrEnum):
    provision = "PROVISION"
    deprovision = "DEPROVISION"


class RunStatus(enum.StrEnum):
    running = "RUNNING"
    completed = "COMPLETED"
    failed = "FAILED"
    rolled_back = "ROLLED_BACK"
    rollback_incomplete = "ROLLBACK_INCOMPLETE"


class UserRecord(Base):
    __tablename__ = "users"

    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    id: Mapped[str] = mapped_column(String(256), primary_key=True)

    user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=_values, native_enum=False), nullable=False
    )
    tier: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    company_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    account_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(256), nullable=True)

    auth_domain_id: Mapped[str] = mapped_column(String(128), nullable=False)
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    broker_id: Mapped[str] = mapped_column(String(128), nullable=False)
    # Assigned by the identity domain; empty until the identity exists there.
    sub: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    # Secondary lookup by user id alone (system context, tenant not yet known).
    __table_args__ = (Index("ix_users_id", "id"),)


class WorkflowRun(Base):
    __tablename__ = "workflow_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    kind: Mapped[WorkflowKind] = mapped_column(
        Enum(WorkflowKind, values_callable=_values, native_enum=False), nullable=False
    )
    status: Mapped[RunStatus] = mapped_column(
        Enum(RunStatus, values_callable=_values, native_enum=False), nullable=False, index=True
    )
    # Last completed step name.
    step: Mapped[str] = mapped_column(String(64), nullable=False, default="START")
    state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_runs_tenant_created", "tenant_id", "created_at"),)


class TenantLease(Base):
    __tablename__ = "tenant_leases"

    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner: Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    run_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), nullable=True, index=True
    )
    actor: Mapped[str] = mapped_column(String(256), nullable=False)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)

    __table_args__ = (Index("ix_audit_tenant_created", "tenant_id", "created_at"),)


# --- Module Notes -----------------------------------------------------------
# UserRecord mirrors the original key-value layout: partition key tenant_id, sort key id,
# plus an index on id. Enum columns store their values so rows stay readable by other services.
