"""Audit logging routes.

Provides a filtered, paginated listing of the destination audit trail.
Entries are written by the repository together with the change they
describe.

Security Note:
    These endpoints should be protected by authentication middleware in production.
    Access to audit logs should be restricted to authorized personnel only.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from destinations import SQLiteDestinationRepository

from .destinations import get_repository

router = APIRouter(prefix="/api/audit", tags=["audit"])


class AuditLogEntry(BaseModel):
    """Single audit log entry."""

    id: str
    timestamp: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] | None = None


class AuditLogListResponse(BaseModel):
    """Response for audit log listing."""

    entries: list[AuditLogEntry]
    total: int
    limit: int
    offset: int
    filters_applied: dict[str, Any]


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    action: str | None = Query(default=None, description="Filter by action type"),
    resource_id: str | None = Query(
        default=None, description="Filter by destination ID"
    ),
    start_date: str | None = Query(default=None, description="Start date (ISO format)"),
    end_date: str | None = Query(default=None, description="End date (ISO format)"),
    repository: SQLiteDestinationRepository = Depends(get_repository),
) -> AuditLogListResponse:
    """List audit log entries with filtering and pagination."""
    filters = {
        "action": action,
        "resource_id": resource_id,
        "start_date": start_date,
        "end_date": end_date,
    }
    entries, total = repository.list_audit_events(limit=limit, offset=offset, **filters)

    return AuditLogListResponse(
        entries=[AuditLogEntry(**entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
        filters_applied=filters,
    )
