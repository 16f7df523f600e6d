"""Audit trail for destination changes.

Audit rows are written on the caller's connection so that they commit (or
roll back) together with the change they describe. Details never include
configuration values.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    """Types of auditable actions."""

    DESTINATION_CREATE = "destination.create"
    DESTINATION_UPDATE = "destination.update"
    DESTINATION_CLONE = "destination.clone"
    DESTINATION_DELETE = "destination.delete"
    DESTINATION_UPGRADE_VERSION = "destination.upgrade_version"


def init_audit_table(conn: sqlite3.Connection) -> None:
    """Create the audit_logs table if it doesn't exist."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_logs (
            id TEXT PRIMARY KEY,
            timestamp TEXT NOT NULL,
            action TEXT NOT NULL,
            resource_type TEXT,
            resource_id TEXT,
            details TEXT
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_logs(timestamp)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_audit_resource ON audit_logs(resource_type, resource_id)"
    )


def log_audit_event(
    conn: sqlite3.Connection,
    action: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> str:
    """Insert an audit row. The caller owns the transaction.

    Returns the audit log entry ID.
    """
    audit_id = str(uuid.uuid4())
    timestamp = datetime.now(timezone.utc).isoformat()

    conn.execute(
        """
        INSERT INTO audit_logs (
            id, timestamp, action, resource_type, resource_id, details
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            audit_id,
            timestamp,
            action,
            resource_type,
            resource_id,
            json.dumps(details) if details else None,
        ),
    )
    return audit_id


def list_audit_events(
    conn: sqlite3.Connection,
    limit: int = 50,
    offset: int = 0,
    action: str | None = None,
    resource_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[list[dict[str, Any]], int]:
    """Return one page of audit rows, newest first, and the total match count."""
    conditions = []
    params: list[Any] = []

    if action:
        conditions.append("action = ?")
        params.append(action)

    if resource_id:
        conditions.append("resource_id = ?")
        params.append(resource_id)

    if start_date:
        conditions.append("timestamp >= ?")
        params.append(start_date)

    if end_date:
        conditions.append("timestamp <= ?")
        params.append(end_date)

    # Column names are fixed; values are always bound parameters
    where_clause = " AND ".join(conditions) if conditions else "1=1"

    total = conn.execute(
        f"SELECT COUNT(*) FROM audit_logs WHERE {where_clause}", params
    ).fetchone()[0]

    rows = conn.execute(
        f"""
        SELECT id, timestamp, action, resource_type, resource_id, details
        FROM audit_logs
        WHERE {where_clause}
        ORDER BY timestamp DESC
        LIMIT ? OFFSET ?
        """,
        params + [limit, offset],
    ).fetchall()

    entries = []
    for row in rows:
        details = None
        if row[5]:
            try:
                details = json.loads(row[5])
            except json.JSONDecodeError:
                details = {"raw": row[5]}

        entries.append(
            {
                "id": row[0],
                "timestamp": row[1],
                "action": row[2],
                "resource_type": row[3],
                "resource_id": row[4],
                "details": details,
            }
        )

    return entries, total
