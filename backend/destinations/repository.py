"""Persistence of destinations, definitions and connector versions.

:class:`DestinationRepository` is the contract the handler depends on;
:class:`SQLiteDestinationRepository` implements it on top of ``sqlite3``.
Configuration documents are stored as-is (plaintext secrets); masking only
happens on the way out of the API.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .audit import AuditAction, init_audit_table, list_audit_events, log_audit_event
from .errors import ConflictError, NotFoundError, UpstreamError
from .models import (
    ActorDefinitionVersion,
    ConnectorSpecification,
    DestinationConnection,
    DestinationDefinition,
)
from .oauth import OAuthParameterStore

logger = logging.getLogger(__name__)

# Key used for OAuth parameters that apply to every workspace
GLOBAL_SCOPE = ""


class DestinationRepository(OAuthParameterStore):
    """Storage contract for destination records and connector metadata."""

    @abstractmethod
    def get_destination(
        self, destination_id: str, include_tombstone: bool = False
    ) -> DestinationConnection:
        """Raises NotFoundError if absent (or tombstoned, unless included)."""
        pass

    def get_destination_with_secrets(self, destination_id: str) -> DestinationConnection:
        """Privileged read returning the configuration with plaintext secrets.

        Backends that keep secrets apart from the record override this to
        hydrate them.
        """
        return self.get_destination(destination_id)

    @abstractmethod
    def list_workspace_destinations(
        self, workspace_id: str, include_tombstone: bool = False
    ) -> list[DestinationConnection]:
        pass

    @abstractmethod
    def list_destinations(
        self, include_tombstone: bool = False
    ) -> list[DestinationConnection]:
        pass

    @abstractmethod
    def write_destination(
        self,
        connection: DestinationConnection,
        expected_revision: int | None = None,
        audit_action: AuditAction | None = None,
    ) -> DestinationConnection:
        """Insert (``expected_revision`` None) or overwrite a destination.

        Returns the stored record with its new revision.

        Raises:
            ConflictError: The id already exists on insert, or the stored
                revision differs from ``expected_revision`` on overwrite
        """
        pass

    @abstractmethod
    def set_version_override(self, destination_id: str, version_id: str) -> None:
        pass

    @abstractmethod
    def get_definition(self, destination_definition_id: str) -> DestinationDefinition:
        pass

    @abstractmethod
    def write_definition(self, definition: DestinationDefinition) -> None:
        pass

    @abstractmethod
    def get_definition_version(self, version_id: str) -> ActorDefinitionVersion:
        pass

    @abstractmethod
    def write_definition_version(self, version: ActorDefinitionVersion) -> None:
        pass

    @abstractmethod
    def get_workspace_version_override(
        self, destination_definition_id: str, workspace_id: str
    ) -> str | None:
        pass

    @abstractmethod
    def set_workspace_version_override(
        self, destination_definition_id: str, workspace_id: str, version_id: str
    ) -> None:
        pass

    @abstractmethod
    def write_oauth_parameters(
        self,
        destination_definition_id: str,
        parameters: dict[str, Any],
        workspace_id: str | None = None,
    ) -> None:
        pass


class SQLiteDestinationRepository(DestinationRepository):
    """SQLite-backed repository.

    Every public method opens its own connection; writes that belong together
    (a destination and its audit row) share one transaction.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise UpstreamError("persistence", str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"Database operation failed: {e}", exc_info=True)
            raise UpstreamError("persistence", str(e)) from e
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables and indices if they don't exist."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS destination_definitions (
                    destination_definition_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    icon_url TEXT,
                    icon TEXT,
                    default_version_id TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS destination_definition_versions (
                    version_id TEXT PRIMARY KEY,
                    destination_definition_id TEXT NOT NULL,
                    docker_image_tag TEXT NOT NULL,
                    spec TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workspace_version_overrides (
                    destination_definition_id TEXT NOT NULL,
                    workspace_id TEXT NOT NULL,
                    version_id TEXT NOT NULL,
                    PRIMARY KEY (destination_definition_id, workspace_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS destinations (
                    destination_id TEXT PRIMARY KEY,
                    workspace_id TEXT NOT NULL,
                    destination_definition_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    configuration TEXT NOT NULL,
                    tombstone INTEGER NOT NULL DEFAULT 0,
                    default_version_id TEXT,
                    revision INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS destination_oauth_parameters (
                    destination_definition_id TEXT NOT NULL,
                    workspace_id TEXT NOT NULL,
                    parameters TEXT NOT NULL,
                    PRIMARY KEY (destination_definition_id, workspace_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_destinations_workspace ON destinations(workspace_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_versions_definition "
                "ON destination_definition_versions(destination_definition_id)"
            )
            init_audit_table(conn)

    # --- Destinations ---

    @staticmethod
    def _row_to_destination(row: sqlite3.Row) -> DestinationConnection:
        return DestinationConnection(
            destination_id=row["destination_id"],
            workspace_id=row["workspace_id"],
            destination_definition_id=row["destination_definition_id"],
            name=row["name"],
            configuration=json.loads(row["configuration"]),
            tombstone=bool(row["tombstone"]),
            default_version_id=row["default_version_id"],
            revision=row["revision"],
        )

    def get_destination(
        self, destination_id: str, include_tombstone: bool = False
    ) -> DestinationConnection:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM destinations WHERE destination_id = ?",
                (destination_id,),
            ).fetchone()

        if row is None or (row["tombstone"] and not include_tombstone):
            raise NotFoundError(
                f"Destination {destination_id} not found", destination_id=destination_id
            )
        return self._row_to_destination(row)

    def list_workspace_destinations(
        self, workspace_id: str, include_tombstone: bool = False
    ) -> list[DestinationConnection]:
        query = "SELECT * FROM destinations WHERE workspace_id = ?"
        if not include_tombstone:
            query += " AND tombstone = 0"
        query += " ORDER BY created_at, destination_id"

        with self._connect() as conn:
            rows = conn.execute(query, (workspace_id,)).fetchall()
        return [self._row_to_destination(row) for row in rows]

    def list_destinations(
        self, include_tombstone: bool = False
    ) -> list[DestinationConnection]:
        query = "SELECT * FROM destinations"
        if not include_tombstone:
            query += " WHERE tombstone = 0"
        query += " ORDER BY created_at, destination_id"

        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_destination(row) for row in rows]

    def write_destination(
        self,
        connection: DestinationConnection,
        expected_revision: int | None = None,
        audit_action: AuditAction | None = None,
    ) -> DestinationConnection:
        now = datetime.now(timezone.utc).isoformat()
        configuration = json.dumps(connection.configuration)

        with self._connect() as conn:
            if expected_revision is None:
                new_revision = 1
                try:
                    conn.execute(
                        """
                        INSERT INTO destinations
                            (destination_id, workspace_id, destination_definition_id,
                             name, configuration, tombstone, default_version_id,
                             revision, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            connection.destination_id,
                            connection.workspace_id,
                            connection.destination_definition_id,
                            connection.name,
                            configuration,
                            int(connection.tombstone),
                            connection.default_version_id,
                            new_revision,
                            now,
                            now,
                        ),
                    )
                except sqlite3.IntegrityError:
                    raise ConflictError(
                        f"Destination {connection.destination_id} already exists",
                        destination_id=connection.destination_id,
                    )
            else:
                new_revision = expected_revision + 1
                cursor = conn.execute(
                    """
                    UPDATE destinations
                    SET name = ?, configuration = ?, tombstone = ?,
                        default_version_id = ?, revision = ?, updated_at = ?
                    WHERE destination_id = ? AND revision = ?
                    """,
                    (
                        connection.name,
                        configuration,
                        int(connection.tombstone),
                        connection.default_version_id,
                        new_revision,
                        now,
                        connection.destination_id,
                        expected_revision,
                    ),
                )
                if cursor.rowcount == 0:
                    raise ConflictError(
                        f"Destination {connection.destination_id} was modified "
                        f"concurrently (expected revision {expected_revision})",
                        destination_id=connection.destination_id,
                    )

            if audit_action is not None:
                log_audit_event(
                    conn,
                    action=AuditAction(audit_action).value,
                    resource_type="destination",
                    resource_id=connection.destination_id,
                    details={
                        "name": connection.name,
                        "workspace_id": connection.workspace_id,
                        "destination_definition_id": connection.destination_definition_id,
                    },
                )

        logger.debug(
            f"Stored destination {connection.destination_id} at revision {new_revision}"
        )
        return connection.model_copy(update={"revision": new_revision})

    def set_version_override(self, destination_id: str, version_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE destinations
                SET default_version_id = ?, revision = revision + 1, updated_at = ?
                WHERE destination_id = ? AND tombstone = 0
                """,
                (version_id, now, destination_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(
                    f"Destination {destination_id} not found",
                    destination_id=destination_id,
                )
            log_audit_event(
                conn,
                action=AuditAction.DESTINATION_UPGRADE_VERSION.value,
                resource_type="destination",
                resource_id=destination_id,
                details={"version_id": version_id},
            )

    # --- Definitions and versions ---

    def get_definition(self, destination_definition_id: str) -> DestinationDefinition:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM destination_definitions WHERE destination_definition_id = ?",
                (destination_definition_id,),
            ).fetchone()

        if row is None:
            raise NotFoundError(
                f"Destination definition {destination_definition_id} not found"
            )
        return DestinationDefinition(
            destination_definition_id=row["destination_definition_id"],
            name=row["name"],
            icon_url=row["icon_url"],
            icon=row["icon"],
            default_version_id=row["default_version_id"],
        )

    def write_definition(self, definition: DestinationDefinition) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO destination_definitions
                    (destination_definition_id, name, icon_url, icon, default_version_id)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(destination_definition_id) DO UPDATE SET
                    name = excluded.name,
                    icon_url = excluded.icon_url,
                    icon = excluded.icon,
                    default_version_id = excluded.default_version_id
                """,
                (
                    definition.destination_definition_id,
                    definition.name,
                    definition.icon_url,
                    definition.icon,
                    definition.default_version_id,
                ),
            )

    def get_definition_version(self, version_id: str) -> ActorDefinitionVersion:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM destination_definition_versions WHERE version_id = ?",
                (version_id,),
            ).fetchone()

        if row is None:
            raise NotFoundError(f"Destination definition version {version_id} not found")
        return ActorDefinitionVersion(
            version_id=row["version_id"],
            destination_definition_id=row["destination_definition_id"],
            docker_image_tag=row["docker_image_tag"],
            spec=ConnectorSpecification.model_validate_json(row["spec"]),
        )

    def write_definition_version(self, version: ActorDefinitionVersion) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO destination_definition_versions
                    (version_id, destination_definition_id, docker_image_tag, spec)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(version_id) DO UPDATE SET
                    destination_definition_id = excluded.destination_definition_id,
                    docker_image_tag = excluded.docker_image_tag,
                    spec = excluded.spec
                """,
                (
                    version.version_id,
                    version.destination_definition_id,
                    version.docker_image_tag,
                    version.spec.model_dump_json(),
                ),
            )

    def get_workspace_version_override(
        self, destination_definition_id: str, workspace_id: str
    ) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT version_id FROM workspace_version_overrides
                WHERE destination_definition_id = ? AND workspace_id = ?
                """,
                (destination_definition_id, workspace_id),
            ).fetchone()
        return row["version_id"] if row else None

    def set_workspace_version_override(
        self, destination_definition_id: str, workspace_id: str, version_id: str
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workspace_version_overrides
                    (destination_definition_id, workspace_id, version_id)
                VALUES (?, ?, ?)
                ON CONFLICT(destination_definition_id, workspace_id) DO UPDATE SET
                    version_id = excluded.version_id
                """,
                (destination_definition_id, workspace_id, version_id),
            )

    # --- OAuth parameters ---

    def get_oauth_parameters(
        self, destination_definition_id: str, workspace_id: str
    ) -> dict[str, Any] | None:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT workspace_id, parameters FROM destination_oauth_parameters
                WHERE destination_definition_id = ? AND workspace_id IN (?, ?)
                """,
                (destination_definition_id, workspace_id, GLOBAL_SCOPE),
            ).fetchall()

        by_scope = {row["workspace_id"]: row["parameters"] for row in rows}
        parameters = by_scope.get(workspace_id) or by_scope.get(GLOBAL_SCOPE)
        return json.loads(parameters) if parameters else None

    def write_oauth_parameters(
        self,
        destination_definition_id: str,
        parameters: dict[str, Any],
        workspace_id: str | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO destination_oauth_parameters
                    (destination_definition_id, workspace_id, parameters)
                VALUES (?, ?, ?)
                ON CONFLICT(destination_definition_id, workspace_id) DO UPDATE SET
                    parameters = excluded.parameters
                """,
                (
                    destination_definition_id,
                    workspace_id or GLOBAL_SCOPE,
                    json.dumps(parameters),
                ),
            )

    # --- Audit ---

    def list_audit_events(self, **filters: Any) -> tuple[list[dict[str, Any]], int]:
        """Page through the audit trail. See :func:`audit.list_audit_events`."""
        with self._connect() as conn:
            return list_audit_events(conn, **filters)
