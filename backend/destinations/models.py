"""Pydantic models for destination definitions and configurations.

Defines the stored records (definitions, versions, connections) and the
request/response shapes exposed by the destination API.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


def _validate_display_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Destination name cannot be empty")
    # Check for script injection patterns
    if "<" in v or ">" in v or "&" in v:
        raise ValueError("Destination name cannot contain HTML special characters")
    return v


# --- Stored records ---


class ConnectorSpecification(BaseModel):
    """Versioned connector specification.

    ``connection_specification`` is the JSON Schema that configuration
    documents must satisfy; it also marks which fields are secrets.
    """

    connection_specification: dict[str, Any]
    documentation_url: str | None = None
    advanced_auth: dict[str, Any] | None = None
    protocol_version: str | None = None

    model_config = {"frozen": True}


class ActorDefinitionVersion(BaseModel):
    """A published release of a destination connector."""

    version_id: str
    destination_definition_id: str
    docker_image_tag: str
    spec: ConnectorSpecification

    model_config = {"frozen": True}


class DestinationDefinition(BaseModel):
    """A destination connector type."""

    destination_definition_id: str
    name: str
    icon_url: str | None = None
    icon: str | None = None  # Inline icon file name
    default_version_id: str | None = None


class DestinationConnection(BaseModel):
    """A configured destination owned by a workspace."""

    destination_id: str
    workspace_id: str
    destination_definition_id: str
    name: str
    configuration: dict[str, Any]
    tombstone: bool = False
    default_version_id: str | None = None  # Actor-pinned version
    revision: int = 0


# --- Request/Response Models ---


class DestinationCreate(BaseModel):
    """Request model for creating a destination."""

    workspace_id: str
    destination_definition_id: str
    name: str = Field(..., min_length=1, max_length=255)
    connection_configuration: dict[str, Any]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_display_name(v)


class DestinationUpdate(BaseModel):
    """Request model for updating a destination.

    Omitted fields keep their stored values.
    """

    destination_id: str
    name: str | None = Field(default=None, min_length=1, max_length=255)
    connection_configuration: dict[str, Any] | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_display_name(v)


class DestinationIdRequestBody(BaseModel):
    destination_id: str


class WorkspaceIdRequestBody(BaseModel):
    workspace_id: str


class DestinationDefinitionIdWithWorkspaceId(BaseModel):
    destination_definition_id: str
    workspace_id: str


class DestinationCloneConfiguration(BaseModel):
    """Optional overrides applied to a cloned destination."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    connection_configuration: dict[str, Any] | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_display_name(v)


class DestinationCloneRequestBody(BaseModel):
    destination_clone_id: str
    destination_configuration: DestinationCloneConfiguration | None = None


class DestinationSearch(BaseModel):
    """Search criteria. Every provided field must match exactly."""

    destination_definition_id: str | None = None
    destination_id: str | None = None
    workspace_id: str | None = None
    name: str | None = None
    destination_name: str | None = None  # Definition name
    connection_configuration: dict[str, Any] | None = None

    def is_empty(self) -> bool:
        """True when no criterion is given. An empty configuration counts as absent."""
        return all(value in (None, {}) for value in self.model_dump().values())


class DestinationRead(BaseModel):
    """Response model for destination details. Secrets are masked."""

    destination_definition_id: str
    destination_id: str
    workspace_id: str
    connection_configuration: dict[str, Any]
    name: str
    destination_name: str
    icon: str | None = None


class DestinationReadList(BaseModel):
    destinations: list[DestinationRead]


class DestinationDefinitionSpecificationRead(BaseModel):
    """Resolved connector specification for a definition in a workspace."""

    destination_definition_id: str
    documentation_url: str | None = None
    connection_specification: dict[str, Any]
    advanced_auth: dict[str, Any] | None = None
