"""Destination configuration management.

Creates, reads, updates, clones and upgrades destination configurations
while keeping their secret fields out of every API response:

- ``secrets``: schema-driven masking and reconciliation of secret fields
- ``oauth``: masking of platform-held OAuth parameters
- ``merger``: applying updates without losing stored credentials
- ``spec_resolver``: effective connector version per actor/workspace
- ``handler``: the lifecycle operations

Example usage:
    from destinations import build_handler, DestinationCreate, SQLiteDestinationRepository

    handler = build_handler(SQLiteDestinationRepository("data/destinations.db"))
    read = handler.create_destination(
        DestinationCreate(
            workspace_id=workspace_id,
            destination_definition_id=definition_id,
            name="Warehouse",
            connection_configuration={"host": "db.example.com", "password": "s3cr3t"},
        )
    )
    assert read.connection_configuration["password"] == SECRET_PLACEHOLDER
"""

from __future__ import annotations

from pathlib import Path

from .catalog import CatalogLoader, CatalogValidationError, load_catalog
from .constants import SECRET_ANNOTATION, SECRET_PLACEHOLDER
from .errors import (
    ConfigValidationError,
    ConflictError,
    DestinationError,
    NotFoundError,
    SchemaMismatchError,
    UpstreamError,
)
from .handler import DestinationHandler
from .merger import ConfigurationMerger
from .models import (
    ActorDefinitionVersion,
    ConnectorSpecification,
    DestinationCloneConfiguration,
    DestinationCloneRequestBody,
    DestinationConnection,
    DestinationCreate,
    DestinationDefinition,
    DestinationDefinitionIdWithWorkspaceId,
    DestinationDefinitionSpecificationRead,
    DestinationIdRequestBody,
    DestinationRead,
    DestinationReadList,
    DestinationSearch,
    DestinationUpdate,
    WorkspaceIdRequestBody,
)
from .oauth import OAuthMasker, OAuthParameterStore
from .presentation import IconPresenter
from .repository import DestinationRepository, SQLiteDestinationRepository
from .secrets import SecretFieldIndex, SecretsProcessor, UnknownFieldPolicy
from .spec_resolver import SpecResolver
from .validation import SchemaValidator


def build_handler(
    repository: DestinationRepository,
    unknown_field_policy: UnknownFieldPolicy | str = UnknownFieldPolicy.PASSTHROUGH,
    use_icon_url: bool = True,
    icons_dir: str | Path | None = None,
) -> DestinationHandler:
    """Wire a handler and its pipeline components around ``repository``."""
    secrets_processor = SecretsProcessor(UnknownFieldPolicy(unknown_field_policy))
    return DestinationHandler(
        repository=repository,
        validator=SchemaValidator(),
        secrets_processor=secrets_processor,
        configuration_merger=ConfigurationMerger(secrets_processor),
        oauth_masker=OAuthMasker(repository),
        spec_resolver=SpecResolver(repository),
        icon_presenter=IconPresenter(use_icon_url=use_icon_url, icons_dir=icons_dir),
    )


__all__ = [
    # Wiring
    "build_handler",
    "DestinationHandler",
    # Pipeline components
    "SecretsProcessor",
    "SecretFieldIndex",
    "UnknownFieldPolicy",
    "OAuthMasker",
    "OAuthParameterStore",
    "ConfigurationMerger",
    "SpecResolver",
    "SchemaValidator",
    "IconPresenter",
    # Persistence
    "DestinationRepository",
    "SQLiteDestinationRepository",
    # Catalog
    "CatalogLoader",
    "CatalogValidationError",
    "load_catalog",
    # Constants
    "SECRET_ANNOTATION",
    "SECRET_PLACEHOLDER",
    # Exceptions
    "DestinationError",
    "NotFoundError",
    "ConfigValidationError",
    "SchemaMismatchError",
    "ConflictError",
    "UpstreamError",
    # Models
    "ActorDefinitionVersion",
    "ConnectorSpecification",
    "DestinationDefinition",
    "DestinationConnection",
    "DestinationCreate",
    "DestinationUpdate",
    "DestinationRead",
    "DestinationReadList",
    "DestinationSearch",
    "DestinationCloneConfiguration",
    "DestinationCloneRequestBody",
    "DestinationIdRequestBody",
    "WorkspaceIdRequestBody",
    "DestinationDefinitionIdWithWorkspaceId",
    "DestinationDefinitionSpecificationRead",
]
