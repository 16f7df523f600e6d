"""Destination lifecycle operations.

The handler sequences the secret pipeline around persistence:

- writes: resolve spec -> merge/reconcile secrets -> mask OAuth parameters
  -> validate -> persist
- reads: load -> resolve spec -> mask secrets -> assemble response

It keeps no state between requests.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from .audit import AuditAction
from .constants import CLONE_NAME_SUFFIX
from .errors import NotFoundError
from .merger import ConfigurationMerger
from .models import (
    ConnectorSpecification,
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
from .oauth import OAuthMasker
from .presentation import IconPresenter
from .repository import DestinationRepository
from .secrets import SecretsProcessor
from .spec_resolver import SpecResolver
from .validation import SchemaValidator

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class DestinationHandler:
    """Create, read, update, clone and upgrade destination configurations."""

    def __init__(
        self,
        repository: DestinationRepository,
        validator: SchemaValidator,
        secrets_processor: SecretsProcessor,
        configuration_merger: ConfigurationMerger,
        oauth_masker: OAuthMasker,
        spec_resolver: SpecResolver,
        icon_presenter: IconPresenter | None = None,
        uuid_generator: Callable[[], str] | None = None,
    ) -> None:
        self.repository = repository
        self.validator = validator
        self.secrets_processor = secrets_processor
        self.configuration_merger = configuration_merger
        self.oauth_masker = oauth_masker
        self.spec_resolver = spec_resolver
        self.icon_presenter = icon_presenter or IconPresenter()
        self.uuid_generator = uuid_generator or _new_id

    # --- Writes ---

    def create_destination(self, request: DestinationCreate) -> DestinationRead:
        """Create a destination and return it with secrets masked.

        The stored configuration keeps the plaintext secrets.
        """
        definition = self.repository.get_definition(request.destination_definition_id)
        spec = self.spec_resolver.resolve(definition, request.workspace_id).spec
        schema = spec.connection_specification

        # Nothing is stored yet, so any placeholder in a secret field is rejected
        configuration = self.secrets_processor.reconcile_secrets(
            schema, {}, request.connection_configuration
        )
        configuration = self.oauth_masker.mask_oauth_parameters(
            definition.destination_definition_id,
            request.workspace_id,
            configuration,
            spec,
        )
        self.validator.ensure(schema, configuration)

        connection = DestinationConnection(
            destination_id=self.uuid_generator(),
            workspace_id=request.workspace_id,
            destination_definition_id=definition.destination_definition_id,
            name=request.name,
            configuration=configuration,
        )
        stored = self.repository.write_destination(
            connection, audit_action=AuditAction.DESTINATION_CREATE
        )

        logger.info(
            f"Created destination {stored.destination_id} ({definition.name}) "
            f"in workspace {stored.workspace_id}"
        )
        return self._build_read(stored, definition, spec)

    def update_destination(self, request: DestinationUpdate) -> DestinationRead:
        """Replace a destination's name and/or configuration.

        Secret fields sent as the placeholder keep their stored values.
        """
        return self._update(request, partial=False)

    def partial_update_destination(self, request: DestinationUpdate) -> DestinationRead:
        """Like :meth:`update_destination`, but the configuration sent is
        merged over the stored one, so omitted fields are kept.
        """
        return self._update(request, partial=True)

    def _update(self, request: DestinationUpdate, partial: bool) -> DestinationRead:
        existing = self.repository.get_destination_with_secrets(request.destination_id)
        definition = self.repository.get_definition(existing.destination_definition_id)
        spec = self.spec_resolver.resolve(
            definition, existing.workspace_id, existing.destination_id
        ).spec

        updated = self.configuration_merger.merge(
            existing,
            request.name,
            request.connection_configuration,
            spec,
            partial=partial,
        )
        updated = updated.model_copy(
            update={
                "configuration": self.oauth_masker.mask_oauth_parameters(
                    definition.destination_definition_id,
                    existing.workspace_id,
                    updated.configuration,
                    spec,
                )
            }
        )
        self.validator.ensure(spec.connection_specification, updated.configuration)

        stored = self.repository.write_destination(
            updated,
            expected_revision=existing.revision,
            audit_action=AuditAction.DESTINATION_UPDATE,
        )
        logger.info(f"Updated destination {stored.destination_id}")
        return self._build_read(stored, definition, spec)

    def clone_destination(self, request: DestinationCloneRequestBody) -> DestinationRead:
        """Copy a destination, secrets included, under a new id.

        The caller never needs the source's secret values: override
        configuration is merged over the source's plaintext configuration and
        placeholders resolve to the source's secrets.
        """
        source = self.repository.get_destination_with_secrets(request.destination_clone_id)
        definition = self.repository.get_definition(source.destination_definition_id)
        spec = self.spec_resolver.resolve(definition, source.workspace_id).spec

        overrides = request.destination_configuration
        name = source.name + CLONE_NAME_SUFFIX
        configuration = None
        if overrides is not None:
            name = overrides.name or name
            configuration = overrides.connection_configuration

        merged = self.configuration_merger.merge(
            source, name, configuration, spec, partial=True
        )
        clone = DestinationConnection(
            destination_id=self.uuid_generator(),
            workspace_id=source.workspace_id,
            destination_definition_id=source.destination_definition_id,
            name=merged.name,
            configuration=self.oauth_masker.mask_oauth_parameters(
                definition.destination_definition_id,
                source.workspace_id,
                merged.configuration,
                spec,
            ),
        )
        self.validator.ensure(spec.connection_specification, clone.configuration)

        stored = self.repository.write_destination(
            clone, audit_action=AuditAction.DESTINATION_CLONE
        )
        logger.info(
            f"Cloned destination {source.destination_id} into {stored.destination_id}"
        )
        return self._build_read(stored, definition, spec)

    def upgrade_destination_version(self, request: DestinationIdRequestBody) -> None:
        """Pin the destination to its definition's current default version.

        The configuration document is not touched.
        """
        connection = self.repository.get_destination(request.destination_id)
        definition = self.repository.get_definition(connection.destination_definition_id)
        if definition.default_version_id is None:
            raise NotFoundError(
                f"Destination definition {definition.destination_definition_id} "
                "has no default version",
                destination_id=connection.destination_id,
            )

        self.repository.set_version_override(
            connection.destination_id, definition.default_version_id
        )
        logger.info(
            f"Upgraded destination {connection.destination_id} to version "
            f"{definition.default_version_id}"
        )

    def delete_destination(self, request: DestinationIdRequestBody) -> None:
        """Soft-delete a destination by setting its tombstone."""
        connection = self.repository.get_destination(request.destination_id)
        self.repository.write_destination(
            connection.model_copy(update={"tombstone": True}),
            expected_revision=connection.revision,
            audit_action=AuditAction.DESTINATION_DELETE,
        )
        logger.info(f"Deleted destination {connection.destination_id}")

    # --- Reads ---

    def get_destination(self, request: DestinationIdRequestBody) -> DestinationRead:
        connection = self.repository.get_destination(request.destination_id)
        return self._to_read(connection, {})

    def list_destinations_for_workspace(
        self, request: WorkspaceIdRequestBody
    ) -> DestinationReadList:
        definitions: dict[str, DestinationDefinition] = {}
        return DestinationReadList(
            destinations=[
                self._to_read(connection, definitions)
                for connection in self.repository.list_workspace_destinations(
                    request.workspace_id
                )
            ]
        )

    def search_destinations(self, criteria: DestinationSearch) -> DestinationReadList:
        """Return destinations matching every provided criterion.

        Empty criteria match nothing. Configuration criteria are compared
        against the masked configuration.
        """
        if criteria.is_empty():
            return DestinationReadList(destinations=[])

        definitions: dict[str, DestinationDefinition] = {}
        matches = []
        for connection in self.repository.list_destinations():
            if not self._matches_record(criteria, connection):
                continue
            read = self._to_read(connection, definitions)
            if self._matches_read(criteria, read):
                matches.append(read)
        return DestinationReadList(destinations=matches)

    def get_destination_specification(
        self, request: DestinationDefinitionIdWithWorkspaceId
    ) -> DestinationDefinitionSpecificationRead:
        definition, version = self.spec_resolver.resolve_by_definition_id(
            request.destination_definition_id, request.workspace_id
        )
        return DestinationDefinitionSpecificationRead(
            destination_definition_id=definition.destination_definition_id,
            documentation_url=version.spec.documentation_url,
            connection_specification=version.spec.connection_specification,
            advanced_auth=version.spec.advanced_auth,
        )

    # --- Helpers ---

    @staticmethod
    def _matches_record(
        criteria: DestinationSearch, connection: DestinationConnection
    ) -> bool:
        checks: list[tuple[Any, Any]] = [
            (criteria.destination_id, connection.destination_id),
            (criteria.workspace_id, connection.workspace_id),
            (criteria.destination_definition_id, connection.destination_definition_id),
            (criteria.name, connection.name),
        ]
        return all(wanted is None or wanted == actual for wanted, actual in checks)

    @staticmethod
    def _matches_read(criteria: DestinationSearch, read: DestinationRead) -> bool:
        if (
            criteria.destination_name is not None
            and criteria.destination_name != read.destination_name
        ):
            return False
        if criteria.connection_configuration:
            for key, wanted in criteria.connection_configuration.items():
                if key not in read.connection_configuration:
                    return False
                if read.connection_configuration[key] != wanted:
                    return False
        return True

    def _to_read(
        self,
        connection: DestinationConnection,
        definitions: dict[str, DestinationDefinition],
    ) -> DestinationRead:
        definition_id = connection.destination_definition_id
        if definition_id not in definitions:
            definitions[definition_id] = self.repository.get_definition(definition_id)
        definition = definitions[definition_id]

        spec = self.spec_resolver.resolve(
            definition, connection.workspace_id, connection.destination_id
        ).spec
        return self._build_read(connection, definition, spec)

    def _build_read(
        self,
        connection: DestinationConnection,
        definition: DestinationDefinition,
        spec: ConnectorSpecification,
    ) -> DestinationRead:
        masked = self.secrets_processor.mask_for_output(
            spec.connection_specification, connection.configuration
        )
        return DestinationRead(
            destination_definition_id=connection.destination_definition_id,
            destination_id=connection.destination_id,
            workspace_id=connection.workspace_id,
            connection_configuration=masked,
            name=connection.name,
            destination_name=definition.name,
            icon=self.icon_presenter.icon_for(definition),
        )
