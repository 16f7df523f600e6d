"""Resolution of the effective connector version for a destination.

Order of precedence:
1. the version pinned on the destination itself
2. the workspace-level override for the definition
3. the definition's global default
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import NotFoundError
from .models import ActorDefinitionVersion, DestinationDefinition

if TYPE_CHECKING:
    from .repository import DestinationRepository

logger = logging.getLogger(__name__)


class SpecResolver:
    """Looks up the connector version that applies to a workspace or actor."""

    def __init__(self, repository: "DestinationRepository") -> None:
        self.repository = repository

    def resolve(
        self,
        definition: DestinationDefinition,
        workspace_id: str,
        actor_id: str | None = None,
    ) -> ActorDefinitionVersion:
        """Return the effective version.

        Raises:
            NotFoundError: If no version can be resolved
        """
        version_id = None

        if actor_id is not None:
            actor = self.repository.get_destination(actor_id, include_tombstone=True)
            version_id = actor.default_version_id

        if version_id is None:
            version_id = self.repository.get_workspace_version_override(
                definition.destination_definition_id, workspace_id
            )

        if version_id is None:
            version_id = definition.default_version_id

        if version_id is None:
            raise NotFoundError(
                f"No version available for destination definition "
                f"{definition.destination_definition_id}",
                destination_id=actor_id,
            )

        version = self.repository.get_definition_version(version_id)
        if version.destination_definition_id != definition.destination_definition_id:
            raise NotFoundError(
                f"Version {version_id} does not belong to destination definition "
                f"{definition.destination_definition_id}",
                destination_id=actor_id,
            )
        return version

    def resolve_by_definition_id(
        self,
        destination_definition_id: str,
        workspace_id: str,
        actor_id: str | None = None,
    ) -> tuple[DestinationDefinition, ActorDefinitionVersion]:
        definition = self.repository.get_definition(destination_definition_id)
        return definition, self.resolve(definition, workspace_id, actor_id)
