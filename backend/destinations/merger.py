"""Builds the record to persist from a stored destination and an update."""

from __future__ import annotations

import copy
from typing import Any

from .models import ConnectorSpecification, DestinationConnection
from .secrets import SecretsProcessor


def merge_documents(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``.

    Objects merge key by key; any other value in ``overlay`` replaces the
    value in ``base``.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_documents(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigurationMerger:
    """Applies name/configuration changes without losing stored secrets."""

    def __init__(self, secrets_processor: SecretsProcessor) -> None:
        self.secrets_processor = secrets_processor

    def merge(
        self,
        existing: DestinationConnection,
        name: str | None,
        configuration: dict[str, Any] | None,
        spec: ConnectorSpecification,
        partial: bool = False,
    ) -> DestinationConnection:
        """Return the updated record.

        Args:
            existing: Stored record, with plaintext secrets
            name: New name, or None to keep the stored one
            configuration: New configuration, or None to keep the stored one
            spec: Resolved connector specification
            partial: Merge ``configuration`` over the stored document instead
                of replacing it

        Returns:
            A new DestinationConnection; ``existing`` is not modified
        """
        updated_configuration = existing.configuration
        if configuration is not None:
            incoming = (
                merge_documents(existing.configuration, configuration)
                if partial
                else configuration
            )
            updated_configuration = self.secrets_processor.reconcile_secrets(
                spec.connection_specification,
                existing.configuration,
                incoming,
            )

        return existing.model_copy(
            update={
                "name": name if name is not None else existing.name,
                "configuration": copy.deepcopy(updated_configuration),
            }
        )
