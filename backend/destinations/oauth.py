"""Masking of OAuth parameters supplied by the platform.

When the platform holds OAuth parameters (client id/secret) for a connector,
the matching configuration fields are filled in by the platform at run time.
Those values must not be stored with the destination or echoed back, so they
are replaced with the placeholder before the configuration is written.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from .constants import OAUTH_ANNOTATION
from .errors import DestinationError, UpstreamError
from .models import ConnectorSpecification
from .secrets import FieldPath, SecretFieldIndex, compile_field_index, mask_fields

logger = logging.getLogger(__name__)


class OAuthParameterStore(ABC):
    """Source of platform-held OAuth parameters."""

    @abstractmethod
    def get_oauth_parameters(
        self, destination_definition_id: str, workspace_id: str
    ) -> dict[str, Any] | None:
        """Return the parameters for a definition.

        Workspace-scoped parameters take precedence over global ones.
        Returns None when the platform holds no parameters.
        """
        pass


def _get_path(document: dict[str, Any], path: list[str]) -> Any:
    node: Any = document
    for part in path:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def oauth_output_paths(
    spec: ConnectorSpecification, document: dict[str, Any]
) -> set[FieldPath]:
    """Configuration paths filled from the OAuth server output specification.

    When ``advanced_auth`` declares a predicate (e.g. ``auth_type == "oauth2.0"``) the
    paths only apply to documents that satisfy it.
    """
    advanced_auth = spec.advanced_auth or {}
    predicate_key = advanced_auth.get("predicate_key")
    if predicate_key:
        if _get_path(document, predicate_key) != advanced_auth.get("predicate_value"):
            return set()

    output_spec = (
        (advanced_auth.get("oauth_config_specification") or {})
        .get("complete_oauth_server_output_specification")
        or {}
    )
    paths: set[FieldPath] = set()
    for field in (output_spec.get("properties") or {}).values():
        path = field.get("path_in_connector_config") if isinstance(field, dict) else None
        if path:
            paths.add(tuple(path))
    return paths


class OAuthMasker:
    """Masks OAuth-sourced fields, leaving plain secrets untouched."""

    def __init__(self, parameter_store: OAuthParameterStore | None = None) -> None:
        self.parameter_store = parameter_store

    def oauth_index(
        self, spec: ConnectorSpecification, document: dict[str, Any]
    ) -> SecretFieldIndex:
        index = compile_field_index(spec.connection_specification, OAUTH_ANNOTATION)
        return index.with_paths(oauth_output_paths(spec, document))

    def mask_oauth_parameters(
        self,
        destination_definition_id: str,
        workspace_id: str,
        document: dict[str, Any],
        spec: ConnectorSpecification,
    ) -> dict[str, Any]:
        """Mask the OAuth fields of ``document`` if the platform supplies them.

        Returns a new document; ``document`` is not modified.
        """
        if self.parameter_store is None:
            return document

        try:
            parameters = self.parameter_store.get_oauth_parameters(
                destination_definition_id, workspace_id
            )
        except DestinationError:
            raise
        except Exception as e:
            raise UpstreamError("oauth_parameters", str(e)) from e

        if not parameters:
            return document

        index = self.oauth_index(spec, document)
        if not index.secret_paths:
            return document

        logger.debug(
            f"Masking {len(index.secret_paths)} OAuth field(s) for definition "
            f"{destination_definition_id}"
        )
        return mask_fields(document, index)
