"""Exceptions raised by the destination configuration pipeline."""

from __future__ import annotations

from typing import Any


class DestinationError(Exception):
    """Base exception for destination errors."""

    def __init__(self, message: str, destination_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.destination_id = destination_id


class NotFoundError(DestinationError):
    """A destination, definition, or definition version does not exist."""

    pass


class ConfigValidationError(DestinationError):
    """A configuration document does not satisfy its connector schema."""

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        destination_id: str | None = None,
    ) -> None:
        super().__init__(message, destination_id)
        self.errors = errors or []


class SchemaMismatchError(DestinationError):
    """A configuration field cannot be classified against the schema."""

    def __init__(
        self, message: str, path: str, destination_id: str | None = None
    ) -> None:
        super().__init__(message, destination_id)
        self.path = path


class ConflictError(DestinationError):
    """The record changed since it was read. Safe to retry."""

    retryable = True


class UpstreamError(DestinationError):
    """A collaborator (persistence, schema validator, OAuth store) failed."""

    def __init__(
        self,
        collaborator: str,
        message: str,
        destination_id: str | None = None,
    ) -> None:
        super().__init__(f"{collaborator}: {message}", destination_id)
        self.collaborator = collaborator
