"""Catalog file loader for destination definitions.

Loads destination definitions and their published versions from YAML and
JSON files and registers them with a repository, so a deployment can seed its
connector catalog from files kept under version control.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models import ActorDefinitionVersion, ConnectorSpecification, DestinationDefinition
from .repository import DestinationRepository

logger = logging.getLogger(__name__)


class CatalogValidationError(Exception):
    """Raised when catalog validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class CatalogVersion(BaseModel):
    version_id: str
    docker_image_tag: str
    spec: ConnectorSpecification


class CatalogDefinition(BaseModel):
    """One definition entry of a catalog file."""

    destination_definition_id: str
    name: str = Field(..., min_length=1)
    icon_url: str | None = None
    icon: str | None = None
    default_version_id: str | None = None
    versions: list[CatalogVersion] = Field(..., min_length=1)

    def resolved_default_version_id(self) -> str:
        # Latest listed version unless one is named explicitly
        return self.default_version_id or self.versions[-1].version_id


class CatalogLoader:
    """Loads and validates destination catalogs from files."""

    def __init__(self, catalog_dir: str | Path | None = None):
        """Initialize the catalog loader.

        Args:
            catalog_dir: Directory containing catalog files.
                         Defaults to ./catalog/
        """
        self.catalog_dir = Path(catalog_dir) if catalog_dir else Path("catalog")

    def load_file(self, file_path: str | Path) -> list[CatalogDefinition]:
        """Load definitions from a single YAML or JSON file.

        Raises:
            CatalogValidationError: If validation fails
            FileNotFoundError: If file doesn't exist
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")

        suffix = path.suffix.lower()
        with open(path) as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported catalog format: {suffix}")

        return self._parse_catalog(data, str(path))

    def load_directory(
        self, directory: str | Path | None = None
    ) -> list[CatalogDefinition]:
        """Load all catalog files from a directory.

        Raises:
            CatalogValidationError: If any file fails validation. Errors from
                all files are reported together.
        """
        catalog_dir = Path(directory) if directory else self.catalog_dir

        if not catalog_dir.exists():
            logger.warning(f"Catalog directory does not exist: {catalog_dir}")
            return []

        definitions = []
        errors = []

        for pattern in ("*.yaml", "*.yml", "*.json"):
            for file_path in sorted(catalog_dir.glob(pattern)):
                try:
                    file_definitions = self.load_file(file_path)
                    definitions.extend(file_definitions)
                    logger.info(
                        f"Loaded {len(file_definitions)} definition(s) from {file_path.name}"
                    )
                except CatalogValidationError as e:
                    errors.extend(e.errors)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    errors.append({"file": str(file_path), "error": str(e)})

        if errors:
            raise CatalogValidationError(
                f"Validation failed for {len(errors)} item(s)",
                errors=errors,
            )

        return definitions

    def _parse_catalog(self, data: Any, source: str) -> list[CatalogDefinition]:
        # A file holds one definition, a list, or a "definitions" array
        if isinstance(data, dict):
            entries = data["definitions"] if "definitions" in data else [data]
        elif isinstance(data, list):
            entries = data
        else:
            raise CatalogValidationError(
                f"Invalid catalog format in {source}",
                errors=[{"file": source, "error": "Expected dict or list"}],
            )

        if not isinstance(entries, list):
            raise CatalogValidationError(
                f"Invalid catalog format in {source}",
                errors=[{"file": source, "error": "definitions must be a list"}],
            )

        definitions = []
        errors: list[dict[str, Any]] = []

        for idx, entry in enumerate(entries):
            try:
                definition = CatalogDefinition.model_validate(entry)
            except PydanticValidationError as e:
                for error in e.errors():
                    errors.append(
                        {
                            "file": source,
                            "index": idx,
                            "field": ".".join(str(loc) for loc in error["loc"]),
                            "error": error["msg"],
                        }
                    )
                continue

            errors.extend(self._validate_definition(definition, source, idx))
            definitions.append(definition)

        if errors:
            raise CatalogValidationError(
                f"Validation failed for {len(errors)} item(s) in {source}",
                errors=errors,
            )

        return definitions

    def _validate_definition(
        self, definition: CatalogDefinition, source: str, index: int
    ) -> list[dict[str, Any]]:
        errors = []
        version_ids = [version.version_id for version in definition.versions]

        if len(set(version_ids)) != len(version_ids):
            errors.append(
                {
                    "file": source,
                    "index": index,
                    "field": "versions",
                    "error": "Duplicate version_id",
                }
            )

        if definition.default_version_id and definition.default_version_id not in version_ids:
            errors.append(
                {
                    "file": source,
                    "index": index,
                    "field": "default_version_id",
                    "error": f"Unknown version: {definition.default_version_id}",
                }
            )

        for version in definition.versions:
            try:
                Draft7Validator.check_schema(version.spec.connection_specification)
            except SchemaError as e:
                errors.append(
                    {
                        "file": source,
                        "index": index,
                        "field": f"versions.{version.version_id}.spec",
                        "error": f"Invalid connection specification: {e.message}",
                    }
                )

        return errors

    def register(
        self, definitions: list[CatalogDefinition], repository: DestinationRepository
    ) -> int:
        """Write definitions and their versions to ``repository``.

        Returns the number of versions written.
        """
        count = 0
        for entry in definitions:
            for version in entry.versions:
                repository.write_definition_version(
                    ActorDefinitionVersion(
                        version_id=version.version_id,
                        destination_definition_id=entry.destination_definition_id,
                        docker_image_tag=version.docker_image_tag,
                        spec=version.spec,
                    )
                )
                count += 1
            repository.write_definition(
                DestinationDefinition(
                    destination_definition_id=entry.destination_definition_id,
                    name=entry.name,
                    icon_url=entry.icon_url,
                    icon=entry.icon,
                    default_version_id=entry.resolved_default_version_id(),
                )
            )
        logger.info(f"Registered {len(definitions)} definition(s), {count} version(s)")
        return count


def load_catalog(
    repository: DestinationRepository, catalog_dir: str | Path | None = None
) -> int:
    """Convenience function to load a catalog directory into a repository."""
    loader = CatalogLoader(catalog_dir)
    return loader.register(loader.load_directory(), repository)
