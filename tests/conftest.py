"""Pytest configuration and fixtures."""

from __future__ import annotations

import atexit
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

import pytest

# Add backend to path for imports
backend_path = str(Path(__file__).parent.parent / "backend")
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

# Set test database path before importing app
# Use a temp file instead of :memory: for SQLite compatibility with FastAPI
_temp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_temp_db_path = _temp_db.name
os.environ["DB_PATH"] = _temp_db_path
os.environ.setdefault("RATE_LIMIT", "10000/minute")

CATALOG_DIR = Path(backend_path) / "catalog"

DEFINITION_ID = "def-warehouse"
WORKSPACE_ID = "ws-1"


def _cleanup_test_db() -> None:
    """Clean up temporary test database file."""
    if os.path.exists(_temp_db_path):
        try:
            os.unlink(_temp_db_path)
        except OSError:
            pass  # File may already be deleted or locked


# Register cleanup to run at exit
atexit.register(_cleanup_test_db)


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db() -> None:
    """Pytest fixture to ensure test database cleanup after session."""
    yield
    _cleanup_test_db()


@pytest.fixture
def sample_schema() -> dict[str, Any]:
    """Connector schema exercising every way a secret can be declared."""
    return {
        "type": "object",
        "required": ["host"],
        "properties": {
            "host": {"type": "string"},
            "port": {"type": "integer"},
            "api_key": {"type": "string", "airbyte_secret": True},
            "credentials": {
                "type": "object",
                "oneOf": [
                    {
                        "properties": {
                            "auth_type": {"const": "password"},
                            "password": {"type": "string", "airbyte_secret": True},
                        }
                    },
                    {
                        "properties": {
                            "auth_type": {"const": "key"},
                            "private_key": {"type": "string", "airbyte_secret": True},
                        }
                    },
                ],
            },
            "replicas": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "host": {"type": "string"},
                        "token": {"type": "string", "airbyte_secret": True},
                    },
                },
            },
            "headers": {
                "type": "object",
                "additionalProperties": {"type": "string", "airbyte_secret": True},
            },
            "tunnel": {"$ref": "#/definitions/tunnel"},
        },
        "definitions": {
            "tunnel": {
                "type": "object",
                "properties": {
                    "tunnel_host": {"type": "string"},
                    "ssh_key": {"type": "string", "airbyte_secret": True},
                },
            }
        },
    }


@pytest.fixture
def sample_spec(sample_schema):
    from destinations import ConnectorSpecification

    return ConnectorSpecification(connection_specification=sample_schema)


@pytest.fixture
def repository(tmp_path):
    """SQLite repository on a fresh database file."""
    from destinations import SQLiteDestinationRepository

    return SQLiteDestinationRepository(str(tmp_path / "destinations.db"))


@pytest.fixture
def definition(repository, sample_spec):
    """A definition with a single default version using ``sample_schema``."""
    from destinations import ActorDefinitionVersion, DestinationDefinition

    repository.write_definition_version(
        ActorDefinitionVersion(
            version_id="v1",
            destination_definition_id=DEFINITION_ID,
            docker_image_tag="1.0.0",
            spec=sample_spec,
        )
    )
    definition = DestinationDefinition(
        destination_definition_id=DEFINITION_ID,
        name="Warehouse",
        icon_url="https://example.com/warehouse.svg",
        default_version_id="v1",
    )
    repository.write_definition(definition)
    return definition


@pytest.fixture
def handler(repository, definition):
    """Handler wired to the test repository, with deterministic ids."""
    from destinations import (
        ConfigurationMerger,
        DestinationHandler,
        OAuthMasker,
        SchemaValidator,
        SecretsProcessor,
        SpecResolver,
    )

    counter = iter(range(1, 1000))
    secrets_processor = SecretsProcessor()
    return DestinationHandler(
        repository=repository,
        validator=SchemaValidator(),
        secrets_processor=secrets_processor,
        configuration_merger=ConfigurationMerger(secrets_processor),
        oauth_masker=OAuthMasker(repository),
        spec_resolver=SpecResolver(repository),
        uuid_generator=lambda: f"dest-{next(counter)}",
    )


@pytest.fixture
def sample_configuration() -> dict[str, Any]:
    return {
        "host": "db.internal",
        "port": 5432,
        "api_key": "sk-live-123",
        "credentials": {"auth_type": "password", "password": "hunter2"},
    }
