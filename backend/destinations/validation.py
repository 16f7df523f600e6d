"""JSON Schema validation of configuration documents."""

from __future__ import annotations

import logging
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from .errors import ConfigValidationError, UpstreamError

logger = logging.getLogger(__name__)


class SchemaValidator:
    """Checks configuration documents against connector schemas."""

    def ensure(self, schema: dict[str, Any], document: dict[str, Any]) -> None:
        """Validate ``document`` against ``schema``.

        Raises:
            ConfigValidationError: With one entry per violation
            UpstreamError: If the schema itself is malformed
        """
        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as e:
            logger.error(f"Connector schema is invalid: {e.message}")
            raise UpstreamError("schema_validator", f"Invalid schema: {e.message}") from e

        validator = Draft7Validator(schema)
        errors = []
        violations = sorted(
            validator.iter_errors(document),
            key=lambda e: [str(part) for part in e.absolute_path],
        )
        for error in violations:
            path = ".".join(str(part) for part in error.absolute_path) or "<root>"
            # jsonschema messages embed the instance value
            errors.append(
                {
                    "path": path,
                    "message": f"failed '{error.validator}' constraint",
                }
            )

        if errors:
            raise ConfigValidationError(
                f"Configuration does not match the connector schema "
                f"({len(errors)} error(s))",
                errors=errors,
            )
