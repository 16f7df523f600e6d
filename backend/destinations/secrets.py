"""Schema-driven secret handling for destination configurations.

A connector schema marks credential fields with ``airbyte_secret: true``.
The schema is compiled once into a :class:`SecretFieldIndex` (the set of
secret paths and the set of declared paths), which then drives two
transforms:

- masking on the way out: every secret value becomes the placeholder
- reconciliation on the way in: a placeholder sent back by a caller is
  replaced with the value already stored for that field

Paths are tuples of property names, with ``"[]"`` standing for any array
element and ``"*"`` for properties matched by ``additionalProperties`` /
``patternProperties`` (or any property of a free-form object).
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .constants import ANY_PROPERTY, ARRAY_ITEMS, SECRET_ANNOTATION, SECRET_PLACEHOLDER
from .errors import ConfigValidationError, SchemaMismatchError

logger = logging.getLogger(__name__)

FieldPath = tuple[str, ...]

_MISSING = object()


class UnknownFieldPolicy(str, Enum):
    """How reconciliation treats fields the schema does not declare."""

    PASSTHROUGH = "passthrough"
    REJECT = "reject"


@dataclass(frozen=True)
class SecretFieldIndex:
    """Compiled view of which schema paths hold secrets."""

    secret_paths: frozenset[FieldPath]
    declared_paths: frozenset[FieldPath]
    # Wildcard paths whose values may hold any keys, at any depth
    open_paths: frozenset[FieldPath] = frozenset()

    def is_secret(self, path: FieldPath) -> bool:
        return path in self.secret_paths

    def child(self, parent: FieldPath, key: str) -> FieldPath | None:
        """Schema path of ``key`` under ``parent``, or None if undeclared."""
        candidate = parent + (key,)
        if candidate in self.declared_paths:
            return candidate
        wildcard = parent + (ANY_PROPERTY,)
        if wildcard in self.declared_paths:
            return wildcard
        return None

    def with_paths(self, paths: set[FieldPath]) -> "SecretFieldIndex":
        """Return a copy that also treats ``paths`` as secret."""
        declared = set(self.declared_paths)
        for path in paths:
            for depth in range(1, len(path) + 1):
                declared.add(path[:depth])
        return SecretFieldIndex(
            secret_paths=self.secret_paths | frozenset(paths),
            declared_paths=frozenset(declared),
            open_paths=self.open_paths,
        )


def _has_type(schema: dict[str, Any], type_name: str) -> bool:
    declared = schema.get("type")
    if isinstance(declared, list):
        return type_name in declared
    return declared == type_name


def _resolve_ref(root: dict[str, Any], ref: str) -> dict[str, Any] | None:
    """Resolve a local JSON pointer such as ``#/definitions/credentials``."""
    if not ref.startswith("#/"):
        logger.warning(f"Ignoring non-local schema reference: {ref}")
        return None
    node: Any = root
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, dict) else None


def _walk(
    schema: Any,
    path: FieldPath,
    root: dict[str, Any],
    annotation: str,
    secret: set[FieldPath],
    declared: set[FieldPath],
    ref_stack: frozenset[str],
) -> None:
    if not isinstance(schema, dict):
        return

    ref = schema.get("$ref")
    if isinstance(ref, str) and ref not in ref_stack:
        target = _resolve_ref(root, ref)
        if target is not None:
            _walk(target, path, root, annotation, secret, declared, ref_stack | {ref})

    if schema.get(annotation) is True:
        secret.add(path)

    has_branches = False
    for keyword in ("oneOf", "anyOf", "allOf"):
        branches = schema.get(keyword)
        if isinstance(branches, list):
            has_branches = True
            for branch in branches:
                _walk(branch, path, root, annotation, secret, declared, ref_stack)

    properties = schema.get("properties")
    if isinstance(properties, dict):
        for name, subschema in properties.items():
            child = path + (name,)
            declared.add(child)
            _walk(subschema, child, root, annotation, secret, declared, ref_stack)

    open_child = path + (ANY_PROPERTY,)
    additional = schema.get("additionalProperties")
    if isinstance(additional, dict):
        declared.add(open_child)
        _walk(additional, open_child, root, annotation, secret, declared, ref_stack)
    elif additional is True:
        declared.add(open_child)
    pattern_properties = schema.get("patternProperties")
    if isinstance(pattern_properties, dict):
        declared.add(open_child)
        for subschema in pattern_properties.values():
            _walk(subschema, open_child, root, annotation, secret, declared, ref_stack)
    if (
        _has_type(schema, "object")
        and not isinstance(properties, dict)
        and not has_branches
        and ref is None
        and additional is not False
    ):
        # Free-form object: any key is allowed and none is a secret
        declared.add(open_child)

    items_path = path + (ARRAY_ITEMS,)
    items = schema.get("items")
    if isinstance(items, dict):
        declared.add(items_path)
        _walk(items, items_path, root, annotation, secret, declared, ref_stack)
    elif isinstance(items, list):
        declared.add(items_path)
        for subschema in items:
            _walk(subschema, items_path, root, annotation, secret, declared, ref_stack)
    elif _has_type(schema, "array"):
        declared.add(items_path)
        declared.add(items_path + (ANY_PROPERTY,))


@functools.lru_cache(maxsize=256)
def _compile_canonical(canonical_schema: str, annotation: str) -> SecretFieldIndex:
    schema = json.loads(canonical_schema)
    secret: set[FieldPath] = set()
    declared: set[FieldPath] = set()
    _walk(schema, (), schema, annotation, secret, declared, frozenset())
    open_paths = {
        path
        for path in declared
        if path[-1] == ANY_PROPERTY
        and not any(
            len(other) > len(path) and other[: len(path)] == path for other in declared
        )
    }
    return SecretFieldIndex(
        secret_paths=frozenset(secret),
        declared_paths=frozenset(declared),
        open_paths=frozenset(open_paths),
    )


def compile_field_index(
    schema: dict[str, Any], annotation: str = SECRET_ANNOTATION
) -> SecretFieldIndex:
    """Compile ``schema`` into a field index for ``annotation``.

    Results are cached per distinct schema, so repeated reads of records that
    share a connector version do not walk the schema again.
    """
    canonical = json.dumps(schema, sort_keys=True, separators=(",", ":"))
    return _compile_canonical(canonical, annotation)


def _format_location(location: tuple[str | int, ...]) -> str:
    parts: list[str] = []
    for part in location:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}" if parts else part)
    return "".join(parts) or "<root>"


def mask_fields(value: Any, index: SecretFieldIndex, path: FieldPath | None = ()) -> Any:
    """Return a copy of ``value`` with every secret path set to the placeholder.

    Null values stay null. ``path`` is None inside undeclared subtrees, which
    are copied through untouched.
    """
    if path is not None and index.is_secret(path):
        return None if value is None else SECRET_PLACEHOLDER
    if isinstance(value, dict):
        return {
            key: mask_fields(
                item, index, index.child(path, key) if path is not None else None
            )
            for key, item in value.items()
        }
    if isinstance(value, list):
        items_path = path + (ARRAY_ITEMS,) if path is not None else None
        return [mask_fields(item, index, items_path) for item in value]
    return value


def _has_unmasked(value: Any, index: SecretFieldIndex, path: FieldPath | None) -> bool:
    if path is not None and index.is_secret(path):
        return value is not None and value != SECRET_PLACEHOLDER
    if isinstance(value, dict):
        return any(
            _has_unmasked(
                item, index, index.child(path, key) if path is not None else None
            )
            for key, item in value.items()
        )
    if isinstance(value, list):
        items_path = path + (ARRAY_ITEMS,) if path is not None else None
        return any(_has_unmasked(item, index, items_path) for item in value)
    return False


class SecretsProcessor:
    """Masks and reconciles secret fields of configuration documents."""

    def __init__(
        self, unknown_field_policy: UnknownFieldPolicy = UnknownFieldPolicy.PASSTHROUGH
    ) -> None:
        self.unknown_field_policy = UnknownFieldPolicy(unknown_field_policy)

    def mask_for_output(
        self, schema: dict[str, Any], document: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace every secret value with the placeholder.

        Idempotent: masking an already-masked document returns it unchanged.
        Fields the schema does not declare are treated as non-secret.
        """
        return mask_fields(document, compile_field_index(schema))

    def contains_unmasked_secrets(
        self, schema: dict[str, Any], document: dict[str, Any]
    ) -> bool:
        """Check whether any secret field still holds a real value."""
        return _has_unmasked(document, compile_field_index(schema), ())

    def reconcile_secrets(
        self,
        schema: dict[str, Any],
        previous: dict[str, Any],
        incoming: dict[str, Any],
    ) -> dict[str, Any]:
        """Restore stored secrets wherever ``incoming`` carries the placeholder.

        Args:
            schema: Connector JSON Schema
            previous: Stored document with real secret values
            incoming: Caller-supplied document, possibly holding placeholders

        Returns:
            The document to persist

        Raises:
            ConfigValidationError: A placeholder has no stored value to restore
            SchemaMismatchError: An undeclared field was sent while the
                unknown field policy is REJECT
        """
        index = compile_field_index(schema)
        return self._reconcile(previous, incoming, index, (), ())

    def _reconcile(
        self,
        previous: Any,
        incoming: Any,
        index: SecretFieldIndex,
        path: FieldPath | None,
        location: tuple[str | int, ...],
    ) -> Any:
        if path is not None and index.is_secret(path):
            if incoming == SECRET_PLACEHOLDER:
                if previous is _MISSING or previous is None:
                    where = _format_location(location)
                    raise ConfigValidationError(
                        f"Secret field '{where}' was sent masked but has no stored value",
                        errors=[
                            {"path": where, "message": "masked secret has no stored value"}
                        ],
                    )
                return previous
            return incoming

        if isinstance(incoming, dict):
            previous_fields = previous if isinstance(previous, dict) else {}
            result: dict[str, Any] = {}
            for key, value in incoming.items():
                child = index.child(path, key) if path is not None else None
                if (
                    child is None
                    and path is not None
                    and path not in index.open_paths
                    and self.unknown_field_policy is UnknownFieldPolicy.REJECT
                ):
                    where = _format_location(location + (key,))
                    raise SchemaMismatchError(
                        f"Field '{where}' is not declared by the connector schema",
                        path=where,
                    )
                result[key] = self._reconcile(
                    previous_fields.get(key, _MISSING),
                    value,
                    index,
                    child,
                    location + (key,),
                )
            return result

        if isinstance(incoming, list):
            items_path = path + (ARRAY_ITEMS,) if path is not None else None
            if isinstance(previous, list) and len(previous) == len(incoming):
                pairs = list(zip(previous, incoming))
            else:
                # Element positions are not stable across a length change
                pairs = [(_MISSING, item) for item in incoming]
            return [
                self._reconcile(old, new, index, items_path, location + (i,))
                for i, (old, new) in enumerate(pairs)
            ]

        return incoming
