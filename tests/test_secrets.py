"""Tests for schema-driven secret masking and reconciliation."""

from __future__ import annotations

import copy

import pytest

from destinations import SECRET_PLACEHOLDER
from destinations.errors import ConfigValidationError, SchemaMismatchError
from destinations.secrets import (
    SecretsProcessor,
    UnknownFieldPolicy,
    compile_field_index,
)


class TestCompileFieldIndex:
    """Tests for secret path discovery."""

    def test_finds_secrets_in_every_position(self, sample_schema):
        """Top-level, branch, array, map and $ref secrets are all found."""
        index = compile_field_index(sample_schema)

        assert index.secret_paths == {
            ("api_key",),
            ("credentials", "password"),
            ("credentials", "private_key"),
            ("replicas", "[]", "token"),
            ("headers", "*"),
            ("tunnel", "ssh_key"),
        }

    def test_non_secret_fields_are_declared(self, sample_schema):
        """Non-secret fields are declared but not secret."""
        index = compile_field_index(sample_schema)

        assert ("host",) in index.declared_paths
        assert ("credentials", "auth_type") in index.declared_paths
        assert ("tunnel", "tunnel_host") in index.declared_paths
        assert not index.is_secret(("host",))

    def test_recursive_ref_is_expanded_once(self):
        """A self-referencing definition terminates and keeps its first level."""
        schema = {
            "type": "object",
            "properties": {"root": {"$ref": "#/definitions/node"}},
            "definitions": {
                "node": {
                    "type": "object",
                    "properties": {
                        "secret": {"type": "string", "airbyte_secret": True},
                        "child": {"$ref": "#/definitions/node"},
                    },
                }
            },
        }

        index = compile_field_index(schema)

        assert ("root", "secret") in index.secret_paths
        assert ("root", "child", "secret") not in index.secret_paths

    def test_compiled_index_is_cached(self, sample_schema):
        """Identical schemas share one compiled index."""
        first = compile_field_index(sample_schema)
        second = compile_field_index(copy.deepcopy(sample_schema))

        assert first is second

    def test_annotation_must_be_true(self):
        """Only a true annotation marks a secret."""
        schema = {
            "type": "object",
            "properties": {"token": {"type": "string", "airbyte_secret": False}},
        }

        assert compile_field_index(schema).secret_paths == frozenset()


class TestMaskForOutput:
    """Tests for masking configuration documents."""

    def test_masks_top_level_secret(self, sample_schema, sample_configuration):
        """Top level secrets are masked."""
        masked = SecretsProcessor().mask_for_output(sample_schema, sample_configuration)

        assert masked["api_key"] == SECRET_PLACEHOLDER
        assert masked["host"] == "db.internal"
        assert masked["port"] == 5432

    def test_masks_secret_inside_oneof_branch(self, sample_schema, sample_configuration):
        """Secrets inside oneOf branches are masked."""
        masked = SecretsProcessor().mask_for_output(sample_schema, sample_configuration)

        assert masked["credentials"] == {
            "auth_type": "password",
            "password": SECRET_PLACEHOLDER,
        }

    def test_masks_every_array_element(self, sample_schema):
        """Secrets in every array element are masked."""
        document = {
            "host": "h",
            "replicas": [
                {"host": "r1", "token": "t1"},
                {"host": "r2", "token": "t2"},
            ],
        }

        masked = SecretsProcessor().mask_for_output(sample_schema, document)

        assert masked["replicas"] == [
            {"host": "r1", "token": SECRET_PLACEHOLDER},
            {"host": "r2", "token": SECRET_PLACEHOLDER},
        ]

    def test_masks_additional_properties(self, sample_schema):
        """Secret additional properties are masked."""
        document = {"host": "h", "headers": {"Authorization": "Bearer x", "X-Key": "y"}}

        masked = SecretsProcessor().mask_for_output(sample_schema, document)

        assert masked["headers"] == {
            "Authorization": SECRET_PLACEHOLDER,
            "X-Key": SECRET_PLACEHOLDER,
        }

    def test_masks_referenced_definition(self, sample_schema):
        """Secrets behind a ref are masked."""
        document = {"host": "h", "tunnel": {"tunnel_host": "bastion", "ssh_key": "KEY"}}

        masked = SecretsProcessor().mask_for_output(sample_schema, document)

        assert masked["tunnel"] == {"tunnel_host": "bastion", "ssh_key": SECRET_PLACEHOLDER}

    def test_null_secret_stays_null(self, sample_schema):
        """Null secrets stay null."""
        masked = SecretsProcessor().mask_for_output(
            sample_schema, {"host": "h", "api_key": None}
        )

        assert masked["api_key"] is None

    def test_masking_is_idempotent(self, sample_schema, sample_configuration):
        """Masking twice gives the same result."""
        processor = SecretsProcessor()
        once = processor.mask_for_output(sample_schema, sample_configuration)
        twice = processor.mask_for_output(sample_schema, once)

        assert once == twice

    def test_does_not_modify_input(self, sample_schema, sample_configuration):
        """The input document is not mutated."""
        original = copy.deepcopy(sample_configuration)

        SecretsProcessor().mask_for_output(sample_schema, sample_configuration)

        assert sample_configuration == original

    def test_undeclared_fields_are_copied_through(self, sample_schema):
        """Undeclared fields are copied through."""
        document = {"host": "h", "extra": {"password": "not-declared"}}

        masked = SecretsProcessor().mask_for_output(sample_schema, document)

        assert masked["extra"] == {"password": "not-declared"}

    def test_output_has_no_unmasked_secrets(self, sample_schema, sample_configuration):
        """Masked output holds no real secrets."""
        processor = SecretsProcessor()
        masked = processor.mask_for_output(sample_schema, sample_configuration)

        assert processor.contains_unmasked_secrets(sample_schema, sample_configuration)
        assert not processor.contains_unmasked_secrets(sample_schema, masked)


class TestReconcileSecrets:
    """Tests for restoring stored secrets from placeholders."""

    def test_placeholder_restores_stored_value(self, sample_schema, sample_configuration):
        """A placeholder restores the stored value."""
        incoming = {**sample_configuration, "api_key": SECRET_PLACEHOLDER}

        result = SecretsProcessor().reconcile_secrets(
            sample_schema, sample_configuration, incoming
        )

        assert result["api_key"] == "sk-live-123"

    def test_masked_document_round_trips(self, sample_schema, sample_configuration):
        """Sending back the masked read reproduces the stored document."""
        processor = SecretsProcessor()
        masked = processor.mask_for_output(sample_schema, sample_configuration)

        result = processor.reconcile_secrets(sample_schema, sample_configuration, masked)

        assert result == sample_configuration

    def test_new_value_replaces_stored_value(self, sample_schema, sample_configuration):
        """A new value replaces the stored value."""
        incoming = {**sample_configuration, "api_key": "sk-live-456"}

        result = SecretsProcessor().reconcile_secrets(
            sample_schema, sample_configuration, incoming
        )

        assert result["api_key"] == "sk-live-456"

    def test_null_clears_secret(self, sample_schema, sample_configuration):
        """Null clears a secret."""
        incoming = {**sample_configuration, "api_key": None}

        result = SecretsProcessor().reconcile_secrets(
            sample_schema, sample_configuration, incoming
        )

        assert result["api_key"] is None

    def test_omitted_secret_is_dropped(self, sample_schema, sample_configuration):
        """An omitted secret is dropped."""
        incoming = {"host": "db.internal"}

        result = SecretsProcessor().reconcile_secrets(
            sample_schema, sample_configuration, incoming
        )

        assert "api_key" not in result

    def test_placeholder_without_stored_value_raises(self, sample_schema):
        """A placeholder with nothing stored is an error."""
        with pytest.raises(ConfigValidationError) as exc_info:
            SecretsProcessor().reconcile_secrets(
                sample_schema, {}, {"host": "h", "api_key": SECRET_PLACEHOLDER}
            )

        assert exc_info.value.errors[0]["path"] == "api_key"

    def test_error_does_not_echo_values(self, sample_schema):
        """Errors name the path but not the value."""
        with pytest.raises(ConfigValidationError) as exc_info:
            SecretsProcessor().reconcile_secrets(
                sample_schema,
                {"host": "h", "credentials": {"password": None}},
                {"host": "h", "credentials": {"password": SECRET_PLACEHOLDER}},
            )

        assert "credentials.password" in str(exc_info.value)
        assert SECRET_PLACEHOLDER not in str(exc_info.value)

    def test_array_elements_reconcile_by_position(self, sample_schema):
        """Array elements reconcile by position."""
        previous = {
            "host": "h",
            "replicas": [{"host": "r1", "token": "t1"}, {"host": "r2", "token": "t2"}],
        }
        incoming = {
            "host": "h",
            "replicas": [
                {"host": "r1", "token": SECRET_PLACEHOLDER},
                {"host": "r2-new", "token": "t2-new"},
            ],
        }

        result = SecretsProcessor().reconcile_secrets(sample_schema, previous, incoming)

        assert result["replicas"] == [
            {"host": "r1", "token": "t1"},
            {"host": "r2-new", "token": "t2-new"},
        ]

    def test_resized_array_cannot_restore_placeholders(self, sample_schema):
        """Resized arrays cannot restore placeholders."""
        previous = {"host": "h", "replicas": [{"host": "r1", "token": "t1"}]}
        incoming = {
            "host": "h",
            "replicas": [
                {"host": "r1", "token": SECRET_PLACEHOLDER},
                {"host": "r2", "token": "t2"},
            ],
        }

        with pytest.raises(ConfigValidationError) as exc_info:
            SecretsProcessor().reconcile_secrets(sample_schema, previous, incoming)

        assert exc_info.value.errors[0]["path"] == "replicas[0].token"

    def test_additional_properties_restore_by_key(self, sample_schema):
        """Additional properties restore by key."""
        previous = {"host": "h", "headers": {"Authorization": "Bearer x"}}
        incoming = {
            "host": "h",
            "headers": {"Authorization": SECRET_PLACEHOLDER, "X-Key": "new"},
        }

        result = SecretsProcessor().reconcile_secrets(sample_schema, previous, incoming)

        assert result["headers"] == {"Authorization": "Bearer x", "X-Key": "new"}

    def test_switching_oneof_branch(self, sample_schema, sample_configuration):
        """Switching oneOf branch takes the new values."""
        incoming = {
            **sample_configuration,
            "api_key": SECRET_PLACEHOLDER,
            "credentials": {"auth_type": "key", "private_key": "PRIVATE"},
        }

        result = SecretsProcessor().reconcile_secrets(
            sample_schema, sample_configuration, incoming
        )

        assert result["credentials"] == {"auth_type": "key", "private_key": "PRIVATE"}

    def test_passthrough_keeps_undeclared_fields(self, sample_schema):
        """Passthrough keeps undeclared fields."""
        result = SecretsProcessor().reconcile_secrets(
            sample_schema, {}, {"host": "h", "extra": "value"}
        )

        assert result == {"host": "h", "extra": "value"}

    def test_reject_policy_refuses_undeclared_fields(self, sample_schema):
        """Reject policy refuses undeclared fields."""
        processor = SecretsProcessor(UnknownFieldPolicy.REJECT)

        with pytest.raises(SchemaMismatchError) as exc_info:
            processor.reconcile_secrets(
                sample_schema, {}, {"host": "h", "tunnel": {"tunnel_port": 22}}
            )

        assert exc_info.value.path == "tunnel.tunnel_port"

    def test_reject_policy_allows_free_form_objects(self):
        """Reject policy allows keys inside free-form objects."""
        schema = {
            "type": "object",
            "properties": {"options": {"type": "object"}},
        }
        processor = SecretsProcessor(UnknownFieldPolicy.REJECT)
        incoming = {"options": {"batch": {"size": 100}}}

        assert processor.reconcile_secrets(schema, {}, incoming) == incoming

    def test_policy_accepts_string_value(self):
        """The policy accepts its string value."""
        assert SecretsProcessor("reject").unknown_field_policy is UnknownFieldPolicy.REJECT

    def test_does_not_modify_inputs(self, sample_schema, sample_configuration):
        """Reconciling does not mutate its inputs."""
        previous = copy.deepcopy(sample_configuration)
        incoming = {**sample_configuration, "api_key": SECRET_PLACEHOLDER}
        incoming_copy = copy.deepcopy(incoming)

        SecretsProcessor().reconcile_secrets(sample_schema, previous, incoming)

        assert previous == sample_configuration
        assert incoming == incoming_copy
