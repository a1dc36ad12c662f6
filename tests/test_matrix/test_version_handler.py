"""Tests for VersionHandler: envelope, version gate, migration, matrix validation."""
from __future__ import annotations

from types import MappingProxyType

import pytest

from site_permissions.matrix.schema import PermissionDocument
from site_permissions.matrix.version_handler import VersionHandler


_VALID_MATRIX: dict[str, object] = {
    "admin": {
        "groups": {"sites": ["read"], "schools": ["read", "update"], "classes": [], "cohorts": []},
        "users": ["create", "read"],
    },
    "participant": {"tasks": ["read"]},
}


def _document(**overrides: object) -> dict[str, object]:
    doc: dict[str, object] = {
        "permissions": _VALID_MATRIX,
        "version": "1.1.0",
        "updatedAt": "2025-01-01T00:00:00Z",
    }
    doc.update(overrides)
    return doc


# ---------------------------------------------------------------------------
# check_compatibility
# ---------------------------------------------------------------------------


class TestCheckCompatibility:
    def test_current_version_is_compatible_without_migration(self) -> None:
        result = VersionHandler.check_compatibility("1.1.0")
        assert result.is_compatible is True
        assert result.requires_migration is False
        assert result.current_version == "1.1.0"
        assert "1.1.0" in result.supported_versions

    def test_older_compatible_version_requires_migration(self) -> None:
        result = VersionHandler.check_compatibility("1.0.0")
        assert result.is_compatible is True
        assert result.requires_migration is True

    def test_unknown_version_is_incompatible(self) -> None:
        result = VersionHandler.check_compatibility("2.0.0")
        assert result.is_compatible is False
        assert result.requires_migration is False

    def test_empty_version_is_incompatible(self) -> None:
        assert VersionHandler.check_compatibility("").is_compatible is False

    def test_supported_versions_returns_copy(self) -> None:
        versions = VersionHandler.supported_versions()
        versions.append("9.9.9")
        assert "9.9.9" not in VersionHandler.supported_versions()

    def test_current_version_accessor(self) -> None:
        assert VersionHandler.current_version() == "1.1.0"


# ---------------------------------------------------------------------------
# validate_document
# ---------------------------------------------------------------------------


class TestValidateDocument:
    def test_valid_document(self) -> None:
        result = VersionHandler.validate_document(_document())
        assert result.is_valid is True
        assert result.errors == []

    @pytest.mark.parametrize("value", [None, "not an object", 42, ["a"]])
    def test_non_mapping_rejected(self, value: object) -> None:
        result = VersionHandler.validate_document(value)
        assert result.is_valid is False
        assert result.errors == ["Permission document must be an object"]

    def test_missing_permissions(self) -> None:
        doc = _document()
        del doc["permissions"]
        result = VersionHandler.validate_document(doc)
        assert "Missing permissions property" in result.errors

    def test_missing_version(self) -> None:
        doc = _document()
        del doc["version"]
        assert "Missing version property" in VersionHandler.validate_document(doc).errors

    def test_missing_updated_at(self) -> None:
        doc = _document()
        del doc["updatedAt"]
        assert "Missing updatedAt property" in VersionHandler.validate_document(doc).errors

    def test_all_missing_fields_collected(self) -> None:
        result = VersionHandler.validate_document({})
        assert result.errors == [
            "Missing permissions property",
            "Missing version property",
            "Missing updatedAt property",
        ]

    def test_permissions_must_be_mapping(self) -> None:
        result = VersionHandler.validate_document(_document(permissions="invalid"))
        assert "Permissions must be an object" in result.errors

    def test_version_must_be_string(self) -> None:
        result = VersionHandler.validate_document(_document(version=1.1))
        assert "Version must be a string" in result.errors


# ---------------------------------------------------------------------------
# validate_matrix
# ---------------------------------------------------------------------------


class TestValidateMatrix:
    def test_valid_matrix(self) -> None:
        result = VersionHandler.validate_matrix(_VALID_MATRIX)
        assert result.is_valid is True

    def test_non_mapping_matrix(self) -> None:
        result = VersionHandler.validate_matrix(None)
        assert result.errors == ["Permission matrix must be an object"]

    def test_invalid_role(self) -> None:
        result = VersionHandler.validate_matrix({"janitor": {"users": ["read"]}})
        assert "Invalid role: janitor" in result.errors

    def test_role_without_resource_mapping(self) -> None:
        result = VersionHandler.validate_matrix({"admin": ["read"]})
        assert "Role admin must have resources object" in result.errors

    def test_invalid_resource(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"widgets": ["read"]}})
        assert "Invalid resource: widgets for role admin" in result.errors

    def test_flat_resource_requires_list(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"users": "read"}})
        assert "Actions for admin.users must be an array" in result.errors

    def test_invalid_flat_action(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"users": ["read", "fly"]}})
        assert result.errors == ["Invalid action: fly for admin.users"]

    def test_nested_resource_requires_mapping(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"groups": ["read"]}})
        assert result.is_valid is False
        assert "admin.groups" in result.errors[0]

    def test_invalid_sub_resource(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"groups": {"districts": ["read"]}}})
        assert "Invalid sub-resource: districts for admin.groups" in result.errors

    def test_admin_sub_resource_not_valid_for_groups(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"groups": {"site_admin": ["read"]}}})
        assert result.is_valid is False

    def test_invalid_nested_action(self) -> None:
        result = VersionHandler.validate_matrix(
            {"admin": {"admins": {"admin": ["read", "promote"]}}}
        )
        assert "Invalid action: promote for admin.admins.admin" in result.errors

    def test_missing_sub_resources_are_warnings(self) -> None:
        result = VersionHandler.validate_matrix({"admin": {"groups": {"schools": ["read"]}}})
        assert result.is_valid is True
        assert len(result.warnings) == 1
        assert "sites" in result.warnings[0]

    def test_empty_action_lists_are_valid(self) -> None:
        result = VersionHandler.validate_matrix(
            {"participant": {"users": [], "admins": {"site_admin": [], "admin": [], "research_assistant": []}}}
        )
        assert result.is_valid is True
        assert result.warnings == []

    def test_errors_are_collected_not_first_only(self) -> None:
        result = VersionHandler.validate_matrix(
            {"janitor": {}, "admin": {"widgets": [], "users": ["fly"]}}
        )
        assert len(result.errors) == 3


# ---------------------------------------------------------------------------
# migrate_matrix
# ---------------------------------------------------------------------------


class TestMigrateMatrix:
    def test_identity_migration(self) -> None:
        result = VersionHandler.migrate_matrix(_VALID_MATRIX, "1.0.0")
        assert result.success is True
        assert result.migrated_matrix == _VALID_MATRIX

    def test_migrated_matrix_is_a_copy(self) -> None:
        result = VersionHandler.migrate_matrix(_VALID_MATRIX, "1.0.0")
        assert result.migrated_matrix is not _VALID_MATRIX

    def test_unsupported_version(self) -> None:
        result = VersionHandler.migrate_matrix(_VALID_MATRIX, "2.0.0")
        assert result.success is False
        assert "Unsupported version for migration: 2.0.0" in result.errors

    def test_invalid_matrix_fails_after_migration(self) -> None:
        result = VersionHandler.migrate_matrix({"janitor": {}}, "1.0.0")
        assert result.success is False
        assert result.migrated_matrix == {}


# ---------------------------------------------------------------------------
# process_document
# ---------------------------------------------------------------------------


class TestProcessDocument:
    def test_valid_document(self) -> None:
        result = VersionHandler.process_document(_document())
        assert result.success is True
        assert result.version == "1.1.0"
        assert result.matrix == _VALID_MATRIX
        assert result.errors == []

    def test_accepts_permission_document_dataclass(self) -> None:
        doc = PermissionDocument(
            permissions=_VALID_MATRIX, version="1.1.0", updated_at="2025-01-01T00:00:00Z"
        )
        assert VersionHandler.process_document(doc).success is True

    def test_accepts_read_only_mapping(self) -> None:
        result = VersionHandler.process_document(MappingProxyType(_document(version="1.0.0")))
        assert result.success is True
        assert result.matrix == _VALID_MATRIX

    def test_envelope_errors_short_circuit(self) -> None:
        result = VersionHandler.process_document({"version": "1.1.0"})
        assert result.success is False
        assert result.matrix is None
        assert "Missing permissions property" in result.errors

    def test_incompatible_version_message(self) -> None:
        result = VersionHandler.process_document(_document(version="2.0.0"))
        assert result.success is False
        assert result.errors == ["Incompatible version: 2.0.0. Supported versions: 1.1.0"]

    def test_migration_path_reports_current_version_and_warning(self) -> None:
        result = VersionHandler.process_document(_document(version="1.0.0"))
        assert result.success is True
        assert result.version == "1.1.0"
        assert result.warnings[0] == "Version 1.0.0 requires migration to 1.1.0"

    def test_migration_path_with_invalid_matrix(self) -> None:
        result = VersionHandler.process_document(
            _document(version="1.0.0", permissions={"janitor": {}})
        )
        assert result.success is False
        assert "Invalid role: janitor" in result.errors
        assert any("migration" in w for w in result.warnings)

    def test_invalid_matrix_rejected(self) -> None:
        result = VersionHandler.process_document(
            _document(permissions={"admin": {"users": ["fly"]}})
        )
        assert result.success is False
        assert result.errors == ["Invalid action: fly for admin.users"]

    def test_returned_matrix_does_not_alias_input(self) -> None:
        permissions = {"admin": {"users": ["read"]}}
        result = VersionHandler.process_document(_document(permissions=permissions))
        permissions["admin"]["users"].append("delete")  # type: ignore[index]
        assert result.matrix == {"admin": {"users": ["read"]}}
