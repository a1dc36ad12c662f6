"""Tests for the matrix vocabulary and value types."""
from __future__ import annotations

import pytest

from site_permissions.matrix.schema import (
    ALL_ADMIN_SUB_RESOURCES,
    ALL_GROUP_SUB_RESOURCES,
    FLAT_RESOURCES,
    NESTED_RESOURCES,
    ROLE_HIERARCHY,
    PermissionCheck,
    PermissionDocument,
    Resource,
    Role,
    User,
    UserRole,
    is_valid_sub_resource,
    requires_sub_resource,
    role_index,
)


class TestVocabulary:
    def test_role_hierarchy_order(self) -> None:
        assert ROLE_HIERARCHY == (
            "participant",
            "research_assistant",
            "admin",
            "site_admin",
            "super_admin",
        )

    def test_flat_and_nested_partition_resources(self) -> None:
        assert set(FLAT_RESOURCES) | set(NESTED_RESOURCES) == {r.value for r in Resource}
        assert not set(FLAT_RESOURCES) & set(NESTED_RESOURCES)

    def test_sub_resource_declaration_order(self) -> None:
        assert ALL_GROUP_SUB_RESOURCES == ("sites", "schools", "classes", "cohorts")
        assert ALL_ADMIN_SUB_RESOURCES == ("site_admin", "admin", "research_assistant")


class TestHelpers:
    def test_role_index_accepts_enum_and_string(self) -> None:
        assert role_index(Role.ADMIN) == role_index("admin") == 2

    def test_role_index_unknown(self) -> None:
        assert role_index("janitor") == -1
        assert role_index(None) == -1

    @pytest.mark.parametrize("resource", ["groups", "admins", Resource.GROUPS])
    def test_nested_resources_require_sub_resource(self, resource: object) -> None:
        assert requires_sub_resource(resource) is True

    @pytest.mark.parametrize("resource", ["users", "tasks", "assignments", "widgets"])
    def test_flat_resources_do_not(self, resource: str) -> None:
        assert requires_sub_resource(resource) is False

    def test_valid_sub_resource_pairs(self) -> None:
        assert is_valid_sub_resource("groups", "schools") is True
        assert is_valid_sub_resource("admins", "site_admin") is True

    def test_invalid_sub_resource_pairs(self) -> None:
        assert is_valid_sub_resource("groups", "admin") is False
        assert is_valid_sub_resource("admins", "cohorts") is False
        assert is_valid_sub_resource("users", "schools") is False


class TestValueTypes:
    def test_user_from_dict(self) -> None:
        user = User.from_dict(
            {"uid": "u1", "email": "a@b.c", "roles": [{"siteId": "s1", "role": "admin"}]}
        )
        assert user.uid == "u1"
        assert user.roles == [UserRole(site_id="s1", role="admin")]

    def test_user_defaults_to_no_roles(self) -> None:
        assert User(uid="u1").roles == []

    def test_permission_check_signature(self) -> None:
        assert PermissionCheck("users", "read").signature() == "users:read"
        assert PermissionCheck("groups", "read", "schools").signature() == "groups:schools:read"

    def test_permission_check_signature_with_enums(self) -> None:
        check = PermissionCheck(Resource.GROUPS, "read", "sites")  # type: ignore[arg-type]
        assert check.signature() == "groups:sites:read"

    def test_permission_document_to_dict(self) -> None:
        doc = PermissionDocument(permissions={}, version="1.1.0", updated_at="2025-01-01")
        assert doc.to_dict() == {"permissions": {}, "version": "1.1.0", "updatedAt": "2025-01-01"}
