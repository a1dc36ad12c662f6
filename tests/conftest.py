"""Shared fixtures: a complete five-role permission matrix and sample users."""
from __future__ import annotations

import copy

import pytest

from site_permissions.cache.ttl_cache import TtlCache
from site_permissions.engine.service import PermissionService
from site_permissions.matrix.schema import User, UserRole

_ALL = ["create", "read", "update", "delete", "exclude"]
_CRUD = ["create", "read", "update", "delete"]

FULL_MATRIX: dict[str, object] = {
    "super_admin": {
        "groups": {"sites": _ALL, "schools": _ALL, "classes": _ALL, "cohorts": _ALL},
        "assignments": _ALL,
        "users": _ALL,
        "admins": {"site_admin": _CRUD, "admin": _CRUD, "research_assistant": _CRUD},
        "tasks": _ALL,
    },
    "site_admin": {
        "groups": {"sites": ["read", "update"], "schools": _ALL, "classes": _ALL, "cohorts": _ALL},
        "assignments": _ALL,
        "users": _ALL,
        "admins": {"site_admin": ["create", "read"], "admin": _ALL, "research_assistant": _CRUD},
        "tasks": _ALL,
    },
    "admin": {
        "groups": {
            "sites": ["read", "update"],
            "schools": ["read", "update", "delete"],
            "classes": ["read", "update", "delete"],
            "cohorts": ["read", "update", "delete"],
        },
        "assignments": _CRUD,
        "users": ["create", "read", "update"],
        "admins": {"site_admin": ["read"], "admin": ["read"], "research_assistant": ["create", "read"]},
        "tasks": ["read"],
    },
    "research_assistant": {
        "groups": {"sites": ["read"], "schools": ["read"], "classes": ["read"], "cohorts": ["read"]},
        "assignments": ["read"],
        "users": ["create", "read"],
        "admins": {"site_admin": ["read"], "admin": ["read"], "research_assistant": ["read"]},
        "tasks": ["read"],
    },
    "participant": {
        "groups": {"sites": [], "schools": [], "classes": [], "cohorts": []},
        "assignments": [],
        "users": [],
        "admins": {"site_admin": [], "admin": [], "research_assistant": []},
        "tasks": [],
    },
}


def make_document(
    matrix: dict[str, object] | None = None,
    version: str = "1.1.0",
) -> dict[str, object]:
    return {
        "permissions": copy.deepcopy(FULL_MATRIX if matrix is None else matrix),
        "version": version,
        "updatedAt": "2025-01-01T00:00:00Z",
    }


@pytest.fixture()
def full_document() -> dict[str, object]:
    return make_document()


@pytest.fixture()
def cache() -> TtlCache:
    ttl_cache = TtlCache(default_ttl=60.0, auto_sweep=False)
    yield ttl_cache
    ttl_cache.close()


@pytest.fixture()
def service(cache: TtlCache) -> PermissionService:
    return PermissionService(cache=cache)


@pytest.fixture()
def loaded_service(service: PermissionService, full_document: dict[str, object]) -> PermissionService:
    assert service.load_permissions(full_document).success
    return service


@pytest.fixture()
def super_admin() -> User:
    return User(uid="super-1", email="root@example.org", roles=[UserRole("hq", "super_admin")])


@pytest.fixture()
def site_admin() -> User:
    return User(
        uid="siteadmin-1",
        email="sa@example.org",
        roles=[UserRole("site-a", "site_admin"), UserRole("site-b", "research_assistant")],
    )


@pytest.fixture()
def admin() -> User:
    return User(uid="admin-1", email="admin@example.org", roles=[UserRole("site-a", "admin")])


@pytest.fixture()
def participant() -> User:
    return User(uid="part-1", email="p@example.org", roles=[UserRole("site-a", "participant")])


@pytest.fixture()
def document_factory():
    return make_document
