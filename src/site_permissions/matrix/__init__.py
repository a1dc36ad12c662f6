"""Permission matrix vocabulary, document loading and version gating.

Example
-------
::

    from site_permissions.matrix import DocumentLoader, VersionHandler

    raw = DocumentLoader().load("permissions.yaml")
    result = VersionHandler.process_document(raw)
    if not result.success:
        print(result.errors)
"""
from __future__ import annotations

from site_permissions.matrix.document_loader import (
    DocumentLoader,
    PermissionDocumentError,
)
from site_permissions.matrix.schema import (
    ALL_ACTIONS,
    ALL_ADMIN_SUB_RESOURCES,
    ALL_GROUP_SUB_RESOURCES,
    ALL_RESOURCES,
    ALL_SITES,
    FLAT_RESOURCES,
    NESTED_RESOURCES,
    ROLE_HIERARCHY,
    Action,
    AdminSubResource,
    BulkPermissionResult,
    GroupSubResource,
    PermissionCheck,
    PermissionDocument,
    PermissionMatrixData,
    Resource,
    Role,
    User,
    UserRole,
    is_valid_sub_resource,
    requires_sub_resource,
    role_index,
)
from site_permissions.matrix.version_handler import (
    MigrationResult,
    ProcessResult,
    ValidationResult,
    VersionCompatibility,
    VersionHandler,
)

__all__ = [
    # Vocabulary
    "ALL_ACTIONS",
    "ALL_ADMIN_SUB_RESOURCES",
    "ALL_GROUP_SUB_RESOURCES",
    "ALL_RESOURCES",
    "ALL_SITES",
    "FLAT_RESOURCES",
    "NESTED_RESOURCES",
    "ROLE_HIERARCHY",
    "Action",
    "AdminSubResource",
    "GroupSubResource",
    "Resource",
    "Role",
    # Value types
    "BulkPermissionResult",
    "PermissionCheck",
    "PermissionDocument",
    "PermissionMatrixData",
    "User",
    "UserRole",
    # Helpers
    "is_valid_sub_resource",
    "requires_sub_resource",
    "role_index",
    # Versioning
    "MigrationResult",
    "ProcessResult",
    "ValidationResult",
    "VersionCompatibility",
    "VersionHandler",
    # Loading
    "DocumentLoader",
    "PermissionDocumentError",
]
