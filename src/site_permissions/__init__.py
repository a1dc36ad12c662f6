"""site-permissions: in-process, site-scoped role-based authorization.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import site_permissions as perms
>>> service = perms.PermissionService()
>>> result = service.load_permissions({
...     "permissions": {"admin": {"users": ["create", "read"]}},
...     "version": "1.1.0",
...     "updatedAt": "2025-01-01T00:00:00Z",
... })
>>> result.success
True
>>> user = perms.User(uid="u1", roles=[perms.UserRole("s1", "admin")])
>>> service.can_perform_site_action(user, "s1", "users", "read")
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Matrix vocabulary and documents
# ---------------------------------------------------------------------------
from site_permissions.matrix.schema import (
    ALL_SITES,
    Action,
    AdminSubResource,
    BulkPermissionResult,
    GroupSubResource,
    PermissionCheck,
    PermissionDocument,
    Resource,
    Role,
    User,
    UserRole,
)
from site_permissions.matrix.version_handler import ProcessResult, VersionHandler
from site_permissions.matrix.document_loader import DocumentLoader, PermissionDocumentError

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
from site_permissions.cache.ttl_cache import TtlCache

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
from site_permissions.engine.service import LoadResult, PermissionService

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
from site_permissions.events.sink import (
    Decision,
    LoggingEventSink,
    NoopEventSink,
    PermissionEvent,
    PermissionEventSink,
    Reason,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from site_permissions.config import ConfigLoader, PermissionServiceConfig

__all__ = [
    "__version__",
    # Matrix
    "ALL_SITES",
    "Action",
    "AdminSubResource",
    "BulkPermissionResult",
    "DocumentLoader",
    "GroupSubResource",
    "PermissionCheck",
    "PermissionDocument",
    "PermissionDocumentError",
    "ProcessResult",
    "Resource",
    "Role",
    "User",
    "UserRole",
    "VersionHandler",
    # Cache
    "TtlCache",
    # Engine
    "LoadResult",
    "PermissionService",
    # Events
    "Decision",
    "LoggingEventSink",
    "NoopEventSink",
    "PermissionEvent",
    "PermissionEventSink",
    "Reason",
    # Configuration
    "ConfigLoader",
    "PermissionServiceConfig",
]
