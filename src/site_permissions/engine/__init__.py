"""Permission evaluation engine."""
from __future__ import annotations

from site_permissions.engine.service import (
    LoadResult,
    MatrixSnapshot,
    PermissionService,
)

__all__ = [
    "LoadResult",
    "MatrixSnapshot",
    "PermissionService",
]
