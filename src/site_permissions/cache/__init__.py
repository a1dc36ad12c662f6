"""TTL cache used to memoise permission decisions."""
from __future__ import annotations

from site_permissions.cache.ttl_cache import (
    GLOBAL_SITE,
    CacheEntry,
    TtlCache,
    bulk_permission_key,
    escape_key_part,
    global_permission_key,
    permission_key,
)

__all__ = [
    "GLOBAL_SITE",
    "CacheEntry",
    "TtlCache",
    "bulk_permission_key",
    "escape_key_part",
    "global_permission_key",
    "permission_key",
]
