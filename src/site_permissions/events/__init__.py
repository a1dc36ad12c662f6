"""Decision/reason taxonomy and the pluggable event sink contract."""
from __future__ import annotations

from site_permissions.events.sink import (
    NOOP_SINK,
    Decision,
    DecisionDetail,
    LoggingEventSink,
    LoggingMode,
    NoopEventSink,
    PermissionEvent,
    PermissionEventSink,
    Reason,
    build_resource_key,
    detect_environment,
)

__all__ = [
    "NOOP_SINK",
    "Decision",
    "DecisionDetail",
    "LoggingEventSink",
    "LoggingMode",
    "NoopEventSink",
    "PermissionEvent",
    "PermissionEventSink",
    "Reason",
    "build_resource_key",
    "detect_environment",
]
