"""Decision events and the sink contract they are delivered through.

When decision logging is active, every global/site check produces a
``(decision, reason)`` pair and a :class:`PermissionEvent`, which is handed
to a :class:`PermissionEventSink`.  Sinks are duck-typed: anything with
``is_enabled()`` and ``emit(event)`` qualifies.

Concrete transports (document stores, network beacons) belong to the host
application.  This module ships :class:`NoopEventSink`, the default, and
:class:`LoggingEventSink`, which writes events to a standard logger.

Example
-------
::

    sink = LoggingEventSink()
    service = PermissionService(cache=cache, logging_mode="baseline", sink=sink)
    service.can_perform_site_action(user, "s1", "users", "read")
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

LoggingMode = Literal["off", "baseline", "debug"]
Environment = Literal["frontend", "backend"]


class Decision(str, Enum):
    """Audit-facing outcome of a check."""

    ALLOW = "allow"
    DENY = "deny"
    INDETERMINATE = "indeterminate"


class Reason(str, Enum):
    """Why a check produced its decision; one code per evaluation branch."""

    NOT_LOADED = "NOT_LOADED"
    MISSING_PARAMS = "MISSING_PARAMS"
    REQUIRES_SUBRESOURCE = "REQUIRES_SUBRESOURCE"
    INVALID_SUBRESOURCE = "INVALID_SUBRESOURCE"
    NO_ROLE = "NO_ROLE"
    NOT_ALLOWED = "NOT_ALLOWED"
    ALLOWED = "ALLOWED"


@dataclass(frozen=True)
class DecisionDetail:
    """A decision paired with its reason code."""

    decision: Decision
    reason: Reason


@dataclass(frozen=True)
class PermissionEvent:
    """A single de-identifiable record of a permission decision.

    Attributes
    ----------
    decision / reason:
        The outcome and the branch that produced it.
    action / resource / sub_resource:
        What was asked for.  Any of these may be ``None`` when the caller
        omitted it (``MISSING_PARAMS``).
    resource_key:
        ``resource`` or ``resource:sub_resource``.
    site_id:
        The site checked, or ``"*"`` for global checks.
    user_id:
        The caller's uid.  Sinks that must de-identify drop it.
    timestamp:
        UTC time the event was built.
    environment:
        ``"frontend"`` inside a browser runtime, otherwise ``"backend"``.
    """

    decision: Decision
    reason: Reason
    action: str | None
    resource: str | None
    sub_resource: str | None
    resource_key: str | None
    site_id: str | None
    user_id: str | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    environment: Environment = "backend"

    def to_dict(self) -> dict[str, object]:
        """Serialise to the wire field names used by event stores."""
        return {
            "decision": self.decision.value,
            "reason": self.reason.value,
            "action": self.action,
            "resource": self.resource,
            "subResource": self.sub_resource,
            "resourceKey": self.resource_key,
            "siteId": self.site_id,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
        }


@runtime_checkable
class PermissionEventSink(Protocol):
    """Capability interface for receiving decision events.

    ``emit`` is fire-and-forget: it may hand work off elsewhere but must
    return promptly.  Exceptions it raises are logged and swallowed by
    the caller.
    """

    def is_enabled(self) -> bool:
        ...

    def emit(self, event: PermissionEvent) -> None:
        ...


class NoopEventSink:
    """Sink that is never enabled and discards everything."""

    def is_enabled(self) -> bool:
        return False

    def emit(self, event: PermissionEvent) -> None:
        return None


NOOP_SINK: NoopEventSink = NoopEventSink()


class LoggingEventSink:
    """Writes decision events to a standard-library logger.

    Parameters
    ----------
    target_logger:
        Logger to write to (default: this module's logger).
    level:
        Log level for allow/indeterminate events; denials use at least
        ``WARNING`` so they stand out.
    include_user_id:
        Keep ``userId`` in the logged record.  Defaults to ``False`` so
        records are de-identified.
    """

    def __init__(
        self,
        target_logger: logging.Logger | None = None,
        level: int = logging.INFO,
        include_user_id: bool = False,
    ) -> None:
        self._logger = target_logger or logger
        self._level = level
        self._include_user_id = include_user_id

    def is_enabled(self) -> bool:
        return self._logger.isEnabledFor(self._level)

    def emit(self, event: PermissionEvent) -> None:
        record = event.to_dict()
        if not self._include_user_id:
            record.pop("userId", None)
        level = max(self._level, logging.WARNING) if event.decision is Decision.DENY else self._level
        self._logger.log(
            level,
            "permission %s (%s) %s on %s at site %s",
            record["decision"],
            record["reason"],
            record["action"],
            record["resourceKey"],
            record["siteId"],
            extra={"permission_event": record},
        )


def build_resource_key(resource: str | None, sub_resource: str | None) -> str | None:
    """Return ``resource`` or ``resource:sub_resource``; ``None`` without a resource."""
    if not resource:
        return None
    return f"{resource}:{sub_resource}" if sub_resource else resource


def detect_environment() -> Environment:
    """Return ``"frontend"`` under a browser runtime (Pyodide/Emscripten)."""
    return "frontend" if sys.platform == "emscripten" else "backend"
