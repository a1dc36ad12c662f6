"""Evaluation engine for site-scoped, role-based permissions.

:class:`PermissionService` holds the trusted permission matrix and answers
"may this user do this action on this resource at this site?" questions.
Every check is synchronous, in-memory and fail-closed: an unloaded engine,
a missing parameter or a missing/invalid sub-resource yields ``False`` (or
an empty list), never an exception.

The matrix, its version and the loaded flag live in one immutable
:class:`MatrixSnapshot`.  :meth:`PermissionService.load_permissions` builds
a new snapshot and swaps the reference in a single assignment, so a check
running concurrently sees either the old matrix or the new one, never a
mix.  Each public method reads the snapshot reference once and evaluates
against that.

Example
-------
::

    cache = TtlCache(default_ttl=600)
    service = PermissionService(cache=cache)
    service.load_permissions({
        "permissions": {"admin": {"users": ["create", "read"]}},
        "version": "1.1.0",
        "updatedAt": "2025-01-01T00:00:00Z",
    })
    user = User(uid="u1", roles=[UserRole("s1", "admin")])
    service.can_perform_site_action(user, "s1", "users", "read")   # True
"""
from __future__ import annotations

import copy
import hashlib
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from site_permissions.cache.ttl_cache import (
    GLOBAL_SITE,
    TtlCache,
    bulk_permission_key,
    global_permission_key,
    permission_key,
)
from site_permissions.events.sink import (
    NOOP_SINK,
    Decision,
    DecisionDetail,
    LoggingMode,
    PermissionEvent,
    PermissionEventSink,
    Reason,
    build_resource_key,
    detect_environment,
)
from site_permissions.matrix.schema import (
    ALL_ADMIN_SUB_RESOURCES,
    ALL_GROUP_SUB_RESOURCES,
    ALL_SITES,
    FLAT_RESOURCES,
    BulkPermissionResult,
    PermissionCheck,
    PermissionMatrixData,
    Resource,
    Role,
    User,
    is_valid_sub_resource,
    requires_sub_resource,
    role_index,
)
from site_permissions.matrix.version_handler import VersionHandler

if TYPE_CHECKING:
    from site_permissions.config import PermissionServiceConfig

logger = logging.getLogger(__name__)

_SUPER_ADMIN: str = Role.SUPER_ADMIN.value


# ---------------------------------------------------------------------------
# Result / state types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatrixSnapshot:
    """The matrix, its version and the loaded flag, swapped as one unit.

    ``generation`` counts successful loads.  Cache entries are tagged with
    it and only honoured while it is still current.
    """

    matrix: PermissionMatrixData
    version: str
    loaded: bool
    generation: int = 0


_UNLOADED = MatrixSnapshot(matrix={}, version="", loaded=False, generation=0)


@dataclass
class LoadResult:
    """Outcome of :meth:`PermissionService.load_permissions`."""

    success: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True)
class _Evaluation:
    allowed: bool
    detail: DecisionDetail | None = None


def _value(item: object) -> object:
    """Normalise an enum member to its string value; pass everything else through."""
    return item.value if isinstance(item, Enum) else item


# ---------------------------------------------------------------------------
# PermissionService
# ---------------------------------------------------------------------------


class PermissionService:
    """Evaluates permission checks against a loaded permission matrix.

    Parameters
    ----------
    cache:
        Optional :class:`TtlCache` used to memoise decisions.  Without one
        every check is evaluated against the matrix.
    logging_mode:
        ``"off"`` (default), ``"baseline"`` or ``"debug"``.  Decision
        reasons are only computed when this is not ``"off"`` *and* the
        sink reports itself enabled.
    sink:
        Receiver for decision events.  Defaults to a no-op sink.
    """

    def __init__(
        self,
        cache: TtlCache | None = None,
        logging_mode: LoggingMode | None = None,
        sink: PermissionEventSink | None = None,
    ) -> None:
        self._cache = cache
        self._logging_mode: LoggingMode = logging_mode or "off"
        self._sink: PermissionEventSink = sink if sink is not None else NOOP_SINK
        self._snapshot: MatrixSnapshot = _UNLOADED
        self._load_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: PermissionServiceConfig,
        sink: PermissionEventSink | None = None,
    ) -> PermissionService:
        """Build a service (and, if enabled, its cache) from validated configuration."""
        cache: TtlCache | None = None
        if config.enable_caching:
            cache = TtlCache(
                default_ttl=config.default_cache_ttl_seconds,
                sweep_interval=config.sweep_interval_seconds,
            )
        return cls(cache=cache, logging_mode=config.logging_mode, sink=sink)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_permissions(self, document: object) -> LoadResult:
        """Validate *document* and, on success, replace the active matrix.

        A failed load leaves the previous matrix, version and loaded flag
        untouched.  A successful load clears the cache.

        Parameters
        ----------
        document:
            A raw ``{permissions, version, updatedAt}`` mapping or a
            :class:`~site_permissions.matrix.schema.PermissionDocument`.
        """
        result = VersionHandler.process_document(document)
        if not result.success:
            logger.warning(
                "Rejected permission document (%d errors); keeping version %r",
                len(result.errors),
                self._snapshot.version,
            )
            return LoadResult(success=False, errors=result.errors, warnings=result.warnings)

        with self._load_lock:
            snapshot = MatrixSnapshot(
                matrix=result.matrix or {},
                version=result.version or "",
                loaded=True,
                generation=self._snapshot.generation + 1,
            )
            self._snapshot = snapshot
            if self._cache is not None:
                self._cache.clear()

        for warning in result.warnings:
            logger.warning("Permission document: %s", warning)
        logger.info(
            "Loaded permission matrix version %s (%d roles)",
            snapshot.version,
            len(snapshot.matrix),
        )
        return LoadResult(success=True, errors=result.errors, warnings=result.warnings)

    def get_permission_matrix(self) -> PermissionMatrixData:
        """Return a deep copy of the active matrix (empty when unloaded)."""
        return copy.deepcopy(self._snapshot.matrix)

    def get_version(self) -> str:
        """Return the active matrix version, or ``""`` when unloaded."""
        return self._snapshot.version

    @property
    def version(self) -> str:
        """The active matrix version, or ``""`` when unloaded."""
        return self._snapshot.version

    def is_loaded(self) -> bool:
        """Return True once a document has been loaded successfully."""
        return self._snapshot.loaded

    @property
    def generation(self) -> int:
        """Number of successful loads; cached decisions from older generations are ignored."""
        return self._snapshot.generation

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_user_site_role(self, user: User, site_id: str) -> str | None:
        """Return the user's role at *site_id*.

        Super admins get ``"super_admin"`` for every site.  Otherwise the
        first assignment for the site wins; ``None`` when there is none.
        """
        if self._is_super_admin(user):
            return _SUPER_ADMIN
        for assignment in user.roles:
            if assignment.site_id == site_id:
                return _value(assignment.role) or None  # type: ignore[return-value]
        return None

    def has_minimum_role(self, user_role: str, required_role: str) -> bool:
        """Return True when *user_role* is at least as privileged as *required_role*."""
        user_level = role_index(user_role)
        required_level = role_index(required_role)
        if user_level == -1 or required_level == -1:
            logger.warning(
                "has_minimum_role failed: invalid role (user_role=%r, required_role=%r)",
                user_role,
                required_role,
            )
            return False
        return user_level >= required_level

    def get_sites_with_min_role(self, user: User, min_role: str) -> list[str]:
        """Return site ids where the user holds at least *min_role*.

        Super admins get ``["*"]`` (all sites).  Order follows the user's
        assignments.
        """
        if self._is_super_admin(user):
            return [ALL_SITES]

        min_level = role_index(min_role)
        if min_level == -1:
            logger.warning("get_sites_with_min_role failed: invalid minimum role %r", min_role)
            return []

        return [a.site_id for a in user.roles if role_index(a.role) >= min_level]

    # ------------------------------------------------------------------
    # Single checks
    # ------------------------------------------------------------------

    def can_perform_global_action(
        self,
        user: User | None,
        resource: str | None,
        action: str | None,
        sub_resource: str | None = None,
    ) -> bool:
        """Return True if a super admin may perform *action* on *resource* anywhere.

        Non-super-admins are always denied.  Nested resources (``groups``,
        ``admins``) require a valid *sub_resource*.
        """
        include_reason = self._decision_logging_active()
        resource, action, sub_resource = _value(resource), _value(action), _value(sub_resource)
        evaluation = self._evaluate_global(
            self._snapshot, user, resource, action, sub_resource, include_reason
        )
        if evaluation.detail is not None:
            self._emit_event(evaluation.detail, user, GLOBAL_SITE, resource, action, sub_resource)
        return evaluation.allowed

    def can_perform_site_action(
        self,
        user: User | None,
        site_id: str | None,
        resource: str | None,
        action: str | None,
        sub_resource: str | None = None,
    ) -> bool:
        """Return True if *user* may perform *action* on *resource* at *site_id*.

        Super admins are evaluated as a global check, whatever the site.
        Nested resources (``groups``, ``admins``) require a valid
        *sub_resource*.
        """
        include_reason = self._decision_logging_active()
        resource, action, sub_resource = _value(resource), _value(action), _value(sub_resource)
        evaluation = self._evaluate_site(
            self._snapshot, user, site_id, resource, action, sub_resource, include_reason
        )
        if evaluation.detail is not None:
            self._emit_event(evaluation.detail, user, site_id, resource, action, sub_resource)
        return evaluation.allowed

    def role_has_permission(
        self,
        role: str | None,
        resource: str | None,
        action: str | None,
        sub_resource: str | None = None,
    ) -> bool:
        """Return True if *role* itself is granted *action* on *resource*."""
        snapshot = self._snapshot
        role, resource, action, sub_resource = (
            _value(role), _value(resource), _value(action), _value(sub_resource)
        )
        if not snapshot.loaded:
            logger.warning("role_has_permission failed: permissions not loaded yet")
            return False
        if not role or not resource or not action:
            logger.warning(
                "role_has_permission failed: missing required parameters "
                "(role=%r, resource=%r, action=%r)",
                role,
                resource,
                action,
            )
            return False
        if requires_sub_resource(resource) and not sub_resource:
            logger.warning("role_has_permission failed: %s requires a sub-resource", resource)
            return False
        if sub_resource and not is_valid_sub_resource(resource, sub_resource):
            logger.warning(
                "role_has_permission failed: invalid sub-resource %r for %s",
                sub_resource,
                resource,
            )
            return False
        return action in self._actions_for(snapshot, role, resource, sub_resource)  # type: ignore[arg-type]

    def get_role_permissions(self, role: str) -> dict[str, object]:
        """Return a deep copy of *role*'s slice of the matrix, or ``{}``."""
        snapshot = self._snapshot
        if not snapshot.loaded:
            logger.warning("get_role_permissions failed: permissions not loaded yet")
            return {}
        role_permissions = snapshot.matrix.get(_value(role))  # type: ignore[arg-type]
        if role_permissions is None:
            logger.warning("get_role_permissions failed: role %r not in permission matrix", role)
            return {}
        return copy.deepcopy(dict(role_permissions))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def get_accessible_resources(self, user: User, site_id: str, action: str) -> list[str]:
        """Return the flat resources the user may perform *action* on, in declaration order."""
        if not self.is_loaded():
            logger.warning("get_accessible_resources failed: permissions not loaded yet")
            return []
        return [
            resource
            for resource in FLAT_RESOURCES
            if self.can_perform_site_action(user, site_id, resource, action)
        ]

    def get_accessible_group_sub_resources(
        self, user: User, site_id: str, action: str
    ) -> list[str]:
        """Return the ``groups`` sub-resources the user may perform *action* on."""
        return self._accessible_sub_resources(
            user, site_id, action, Resource.GROUPS.value, ALL_GROUP_SUB_RESOURCES
        )

    def get_accessible_admin_sub_resources(
        self, user: User, site_id: str, action: str
    ) -> list[str]:
        """Return the ``admins`` sub-resources the user may perform *action* on."""
        return self._accessible_sub_resources(
            user, site_id, action, Resource.ADMINS.value, ALL_ADMIN_SUB_RESOURCES
        )

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def bulk_permission_check(
        self,
        user: User | None,
        site_id: str | None,
        checks: Sequence[PermissionCheck],
    ) -> list[BulkPermissionResult]:
        """Evaluate several checks for one user and site.

        Results come back in the order of *checks*.  The whole batch is
        also cached under an order-insensitive hash of the checks, and each
        check still goes through the per-check cache.  An unloaded engine
        answers ``allowed=False`` for every check.
        """
        if not self.is_loaded():
            logger.warning("bulk_permission_check failed: permissions not loaded yet")
            return [self._bulk_result(check, False) for check in checks]

        batch_key: str | None = None
        snapshot = self._snapshot
        if self._cache is not None and user is not None and site_id:
            batch_key = bulk_permission_key(user.uid, site_id, self.bulk_check_hash(checks))
            cached = self._recall(snapshot, batch_key)
            if isinstance(cached, Mapping):
                return [
                    self._bulk_result(check, bool(cached.get(check.signature(), False)))
                    for check in checks
                ]

        results = [
            self._bulk_result(
                check,
                self.can_perform_site_action(
                    user, site_id, check.resource, check.action, check.sub_resource
                ),
            )
            for check in checks
        ]

        if batch_key is not None:
            self._remember(
                snapshot,
                batch_key,
                {check.signature(): r.allowed for check, r in zip(checks, results)},
            )
        return results

    @staticmethod
    def bulk_check_hash(checks: Sequence[PermissionCheck]) -> str:
        """Return a stable hash of *checks* that ignores their order."""
        canonical = "|".join(sorted(check.signature() for check in checks))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_user_cache(self, user_id: str) -> None:
        """Drop cached decisions for one user; call after their roles change."""
        if self._cache is not None:
            self._cache.clear_user(user_id)

    def clear_all_cache(self) -> None:
        """Drop every cached decision."""
        if self._cache is not None:
            self._cache.clear()

    def get_cache_stats(self) -> dict[str, object]:
        """Return ``{"size": int, "enabled": bool}`` for monitoring."""
        return {
            "size": self._cache.size() if self._cache is not None else 0,
            "enabled": self._cache is not None,
        }

    def close(self) -> None:
        """Stop the cache's background sweep and drop its entries."""
        if self._cache is not None:
            self._cache.close()

    # ------------------------------------------------------------------
    # Evaluation internals
    # ------------------------------------------------------------------

    def _evaluate_global(
        self,
        snapshot: MatrixSnapshot,
        user: User | None,
        resource: object,
        action: object,
        sub_resource: object,
        include_reason: bool,
    ) -> _Evaluation:
        if not snapshot.loaded:
            logger.warning("can_perform_global_action failed: permissions not loaded yet")
            return _closed(include_reason, Decision.INDETERMINATE, Reason.NOT_LOADED)

        if not user or not resource or not action:
            logger.warning(
                "can_perform_global_action failed: missing required parameters "
                "(user=%s, resource=%r, action=%r)",
                bool(user),
                resource,
                action,
            )
            return _closed(include_reason, Decision.INDETERMINATE, Reason.MISSING_PARAMS)

        if not self._is_super_admin(user):
            logger.warning(
                "can_perform_global_action failed: user %s is not a super admin", user.uid
            )
            return _closed(include_reason, Decision.DENY, Reason.NOT_ALLOWED)

        sub_resource_failure = self._check_sub_resource(
            "can_perform_global_action", resource, sub_resource, include_reason
        )
        if sub_resource_failure is not None:
            return sub_resource_failure

        cache_key = (
            global_permission_key(user.uid, resource, action, sub_resource)  # type: ignore[arg-type]
            if self._cache is not None
            else None
        )
        if cache_key is not None and not include_reason:
            cached = self._recall(snapshot, cache_key)
            if cached is not None:
                return _Evaluation(allowed=bool(cached))

        allowed = action in self._actions_for(snapshot, _SUPER_ADMIN, resource, sub_resource)  # type: ignore[arg-type]
        self._remember(snapshot, cache_key, allowed)
        return _decided(allowed, include_reason)

    def _evaluate_site(
        self,
        snapshot: MatrixSnapshot,
        user: User | None,
        site_id: str | None,
        resource: object,
        action: object,
        sub_resource: object,
        include_reason: bool,
    ) -> _Evaluation:
        if not snapshot.loaded:
            logger.warning("can_perform_site_action failed: permissions not loaded yet")
            return _closed(include_reason, Decision.INDETERMINATE, Reason.NOT_LOADED)

        if not user or not site_id or not resource or not action:
            logger.warning(
                "can_perform_site_action failed: missing required parameters "
                "(user=%s, site_id=%r, resource=%r, action=%r)",
                bool(user),
                site_id,
                resource,
                action,
            )
            return _closed(include_reason, Decision.INDETERMINATE, Reason.MISSING_PARAMS)

        sub_resource_failure = self._check_sub_resource(
            "can_perform_site_action", resource, sub_resource, include_reason
        )
        if sub_resource_failure is not None:
            return sub_resource_failure

        if self._is_super_admin(user):
            return self._evaluate_global(
                snapshot, user, resource, action, sub_resource, include_reason
            )

        cache_key = (
            permission_key(user.uid, site_id, resource, action, sub_resource)  # type: ignore[arg-type]
            if self._cache is not None
            else None
        )
        if cache_key is not None and not include_reason:
            cached = self._recall(snapshot, cache_key)
            if cached is not None:
                return _Evaluation(allowed=bool(cached))

        user_role = self.get_user_site_role(user, site_id)
        if user_role is None:
            logger.warning(
                "can_perform_site_action failed: user %s has no role for site %s",
                user.uid,
                site_id,
            )
            self._remember(snapshot, cache_key, False)
            return _closed(include_reason, Decision.DENY, Reason.NO_ROLE)

        allowed = action in self._actions_for(snapshot, user_role, resource, sub_resource)  # type: ignore[arg-type]
        self._remember(snapshot, cache_key, allowed)
        return _decided(allowed, include_reason)

    @staticmethod
    def _check_sub_resource(
        method: str,
        resource: object,
        sub_resource: object,
        include_reason: bool,
    ) -> _Evaluation | None:
        """Return a closed evaluation when the sub-resource rules are broken."""
        if requires_sub_resource(resource) and not sub_resource:
            logger.warning("%s failed: %s requires a sub-resource", method, resource)
            return _closed(include_reason, Decision.INDETERMINATE, Reason.REQUIRES_SUBRESOURCE)
        if sub_resource and not is_valid_sub_resource(resource, sub_resource):
            logger.warning(
                "%s failed: invalid sub-resource %r for %s", method, sub_resource, resource
            )
            return _closed(include_reason, Decision.INDETERMINATE, Reason.INVALID_SUBRESOURCE)
        return None

    @staticmethod
    def _actions_for(
        snapshot: MatrixSnapshot,
        role: str,
        resource: str,
        sub_resource: str | None,
    ) -> Sequence[str]:
        """Look up the allowed actions for ``(role, resource[, sub_resource])``.

        Flat resources hold an action list; nested resources hold a mapping
        of sub-resource to action list.  Anything else means no access.
        """
        role_permissions = snapshot.matrix.get(role)
        if not isinstance(role_permissions, Mapping):
            return ()
        grant = role_permissions.get(resource)

        if requires_sub_resource(resource):
            if not sub_resource or not isinstance(grant, Mapping):
                return ()
            actions = grant.get(sub_resource)
        else:
            actions = grant

        return actions if isinstance(actions, (list, tuple)) else ()

    def _remember(self, snapshot: MatrixSnapshot, cache_key: str | None, value: object) -> None:
        # Entries carry the generation they were computed under; a reload
        # racing this write leaves an entry that _recall will not honour.
        if cache_key is not None and self._cache is not None and snapshot is self._snapshot:
            self._cache.set(cache_key, (snapshot.generation, value))

    def _recall(self, snapshot: MatrixSnapshot, cache_key: str) -> Any:
        """Return the cached value for *cache_key* if it belongs to *snapshot*, else None."""
        if self._cache is None:
            return None
        entry = self._cache.get(cache_key)
        if not isinstance(entry, tuple) or len(entry) != 2:
            return None
        generation, value = entry
        if generation != snapshot.generation:
            return None
        return value

    @staticmethod
    def _is_super_admin(user: User) -> bool:
        return any(_value(a.role) == _SUPER_ADMIN for a in user.roles)

    def _accessible_sub_resources(
        self,
        user: User,
        site_id: str,
        action: str,
        resource: str,
        sub_resources: Sequence[str],
    ) -> list[str]:
        if not self.is_loaded():
            logger.warning("accessible %s sub-resources failed: permissions not loaded yet", resource)
            return []
        return [
            sub_resource
            for sub_resource in sub_resources
            if self.can_perform_site_action(user, site_id, resource, action, sub_resource)
        ]

    @staticmethod
    def _bulk_result(check: PermissionCheck, allowed: bool) -> BulkPermissionResult:
        return BulkPermissionResult(
            resource=check.resource,
            action=check.action,
            sub_resource=check.sub_resource,
            allowed=allowed,
        )

    # ------------------------------------------------------------------
    # Decision events
    # ------------------------------------------------------------------

    def _decision_logging_active(self) -> bool:
        if self._logging_mode == "off":
            return False
        try:
            return bool(self._sink.is_enabled())
        except Exception:
            logger.warning(
                "Permission event sink failed in is_enabled(); treating it as disabled",
                exc_info=True,
            )
            return False

    def _emit_event(
        self,
        detail: DecisionDetail,
        user: User | None,
        site_id: str | None,
        resource: object,
        action: object,
        sub_resource: object,
    ) -> None:
        event = PermissionEvent(
            decision=detail.decision,
            reason=detail.reason,
            action=action or None,  # type: ignore[arg-type]
            resource=resource or None,  # type: ignore[arg-type]
            sub_resource=sub_resource or None,  # type: ignore[arg-type]
            resource_key=build_resource_key(resource, sub_resource),  # type: ignore[arg-type]
            site_id=site_id or None,
            user_id=user.uid if user else None,
            environment=detect_environment(),
        )
        try:
            self._sink.emit(event)
        except Exception:
            logger.warning("Permission event sink failed to emit event", exc_info=True)

    @property
    def logging_mode(self) -> LoggingMode:
        """The configured decision logging mode."""
        return self._logging_mode


def _closed(include_reason: bool, decision: Decision, reason: Reason) -> _Evaluation:
    if not include_reason:
        return _Evaluation(allowed=False)
    return _Evaluation(allowed=False, detail=DecisionDetail(decision=decision, reason=reason))


def _decided(allowed: bool, include_reason: bool) -> _Evaluation:
    if not include_reason:
        return _Evaluation(allowed=allowed)
    if allowed:
        return _Evaluation(allowed=True, detail=DecisionDetail(Decision.ALLOW, Reason.ALLOWED))
    return _Evaluation(allowed=False, detail=DecisionDetail(Decision.DENY, Reason.NOT_ALLOWED))
