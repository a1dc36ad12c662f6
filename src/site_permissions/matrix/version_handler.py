"""Version gate and structural validator for permission documents.

:class:`VersionHandler` turns an externally supplied permission document
into a trusted matrix.  It never raises for bad input: every problem is
collected into an ``errors`` list and the caller decides what to do with
the result.

Processing order
----------------
1. Envelope check: the document must be a mapping carrying
   ``permissions``, ``version`` and ``updatedAt``.
2. Version check: the version must be in the compatible set.  Compatible
   versions that are not directly supported are migrated to the current
   version (currently an identity transform).
3. Matrix check: every role, resource, sub-resource and action key must
   belong to the closed vocabularies in :mod:`site_permissions.matrix.schema`.

Example
-------
::

    result = VersionHandler.process_document({
        "permissions": {"admin": {"users": ["read"]}},
        "version": "1.1.0",
        "updatedAt": "2025-01-01T00:00:00Z",
    })
    assert result.success
"""
from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import cast

from site_permissions.matrix.schema import (
    ALL_ACTIONS,
    ALL_RESOURCES,
    ROLE_HIERARCHY,
    SUB_RESOURCES_BY_RESOURCE,
    PermissionDocument,
    PermissionMatrixData,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VersionCompatibility:
    """Outcome of :meth:`VersionHandler.check_compatibility`."""

    is_compatible: bool
    requires_migration: bool
    supported_versions: list[str]
    current_version: str


@dataclass
class ValidationResult:
    """Outcome of a structural validation pass."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class MigrationResult:
    """Outcome of :meth:`VersionHandler.migrate_matrix`."""

    success: bool
    migrated_matrix: PermissionMatrixData
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ProcessResult:
    """Outcome of :meth:`VersionHandler.process_document`.

    Attributes
    ----------
    success:
        ``True`` when the document may be trusted.
    matrix:
        The validated (and possibly migrated) matrix; ``None`` on failure.
    version:
        The version the matrix now conforms to; ``None`` on failure.
    errors:
        Every problem found.  Empty on success.
    warnings:
        Non-fatal diagnostics for operators (e.g. a migration took place).
    """

    success: bool
    matrix: PermissionMatrixData | None = None
    version: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# VersionHandler
# ---------------------------------------------------------------------------


class VersionHandler:
    """Validates, version-checks and migrates permission documents.

    All methods are class-level and side-effect free.
    """

    CURRENT_VERSION: str = "1.1.0"
    SUPPORTED_VERSIONS: tuple[str, ...] = ("1.1.0",)
    COMPATIBLE_VERSIONS: tuple[str, ...] = ("1.0.0", "1.1.0")

    _REQUIRED_FIELDS: tuple[str, ...] = ("permissions", "version", "updatedAt")

    # ------------------------------------------------------------------
    # Version policy
    # ------------------------------------------------------------------

    @classmethod
    def check_compatibility(cls, version: str) -> VersionCompatibility:
        """Classify *version* against the known version sets."""
        is_compatible = version in cls.COMPATIBLE_VERSIONS
        requires_migration = is_compatible and version not in cls.SUPPORTED_VERSIONS
        return VersionCompatibility(
            is_compatible=is_compatible,
            requires_migration=requires_migration,
            supported_versions=list(cls.SUPPORTED_VERSIONS),
            current_version=cls.CURRENT_VERSION,
        )

    @classmethod
    def current_version(cls) -> str:
        """Return the matrix format version this library evaluates natively."""
        return cls.CURRENT_VERSION

    @classmethod
    def supported_versions(cls) -> list[str]:
        """Return a copy of the directly supported versions."""
        return list(cls.SUPPORTED_VERSIONS)

    # ------------------------------------------------------------------
    # Structural validation
    # ------------------------------------------------------------------

    @classmethod
    def validate_document(cls, document: object) -> ValidationResult:
        """Check the document envelope, collecting one error per bad field."""
        if not isinstance(document, Mapping):
            return ValidationResult(
                is_valid=False, errors=["Permission document must be an object"]
            )

        errors: list[str] = []
        for field_name in cls._REQUIRED_FIELDS:
            value = document.get(field_name)
            if value is None or value == "":
                errors.append(f"Missing {field_name} property")

        permissions = document.get("permissions")
        if permissions is not None and not isinstance(permissions, Mapping):
            errors.append("Permissions must be an object")

        version = document.get("version")
        if version not in (None, "") and not isinstance(version, str):
            errors.append("Version must be a string")

        updated_at = document.get("updatedAt")
        if updated_at not in (None, "") and not isinstance(updated_at, str):
            errors.append("updatedAt must be an ISO-8601 string")

        return ValidationResult(is_valid=not errors, errors=errors)

    @classmethod
    def validate_matrix(cls, matrix: object) -> ValidationResult:
        """Check every key of *matrix* against the closed vocabularies.

        Sub-resources missing from a nested resource are reported as
        warnings; they evaluate as empty action sets.
        """
        if not isinstance(matrix, Mapping):
            return ValidationResult(
                is_valid=False, errors=["Permission matrix must be an object"]
            )

        errors: list[str] = []
        warnings: list[str] = []

        for role, resources in matrix.items():
            if role not in ROLE_HIERARCHY:
                errors.append(f"Invalid role: {role}")
                continue
            if not isinstance(resources, Mapping):
                errors.append(f"Role {role} must have resources object")
                continue

            for resource, grant in resources.items():
                if resource not in ALL_RESOURCES:
                    errors.append(f"Invalid resource: {resource} for role {role}")
                    continue

                sub_resources = SUB_RESOURCES_BY_RESOURCE.get(resource)
                if sub_resources is None:
                    errors.extend(cls._validate_actions(grant, f"{role}.{resource}"))
                    continue

                if not isinstance(grant, Mapping):
                    errors.append(
                        f"Permissions for {role}.{resource} must be an object keyed by sub-resource"
                    )
                    continue

                for sub_resource, actions in grant.items():
                    if sub_resource not in sub_resources:
                        errors.append(
                            f"Invalid sub-resource: {sub_resource} for {role}.{resource}"
                        )
                        continue
                    errors.extend(
                        cls._validate_actions(actions, f"{role}.{resource}.{sub_resource}")
                    )

                missing = [s for s in sub_resources if s not in grant]
                if missing:
                    warnings.append(
                        f"{role}.{resource} does not define {', '.join(missing)}; "
                        "treated as no access"
                    )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _validate_actions(actions: object, path: str) -> list[str]:
        """Return one error per invalid action in an action list."""
        if not isinstance(actions, (list, tuple)):
            return [f"Actions for {path} must be an array"]
        return [
            f"Invalid action: {action} for {path}"
            for action in actions
            if action not in ALL_ACTIONS
        ]

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    @classmethod
    def migrate_matrix(cls, matrix: object, from_version: str) -> MigrationResult:
        """Transform a compatible matrix to the current format and validate it.

        Every known compatible version is currently an identity transform;
        later format revisions add their transform here.
        """
        if from_version not in cls.COMPATIBLE_VERSIONS:
            return MigrationResult(
                success=False,
                migrated_matrix={},
                errors=[f"Unsupported version for migration: {from_version}"],
            )

        migrated: object = copy.deepcopy(matrix)

        validation = cls.validate_matrix(migrated)
        if not validation.is_valid:
            return MigrationResult(
                success=False,
                migrated_matrix={},
                warnings=validation.warnings,
                errors=validation.errors,
            )

        return MigrationResult(
            success=True,
            migrated_matrix=migrated,  # type: ignore[arg-type]
            warnings=validation.warnings,
        )

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    @classmethod
    def process_document(cls, document: object) -> ProcessResult:
        """Run the envelope, version and matrix checks over *document*.

        Parameters
        ----------
        document:
            A raw mapping (``{permissions, version, updatedAt}``) or a
            :class:`~site_permissions.matrix.schema.PermissionDocument`.

        Returns
        -------
        ProcessResult
            ``success=True`` with a private copy of the matrix, or
            ``success=False`` with every error found.
        """
        if isinstance(document, PermissionDocument):
            document = document.to_dict()

        envelope = cls.validate_document(document)
        if not envelope.is_valid:
            return ProcessResult(success=False, errors=envelope.errors)

        envelope_fields = cast(Mapping[str, object], document)
        version = str(envelope_fields["version"])
        compatibility = cls.check_compatibility(version)
        if not compatibility.is_compatible:
            return ProcessResult(
                success=False,
                errors=[
                    f"Incompatible version: {version}. Supported versions: "
                    f"{', '.join(compatibility.supported_versions)}"
                ],
            )

        if compatibility.requires_migration:
            warnings = [f"Version {version} requires migration to {cls.CURRENT_VERSION}"]
            logger.warning(
                "Migrating permission matrix from version %s to %s",
                version,
                cls.CURRENT_VERSION,
            )
            migration = cls.migrate_matrix(envelope_fields["permissions"], version)
            warnings.extend(migration.warnings)
            if not migration.success:
                return ProcessResult(
                    success=False, errors=migration.errors, warnings=warnings
                )
            return ProcessResult(
                success=True,
                matrix=migration.migrated_matrix,
                version=cls.CURRENT_VERSION,
                warnings=warnings,
            )

        validation = cls.validate_matrix(envelope_fields["permissions"])
        if not validation.is_valid:
            return ProcessResult(
                success=False, errors=validation.errors, warnings=validation.warnings
            )

        return ProcessResult(
            success=True,
            matrix=copy.deepcopy(dict(envelope_fields["permissions"])),  # type: ignore[call-overload]
            version=version,
            warnings=validation.warnings,
        )
