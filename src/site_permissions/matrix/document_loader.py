"""Read permission documents from YAML or JSON sources.

The loader only parses; it does not validate.  Its output is the raw
mapping that :meth:`PermissionService.load_permissions` hands to the
:class:`~site_permissions.matrix.version_handler.VersionHandler`.

JSON is a subset of YAML, so a single ``yaml.safe_load`` call handles
both formats.

Schema
------
::

    version: "1.1.0"
    updatedAt: "2025-01-01T00:00:00Z"
    permissions:
      admin:
        users: [create, read]
        groups:
          schools: [read, update]

Example
-------
::

    loader = DocumentLoader()
    document = loader.load("/etc/app/permissions.yaml")
    service.load_permissions(document)
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class PermissionDocumentError(ValueError):
    """Raised when a permission document cannot be read or parsed.

    Attributes
    ----------
    source:
        The path or identifier of the offending document, if known.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        prefix = f"[{source}] " if source else ""
        super().__init__(f"{prefix}{message}")


class DocumentLoader:
    """Parses permission documents from files or strings."""

    def load(self, document_path: str | Path) -> dict[str, object]:
        """Read and parse a permission document file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        PermissionDocumentError
            If the content is not valid YAML/JSON or not a mapping.
        """
        document_path = Path(document_path)
        if not document_path.exists():
            raise FileNotFoundError(f"Permission document not found: {document_path}")

        with document_path.open("r", encoding="utf-8") as fh:
            text = fh.read()
        return self.load_string(text, source=str(document_path))

    def load_string(self, text: str, source: str | None = None) -> dict[str, object]:
        """Parse a permission document held in memory."""
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise PermissionDocumentError(f"Failed to parse document: {exc}", source) from exc

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise PermissionDocumentError(
                f"Permission document must be a mapping; got {type(raw).__name__}.",
                source,
            )

        # YAML turns unquoted timestamps into datetimes; the wire format is a string.
        updated_at = raw.get("updatedAt")
        if updated_at is not None and not isinstance(updated_at, str):
            raw["updatedAt"] = updated_at.isoformat() if hasattr(updated_at, "isoformat") else str(updated_at)

        logger.debug("Parsed permission document from %s", source or "<string>")
        return raw
