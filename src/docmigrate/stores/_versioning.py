"""Version resolution shared by the document store implementations."""

from docmigrate.exceptions import VersionConflictError
from docmigrate.stores.interface import VersionMode


def resolve_version(
    collection: str,
    doc_id: str,
    *,
    current_version: int | None,
    version: int | None,
    version_mode: VersionMode,
) -> int:
    """
    Determine the version a write will carry, or reject the write.

    Args:
        collection: Target collection (for error reporting)
        doc_id: Target document id
        current_version: Version of the live document or its tombstone, None if
            the id was never written
        version: Caller-supplied version (external modes only)
        version_mode: Versioning mode of the write

    Returns:
        The version to store

    Raises:
        VersionConflictError: If an external version loses against current_version
        ValueError: If version and version_mode disagree
    """
    if not version_mode.is_external:
        if version is not None:
            raise ValueError("version may only be supplied with an external version mode")
        return (current_version or 0) + 1

    if version is None:
        raise ValueError(f"version_mode {version_mode.value} requires a version")
    if version < 1:
        raise ValueError(f"version must be >= 1, got {version}")
    if current_version is not None and not version_mode.accepts(current_version, version):
        raise VersionConflictError(collection, doc_id, current_version, version)
    return version


def id_sort_key(doc_id: str) -> tuple[int, int, str]:
    """Order numeric ids numerically, then everything else lexically."""
    if doc_id.isdigit():
        return (0, int(doc_id), "")
    return (1, 0, doc_id)
