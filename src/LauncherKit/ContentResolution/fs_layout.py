"""Deterministic naming of installed content and filename attribution.

Installed files are named so that any consumer can attribute them back to
the catalog entry (or auto-installed dependency) that owns them:

  <catalogId>__<sanitizedUpstreamFilename>[.disabled]
  dep__<resolvedContentId>__<sanitizedUpstreamFilename>

Cleanup helpers only ever touch files carrying one of these prefixes, so
files the user dropped into the directory by hand are left alone.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

SEPARATOR = "__"
DISABLED_SUFFIX = ".disabled"
DEPENDENCY_OWNER = "dep"
DEPENDENCY_PREFIX = DEPENDENCY_OWNER + SEPARATOR

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")
_UNDERSCORE_RUNS = re.compile(r"_+")


class FileAttribution(NamedTuple):
    """Owner of an installed file, derived from its name."""

    owner_kind: str  # "catalog" or "dependency"
    owner_id: str


def sanitize_upstream_name(name: str) -> str:
    """Replace runs of characters outside ``[A-Za-z0-9._-]`` with ``_``.

    Example:
        sanitize_upstream_name("Sodium 0.5+mc1.20.jar") -> "Sodium_0.5_mc1.20.jar"
    """
    cleaned = _UNSAFE_CHARS.sub("_", name or "")
    return cleaned.strip(".") or "artifact"


def _with_extension(name: str, extension: str) -> str:
    if extension and not name.lower().endswith(extension.lower()):
        return name + extension
    return name


def installed_file_name(
    catalog_id: str, upstream_file_name: str, enabled: bool = True, extension: str = ""
) -> str:
    """Name of the file installed for ``catalog_id``.

    ``extension`` is appended when the upstream name lacks it, so the cleanup
    helpers (which filter on it) always see the file.
    """
    upstream = _with_extension(sanitize_upstream_name(upstream_file_name), extension)
    base = f"{catalog_id}{SEPARATOR}{upstream}"
    return base if enabled else base + DISABLED_SUFFIX


def dependency_file_name(content_id: str, upstream_file_name: str, extension: str = "") -> str:
    """Name of an auto-installed dependency file."""
    # the owner segment must not contain or border on the separator
    owner = _UNDERSCORE_RUNS.sub("_", sanitize_upstream_name(content_id)).strip("_") or "dependency"
    upstream = _with_extension(sanitize_upstream_name(upstream_file_name), extension)
    return f"{DEPENDENCY_PREFIX}{owner}{SEPARATOR}{upstream}"


def upstream_name_from_installed(catalog_id: str, installed_name: str) -> Optional[str]:
    """Recover the sanitized upstream name from an installed filename."""
    prefix = catalog_id + SEPARATOR
    if not installed_name.startswith(prefix):
        return None
    rest = installed_name[len(prefix) :]
    if rest.endswith(DISABLED_SUFFIX):
        rest = rest[: -len(DISABLED_SUFFIX)]
    return rest or None


def is_content_file(name: str, extension: str) -> bool:
    """``True`` for ``*.ext`` and ``*.ext.disabled``."""
    lower = name.lower()
    return lower.endswith(extension) or lower.endswith(extension + DISABLED_SUFFIX)


def attribute_file(name: str) -> Optional[FileAttribution]:
    """Attribute an installed filename to its owner, or ``None`` for foreign files."""
    if SEPARATOR not in name:
        return None
    head, rest = name.split(SEPARATOR, 1)
    if not head or not rest:
        return None
    if head == DEPENDENCY_OWNER:
        dep_id, sep, tail = rest.partition(SEPARATOR)
        if not dep_id or not sep or not tail:
            return None
        return FileAttribution("dependency", dep_id)
    return FileAttribution("catalog", head)


def files_for_catalog_id(directory: Path, catalog_id: str, extension: str) -> List[Path]:
    """Files in ``directory`` attributable to ``catalog_id``, sorted by name."""
    if not directory.is_dir():
        return []
    prefix = catalog_id + SEPARATOR
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.name.startswith(prefix) and is_content_file(path.name, extension)
    )


def remove_files_for_catalog_id(directory: Path, catalog_id: str, extension: str) -> List[str]:
    """Delete every file attributable to ``catalog_id``; return removed names."""
    removed: List[str] = []
    for path in files_for_catalog_id(directory, catalog_id, extension):
        path.unlink(missing_ok=True)
        removed.append(path.name)
    if removed:
        logger.debug("Removed %s from %s", removed, directory)
    return removed


def remove_auto_dependency_files(directory: Path, extension: str) -> List[str]:
    """Delete every auto-installed dependency file; return removed names."""
    if not directory.is_dir():
        return []
    removed: List[str] = []
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.name.startswith(DEPENDENCY_PREFIX) and is_content_file(path.name, extension):
            path.unlink(missing_ok=True)
            removed.append(path.name)
    return removed
