"""Read Fabric mod metadata (``fabric.mod.json``) out of jar files."""

from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

FABRIC_MOD_JSON = "fabric.mod.json"


@dataclass(frozen=True)
class ModMetadata:
    """Subset of ``fabric.mod.json`` the launcher cares about."""

    file: Path
    id: Optional[str] = None
    version: Optional[str] = None
    depends: Dict[str, str] = field(default_factory=dict)


def read_mod_metadata(path: Path) -> ModMetadata:
    """Parse ``fabric.mod.json`` from ``path``.

    Jars without the descriptor, corrupt archives and malformed JSON all
    yield a :class:`ModMetadata` with ``id=None``; callers treat those as
    non-Fabric content.
    """
    try:
        with zipfile.ZipFile(path) as archive:
            raw = archive.read(FABRIC_MOD_JSON)
        # Fabric allows raw control characters in strings
        parsed = json.loads(raw.decode("utf-8", errors="replace"), strict=False)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile) as exc:
        logger.debug("No usable %s in %s: %s", FABRIC_MOD_JSON, path, exc)
        return ModMetadata(file=path)
    if not isinstance(parsed, dict):
        return ModMetadata(file=path)

    mod_id = parsed.get("id") if isinstance(parsed.get("id"), str) else None
    version = parsed.get("version") if isinstance(parsed.get("version"), str) else None
    depends_raw = parsed.get("depends")
    depends: Dict[str, str] = {}
    if isinstance(depends_raw, dict):
        for dep_id, constraint in depends_raw.items():
            if isinstance(constraint, list):
                depends[str(dep_id)] = " || ".join(str(c) for c in constraint)
            else:
                depends[str(dep_id)] = str(constraint)
    return ModMetadata(file=path, id=mod_id, version=version, depends=depends)


def read_mod_id(path: Path) -> Optional[str]:
    """Fabric mod id of the jar at ``path``, or ``None``."""
    return read_mod_metadata(path).id


def collect_installed_mod_ids(mods_dir: Path) -> Set[str]:
    """Mod ids provided by the active (non-disabled) jars in ``mods_dir``."""
    found: Set[str] = set()
    if not mods_dir.is_dir():
        return found
    for path in sorted(mods_dir.iterdir()):
        if not path.is_file() or not path.name.lower().endswith(".jar"):
            continue
        mod_id = read_mod_id(path)
        if mod_id:
            found.add(mod_id)
    return found
