"""Static checks over an instance's ``mods/`` directory.

Reads ``fabric.mod.json`` from every active jar and reports duplicate mod
ids, missing dependencies, game-version mismatches, non-Fabric jars, known
conflicting pairs and experimental mods. Issues carry the owning catalog id
when the filename follows the ``<catalogId>__`` naming scheme.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from .fs_layout import attribute_file
from .jar_meta import ModMetadata, read_mod_metadata

logger = logging.getLogger(__name__)

IssueSeverity = Literal["warning", "critical"]
IssueCode = Literal[
    "duplicate-mod-id",
    "missing-dependency",
    "incompatible-game-version",
    "loader-mismatch",
    "known-conflict",
    "experimental-mod",
]
ValidationSummary = Literal["no-issues", "warnings", "critical"]

KNOWN_CONFLICTS: Tuple[Tuple[str, str, str], ...] = (
    ("sodium", "embeddium", "Do not install both render engines together."),
    ("iris", "oculus", "Iris and Oculus target different ecosystems and conflict."),
    ("starlight", "phosphor", "Both modify the lighting pipeline and can conflict."),
)
EXPERIMENTAL_MODS: Dict[str, str] = {
    "c2me": "C2ME can be unstable on some versions. Use with caution.",
}
# Dependency ids provided by the game or loader rather than by a jar
PLATFORM_IDS = frozenset({"minecraft", "fabricloader", "fabric", "java"})


@dataclass(frozen=True)
class ValidationIssue:
    code: IssueCode
    severity: IssueSeverity
    title: str
    detail: str
    files: Tuple[str, ...] = ()
    mod_ids: Tuple[str, ...] = ()
    catalog_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationResult:
    summary: ValidationSummary
    issues: Tuple[ValidationIssue, ...] = field(default_factory=tuple)


def version_constraint_matches(constraint: str, game_version: str) -> bool:
    """Loose check of a ``depends.minecraft`` constraint.

    Wildcards always match; otherwise the version must appear in the
    constraint or in one of its comma-separated alternatives.
    """
    if not constraint or "*" in constraint:
        return True
    if game_version in constraint:
        return True
    normalized = constraint.translate(str.maketrans("", "", "[]()"))
    return any(part.strip() == game_version for part in normalized.split(","))


def _active_jars(mods_dir: Path) -> List[Path]:
    if not mods_dir.is_dir():
        return []
    return sorted(p for p in mods_dir.iterdir() if p.is_file() and p.name.lower().endswith(".jar"))


def _catalog_ids(files: Tuple[str, ...]) -> Tuple[str, ...]:
    owners: List[str] = []
    for name in files:
        attribution = attribute_file(name)
        if attribution is not None and attribution.owner_kind == "catalog" and attribution.owner_id not in owners:
            owners.append(attribution.owner_id)
    return tuple(owners)


def _issue(
    code: IssueCode,
    severity: IssueSeverity,
    title: str,
    detail: str,
    files: Tuple[str, ...] = (),
    mod_ids: Tuple[str, ...] = (),
) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        severity=severity,
        title=title,
        detail=detail,
        files=files,
        mod_ids=mod_ids,
        catalog_ids=_catalog_ids(files),
    )


def validate_mods_dir(mods_dir: Path, game_version: str) -> ValidationResult:
    """Validate the active jars in ``mods_dir`` for ``game_version``."""
    metas = [read_mod_metadata(path) for path in _active_jars(mods_dir)]
    issues: List[ValidationIssue] = []

    by_id: Dict[str, List[ModMetadata]] = {}
    for meta in metas:
        if not meta.id:
            issues.append(
                _issue(
                    "loader-mismatch",
                    "warning",
                    "Non-Fabric or malformed mod",
                    f"{meta.file.name} has no fabric.mod.json and may be incompatible.",
                    files=(meta.file.name,),
                )
            )
            continue
        by_id.setdefault(meta.id, []).append(meta)

    for mod_id, group in by_id.items():
        if len(group) > 1:
            issues.append(
                _issue(
                    "duplicate-mod-id",
                    "critical",
                    f"Duplicate mod detected: {mod_id}",
                    f'Multiple jars provide mod id "{mod_id}". Keep one version only.',
                    files=tuple(m.file.name for m in group),
                    mod_ids=(mod_id,),
                )
            )

    for meta in metas:
        if not meta.id:
            continue
        for dep_id, constraint in meta.depends.items():
            if dep_id == "minecraft":
                if not version_constraint_matches(constraint, game_version):
                    issues.append(
                        _issue(
                            "incompatible-game-version",
                            "critical",
                            f"{meta.id} does not support {game_version}",
                            f"{meta.id} requires minecraft {constraint}.",
                            files=(meta.file.name,),
                            mod_ids=(meta.id,),
                        )
                    )
                continue
            if dep_id in PLATFORM_IDS or dep_id in by_id:
                continue
            suffix = f" ({constraint})" if constraint else ""
            issues.append(
                _issue(
                    "missing-dependency",
                    "critical",
                    f"Missing dependency for {meta.id}",
                    f"{meta.id} requires {dep_id}{suffix}.",
                    files=(meta.file.name,),
                    mod_ids=(meta.id, dep_id),
                )
            )

    for first, second, reason in KNOWN_CONFLICTS:
        if first in by_id and second in by_id:
            files = tuple(m.file.name for m in by_id[first] + by_id[second])
            issues.append(
                _issue(
                    "known-conflict",
                    "critical",
                    f"Known conflict: {first} + {second}",
                    reason,
                    files=files,
                    mod_ids=(first, second),
                )
            )

    for mod_id, detail in EXPERIMENTAL_MODS.items():
        if mod_id in by_id:
            issues.append(
                _issue(
                    "experimental-mod",
                    "warning",
                    "Experimental performance mod enabled",
                    detail,
                    files=tuple(m.file.name for m in by_id[mod_id]),
                    mod_ids=(mod_id,),
                )
            )

    summary: ValidationSummary
    if any(issue.severity == "critical" for issue in issues):
        summary = "critical"
    elif issues:
        summary = "warnings"
    else:
        summary = "no-issues"
    return ValidationResult(summary=summary, issues=tuple(issues))


def fix_duplicate_mods(mods_dir: Path) -> List[str]:
    """Keep only the most recently modified jar per mod id; return removed names."""
    grouped: Dict[str, List[Tuple[float, Path]]] = {}
    for path in _active_jars(mods_dir):
        mod_id: Optional[str] = read_mod_metadata(path).id
        if mod_id:
            grouped.setdefault(mod_id, []).append((path.stat().st_mtime, path))

    removed: List[str] = []
    for mod_id, candidates in grouped.items():
        if len(candidates) <= 1:
            continue
        candidates.sort(key=lambda item: (item[0], item[1].name), reverse=True)
        for _, loser in candidates[1:]:
            loser.unlink(missing_ok=True)
            removed.append(loser.name)
            logger.info("Removed duplicate %s jar %s", mod_id, loser.name)
    return removed
