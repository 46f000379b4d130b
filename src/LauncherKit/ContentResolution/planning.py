"""Update-advisory classification.

An entry has an update when its latest artifact differs from the stored
resolution (different content hash, and not the same version label plus
upstream filename). Severity starts at ``safe`` and is raised to
``caution`` when the stored resolution was not ``ok``, when the numeric major
version increases, or when the required dependency set changes. Nothing here
ever downgrades a severity, and nothing here produces ``breaking``; that
level is reserved for manual curation.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .api.types import (
    HASH_PREFERENCE,
    Artifact,
    PlannedUpdate,
    ResolvedArtifact,
    ResolvedOk,
    UpdateSeverity,
)

CHANGELOG_MAX_CHARS = 220
NO_CHANGELOG = "No changelog provided."

SEVERITY_RANK: Dict[UpdateSeverity, int] = {"breaking": 3, "caution": 2, "safe": 1}

_FIRST_NUMBER = re.compile(r"(\d+)")
_MARKDOWN_CHARS = re.compile(r"[`*_#>\-\[\]()!]")
_WHITESPACE = re.compile(r"\s+")


def parse_major(label: Optional[str]) -> Optional[int]:
    """First run of digits in ``label``, or ``None``.

    Example:
        parse_major("mc1.20.1-0.5.3") -> 1
    """
    if not label:
        return None
    match = _FIRST_NUMBER.search(str(label))
    return int(match.group(1)) if match else None


def normalize_changelog(text: Optional[str]) -> str:
    """Collapse a markdown changelog to one plain line of bounded length."""
    one_line = _WHITESPACE.sub(" ", _MARKDOWN_CHARS.sub(" ", text or "")).strip()
    if not one_line:
        return NO_CHANGELOG
    return one_line[:CHANGELOG_MAX_CHARS]


def dependency_diff(
    current: Iterable[str], latest: Iterable[str]
) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Return ``(added, removed)`` dependency refs, each in first-seen order."""
    cur = list(dict.fromkeys(str(ref) for ref in current))
    nxt = list(dict.fromkeys(str(ref) for ref in latest))
    added = tuple(ref for ref in nxt if ref not in cur)
    removed = tuple(ref for ref in cur if ref not in nxt)
    return added, removed


def is_same_artifact(record: Optional[ResolvedArtifact], artifact: Artifact) -> bool:
    """``True`` when ``artifact`` is what ``record`` already installed."""
    if not isinstance(record, ResolvedOk):
        return False
    for algorithm in HASH_PREFERENCE:
        stored = record.content_hashes.get(algorithm)
        latest = artifact.hashes.get(algorithm)
        if stored and latest:
            if stored.lower() == latest.lower():
                return True
            break
    return bool(
        record.version_label
        and record.version_label == artifact.version_label
        and record.upstream_file_name
        and record.upstream_file_name == artifact.file_name
    )


def _raise_to(current: UpdateSeverity, floor: UpdateSeverity) -> UpdateSeverity:
    return current if SEVERITY_RANK[current] >= SEVERITY_RANK[floor] else floor


def classify_update(
    record: Optional[ResolvedArtifact], artifact: Artifact
) -> Tuple[UpdateSeverity, List[str], Tuple[str, ...], Tuple[str, ...]]:
    """Classify one available update.

    Returns:
        ``(severity, reasons, dependencies_added, dependencies_removed)``
    """
    severity: UpdateSeverity = "safe"
    reasons: List[str] = []

    if not isinstance(record, ResolvedOk):
        severity = _raise_to(severity, "caution")
        reasons.append("Not currently resolved cleanly")

    current_label = record.version_label if isinstance(record, ResolvedOk) else None
    from_major = parse_major(current_label)
    to_major = parse_major(artifact.version_label)
    if from_major is not None and to_major is not None and to_major > from_major:
        severity = _raise_to(severity, "caution")
        reasons.append(f"Major version bump ({from_major} -> {to_major})")

    current_deps: Sequence[str] = record.dependency_refs if isinstance(record, ResolvedOk) else ()
    added, removed = dependency_diff(current_deps, artifact.dependency_refs)
    if added or removed:
        severity = _raise_to(severity, "caution")
        if added:
            reasons.append(f"Dependency additions: {', '.join(added)}")
        if removed:
            reasons.append(f"Dependency removals: {', '.join(removed)}")

    return severity, reasons, added, removed


def build_planned_update(
    entry_id: str, name: str, record: Optional[ResolvedArtifact], artifact: Artifact
) -> PlannedUpdate:
    severity, reasons, added, removed = classify_update(record, artifact)
    return PlannedUpdate(
        id=entry_id,
        name=name,
        severity=severity,
        from_version=record.version_label if isinstance(record, ResolvedOk) else None,
        to_version=artifact.version_label or None,
        changelog=normalize_changelog(artifact.changelog),
        dependency_added=added,
        dependency_removed=removed,
        reason=" | ".join(reasons) or "Compatible update available",
    )


def sort_updates(updates: Iterable[PlannedUpdate]) -> List[PlannedUpdate]:
    """Severity descending, then name ascending (case-insensitive)."""
    return sorted(updates, key=lambda u: (-SEVERITY_RANK[u.severity], u.name.casefold(), u.name))


def count_by_severity(updates: Iterable[PlannedUpdate]) -> Dict[UpdateSeverity, int]:
    counts: Dict[UpdateSeverity, int] = {"safe": 0, "caution": 0, "breaking": 0}
    for update in updates:
        counts[update.severity] += 1
    return counts
