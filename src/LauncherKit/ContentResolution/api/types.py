"""
Canonical API Types for the Content Resolution Engine

Provides frozen dataclasses as contracts between the catalog, provider
clients, the engine and its callers.

Data Flow:
  CatalogEntry + (game version, loader) → provider.resolve_latest()
  → Found(Artifact) | NotFound
  Found → ContentCache.fetch() → installed file → ResolvedOk
  NotFound → ResolvedUnavailable;  failure → ResolvedError
  ContentState{enabled, resolved} persisted per instance
  ContentView = CatalogEntry × enabled × status (public view)

Design Principles:
  - Frozen dataclasses prevent accidental mutation
  - Provider results and resolution records are tagged unions, not
    optional-field structs with a string discriminant
  - Persisted JSON keeps the flat camelCase document shape so other
    consumers of ``content-state.json`` keep working
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Literal, Mapping, Optional, Tuple, Union

# ============================================================================
# STABLE TOKEN VOCABULARIES (Public Contract)
# ============================================================================

#: Kind of installable content
ContentKind = Literal["mod", "resourcepack", "shaderpack"]

#: Outcome of resolving one catalog entry
ResolutionStatus = Literal["ok", "unavailable", "error"]

#: Update advisory severity
UpdateSeverity = Literal["safe", "caution", "breaking"]

#: Outcome of one dependency walk step
DependencyStatus = Literal["installed", "already-present", "unavailable", "error"]

#: Hash algorithms in the order they are preferred as cache keys
HASH_PREFERENCE: Tuple[str, ...] = ("sha1", "sha256", "sha512")

_CATALOG_ID = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9.-])?$")


# ============================================================================
# CATALOG AND PROVIDER PAYLOADS
# ============================================================================


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """
    One declared, installable content item.

    ``id`` is stable forever: it keys the persisted enabled/resolved maps and
    prefixes installed filenames, so renaming it orphans existing installs.
    """

    id: str
    display_name: str
    upstream_ref: str
    required: bool = False
    kind: ContentKind = "mod"

    def __post_init__(self) -> None:
        if not _CATALOG_ID.fullmatch(self.id or "") or "__" in self.id or self.id == "dep":
            raise ValueError(f"CatalogEntry.id is not a valid filename prefix: {self.id!r}")
        if not self.upstream_ref or not self.upstream_ref.strip():
            raise ValueError("CatalogEntry.upstream_ref cannot be empty")


@dataclass(frozen=True, slots=True)
class Artifact:
    """Concrete downloadable file chosen by a provider."""

    version_label: str
    file_name: str
    url: str
    hashes: Mapping[str, str] = field(default_factory=dict)
    dependency_refs: Tuple[str, ...] = ()
    changelog: Optional[str] = None
    published_at: Optional[str] = None

    @property
    def hash_algorithm(self) -> Optional[str]:
        """Preferred algorithm among the published hashes."""
        for algorithm in HASH_PREFERENCE:
            if self.hashes.get(algorithm):
                return algorithm
        return None

    @property
    def content_hash(self) -> Optional[str]:
        """Preferred published hash, used as the cache key."""
        algorithm = self.hash_algorithm
        return self.hashes[algorithm] if algorithm else None


@dataclass(frozen=True, slots=True)
class Found:
    """Provider located a compatible artifact."""

    artifact: Artifact
    found: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class NotFound:
    """Provider has no artifact for the requested game version/loader."""

    reason: str = "No compatible artifact"
    found: ClassVar[bool] = False


ProviderResult = Union[Found, NotFound]


# ============================================================================
# RESOLUTION RECORDS
# ============================================================================


@dataclass(frozen=True, slots=True)
class _ResolvedBase:
    catalog_id: str
    game_version: str
    loader_kind: Optional[str]
    resolved_at_epoch_ms: int

    def _common_json(self, status: str, enabled: bool) -> Dict[str, Any]:
        return {
            "catalogId": self.catalog_id,
            "enabled": enabled,
            "status": status,
            "gameVersion": self.game_version,
            "loaderKind": self.loader_kind,
            "resolvedAtEpochMs": self.resolved_at_epoch_ms,
        }


@dataclass(frozen=True, slots=True)
class ResolvedOk(_ResolvedBase):
    """Successful resolution; ``installed_file_name`` exists in the content dir."""

    version_label: str
    upstream_file_name: str
    installed_file_name: str
    download_url: str
    content_hashes: Mapping[str, str] = field(default_factory=dict)
    dependency_refs: Tuple[str, ...] = ()

    status: ClassVar[ResolutionStatus] = "ok"

    @property
    def cache_hash(self) -> Optional[str]:
        for algorithm in HASH_PREFERENCE:
            if self.content_hashes.get(algorithm):
                return self.content_hashes[algorithm]
        return None

    def to_json(self) -> Dict[str, Any]:
        payload = self._common_json(self.status, True)
        payload.update(
            {
                "upstreamVersionLabel": self.version_label,
                "upstreamFileName": self.upstream_file_name,
                "installedFileName": self.installed_file_name,
                "downloadUrl": self.download_url,
                "contentHashes": dict(self.content_hashes),
                "dependencyRefs": list(self.dependency_refs),
            }
        )
        return payload


@dataclass(frozen=True, slots=True)
class ResolvedUnavailable(_ResolvedBase):
    """Entry disabled, or no compatible upstream artifact."""

    reason: str = "No compatible artifact"

    status: ClassVar[ResolutionStatus] = "unavailable"

    def to_json(self) -> Dict[str, Any]:
        payload = self._common_json(self.status, False)
        payload["reason"] = self.reason
        payload["dependencyRefs"] = []
        return payload


@dataclass(frozen=True, slots=True)
class ResolvedError(_ResolvedBase):
    """Resolution failed (transport, parse or integrity error)."""

    error_message: str = "Unknown error"

    status: ClassVar[ResolutionStatus] = "error"

    def to_json(self) -> Dict[str, Any]:
        payload = self._common_json(self.status, False)
        payload["errorMessage"] = self.error_message
        payload["dependencyRefs"] = []
        return payload


ResolvedArtifact = Union[ResolvedOk, ResolvedUnavailable, ResolvedError]


def _int_or(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def resolved_from_json(catalog_id: str, data: Mapping[str, Any]) -> ResolvedArtifact:
    """Parse a persisted resolution record.

    Records with an unknown status, or ``ok`` records missing the installed
    filename, are read back as :class:`ResolvedError` so they are re-resolved
    on the next refresh instead of being trusted.
    """
    common = {
        "catalog_id": str(data.get("catalogId") or catalog_id),
        "game_version": str(data.get("gameVersion") or ""),
        "loader_kind": data.get("loaderKind"),
        "resolved_at_epoch_ms": _int_or(data.get("resolvedAtEpochMs"), 0),
    }
    status = data.get("status")
    if status == "ok" and data.get("installedFileName"):
        hashes = data.get("contentHashes") or {}
        deps = data.get("dependencyRefs") or []
        return ResolvedOk(
            **common,
            version_label=str(data.get("upstreamVersionLabel") or ""),
            upstream_file_name=str(data.get("upstreamFileName") or ""),
            installed_file_name=str(data["installedFileName"]),
            download_url=str(data.get("downloadUrl") or ""),
            content_hashes={str(k): str(v) for k, v in dict(hashes).items() if v},
            dependency_refs=tuple(str(d) for d in deps),
        )
    if status == "unavailable":
        return ResolvedUnavailable(**common, reason=str(data.get("reason") or "No compatible artifact"))
    message = data.get("errorMessage") or f"Unrecognised resolution record (status={status!r})"
    return ResolvedError(**common, error_message=str(message))


# ============================================================================
# PER-INSTANCE STATE AND VIEWS
# ============================================================================


@dataclass(slots=True)
class ContentState:
    """Persisted per-instance state: requested enablement + last resolutions."""

    enabled: Dict[str, bool] = field(default_factory=dict)
    resolved: Dict[str, ResolvedArtifact] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            "enabled": dict(self.enabled),
            "resolved": {key: record.to_json() for key, record in self.resolved.items()},
        }

    @classmethod
    def from_json(cls, data: Any) -> "ContentState":
        if not isinstance(data, Mapping):
            return cls()
        enabled_raw = data.get("enabled")
        resolved_raw = data.get("resolved")
        enabled = (
            {str(k): bool(v) for k, v in enabled_raw.items()}
            if isinstance(enabled_raw, Mapping)
            else {}
        )
        resolved: Dict[str, ResolvedArtifact] = {}
        if isinstance(resolved_raw, Mapping):
            for key, value in resolved_raw.items():
                if isinstance(value, Mapping):
                    resolved[str(key)] = resolved_from_json(str(key), value)
        return cls(enabled=enabled, resolved=resolved)


@dataclass(frozen=True, slots=True)
class ContentView:
    """Public view of one catalog entry for one instance."""

    id: str
    display_name: str
    kind: ContentKind
    required: bool
    enabled: bool
    status: ResolutionStatus
    resolved: Optional[ResolvedArtifact] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "kind": self.kind,
            "required": self.required,
            "enabled": self.enabled,
            "status": self.status,
            "resolved": self.resolved.to_json() if self.resolved is not None else None,
        }


@dataclass(frozen=True, slots=True)
class AdvisoryOutcome:
    """Result of a best-effort step; ``ok=False`` is a soft failure."""

    ok: bool
    action: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class ToggleResult:
    """Result of ``set_enabled``: the new view plus the fast-path outcome."""

    entry: ContentView
    fast_path: AdvisoryOutcome


@dataclass(frozen=True, slots=True)
class DependencyOutcome:
    """One step of the breadth-first dependency walk."""

    ref: str
    status: DependencyStatus
    content_id: Optional[str] = None
    file_name: Optional[str] = None
    detail: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RefreshResult:
    """Result of a refresh pass."""

    entries: Tuple[ContentView, ...]
    dependencies: Tuple[DependencyOutcome, ...] = ()

    def by_id(self) -> Dict[str, ContentView]:
        return {view.id: view for view in self.entries}


# ============================================================================
# UPDATE ADVISORY
# ============================================================================


@dataclass(frozen=True, slots=True)
class PlannedUpdate:
    """An available update for one enabled entry."""

    id: str
    name: str
    severity: UpdateSeverity
    from_version: Optional[str]
    to_version: Optional[str]
    changelog: str
    dependency_added: Tuple[str, ...] = ()
    dependency_removed: Tuple[str, ...] = ()
    reason: str = "Compatible update available"


@dataclass(frozen=True, slots=True)
class BlockedUpdate:
    """An enabled entry whose latest-lookup failed."""

    id: str
    name: str
    reason: str


@dataclass(frozen=True, slots=True)
class UpdatePlan:
    """Update advisory for one instance; never mutates stored state."""

    checked_at_epoch_ms: int
    updates: Tuple[PlannedUpdate, ...]
    blocked: Tuple[BlockedUpdate, ...]
    counts: Mapping[UpdateSeverity, int]
