"""Public types and exceptions of the Content Resolution Engine."""

from .exceptions import IntegrityError, ProviderError, UnknownCatalogEntry
from .types import (
    HASH_PREFERENCE,
    AdvisoryOutcome,
    Artifact,
    BlockedUpdate,
    CatalogEntry,
    ContentKind,
    ContentState,
    ContentView,
    DependencyOutcome,
    Found,
    NotFound,
    PlannedUpdate,
    ProviderResult,
    RefreshResult,
    ResolutionStatus,
    ResolvedArtifact,
    ResolvedError,
    ResolvedOk,
    ResolvedUnavailable,
    ToggleResult,
    UpdatePlan,
    UpdateSeverity,
    resolved_from_json,
)

__all__ = [
    "HASH_PREFERENCE",
    "AdvisoryOutcome",
    "Artifact",
    "BlockedUpdate",
    "CatalogEntry",
    "ContentKind",
    "ContentState",
    "ContentView",
    "DependencyOutcome",
    "Found",
    "NotFound",
    "PlannedUpdate",
    "ProviderResult",
    "RefreshResult",
    "ResolutionStatus",
    "ResolvedArtifact",
    "ResolvedError",
    "ResolvedOk",
    "ResolvedUnavailable",
    "ToggleResult",
    "UpdatePlan",
    "UpdateSeverity",
    "resolved_from_json",
    "IntegrityError",
    "ProviderError",
    "UnknownCatalogEntry",
]
