# === NAVMAP v1 ===
# {
#   "module": "LauncherKit.ContentResolution.engine",
#   "purpose": "Reconcile a declared catalog against per-instance content state and the filesystem",
#   "sections": [
#     {"id": "profiles", "name": "ContentProfile", "anchor": "class-contentprofile", "kind": "class"},
#     {"id": "engine", "name": "ContentEngine", "anchor": "class-contentengine", "kind": "class"},
#     {"id": "state", "name": "load_state / save_state", "anchor": "function-load-state", "kind": "function"},
#     {"id": "toggle", "name": "set_enabled", "anchor": "function-set-enabled", "kind": "function"},
#     {"id": "refresh", "name": "refresh", "anchor": "function-refresh", "kind": "function"},
#     {"id": "deps", "name": "_walk_dependencies", "anchor": "function-walk-dependencies", "kind": "function"},
#     {"id": "plan", "name": "plan_update", "anchor": "function-plan-update", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Content Resolution Engine

Resolves each enabled catalog entry to the newest compatible upstream
artifact, stores it in the shared content-addressed cache after hash
verification, and materialises it into the instance under a deterministic
name. Mods additionally get a breadth-first walk of their required
dependencies.

Guarantees (per instance, per call):
- At most one installed file is attributable to each catalog id
- Nothing that failed hash verification is ever installed
- Required entries are enabled in every persisted state
- One entry's failure never aborts the rest of the batch

Calls are synchronous and sequential. There is no locking: callers
serialise operations on the same instance themselves.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from LauncherKit.common.io_utils import (
    atomic_copy,
    atomic_write_json,
    compute_file_digest,
    read_json_file,
)
from LauncherKit.config.models import LauncherConfig

from .api.types import (
    AdvisoryOutcome,
    Artifact,
    BlockedUpdate,
    CatalogEntry,
    ContentState,
    ContentView,
    DependencyOutcome,
    PlannedUpdate,
    RefreshResult,
    ResolvedArtifact,
    ResolvedError,
    ResolvedOk,
    ResolvedUnavailable,
    ToggleResult,
    UpdatePlan,
)
from .cache import ContentCache, dependency_owner
from .catalog import Catalog
from .fs_layout import (
    dependency_file_name,
    files_for_catalog_id,
    installed_file_name,
    remove_auto_dependency_files,
    remove_files_for_catalog_id,
    upstream_name_from_installed,
)
from .jar_meta import collect_installed_mod_ids, read_mod_id
from .paths import LauncherPaths
from .planning import build_planned_update, count_by_severity, is_same_artifact, sort_updates
from .providers.base import ContentProvider

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ContentProfile:
    """What differs between the mod and pack flavours of the engine."""

    name: str
    extension: str
    uses_loader: bool
    walks_dependencies: bool
    kinds: frozenset

    def state_path(self, paths: LauncherPaths, instance_id: str) -> Path:
        if self.name == "mods":
            return paths.content_state_path(instance_id)
        return paths.pack_state_path(instance_id)

    def cache_dir(self, paths: LauncherPaths) -> Path:
        if self.name == "mods":
            return paths.mod_cache_dir()
        return paths.pack_cache_dir()


MODS = ContentProfile(
    name="mods",
    extension=".jar",
    uses_loader=True,
    walks_dependencies=True,
    kinds=frozenset({"mod"}),
)
PACKS = ContentProfile(
    name="packs",
    extension=".zip",
    uses_loader=False,
    walks_dependencies=False,
    kinds=frozenset({"resourcepack", "shaderpack"}),
)


class ContentEngine:
    """Per-instance catalog reconciliation for one :class:`ContentProfile`."""

    def __init__(
        self,
        catalog: Catalog,
        profile: ContentProfile,
        provider: ContentProvider,
        paths: LauncherPaths,
        *,
        require_hash: bool = False,
        clock: Optional[Clock] = None,
    ) -> None:
        wrong_kind = [entry.id for entry in catalog if entry.kind not in profile.kinds]
        if wrong_kind:
            raise ValueError(f"Catalog entries {wrong_kind} do not belong to the {profile.name} profile")
        self.catalog = catalog
        self.profile = profile
        self.provider = provider
        self.paths = paths
        self.cache = ContentCache(
            profile.cache_dir(paths), extension=profile.extension, require_hash=require_hash
        )
        self._clock: Clock = clock or _epoch_ms

    @classmethod
    def from_config(
        cls,
        config: LauncherConfig,
        profile: ContentProfile,
        provider: ContentProvider,
        *,
        clock: Optional[Clock] = None,
    ) -> "ContentEngine":
        entries = config.catalog.mods if profile is MODS else config.catalog.packs
        return cls(
            Catalog.from_config(entries),
            profile,
            provider,
            LauncherPaths.from_config(config.paths),
            require_hash=config.download.require_hash,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------
    def content_dir(self, instance_id: str, entry: CatalogEntry) -> Path:
        return self.paths.content_dir(instance_id, entry.kind)

    def _log_extra(self, instance_id: str, catalog_id: Optional[str], stage: str) -> Dict[str, object]:
        return {"instance_id": instance_id, "catalog_id": catalog_id, "stage": stage}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def _enforce_required(self, state: ContentState) -> None:
        for entry in self.catalog:
            if entry.required:
                state.enabled[entry.id] = True
            else:
                state.enabled.setdefault(entry.id, False)

    def load_state(self, instance_id: str) -> ContentState:
        """Read the persisted state; missing or unreadable files yield the default."""
        raw = read_json_file(self.profile.state_path(self.paths, instance_id), default=dict)
        state = ContentState.from_json(raw)
        self._enforce_required(state)
        return state

    def save_state(self, instance_id: str, state: ContentState) -> None:
        self._enforce_required(state)
        atomic_write_json(self.profile.state_path(self.paths, instance_id), state.to_json())

    def _view(self, entry: CatalogEntry, state: ContentState) -> ContentView:
        record = state.resolved.get(entry.id)
        return ContentView(
            id=entry.id,
            display_name=entry.display_name,
            kind=entry.kind,
            required=entry.required,
            enabled=entry.required or bool(state.enabled.get(entry.id, False)),
            status=record.status if record is not None else "unavailable",
            resolved=record,
        )

    def list_entries(self, instance_id: str) -> List[ContentView]:
        state = self.load_state(instance_id)
        return [self._view(entry, state) for entry in self.catalog]

    # ------------------------------------------------------------------
    # Toggle
    # ------------------------------------------------------------------
    def set_enabled(self, instance_id: str, catalog_id: str, enabled: bool) -> ToggleResult:
        """Persist the requested enablement and apply it to the filesystem.

        The filesystem step never touches the network: disabling removes the
        installed file; enabling copies the file back from the cache, or
        renames an existing attributable file, or does nothing (the next
        refresh installs it). Its outcome is reported, never raised.

        Raises:
            UnknownCatalogEntry: ``catalog_id`` is not in the catalog.
        """
        entry = self.catalog.get(catalog_id)
        if entry.required:
            enabled = True

        state = self.load_state(instance_id)
        state.enabled[entry.id] = enabled
        self.save_state(instance_id, state)

        try:
            outcome = self._apply_toggle(instance_id, entry, state.resolved.get(entry.id), enabled)
        except OSError as exc:
            logger.warning(
                "Immediate %s of %s failed: %s",
                "enable" if enabled else "disable",
                entry.id,
                exc,
                extra=self._log_extra(instance_id, entry.id, "toggle"),
            )
            outcome = AdvisoryOutcome(ok=False, action="failed", detail=str(exc))
        return ToggleResult(entry=self._view(entry, state), fast_path=outcome)

    def _apply_toggle(
        self,
        instance_id: str,
        entry: CatalogEntry,
        record: Optional[ResolvedArtifact],
        enabled: bool,
    ) -> AdvisoryOutcome:
        if not isinstance(record, ResolvedOk):
            return AdvisoryOutcome(ok=True, action="skipped", detail="No successful resolution yet")

        directory = self.content_dir(instance_id, entry)
        extension = self.profile.extension
        if not enabled:
            removed = remove_files_for_catalog_id(directory, entry.id, extension)
            return AdvisoryOutcome(ok=True, action="removed", detail=", ".join(removed))

        upstream = record.upstream_file_name or upstream_name_from_installed(
            entry.id, record.installed_file_name
        )
        if not upstream:
            return AdvisoryOutcome(ok=True, action="skipped", detail="Installed filename unknown")

        target = directory / installed_file_name(entry.id, upstream, True, extension)
        existing = files_for_catalog_id(directory, entry.id, extension)

        cached = self.cache.lookup(entry.id, record.cache_hash)
        if cached is not None:
            for path in existing:
                if path != target:
                    path.unlink(missing_ok=True)
            directory.mkdir(parents=True, exist_ok=True)
            atomic_copy(cached, target)
            return AdvisoryOutcome(ok=True, action="copied-from-cache", detail=target.name)

        if target in existing:
            for path in existing:
                if path != target:
                    path.unlink(missing_ok=True)
            return AdvisoryOutcome(ok=True, action="already-installed", detail=target.name)

        if existing:
            source, *others = existing
            source.rename(target)
            for path in others:
                path.unlink(missing_ok=True)
            return AdvisoryOutcome(ok=True, action="renamed", detail=f"{source.name} -> {target.name}")

        return AdvisoryOutcome(
            ok=True, action="deferred", detail="No cached or installed file; next refresh installs it"
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    def refresh(
        self,
        instance_id: str,
        game_version: str,
        loader_kind: Optional[str],
        target_ids: Optional[Iterable[str]] = None,
    ) -> RefreshResult:
        """Re-resolve the catalog (or ``target_ids``) and reconcile installed files.

        Entries outside ``target_ids`` keep their previous record and files.
        Auto-installed dependency files are wiped and rebuilt only on a full
        refresh.

        Raises:
            UnknownCatalogEntry: ``target_ids`` names an id not in the catalog.
        """
        target_set: Optional[Set[str]] = None
        if target_ids:
            target_set = {str(catalog_id) for catalog_id in target_ids}
            for catalog_id in sorted(target_set):
                self.catalog.get(catalog_id)

        loader = loader_kind if self.profile.uses_loader else None
        state = self.load_state(instance_id)
        resolved: Dict[str, ResolvedArtifact] = {}
        dependency_queue: Deque[str] = deque()

        for entry in self.catalog:
            if target_set is not None and entry.id not in target_set:
                previous = state.resolved.get(entry.id)
                if previous is not None:
                    resolved[entry.id] = previous
                continue

            directory = self.content_dir(instance_id, entry)
            if not (entry.required or state.enabled.get(entry.id, False)):
                try:
                    remove_files_for_catalog_id(directory, entry.id, self.profile.extension)
                except OSError as exc:
                    logger.warning(
                        "Removing files of disabled %s failed: %s",
                        entry.id,
                        exc,
                        extra=self._log_extra(instance_id, entry.id, "refresh"),
                    )
                    resolved[entry.id] = ResolvedError(
                        catalog_id=entry.id,
                        game_version=game_version,
                        loader_kind=loader,
                        resolved_at_epoch_ms=self._clock(),
                        error_message=str(exc) or type(exc).__name__,
                    )
                    continue
                resolved[entry.id] = ResolvedUnavailable(
                    catalog_id=entry.id,
                    game_version=game_version,
                    loader_kind=loader,
                    resolved_at_epoch_ms=self._clock(),
                    reason="Disabled",
                )
                continue

            record = self._resolve_entry(instance_id, entry, directory, game_version, loader)
            resolved[entry.id] = record
            if isinstance(record, ResolvedOk):
                dependency_queue.extend(record.dependency_refs)

        dependencies: List[DependencyOutcome] = []
        if self.profile.walks_dependencies:
            mods_dir = self.paths.content_dir(instance_id, "mod")
            if target_set is None:
                remove_auto_dependency_files(mods_dir, self.profile.extension)
            dependencies = self._walk_dependencies(
                instance_id, mods_dir, dependency_queue, game_version, loader
            )

        state.resolved = resolved
        self.save_state(instance_id, state)

        counts: Dict[str, int] = {}
        for record in resolved.values():
            counts[record.status] = counts.get(record.status, 0) + 1
        logger.info(
            "Refreshed %s for %s: %s",
            self.profile.name,
            instance_id,
            counts,
            extra=self._log_extra(instance_id, None, "refresh"),
        )
        return RefreshResult(
            entries=tuple(self._view(entry, state) for entry in self.catalog),
            dependencies=tuple(dependencies),
        )

    def _resolve_entry(
        self,
        instance_id: str,
        entry: CatalogEntry,
        directory: Path,
        game_version: str,
        loader: Optional[str],
    ) -> ResolvedArtifact:
        try:
            result = self.provider.resolve_latest(entry.upstream_ref, game_version, loader)
            if not result.found:
                remove_files_for_catalog_id(directory, entry.id, self.profile.extension)
                return ResolvedUnavailable(
                    catalog_id=entry.id,
                    game_version=game_version,
                    loader_kind=loader,
                    resolved_at_epoch_ms=self._clock(),
                    reason=result.reason,
                )
            artifact = result.artifact
            cached = self.cache.fetch(entry.id, artifact, self.provider)
            target = self._install(directory, entry.id, cached, artifact)
        except Exception as exc:  # recorded as ResolvedError
            logger.warning(
                "Resolution of %s failed: %s",
                entry.id,
                exc,
                extra=self._log_extra(instance_id, entry.id, "resolve"),
            )
            try:
                remove_files_for_catalog_id(directory, entry.id, self.profile.extension)
            except OSError as cleanup_exc:
                logger.warning(
                    "Removing stale files of %s failed: %s",
                    entry.id,
                    cleanup_exc,
                    extra=self._log_extra(instance_id, entry.id, "resolve"),
                )
            return ResolvedError(
                catalog_id=entry.id,
                game_version=game_version,
                loader_kind=loader,
                resolved_at_epoch_ms=self._clock(),
                error_message=str(exc) or type(exc).__name__,
            )

        return ResolvedOk(
            catalog_id=entry.id,
            game_version=game_version,
            loader_kind=loader,
            resolved_at_epoch_ms=self._clock(),
            version_label=artifact.version_label,
            upstream_file_name=artifact.file_name,
            installed_file_name=target.name,
            download_url=artifact.url,
            content_hashes=dict(artifact.hashes),
            dependency_refs=tuple(artifact.dependency_refs),
        )

    def _install(self, directory: Path, catalog_id: str, cached: Path, artifact: Artifact) -> Path:
        """Place ``cached`` as the single installed file for ``catalog_id``."""
        target = directory / installed_file_name(
            catalog_id, artifact.file_name, True, self.profile.extension
        )
        for path in files_for_catalog_id(directory, catalog_id, self.profile.extension):
            if path != target:
                path.unlink(missing_ok=True)

        algorithm = artifact.hash_algorithm
        if algorithm and target.is_file():
            if compute_file_digest(target, algorithm) == artifact.content_hash.lower():
                return target

        directory.mkdir(parents=True, exist_ok=True)
        atomic_copy(cached, target)
        return target

    def _walk_dependencies(
        self,
        instance_id: str,
        mods_dir: Path,
        queue: Deque[str],
        game_version: str,
        loader: Optional[str],
    ) -> List[DependencyOutcome]:
        """Breadth-first install of required dependencies.

        Every ref is visited at most once per call. A dependency whose mod id
        is already provided by an installed jar is not installed again.
        """
        installed_ids = collect_installed_mod_ids(mods_dir)
        visited: Set[str] = set()
        outcomes: List[DependencyOutcome] = []

        while queue:
            ref = str(queue.popleft() or "").strip()
            if not ref or ref in visited:
                continue
            visited.add(ref)

            try:
                result = self.provider.resolve_latest(ref, game_version, loader)
                if not result.found:
                    outcomes.append(DependencyOutcome(ref=ref, status="unavailable", detail=result.reason))
                    continue
                artifact = result.artifact
                cached = self.cache.fetch(dependency_owner(ref), artifact, self.provider)
                content_id = read_mod_id(cached) or ref
                if content_id in installed_ids:
                    outcomes.append(
                        DependencyOutcome(ref=ref, status="already-present", content_id=content_id)
                    )
                else:
                    file_name = dependency_file_name(
                        content_id, artifact.file_name, self.profile.extension
                    )
                    mods_dir.mkdir(parents=True, exist_ok=True)
                    atomic_copy(cached, mods_dir / file_name)
                    installed_ids.add(content_id)
                    outcomes.append(
                        DependencyOutcome(
                            ref=ref, status="installed", content_id=content_id, file_name=file_name
                        )
                    )
                queue.extend(dep for dep in artifact.dependency_refs if dep not in visited)
            except Exception as exc:  # dependency metadata is often incomplete
                logger.warning(
                    "Dependency %s could not be installed: %s",
                    ref,
                    exc,
                    extra=self._log_extra(instance_id, None, "dependencies"),
                )
                outcomes.append(DependencyOutcome(ref=ref, status="error", detail=str(exc)))

        return outcomes

    # ------------------------------------------------------------------
    # Update advisory
    # ------------------------------------------------------------------
    def plan_update(self, instance_id: str, game_version: str, loader_kind: Optional[str]) -> UpdatePlan:
        """Report available updates for enabled entries without changing anything."""
        loader = loader_kind if self.profile.uses_loader else None
        state = self.load_state(instance_id)
        updates: List[PlannedUpdate] = []
        blocked: List[BlockedUpdate] = []

        for entry in self.catalog:
            if not (entry.required or state.enabled.get(entry.id, False)):
                continue
            record = state.resolved.get(entry.id)
            try:
                result = self.provider.resolve_latest(entry.upstream_ref, game_version, loader)
            except Exception as exc:
                logger.warning(
                    "Update check for %s failed: %s",
                    entry.id,
                    exc,
                    extra=self._log_extra(instance_id, entry.id, "plan"),
                )
                blocked.append(BlockedUpdate(id=entry.id, name=entry.display_name, reason=str(exc)))
                continue
            if not result.found:
                blocked.append(
                    BlockedUpdate(id=entry.id, name=entry.display_name, reason=result.reason)
                )
                continue
            if is_same_artifact(record, result.artifact):
                continue
            updates.append(build_planned_update(entry.id, entry.display_name, record, result.artifact))

        ordered = sort_updates(updates)
        return UpdatePlan(
            checked_at_epoch_ms=self._clock(),
            updates=tuple(ordered),
            blocked=tuple(blocked),
            counts=count_by_severity(ordered),
        )
