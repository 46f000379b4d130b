# === NAVMAP v1 ===
# {
#   "module": "LauncherKit.CloudSync.engine",
#   "purpose": "Reconcile local launcher state with the remote sync document",
#   "sections": [
#     {"id": "policy", "name": "choose_side", "anchor": "function-choose-side", "kind": "function"},
#     {"id": "engine", "name": "SyncEngine", "anchor": "class-syncengine", "kind": "class"},
#     {"id": "capture", "name": "capture_snapshot", "anchor": "function-capture-snapshot", "kind": "function"},
#     {"id": "apply", "name": "_apply_remote", "anchor": "function-apply-remote", "kind": "function"},
#     {"id": "sync", "name": "sync_now", "anchor": "function-sync-now", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
State Reconciliation Engine

One ``sync_now`` call runs to a terminal outcome::

    capture local snapshot -> fetch remote -> compare hashes
      equal                                  -> up-to-date (no push, no pull)
      explicit resolution (prefer-local/-cloud with resolve_conflict)
                                             -> push / pull as requested
      remote changed, local unchanged        -> pull
      remote unchanged, local changed        -> push
      otherwise                              -> conflict policy

"Changed" is measured against ``SyncMeta``: the remote revision against
``last_remote_revision`` and the local snapshot hash against
``last_snapshot_hash``. Any failure is recorded in ``SyncMeta`` and returned as
an ``error`` result. Work already done before the failure is not rolled back.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Literal, Mapping, Optional

from LauncherKit.common.io_utils import atomic_write_json, read_json_file
from LauncherKit.ContentResolution.paths import LauncherPaths
from LauncherKit.config.models import LauncherConfig

from .instances import (
    InstanceDatabase,
    InstanceRepository,
    JsonInstanceRepository,
    local_only_instances,
    pick_synced_instances,
)
from .models import (
    CONFLICT_POLICIES,
    ConflictDetails,
    ConflictPolicy,
    RemoteState,
    SyncMeta,
    SyncResult,
    SyncSnapshot,
    normalize_content_state,
    number_or,
)
from .settings import DEFAULT_SYNCED_SETTINGS, SETTINGS_TIMESTAMP_KEY, sanitize_settings
from .transport import SyncTransport

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

CONFLICT_MESSAGE = "Sync conflict detected. Choose local or cloud state."


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _mtime_ms(path: Path) -> int:
    try:
        return int(path.stat().st_mtime * 1000)
    except OSError:
        return 0


def choose_side(
    policy: ConflictPolicy, local: SyncSnapshot, remote: SyncSnapshot
) -> Literal["local", "remote", "conflict"]:
    """Apply a conflict policy; ``newer-wins`` ties favour local."""
    if policy == "prefer-local":
        return "local"
    if policy == "prefer-cloud":
        return "remote"
    if policy == "newer-wins":
        return "local" if local.edge >= remote.edge else "remote"
    return "conflict"


class SyncEngine:
    """Push/pull/conflict decisions for one launcher installation."""

    def __init__(
        self,
        paths: LauncherPaths,
        instances: InstanceRepository,
        transport: SyncTransport,
        *,
        synced_settings: Iterable[str] = DEFAULT_SYNCED_SETTINGS,
        default_policy: ConflictPolicy = "ask",
        clock: Optional[Clock] = None,
    ) -> None:
        self.paths = paths
        self.instances = instances
        self.transport = transport
        self.synced_settings = tuple(synced_settings)
        self.default_policy = default_policy
        self._clock: Clock = clock or _epoch_ms

    @classmethod
    def from_config(
        cls,
        config: LauncherConfig,
        transport: SyncTransport,
        *,
        clock: Optional[Clock] = None,
    ) -> "SyncEngine":
        paths = LauncherPaths.from_config(config.paths)
        return cls(
            paths,
            JsonInstanceRepository(paths.instance_db_path()),
            transport,
            synced_settings=config.sync.synced_settings,
            default_policy=config.sync.conflict_policy,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def get_state(self) -> SyncMeta:
        return SyncMeta.from_json(read_json_file(self.paths.sync_state_path(), default=dict))

    def _write_state(self, meta: SyncMeta) -> None:
        atomic_write_json(self.paths.sync_state_path(), meta.to_json())

    # ------------------------------------------------------------------
    # Snapshot capture and application
    # ------------------------------------------------------------------
    def capture_snapshot(self, settings: Optional[Mapping[str, Any]]) -> SyncSnapshot:
        """Capture allow-listed settings, synced instances and their content state."""
        db = self.instances.load()
        synced = pick_synced_instances(db.instances)
        content: Dict[str, Dict[str, Any]] = {}
        packs: Dict[str, Dict[str, Any]] = {}

        instances_updated_at = db.updated_at
        for inst in synced:
            instance_id = str(inst["id"])
            content_path = self.paths.content_state_path(instance_id)
            pack_path = self.paths.pack_state_path(instance_id)
            instances_updated_at = max(instances_updated_at, _mtime_ms(content_path), _mtime_ms(pack_path))
            content[instance_id] = normalize_content_state(read_json_file(content_path, default=dict))
            packs[instance_id] = normalize_content_state(read_json_file(pack_path, default=dict))

        allowed = sanitize_settings(settings, self.synced_settings)
        return SyncSnapshot(
            settings=allowed,
            active_instance_id=db.active_instance_id,
            instances=synced,
            content_state_by_instance=content,
            pack_state_by_instance=packs,
            settings_updated_at=number_or(allowed.get(SETTINGS_TIMESTAMP_KEY), 0) or 0,
            instances_updated_at=instances_updated_at,
            captured_at_epoch_ms=self._clock(),
        )

    def _apply_remote(self, snapshot: SyncSnapshot) -> Dict[str, Any]:
        """Merge the remote snapshot into local state; return the settings patch."""
        local_db = self.instances.load()
        local_unsynced = local_only_instances(local_db.instances)
        cloud_instances = pick_synced_instances(snapshot.instances)
        merged = local_unsynced + cloud_instances

        merged_ids = {str(inst.get("id")) for inst in merged}
        unsynced_ids = {str(inst.get("id")) for inst in local_unsynced}
        if snapshot.active_instance_id is not None and snapshot.active_instance_id in merged_ids:
            active = snapshot.active_instance_id
        elif local_db.active_instance_id is not None and local_db.active_instance_id in unsynced_ids:
            active = local_db.active_instance_id
        else:
            active = str(merged[0]["id"]) if merged else None

        self.instances.replace_from_sync(
            InstanceDatabase(
                active_instance_id=active,
                instances=merged,
                updated_at=snapshot.instances_updated_at or self._clock(),
            )
        )

        for inst in cloud_instances:
            instance_id = str(inst["id"])
            if instance_id in snapshot.content_state_by_instance:
                atomic_write_json(
                    self.paths.content_state_path(instance_id),
                    snapshot.content_state_by_instance[instance_id],
                )
            if instance_id in snapshot.pack_state_by_instance:
                atomic_write_json(
                    self.paths.pack_state_path(instance_id),
                    snapshot.pack_state_by_instance[instance_id],
                )

        return sanitize_settings(snapshot.settings, self.synced_settings)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------
    def _pull(self, meta: SyncMeta, remote: RemoteState, remote_hash: str, message: str) -> SyncResult:
        patch = self._apply_remote(remote.payload)
        next_meta = dataclasses.replace(
            meta,
            last_synced_at_epoch_ms=self._clock(),
            last_status="pulled",
            last_error=None,
            last_remote_revision=remote.revision,
            last_snapshot_hash=remote_hash,
        )
        self._write_state(next_meta)
        logger.info("Pulled cloud state revision=%s", remote.revision, extra={"stage": "sync"})
        return SyncResult(
            ok=True,
            status="pulled",
            message=message,
            last_synced_at=next_meta.last_synced_at_epoch_ms,
            last_remote_revision=next_meta.last_remote_revision,
            settings_patch=patch,
        )

    def _push(
        self,
        meta: SyncMeta,
        local: SyncSnapshot,
        local_hash: str,
        base_revision: Optional[int],
        message: str,
    ) -> SyncResult:
        pushed = self.transport.push(local, base_revision)
        next_meta = dataclasses.replace(
            meta,
            last_synced_at_epoch_ms=self._clock(),
            last_status="pushed",
            last_error=None,
            last_remote_revision=pushed.revision,
            last_snapshot_hash=local_hash,
        )
        self._write_state(next_meta)
        logger.info(
            "Pushed local state base_revision=%s new_revision=%s",
            base_revision,
            pushed.revision,
            extra={"stage": "sync"},
        )
        return SyncResult(
            ok=True,
            status="pushed",
            message=message,
            last_synced_at=next_meta.last_synced_at_epoch_ms,
            last_remote_revision=next_meta.last_remote_revision,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def sync_now(
        self,
        settings: Optional[Mapping[str, Any]],
        policy: Optional[ConflictPolicy] = None,
        resolve_conflict: bool = False,
    ) -> SyncResult:
        """Run one sync attempt to completion.

        Args:
            settings: The caller's current settings blob; only allow-listed
                keys are read.
            policy: Conflict policy for this attempt (defaults to the
                engine's configured policy).
            resolve_conflict: With ``prefer-local``/``prefer-cloud``, force
                that side regardless of change detection.

        Returns:
            The attempt's outcome. Failures are returned with
            ``status="error"``, never raised.

        Raises:
            ValueError: ``policy`` is not a known conflict policy.
        """
        chosen_policy = policy or self.default_policy
        if chosen_policy not in CONFLICT_POLICIES:
            raise ValueError(f"Unknown conflict policy: {chosen_policy!r}")

        meta = self.get_state()
        try:
            local = self.capture_snapshot(settings)
            local_hash = local.content_hash()
            remote = self.transport.fetch()
            remote_hash = remote.payload.content_hash()

            if local_hash == remote_hash:
                next_meta = dataclasses.replace(
                    meta,
                    last_synced_at_epoch_ms=self._clock(),
                    last_status="up-to-date",
                    last_error=None,
                    last_remote_revision=remote.revision,
                    last_snapshot_hash=local_hash,
                )
                self._write_state(next_meta)
                return SyncResult(
                    ok=True,
                    status="up-to-date",
                    message="Cloud sync is up to date.",
                    last_synced_at=next_meta.last_synced_at_epoch_ms,
                    last_remote_revision=next_meta.last_remote_revision,
                )

            remote_changed = (
                meta.last_remote_revision is not None and remote.revision != meta.last_remote_revision
            )
            local_changed = meta.last_snapshot_hash is None or meta.last_snapshot_hash != local_hash

            if resolve_conflict and chosen_policy == "prefer-cloud":
                return self._pull(meta, remote, remote_hash, "Conflict resolved using cloud state.")
            if resolve_conflict and chosen_policy == "prefer-local":
                return self._push(meta, local, local_hash, remote.revision, "Conflict resolved using local state.")

            if remote_changed and not local_changed:
                return self._pull(meta, remote, remote_hash, "Pulled latest cloud state.")
            if not remote_changed and local_changed:
                return self._push(meta, local, local_hash, remote.revision, "Pushed local state to cloud.")

            side = choose_side(chosen_policy, local, remote.payload)
            if side == "local":
                return self._push(meta, local, local_hash, remote.revision, "Conflict resolved using local state.")
            if side == "remote":
                return self._pull(meta, remote, remote_hash, "Conflict resolved using cloud state.")

            self._write_state(
                dataclasses.replace(
                    meta,
                    last_status="conflict",
                    last_error=CONFLICT_MESSAGE,
                    last_remote_revision=remote.revision,
                )
            )
            logger.warning(
                "Sync conflict: local edge=%s remote edge=%s", local.edge, remote.payload.edge, extra={"stage": "sync"}
            )
            return SyncResult(
                ok=False,
                status="conflict",
                message="Sync conflict detected.",
                last_synced_at=meta.last_synced_at_epoch_ms,
                last_remote_revision=remote.revision,
                conflict=ConflictDetails(
                    local_settings_updated_at=local.settings_updated_at,
                    local_instances_updated_at=local.instances_updated_at,
                    remote_settings_updated_at=remote.payload.settings_updated_at,
                    remote_instances_updated_at=remote.payload.instances_updated_at,
                ),
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Cloud sync failed: %s", message, exc_info=True, extra={"stage": "sync"})
            next_meta = dataclasses.replace(meta, last_status="error", last_error=message)
            self._write_state(next_meta)
            return SyncResult(
                ok=False,
                status="error",
                message=message,
                last_synced_at=next_meta.last_synced_at_epoch_ms,
                last_remote_revision=next_meta.last_remote_revision,
            )
