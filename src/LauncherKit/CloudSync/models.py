"""
Cloud Sync Data Models

SyncSnapshot     point-in-time capture of synchronised local state
RemoteState      what the sync service returns for GET and PUT
SyncMeta         persisted outcome of the most recent attempt (``sync-state.json``)
SyncResult       value returned by ``SyncEngine.sync_now``

Snapshots are never persisted; only their hash ends up in ``SyncMeta``.
Payloads received from the service are normalised tolerantly: missing or
mistyped members fall back to empty values instead of failing the attempt.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional

from LauncherKit.ContentResolution.api.types import ContentState
from LauncherKit.config.models import ConflictPolicy

from .errors import SyncPayloadError
from .settings import SETTINGS_TIMESTAMP_KEY


SyncStatus = Literal["idle", "up-to-date", "pushed", "pulled", "conflict", "error"]

CONFLICT_POLICIES = ("ask", "newer-wins", "prefer-local", "prefer-cloud")
_META_STATUSES = ("idle", "up-to-date", "pushed", "pulled", "conflict", "error")


def number_or(value: Any, fallback: Optional[int]) -> Optional[int]:
    """Coerce ``value`` to an int, or return ``fallback`` when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return int(number)


def normalize_content_state(raw: Any) -> Dict[str, Any]:
    """Canonical JSON form of a per-instance content/pack state document."""
    return ContentState.from_json(raw).to_json()


def _state_map(raw: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): normalize_content_state(value) for key, value in raw.items()}


@dataclass(frozen=True)
class SyncSnapshot:
    """Synchronised slice of local state."""

    settings: Dict[str, Any] = field(default_factory=dict)
    active_instance_id: Optional[str] = None
    instances: List[Dict[str, Any]] = field(default_factory=list)
    content_state_by_instance: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pack_state_by_instance: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    settings_updated_at: int = 0
    instances_updated_at: int = 0
    captured_at_epoch_ms: int = 0

    @property
    def edge(self) -> int:
        """Most recent modification time on this side."""
        return max(self.settings_updated_at or 0, self.instances_updated_at or 0)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "settings": dict(self.settings),
            "activeInstanceId": self.active_instance_id,
            "instances": [dict(inst) for inst in self.instances],
            "contentStateByInstance": dict(self.content_state_by_instance),
            "packStateByInstance": dict(self.pack_state_by_instance),
            "settingsUpdatedAt": self.settings_updated_at,
            "instancesUpdatedAt": self.instances_updated_at,
            "capturedAt": self.captured_at_epoch_ms,
        }

    @classmethod
    def from_payload(cls, raw: Any) -> "SyncSnapshot":
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise SyncPayloadError(f"Sync payload must be an object, got {type(raw).__name__}")
        settings = raw.get("settings")
        instances = raw.get("instances")
        active = raw.get("activeInstanceId")
        content = raw.get("contentStateByInstance", raw.get("modsStateByInstance"))
        packs = raw.get("packStateByInstance", raw.get("packsStateByInstance"))
        return cls(
            settings=dict(settings) if isinstance(settings, Mapping) else {},
            active_instance_id=None if active is None else str(active),
            instances=[dict(inst) for inst in instances if isinstance(inst, Mapping) and inst.get("id")]
            if isinstance(instances, list)
            else [],
            content_state_by_instance=_state_map(content),
            pack_state_by_instance=_state_map(packs),
            settings_updated_at=number_or(raw.get("settingsUpdatedAt"), 0) or 0,
            instances_updated_at=number_or(raw.get("instancesUpdatedAt"), 0) or 0,
            captured_at_epoch_ms=number_or(raw.get("capturedAt"), 0) or 0,
        )

    def content_hash(self) -> str:
        """SHA-256 over the synchronised content.

        Capture time and modification timestamps are left out so that two
        captures of unchanged state hash equal.
        """
        settings = {k: v for k, v in self.settings.items() if k != SETTINGS_TIMESTAMP_KEY}
        canonical = {
            "settings": settings,
            "activeInstanceId": self.active_instance_id,
            "instances": self.instances,
            "contentStateByInstance": self.content_state_by_instance,
            "packStateByInstance": self.pack_state_by_instance,
        }
        encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RemoteState:
    """Remote document: monotonically increasing revision plus snapshot."""

    revision: int
    updated_at: int
    payload: SyncSnapshot

    @classmethod
    def from_response(cls, raw: Any, *, default_updated_at: int = 0) -> "RemoteState":
        if not isinstance(raw, Mapping):
            raise SyncPayloadError(f"Sync response must be an object, got {type(raw).__name__}")
        return cls(
            revision=number_or(raw.get("revision"), 0) or 0,
            updated_at=number_or(raw.get("updatedAt"), default_updated_at) or 0,
            payload=SyncSnapshot.from_payload(raw.get("payload")),
        )


@dataclass(frozen=True)
class SyncMeta:
    """Persisted outcome of the most recent sync attempt."""

    last_synced_at_epoch_ms: Optional[int] = None
    last_status: SyncStatus = "idle"
    last_error: Optional[str] = None
    last_remote_revision: Optional[int] = None
    last_snapshot_hash: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "lastSyncedAtEpochMs": self.last_synced_at_epoch_ms,
            "lastStatus": self.last_status,
            "lastError": self.last_error,
            "lastRemoteRevision": self.last_remote_revision,
            "lastSnapshotHash": self.last_snapshot_hash,
        }

    @classmethod
    def from_json(cls, raw: Any) -> "SyncMeta":
        if not isinstance(raw, Mapping):
            return cls()
        status = raw.get("lastStatus")
        synced_at = raw.get("lastSyncedAtEpochMs", raw.get("lastSyncedAt"))
        return cls(
            last_synced_at_epoch_ms=number_or(synced_at, None),
            last_status=status if status in _META_STATUSES else "idle",
            last_error=str(raw["lastError"]) if raw.get("lastError") else None,
            last_remote_revision=number_or(raw.get("lastRemoteRevision"), None),
            last_snapshot_hash=str(raw["lastSnapshotHash"]) if raw.get("lastSnapshotHash") else None,
        )


@dataclass(frozen=True)
class ConflictDetails:
    """Both sides' timestamps, for a manual choice."""

    local_settings_updated_at: int
    local_instances_updated_at: int
    remote_settings_updated_at: int
    remote_instances_updated_at: int

    def to_json(self) -> Dict[str, int]:
        return {
            "localSettingsUpdatedAt": self.local_settings_updated_at,
            "localInstancesUpdatedAt": self.local_instances_updated_at,
            "remoteSettingsUpdatedAt": self.remote_settings_updated_at,
            "remoteInstancesUpdatedAt": self.remote_instances_updated_at,
        }


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    status: Literal["up-to-date", "pushed", "pulled", "conflict", "error"]
    message: str
    last_synced_at: Optional[int] = None
    last_remote_revision: Optional[int] = None
    settings_patch: Optional[Dict[str, Any]] = None
    conflict: Optional[ConflictDetails] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "message": self.message,
            "lastSyncedAt": self.last_synced_at,
            "lastRemoteRevision": self.last_remote_revision,
            "settingsPatch": self.settings_patch,
            "conflict": self.conflict.to_json() if self.conflict else None,
        }
