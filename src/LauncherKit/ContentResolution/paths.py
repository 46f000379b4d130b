"""Directory layout of launcher data and instances.

Instances live under ``instances_root/<instance id>/``; everything app-scoped
(caches, the instance database, sync metadata, logs) lives under
``data_root``::

    data_root/
      modcache/          content-addressed mod cache (shared)
      packcache/         content-addressed pack cache (shared)
      instances.json
      sync-state.json
      logs/
    instances_root/<id>/
      mods/ resourcepacks/ shaderpacks/
      content-state.json
      packs-state.json
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from LauncherKit.config.models import PathsConfig

from .api.types import ContentKind

CONTENT_STATE_FILE = "content-state.json"
PACK_STATE_FILE = "packs-state.json"

_KIND_FOLDERS = {
    "mod": "mods",
    "resourcepack": "resourcepacks",
    "shaderpack": "shaderpacks",
}

_INSTANCE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class LauncherPaths:
    """Resolve on-disk locations for one launcher installation."""

    data_root: Path
    instances_root: Path
    mod_cache_name: str = "modcache"
    pack_cache_name: str = "packcache"
    instance_db_name: str = "instances.json"
    sync_state_name: str = "sync-state.json"
    log_dir_name: str = "logs"

    @classmethod
    def from_config(cls, cfg: PathsConfig) -> "LauncherPaths":
        return cls(
            data_root=Path(cfg.data_root).expanduser(),
            instances_root=Path(cfg.instances_root).expanduser(),
            mod_cache_name=cfg.mod_cache_dir,
            pack_cache_name=cfg.pack_cache_dir,
            instance_db_name=cfg.instance_db_file,
            sync_state_name=cfg.sync_state_file,
            log_dir_name=cfg.log_dir,
        )

    def instance_dir(self, instance_id: str) -> Path:
        if not _INSTANCE_ID.match(instance_id or ""):
            raise ValueError(f"Invalid instance id: {instance_id!r}")
        return self.instances_root / instance_id

    def content_dir(self, instance_id: str, kind: ContentKind) -> Path:
        return self.instance_dir(instance_id) / _KIND_FOLDERS[kind]

    def content_state_path(self, instance_id: str) -> Path:
        return self.instance_dir(instance_id) / CONTENT_STATE_FILE

    def pack_state_path(self, instance_id: str) -> Path:
        return self.instance_dir(instance_id) / PACK_STATE_FILE

    def mod_cache_dir(self) -> Path:
        return self.data_root / self.mod_cache_name

    def pack_cache_dir(self) -> Path:
        return self.data_root / self.pack_cache_name

    def instance_db_path(self) -> Path:
        return self.data_root / self.instance_db_name

    def sync_state_path(self) -> Path:
        return self.data_root / self.sync_state_name

    def log_dir(self) -> Path:
        return self.data_root / self.log_dir_name
