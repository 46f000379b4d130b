"""Instance database as seen by cloud sync.

The surrounding application owns instance lifecycle; sync only reads the
database to build snapshots and replaces it wholesale after a pull.
Instance records are kept as plain JSON objects so fields this package does
not know about survive a round trip.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from LauncherKit.common.io_utils import atomic_write_json, read_json_file

from .models import number_or

logger = logging.getLogger(__name__)

SYNC_ENABLED_KEY = "syncEnabled"


@dataclass(frozen=True)
class InstanceDatabase:
    active_instance_id: Optional[str] = None
    instances: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: int = 0

    def ids(self) -> List[str]:
        return [str(inst.get("id")) for inst in self.instances if inst.get("id") is not None]

    def to_json(self) -> Dict[str, Any]:
        return {
            "activeInstanceId": self.active_instance_id,
            "instances": [dict(inst) for inst in self.instances],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_json(cls, raw: Any) -> "InstanceDatabase":
        if not isinstance(raw, Mapping):
            return cls()
        instances = raw.get("instances")
        active = raw.get("activeInstanceId")
        return cls(
            active_instance_id=None if active is None else str(active),
            instances=[dict(inst) for inst in instances if isinstance(inst, Mapping) and inst.get("id")]
            if isinstance(instances, list)
            else [],
            updated_at=number_or(raw.get("updatedAt"), 0) or 0,
        )


class InstanceRepository(Protocol):
    """Storage of the instance database."""

    def load(self) -> InstanceDatabase:
        ...

    def replace_from_sync(self, db: InstanceDatabase) -> None:
        ...


class JsonInstanceRepository:
    """``instances.json`` backed repository."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> InstanceDatabase:
        return InstanceDatabase.from_json(read_json_file(self.path, default=dict))

    def replace_from_sync(self, db: InstanceDatabase) -> None:
        atomic_write_json(self.path, db.to_json())
        logger.info("Instance database replaced from sync (%d instances)", len(db.instances))


def pick_synced_instances(instances: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Drop instances opted out of sync and stamp ``syncEnabled=True`` on the rest."""
    return [
        {**inst, SYNC_ENABLED_KEY: True}
        for inst in instances
        if inst.get(SYNC_ENABLED_KEY) is not False
    ]


def local_only_instances(instances: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Instances explicitly marked "do not sync"."""
    return [dict(inst) for inst in instances if inst.get(SYNC_ENABLED_KEY) is False]
