"""Allow-list of launcher settings that take part in cloud sync.

Only keys listed here are ever captured, transmitted or applied; anything
else in the caller's settings blob (account ids, paths, tokens) stays local.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple

SETTINGS_TIMESTAMP_KEY = "settingsUpdatedAt"

DEFAULT_SYNCED_SETTINGS: Tuple[str, ...] = (
    "theme",
    "blur",
    "accentColor",
    "surfaceAlpha",
    "cornerRadius",
    "borderThickness",
    "pixelFont",
    "updateChannel",
    "showSnapshots",
    "autoUpdateMods",
    "defaultMemoryMb",
    "jvmArgs",
    SETTINGS_TIMESTAMP_KEY,
    "cloudSyncEnabled",
    "cloudSyncAuto",
    "cloudSyncConflictPolicy",
)


def sanitize_settings(
    settings: Optional[Mapping[str, Any]],
    allowed: Iterable[str] = DEFAULT_SYNCED_SETTINGS,
) -> dict[str, Any]:
    """Return only the allow-listed keys of ``settings``, in allow-list order."""
    if not isinstance(settings, Mapping):
        return {}
    return {key: settings[key] for key in allowed if key in settings}
