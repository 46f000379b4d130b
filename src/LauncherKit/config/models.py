"""
Pydantic v2 Configuration Models for LauncherKit

Provides strict, typed configuration for the launcher core:
- HTTP client settings (timeouts, TLS, user agent)
- Retry policy for provider and sync calls
- Filesystem layout (data root, instances root, cache and state file names)
- Modrinth provider endpoint
- Download integrity policy
- Cloud sync endpoint, conflict policy and settings allow-list
- Logging
- The mod and pack catalogs
- Top-level LauncherConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

import re
from typing import ClassVar, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_CATALOG_ID = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9.-])?$")

# ============================================================================
# Shared Policy Models
# ============================================================================


class HttpClientConfig(BaseModel):
    """Configuration for HTTP client behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(
        default="LauncherKit/0.3.0 (+https://github.com/launcherkit)",
        description="User-Agent string sent to providers and the sync service",
    )
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v


class RetryPolicy(BaseModel):
    """Configuration for HTTP request retry behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    max_attempts: int = Field(default=4, description="Maximum attempts per request")
    max_delay_s: float = Field(default=30.0, description="Overall retry deadline in seconds")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("max_delay_s")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("max_delay_s must be >= 0")
        return v


class PathsConfig(BaseModel):
    """Filesystem layout of launcher data."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    data_root: str = Field(
        default="~/.launcherkit/data",
        description="App-scoped data directory (caches, sync state, logs)",
    )
    instances_root: str = Field(
        default="~/.launcherkit/instances",
        description="Directory holding one subdirectory per instance",
    )
    mod_cache_dir: str = Field(default="modcache", description="Mod cache, relative to data_root")
    pack_cache_dir: str = Field(default="packcache", description="Pack cache, relative to data_root")
    instance_db_file: str = Field(
        default="instances.json", description="Instance database, relative to data_root"
    )
    sync_state_file: str = Field(
        default="sync-state.json", description="Sync metadata, relative to data_root"
    )
    log_dir: str = Field(default="logs", description="Log directory, relative to data_root")


class ModrinthConfig(BaseModel):
    """Modrinth provider endpoint."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    api_base: str = Field(default="https://api.modrinth.com/v2", description="API base URL")

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base must be an http(s) URL")
        return v.rstrip("/")


class DownloadPolicy(BaseModel):
    """Configuration for download integrity."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    require_hash: bool = Field(
        default=False,
        description="Refuse artifacts for which the provider publishes no hash",
    )


ConflictPolicy = Literal["ask", "newer-wins", "prefer-local", "prefer-cloud"]


class SyncConfig(BaseModel):
    """Cloud sync endpoint and reconciliation policy."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_url: str = Field(
        default="https://account.launcherkit.invalid",
        description="Launcher account service base URL",
    )
    state_path: str = Field(default="/v1/sync/state", description="Sync state endpoint path")
    token_env: str = Field(
        default="LAUNCHERKIT_ACCOUNT_TOKEN",
        description="Environment variable holding the account bearer token",
    )
    conflict_policy: ConflictPolicy = Field(
        default="ask", description="Policy applied when both sides changed"
    )
    synced_settings: List[str] = Field(
        default_factory=lambda: [
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
            "settingsUpdatedAt",
            "cloudSyncEnabled",
            "cloudSyncAuto",
            "cloudSyncConflictPolicy",
        ],
        description="Settings keys that may be captured, transmitted and applied",
    )

    @field_validator("state_path")
    @classmethod
    def validate_state_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    retention_days: int = Field(default=30, ge=1, description="Compress logs older than this")
    max_log_size_mb: int = Field(default=20, ge=1, description="Rotate files past this size")
    to_file: bool = Field(default=True, description="Write JSONL logs under paths.log_dir")


# ============================================================================
# Catalog
# ============================================================================


class CatalogEntryConfig(BaseModel):
    """One installable item of the mod or pack catalog."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Stable internal id, used as filename prefix")
    name: str = Field(..., description="Display name")
    project_id: str = Field(..., description="Upstream (Modrinth) project id")
    required: bool = Field(default=False, description="Always enabled")
    kind: Literal["mod", "resourcepack", "shaderpack"] = Field(default="mod")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not _CATALOG_ID.fullmatch(v) or "__" in v or v == "dep":
            raise ValueError(
                "catalog ids must be [A-Za-z0-9._-], start alphanumeric, not end with '_', "
                "not contain '__' and not be the reserved id 'dep'"
            )
        return v


def _default_mods() -> List[CatalogEntryConfig]:
    return [
        CatalogEntryConfig(id="fabric-api", name="Fabric API", project_id="P7dR8mSH", required=True),
        CatalogEntryConfig(id="sodium", name="Sodium", project_id="AANobbMI"),
        CatalogEntryConfig(id="lithium", name="Lithium", project_id="gvQqBUqZ"),
        CatalogEntryConfig(id="mod-menu", name="Mod Menu", project_id="mOgUt4GM"),
        CatalogEntryConfig(id="iris", name="Iris Shaders", project_id="YL57xq9U"),
        CatalogEntryConfig(
            id="emf", name="Entity Model Features", project_id="4I1XuqiY", required=True
        ),
        CatalogEntryConfig(
            id="etf", name="Entity Texture Features", project_id="BVzZfTc1", required=True
        ),
    ]


def _default_packs() -> List[CatalogEntryConfig]:
    return [
        CatalogEntryConfig(
            id="fresh-animations",
            name="Fresh Animations",
            project_id="50dA9Sha",
            kind="resourcepack",
        ),
        CatalogEntryConfig(
            id="complementary",
            name="Complementary Reimagined",
            project_id="HVnmMxH1",
            kind="shaderpack",
        ),
    ]


class CatalogConfig(BaseModel):
    """Declared mod and pack catalogs."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    mods: List[CatalogEntryConfig] = Field(default_factory=_default_mods)
    packs: List[CatalogEntryConfig] = Field(default_factory=_default_packs)

    @model_validator(mode="after")
    def validate_catalogs(self) -> "CatalogConfig":
        for label, entries in (("mods", self.mods), ("packs", self.packs)):
            seen: set[str] = set()
            for entry in entries:
                if entry.id in seen:
                    raise ValueError(f"Duplicate catalog id in {label}: {entry.id}")
                seen.add(entry.id)
        if any(entry.kind != "mod" for entry in self.mods):
            raise ValueError("catalog.mods may only contain kind='mod' entries")
        if any(entry.kind == "mod" for entry in self.packs):
            raise ValueError("catalog.packs may only contain resourcepack/shaderpack entries")
        return self


# ============================================================================
# Top-Level Configuration
# ============================================================================


class LauncherConfig(BaseModel):
    """
    Single source of truth for launcher core configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    http: HttpClientConfig = Field(default_factory=HttpClientConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    modrinth: ModrinthConfig = Field(default_factory=ModrinthConfig)
    download: DownloadPolicy = Field(default_factory=DownloadPolicy)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        import hashlib
        import json

        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
