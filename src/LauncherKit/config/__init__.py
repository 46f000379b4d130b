"""
LauncherKit Configuration Package

Public API for loading, validating, and introspecting launcher configuration.

Example:
    from LauncherKit.config import load_config

    config = load_config(
        path="launcherkit.yaml",
        cli_overrides={"sync": {"conflict_policy": "newer-wins"}},
    )
"""

from .loader import export_config_schema, load_config, validate_config_file
from .models import (
    CatalogConfig,
    CatalogEntryConfig,
    ConflictPolicy,
    DownloadPolicy,
    HttpClientConfig,
    LauncherConfig,
    LoggingConfig,
    ModrinthConfig,
    PathsConfig,
    RetryPolicy,
    SyncConfig,
)

__all__ = [
    # Models
    "LauncherConfig",
    "CatalogConfig",
    "CatalogEntryConfig",
    "ConflictPolicy",
    "DownloadPolicy",
    "HttpClientConfig",
    "LoggingConfig",
    "ModrinthConfig",
    "PathsConfig",
    "RetryPolicy",
    "SyncConfig",
    # Loading/validation
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
