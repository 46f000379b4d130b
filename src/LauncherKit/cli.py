"""Typer-based CLI for the launcher core with Pydantic v2 configuration."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from LauncherKit.CloudSync.engine import SyncEngine
from LauncherKit.CloudSync.models import CONFLICT_POLICIES
from LauncherKit.CloudSync.transport import HttpSyncTransport, env_token_provider
from LauncherKit.common.logging_utils import setup_logging
from LauncherKit.config import LauncherConfig, export_config_schema, load_config, validate_config_file
from LauncherKit.ContentResolution.api.types import ContentView
from LauncherKit.ContentResolution.engine import MODS, PACKS, ContentEngine, ContentProfile
from LauncherKit.ContentResolution.net.client import build_http_client
from LauncherKit.ContentResolution.net.retry import build_retrying
from LauncherKit.ContentResolution.paths import LauncherPaths
from LauncherKit.ContentResolution.providers.modrinth import ModrinthProvider
from LauncherKit.ContentResolution.validation import fix_duplicate_mods, validate_mods_dir

console = Console()
app = typer.Typer(help="LauncherKit content resolution and cloud sync")
mods_app = typer.Typer(help="Manage catalog mods for an instance")
packs_app = typer.Typer(help="Manage resource and shader packs for an instance")
sync_app = typer.Typer(help="Cloud sync")
config_app = typer.Typer(help="Inspect and validate configuration")
app.add_typer(mods_app, name="mods")
app.add_typer(packs_app, name="packs")
app.add_typer(sync_app, name="sync")
app.add_typer(config_app, name="config")

_STATUS_STYLE = {"ok": "green", "unavailable": "yellow", "error": "red"}
_SEVERITY_STYLE = {"safe": "green", "caution": "yellow", "breaking": "red"}


@dataclass
class CliState:
    config_path: Optional[str] = None
    verbose: bool = False


# ============================================================================
# Setup
# ============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar="LAUNCHERKIT_CONFIG",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """LauncherKit command line."""
    ctx.obj = CliState(config_path=config, verbose=verbose)


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _load(ctx: typer.Context) -> LauncherConfig:
    """Load config and configure logging for one command."""
    state = _state(ctx)
    cfg = load_config(path=state.config_path)
    log_dir = LauncherPaths.from_config(cfg.paths).log_dir() if cfg.logging.to_file else None
    setup_logging(
        level="DEBUG" if state.verbose else cfg.logging.level,
        log_dir=log_dir,
        retention_days=cfg.logging.retention_days,
        max_log_size_mb=cfg.logging.max_log_size_mb,
    )
    return cfg


def _fail(ctx: typer.Context, exc: Exception) -> None:
    console.print(f"[red]✗ Error: {exc}[/red]")
    if _state(ctx).verbose:
        logging.getLogger("LauncherKit").debug("Command failed", exc_info=exc)
    raise typer.Exit(code=1)


@contextmanager
def _content_engine(cfg: LauncherConfig, profile: ContentProfile) -> Iterator[ContentEngine]:
    client = build_http_client(cfg)
    try:
        provider = ModrinthProvider(
            client, api_base=cfg.modrinth.api_base, retrying=build_retrying(cfg.retry)
        )
        yield ContentEngine.from_config(cfg, profile, provider)
    finally:
        client.close()


@contextmanager
def _sync_engine(cfg: LauncherConfig) -> Iterator[SyncEngine]:
    client = build_http_client(cfg)
    try:
        transport = HttpSyncTransport(
            cfg.sync.base_url,
            cfg.sync.state_path,
            env_token_provider(cfg.sync.token_env),
            client,
            retrying=build_retrying(cfg.retry),
        )
        yield SyncEngine.from_config(cfg, transport)
    finally:
        client.close()


# ============================================================================
# Rendering
# ============================================================================


def _render_views(title: str, views: List[ContentView]) -> None:
    table = Table(title=title)
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Kind")
    table.add_column("Enabled")
    table.add_column("Status")
    table.add_column("Version / detail")

    for view in views:
        record = view.resolved
        if record is None:
            detail = ""
        elif record.status == "ok":
            detail = record.version_label
        elif record.status == "unavailable":
            detail = record.reason
        else:
            detail = record.error_message
        style = _STATUS_STYLE.get(view.status, "white")
        table.add_row(
            view.id,
            view.display_name + (" [dim](required)[/dim]" if view.required else ""),
            view.kind,
            "[green]Yes[/green]" if view.enabled else "[red]No[/red]",
            f"[{style}]{view.status}[/{style}]",
            detail,
        )
    console.print(table)


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


# ============================================================================
# Shared content commands
# ============================================================================


def _list(ctx: typer.Context, profile: ContentProfile, instance_id: str, as_json: bool) -> None:
    try:
        cfg = _load(ctx)
        with _content_engine(cfg, profile) as engine:
            views = engine.list_entries(instance_id)
        if as_json:
            _emit_json([view.to_json() for view in views])
        else:
            _render_views(f"{profile.name} for {instance_id}", views)
    except Exception as e:
        _fail(ctx, e)


def _toggle(ctx: typer.Context, profile: ContentProfile, instance_id: str, catalog_id: str, enabled: bool) -> None:
    try:
        cfg = _load(ctx)
        with _content_engine(cfg, profile) as engine:
            result = engine.set_enabled(instance_id, catalog_id, enabled)
        state = "enabled" if result.entry.enabled else "disabled"
        console.print(f"[green]✓ {catalog_id} {state}[/green]")
        if result.entry.enabled != enabled:
            console.print(f"[yellow]{catalog_id} is required and stays enabled[/yellow]")
        style = "cyan" if result.fast_path.ok else "yellow"
        console.print(f"[{style}]{result.fast_path.action}[/{style}] {result.fast_path.detail}")
    except Exception as e:
        _fail(ctx, e)


def _refresh(
    ctx: typer.Context,
    profile: ContentProfile,
    instance_id: str,
    game_version: str,
    loader: Optional[str],
    only: Optional[List[str]],
) -> None:
    try:
        cfg = _load(ctx)
        with _content_engine(cfg, profile) as engine:
            result = engine.refresh(instance_id, game_version, loader, target_ids=only or None)
        _render_views(f"{profile.name} for {instance_id} ({game_version})", list(result.entries))
        for dep in result.dependencies:
            style = {"installed": "green", "already-present": "cyan"}.get(dep.status, "yellow")
            console.print(f"  dependency {dep.ref}: [{style}]{dep.status}[/{style}] {dep.detail or dep.file_name or ''}")
    except Exception as e:
        _fail(ctx, e)


# ============================================================================
# Mods
# ============================================================================


@mods_app.command("list")
def mods_list(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """List catalog mods with their enabled state and last resolution."""
    _list(ctx, MODS, instance_id, as_json)


@mods_app.command("enable")
def mods_enable(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    catalog_id: str = typer.Argument(..., help="Catalog id"),
) -> None:
    """Enable a mod (applied immediately when a resolved file exists)."""
    _toggle(ctx, MODS, instance_id, catalog_id, True)


@mods_app.command("disable")
def mods_disable(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    catalog_id: str = typer.Argument(..., help="Catalog id"),
) -> None:
    """Disable a mod and remove its installed file."""
    _toggle(ctx, MODS, instance_id, catalog_id, False)


@mods_app.command("refresh")
def mods_refresh(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    game_version: str = typer.Option(..., "--game-version", "-g", help="Game version, e.g. 1.20.1"),
    loader: str = typer.Option("fabric", "--loader", help="Mod loader"),
    only: Optional[List[str]] = typer.Option(None, "--only", help="Refresh only these catalog ids"),
) -> None:
    """Resolve, download and install enabled mods plus their dependencies."""
    _refresh(ctx, MODS, instance_id, game_version, loader, only)


@mods_app.command("plan")
def mods_plan(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    game_version: str = typer.Option(..., "--game-version", "-g", help="Game version"),
    loader: str = typer.Option("fabric", "--loader", help="Mod loader"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """Show available updates without installing anything."""
    try:
        cfg = _load(ctx)
        with _content_engine(cfg, MODS) as engine:
            plan = engine.plan_update(instance_id, game_version, loader)
        if as_json:
            _emit_json(
                {
                    "checkedAt": plan.checked_at_epoch_ms,
                    "updates": [
                        {
                            "id": u.id,
                            "name": u.name,
                            "severity": u.severity,
                            "fromVersion": u.from_version,
                            "toVersion": u.to_version,
                            "changelog": u.changelog,
                            "dependencyAdded": list(u.dependency_added),
                            "dependencyRemoved": list(u.dependency_removed),
                            "reason": u.reason,
                        }
                        for u in plan.updates
                    ],
                    "blocked": [{"id": b.id, "name": b.name, "reason": b.reason} for b in plan.blocked],
                    "counts": dict(plan.counts),
                }
            )
            return

        table = Table(title=f"Updates for {instance_id} ({game_version})")
        table.add_column("Name", style="green")
        table.add_column("Severity")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Reason")
        for update in plan.updates:
            style = _SEVERITY_STYLE[update.severity]
            table.add_row(
                update.name,
                f"[{style}]{update.severity}[/{style}]",
                update.from_version or "-",
                update.to_version or "-",
                update.reason,
            )
        console.print(table)
        for item in plan.blocked:
            console.print(f"[yellow]blocked[/yellow] {item.name}: {item.reason}")
        counts = plan.counts
        console.print(
            f"\n[cyan]safe={counts['safe']} caution={counts['caution']} breaking={counts['breaking']}[/cyan]"
        )
    except Exception as e:
        _fail(ctx, e)


@mods_app.command("validate")
def mods_validate(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    game_version: str = typer.Option(..., "--game-version", "-g", help="Game version"),
) -> None:
    """Check installed jars for duplicates, missing dependencies and conflicts."""
    try:
        cfg = _load(ctx)
        mods_dir = LauncherPaths.from_config(cfg.paths).content_dir(instance_id, "mod")
        result = validate_mods_dir(mods_dir, game_version)
        if not result.issues:
            console.print("[green]✓ No issues found[/green]")
            return
        table = Table(title=f"Mod validation: {result.summary}")
        table.add_column("Severity")
        table.add_column("Code", style="cyan")
        table.add_column("Title")
        table.add_column("Files")
        for issue in result.issues:
            style = "red" if issue.severity == "critical" else "yellow"
            table.add_row(
                f"[{style}]{issue.severity}[/{style}]", issue.code, issue.title, ", ".join(issue.files)
            )
        console.print(table)
        if result.summary == "critical":
            raise typer.Exit(code=2)
    except typer.Exit:
        raise
    except Exception as e:
        _fail(ctx, e)


@mods_app.command("fix-duplicates")
def mods_fix_duplicates(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
) -> None:
    """Keep only the newest jar for every duplicated mod id."""
    try:
        cfg = _load(ctx)
        mods_dir = LauncherPaths.from_config(cfg.paths).content_dir(instance_id, "mod")
        removed = fix_duplicate_mods(mods_dir)
        if removed:
            for name in removed:
                console.print(f"[yellow]removed[/yellow] {name}")
        else:
            console.print("[green]✓ No duplicates[/green]")
    except Exception as e:
        _fail(ctx, e)


# ============================================================================
# Packs
# ============================================================================


@packs_app.command("list")
def packs_list(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """List catalog packs with their enabled state and last resolution."""
    _list(ctx, PACKS, instance_id, as_json)


@packs_app.command("enable")
def packs_enable(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    catalog_id: str = typer.Argument(..., help="Catalog id"),
) -> None:
    """Enable a pack."""
    _toggle(ctx, PACKS, instance_id, catalog_id, True)


@packs_app.command("disable")
def packs_disable(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    catalog_id: str = typer.Argument(..., help="Catalog id"),
) -> None:
    """Disable a pack and remove its installed file."""
    _toggle(ctx, PACKS, instance_id, catalog_id, False)


@packs_app.command("refresh")
def packs_refresh(
    ctx: typer.Context,
    instance_id: str = typer.Argument(..., help="Instance id"),
    game_version: str = typer.Option(..., "--game-version", "-g", help="Game version"),
    only: Optional[List[str]] = typer.Option(None, "--only", help="Refresh only these catalog ids"),
) -> None:
    """Resolve, download and install enabled packs."""
    _refresh(ctx, PACKS, instance_id, game_version, None, only)


# ============================================================================
# Sync
# ============================================================================


@sync_app.command("now")
def sync_now(
    ctx: typer.Context,
    settings_file: Optional[Path] = typer.Option(
        None, "--settings", "-s", help="JSON file with the current launcher settings"
    ),
    policy: Optional[str] = typer.Option(
        None, "--policy", help=f"Conflict policy: {', '.join(CONFLICT_POLICIES)}"
    ),
    resolve: bool = typer.Option(
        False, "--resolve", help="Force --policy prefer-local/prefer-cloud to settle a conflict"
    ),
) -> None:
    """Run one sync attempt against the launcher account service."""
    try:
        if policy is not None and policy not in CONFLICT_POLICIES:
            raise typer.BadParameter(f"unknown policy {policy!r}", param_hint="--policy")
        cfg = _load(ctx)
        settings: Dict[str, Any] = {}
        if settings_file is not None:
            loaded = json.loads(settings_file.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError(f"{settings_file} must contain a JSON object")
            settings = loaded
        with _sync_engine(cfg) as engine:
            result = engine.sync_now(settings, policy=policy, resolve_conflict=resolve)  # type: ignore[arg-type]

        style = {"error": "red", "conflict": "yellow"}.get(result.status, "green")
        console.print(
            Panel(
                f"[bold {style}]{result.status}[/bold {style}]\n{result.message}\n"
                f"Remote revision: {result.last_remote_revision}",
                title="Cloud sync",
            )
        )
        if result.conflict is not None:
            _emit_json(result.conflict.to_json())
        if result.settings_patch:
            _emit_json({"settingsPatch": result.settings_patch})
        if not result.ok:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as e:
        _fail(ctx, e)


@sync_app.command("status")
def sync_status(ctx: typer.Context) -> None:
    """Show the outcome of the last sync attempt."""
    try:
        cfg = _load(ctx)
        with _sync_engine(cfg) as engine:
            meta = engine.get_state()
        _emit_json(meta.to_json())
    except Exception as e:
        _fail(ctx, e)


# ============================================================================
# Config
# ============================================================================


@config_app.command("print")
def config_print(
    ctx: typer.Context,
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective config."""
    try:
        cfg = load_config(path=_state(ctx).config_path)
        data = cfg.model_dump(mode="json")
        if raw:
            _emit_json(data)
        else:
            console.print(
                Panel(
                    json.dumps(data, indent=2),
                    title=f"LauncherKit Config ({cfg.config_hash()[:8]})",
                    expand=False,
                )
            )
    except Exception as e:
        _fail(ctx, e)


@config_app.command("validate")
def config_validate(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to config file"),
) -> None:
    """Validate a config file."""
    try:
        validate_config_file(path)
        console.print("[green]✓ Config valid[/green]")
    except Exception as e:
        console.print(f"[red]✗ Invalid: {e}[/red]")
        raise typer.Exit(code=1)


@config_app.command("schema")
def config_schema(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export JSON Schema for LauncherConfig."""
    try:
        schema_data = export_config_schema(str(output) if output else None)
        if output:
            console.print(f"[green]✓ Schema written to {output}[/green]")
        else:
            _emit_json(schema_data)
    except Exception as e:
        _fail(ctx, e)


if __name__ == "__main__":  # pragma: no cover
    app()
