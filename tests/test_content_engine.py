# === NAVMAP v1 ===
# {
#   "module": "tests.test_content_engine",
#   "purpose": "Refresh, toggle and dependency behaviour of ContentEngine",
#   "sections": [
#     {"id": "helpers", "name": "_publish", "anchor": "function-publish", "kind": "function"},
#     {"id": "refresh", "name": "refresh tests", "anchor": "refresh", "kind": "section"},
#     {"id": "toggle", "name": "toggle tests", "anchor": "toggle", "kind": "section"},
#     {"id": "deps", "name": "dependency tests", "anchor": "deps", "kind": "section"},
#     {"id": "packs", "name": "pack profile tests", "anchor": "packs", "kind": "section"}
#   ]
# }
# === /NAVMAP ===

"""ContentEngine behaviour against the in-memory provider."""

from __future__ import annotations

import json

import pytest

from LauncherKit.ContentResolution import engine as engine_module
from LauncherKit.ContentResolution.api.exceptions import ProviderError, UnknownCatalogEntry
from LauncherKit.ContentResolution.api.types import (
    CatalogEntry,
    NotFound,
    ResolvedError,
    ResolvedOk,
    ResolvedUnavailable,
)
from LauncherKit.ContentResolution.catalog import Catalog
from LauncherKit.ContentResolution.engine import MODS, PACKS, ContentEngine
from tests.conftest import INSTANCE
from tests.fixtures.launcher import jar_bytes, make_artifact, make_jar


def _publish(provider, ref, mod_id, version="1.0.0", deps=(), **kwargs):
    data = jar_bytes(mod_id, version=version, extra=f"{mod_id}-{version}".encode())
    artifact = make_artifact(mod_id, data, version=version, deps=tuple(deps), **kwargs)
    provider.publish(ref, artifact, data)
    return artifact, data


def _mods_dir(engine):
    return engine.paths.content_dir(INSTANCE, "mod")


def _names(directory):
    return sorted(p.name for p in directory.iterdir()) if directory.is_dir() else []


def _refresh(engine, **kwargs):
    return engine.refresh(INSTANCE, "1.20.1", "fabric", **kwargs)


# ----------------------------------------------------------------------------
# Refresh
# ----------------------------------------------------------------------------


def test_fresh_instance_installs_required_only(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api", "0.90.0")
    _publish(provider, "AANobbMI", "sodium", "0.5.3")

    result = _refresh(mods_engine)

    views = result.by_id()
    assert views["fabric-api"].enabled and views["fabric-api"].status == "ok"
    assert views["sodium"].status == "unavailable"
    assert views["sodium"].resolved.reason == "Disabled"
    assert _names(_mods_dir(mods_engine)) == ["fabric-api__fabric-api-0.90.0.jar"]
    assert ("AANobbMI", "1.20.1", "fabric") not in provider.resolve_calls


def test_refresh_persists_state_document(mods_engine, provider):
    artifact, _ = _publish(provider, "P7dR8mSH", "fabric-api", "0.90.0")
    _refresh(mods_engine)

    doc = json.loads(mods_engine.paths.content_state_path(INSTANCE).read_text())
    record = doc["resolved"]["fabric-api"]
    assert doc["enabled"] == {"fabric-api": True, "sodium": False, "iris": False}
    assert record["status"] == "ok"
    assert record["installedFileName"] == "fabric-api__fabric-api-0.90.0.jar"
    assert record["contentHashes"] == dict(artifact.hashes)
    assert record["resolvedAtEpochMs"] > 0


def test_upgrade_leaves_exactly_one_file(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium", "0.5.2")
    _refresh(mods_engine)
    _publish(provider, "AANobbMI", "sodium", "0.5.3")
    _refresh(mods_engine)

    sodium_files = [n for n in _names(_mods_dir(mods_engine)) if n.startswith("sodium__")]
    assert sodium_files == ["sodium__sodium-0.5.3.jar"]
    record = mods_engine.load_state(INSTANCE).resolved["sodium"]
    assert isinstance(record, ResolvedOk) and record.version_label == "0.5.3"


def test_second_refresh_uses_cache(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api")
    _refresh(mods_engine)
    downloads = list(provider.download_calls)
    installed = _mods_dir(mods_engine) / "fabric-api__fabric-api-1.0.0.jar"
    before = installed.stat().st_mtime_ns

    _refresh(mods_engine)

    assert provider.download_calls == downloads
    assert installed.stat().st_mtime_ns == before


def test_hash_mismatch_records_error_and_installs_nothing(mods_engine, provider):
    artifact = make_artifact("fabric-api", b"expected")
    provider.publish("P7dR8mSH", artifact, b"tampered")

    result = _refresh(mods_engine)

    record = result.by_id()["fabric-api"].resolved
    assert isinstance(record, ResolvedError)
    assert "mismatch" in record.error_message
    assert _names(_mods_dir(mods_engine)) == []
    assert not any(mods_engine.cache.cache_dir.glob("fabric-api-*"))


def test_not_found_removes_previous_install(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api")
    _refresh(mods_engine)
    provider.results["P7dR8mSH"] = NotFound("No compatible fabric build for game version 1.21")

    result = _refresh(mods_engine)

    record = result.by_id()["fabric-api"].resolved
    assert isinstance(record, ResolvedUnavailable)
    assert record.reason.startswith("No compatible")
    assert _names(_mods_dir(mods_engine)) == []


def test_one_failure_does_not_abort_batch(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    mods_engine.set_enabled(INSTANCE, "iris", True)
    provider.results["P7dR8mSH"] = ProviderError("HTTP 500")
    _publish(provider, "AANobbMI", "sodium")
    _publish(provider, "YL57xq9U", "iris")

    views = _refresh(mods_engine).by_id()

    assert views["fabric-api"].status == "error"
    assert views["sodium"].status == "ok"
    assert views["iris"].status == "ok"


def test_targeted_refresh_keeps_other_records(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "P7dR8mSH", "fabric-api", "1.0.0")
    _publish(provider, "AANobbMI", "sodium", "0.5.2")
    _refresh(mods_engine)
    before = mods_engine.load_state(INSTANCE).resolved["fabric-api"]

    _publish(provider, "P7dR8mSH", "fabric-api", "2.0.0")
    _publish(provider, "AANobbMI", "sodium", "0.5.3")
    _refresh(mods_engine, target_ids=["sodium"])

    state = mods_engine.load_state(INSTANCE)
    assert state.resolved["fabric-api"] == before
    assert state.resolved["sodium"].version_label == "0.5.3"
    assert "fabric-api__fabric-api-1.0.0.jar" in _names(_mods_dir(mods_engine))


def test_unknown_target_id_raises(mods_engine):
    with pytest.raises(UnknownCatalogEntry):
        _refresh(mods_engine, target_ids=["optifine"])


def test_corrupt_state_falls_back_to_defaults(mods_engine):
    path = mods_engine.paths.content_state_path(INSTANCE)
    path.parent.mkdir(parents=True)
    path.write_text("{corrupt")
    state = mods_engine.load_state(INSTANCE)
    assert state.enabled == {"fabric-api": True, "sodium": False, "iris": False}
    assert state.resolved == {}


def test_required_entries_cannot_be_disabled_on_disk(mods_engine):
    path = mods_engine.paths.content_state_path(INSTANCE)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"enabled": {"fabric-api": False, "sodium": True}}))
    state = mods_engine.load_state(INSTANCE)
    assert state.enabled["fabric-api"] is True
    assert state.enabled["sodium"] is True


def test_untrusted_ok_record_is_read_as_error(mods_engine):
    path = mods_engine.paths.content_state_path(INSTANCE)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"resolved": {"sodium": {"status": "ok"}, "iris": {"status": "weird"}}}))
    state = mods_engine.load_state(INSTANCE)
    assert isinstance(state.resolved["sodium"], ResolvedError)
    assert isinstance(state.resolved["iris"], ResolvedError)


def test_wrong_kind_catalog_is_rejected(pack_catalog, provider, paths):
    with pytest.raises(ValueError, match="mods profile"):
        ContentEngine(pack_catalog, MODS, provider, paths)


# ----------------------------------------------------------------------------
# Toggle
# ----------------------------------------------------------------------------


def test_disable_removes_file_offline(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    provider.resolve_calls.clear()
    provider.download_calls.clear()

    result = mods_engine.set_enabled(INSTANCE, "sodium", False)

    assert result.entry.enabled is False
    assert result.fast_path.action == "removed"
    assert not [n for n in _names(_mods_dir(mods_engine)) if n.startswith("sodium__")]
    assert provider.offline


def test_reenable_copies_from_cache_offline(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _, data = _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    mods_engine.set_enabled(INSTANCE, "sodium", False)
    provider.resolve_calls.clear()
    provider.download_calls.clear()

    result = mods_engine.set_enabled(INSTANCE, "sodium", True)

    assert result.fast_path.action == "copied-from-cache"
    installed = _mods_dir(mods_engine) / "sodium__sodium-1.0.0.jar"
    assert installed.read_bytes() == data
    assert provider.offline


def test_enable_renames_leftover_file_without_cache(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    for cached in mods_engine.cache.cache_dir.iterdir():
        cached.unlink()
    mods_dir = _mods_dir(mods_engine)
    (mods_dir / "sodium__sodium-1.0.0.jar").rename(mods_dir / "sodium__sodium-1.0.0.jar.disabled")

    result = mods_engine.set_enabled(INSTANCE, "sodium", True)

    assert result.fast_path.action == "renamed"
    assert "sodium__sodium-1.0.0.jar" in _names(mods_dir)
    assert "sodium__sodium-1.0.0.jar.disabled" not in _names(mods_dir)


def test_enable_defers_when_nothing_is_available(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    mods_engine.set_enabled(INSTANCE, "sodium", False)
    for cached in mods_engine.cache.cache_dir.iterdir():
        cached.unlink()

    result = mods_engine.set_enabled(INSTANCE, "sodium", True)

    assert result.fast_path.ok
    assert result.fast_path.action == "deferred"
    assert mods_engine.load_state(INSTANCE).enabled["sodium"] is True


def test_enable_before_any_resolution_is_skipped(mods_engine, provider):
    result = mods_engine.set_enabled(INSTANCE, "iris", True)
    assert result.fast_path.action == "skipped"
    assert result.entry.enabled
    assert provider.offline


def test_required_entry_stays_enabled(mods_engine):
    result = mods_engine.set_enabled(INSTANCE, "fabric-api", False)
    assert result.entry.enabled is True
    assert mods_engine.load_state(INSTANCE).enabled["fabric-api"] is True


def test_unknown_id_raises(mods_engine):
    with pytest.raises(UnknownCatalogEntry):
        mods_engine.set_enabled(INSTANCE, "optifine", True)


def test_fast_path_failure_is_reported_not_raised(mods_engine, provider, monkeypatch):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    mods_engine.set_enabled(INSTANCE, "sodium", False)

    def broken_copy(src, dst):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr("LauncherKit.ContentResolution.engine.atomic_copy", broken_copy)
    result = mods_engine.set_enabled(INSTANCE, "sodium", True)

    assert result.fast_path.ok is False
    assert "read-only" in result.fast_path.detail
    assert mods_engine.load_state(INSTANCE).enabled["sodium"] is True


def test_user_files_are_never_touched(mods_engine, provider):
    user_jar = make_jar(_mods_dir(mods_engine) / "OptiFine_HD.jar", "optifine")
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)
    mods_engine.set_enabled(INSTANCE, "sodium", False)
    _refresh(mods_engine)
    assert user_jar.exists()


# ----------------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------------


def test_dependencies_are_walked_breadth_first(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "iris", True)
    _publish(provider, "P7dR8mSH", "fabric-api")
    _publish(provider, "YL57xq9U", "iris", deps=("AANobbMI", "cloth"))
    _publish(provider, "AANobbMI", "sodium", deps=("cloth",))
    _publish(provider, "cloth", "cloth-config", deps=("YL57xq9U",))

    result = _refresh(mods_engine)

    by_ref = {d.ref: d for d in result.dependencies}
    assert [d.ref for d in result.dependencies] == ["AANobbMI", "cloth", "YL57xq9U"]
    assert by_ref["AANobbMI"].status == "installed"
    assert by_ref["AANobbMI"].file_name == "dep__sodium__sodium-1.0.0.jar"
    assert by_ref["cloth"].content_id == "cloth-config"
    assert by_ref["YL57xq9U"].status == "already-present"
    names = _names(_mods_dir(mods_engine))
    assert "dep__cloth-config__cloth-config-1.0.0.jar" in names
    assert not any(n.startswith("dep__iris__") for n in names)


def test_dependency_failures_are_recorded(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api", deps=("gone", "broken"))
    provider.results["broken"] = ProviderError("HTTP 500")

    result = _refresh(mods_engine)

    statuses = {d.ref: d.status for d in result.dependencies}
    assert statuses == {"gone": "unavailable", "broken": "error"}
    assert result.by_id()["fabric-api"].status == "ok"


def test_full_refresh_rebuilds_dependency_files(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api", deps=("cloth",))
    _publish(provider, "cloth", "cloth-config", "1.0.0")
    _refresh(mods_engine)
    _publish(provider, "cloth", "cloth-config", "2.0.0")

    _refresh(mods_engine)

    deps = [n for n in _names(_mods_dir(mods_engine)) if n.startswith("dep__")]
    assert deps == ["dep__cloth-config__cloth-config-2.0.0.jar"]


def test_targeted_refresh_keeps_existing_dependency_files(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "P7dR8mSH", "fabric-api", deps=("cloth",))
    _publish(provider, "cloth", "cloth-config")
    _publish(provider, "AANobbMI", "sodium")
    _refresh(mods_engine)

    result = _refresh(mods_engine, target_ids=["sodium"])

    assert "dep__cloth-config__cloth-config-1.0.0.jar" in _names(_mods_dir(mods_engine))
    assert result.dependencies == ()


def test_dependency_cache_is_shared_across_instances(mod_catalog, provider, paths, clock):
    engine = ContentEngine(mod_catalog, MODS, provider, paths, clock=clock)
    _publish(provider, "P7dR8mSH", "fabric-api", deps=("cloth",))
    _publish(provider, "cloth", "cloth-config")

    engine.refresh("inst-1", "1.20.1", "fabric")
    engine.refresh("inst-2", "1.20.1", "fabric")

    assert len(provider.download_calls) == 2
    assert (paths.content_dir("inst-2", "mod") / "dep__cloth-config__cloth-config-1.0.0.jar").exists()


# ----------------------------------------------------------------------------
# Packs
# ----------------------------------------------------------------------------


def test_packs_install_zip_into_kind_directories(packs_engine, provider, paths):
    packs_engine.set_enabled(INSTANCE, "faithful", True)
    packs_engine.set_enabled(INSTANCE, "complementary", True)
    for ref, name in (("faithful-32x", "faithful"), ("complementary", "complementary")):
        data = f"{name}-zip".encode()
        provider.publish(ref, make_artifact(name, data, file_name=f"{name}.zip"), data)

    result = packs_engine.refresh(INSTANCE, "1.20.1", "fabric")

    assert {v.status for v in result.entries} == {"ok"}
    assert result.dependencies == ()
    assert all(loader is None for _, _, loader in provider.resolve_calls)
    assert _names(paths.content_dir(INSTANCE, "resourcepack")) == ["faithful__faithful.zip"]
    assert _names(paths.content_dir(INSTANCE, "shaderpack")) == ["complementary__complementary.zip"]
    assert paths.pack_state_path(INSTANCE).exists()
    assert not paths.content_state_path(INSTANCE).exists()
    assert any(p.suffix == ".zip" for p in paths.pack_cache_dir().iterdir())


def test_catalog_rejects_duplicates():
    entry = CatalogEntry(id="a", display_name="A", upstream_ref="x")
    with pytest.raises(ValueError):
        Catalog([entry, entry])


@pytest.mark.parametrize("catalog_id", ["sodium_", "_sodium", "a__b", "dep", "sodium\n"])
def test_catalog_entry_rejects_ids_that_blur_the_prefix(catalog_id):
    with pytest.raises(ValueError, match="filename prefix"):
        CatalogEntry(id=catalog_id, display_name="X", upstream_ref="x")


def test_neighbouring_ids_keep_their_own_files(provider, paths):
    catalog = Catalog(
        [
            CatalogEntry(id="sodium", display_name="Sodium", upstream_ref="AANobbMI", required=True),
            CatalogEntry(id="sodium-", display_name="Sodium Extra", upstream_ref="PtjYWJkn", required=True),
        ]
    )
    engine = ContentEngine(catalog, MODS, provider, paths)
    _publish(provider, "AANobbMI", "sodium")
    _publish(provider, "PtjYWJkn", "sodium-extra")

    _refresh(engine)
    _refresh(engine, target_ids=["sodium"])

    assert _names(_mods_dir(engine)) == ["sodium-__sodium-extra-1.0.0.jar", "sodium__sodium-1.0.0.jar"]
    assert engine.load_state(INSTANCE).resolved["sodium-"].status == "ok"


def test_upgrade_of_extensionless_upstream_name_replaces_file(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "AANobbMI", "sodium", "0.5.2", file_name="sodium-0.5.2")
    _refresh(mods_engine)
    _publish(provider, "AANobbMI", "sodium", "0.5.3", file_name="sodium-0.5.3")

    _refresh(mods_engine)

    sodium_files = [n for n in _names(_mods_dir(mods_engine)) if n.startswith("sodium__")]
    assert sodium_files == ["sodium__sodium-0.5.3.jar"]


def test_cleanup_failure_is_recorded_for_that_entry_only(mods_engine, provider, monkeypatch):
    original = engine_module.remove_files_for_catalog_id

    def failing_cleanup(directory, catalog_id, extension):
        if catalog_id in {"sodium", "iris"}:
            raise PermissionError("mods directory is read-only")
        return original(directory, catalog_id, extension)

    monkeypatch.setattr(engine_module, "remove_files_for_catalog_id", failing_cleanup)
    _publish(provider, "P7dR8mSH", "fabric-api", "0.90.0")
    provider.results["YL57xq9U"] = ProviderError("boom")
    mods_engine.set_enabled(INSTANCE, "iris", True)

    views = _refresh(mods_engine).by_id()

    assert views["sodium"].status == "error"
    assert isinstance(views["sodium"].resolved, ResolvedError)
    assert "read-only" in views["sodium"].resolved.error_message
    assert views["fabric-api"].status == "ok"
    assert views["iris"].status == "error"
    assert views["iris"].resolved.error_message == "boom"
    assert mods_engine.load_state(INSTANCE).resolved["fabric-api"].status == "ok"
