"""Update advisory: classification helpers and ContentEngine.plan_update."""

from __future__ import annotations

import pytest

from LauncherKit.ContentResolution.api.exceptions import ProviderError
from LauncherKit.ContentResolution.api.types import NotFound, PlannedUpdate, ResolvedError, ResolvedOk
from LauncherKit.ContentResolution.planning import (
    CHANGELOG_MAX_CHARS,
    NO_CHANGELOG,
    classify_update,
    dependency_diff,
    is_same_artifact,
    normalize_changelog,
    parse_major,
    sort_updates,
)
from tests.conftest import INSTANCE
from tests.fixtures.launcher import jar_bytes, make_artifact


def _record(version="1.0.0", hashes=None, deps=(), file_name=None):
    return ResolvedOk(
        catalog_id="sodium",
        game_version="1.20.1",
        loader_kind="fabric",
        resolved_at_epoch_ms=1,
        version_label=version,
        upstream_file_name=file_name or f"sodium-{version}.jar",
        installed_file_name=f"sodium__sodium-{version}.jar",
        download_url="https://cdn/x",
        content_hashes=hashes if hashes is not None else {"sha1": "a" * 40},
        dependency_refs=tuple(deps),
    )


@pytest.mark.parametrize(
    "label, expected",
    [("mc1.20.1-0.5.3", 1), ("0.5.3", 0), ("v12-beta", 12), ("beta", None), (None, None)],
)
def test_parse_major(label, expected):
    assert parse_major(label) == expected


def test_normalize_changelog():
    assert normalize_changelog("## Fixes\n\n* Fixed `crash` [#12](url)") == "Fixes Fixed crash 12 url"
    assert normalize_changelog("") == NO_CHANGELOG
    assert normalize_changelog("***") == NO_CHANGELOG
    assert len(normalize_changelog("word " * 200)) == CHANGELOG_MAX_CHARS


def test_dependency_diff_keeps_order():
    assert dependency_diff(["a", "b", "c"], ["c", "d", "a", "e"]) == (("d", "e"), ("b",))


def test_same_artifact_by_hash_or_label():
    artifact = make_artifact("sodium", b"x", version="1.0.0", hashes={"sha1": "A" * 40})
    assert is_same_artifact(_record(), artifact)

    relabelled = make_artifact("sodium", b"x", version="1.0.0", hashes={"sha1": "c" * 40})
    assert is_same_artifact(_record(), relabelled)

    newer = make_artifact("sodium", b"x", version="1.0.1", hashes={"sha1": "c" * 40})
    assert not is_same_artifact(_record(), newer)
    assert not is_same_artifact(None, newer)
    assert not is_same_artifact(
        ResolvedError(catalog_id="sodium", game_version="", loader_kind=None, resolved_at_epoch_ms=0), newer
    )


def test_classify_safe_patch():
    severity, reasons, added, removed = classify_update(
        _record("0.5.2"), make_artifact("sodium", b"x", version="0.5.3")
    )
    assert severity == "safe"
    assert reasons == [] and added == () and removed == ()


def test_classify_major_bump_and_dependency_change():
    severity, reasons, added, removed = classify_update(
        _record("1.4.0", deps=("old",)), make_artifact("sodium", b"x", version="2.0.0", deps=("new",))
    )
    assert severity == "caution"
    assert added == ("new",) and removed == ("old",)
    assert any("Major version bump (1 -> 2)" in r for r in reasons)


def test_classify_unresolved_entry():
    severity, reasons, _, _ = classify_update(None, make_artifact("sodium", b"x"))
    assert severity == "caution"
    assert reasons[0] == "Not currently resolved cleanly"


def test_sort_updates():
    def update(name, severity):
        return PlannedUpdate(id=name, name=name, severity=severity, from_version=None, to_version=None, changelog="")

    ordered = sort_updates([update("beta", "safe"), update("Alpha", "safe"), update("zeta", "caution")])
    assert [u.name for u in ordered] == ["zeta", "Alpha", "beta"]


# ----------------------------------------------------------------------------
# plan_update
# ----------------------------------------------------------------------------


def _publish(provider, ref, mod_id, version, deps=(), changelog=None):
    data = jar_bytes(mod_id, version=version, extra=version.encode())
    provider.publish(ref, make_artifact(mod_id, data, version=version, deps=deps, changelog=changelog), data)


def test_plan_update_is_read_only(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    _publish(provider, "P7dR8mSH", "fabric-api", "0.90.0")
    _publish(provider, "AANobbMI", "sodium", "0.5.2")
    mods_engine.refresh(INSTANCE, "1.20.1", "fabric")
    state_path = mods_engine.paths.content_state_path(INSTANCE)
    state_before = state_path.read_bytes()
    files_before = sorted(p.name for p in mods_engine.paths.content_dir(INSTANCE, "mod").iterdir())
    provider.download_calls.clear()

    _publish(provider, "AANobbMI", "sodium", "0.5.3", changelog="* Faster chunks")
    plan = mods_engine.plan_update(INSTANCE, "1.20.1", "fabric")

    assert [u.id for u in plan.updates] == ["sodium"]
    update = plan.updates[0]
    assert (update.from_version, update.to_version, update.severity) == ("0.5.2", "0.5.3", "safe")
    assert update.changelog == "Faster chunks"
    assert plan.counts == {"safe": 1, "caution": 0, "breaking": 0}
    assert plan.blocked == ()
    assert provider.download_calls == []
    assert state_path.read_bytes() == state_before
    assert sorted(p.name for p in mods_engine.paths.content_dir(INSTANCE, "mod").iterdir()) == files_before


def test_plan_update_blocks_unavailable_and_failing(mods_engine, provider):
    mods_engine.set_enabled(INSTANCE, "sodium", True)
    mods_engine.set_enabled(INSTANCE, "iris", True)
    provider.results["P7dR8mSH"] = NotFound("No compatible fabric build for game version 1.21")
    provider.results["AANobbMI"] = ProviderError("HTTP 503")
    _publish(provider, "YL57xq9U", "iris", "1.6.0")

    plan = mods_engine.plan_update(INSTANCE, "1.21", "fabric")

    blocked = {b.id: b.reason for b in plan.blocked}
    assert blocked == {"fabric-api": "No compatible fabric build for game version 1.21", "sodium": "HTTP 503"}
    assert [(u.id, u.severity) for u in plan.updates] == [("iris", "caution")]
    assert plan.updates[0].from_version is None


def test_plan_update_skips_disabled_entries(mods_engine, provider):
    _publish(provider, "P7dR8mSH", "fabric-api", "1.0.0")
    _publish(provider, "AANobbMI", "sodium", "0.5.3")
    mods_engine.refresh(INSTANCE, "1.20.1", "fabric")

    plan = mods_engine.plan_update(INSTANCE, "1.20.1", "fabric")

    assert plan.updates == ()
    assert ("AANobbMI", "1.20.1", "fabric") not in provider.resolve_calls
