"""Static validation of an instance's mods directory."""

from __future__ import annotations

import os

import pytest

from LauncherKit.ContentResolution.validation import (
    fix_duplicate_mods,
    validate_mods_dir,
    version_constraint_matches,
)
from tests.fixtures.launcher import make_jar


def _codes(result):
    return sorted(issue.code for issue in result.issues)


@pytest.mark.parametrize(
    "constraint, version, expected",
    [
        ("*", "1.20.1", True),
        ("", "1.20.1", True),
        ("[1.19.4,1.20.1]", "1.20.1", True),
        ("~1.20.1", "1.20.1", True),
        (">=1.21", "1.20.1", False),
    ],
)
def test_version_constraint_matches(constraint, version, expected):
    assert version_constraint_matches(constraint, version) is expected


def test_clean_directory(tmp_path):
    make_jar(tmp_path / "fabric-api__f.jar", "fabric-api", depends={"minecraft": "1.20.1", "fabricloader": ">=0.14"})
    make_jar(tmp_path / "sodium__s.jar", "sodium", depends={"fabric-api": "*", "java": ">=17"})
    result = validate_mods_dir(tmp_path, "1.20.1")
    assert result.summary == "no-issues"
    assert result.issues == ()


def test_missing_directory_is_clean(tmp_path):
    assert validate_mods_dir(tmp_path / "absent", "1.20.1").summary == "no-issues"


def test_reports_every_issue_kind(tmp_path):
    make_jar(tmp_path / "sodium__a.jar", "sodium", version="0.5.2")
    make_jar(tmp_path / "sodium-manual.jar", "sodium", version="0.5.3")
    make_jar(tmp_path / "embeddium.jar", "embeddium")
    make_jar(tmp_path / "iris__i.jar", "iris", depends={"minecraft": ">=1.21", "indium": "*"})
    make_jar(tmp_path / "c2me.jar", "c2me")
    make_jar(tmp_path / "forge-only.jar")
    make_jar(tmp_path / "disabled__x.jar.disabled", "whatever", depends={"nothing": "*"})

    result = validate_mods_dir(tmp_path, "1.20.1")

    assert result.summary == "critical"
    assert _codes(result) == [
        "duplicate-mod-id",
        "experimental-mod",
        "incompatible-game-version",
        "known-conflict",
        "loader-mismatch",
        "missing-dependency",
    ]
    duplicate = next(i for i in result.issues if i.code == "duplicate-mod-id")
    assert duplicate.files == ("sodium-manual.jar", "sodium__a.jar")
    assert duplicate.catalog_ids == ("sodium",)
    missing = next(i for i in result.issues if i.code == "missing-dependency")
    assert missing.mod_ids == ("iris", "indium")


def test_warnings_only(tmp_path):
    make_jar(tmp_path / "c2me.jar", "c2me")
    assert validate_mods_dir(tmp_path, "1.20.1").summary == "warnings"


def test_fix_duplicates_keeps_newest(tmp_path):
    old = make_jar(tmp_path / "sodium__old.jar", "sodium")
    new = make_jar(tmp_path / "sodium-new.jar", "sodium")
    other = make_jar(tmp_path / "iris.jar", "iris")
    os.utime(old, (1_000_000, 1_000_000))
    os.utime(new, (2_000_000, 2_000_000))

    assert fix_duplicate_mods(tmp_path) == ["sodium__old.jar"]
    assert new.exists() and other.exists() and not old.exists()
    assert fix_duplicate_mods(tmp_path) == []
