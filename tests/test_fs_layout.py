"""Installed-file naming and attribution."""

from __future__ import annotations

import string

import pytest
from hypothesis import assume, given, settings, strategies as st

from LauncherKit.ContentResolution.fs_layout import (
    attribute_file,
    dependency_file_name,
    files_for_catalog_id,
    installed_file_name,
    remove_auto_dependency_files,
    remove_files_for_catalog_id,
    sanitize_upstream_name,
    upstream_name_from_installed,
)

catalog_ids = st.from_regex(r"\A[a-z0-9][a-z0-9.-]{0,15}\Z").filter(lambda s: s != "dep")
upstream_names = st.text(alphabet=string.printable + "äé+ ", min_size=0, max_size=40)


def test_sanitize_examples():
    assert sanitize_upstream_name("Sodium 0.5+mc1.20.jar") == "Sodium_0.5_mc1.20.jar"
    assert sanitize_upstream_name("") == "artifact"
    assert sanitize_upstream_name("...") == "artifact"


def test_installed_names():
    assert installed_file_name("sodium", "sodium-0.5.jar") == "sodium__sodium-0.5.jar"
    assert installed_file_name("sodium", "sodium-0.5.jar", False) == "sodium__sodium-0.5.jar.disabled"
    assert dependency_file_name("cloth-config", "cloth config.jar") == "dep__cloth-config__cloth_config.jar"


def test_profile_extension_is_appended_when_missing(tmp_path):
    name = installed_file_name("sodium", "sodium-0.5", extension=".jar")
    assert name == "sodium__sodium-0.5.jar"
    assert installed_file_name("sodium", "sodium-0.5.JAR", extension=".jar") == "sodium__sodium-0.5.JAR"
    assert dependency_file_name("cloth", "cloth", ".jar") == "dep__cloth__cloth.jar"

    (tmp_path / name).write_bytes(b"x")
    assert [p.name for p in files_for_catalog_id(tmp_path, "sodium", ".jar")] == [name]


def test_attribution():
    assert attribute_file("sodium__sodium-0.5.jar").owner_id == "sodium"
    dep = attribute_file("dep__cloth-config__cloth.jar")
    assert dep is not None and dep.owner_kind == "dependency" and dep.owner_id == "cloth-config"
    assert attribute_file("OptiFine.jar") is None
    assert attribute_file("dep__broken.jar") is None


@given(catalog_id=catalog_ids, upstream=upstream_names)
@settings(max_examples=150)
def test_installed_name_attributes_back_to_owner(catalog_id: str, upstream: str):
    assume(not sanitize_upstream_name(upstream).endswith(".disabled"))
    name = installed_file_name(catalog_id, upstream)
    attribution = attribute_file(name)
    assert attribution is not None
    assert attribution.owner_kind == "catalog"
    assert attribution.owner_id == catalog_id
    assert upstream_name_from_installed(catalog_id, name) == sanitize_upstream_name(upstream)
    assert "/" not in name and "\\" not in name


@given(content_id=st.text(min_size=1, max_size=20), upstream=upstream_names)
@settings(max_examples=150)
def test_dependency_name_attributes_to_dependency(content_id: str, upstream: str):
    attribution = attribute_file(dependency_file_name(content_id, upstream))
    assert attribution is not None
    assert attribution.owner_kind == "dependency"


def test_prefix_does_not_capture_longer_ids(tmp_path):
    for name in ("iris__iris.jar", "iris-extra__x.jar", "iris__old.jar.disabled", "iris__notes.txt"):
        (tmp_path / name).write_bytes(b"x")
    names = [p.name for p in files_for_catalog_id(tmp_path, "iris", ".jar")]
    assert names == ["iris__iris.jar", "iris__old.jar.disabled"]


def test_cleanup_only_touches_attributable_files(tmp_path):
    for name in ("sodium__a.jar", "dep__cloth__c.jar", "dep__fabric__f.jar.disabled", "user-mod.jar"):
        (tmp_path / name).write_bytes(b"x")

    assert remove_files_for_catalog_id(tmp_path, "sodium", ".jar") == ["sodium__a.jar"]
    assert remove_auto_dependency_files(tmp_path, ".jar") == ["dep__cloth__c.jar", "dep__fabric__f.jar.disabled"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["user-mod.jar"]


@pytest.mark.parametrize("helper", [files_for_catalog_id, remove_files_for_catalog_id])
def test_missing_directory_is_empty(tmp_path, helper):
    assert helper(tmp_path / "absent", "sodium", ".jar") == []
