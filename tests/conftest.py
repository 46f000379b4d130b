"""
Pytest Configuration

Shared fixtures for the LauncherKit suite: an isolated launcher layout under
``tmp_path``, a small mod and pack catalog, and engines wired to the
in-memory fakes from :mod:`tests.fixtures.launcher`.
"""

from __future__ import annotations

import itertools
import logging
import os
from typing import Callable, Iterator

import pytest

from LauncherKit.CloudSync.engine import SyncEngine
from LauncherKit.CloudSync.instances import JsonInstanceRepository
from LauncherKit.ContentResolution.api.types import CatalogEntry
from LauncherKit.ContentResolution.catalog import Catalog
from LauncherKit.ContentResolution.engine import MODS, PACKS, ContentEngine
from LauncherKit.ContentResolution.paths import LauncherPaths
from tests.fixtures.launcher import FakeProvider, FakeTransport

INSTANCE = "inst-1"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep developer LAUNCHERKIT_* variables out of config tests."""
    for key in list(os.environ):
        if key.startswith("LAUNCHERKIT_"):
            monkeypatch.delenv(key, raising=False)
    logger = logging.getLogger("LauncherKit")
    handlers = list(logger.handlers)
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = propagate


@pytest.fixture
def paths(tmp_path) -> LauncherPaths:
    return LauncherPaths(data_root=tmp_path / "data", instances_root=tmp_path / "instances")


@pytest.fixture
def clock() -> Callable[[], int]:
    counter = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(counter)


@pytest.fixture
def mod_catalog() -> Catalog:
    return Catalog(
        [
            CatalogEntry(id="fabric-api", display_name="Fabric API", upstream_ref="P7dR8mSH", required=True),
            CatalogEntry(id="sodium", display_name="Sodium", upstream_ref="AANobbMI"),
            CatalogEntry(id="iris", display_name="Iris Shaders", upstream_ref="YL57xq9U"),
        ]
    )


@pytest.fixture
def pack_catalog() -> Catalog:
    return Catalog(
        [
            CatalogEntry(id="faithful", display_name="Faithful 32x", upstream_ref="faithful-32x", kind="resourcepack"),
            CatalogEntry(id="complementary", display_name="Complementary", upstream_ref="complementary", kind="shaderpack"),
        ]
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def mods_engine(mod_catalog, provider, paths, clock) -> ContentEngine:
    return ContentEngine(mod_catalog, MODS, provider, paths, clock=clock)


@pytest.fixture
def packs_engine(pack_catalog, provider, paths, clock) -> ContentEngine:
    return ContentEngine(pack_catalog, PACKS, provider, paths, clock=clock)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sync_engine(paths, transport, clock) -> SyncEngine:
    return SyncEngine(
        paths,
        JsonInstanceRepository(paths.instance_db_path()),
        transport,
        clock=clock,
    )
