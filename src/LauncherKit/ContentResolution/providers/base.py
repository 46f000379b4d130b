"""Shared provider contract."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from LauncherKit.ContentResolution.api.types import ProviderResult


@runtime_checkable
class ContentProvider(Protocol):
    """Resolve upstream references to artifacts and fetch their bytes.

    ``resolve_latest`` returns :class:`~LauncherKit.ContentResolution.api.types.NotFound`
    when nothing compatible exists and raises
    :class:`~LauncherKit.ContentResolution.api.exceptions.ProviderError` on
    transport or parse failures. ``loader_kind=None`` disables loader filtering.
    """

    name: str

    def resolve_latest(
        self, ref: str, game_version: str, loader_kind: Optional[str]
    ) -> ProviderResult:
        ...

    def download(self, url: str) -> bytes:
        ...
