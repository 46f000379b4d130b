"""Declared content catalog, injected into the engine at construction."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Sequence

from LauncherKit.config.models import CatalogEntryConfig

from .api.exceptions import UnknownCatalogEntry
from .api.types import CatalogEntry


class Catalog:
    """Ordered, id-unique collection of :class:`CatalogEntry`.

    Iteration order is declaration order; the engine processes entries in that
    order so refresh output is deterministic.
    """

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries: List[CatalogEntry] = []
        self._by_id: Dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.id in self._by_id:
                raise ValueError(f"Duplicate catalog id: {entry.id}")
            self._entries.append(entry)
            self._by_id[entry.id] = entry

    @classmethod
    def from_config(cls, entries: Sequence[CatalogEntryConfig]) -> "Catalog":
        return cls(
            CatalogEntry(
                id=item.id,
                display_name=item.name,
                upstream_ref=item.project_id,
                required=item.required,
                kind=item.kind,
            )
            for item in entries
        )

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, catalog_id: object) -> bool:
        return catalog_id in self._by_id

    def get(self, catalog_id: str) -> CatalogEntry:
        """Return the entry for ``catalog_id`` or raise :class:`UnknownCatalogEntry`."""
        try:
            return self._by_id[catalog_id]
        except KeyError:
            raise UnknownCatalogEntry(catalog_id) from None

    def ids(self) -> List[str]:
        return [entry.id for entry in self._entries]

    def default_enabled(self) -> Dict[str, bool]:
        """Enabled map for a fresh instance: only required entries are on."""
        return {entry.id: entry.required for entry in self._entries}
