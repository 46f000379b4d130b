"""
Canonical Exception Types for the Content Resolution Engine

``UnknownCatalogEntry`` is a caller error and propagates. ``ProviderError``
and ``IntegrityError`` are raised by provider clients and the cache; the
engine catches them per entry and records them as ``ResolvedError`` so one
failing entry never aborts a batch.

"No compatible artifact" is not an exception: providers return
:class:`~LauncherKit.ContentResolution.api.types.NotFound`.
"""

from __future__ import annotations

from typing import Optional


class UnknownCatalogEntry(KeyError):
    """
    Raised when a catalog id is not declared in the engine's catalog.

    Example:
        engine.set_enabled("inst-1", "no-such-mod", True)  # raises
    """

    def __init__(self, catalog_id: str) -> None:
        self.catalog_id = catalog_id
        super().__init__(catalog_id)

    def __str__(self) -> str:
        return f"Unknown catalog entry: {self.catalog_id}"


class ProviderError(Exception):
    """
    Raised when a provider lookup or download fails (network, HTTP, parse).

    Attributes:
        url: Request URL, when known
        status_code: HTTP status, when the server answered
    """

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class IntegrityError(Exception):
    """
    Raised when downloaded bytes do not match the published hash, or when an
    artifact without any published hash is refused by policy.

    Nothing is written to the cache or the instance when this is raised.
    """

    def __init__(
        self,
        owner: str,
        *,
        algorithm: Optional[str],
        expected: Optional[str],
        actual: Optional[str],
    ) -> None:
        self.owner = owner
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual
        if algorithm is None:
            message = f"No published hash for {owner}; refusing unverified artifact"
        else:
            message = f"{algorithm.upper()} mismatch for {owner}: expected {expected}, got {actual}"
        super().__init__(message)
