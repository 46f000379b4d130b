"""Modrinth provider client.

Resolves a Modrinth project id to its newest version compatible with a
game version (and, for mods, a loader) via::

    GET {api_base}/project/{ref}/version?game_versions=["1.20.1"]&loaders=["fabric"]

Packs are published without a loader, so the ``loaders`` filter is omitted
when ``loader_kind`` is ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import tenacity

from LauncherKit.ContentResolution.api.exceptions import ProviderError
from LauncherKit.ContentResolution.api.types import Artifact, Found, NotFound, ProviderResult

LOGGER = logging.getLogger(__name__)


class ModrinthProvider:
    """Content provider backed by the Modrinth v2 API."""

    name = "modrinth"

    def __init__(
        self,
        client: httpx.Client,
        *,
        api_base: str = "https://api.modrinth.com/v2",
        retrying: Optional[tenacity.Retrying] = None,
    ) -> None:
        self._client = client
        self._api_base = api_base.rstrip("/")
        self._retrying = retrying

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _send(self, url: str, params: Optional[Mapping[str, str]] = None) -> httpx.Response:
        def attempt() -> httpx.Response:
            response = self._client.get(url, params=params)
            response.raise_for_status()
            return response

        try:
            if self._retrying is None:
                return attempt()
            return self._retrying.copy()(attempt)
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Modrinth request failed: HTTP {exc.response.status_code}",
                url=str(exc.request.url),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Modrinth request failed: {exc}", url=url) from exc

    # ------------------------------------------------------------------
    # ContentProvider
    # ------------------------------------------------------------------
    def resolve_latest(
        self, ref: str, game_version: str, loader_kind: Optional[str]
    ) -> ProviderResult:
        params: Dict[str, str] = {"game_versions": json.dumps([game_version])}
        if loader_kind:
            params["loaders"] = json.dumps([loader_kind])
        url = f"{self._api_base}/project/{ref}/version"

        response = self._send(url, params)
        try:
            versions = response.json()
        except ValueError as exc:
            raise ProviderError(f"Modrinth returned invalid JSON for {ref}", url=url) from exc
        if not isinstance(versions, list):
            raise ProviderError(f"Unexpected Modrinth payload for {ref}", url=url)

        LOGGER.debug(
            "Modrinth returned %d versions for %s",
            len(versions),
            ref,
            extra={"stage": "resolve", "extra_fields": {"ref": ref, "game_version": game_version}},
        )
        return parse_versions(versions, game_version=game_version, loader_kind=loader_kind)

    def download(self, url: str) -> bytes:
        return self._send(url).content


def _required_project_ids(dependencies: Any) -> Tuple[str, ...]:
    refs: List[str] = []
    if not isinstance(dependencies, list):
        return ()
    for dep in dependencies:
        if not isinstance(dep, Mapping):
            continue
        if dep.get("dependency_type") != "required":
            continue
        project_id = dep.get("project_id")
        if isinstance(project_id, str) and project_id and project_id not in refs:
            refs.append(project_id)
    return tuple(refs)


def parse_versions(
    versions: List[Any], *, game_version: str, loader_kind: Optional[str]
) -> ProviderResult:
    """Pick the newest version and its primary file from a ``/version`` listing."""
    candidates = [v for v in versions if isinstance(v, Mapping)]
    if not candidates:
        target = f"{loader_kind} " if loader_kind else ""
        return NotFound(f"No compatible {target}build for game version {game_version}")

    candidates.sort(key=lambda v: str(v.get("date_published") or ""), reverse=True)
    chosen = candidates[0]
    files = [f for f in chosen.get("files") or [] if isinstance(f, Mapping)]
    if not files:
        return NotFound(f"Newest version {chosen.get('version_number')!r} has no files")

    primary = next((f for f in files if f.get("primary")), files[0])
    url = primary.get("url")
    filename = primary.get("filename")
    if not isinstance(url, str) or not url or not isinstance(filename, str) or not filename:
        raise ProviderError("Modrinth file entry is missing url or filename")

    raw_hashes = primary.get("hashes") or {}
    hashes = {
        str(algorithm): str(value)
        for algorithm, value in dict(raw_hashes).items()
        if isinstance(value, str) and value
    } if isinstance(raw_hashes, Mapping) else {}

    artifact = Artifact(
        version_label=str(chosen.get("version_number") or chosen.get("name") or ""),
        file_name=filename,
        url=url,
        hashes=hashes,
        dependency_refs=_required_project_ids(chosen.get("dependencies")),
        changelog=chosen.get("changelog") if isinstance(chosen.get("changelog"), str) else None,
        published_at=str(chosen.get("date_published")) if chosen.get("date_published") else None,
    )
    return Found(artifact)
