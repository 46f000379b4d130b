"""
Content-Addressed Artifact Cache

Artifacts are stored once per ``(owner, content hash)`` and shared by every
instance::

    <cache_dir>/<owner>-<hash><ext>          provider published a hash
    <cache_dir>/<owner>-<sanitized filename> provider published none

``owner`` is the catalog id, or ``dep-<ref>`` for auto-installed
dependencies. Entries are immutable once written: concurrent writers of the
same key produce byte-identical, verified content.

No eviction is performed; the cache grows with every distinct artifact.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from LauncherKit.common.io_utils import atomic_write_bytes, digest_bytes

from .api.exceptions import IntegrityError
from .api.types import HASH_PREFERENCE, Artifact
from .fs_layout import sanitize_upstream_name
from .providers.base import ContentProvider

logger = logging.getLogger(__name__)


def dependency_owner(ref: str) -> str:
    """Cache owner key for an auto-installed dependency."""
    return f"dep-{sanitize_upstream_name(ref)}"


class ContentCache:
    """Shared, hash-verified artifact store for one content profile."""

    def __init__(self, cache_dir: Path, *, extension: str, require_hash: bool = False) -> None:
        self.cache_dir = Path(cache_dir)
        self.extension = extension
        self.require_hash = require_hash

    def path_for(self, owner: str, artifact: Artifact) -> Path:
        content_hash = artifact.content_hash
        if content_hash:
            return self.cache_dir / f"{owner}-{content_hash}{self.extension}"
        return self.cache_dir / f"{owner}-{sanitize_upstream_name(artifact.file_name)}"

    def lookup(self, owner: str, content_hash: Optional[str]) -> Optional[Path]:
        """Return the cached file for ``(owner, content_hash)`` if it is present and non-empty."""
        if not content_hash:
            return None
        candidate = self.cache_dir / f"{owner}-{content_hash}{self.extension}"
        try:
            if candidate.is_file() and candidate.stat().st_size > 0:
                return candidate
        except OSError:
            return None
        return None

    def fetch(self, owner: str, artifact: Artifact, provider: ContentProvider) -> Path:
        """Return the cached path for ``artifact``, downloading it if needed.

        Raises:
            IntegrityError: Downloaded bytes do not match a published hash, or
                the artifact has no hash and ``require_hash`` is set.
            ProviderError: The download itself failed.
        """
        if self.require_hash and artifact.content_hash is None:
            raise IntegrityError(owner, algorithm=None, expected=None, actual=None)

        target = self.path_for(owner, artifact)
        if target.is_file() and target.stat().st_size > 0:
            logger.debug("Cache hit for %s: %s", owner, target.name)
            return target

        logger.info("Downloading %s from %s", owner, artifact.url)
        data = provider.download(artifact.url)
        verify_bytes(owner, artifact, data)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_bytes(target, data)
        return target


def verify_bytes(owner: str, artifact: Artifact, data: bytes) -> None:
    """Check ``data`` against every hash the provider published for ``artifact``."""
    for algorithm in HASH_PREFERENCE:
        expected = artifact.hashes.get(algorithm)
        if not expected:
            continue
        actual = digest_bytes(data, algorithm)
        if actual.lower() != expected.lower():
            logger.warning(
                "Hash mismatch for %s",
                owner,
                extra={"extra_fields": {"algorithm": algorithm, "expected": expected, "actual": actual}},
            )
            raise IntegrityError(owner, algorithm=algorithm, expected=expected, actual=actual)
