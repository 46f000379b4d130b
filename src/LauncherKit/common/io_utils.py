# === NAVMAP v1 ===
# {
#   "module": "LauncherKit.common.io_utils",
#   "purpose": "Atomic file writes, JSON state persistence and digest helpers",
#   "sections": [
#     {
#       "id": "atomic-write-bytes",
#       "name": "atomic_write_bytes",
#       "anchor": "function-atomic-write-bytes",
#       "kind": "function"
#     },
#     {
#       "id": "atomic-write-json",
#       "name": "atomic_write_json",
#       "anchor": "function-atomic-write-json",
#       "kind": "function"
#     },
#     {
#       "id": "read-json-file",
#       "name": "read_json_file",
#       "anchor": "function-read-json-file",
#       "kind": "function"
#     },
#     {
#       "id": "atomic-copy",
#       "name": "atomic_copy",
#       "anchor": "function-atomic-copy",
#       "kind": "function"
#     },
#     {
#       "id": "compute-file-digest",
#       "name": "compute_file_digest",
#       "anchor": "function-compute-file-digest",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Atomic file write utilities shared by the resolution and sync engines.

**Purpose**
-----------
Both engines keep their state as whole-file JSON documents next to the data
they describe (``content-state.json`` per instance, ``sync-state.json`` per
app). A crash half way through a plain ``write()`` would leave a truncated
document that the next run parses as garbage, so every write in this package
goes through a sibling temporary file that is fsynced and then renamed into
place.

**Key Functions**
-----------------

:func:`atomic_write_bytes`
  Temporary file + fsync + ``os.replace`` + directory fsync.

:func:`atomic_write_json`
  Pretty-printed UTF-8 JSON written through :func:`atomic_write_bytes`.

:func:`read_json_file`
  Tolerant reader returning a caller supplied default for missing or
  unparsable documents.

:func:`atomic_copy`
  Copy a cached artifact into an instance directory without ever exposing a
  partially copied file under its final name.

:func:`compute_file_digest` / :func:`digest_bytes`
  Hex digests used for content addressing and integrity checks.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, TypeVar, Union

__all__ = [
    "atomic_write_bytes",
    "atomic_write_json",
    "read_json_file",
    "atomic_copy",
    "digest_bytes",
    "compute_file_digest",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
PathLike = Union[str, "os.PathLike[str]"]


def _fsync_directory(directory: str) -> None:
    """Fsync ``directory`` so a preceding rename survives a crash."""
    if not hasattr(os, "O_DIRECTORY"):  # pragma: no cover - Windows
        return
    dir_fd = os.open(directory, os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write_bytes(dest_path: PathLike, data: bytes) -> int:
    """Write ``data`` to ``dest_path`` atomically.

    The payload is written to a temporary file in the destination directory
    (so the final rename never crosses a filesystem boundary), flushed and
    fsynced, then moved over ``dest_path`` with :func:`os.replace`.

    Args:
        dest_path: Final location. Parent directories are created on demand.
        data: Bytes to persist.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If the temporary file cannot be written or renamed. The
            temporary file is removed before the error propagates.

    Notes:
        - Temporary files use the ``.part-`` prefix and ``.tmp`` suffix.
        - Concurrent writers of identical content are harmless: the last
          rename wins and both produce the same bytes.
    """
    dest = os.fspath(dest_path)
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, dest)
        _fsync_directory(dest_dir)
        return len(data)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def atomic_write_json(dest_path: PathLike, payload: Any) -> None:
    """Serialise ``payload`` as indented UTF-8 JSON and write it atomically."""
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    atomic_write_bytes(dest_path, text.encode("utf-8"))


def read_json_file(path: PathLike, default: Callable[[], T]) -> Union[Any, T]:
    """Load JSON from ``path`` or fall back to ``default()``.

    A missing file is the normal "never written" case and is silent. A file
    that exists but cannot be decoded is logged at WARNING and treated the same
    way so a corrupted state document never blocks the launcher.
    """
    target = Path(path)
    if not target.exists():
        return default()
    try:
        return json.loads(target.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable JSON document %s: %s", target, exc)
        return default()


def atomic_copy(src: PathLike, dst: PathLike) -> None:
    """Copy ``src`` to ``dst`` through a temporary sibling of ``dst``."""
    dest = os.fspath(dst)
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copyfile(os.fspath(src), tmp_path)
        os.replace(tmp_path, dest)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def digest_bytes(data: bytes, algorithm: str = "sha256") -> str:
    """Return the lowercase hex digest of ``data``."""
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def compute_file_digest(file_path: PathLike, algorithm: str = "sha256", chunk_size: int = 65536) -> str:
    """Compute the hex digest of a file.

    Args:
        file_path: Path to file
        algorithm: Any name accepted by :func:`hashlib.new`
        chunk_size: Read chunk size (default 64KB)

    Returns:
        Hash in lowercase hex

    Raises:
        OSError: If file cannot be read
    """
    hasher = hashlib.new(algorithm)
    with open(file_path, "rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()
