"""Shared persistence and logging helpers."""

from .io_utils import (
    atomic_copy,
    atomic_write_bytes,
    atomic_write_json,
    compute_file_digest,
    digest_bytes,
    read_json_file,
)
from .logging_utils import JSONFormatter, mask_sensitive_data, setup_logging

__all__ = [
    "atomic_copy",
    "atomic_write_bytes",
    "atomic_write_json",
    "compute_file_digest",
    "digest_bytes",
    "read_json_file",
    "JSONFormatter",
    "mask_sensitive_data",
    "setup_logging",
]
