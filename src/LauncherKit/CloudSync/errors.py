"""Exception hierarchy for cloud sync.

Transport failures abort the current sync attempt only; ``SyncEngine``
records them in ``SyncMeta.last_error`` and returns an ``error`` result
instead of raising. A sync conflict is not an exception: it is a reported
terminal status.
"""

from __future__ import annotations

from typing import Optional

__all__ = ["SyncError", "SyncTransportError", "SyncPayloadError"]


class SyncError(RuntimeError):
    """Base exception for cloud sync failures."""


class SyncTransportError(SyncError):
    """Raised when a call to the remote sync service fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SyncPayloadError(SyncTransportError):
    """Raised when the remote service answers with a malformed document."""
