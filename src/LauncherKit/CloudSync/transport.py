"""Remote sync transport.

The launcher account service exposes one document per account::

    GET {base_url}{state_path}  -> {revision, updatedAt, payload}
    PUT {base_url}{state_path}  {baseRevision, payload} -> {revision, updatedAt, payload}

Both calls carry ``Authorization: Bearer <token>``. ``baseRevision`` lets the
service reject a push made against a stale revision.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Optional, Protocol

import httpx
import tenacity

from .errors import SyncPayloadError, SyncTransportError
from .models import RemoteState, SyncSnapshot

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class SyncTransport(Protocol):
    def fetch(self) -> RemoteState:
        ...

    def push(self, payload: SyncSnapshot, base_revision: Optional[int]) -> RemoteState:
        ...


def env_token_provider(variable: str) -> TokenProvider:
    """Read the bearer token from environment variable ``variable`` at call time."""

    def provider() -> Optional[str]:
        value = os.environ.get(variable, "").strip()
        return value or None

    return provider


class HttpSyncTransport:
    """:class:`SyncTransport` over HTTPS using httpx."""

    def __init__(
        self,
        base_url: str,
        path: str,
        token_provider: TokenProvider,
        client: httpx.Client,
        *,
        retrying: Optional[tenacity.Retrying] = None,
    ) -> None:
        self.url = base_url.rstrip("/") + (path if path.startswith("/") else f"/{path}")
        self._token_provider = token_provider
        self._client = client
        self._retrying = retrying

    def _headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise SyncTransportError("Not signed in to the launcher account")
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _request(self, method: str, *, json_body: Any = None, retry: bool = False) -> Any:
        headers = self._headers()

        def attempt() -> httpx.Response:
            response = self._client.request(method, self.url, headers=headers, json=json_body)
            response.raise_for_status()
            return response

        try:
            if retry and self._retrying is not None:
                response = self._retrying.copy()(attempt)
            else:
                response = attempt()
        except httpx.HTTPStatusError as exc:
            raise SyncTransportError(
                f"Sync {method} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise SyncTransportError(f"Sync {method} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise SyncPayloadError(f"Sync {method} returned invalid JSON") from exc

    def fetch(self) -> RemoteState:
        remote = RemoteState.from_response(self._request("GET", retry=True))
        logger.debug("Fetched remote sync state revision=%s", remote.revision)
        return remote

    def push(self, payload: SyncSnapshot, base_revision: Optional[int]) -> RemoteState:
        # PUT is never retried
        body = {"baseRevision": base_revision, "payload": payload.to_payload()}
        raw = self._request("PUT", json_body=body)
        return RemoteState.from_response(raw, default_updated_at=int(time.time() * 1000))
