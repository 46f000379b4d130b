"""
HTTPX Client Factory.

Builds the ``httpx.Client`` used by provider clients and the sync transport:
- Explicit connect/read timeouts (the engines enforce none themselves)
- SSL verification and a launcher User-Agent
- Redirects followed (Modrinth CDN links redirect)
- Request/response event hooks that log timing at DEBUG

Architecture:
1. build_http_client(config) → httpx.Client
2. Hooks log ``net.request`` lines per attempt
3. Callers own the client's lifetime (``with`` or ``close()``)
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from LauncherKit.config.models import HttpClientConfig, LauncherConfig

logger = logging.getLogger(__name__)


# ============================================================================
# Client Factory
# ============================================================================


def build_http_client(
    config: LauncherConfig,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build a new HTTPX client from ``config.http``.

    Args:
        config: Launcher configuration
        transport: Optional transport override (``httpx.MockTransport`` in tests)

    Returns:
        Configured httpx.Client
    """
    cfg: HttpClientConfig = config.http

    timeout = httpx.Timeout(
        cfg.timeout_read_s,
        connect=cfg.timeout_connect_s,
    )

    client = httpx.Client(
        transport=transport,
        timeout=timeout,
        verify=cfg.verify_tls,
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "application/json, */*",
        },
        follow_redirects=True,
    )

    client.event_hooks["request"] = [_on_request]
    client.event_hooks["response"] = [_on_response]

    logger.debug("HTTPX client created: verify_tls=%s", cfg.verify_tls)
    return client


# ============================================================================
# Event Hooks
# ============================================================================


def _on_request(request: httpx.Request) -> None:
    """Hook: stamp request start time."""
    request.extensions["t0_perf"] = time.perf_counter()


def _on_response(response: httpx.Response) -> None:
    """Hook: log one ``net.request`` line."""
    req = response.request
    t0 = req.extensions.get("t0_perf", time.perf_counter())
    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    logger.debug(
        "net.request %s %s -> %s (%.1f ms)",
        req.method,
        req.url.host,
        response.status_code,
        elapsed_ms,
        extra={
            "stage": "net",
            "extra_fields": {
                "method": req.method,
                "host": req.url.host,
                "status": response.status_code,
                "elapsed_ms": round(elapsed_ms, 1),
            },
        },
    )
