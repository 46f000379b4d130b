"""Structured logging helpers shared across launcher components."""

from __future__ import annotations

import gzip
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

_SENSITIVE_KEYS = {
    "authorization",
    "token",
    "access_token",
    "refresh_token",
    "password",
    "secret",
}
_MASK = "***masked***"


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential fields masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint in _SENSITIVE_KEYS and value is not None:
            return _MASK
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [_mask_value(item, key_hint) for item in value]
        if isinstance(value, str) and "bearer " in value.lower():
            return _MASK
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with launcher-specific fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance_id": getattr(record, "instance_id", None),
            "catalog_id": getattr(record, "catalog_id", None),
            "stage": getattr(record, "stage", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress ``path`` into a ``.gz`` file and remove the original."""

    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress or purge log files in ``log_dir`` based on retention policy."""

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
            actions.append(f"Compressed {file.name}")
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
    return actions


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    retention_days: int = 30,
    max_log_size_mb: int = 20,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``LauncherKit`` logger with console output and JSONL files.

    Handlers installed by a previous call are replaced, so the function can be
    called again after the configuration changes. When ``log_dir`` is ``None``
    only the console handler is installed.
    """

    logger = logging.getLogger("LauncherKit")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_launcherkit_managed", False):
            logger.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console._launcherkit_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        for action in _cleanup_logs(log_dir, retention_days):
            logger.debug(action)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"launcher-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._launcherkit_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
