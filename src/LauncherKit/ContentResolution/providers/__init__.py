"""Provider clients that resolve catalog entries to downloadable artifacts."""

from .base import ContentProvider
from .modrinth import ModrinthProvider

__all__ = ["ContentProvider", "ModrinthProvider"]
