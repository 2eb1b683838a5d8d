"""Content-addressed on-disk cache.

Entries live at ``<root>/<namespace>/<sha256 of source text>.json``. An edit
to one declaration file only invalidates that file's entry; nothing expires
by wall-clock time.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
from typing import Any, Optional

from common.errors import OutputWriteError
from common.logging_utils import extra_context, is_debug_enabled
from report.manifest import write_json_atomic

logger = logging.getLogger(__name__)


def content_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ContentCache:
    """One namespace of the cache; a ``None`` root disables caching."""

    def __init__(self, root: Optional[str], namespace: str):
        self.root = root
        self.namespace = namespace
        self.hits = 0
        self.misses = 0

    @property
    def enabled(self) -> bool:
        return bool(self.root)

    def _path(self, key: str) -> str:
        return os.path.join(self.root, self.namespace, key + ".json")

    def get(self, key: str) -> Optional[Any]:
        """Cached value for ``key``; unreadable entries count as misses."""
        if not self.enabled:
            return None
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as handle:
                value = json.load(handle)
        except FileNotFoundError:
            self.misses += 1
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            self.misses += 1
            return None
        self.hits += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Cache hit",
                extra=extra_context(event="cache", component="store", action="get", outcome="hit", target=path),
            )
        return value

    def put(self, key: str, value: Any) -> None:
        """Store ``value``; a failed write is logged, never fatal."""
        if not self.enabled:
            return
        path = self._path(key)
        try:
            write_json_atomic(path, value)
        except OutputWriteError as exc:
            logger.warning("Could not write cache entry %s: %s", path, exc)
