"""
Persistent cache for the model registry.

Parsing every model file on every run is the slowest part of building the
registry.  This module stores the class records extracted from each model
file, keyed by the SHA-256 of the file content, so that unchanged files are
not re-parsed on subsequent runs.

One cache file serves one set of model directories; scanning a different set
of directories (or a different project) starts from an empty cache.

Typical usage:

    cache = RegistryCache(cache_dir, model_dirs)
    records = cache.get(path, content)
    if records is None:
        records = extract(path, content)
        cache.put(path, content, records)
    cache.save()
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


# ---------------------------------------------------------------------------
# CachedModelFile -- one entry per model source file
# ---------------------------------------------------------------------------

@dataclass
class CachedModelFile:
    """Class records extracted from one model file.

    Attributes:
        file_path:    Absolute path of the model file.
        content_hash: SHA-256 hex digest of the content the records came from.
        classes:      Serialised ``ClassRecord`` dictionaries.
        timestamp:    When the entry was written.
    """

    file_path: str
    content_hash: str
    classes: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedModelFile":
        return cls(
            file_path=str(data["file_path"]),
            content_hash=str(data["content_hash"]),
            classes=list(data.get("classes", [])),
            timestamp=float(data.get("timestamp", 0.0)),
        )


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8", errors="replace")).hexdigest()


def directories_key(model_dirs: Iterable[str]) -> str:
    """Stable key for a set of scanned model directories."""
    joined = "\n".join(sorted(os.path.normpath(os.path.abspath(d)) for d in model_dirs))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# RegistryCache
# ---------------------------------------------------------------------------

class RegistryCache:
    """JSON-backed store of per-file class records.

    Parameters:
        cache_dir:  Directory holding the cache file.
        model_dirs: The model directories the registry scans; part of the
                    cache key.
    """

    CACHE_FILE: str = ".larasniff_registry.json"

    def __init__(self, cache_dir: str, model_dirs: Iterable[str]) -> None:
        self._cache_dir = os.path.abspath(cache_dir)
        self._cache_path = os.path.join(self._cache_dir, self.CACHE_FILE)
        self.key = directories_key(model_dirs)
        self._entries: Dict[str, CachedModelFile] = {}
        self._hits = 0
        self._misses = 0
        self._load()

    @property
    def path(self) -> str:
        return self._cache_path

    def _load(self) -> None:
        if not os.path.isfile(self._cache_path):
            logger.debug("No registry cache at %s", self._cache_path)
            return
        try:
            with open(self._cache_path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Could not load registry cache %s (%s); rebuilding.",
                           self._cache_path, exc)
            return
        if not isinstance(raw, dict) or raw.get("version") != CACHE_VERSION:
            logger.info("Registry cache %s has an old format; rebuilding.", self._cache_path)
            return
        if raw.get("key") != self.key:
            logger.info("Registry cache %s belongs to other model directories; rebuilding.",
                        self._cache_path)
            return
        for path, entry in (raw.get("entries") or {}).items():
            try:
                self._entries[path] = CachedModelFile.from_dict(entry)
            except (TypeError, KeyError, ValueError) as exc:
                logger.debug("Skipping corrupt registry cache entry %s: %s", path, exc)
        logger.debug("Loaded %d registry cache entries from %s",
                     len(self._entries), self._cache_path)

    def save(self) -> None:
        """Write the cache; I/O errors are logged, never raised."""
        payload = {
            "version": CACHE_VERSION,
            "key": self.key,
            "generated_at": time.time(),
            "entries": {p: e.to_dict() for p, e in sorted(self._entries.items())},
        }
        tmp_path = self._cache_path + ".tmp"
        try:
            os.makedirs(self._cache_dir, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self._cache_path)
            logger.debug("Registry cache saved to %s", self._cache_path)
        except OSError as exc:
            logger.error("Failed to write registry cache %s: %s", self._cache_path, exc)

    def get(self, file_path: str, content: str) -> Optional[List[Dict[str, Any]]]:
        entry = self._entries.get(os.path.normpath(file_path))
        if entry is not None and entry.content_hash == content_hash(content):
            self._hits += 1
            return list(entry.classes)
        self._misses += 1
        return None

    def put(self, file_path: str, content: str, classes: List[Dict[str, Any]]) -> None:
        normalized = os.path.normpath(file_path)
        self._entries[normalized] = CachedModelFile(
            file_path=normalized,
            content_hash=content_hash(content),
            classes=list(classes),
        )

    def prune(self, live_paths: Iterable[str]) -> None:
        """Forget files that no longer exist in the model directories."""
        live = {os.path.normpath(p) for p in live_paths}
        for path in list(self._entries):
            if path not in live:
                del self._entries[path]

    def get_stats(self) -> Dict[str, int]:
        return {"hits": self._hits, "misses": self._misses, "entries": len(self._entries)}
