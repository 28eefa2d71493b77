"""
Discovery Cache
===============
Remembers which exam slugs were inferred from a provider's discussion
listing so later runs can skip the full listing crawl.

Only provider → exam-slug discovery is cached, never question content.
Entries expire after a TTL (24h by default) and are removed from the
store as soon as an expired read notices them.

File layout::

    {"providers": {"<provider>": {"exam_slugs": [...], "updated_at_unix": 1700000000}}}
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings
# ---------------------------------------------------------------------------

_CACHE_DIR_NAME = "examcrawler"
_CACHE_FILE_NAME = "discussion_exam_slugs.json"
_FALLBACK_CACHE_FILE = ".examcrawler_discussion_exam_cache.json"
_DEFAULT_TTL_SECONDS = 24 * 3600


def _user_cache_dir() -> Optional[Path]:
    """Per-user cache directory for the current platform, if one is known."""
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA", "").strip()
        return Path(base) if base else None
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches"
    xdg = os.environ.get("XDG_CACHE_HOME", "").strip()
    if xdg:
        return Path(xdg)
    try:
        return Path.home() / ".cache"
    except RuntimeError:
        return None


def default_cache_path() -> Path:
    """Where the cache lives when no explicit path is configured."""
    base = _user_cache_dir()
    if base is not None:
        return base / _CACHE_DIR_NAME / _CACHE_FILE_NAME
    return Path(".") / _FALLBACK_CACHE_FILE


class DiscoveryCache:
    """Thread-safe, file-backed TTL cache of provider exam slugs.

    One lock serializes every read and write; the store is loaded from
    disk lazily on first use.  A missing or corrupt file is treated as an
    empty cache, and failed writes are logged rather than raised.
    """

    def __init__(
        self,
        path: Optional[os.PathLike] = None,
        *,
        ttl_seconds: float = _DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            path:        Cache file (defaults to the per-user cache dir).
            ttl_seconds: Maximum age of an entry before it is discarded.
            clock:       Wall-clock source returning unix seconds.
        """
        self.path = Path(path) if path else default_cache_path()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._loaded = False
        self._providers: Dict[str, dict] = {}

    # ── Public API ────────────────────────────────────────────────

    def get(self, provider: str) -> Optional[List[str]]:
        """Cached exam slugs for ``provider``, or None on a miss or expiry."""
        provider = (provider or "").strip().lower()
        if not provider:
            return None

        with self._lock:
            self._ensure_loaded()
            entry = self._providers.get(provider)
            if entry is None:
                return None

            slugs = entry.get("exam_slugs")
            if not isinstance(slugs, list) or not all(isinstance(s, str) for s in slugs):
                logger.warning(f"[CACHE] Malformed entry for '{provider}', discarding")
                del self._providers[provider]
                self._save()
                return None

            updated_at = entry.get("updated_at_unix", 0)
            if not isinstance(updated_at, (int, float)) or updated_at <= 0 or (
                self._clock() - updated_at > self.ttl_seconds
            ):
                logger.info(f"[CACHE] Entry for '{provider}' expired, discarding")
                del self._providers[provider]
                self._save()
                return None

            return sorted(slugs) or None

    def put(self, provider: str, exam_slugs: Iterable[str]) -> None:
        """Store the slugs for ``provider`` stamped with the current time."""
        provider = (provider or "").strip().lower()
        slugs = sorted(set(exam_slugs or []))
        if not provider or not slugs:
            return

        with self._lock:
            self._ensure_loaded()
            self._providers[provider] = {
                "exam_slugs": slugs,
                "updated_at_unix": int(self._clock()),
            }
            self._save()
        logger.info(f"[CACHE] Stored {len(slugs)} exam slugs for '{provider}'")

    def invalidate(self, provider: str) -> None:
        """Drop one provider's entry so the next lookup recrawls."""
        provider = (provider or "").strip().lower()
        with self._lock:
            self._ensure_loaded()
            if self._providers.pop(provider, None) is not None:
                self._save()

    def clear(self) -> None:
        with self._lock:
            self._loaded = True
            self._providers = {}
            self._save()

    # ── Internal ──────────────────────────────────────────────────

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True

        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.warning(f"[CACHE] Ignoring unreadable cache file {self.path}: {exc}")
            return

        providers = data.get("providers") if isinstance(data, dict) else None
        if isinstance(providers, dict):
            self._providers = {
                name: entry for name, entry in providers.items()
                if isinstance(entry, dict)
            }

    def _save(self) -> None:
        payload = json.dumps({"providers": self._providers}, indent=2, sort_keys=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            logger.warning(f"[CACHE] Failed to write cache file {self.path}: {exc}")
