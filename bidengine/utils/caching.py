# =============================================
# File: bidengine/utils/caching.py
# Purpose: Content-hash keyed embedding cache (in-memory TTL with LRU eviction)
# =============================================
from __future__ import annotations

import hashlib
import os
import threading
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Protocol, Tuple


def content_hash(text: str, model: str = "") -> str:
    """
    Cache key for an embedding: sha256 over the model name and the exact
    content text. Record ids are never part of the key.
    """
    payload = f"{model}\n{text or ''}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class EmbeddingCache(Protocol):
    def get_many(self, keys: Iterable[str]) -> Dict[str, List[float]]:
        """Return the cached vectors for the keys that are present."""
        ...

    def set_many(self, items: Dict[str, List[float]]) -> None:
        ...


class InMemoryEmbeddingCache:
    """
    Process-local cache. Entries expire after `ttl` seconds and the oldest
    entries are evicted once `max_entries` is reached.
    """

    def __init__(self, ttl: Optional[int] = None, max_entries: Optional[int] = None) -> None:
        self._ttl = ttl if ttl is not None else int(os.getenv("EMBED_CACHE_TTL_SECONDS", "86400"))
        self._max = max_entries if max_entries is not None else int(os.getenv("EMBED_CACHE_MAX_ENTRIES", "5000"))
        # key -> (expires_at, vector)
        self._store: "OrderedDict[str, Tuple[float, List[float]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[float]]:
        now = time.time()
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            exp, val = item
            if exp < now:
                self._store.pop(key, None)
                return None
            # LRU touch: move to end
            self._store.move_to_end(key, last=True)
            return val

    def set(self, key: str, vector: List[float]) -> None:
        if not vector:
            return
        with self._lock:
            self._store[key] = (time.time() + self._ttl, list(vector))
            self._store.move_to_end(key, last=True)
            # enforce size
            while len(self._store) > self._max:
                self._store.popitem(last=False)

    def get_many(self, keys: Iterable[str]) -> Dict[str, List[float]]:
        out: Dict[str, List[float]] = {}
        for k in keys:
            v = self.get(k)
            if v:
                out[k] = v
        return out

    def set_many(self, items: Dict[str, List[float]]) -> None:
        for k, v in items.items():
            self.set(k, v)

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
