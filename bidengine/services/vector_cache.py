# =============================================
# File: bidengine/services/vector_cache.py
# Purpose: Chroma-persisted embedding cache keyed by content hash
# =============================================
from __future__ import annotations

import os
from typing import Any, Dict, Iterable, List, Optional

import chromadb
from chromadb.config import Settings
from loguru import logger

DEFAULT_COLLECTION = "evidence_embeddings"

# Use cosine to match the ranker's similarity
HNSW_SPACE = "cosine"

# Chroma caps the size of a single upsert
UPSERT_BATCH = 256


def default_persist_dir() -> str:
    return os.getenv("CHROMA_PERSIST_DIR", ".chroma")


def default_collection() -> str:
    return os.getenv("CHROMA_COLLECTION", DEFAULT_COLLECTION)


def make_client(persist_dir: Optional[str] = None) -> Any:
    """Persistent client on disk; an empty string gives an in-memory client."""
    settings = Settings(anonymized_telemetry=False)
    path = default_persist_dir() if persist_dir is None else persist_dir
    if not path:
        return chromadb.EphemeralClient(settings=settings)
    return chromadb.PersistentClient(path=path, settings=settings)


def _as_list(vec: Any) -> List[float]:
    # Chroma may hand back numpy arrays; never truth-test them directly
    if vec is None:
        return []
    return [float(x) for x in vec]


class ChromaEmbeddingCache:
    """
    Vectors stored under their content-hash id. Only ids and embeddings are
    kept; Chroma never embeds anything itself here. Use one collection per
    embedding model, since a collection has a fixed dimension.
    """

    def __init__(
        self,
        collection: Optional[str] = None,
        persist_dir: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self._client = client if client is not None else make_client(persist_dir)
        self.collection_name = collection or default_collection()
        self._col = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": HNSW_SPACE},
            embedding_function=None,
        )

    def get_many(self, keys: Iterable[str]) -> Dict[str, List[float]]:
        ids = [k for k in dict.fromkeys(keys) if k]
        if not ids:
            return {}
        res = self._col.get(ids=ids, include=["embeddings"])
        found_ids = res.get("ids") or []
        embeddings = res.get("embeddings")
        if embeddings is None:
            return {}

        out: Dict[str, List[float]] = {}
        for key, vec in zip(found_ids, embeddings):
            values = _as_list(vec)
            if values:
                out[key] = values
        return out

    def set_many(self, items: Dict[str, List[float]]) -> None:
        pairs = [(k, v) for k, v in items.items() if k and v is not None and len(v) > 0]
        for i in range(0, len(pairs), UPSERT_BATCH):
            batch = pairs[i : i + UPSERT_BATCH]
            self._col.upsert(
                ids=[k for k, _ in batch],
                embeddings=[[float(x) for x in v] for _, v in batch],
            )
        if pairs:
            logger.debug(f"[vector_cache] upserted {len(pairs)} vectors into '{self.collection_name}'")

    def count(self) -> int:
        return self._col.count()
