# =============================================
# File: bidengine/services/semantic.py
# Purpose: Similarity-ranked Top-K over a tenant's evidence records
# =============================================
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Dict, List, Optional, Sequence

from loguru import logger

from bidengine.services.embeddings import EmbeddingProvider, get_embedding_provider
from bidengine.utils import metrics
from bidengine.utils.caching import EmbeddingCache, content_hash
from bidengine.utils.models import EvidenceRecord, RankedResult
from bidengine.utils.similarity import cosine_similarity
from bidengine.utils.timing import timer

# Above this many un-embedded records we stop generating vectors on the fly
DEFAULT_MAX_ON_DEMAND = 100

# "No semantic information": every record looks moderately relevant until boosted
OVERFLOW_SIMILARITY = 0.5

PATH_FAST = "fast"
PATH_FALLBACK = "fallback"
PATH_OVERFLOW = "overflow"
PATH_DEGRADED = "degraded"

# Path taken by the most recent semantic_search in the current task
last_path: ContextVar[Optional[str]] = ContextVar("semantic_last_path", default=None)


def _max_on_demand() -> int:
    try:
        return int(os.getenv("SEMANTIC_MAX_ON_DEMAND", str(DEFAULT_MAX_ON_DEMAND)))
    except ValueError:
        return DEFAULT_MAX_ON_DEMAND


def _fill_from_cache(
    records: Sequence[EvidenceRecord],
    vectors: List[List[float]],
    cache: EmbeddingCache,
    model: str,
) -> int:
    """Put cached vectors into the empty slots of `vectors`. Returns hits."""
    missing = [i for i, v in enumerate(vectors) if not v]
    if not missing:
        return 0
    keys = {i: content_hash(records[i].content_text(), model) for i in missing}
    try:
        found = cache.get_many(set(keys.values()))
    except Exception as e:
        logger.warning(f"Embedding cache lookup failed: {e}")
        return 0

    hits = 0
    for i, key in keys.items():
        vec = found.get(key)
        if vec:
            vectors[i] = vec
            hits += 1
    metrics.record_cache_hits(hits)
    return hits


def _store_in_cache(
    records: Sequence[EvidenceRecord],
    vectors: List[List[float]],
    indexes: Sequence[int],
    cache: EmbeddingCache,
    model: str,
) -> None:
    items: Dict[str, List[float]] = {}
    for i in indexes:
        if vectors[i]:
            items[content_hash(records[i].content_text(), model)] = vectors[i]
    if not items:
        return
    try:
        cache.set_many(items)
    except Exception as e:
        logger.warning(f"Embedding cache write failed ({len(items)} vectors): {e}")


def _mark_path(path: str) -> None:
    last_path.set(path)
    metrics.record_path(path)


def _flat(records: Sequence[EvidenceRecord], similarity: float, top_k: int) -> List[RankedResult]:
    return [RankedResult(evidence=r, similarity=similarity) for r in records[:top_k]]


async def semantic_search(
    query: str,
    records: Sequence[EvidenceRecord],
    top_k: int = 20,
    provider: Optional[EmbeddingProvider] = None,
    cache: Optional[EmbeddingCache] = None,
) -> List[RankedResult]:
    """
    Rank `records` by cosine similarity to `query` and keep the best `top_k`.

    Paths:
      - degraded: the query could not be embedded -> records in input order, similarity 0
      - fast: most records already carry a vector -> score only those
      - fallback: the un-embedded minority (<= SEMANTIC_MAX_ON_DEMAND) is embedded in one batch
      - overflow: too many un-embedded records -> flat 0.5 for everything, input order

    Ties keep input order. Records are never mutated.
    """
    if top_k < 0:
        raise ValueError(f"top_k must be >= 0, got {top_k}")

    records = list(records)
    provider = provider or get_embedding_provider()

    with timer() as elapsed:
        query_vec = await provider.embed(query)
        if not query_vec:
            logger.warning(f"Query embedding failed - returning {min(top_k, len(records))} evidence records unranked")
            _mark_path(PATH_DEGRADED)
            return _flat(records, 0.0, top_k)

        vectors: List[List[float]] = [list(r.embedding or []) for r in records]
        if cache is not None:
            _fill_from_cache(records, vectors, cache, provider.model)

        with_idx = [i for i, v in enumerate(vectors) if v]
        without_idx = [i for i, v in enumerate(vectors) if not v]
        logger.info(f"Evidence: {len(with_idx)} have embeddings, {len(without_idx)} need generation")

        if len(with_idx) > len(without_idx):
            path = PATH_FAST
            candidates: Sequence[int] = with_idx
        elif len(without_idx) > _max_on_demand():
            logger.warning(
                f"Too many records without embeddings ({len(without_idx)}) - skipping semantic scoring"
            )
            _mark_path(PATH_OVERFLOW)
            return _flat(records, OVERFLOW_SIMILARITY, top_k)
        else:
            path = PATH_FALLBACK
            if without_idx:
                logger.info(f"Generating {len(without_idx)} embeddings (fallback mode)...")
                texts = [records[i].content_text() for i in without_idx]
                generated = await provider.embed_batch(texts)
                for i, vec in zip(without_idx, generated):
                    vectors[i] = vec or []
                if cache is not None:
                    _store_in_cache(records, vectors, without_idx, cache, provider.model)
            candidates = range(len(records))

        scored = [
            RankedResult(evidence=records[i], similarity=cosine_similarity(query_vec, vectors[i]))
            for i in candidates
        ]
        # list.sort is stable, so equal scores keep input order
        scored.sort(key=lambda r: r.similarity, reverse=True)

        _mark_path(path)
        logger.info(f"[semantic] path={path} scored={len(scored)} top_k={top_k} took={elapsed()}ms")
        return scored[:top_k]
