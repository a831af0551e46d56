# =============================================
# File: bidengine/utils/local_embeddings.py
# Purpose: Local sentence-transformers embedding backend (no API key required)
# =============================================
from __future__ import annotations

import asyncio
import os
from functools import lru_cache
from typing import List, Optional, Sequence

from loguru import logger
from sentence_transformers import SentenceTransformer

from bidengine.services.embeddings import check_limiter, non_blank_positions, truncate_text
from bidengine.utils import metrics
from bidengine.utils.ratelimit import RateLimiter

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


@lru_cache(maxsize=2)
def get_embedding_model(model_name: str) -> SentenceTransformer:
    return SentenceTransformer(model_name, device="cpu")


def embed_texts(texts: List[str], model_name: str) -> List[List[float]]:
    model = get_embedding_model(model_name)
    # model outputs numpy array -> convert to python lists
    return model.encode(texts, normalize_embeddings=True).tolist()


class LocalEmbeddingProvider:
    """Runs the encoder in a worker thread so the event loop stays free."""

    def __init__(
        self,
        model: Optional[str] = None,
        limiter: Optional[RateLimiter] = None,
        max_chars: Optional[int] = None,
    ) -> None:
        self.model = model or os.getenv("LOCAL_EMBEDDING_MODEL", DEFAULT_LOCAL_MODEL)
        self._limiter = limiter
        self._max_chars = max_chars

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        out: List[List[float]] = [[] for _ in texts]
        positions = non_blank_positions(texts)
        if not positions:
            return out
        if not check_limiter(self._limiter, "local"):
            return out

        inputs = [truncate_text(texts[i], self._max_chars) for i in positions]
        try:
            vectors = await asyncio.to_thread(embed_texts, inputs, self.model)
        except Exception as e:
            logger.error(f"Local embedding error ({self.model}): {e}")
            metrics.record_embedding_call(len(inputs), failed=True)
            return out

        for pos, vec in zip(positions, vectors):
            out[pos] = vec
        metrics.record_embedding_call(len(inputs), failed=False)
        return out
