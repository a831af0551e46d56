# =============================================
# File: bidengine/services/embeddings.py
# Purpose: Embedding provider client (OpenAI embeddings API) that never raises
# =============================================
from __future__ import annotations

import os
from typing import List, Optional, Protocol, Sequence

from loguru import logger
from openai import AsyncOpenAI

from bidengine.utils import metrics
from bidengine.utils.ratelimit import RateLimiter, RateLimitExceeded

# text-embedding-3-small is cheap and good enough for evidence ranking
DEFAULT_MODEL = "text-embedding-3-small"

# Roughly the provider's input token ceiling
DEFAULT_MAX_CHARS = 8000
DEFAULT_TIMEOUT_S = 20.0

# Limiter key used for all embedding calls of a provider
LIMITER_KEY = "embeddings"


class EmbeddingProvider(Protocol):
    """
    Contract shared by every backend.

    An empty vector means "embedding unavailable"; backends return it
    instead of raising so ranking can degrade.
    """
    model: str

    async def embed(self, text: str) -> List[float]:
        ...

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


def _max_chars() -> int:
    try:
        return int(os.getenv("EMBEDDING_MAX_CHARS", str(DEFAULT_MAX_CHARS)))
    except ValueError:
        return DEFAULT_MAX_CHARS


def truncate_text(text: str, max_chars: Optional[int] = None) -> str:
    """Cut oversize input instead of failing the whole ranking."""
    limit = max_chars if max_chars is not None else _max_chars()
    return (text or "")[:limit]


def non_blank_positions(texts: Sequence[str]) -> List[int]:
    """Indexes of texts worth sending; blank ones stay empty vectors."""
    return [i for i, t in enumerate(texts) if t and t.strip()]


def check_limiter(limiter: Optional[RateLimiter], backend: str) -> bool:
    """True when the call may go ahead."""
    if limiter is None:
        return True
    try:
        limiter.check(LIMITER_KEY)
    except RateLimitExceeded:
        logger.warning(f"[embeddings] {backend} call refused by rate limiter - returning empty vectors")
        metrics.record_embedding_call(0, failed=True)
        return False
    return True


class OpenAIEmbeddingProvider:
    """
    Async client for the OpenAI embeddings endpoint
    (POST {model, input} -> {data: [{embedding: [...]}, ...]}).

    A missing API key, transport error, non-2xx response or malformed
    payload all yield empty vectors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        limiter: Optional[RateLimiter] = None,
        timeout: Optional[float] = None,
        max_chars: Optional[int] = None,
    ) -> None:
        self.model = model or os.getenv("EMBEDDING_MODEL", DEFAULT_MODEL)
        self._api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self._client = client
        self._limiter = limiter
        self._timeout = timeout if timeout is not None else float(
            os.getenv("EMBEDDING_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_S))
        )
        self._max_chars = max_chars

    def _get_client(self) -> Optional[AsyncOpenAI]:
        if self._client is not None:
            return self._client
        if not self._api_key:
            return None
        # No retries here: the surrounding request owns the deadline
        self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed many texts in one provider call.

        Output is 1:1 with the input. Blank texts and items missing from the
        provider response come back as [] at their own position.
        """
        out: List[List[float]] = [[] for _ in texts]
        positions = non_blank_positions(texts)
        if not positions:
            return out

        client = self._get_client()
        if client is None:
            logger.warning("OpenAI API key not configured - semantic search disabled")
            return out

        if not check_limiter(self._limiter, "openai"):
            return out

        inputs = [truncate_text(texts[i], self._max_chars) for i in positions]
        try:
            resp = await client.embeddings.create(model=self.model, input=inputs)
        except Exception as e:
            logger.error(f"OpenAI embedding error ({len(inputs)} texts): {e}")
            metrics.record_embedding_call(len(inputs), failed=True)
            return out

        data = getattr(resp, "data", None) or []
        filled = 0
        for pos, item in enumerate(data):
            # Prefer the provider's index; fall back to arrival order
            idx = getattr(item, "index", None)
            if not isinstance(idx, int):
                idx = pos
            emb = getattr(item, "embedding", None)
            if not 0 <= idx < len(positions) or not emb:
                continue
            try:
                out[positions[idx]] = [float(x) for x in emb]
                filled += 1
            except (TypeError, ValueError):
                continue

        if filled < len(inputs):
            logger.warning(f"[embeddings] provider returned {filled}/{len(inputs)} vectors")
        metrics.record_embedding_call(len(inputs), failed=filled == 0)
        return out

    async def aclose(self) -> None:
        """Close the HTTP pool of a client this provider built or was given."""
        if self._client is not None:
            await self._client.close()
            self._client = None


def get_embedding_provider(limiter: Optional[RateLimiter] = None) -> EmbeddingProvider:
    """Build the backend named by EMBEDDING_BACKEND ("openai" or "local")."""
    backend = os.getenv("EMBEDDING_BACKEND", "openai").strip().lower()
    if backend == "local":
        # sentence-transformers pulls in torch; only import it when asked for
        from bidengine.utils.local_embeddings import LocalEmbeddingProvider
        return LocalEmbeddingProvider(limiter=limiter)
    if backend != "openai":
        logger.warning(f"Unknown EMBEDDING_BACKEND={backend!r}, using openai")
    return OpenAIEmbeddingProvider(limiter=limiter)
