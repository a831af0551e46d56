# =============================================
# File: bidengine/routers/search.py
# Purpose: POST /search - rank a tenant's evidence for one tender question
# =============================================
from __future__ import annotations

import os
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from bidengine.services import semantic
from bidengine.services.embeddings import EmbeddingProvider, get_embedding_provider
from bidengine.services.evidence_store import fetch_evidence
from bidengine.services.hybrid import hybrid_search
from bidengine.utils import slog
from bidengine.utils.boost_rules import is_governance_query
from bidengine.utils.caching import InMemoryEmbeddingCache
from bidengine.utils.formatting import format_for_prompt, truncate_for_prompt
from bidengine.utils.metrics import record_rate_limit_hit, record_search
from bidengine.utils.models import RankedResult
from bidengine.utils.ratelimit import RateLimitExceeded, SlidingWindowLimiter
from bidengine.utils.timing import timer

router = APIRouter(tags=["search"])


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _default_top_k() -> int:
    return _env_int("SEARCH_DEFAULT_TOP_K", 40)


# Process-wide collaborators; tests swap or reset them
limiter = SlidingWindowLimiter()
embedding_cache = InMemoryEmbeddingCache()
# Caps provider calls for the whole process, independent of per-user limits
embedding_limiter = SlidingWindowLimiter(
    max_reqs=_env_int("EMBED_RL_MAX_REQS", 600),
    window_s=_env_int("EMBED_RL_WINDOW_SECONDS", 60),
)
_provider: Optional[EmbeddingProvider] = None


def search_provider() -> EmbeddingProvider:
    """Built once per process so the provider's HTTP pool is reused across requests."""
    global _provider
    if _provider is None:
        _provider = get_embedding_provider(limiter=embedding_limiter)
    return _provider


async def close_provider() -> None:
    global _provider
    provider, _provider = _provider, None
    aclose = getattr(provider, "aclose", None)
    if aclose is not None:
        await aclose()


# --------- Schemas ---------

class SearchRequest(BaseModel):
    """
    - tenant_id: owner of the evidence library to search.
    - query: the tender question.
    - tender_sector: sector of the tender, enables the sector affinity boost.
    - category: restrict the fetch to one evidence category.
    - governance_mode: "always" | "query"; defaults to GOVERNANCE_BOOST_MODE.
    - user_id: rate limit key (falls back to tenant_id).
    """
    tenant_id: str = Field(..., min_length=1, max_length=128)
    query: str = Field(..., min_length=1, max_length=4000)
    top_k: int = Field(default_factory=_default_top_k, ge=1, le=200)
    tender_sector: Optional[str] = None
    category: Optional[str] = None
    governance_mode: Optional[Literal["always", "query"]] = None
    user_id: Optional[str] = Field(None, max_length=128)

    @field_validator("query")
    @classmethod
    def _trim_query(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("query must not be empty")
        return v


class SearchHit(BaseModel):
    id: str
    title: str
    category: str
    client_name: str
    sector: Optional[str] = None
    similarity: float
    boosts: List[str] = []


class SearchResponse(BaseModel):
    results: List[SearchHit]
    evidence_block: str
    governance_query: bool
    total_records: int


def _to_hit(res: RankedResult) -> SearchHit:
    ev = res.evidence
    return SearchHit(
        id=ev.id,
        title=ev.title,
        category=ev.category,
        client_name=ev.client_name,
        sector=ev.sector,
        similarity=res.similarity,
        boosts=list(res.boosts),
    )


# --------- Route ---------

@router.post("/search", response_model=SearchResponse)
async def post_search(req: SearchRequest, request: Request) -> SearchResponse:
    """
    fetch tenant evidence -> semantic ranking -> boosts -> prompt block.
    HTTP 429 when the caller's window is used up.
    """
    key = req.user_id or req.tenant_id
    base_ctx = slog.search_context(req.tenant_id, req.user_id, req.query)
    try:
        limiter.check(key)
    except RateLimitExceeded:
        record_rate_limit_hit()
        request.state.log_context = {**base_ctx, "rate_limited": True}
        raise HTTPException(status_code=429, detail="Too Many Requests")

    request.state.log_context = dict(base_ctx)
    governance_query = is_governance_query(req.query)

    with timer() as elapsed:
        records = await fetch_evidence(req.tenant_id, category=req.category)
        results: List[RankedResult] = []
        path = None
        if records:
            semantic.last_path.set(None)
            results = await hybrid_search(
                req.query,
                records,
                top_k=req.top_k,
                tender_sector=req.tender_sector,
                provider=search_provider(),
                cache=embedding_cache,
                governance_mode=req.governance_mode,
            )
            path = semantic.last_path.get()
        block = truncate_for_prompt(format_for_prompt(results))
        latency_ms = elapsed()

    record_search(latency_ms)
    request.state.log_context.update({
        "semantic_path": path,
        "results": len(results),
        "total_records": len(records),
        "governance_query": governance_query,
    })
    return SearchResponse(
        results=[_to_hit(r) for r in results],
        evidence_block=block,
        governance_query=governance_query,
        total_records=len(records),
    )
