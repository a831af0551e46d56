# =============================================
# File: bidengine/services/hybrid.py
# Purpose: Semantic ranking + keyword/category/sector boosts (tender reranker)
# =============================================
from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger

from bidengine.services.embeddings import EmbeddingProvider
from bidengine.services.semantic import semantic_search
from bidengine.utils.boost_rules import (
    BOOST_RULES,
    GOVERNANCE_MODES,
    BoostContext,
    apply_rules,
    governance_mode_from_env,
    is_governance_query,
    keyword_boost,
    query_terms,
)
from bidengine.utils.caching import EmbeddingCache
from bidengine.utils.models import EvidenceRecord, RankedResult


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def _resolve_mode(governance_mode: Optional[str]) -> str:
    if governance_mode is None:
        return governance_mode_from_env()
    mode = governance_mode.strip().lower()
    if mode not in GOVERNANCE_MODES:
        logger.warning(f"Unknown governance_mode={governance_mode!r}, using env default")
        return governance_mode_from_env()
    return mode


async def hybrid_search(
    query: str,
    records: Sequence[EvidenceRecord],
    top_k: int = 25,
    tender_sector: Optional[str] = None,
    provider: Optional[EmbeddingProvider] = None,
    cache: Optional[EmbeddingCache] = None,
    governance_mode: Optional[str] = None,
) -> List[RankedResult]:
    """
    Rerank semantic results with the boost rule table.

    The semantic pass over-fetches (2 * top_k) so boosted records from just
    below the cut can climb into the final list. Final similarity is
    clamped to [0, 1]; ties keep semantic order.
    """
    if top_k < 0:
        raise ValueError(f"top_k must be >= 0, got {top_k}")

    semantic = await semantic_search(query, records, top_k=top_k * 2, provider=provider, cache=cache)

    q = (query or "").lower()
    ctx = BoostContext(
        query=q,
        tender_sector=tender_sector,
        governance_mode=_resolve_mode(governance_mode),
        governance_query=is_governance_query(q),
    )
    terms = query_terms(q)

    boosted: List[RankedResult] = []
    for res in semantic:
        kw, hits = keyword_boost(terms, res.evidence)
        rule_total, labels = apply_rules(res.evidence, ctx, BOOST_RULES)
        if hits:
            labels.insert(0, f"keyword:{hits}")
        score = _clamp01(res.similarity + kw + rule_total)
        boosted.append(RankedResult(evidence=res.evidence, similarity=score, boosts=tuple(labels)))

    boosted.sort(key=lambda r: r.similarity, reverse=True)

    logger.info(
        f"[hybrid] candidates={len(semantic)} top_k={top_k} "
        f"governance_query={ctx.governance_query} mode={ctx.governance_mode} "
        f"sector={tender_sector or '-'}"
    )
    return boosted[:top_k]
