# =============================================
# File: tests/fakes.py
# Purpose: Deterministic embedding provider + record builders shared by tests
# =============================================
from typing import Dict, List, Optional, Sequence

from bidengine.utils.models import EvidenceRecord


class FakeProvider:
    """
    In-memory stand-in for an embedding backend.
    - query vector is fixed (or [] when fail_query)
    - batch vectors come from `vectors` by text, else `default`
    """
    model = "fake-embed"

    def __init__(
        self,
        query_vec: Sequence[float] = (1.0, 0.0),
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Sequence[float] = (1.0, 0.0),
        fail_query: bool = False,
        fail_batch: bool = False,
    ):
        self.query_vec = list(query_vec)
        self.vectors = vectors or {}
        self.default = list(default)
        self.fail_query = fail_query
        self.fail_batch = fail_batch
        self.query_calls = 0
        self.batch_calls: List[List[str]] = []

    async def embed(self, text: str) -> List[float]:
        self.query_calls += 1
        return [] if self.fail_query else list(self.query_vec)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        if self.fail_batch:
            return [[] for _ in texts]
        return [list(self.vectors.get(t, self.default)) for t in texts]


def make_record(
    rid: str,
    embedding: Optional[List[float]] = None,
    category: str = "OTHER",
    title: Optional[str] = None,
    value: str = "",
    source_text: str = "",
    sector: Optional[str] = None,
    client_name: str = "",
    tenant_id: str = "t1",
) -> EvidenceRecord:
    return EvidenceRecord(
        id=rid,
        title=title if title is not None else f"Evidence {rid}",
        value=value,
        source_text=source_text,
        category=category,
        sector=sector,
        client_name=client_name,
        tenant_id=tenant_id,
        embedding=embedding,
    )
