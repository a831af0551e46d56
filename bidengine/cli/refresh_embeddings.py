# =============================================
# File: bidengine/cli/refresh_embeddings.py
# Purpose: CLI entrypoint to precompute a tenant's evidence embeddings into Chroma.
# Usage:
#   python -m bidengine.cli.refresh_embeddings --tenant <tenant_id> --persist .chroma
# =============================================
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from bidengine.services.embeddings import EmbeddingProvider, get_embedding_provider
from bidengine.services.evidence_store import fetch_evidence
from bidengine.services.vector_cache import ChromaEmbeddingCache, default_collection, default_persist_dir
from bidengine.utils.caching import EmbeddingCache, content_hash
from bidengine.utils.logging import configure_logging
from bidengine.utils.models import EvidenceRecord


async def refresh_embeddings(
    records: List[EvidenceRecord],
    provider: EmbeddingProvider,
    cache: EmbeddingCache,
) -> Tuple[int, int]:
    """
    Embed records that have neither a stored nor a cached vector.
    Returns: (embedded, skipped)
    """
    keys = [content_hash(r.content_text(), provider.model) for r in records]
    cached = cache.get_many(keys)

    todo = [
        (k, r) for k, r in zip(keys, records)
        if not r.has_embedding() and k not in cached
    ]
    if not todo:
        return 0, len(records)

    vectors = await provider.embed_batch([r.content_text() for _, r in todo])
    items = {k: v for (k, _), v in zip(todo, vectors) if v}
    cache.set_many(items)
    return len(items), len(records) - len(todo)


async def _run(tenant: str, category: Optional[str], persist: str, collection: str) -> Tuple[int, int, int]:
    records = await fetch_evidence(tenant, category=category)
    if not records:
        return 0, 0, 0
    cache = ChromaEmbeddingCache(collection=collection, persist_dir=persist)
    embedded, skipped = await refresh_embeddings(records, get_embedding_provider(), cache)
    return len(records), embedded, skipped


def main(argv=None):
    load_dotenv()
    configure_logging()

    ap = argparse.ArgumentParser(description="Precompute evidence embeddings for a tenant into Chroma.")
    ap.add_argument("--tenant", required=True, help="Tenant (project) id whose evidence to embed")
    ap.add_argument("--category", default=None, help="Only this evidence category")
    ap.add_argument("--persist", default=default_persist_dir(), help="Chroma persist dir (default: .chroma)")
    ap.add_argument("--collection", default=default_collection(), help="Chroma collection name")
    args = ap.parse_args(argv)

    total, embedded, skipped = asyncio.run(_run(args.tenant, args.category, args.persist, args.collection))

    if total == 0:
        print(f"[WARN] No evidence found for tenant '{args.tenant}'.", file=sys.stderr)
        sys.exit(1)

    failed = total - embedded - skipped
    print(
        f"[OK] {total} records: {embedded} embedded, {skipped} already had vectors, "
        f"{failed} failed. Collection '{args.collection}' in {args.persist}"
    )


if __name__ == "__main__":
    main()
