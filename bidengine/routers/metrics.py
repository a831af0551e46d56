# =============================================
# File: bidengine/routers/metrics.py
# Purpose: Expose search/embedding metrics as JSON
# =============================================
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from bidengine.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Counters, semantic path counts, latency histogram, per-endpoint latency."""
    return snapshot()
