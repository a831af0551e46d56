# =============================================
# File: bidengine/utils/similarity.py
# Purpose: Cosine similarity between embedding vectors
# =============================================
from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when the vectors differ in length, either one is empty, or
    either one has zero magnitude, so "no embedding" always ranks lowest.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    magnitude = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)
