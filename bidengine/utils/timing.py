# =============================================
# File: bidengine/utils/timing.py
# Purpose: Elapsed-time helper for search/embedding latency logging
# =============================================
import time
from contextlib import contextmanager
from typing import Callable, Iterator


@contextmanager
def timer() -> Iterator[Callable[[], int]]:
    """Yield a callable returning elapsed milliseconds since entry."""
    t0 = time.perf_counter()
    yield lambda: int((time.perf_counter() - t0) * 1000)
