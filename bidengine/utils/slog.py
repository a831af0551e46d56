# =============================================
# File: bidengine/utils/slog.py
# Purpose: One JSON line per search request (stdlib logging, logger "bidengine")
# =============================================
from __future__ import annotations

import hashlib
import json
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

SERVICE = "bidengine"

_logger = logging.getLogger(SERVICE)
if not _logger.handlers:
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
    _handler = logging.StreamHandler()
    # payloads are already JSON strings
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.propagate = True  # pytest caplog listens on the root logger


def qhash(text: str) -> str:
    """10-char hash of the normalised question; tender questions stay out of the logs."""
    norm = " ".join((text or "").strip().lower().split())
    return hashlib.sha256(norm.encode("utf-8")).hexdigest()[:10]


def new_request_id() -> str:
    return uuid.uuid4().hex


def search_context(tenant_id: str, user_id: Optional[str], query: str) -> Dict[str, Any]:
    """Base fields every /search log line carries; the router adds outcome fields."""
    return {"tenant_id": tenant_id, "user_id": user_id, "qhash": qhash(query)}


def _emit(payload: Dict[str, Any]) -> None:
    payload.setdefault("service", SERVICE)
    payload.setdefault("ts", round(time.time(), 3))
    _logger.info(json.dumps(payload, ensure_ascii=False, default=str))


def log_event(event: str, **fields: Any) -> None:
    _emit({"event": event, **fields})


def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: Optional[str],
    ctx: Optional[Dict[str, Any]] = None,
) -> None:
    payload: Dict[str, Any] = {
        "event": "request.completed",
        "request_id": request_id,
        "method": method,
        "path": path,
        "status": status,
        "latency_ms": latency_ms,
        "client_ip": client_ip or "",
    }
    if ctx:
        # request fields win over router context on key clashes
        payload.update({k: v for k, v in ctx.items() if k not in payload})
    _emit(payload)
