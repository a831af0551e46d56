# =============================================
# File: bidengine/services/evidence_store.py
# Purpose: Paginated tenant evidence fetch from the Bubble Data API
# =============================================
from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from bidengine.utils.models import EvidenceRecord

EVIDENCE_TYPE = "Project_Evidence"

# Bubble returns at most 100 records per request
DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_CURSOR = 5000
DEFAULT_TIMEOUT_S = 15.0


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _api_base() -> str:
    return os.getenv("BUBBLE_API_BASE", "").rstrip("/")


def _headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {os.getenv('BUBBLE_API_KEY', '')}"}


def _new_client() -> httpx.AsyncClient:
    timeout = float(os.getenv("EVIDENCE_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_S)))
    return httpx.AsyncClient(timeout=timeout)


def _constraints(tenant_id: str, category: Optional[str]) -> str:
    items: List[Dict[str, Any]] = [
        {"key": "project_id", "constraint_type": "equals", "value": tenant_id},
    ]
    if category:
        items.append({"key": "category", "constraint_type": "equals", "value": category})
    return json.dumps(items)


def parse_records(raw: List[Dict[str, Any]], tenant_id: str) -> List[EvidenceRecord]:
    """Validate raw Bubble rows; drop invalid, empty and foreign-tenant rows."""
    out: List[EvidenceRecord] = []
    for row in raw:
        if not isinstance(row, dict):
            logger.warning(f"Skipping evidence row of type {type(row).__name__}")
            continue
        try:
            rec = EvidenceRecord.model_validate(row)
        except ValidationError as e:
            logger.warning(f"Skipping invalid evidence row {row.get('_id', '?')}: {e.error_count()} errors")
            continue
        if not rec.has_content():
            logger.info(f"Skipping evidence {rec.id}: no content text")
            continue
        if rec.tenant_id and rec.tenant_id != tenant_id:
            logger.warning(f"Dropping evidence {rec.id}: belongs to tenant {rec.tenant_id}")
            continue
        out.append(rec)
    return out


def _response_body(data: Any) -> Optional[Dict[str, Any]]:
    """The "response" object of a Bubble payload, None when the shape is wrong."""
    if not isinstance(data, dict):
        return None
    body = data.get("response")
    return body if isinstance(body, dict) else None


async def _fetch_pages(
    client: httpx.AsyncClient,
    tenant_id: str,
    category: Optional[str],
) -> List[Dict[str, Any]]:
    page_size = _env_int("EVIDENCE_PAGE_SIZE", DEFAULT_PAGE_SIZE)
    max_cursor = _env_int("EVIDENCE_MAX_CURSOR", DEFAULT_MAX_CURSOR)
    url = f"{_api_base()}/{EVIDENCE_TYPE}"
    constraints = _constraints(tenant_id, category)

    rows: List[Dict[str, Any]] = []
    cursor = 0
    while True:
        params = {
            "constraints": constraints,
            "limit": page_size,
            "cursor": cursor,
            "sort_field": "category",
        }
        resp = await client.get(url, params=params, headers=_headers())
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(
                f"Evidence page failed (status={resp.status_code}, cursor={cursor}) - "
                f"returning {len(rows)} records fetched so far"
            )
            break

        body = _response_body(resp.json())
        if body is None:
            logger.warning(
                f"Malformed evidence page (cursor={cursor}) - "
                f"returning {len(rows)} records fetched so far"
            )
            break
        page = body.get("results") or []
        if not isinstance(page, list):
            page = []
        remaining = body.get("remaining") or 0
        rows.extend(page)

        if len(page) < page_size or remaining == 0:
            break
        cursor += page_size
        if cursor > max_cursor:
            logger.warning(f"Evidence cursor cap reached ({max_cursor}) for tenant {tenant_id}")
            break
    return rows


async def fetch_evidence(
    tenant_id: str,
    category: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[EvidenceRecord]:
    """
    All evidence for one tenant, optionally one category.

    Pages until a short page or remaining == 0. A failing page ends paging
    with what was already fetched; a transport error returns [].
    """
    own_client = client is None
    http = client or _new_client()
    try:
        raw = await _fetch_pages(http, tenant_id, category)
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to fetch evidence for tenant {tenant_id}: {e}")
        return []
    finally:
        if own_client:
            await http.aclose()

    records = parse_records(raw, tenant_id)
    logger.info(f"Fetched {len(records)} evidence records for tenant {tenant_id} (raw={len(raw)})")
    return records


async def fetch_evidence_by_id(
    evidence_id: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[EvidenceRecord]:
    own_client = client is None
    http = client or _new_client()
    try:
        resp = await http.get(f"{_api_base()}/{EVIDENCE_TYPE}/{evidence_id}", headers=_headers())
        if resp.status_code < 200 or resp.status_code >= 300:
            return None
        row = _response_body(resp.json())
        if not row:
            return None
        return EvidenceRecord.model_validate(row)
    except (httpx.HTTPError, ValueError) as e:
        # pydantic's ValidationError is a ValueError
        logger.error(f"Failed to fetch evidence {evidence_id}: {e}")
        return None
    finally:
        if own_client:
            await http.aclose()
