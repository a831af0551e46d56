# =============================================
# File: bidengine/utils/models.py
# Purpose: Evidence records as delivered by the store + ranked search results
# =============================================
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class EvidenceRecord(BaseModel):
    """
    One piece of tenant evidence (case study, KPI, certification, testimonial...).

    Field aliases follow the Bubble "Project_Evidence" payload:
    - `_id` -> id
    - `project_id` -> tenant_id (the owning tenant, not the end client)
    - `client_name` / `end_client_name` -> client_name
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    title: str = ""
    value: str = ""
    source_text: str = ""
    category: str = "OTHER"
    client_name: str = Field("", validation_alias=AliasChoices("client_name", "end_client_name"))
    tenant_id: str = Field("", validation_alias=AliasChoices("project_id", "tenant_id"))
    sector: Optional[str] = None
    embedding: Optional[List[float]] = None

    @field_validator("title", "value", "source_text", "client_name", "tenant_id", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return "OTHER"
        return str(v)

    @field_validator("sector", mode="before")
    @classmethod
    def _blank_sector(cls, v: Any) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v)

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_embedding(cls, v: Any) -> Optional[List[float]]:
        # The store keeps vectors as a JSON string field
        if v is None or v == "":
            return None
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                return None
        if not isinstance(v, (list, tuple)) or not v:
            return None
        try:
            return [float(x) for x in v]
        except (TypeError, ValueError):
            return None

    def content_text(self) -> str:
        """Text used to embed the record: title, value and source text."""
        return f"{self.title} {self.value} {self.source_text}"

    def has_content(self) -> bool:
        return bool(self.title.strip() or self.value.strip() or self.source_text.strip())

    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass(frozen=True)
class RankedResult:
    """A record plus its (possibly boosted) relevance for one query."""
    evidence: EvidenceRecord
    similarity: float
    boosts: Tuple[str, ...] = ()
