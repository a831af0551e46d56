# =============================================
# File: bidengine/utils/boost_rules.py
# Purpose: Named, enumerable boost rules used to rerank semantic results
# =============================================
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from bidengine.utils.models import EvidenceRecord

GOVERNANCE_ALWAYS = "always"
GOVERNANCE_QUERY = "query"
GOVERNANCE_MODES = (GOVERNANCE_ALWAYS, GOVERNANCE_QUERY)

KEYWORD_BOOST = 0.05
MIN_TERM_LENGTH = 4

# Phrases that make a tender question "about governance". FM / public-sector
# questions phrased as "describe your approach to X" count as well.
GOVERNANCE_QUERY_PHRASES: Tuple[str, ...] = (
    "governance", "monitoring", "oversight", "review", "meeting", "escalation",
    "kpi", "reporting", "dashboard", "audit", "steering", "committee",
    "framework", "structure",
    "management approach", "service model", "performance monitoring",
    "continuous improvement", "how you manage", "how do you manage",
    "describe your approach", "explain your approach", "outline your approach",
    "detail your approach", "set out your approach", "management system",
    "performance management", "service delivery", "client management",
    "contract management", "stakeholder management", "communication",
    "accountability", "transparency",
)

GOVERNANCE_CATEGORIES = frozenset({
    "GOVERNANCE", "KPI", "MONITORING", "REPORTING", "MANAGEMENT", "PROCESS", "SERVICE_DELIVERY",
})
GOVERNANCE_TITLE_TERMS: Tuple[str, ...] = (
    "governance", "monitoring", "kpi", "dashboard", "meeting", "review",
    "escalation", "reporting", "framework", "process", "management",
)
GOVERNANCE_VALUE_TERMS: Tuple[str, ...] = (
    "monthly review", "weekly meeting", "quarterly audit", "steering group",
    "escalation", "governance",
)


@dataclass(frozen=True)
class BoostContext:
    """Per-query inputs shared by every rule."""
    query: str                      # lowercased
    tender_sector: Optional[str] = None
    governance_mode: str = GOVERNANCE_ALWAYS
    governance_query: bool = False


@dataclass(frozen=True)
class BoostRule:
    label: str
    boost: float
    trigger: Callable[[EvidenceRecord, BoostContext], bool]


def governance_mode_from_env() -> str:
    mode = os.getenv("GOVERNANCE_BOOST_MODE", GOVERNANCE_ALWAYS).strip().lower()
    return mode if mode in GOVERNANCE_MODES else GOVERNANCE_ALWAYS


def _category(r: EvidenceRecord) -> str:
    return (r.category or "").strip().upper()


def _title(r: EvidenceRecord) -> str:
    return (r.title or "").lower()


def _value(r: EvidenceRecord) -> str:
    return (r.value or "").lower()


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(t in text for t in terms)


def is_governance_query(query: str) -> bool:
    q = (query or "").lower()
    return _contains_any(q, GOVERNANCE_QUERY_PHRASES)


def is_governance_evidence(r: EvidenceRecord) -> bool:
    return (
        _category(r) in GOVERNANCE_CATEGORIES
        or _contains_any(_title(r), GOVERNANCE_TITLE_TERMS)
        or _contains_any(_value(r), GOVERNANCE_VALUE_TERMS)
    )


def sector_matches(evidence_sector: Optional[str], tender_sector: Optional[str]) -> bool:
    """Case-insensitive substring match in either direction; blanks never match."""
    ev = (evidence_sector or "").strip().lower()
    target = (tender_sector or "").strip().lower()
    if not ev or not target:
        return False
    return ev in target or target in ev


def query_terms(query: str) -> List[str]:
    """Lowercase words longer than three characters (short connectors drop out)."""
    return [t for t in (query or "").lower().split() if len(t) >= MIN_TERM_LENGTH]


def keyword_boost(terms: Sequence[str], r: EvidenceRecord) -> Tuple[float, int]:
    """+0.05 for every query term found anywhere in title/value/source text."""
    text = r.content_text().lower()
    hits = sum(1 for t in terms if t in text)
    return hits * KEYWORD_BOOST, hits


def _topic(query_word: str, category: str) -> Callable[[EvidenceRecord, BoostContext], bool]:
    def trigger(r: EvidenceRecord, ctx: BoostContext) -> bool:
        return query_word in ctx.query and _category(r) == category
    return trigger


def _family(
    categories: Iterable[str],
    title_terms: Iterable[str] = (),
    value_terms: Iterable[str] = (),
) -> Callable[[EvidenceRecord, BoostContext], bool]:
    cats = frozenset(categories)
    titles = tuple(title_terms)
    values = tuple(value_terms)

    def trigger(r: EvidenceRecord, ctx: BoostContext) -> bool:
        return (
            _category(r) in cats
            or _contains_any(_title(r), titles)
            or _contains_any(_value(r), values)
        )
    return trigger


def _governance(r: EvidenceRecord, ctx: BoostContext) -> bool:
    if not is_governance_evidence(r):
        return False
    # "always" boosts governance evidence for every question
    return ctx.governance_mode == GOVERNANCE_ALWAYS or ctx.governance_query


def _sector(r: EvidenceRecord, ctx: BoostContext) -> bool:
    return sector_matches(r.sector, ctx.tender_sector)


BOOST_RULES: Tuple[BoostRule, ...] = (
    # Query topic + matching category
    BoostRule("topic:safety", 0.10, _topic("safety", "SAFETY")),
    BoostRule("topic:mobilisation", 0.10, _topic("mobilisation", "MOBILISATION")),
    BoostRule("topic:compliance", 0.10, _topic("compliance", "KPI")),
    BoostRule("topic:energy", 0.10, _topic("energy", "SUSTAINABILITY")),
    BoostRule("topic:sustainability", 0.10, _topic("sustainability", "SUSTAINABILITY")),

    BoostRule("governance", 0.40, _governance),

    # Key FM evidence families, regardless of the question
    BoostRule("family:safety", 0.30, _family(
        ("SAFETY", "HEALTH_SAFETY"),
        title_terms=("safety", "riddor", "incident"),
    )),
    BoostRule("family:resources", 0.30, _family(
        ("RESOURCES", "MOBILISATION"),
        title_terms=("mobilisation", "tupe", "resource", "staff", "team"),
    )),
    BoostRule("family:quality", 0.30, _family(
        ("QUALITY", "COMPLIANCE"),
        title_terms=("compliance", "quality", "iso", "audit"),
    )),
    BoostRule("family:performance", 0.30, _family(
        ("FINANCIALS", "PERFORMANCE"),
        title_terms=("sla", "ppm", "kpi"),
        value_terms=("% completion", "% compliance"),
    )),
    BoostRule("family:social_value", 0.30, _family(
        ("SOCIAL_VALUE",),
        title_terms=("apprentice", "social value", "community", "volunteer"),
    )),
    BoostRule("family:innovation", 0.30, _family(
        ("INNOVATION", "SUSTAINABILITY"),
        title_terms=("innovation", "carbon", "energy", "sustainability"),
    )),

    BoostRule("client_feedback", 0.35, _family(
        ("CLIENT_FEEDBACK", "TESTIMONIAL"),
        title_terms=("testimonial", "feedback", "satisfaction"),
    )),

    # Same-sector evidence is the strongest signal we have
    BoostRule("sector", 0.50, _sector),
)


def apply_rules(
    r: EvidenceRecord,
    ctx: BoostContext,
    rules: Sequence[BoostRule] = BOOST_RULES,
) -> Tuple[float, List[str]]:
    """Sum of the boosts whose trigger fires for `r`, plus their labels."""
    total = 0.0
    labels: List[str] = []
    for rule in rules:
        if rule.trigger(r, ctx):
            total += rule.boost
            labels.append(rule.label)
    return total, labels
