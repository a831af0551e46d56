# =============================================
# File: tests/test_boost_rules.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from fakes import make_record

from bidengine.utils.boost_rules import (
    BOOST_RULES,
    BoostContext,
    apply_rules,
    governance_mode_from_env,
    is_governance_query,
    keyword_boost,
    query_terms,
    sector_matches,
)


def _ctx(query="", sector=None, mode="always"):
    q = query.lower()
    return BoostContext(query=q, tender_sector=sector, governance_mode=mode, governance_query=is_governance_query(q))


def test_governance_intent_detection():
    assert is_governance_query("Describe your approach to contract management")
    assert is_governance_query("How will you report KPI performance monthly?")
    assert not is_governance_query("What cleaning products do you use?")
    assert not is_governance_query("")


def test_query_terms_drop_short_words():
    assert query_terms("How do we keep site SAFETY high") == ["keep", "site", "safety", "high"]


def test_keyword_boost_per_term():
    rec = make_record("r", title="Site safety record", value="Zero lost time")
    boost, hits = keyword_boost(["site", "safety", "zzzz"], rec)
    assert hits == 2
    assert boost == pytest.approx(0.10)


@pytest.mark.parametrize("ev,target,expected", [
    ("Healthcare", "NHS Healthcare Trust", True),
    ("nhs healthcare trust", "HEALTHCARE", True),
    ("Education", "Healthcare", False),
    ("", "Healthcare", False),
    (None, "Healthcare", False),
    ("Healthcare", "  ", False),
])
def test_sector_matching(ev, target, expected):
    assert sector_matches(ev, target) is expected


def test_governance_category_boost_is_case_insensitive():
    rec = make_record("g", category="governance", title="Contract oversight")
    total, labels = apply_rules(rec, _ctx("What cleaning products do you use?"))
    assert total == pytest.approx(0.40)
    assert labels == ["governance"]


def test_query_mode_skips_governance_for_other_questions():
    rec = make_record("g", category="GOVERNANCE", title="Contract oversight")
    total, labels = apply_rules(rec, _ctx("What cleaning products do you use?", mode="query"))
    assert total == 0.0 and labels == []

    total, labels = apply_rules(rec, _ctx("Describe your governance structure", mode="query"))
    assert labels == ["governance"]


def test_governance_detected_from_value_phrase():
    rec = make_record("g", title="Client account", value="Monthly review with the steering group")
    _, labels = apply_rules(rec, _ctx("anything"))
    assert "governance" in labels


def test_compliance_topic_maps_to_kpi():
    rec = make_record("k", category="KPI", title="Monthly figures")
    total, labels = apply_rules(rec, _ctx("Demonstrate compliance with regulations"))
    assert labels == ["topic:compliance", "governance"]
    assert total == pytest.approx(0.50)


def test_family_boosts():
    safety = make_record("s", category="HEALTH_SAFETY", title="Zero harm")
    _, labels = apply_rules(safety, _ctx())
    assert labels == ["family:safety"]

    social = make_record("sv", title="Apprentice scheme", category="OTHER")
    _, labels = apply_rules(social, _ctx())
    assert labels == ["family:social_value"]

    perf = make_record("p", title="Contract results", value="98% completion of planned tasks")
    _, labels = apply_rules(perf, _ctx())
    assert labels == ["family:performance"]


def test_client_feedback_boost():
    rec = make_record("t", title="Client testimonial from estates director")
    total, labels = apply_rules(rec, _ctx())
    assert labels == ["client_feedback"]
    assert total == pytest.approx(0.35)


def test_sector_boost():
    rec = make_record("h", title="Ward refurbishment", sector="Healthcare")
    total, labels = apply_rules(rec, _ctx(sector="NHS Healthcare"))
    assert labels == ["sector"]
    assert total == pytest.approx(0.50)


def test_bare_record_matches_nothing():
    rec = make_record("x", title="x")
    assert apply_rules(rec, _ctx("safety compliance energy", sector="Healthcare")) == (0.0, [])


def test_rule_labels_are_unique():
    labels = [r.label for r in BOOST_RULES]
    assert len(labels) == len(set(labels))


def test_mode_from_env(monkeypatch):
    monkeypatch.delenv("GOVERNANCE_BOOST_MODE", raising=False)
    assert governance_mode_from_env() == "always"
    monkeypatch.setenv("GOVERNANCE_BOOST_MODE", "Query")
    assert governance_mode_from_env() == "query"
    monkeypatch.setenv("GOVERNANCE_BOOST_MODE", "sometimes")
    assert governance_mode_from_env() == "always"
