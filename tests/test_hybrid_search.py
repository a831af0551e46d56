# =============================================
# File: tests/test_hybrid_search.py
# Purpose: Boosted reranking over semantic results
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from fakes import FakeProvider, make_record

from bidengine.services.hybrid import hybrid_search

# cosine([1, 0], [0.2, 1]) ~= 0.196, leaves room below 1.0 for boosts
LOW = [0.2, 1.0]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("GOVERNANCE_BOOST_MODE", raising=False)
    monkeypatch.delenv("SEMANTIC_MAX_ON_DEMAND", raising=False)


def _tender_library():
    """120 records: 100 embedded (governance, sector and plain ones first), 20 not."""
    records = [
        make_record("sector-hit", LOW, title="Ward refurbishment", sector="Healthcare Estates"),
        make_record("gov", LOW, category="GOVERNANCE", title="Evidence item G"),
        make_record("plain", LOW, category="OTHER", title="Evidence item O"),
    ]
    records += [make_record(f"e{i}", LOW, title=f"Evidence item {i}") for i in range(97)]
    records += [make_record(f"n{i}", title=f"Unembedded item {i}") for i in range(20)]
    return records


@pytest.mark.asyncio
async def test_end_to_end_governance_and_sector():
    out = await hybrid_search(
        "Describe your approach to contract governance",
        _tender_library(),
        top_k=25,
        tender_sector="Healthcare",
        provider=FakeProvider(),
    )

    assert len(out) == 25
    ids = [r.evidence.id for r in out]
    # fast path: the 20 un-embedded records never appear
    assert not any(i.startswith("n") for i in ids)
    assert all(0.0 <= r.similarity <= 1.0 for r in out)

    by_id = {r.evidence.id: r for r in out}
    assert ids[0] == "sector-hit"
    assert "sector" in by_id["sector-hit"].boosts
    assert ids[1] == "gov"
    assert by_id["gov"].similarity - by_id["plain"].similarity >= 0.30
    assert by_id["plain"].boosts == ()


@pytest.mark.asyncio
async def test_scores_are_clamped_to_one():
    heavy = make_record(
        "heavy", [1.0, 0.0], category="GOVERNANCE",
        title="Safety KPI dashboard testimonial", sector="Healthcare",
    )
    out = await hybrid_search("safety kpi dashboard", [heavy], top_k=5, tender_sector="Healthcare", provider=FakeProvider())
    assert out[0].similarity == 1.0
    assert len(out[0].boosts) > 3


@pytest.mark.asyncio
async def test_negative_similarity_is_clamped_to_zero():
    # cosine([1, 0], [-1, 0]) == -1
    opposite = make_record("opposite", [-1.0, 0.0], title="Evidence opposite")
    out = await hybrid_search("cleaning regime", [opposite], top_k=5, provider=FakeProvider())
    assert out[0].evidence.id == "opposite"
    assert out[0].boosts == ()
    assert out[0].similarity == 0.0


@pytest.mark.asyncio
async def test_total_provider_failure_still_returns_results():
    records = [make_record(f"n{i}", category="GOVERNANCE" if i % 3 == 0 else "OTHER") for i in range(30)]
    p = FakeProvider(fail_query=True, fail_batch=True)

    out = await hybrid_search("governance question", records, top_k=10, provider=p)

    assert len(out) == 10
    assert all(0.0 <= r.similarity <= 1.0 for r in out)


@pytest.mark.asyncio
async def test_top_k_larger_than_library():
    records = [make_record(f"r{i}", [1.0, float(i)]) for i in range(4)]
    out = await hybrid_search("anything", records, top_k=50, provider=FakeProvider())
    assert len(out) == 4


@pytest.mark.asyncio
async def test_sector_boost_never_lowers_a_score():
    records = [
        make_record("a", [1.0, 0.3], sector="Healthcare"),
        make_record("b", [1.0, 2.0], sector="Education"),
        make_record("c", LOW),
        make_record("d", [0.4, 1.0], sector="NHS healthcare"),
    ]
    without = await hybrid_search("cleaning regime", records, top_k=4, provider=FakeProvider())
    with_sector = await hybrid_search("cleaning regime", records, top_k=4, tender_sector="healthcare", provider=FakeProvider())

    before = {r.evidence.id: r.similarity for r in without}
    after = {r.evidence.id: r.similarity for r in with_sector}
    for rid in before:
        assert after[rid] >= before[rid]
    assert after["d"] > before["d"]


@pytest.mark.asyncio
async def test_query_mode_gates_governance_boost():
    records = [make_record("gov", LOW, category="GOVERNANCE"), make_record("plain", LOW)]

    gated = await hybrid_search("What cleaning products do you use?", records, top_k=2,
                                provider=FakeProvider(), governance_mode="query")
    assert all("governance" not in r.boosts for r in gated)

    always = await hybrid_search("What cleaning products do you use?", records, top_k=2,
                                 provider=FakeProvider(), governance_mode="always")
    assert always[0].evidence.id == "gov"
    assert "governance" in always[0].boosts


@pytest.mark.asyncio
async def test_governance_mode_from_env(monkeypatch):
    monkeypatch.setenv("GOVERNANCE_BOOST_MODE", "query")
    records = [make_record("gov", LOW, category="GOVERNANCE")]
    out = await hybrid_search("What cleaning products do you use?", records, top_k=1, provider=FakeProvider())
    assert out[0].boosts == ()


@pytest.mark.asyncio
async def test_keyword_boost_is_labelled():
    records = [
        make_record("plain", LOW, title="Window cleaning"),
        make_record("match", LOW, title="Deep cleaning of theatres"),
    ]
    out = await hybrid_search("theatres cleaning", records, top_k=2, provider=FakeProvider())
    assert out[0].evidence.id == "match"
    assert out[0].boosts == ("keyword:2",)
    assert out[1].boosts == ("keyword:1",)


@pytest.mark.asyncio
async def test_negative_top_k_raises():
    with pytest.raises(ValueError):
        await hybrid_search("q", [], top_k=-1, provider=FakeProvider())
