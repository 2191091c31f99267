import pytest

from models import ClassificationResult, TrackedIssue
from pipeline import vulnerability as vuln


def annotate(store, item, sentiment="neutral", controversy=False):
    store.add_item(item)
    store.set_annotation(item.id, ClassificationResult(
        sentiment=sentiment, is_controversy=controversy,
        controversy_severity="high" if controversy else None))


def open_issue(store, issue_id, severity, status="open", cid="c1"):
    store.save_issue(TrackedIssue(id=issue_id, constituency_id=cid, title=issue_id,
                                  category="infrastructure", severity=severity, status=status))


@pytest.fixture
def scorer(store, clock):
    return vuln.VulnerabilityScorer(store, clock=clock)


def seed_sixty_two(store, make_item):
    # 10 items, 6 negative of which 2 are controversies
    for n in range(10):
        item = make_item("Ward report number {}".format(n))
        if n < 2:
            annotate(store, item, "negative", controversy=True)
        elif n < 6:
            annotate(store, item, "negative")
        else:
            annotate(store, item, "neutral")
    open_issue(store, "iss_a", "high")
    open_issue(store, "iss_b", "medium")
    open_issue(store, "iss_c", "critical", status="resolved")


def test_breakdown_for_reference_case():
    breakdown = vuln.score_breakdown(10, 6, 2, 1, 4.0)
    assert breakdown == {"news_impact": 18.0, "controversy_impact": 20.0,
                         "grievance_impact": 4.0, "margin_risk": 20.0}
    assert vuln.total_score(breakdown) == 62


def test_compute_score_from_store(scorer, store, constituency, make_item):
    seed_sixty_two(store, make_item)
    record = scorer.compute_score("c1")
    assert record.score == 62
    assert record.inputs["total_news"] == 10
    assert record.inputs["negative_news"] == 6
    assert record.inputs["controversies"] == 2
    assert record.inputs["open_high_issues"] == 1
    assert record.inputs["margin_pct"] == 4.0
    assert record.previous_score is None
    assert record.trend == "stable"
    assert store.get_constituency("c1").current_score == 62


@pytest.mark.parametrize("margin,expected", [
    (None, 0), (0.5, 20), (4.99, 20), (5, 15), (9.9, 15), (10, 10), (14.99, 10), (15, 5), (40, 5),
])
def test_margin_risk_bands(margin, expected):
    assert vuln.margin_risk(margin) == expected


def test_components_are_capped():
    breakdown = vuln.score_breakdown(3, 3, 9, 12, 1.0)
    assert breakdown["news_impact"] == 30.0
    assert breakdown["controversy_impact"] == 30.0
    assert breakdown["grievance_impact"] == 20.0
    assert vuln.total_score(breakdown) == 100


def test_no_news_and_no_margin_scores_zero():
    breakdown = vuln.score_breakdown(0, 0, 0, 0, None)
    assert vuln.total_score(breakdown) == 0


def test_total_rounds_half_up():
    assert vuln.total_score({"a": 10.5}) == 11
    assert vuln.total_score({"a": 10.49}) == 10


@pytest.mark.parametrize("previous,score,expected", [
    (None, 70, "stable"), (60, 62, "stable"), (60, 58, "stable"),
    (60, 63, "declining"), (60, 57, "improving"),
])
def test_trend(previous, score, expected):
    assert vuln.trend(previous, score) == expected


def test_history_grows_and_trend_follows(scorer, store, constituency, make_item):
    first = scorer.compute_score("c1")
    assert first.score == 20

    seed_sixty_two(store, make_item)
    second = scorer.compute_score("c1")
    assert second.previous_score == 20
    assert second.trend == "declining"
    assert second.id != first.id
    assert [r.score for r in store.score_history("c1")] == [20, 62]


def test_missing_margin_contributes_zero(scorer, store, make_item):
    annotate(store, make_item("Flyover collapse", constituency_id="c9"), "negative")
    record = scorer.compute_score("c9")
    assert record.inputs["margin_pct"] is None
    assert record.breakdown["margin_risk"] == 0.0
    assert record.score == 30


def test_old_items_fall_outside_window(scorer, store, clock, constituency, make_item):
    annotate(store, make_item("Old scandal", published_at="2024-04-01T00:00:00+00:00"), "negative")
    annotate(store, make_item("Recent inauguration"), "positive")
    record = scorer.compute_score("c1")
    assert record.inputs["total_news"] == 1
    assert record.inputs["negative_news"] == 0

    wide = scorer.compute_score("c1", window_days=90)
    assert wide.inputs["total_news"] == 2


def test_unannotated_items_are_classified_lexically(scorer, store, constituency, make_item):
    store.add_item(make_item("Massive SSC recruitment scam uncovered, ED raids officials"))
    record = scorer.compute_score("c1")
    assert record.inputs["negative_news"] == 1
    assert record.inputs["controversies"] == 1


def test_failed_aggregation_gives_degraded_neutral_score(scorer, store, constituency, monkeypatch):
    def boom(cid, window_days):
        raise RuntimeError("store offline")

    monkeypatch.setattr(scorer, "aggregate", boom)
    record = scorer.compute_score("c1")
    assert record.degraded is True
    assert record.score == vuln.NEUTRAL_SCORE
    assert set(record.breakdown.values()) == {0.0}
    assert record.trend == "stable"
    saved = store.get_constituency("c1")
    assert saved.current_score == 50
    assert saved.score_degraded is True


def test_run_scores_every_constituency(scorer, store, constituency, monkeypatch):
    original = scorer.aggregate

    def flaky(cid, window_days):
        if cid == "c2":
            raise RuntimeError("bad row")
        return original(cid, window_days)

    monkeypatch.setattr(scorer, "aggregate", flaky)
    records, report = vuln.run(scorer, ["c1", "c2"])
    assert [r.constituency_id for r in records] == ["c1", "c2"]
    assert records[1].degraded is True
    assert report.items_out == 2
    assert "1 degraded" in report.notes


def test_zero_day_window_is_respected(scorer, store, clock, constituency, make_item):
    annotate(store, make_item("Earlier today", published_at="2024-06-15T09:00:00+00:00"), "negative")
    assert scorer.compute_score("c1", window_days=0).inputs["total_news"] == 0
    assert scorer.compute_score("c1").inputs["total_news"] == 1
