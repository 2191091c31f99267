"""
Step 5: Vulnerability score per constituency (0-100).

  news_impact        min(30, negative / total * 30)
  controversy_impact min(30, controversies * 10)
  grievance_impact   min(20, open high/critical issues * 4)
  margin_risk        20 / 15 / 10 / 5 for margins under 5 / 10 / 15 / above,
                     0 without margin data

Every computation appends a history record and refreshes the constituency's
current score. If the aggregates cannot be computed the record is degraded:
score 50, zero breakdown, flagged.
"""

import hashlib
from datetime import timedelta

from models import VulnerabilityScoreRecord, StepReport, utc_now
from pipeline.classify import LexicalClassifier

NEUTRAL_SCORE = 50
HIGH_SEVERITIES = ("high", "critical")


def margin_risk(margin_pct):
    if margin_pct is None:
        return 0
    if margin_pct < 5:
        return 20
    if margin_pct < 10:
        return 15
    if margin_pct < 15:
        return 10
    return 5


def score_breakdown(total_news, negative_news, controversies, open_high_issues, margin_pct):
    news = min(30.0, negative_news * 30.0 / total_news) if total_news else 0.0
    return {
        "news_impact": round(news, 2),
        "controversy_impact": float(min(30, controversies * 10)),
        "grievance_impact": float(min(20, open_high_issues * 4)),
        "margin_risk": float(margin_risk(margin_pct)),
    }


def total_score(breakdown):
    raw = max(0.0, min(100.0, sum(breakdown.values())))
    return int(raw + 0.5)


def trend(previous_score, score, threshold=2):
    if previous_score is None:
        return "stable"
    delta = score - previous_score
    if delta < -threshold:
        return "improving"
    if delta > threshold:
        return "declining"
    return "stable"


class VulnerabilityScorer:

    def __init__(self, store, classifier=None, window_days=30, trend_threshold=2, clock=None):
        self.store = store
        self.classifier = classifier or LexicalClassifier()
        self.window_days = window_days
        self.trend_threshold = trend_threshold
        self.clock = clock or utc_now

    def aggregate(self, constituency_id, window_days):
        since = self.clock() - timedelta(days=window_days)
        items = self.store.items_for(constituency_id, since=since)
        negative = controversies = 0
        for item in items:
            result = self.store.get_annotation(item.id) or self.classifier.classify(item)
            if result.sentiment == "negative":
                negative += 1
            if result.is_controversy:
                controversies += 1
        open_high = [i for i in self.store.issues_for(constituency_id, status="open")
                     if i.severity in HIGH_SEVERITIES]
        constituency = self.store.get_constituency(constituency_id)
        margin_pct = constituency.margin_pct if constituency else None
        return {
            "total_news": len(items),
            "negative_news": negative,
            "controversies": controversies,
            "open_high_issues": len(open_high),
            "margin_pct": round(margin_pct, 2) if margin_pct is not None else None,
        }

    def compute_score(self, constituency_id, window_days=None):
        if window_days is None:
            window_days = self.window_days
        with self.store.lock_for(constituency_id):
            history = self.store.score_history(constituency_id)
            previous = history[-1] if history else None
            previous_score = previous.score if previous else None
            now = self.clock().isoformat()
            try:
                inputs = self.aggregate(constituency_id, window_days)
                breakdown = score_breakdown(
                    inputs["total_news"], inputs["negative_news"], inputs["controversies"],
                    inputs["open_high_issues"], inputs["margin_pct"])
                score = total_score(breakdown)
                direction = trend(previous_score, score, self.trend_threshold)
                degraded = False
            except Exception as e:
                print("    !!! {}: aggregates failed ({}), degraded score {}".format(
                    constituency_id, str(e)[:80], NEUTRAL_SCORE))
                inputs = {}
                breakdown = {"news_impact": 0.0, "controversy_impact": 0.0,
                             "grievance_impact": 0.0, "margin_risk": 0.0}
                score = NEUTRAL_SCORE
                direction = "stable"
                degraded = True

            record = VulnerabilityScoreRecord(
                id="vs_" + hashlib.md5("{}|{}|{}".format(
                    constituency_id, now, len(history)).encode()).hexdigest()[:12],
                constituency_id=constituency_id,
                score=score,
                breakdown=breakdown,
                inputs=inputs,
                previous_score=previous_score,
                trend=direction,
                degraded=degraded,
                computed_at=now,
            )
            self.store.append_score(record)
            return record


def run(scorer, constituency_ids, window_days=None):
    """Rescore every constituency. One failure never stops the batch."""
    print("\n>>> SCORE: {} constituencies...".format(len(constituency_ids)))
    report = StepReport("vulnerability", items_in=len(constituency_ids))
    records = []
    for cid in constituency_ids:
        try:
            record = scorer.compute_score(cid, window_days)
        except Exception as e:
            report.dropped += 1
            print("  X score {}: {}".format(cid, str(e)[:100]))
            continue
        records.append(record)
        flag = " (DEGRADED)" if record.degraded else ""
        prev = record.previous_score if record.previous_score is not None else "-"
        print("    {}: {} ({}, was {}){}".format(cid, record.score, record.trend, prev, flag))

    degraded = sum(1 for r in records if r.degraded)
    report.items_out = len(records)
    if degraded:
        report.notes.append("{} degraded".format(degraded))
    return records, report
