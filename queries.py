"""
Read-only query surface for dashboards and reports.
Nothing here writes to the store.
"""

from collections import Counter
from datetime import timedelta

from models import SEVERITY_ORDER, severity_rank, utc_now
from pipeline.classify import LexicalClassifier

_lexical = LexicalClassifier()


def _annotation(store, item):
    return store.get_annotation(item.id) or _lexical.classify(item)


def ranked_constituencies(store, limit=None):
    """Constituencies by current score, highest first. Unscored ones go last."""
    rows = []
    for c in store.constituencies():
        latest = store.latest_score(c.id)
        rows.append({
            "id": c.id,
            "name": c.name,
            "district": c.district,
            "leader_name": c.leader_name,
            "party": c.party,
            "score": c.current_score,
            "degraded": c.score_degraded,
            "trend": latest.trend if latest else "stable",
            "updated_at": c.score_updated_at,
        })
    rows.sort(key=lambda r: (r["score"] is None, -(r["score"] or 0), r["name"]))
    return rows[:limit] if limit else rows


def constituency_issues(store, constituency_id, limit=20):
    issues = store.issues_for(constituency_id)
    issues.sort(key=lambda i: (-severity_rank(i.severity), -i.source_count, i.title))
    return issues[:limit]


def attack_points(store, constituency_id, active_only=True):
    points = store.attack_points_for(constituency_id, active_only=active_only)
    points.sort(key=lambda p: (-severity_rank(p.impact_tier), -len(p.source_content_ids), p.attack_type))
    return points


def score_history(store, constituency_id):
    return sorted(store.score_history(constituency_id), key=lambda r: r.computed_at)


def news_summary(store, constituency_id, days=7, clock=None):
    now = (clock or utc_now)()
    items = store.items_for(constituency_id, since=now - timedelta(days=days))
    counts = Counter()
    topics = Counter()
    score_total = 0.0
    for item in items:
        result = _annotation(store, item)
        counts[result.sentiment] += 1
        if result.is_controversy:
            counts["controversies"] += 1
        score_total += result.sentiment_score
        topics.update(result.topics)
    return {
        "total": len(items),
        "positive": counts["positive"],
        "negative": counts["negative"],
        "neutral": counts["neutral"],
        "controversies": counts["controversies"],
        "avg_sentiment": round(score_total / len(items), 3) if items else 0.0,
        "top_topics": [t for t, _ in sorted(topics.items(), key=lambda kv: (-kv[1], kv[0]))[:5]],
    }


def sentiment_trend(store, constituency_id, days=7, clock=None):
    """Per-day sentiment counts, oldest day first. Days with no coverage are included."""
    now = (clock or utc_now)()
    start = (now - timedelta(days=days - 1)).date()
    buckets = {}
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        buckets[day] = {"date": day, "positive": 0, "negative": 0, "neutral": 0,
                        "total": 0, "_score": 0.0}
    for item in store.items_for(constituency_id, since=now - timedelta(days=days)):
        day = item.published_at[:10]
        if day not in buckets:
            continue
        result = _annotation(store, item)
        b = buckets[day]
        b[result.sentiment] += 1
        b["total"] += 1
        b["_score"] += result.sentiment_score
    rows = []
    for b in buckets.values():
        b["avg_score"] = round(b.pop("_score") / b["total"], 3) if b["total"] else 0.0
        rows.append(b)
    return rows


def vulnerable_constituencies(store, limit=10):
    """Top scorers with their three strongest active attack points."""
    rows = []
    for r in ranked_constituencies(store):
        if r["score"] is None:
            continue
        points = attack_points(store, r["id"], active_only=True)
        rows.append({
            "constituency_id": r["id"],
            "constituency_name": r["name"],
            "target_leader": r["leader_name"],
            "target_party": r["party"],
            "vulnerability_score": r["score"],
            "degraded": r["degraded"],
            "top_attack_points": [p.claim for p in points[:3]],
        })
    return rows[:limit]


def critical_open_issues(store, constituency_id):
    return [i for i in store.issues_for(constituency_id, status="open")
            if i.severity == SEVERITY_ORDER[-1]]
