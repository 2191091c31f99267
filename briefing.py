"""
Daily briefing for one constituency: a short executive summary, alerts and
recommended actions, built from the store through the query surface.
"""

import queries
from models import utc_now

DEFAULT_SCORE = 50
HIGH_SCORE = 70
BRIEFING_DAYS = 7


def daily_briefing(store, constituency_id, clock=None):
    """Briefing dict, or None when the constituency is unknown."""
    constituency = store.get_constituency(constituency_id)
    if constituency is None:
        return None
    now = (clock or utc_now)()
    news = queries.news_summary(store, constituency_id, days=BRIEFING_DAYS, clock=lambda: now)
    points = queries.attack_points(store, constituency_id, active_only=True)
    critical = queries.critical_open_issues(store, constituency_id)
    score = constituency.current_score if constituency.current_score is not None else DEFAULT_SCORE

    who = constituency.leader_name or constituency.name
    summary = "{} ({}): ".format(who, constituency.party or "independent")
    if news["total"] == 0:
        summary += "No recent news coverage. "
    else:
        summary += "{} news mentions in past {} days. ".format(news["total"], BRIEFING_DAYS)
        if news["controversies"]:
            summary += "ALERT: {} controversy-related coverage. ".format(news["controversies"])
        if news["positive"] > news["negative"]:
            summary += "Coverage is mostly positive. "
        elif news["negative"] > news["positive"]:
            summary += "Coverage tilts negative - monitoring recommended. "
    summary += "Vulnerability score: {}/100.".format(score)
    if constituency.score_degraded:
        summary += " (degraded: score inputs unavailable)"

    alerts = []
    if news["controversies"]:
        alerts.append({
            "type": "controversy",
            "severity": "high" if news["controversies"] >= 2 else "medium",
            "message": "{} controversy-related news detected".format(news["controversies"]),
        })
    if score >= HIGH_SCORE:
        alerts.append({
            "type": "vulnerability",
            "severity": "high",
            "message": "High vulnerability score ({}/100) - multiple attack vectors available".format(score),
        })
    if critical:
        alerts.append({
            "type": "grievance",
            "severity": "high",
            "message": "Critical public grievances remain unaddressed ({})".format(len(critical)),
        })

    recommendations = []
    if news["controversies"]:
        recommendations.append({"action": "Prepare response strategy for controversy coverage",
                                "priority": "high"})
    promises = [p for p in points if p.attack_type == "unfulfilled_promise"]
    if promises:
        recommendations.append({
            "action": "Address {} unfulfilled promises before next election".format(
                len(promises[0].source_content_ids)),
            "priority": "medium"})
    if points:
        recommendations.append({"action": "Monitor opposition messaging around identified attack points",
                                "priority": "medium"})
    if not recommendations:
        recommendations.append({"action": "Continue monitoring - no immediate action required",
                                "priority": "low"})

    return {
        "constituency_id": constituency_id,
        "generated_at": now.isoformat(),
        "executive_summary": summary,
        "alerts": alerts,
        "recommendations": recommendations,
    }


def format_briefing(briefing):
    lines = [briefing["executive_summary"], ""]
    if briefing["alerts"]:
        lines.append("Alerts:")
        for a in briefing["alerts"]:
            lines.append("  [{}] {}".format(a["severity"].upper(), a["message"]))
    lines.append("Recommendations:")
    for r in briefing["recommendations"]:
        lines.append("  ({}) {}".format(r["priority"], r["action"]))
    return "\n".join(lines)
