"""
Step 4a: Detect local grievances in each item and merge them into tracked issues.

Detection needs 2+ category keyword hits. A detection merges into the most
similar tracked issue of the same constituency and category (Jaccard over
title words), or opens a new one. Severity of a tracked issue never goes
down and its source count never shrinks.
"""

import hashlib
import re

from lexicon import find_keywords, get_default_lexicon
from models import DetectedIssue, TrackedIssue, StepReport, SEVERITY_ORDER, max_severity, utc_now

MIN_CATEGORY_HITS = 2
MAX_HEADLINE_TITLE = 80

FILLER_WORDS = {
    "near", "with", "from", "into", "over", "about", "after", "amid", "says",
    "said", "their", "they", "this", "that", "have", "been", "will", "more",
    "than", "also", "just", "still", "where", "which", "while", "again",
}


def _tokens(text):
    words = re.sub(r"[^\w\sঀ-৿]", " ", (text or "").lower()).split()
    out = set()
    for w in words:
        if len(w) <= 3 or w in FILLER_WORDS:
            continue
        if len(w) > 4 and w.endswith("s") and not w.endswith("ss"):
            w = w[:-1]
        out.add(w)
    return out


def jaccard(a, b):
    words_a, words_b = _tokens(a), _tokens(b)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / float(len(words_a | words_b))


def anger_level(hit_count, severity, protest):
    if protest and severity == "critical":
        return "boiling"
    if protest or severity in ("critical", "high") or hit_count >= 4:
        return "high"
    if severity == "medium" or hit_count >= 3:
        return "medium"
    return "low"


def issue_title(category, matched_keywords, headline):
    if len(headline) <= MAX_HEADLINE_TITLE:
        return headline
    name = " ".join(w.capitalize() for w in category.split("_"))
    return "{}: {}".format(name, ", ".join(matched_keywords[:3]))


class IssueAggregator:

    def __init__(self, store, lexicon=None, similarity_threshold=0.5, clock=None):
        self.store = store
        self.lexicon = lexicon or get_default_lexicon()
        self.similarity_threshold = similarity_threshold
        self.clock = clock or utc_now

    def severity(self, text):
        table = self.lexicon.issue_severity()
        for tier in reversed(SEVERITY_ORDER):
            if find_keywords(text, table.get(tier, [])):
                return tier
        return "low"

    def detect_issues(self, item, classification=None):
        """All categories with enough keyword hits in the item's title and body."""
        text = "{} {}".format(item.title, item.body).lower()
        language = item.language or (classification.language if classification else "en")
        severity = self.severity(text)
        protest = bool(find_keywords(text, self.lexicon.protest_words()))

        detected = []
        for category, words in self.lexicon.issue_keywords(language).items():
            hits = find_keywords(text, words)
            if len(hits) < MIN_CATEGORY_HITS:
                continue
            detected.append(DetectedIssue(
                title=issue_title(category, hits, item.title),
                title_local=self.lexicon.issue_title_local(category),
                category=category,
                severity=severity,
                confidence=min(len(hits) / 5.0, 1.0),
                matched_keywords=hits,
                public_anger_level=anger_level(len(hits), severity, protest),
                protest_activity=protest,
            ))
        return detected

    def find_similar(self, constituency_id, category, title):
        """Best same-category issue at or above the similarity threshold, or None."""
        best, best_sim = None, 0.0
        for issue in self.store.issues_for(constituency_id, category=category):
            sim = jaccard(title, issue.title)
            if sim >= self.similarity_threshold and sim > best_sim:
                best, best_sim = issue, sim
        return best

    def upsert(self, constituency_id, detected, content_id=""):
        """Merge into the nearest tracked issue or create one. Returns (action, issue_id)."""
        with self.store.lock_for(constituency_id):
            now = self.clock().isoformat()
            existing = self.find_similar(constituency_id, detected.category, detected.title)
            if existing:
                existing.source_count += 1
                existing.last_mentioned_at = now
                existing.severity = max_severity(existing.severity, detected.severity)
                existing.protest_activity = existing.protest_activity or detected.protest_activity
                existing.public_anger_level = detected.public_anger_level
                existing.confidence = max(existing.confidence, detected.confidence)
                if content_id and content_id not in existing.source_content_ids:
                    existing.source_content_ids.append(content_id)
                self.store.save_issue(existing)
                return "updated", existing.id

            issue_id = "iss_" + hashlib.md5("{}|{}|{}|{}|{}".format(
                constituency_id, detected.category, detected.title, now,
                len(self.store.issues_for(constituency_id))).encode()).hexdigest()[:10]
            issue = TrackedIssue(
                id=issue_id,
                constituency_id=constituency_id,
                title=detected.title,
                title_local=detected.title_local,
                category=detected.category,
                severity=detected.severity,
                public_anger_level=detected.public_anger_level,
                protest_activity=detected.protest_activity,
                source_count=1,
                source_content_ids=[content_id] if content_id else [],
                last_mentioned_at=now,
                first_seen_at=now,
                confidence=detected.confidence,
            )
            self.store.save_issue(issue)
            return "created", issue.id

    def resolve(self, issue_id):
        issue = self.store.get_issue(issue_id)
        if not issue:
            return False
        with self.store.lock_for(issue.constituency_id):
            issue.status = "resolved"
            self.store.save_issue(issue)
        return True

    def issue_summary(self, constituency_id):
        issues = self.store.issues_for(constituency_id)
        by_severity, by_category = {}, {}
        for issue in issues:
            by_severity[issue.severity] = by_severity.get(issue.severity, 0) + 1
            by_category[issue.category] = by_category.get(issue.category, 0) + 1
        return {
            "total": len(issues),
            "by_severity": by_severity,
            "by_category": by_category,
            "has_protests": any(i.protest_activity for i in issues),
        }


def run(items, classifications, aggregator):
    """Detect and upsert issues for every new item. Returns (counts, report)."""
    print("\n>>> ISSUES: scanning {} items...".format(len(items)))
    report = StepReport("issues", items_in=len(items))
    counts = {"created": 0, "updated": 0, "detected": 0}

    for item in items:
        if not item.constituency_id:
            continue
        try:
            detected = aggregator.detect_issues(item, classifications.get(item.id))
            counts["detected"] += len(detected)
            for d in detected:
                action, _ = aggregator.upsert(item.constituency_id, d, item.id)
                counts[action] += 1
        except Exception as e:
            report.dropped += 1
            print("  X issues for {}: {}".format(item.id, str(e)[:100]))

    report.items_out = counts["created"] + counts["updated"]
    report.notes.append("{created} created, {updated} updated".format(**counts))
    print("    {detected} detected: {created} new issues, {updated} merged".format(**counts))
    return counts, report
