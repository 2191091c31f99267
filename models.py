"""
Data models for the pipeline. Clean interfaces between steps.
Every record round-trips through to_dict()/from_dict() for the JSON store.
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import List, Dict, Optional, Tuple


SEVERITY_ORDER = ["low", "medium", "high", "critical"]


def severity_rank(severity):
    """Position of a severity in low<medium<high<critical. Unknown counts as low."""
    if severity in SEVERITY_ORDER:
        return SEVERITY_ORDER.index(severity)
    return 0


def max_severity(a, b):
    return a if severity_rank(a) >= severity_rank(b) else b


def utc_now():
    return datetime.now(timezone.utc)


def parse_time(value):
    """ISO-8601 string -> aware UTC datetime, or None when empty or unparseable."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class _Record:
    """Mixin: dict conversion that ignores unknown keys on load."""

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# === Errors ===

class RadarError(Exception):
    """Base for every error raised inside the pipeline."""


class QuotaExhausted(RadarError):
    def __init__(self, scope_key, period):
        super().__init__("{} {} quota exhausted".format(scope_key, period))
        self.scope_key = scope_key
        self.period = period


class SourceUnauthorized(RadarError):
    """401/403 from a source. Not retried."""


class NormalizationError(RadarError):
    """Payload is missing a required field (text or source)."""


class ClassifierError(RadarError):
    """An AI classifier failed or produced something unusable."""


# === Content ===

@dataclass(frozen=True)
class ContentItem(_Record):
    """One normalized piece of news or social content. Never mutated after storage."""
    id: str
    source_system: str
    source_name: str
    title: str
    text: str
    body: str = ""
    url: str = ""
    published_at: str = ""
    author: str = ""
    tags: Tuple[str, ...] = ()
    raw_sentiment_hint: str = ""
    language: str = "en"
    constituency_id: str = ""
    leader_name: str = ""

    @classmethod
    def from_dict(cls, data):
        data = dict(data)
        data["tags"] = tuple(data.get("tags") or ())
        return super().from_dict(data)


@dataclass
class ClassificationResult(_Record):
    sentiment: str = "neutral"  # positive, negative, neutral
    sentiment_score: float = 0.0  # -1 to 1
    confidence: float = 0.0
    stance: str = "neutral"  # supportive, critical, neutral
    is_controversy: bool = False
    controversy_severity: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    entities: List[str] = field(default_factory=list)
    news_type: str = "general"
    impact_score: int = 0
    language: str = "en"
    model: str = "lexical"
    lexicon_version: str = ""


# === Issues ===

@dataclass
class DetectedIssue(_Record):
    """An issue found inside one item, before it is merged into a tracked issue."""
    title: str
    category: str
    severity: str = "low"
    confidence: float = 0.0
    matched_keywords: List[str] = field(default_factory=list)
    public_anger_level: str = "low"
    protest_activity: bool = False
    title_local: str = ""


@dataclass
class TrackedIssue(_Record):
    id: str
    constituency_id: str
    title: str
    category: str
    severity: str = "low"
    public_anger_level: str = "low"
    protest_activity: bool = False
    source_count: int = 1
    source_content_ids: List[str] = field(default_factory=list)
    last_mentioned_at: str = ""
    first_seen_at: str = ""
    status: str = "open"  # open or resolved
    confidence: float = 0.0
    title_local: str = ""

    @property
    def can_use_in_campaign(self):
        return self.severity != "low"


# === Scoring ===

@dataclass
class VulnerabilityScoreRecord(_Record):
    id: str
    constituency_id: str
    score: int
    breakdown: Dict[str, float] = field(default_factory=dict)
    inputs: Dict[str, float] = field(default_factory=dict)
    previous_score: Optional[int] = None
    trend: str = "stable"  # improving, declining, stable
    degraded: bool = False
    computed_at: str = ""


@dataclass
class AttackPoint(_Record):
    id: str
    constituency_id: str
    target_name: str
    claim: str
    evidence_ref: str
    attack_type: str
    impact_tier: str
    source_content_ids: List[str] = field(default_factory=list)
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Constituency(_Record):
    id: str
    name: str
    district: str = ""
    leader_name: str = ""
    party: str = ""
    margin_votes: Optional[int] = None
    total_voters: Optional[int] = None
    search_terms: List[str] = field(default_factory=list)
    current_score: Optional[int] = None
    score_degraded: bool = False
    score_updated_at: str = ""

    @property
    def margin_pct(self):
        """Absolute margin as a percentage of registered voters, or None without data."""
        if self.margin_votes is None or not self.total_voters:
            return None
        return abs(self.margin_votes) / float(self.total_voters) * 100


# === Fetching ===

@dataclass
class QuotaState(_Record):
    scope_key: str
    period: str  # daily or monthly
    window_start: str
    used: int = 0
    limit: int = 0
    mode: str = "reject"  # clip or reject

    @property
    def remaining(self):
        return max(0, self.limit - self.used)


@dataclass
class FetchRequest(_Record):
    query: str
    constituency_id: str = ""
    leader_name: str = ""
    max_results: int = 20
    language: str = "en"

    def cache_key(self, source_key):
        return "{}|{}|{}|{}|{}".format(
            source_key, self.query.lower().strip(), self.constituency_id,
            self.language, self.max_results)


@dataclass
class FetchResult:
    """Raw payloads from one source call, plus where they came from."""
    source_key: str
    request: FetchRequest
    items: List[Dict] = field(default_factory=list)
    from_cache: bool = False
    quota_exhausted: bool = False
    error: Optional[str] = None
    origin: str = "live"  # live, cache, stale_cache, store, empty, demo
    demo: bool = False


@dataclass
class StepReport:
    """Observability for each pipeline step."""
    step_name: str
    items_in: int = 0
    items_out: int = 0
    dropped: int = 0
    llm_calls: int = 0
    llm_successes: int = 0
    llm_failures: int = 0
    notes: List[str] = field(default_factory=list)

    def summary(self):
        success_rate = ""
        if self.llm_calls > 0:
            pct = int(100 * self.llm_successes / self.llm_calls)
            success_rate = " ({}% success)".format(pct)
        dropped = " | {} dropped".format(self.dropped) if self.dropped else ""
        return "{}: {} in -> {} out{} | {} AI calls{}{}".format(
            self.step_name, self.items_in, self.items_out, dropped,
            self.llm_calls, success_rate,
            " | " + "; ".join(self.notes) if self.notes else "")
