"""
Step 3: Classify each item for sentiment, stance, controversy and topics.

The lexical classifier is pure keyword scoring against lexicon.py and always
succeeds. AI strategies (hosted LLMs, a HuggingFace sentiment model) can be
put in front of it through ClassifierChain; any error, missing key or
low-confidence answer falls through to the next strategy and finally to the
lexical path.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import llm as llm_caller
from config import LLM_CONFIGS, HF_CONFIG
from lexicon import find_keywords, get_default_lexicon
from models import ClassificationResult, ClassifierError, StepReport, SEVERITY_ORDER

MAX_TOPICS = 5
MAX_ENTITIES = 5


def _round_half_up(x):
    return int(x + 0.5) if x >= 0 else -int(-x + 0.5)


class LexicalClassifier:
    name = "lexical"

    def __init__(self, lexicon=None, severity_upgrade_hits=3):
        self.lexicon = lexicon or get_default_lexicon()
        self.severity_upgrade_hits = severity_upgrade_hits

    def sentiment(self, text, language):
        pos = len(find_keywords(text, self.lexicon.sentiment_words(language, "positive")))
        neg = len(find_keywords(text, self.lexicon.sentiment_words(language, "negative")))
        if pos > neg + 1:
            label = "positive"
        elif neg > pos + 1:
            label = "negative"
        else:
            label = "neutral"
        score = (pos - neg) / float(pos + neg) if pos + neg else 0.0
        confidence = min(0.9, max(pos, neg) / 5.0)
        return label, round(score, 3), round(confidence, 2)

    def stance(self, text, language):
        weights = self.lexicon.stance_weights(language)
        total = sum(weights[p] for p in find_keywords(text, list(weights)))
        if total >= 1:
            return "supportive"
        if total <= -1:
            return "critical"
        return "neutral"

    def entities(self, text):
        found = []
        for name, aliases in self.lexicon.entities().items():
            if find_keywords(text, aliases):
                found.append(name)
            if len(found) >= MAX_ENTITIES:
                break
        return found

    def controversy(self, text, language):
        """(is_controversy, severity). Highest tier with a hit, bumped one tier on many hits."""
        tiers = self.lexicon.controversy_tiers(language)
        for tier in reversed(SEVERITY_ORDER):
            hits = find_keywords(text, tiers.get(tier, []))
            if not hits:
                continue
            rank = SEVERITY_ORDER.index(tier)
            if len(hits) >= self.severity_upgrade_hits and rank < len(SEVERITY_ORDER) - 1:
                rank += 1
            return True, SEVERITY_ORDER[rank]
        return False, None

    def topics(self, text, language, min_hits=1):
        scored = []
        for index, (category, words) in enumerate(self.lexicon.topic_keywords(language).items()):
            count = len(find_keywords(text, words))
            if count >= min_hits:
                scored.append((-count, index, category))
        scored.sort()
        return [category for _, _, category in scored[:MAX_TOPICS]]

    def news_type(self, text):
        for news_type, words in self.lexicon.news_types():
            if find_keywords(text, words):
                return news_type
        return "general"

    def classify(self, item):
        text = item.text.lower()
        language = item.language or "en"
        label, score, confidence = self.sentiment(text, language)
        is_controversy, severity = self.controversy(text, language)
        return ClassificationResult(
            sentiment=label,
            sentiment_score=score,
            confidence=confidence,
            stance=self.stance(text, language),
            is_controversy=is_controversy,
            controversy_severity=severity,
            topics=self.topics(text, language),
            entities=self.entities(text),
            news_type=self.news_type(text),
            impact_score=_round_half_up(abs(score) * 10),
            language=language,
            model=self.name,
            lexicon_version=self.lexicon.version,
        )


LLM_SYSTEM_PROMPT = "You classify Indian political news. Return only JSON. Be accurate."

LLM_PROMPT = """Classify this news item about West Bengal politics.

Text: {text}

Return a JSON object:
{{"sentiment": "positive|negative|neutral",
  "sentiment_score": number from -1 to 1,
  "confidence": number from 0 to 1,
  "stance": "supportive|critical|neutral",
  "is_controversy": true|false,
  "controversy_severity": "low|medium|high|critical" or null,
  "topics": [up to 5 of: {topics}]}}"""


class LLMClassifier:
    """Hosted LLM through llm.call_by_id. Entities and news type come from the lexical pass."""

    def __init__(self, llm_id, base=None, timeout=15):
        self.llm_id = llm_id
        self.name = llm_id
        self.base = base or LexicalClassifier()
        self.timeout = timeout

    def classify(self, item):
        topics = list(self.base.lexicon.topic_keywords("en"))
        prompt = LLM_PROMPT.format(text=item.text[:1500], topics=", ".join(topics))
        reply = llm_caller.call_by_id(self.llm_id, LLM_SYSTEM_PROMPT, prompt, 400, timeout=self.timeout)
        if not reply:
            raise ClassifierError("{}: no response".format(self.llm_id))
        data = llm_caller.parse_json_object(reply)
        if not data:
            raise ClassifierError("{}: unparseable reply".format(self.llm_id))

        sentiment = data.get("sentiment")
        if sentiment not in ("positive", "negative", "neutral"):
            raise ClassifierError("{}: bad sentiment {!r}".format(self.llm_id, sentiment))
        try:
            score = max(-1.0, min(1.0, float(data.get("sentiment_score", 0))))
            confidence = max(0.0, min(1.0, float(data.get("confidence", 0))))
        except (TypeError, ValueError):
            raise ClassifierError("{}: non-numeric score".format(self.llm_id))
        severity = data.get("controversy_severity")
        if severity not in SEVERITY_ORDER:
            severity = None
        stance = data.get("stance") if data.get("stance") in ("supportive", "critical", "neutral") else "neutral"

        lexical = self.base.classify(item)
        return ClassificationResult(
            sentiment=sentiment,
            sentiment_score=round(score, 3),
            confidence=round(confidence, 2),
            stance=stance,
            is_controversy=bool(data.get("is_controversy")) or severity is not None,
            controversy_severity=severity,
            topics=[t for t in (data.get("topics") or []) if t in topics][:MAX_TOPICS],
            entities=lexical.entities,
            news_type=lexical.news_type,
            impact_score=_round_half_up(abs(score) * 10),
            language=item.language,
            model=self.llm_id,
            lexicon_version=lexical.lexicon_version,
        )


class HuggingFaceClassifier:
    """Hosted English sentiment model. Everything except sentiment comes from the lexical pass."""

    name = "huggingface"

    def __init__(self, base=None, model=None, timeout=15, threshold=0.6):
        self.base = base or LexicalClassifier()
        self.model = model or HF_CONFIG["sentiment_model"]
        self.timeout = timeout
        self.threshold = threshold

    def classify(self, item):
        if item.language != "en":
            raise ClassifierError("huggingface: English only")
        data = llm_caller.call_inference(self.model, item.text, timeout=self.timeout)
        if not data:
            raise ClassifierError("huggingface: no response")
        labels = data[0] if isinstance(data, list) and data and isinstance(data[0], list) else data
        try:
            top = max(labels, key=lambda d: d["score"])
            label, prob = str(top["label"]).upper(), float(top["score"])
        except (TypeError, KeyError, ValueError):
            raise ClassifierError("huggingface: unexpected payload")

        if label == "POSITIVE" and prob > self.threshold:
            sentiment, score = "positive", prob
        elif label == "NEGATIVE" and prob > self.threshold:
            sentiment, score = "negative", -prob
        else:
            sentiment, score = "neutral", 0.0

        result = self.base.classify(item)
        result.sentiment = sentiment
        result.sentiment_score = round(score, 3)
        result.confidence = round(prob, 2)
        result.impact_score = _round_half_up(abs(score) * 10)
        result.model = self.name
        return result


class ClassifierChain:
    """Try each strategy in order; the fallback (lexical) answers when all of them pass."""

    def __init__(self, strategies, fallback=None, min_confidence=0.6):
        self.strategies = list(strategies)
        self.fallback = fallback or LexicalClassifier()
        self.min_confidence = min_confidence
        self.calls = 0
        self.successes = 0
        self.failures = 0
        self._lock = threading.Lock()

    def _count(self, ok):
        with self._lock:
            self.calls += 1
            if ok:
                self.successes += 1
            else:
                self.failures += 1

    def classify(self, item):
        for strategy in self.strategies:
            try:
                result = strategy.classify(item)
            except Exception as e:
                self._count(False)
                print("  X {} on {}: {}".format(strategy.name, item.id, str(e)[:100]))
                continue
            if result.confidence < self.min_confidence:
                self._count(False)
                print("    ... {} low confidence ({:.2f}) on {}".format(strategy.name, result.confidence, item.id))
                continue
            self._count(True)
            return result
        return self.fallback.classify(item)


def build_chain(settings, lexicon=None):
    """ClassifierChain from settings["ai_classifiers"], in the order listed."""
    base = LexicalClassifier(lexicon, settings.get("severity_upgrade_hits", 3))
    timeout = settings.get("ai_timeout", 15)
    strategies = []
    for name in settings.get("ai_classifiers") or []:
        if name == "huggingface":
            strategies.append(HuggingFaceClassifier(base, timeout=timeout))
        elif name in LLM_CONFIGS:
            strategies.append(LLMClassifier(name, base, timeout=timeout))
        else:
            print("  X Unknown AI classifier '{}' (skipped)".format(name))
    return ClassifierChain(strategies, base, settings.get("min_ai_confidence", 0.6))


def run(items, chain, store, max_workers=8):
    """Classify items in parallel and store each result as an annotation. Returns ({id: result}, report)."""
    print("\n>>> CLASSIFY: {} items...".format(len(items)))
    report = StepReport("classify", items_in=len(items))
    calls_before = (chain.calls, chain.successes, chain.failures)

    results = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {executor.submit(chain.classify, item): item for item in items}
        for future in as_completed(futures):
            item = futures[future]
            try:
                result = future.result()
            except Exception as e:
                report.dropped += 1
                print("  X classify {}: {}".format(item.id, str(e)[:100]))
                continue
            results[item.id] = result
            store.set_annotation(item.id, result)

    report.llm_calls = chain.calls - calls_before[0]
    report.llm_successes = chain.successes - calls_before[1]
    report.llm_failures = chain.failures - calls_before[2]
    report.items_out = len(results)

    counts = {}
    for r in results.values():
        counts[r.sentiment] = counts.get(r.sentiment, 0) + 1
    controversies = sum(1 for r in results.values() if r.is_controversy)
    report.notes.append("{} controversies".format(controversies))
    print("    {} positive, {} negative, {} neutral, {} controversies".format(
        counts.get("positive", 0), counts.get("negative", 0), counts.get("neutral", 0), controversies))
    return results, report
