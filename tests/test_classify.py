import json

import pytest

from lexicon import LEXICON_VERSION, load_lexicon
from models import ClassificationResult, ClassifierError
from pipeline import classify


@pytest.fixture
def lexical():
    return classify.LexicalClassifier()


def test_ssc_scam_headline(lexical, make_item):
    item = make_item("Massive SSC recruitment scam uncovered, ED raids officials")
    result = lexical.classify(item)
    assert result.sentiment == "negative"
    assert result.sentiment_score == -1.0
    assert result.is_controversy is True
    assert result.controversy_severity == "critical"
    assert "corruption" in result.topics
    assert "employment" in result.topics
    assert result.news_type == "controversy"
    assert "ED" in result.entities
    assert result.impact_score == 10
    assert result.model == "lexical"
    assert result.lexicon_version == LEXICON_VERSION


def test_classification_is_deterministic(lexical, make_item):
    item = make_item("TMC slams BJP over hospital bed shortage in Kolkata",
                     "Party leaders accuse the Centre of neglecting health schemes")
    first = lexical.classify(item)
    for _ in range(5):
        assert lexical.classify(item).to_dict() == first.to_dict()
    assert classify.LexicalClassifier().classify(item) == first


def test_positive_coverage(lexical, make_item):
    result = lexical.classify(make_item(
        "MLA inaugurates new hospital wing, launches welfare scheme for development"))
    assert result.sentiment == "positive"
    assert result.confidence == 0.9
    assert result.stance == "supportive"
    assert result.news_type == "achievement"
    assert result.is_controversy is False
    assert result.controversy_severity is None


def test_close_counts_are_neutral(lexical, make_item):
    result = lexical.classify(make_item("Development project faces protest"))
    assert result.sentiment == "neutral"
    assert result.sentiment_score == 0.0


def test_short_keywords_match_whole_words_only(lexical, make_item):
    result = lexical.classify(make_item("Minister visited flooded areas and talked to residents"))
    assert result.sentiment == "neutral"
    assert "ED" not in result.entities
    assert result.is_controversy is False


def test_severity_upgrades_on_three_tier_hits(lexical, make_item):
    item = make_item("Corruption scandal deepens as fraud allegations mount")
    assert lexical.classify(item).controversy_severity == "critical"

    item = make_item("Corruption scandal deepens")
    assert lexical.classify(item).controversy_severity == "high"


def test_upgrade_threshold_is_configurable(make_item):
    strict = classify.LexicalClassifier(severity_upgrade_hits=5)
    item = make_item("Corruption scandal deepens as fraud allegations mount")
    assert strict.classify(item).controversy_severity == "high"


def test_topics_ordered_by_hits_then_declaration(lexical, make_item):
    result = lexical.classify(make_item(
        "Election: farmers demand crop insurance, hospital and school upgrades"))
    # agriculture has 2 hits (farmer, crop); the rest 1 each in table order
    assert result.topics[0] == "agriculture"
    assert result.topics[1:] == ["election", "healthcare", "education"]


def test_topics_capped_at_five(lexical, make_item):
    result = lexical.classify(make_item(
        "scam road election hospital school job police farmer pension party"))
    assert len(result.topics) == 5
    assert result.topics == ["corruption", "development", "election", "healthcare", "education"]


def test_critical_stance(lexical, make_item):
    result = lexical.classify(make_item("Opposition slams and accuses minister"))
    assert result.stance == "critical"
    assert result.news_type == "attack"


def test_bengali_text(lexical, make_item):
    item = make_item("দুর্নীতি কেলেঙ্কারিতে তৃণমূল নেতা গ্রেপ্তার")
    assert item.language == "bn"
    result = lexical.classify(item)
    assert result.sentiment == "negative"
    assert result.controversy_severity == "critical"
    assert "TMC" in result.entities
    assert "corruption" in result.topics
    assert result.language == "bn"


def test_lexicon_pack_replaces_tables(tmp_path, make_item):
    pack = tmp_path / "lexicon.json"
    pack.write_text(json.dumps({
        "version": "test-1",
        "sentiment": {"en": {"positive": ["sunny", "bright", "warm"], "negative": []}},
    }), encoding="utf-8")
    lexicon = load_lexicon(str(pack))
    result = classify.LexicalClassifier(lexicon).classify(make_item("Sunny bright warm day"))
    assert result.sentiment == "positive"
    assert result.lexicon_version == "test-1"


class Failing:
    name = "failing"

    def classify(self, item):
        raise ClassifierError("backend down")


class Fixed:
    def __init__(self, name, confidence):
        self.name = name
        self.confidence = confidence

    def classify(self, item):
        return ClassificationResult(sentiment="positive", sentiment_score=0.8,
                                    confidence=self.confidence, model=self.name)


def test_chain_falls_through_errors_and_low_confidence(make_item):
    item = make_item("Massive SSC recruitment scam uncovered, ED raids officials")
    chain = classify.ClassifierChain([Failing(), Fixed("weak", 0.3)], min_confidence=0.6)
    result = chain.classify(item)
    assert result.model == "lexical"
    assert result.sentiment == "negative"
    assert chain.calls == 2
    assert chain.failures == 2


def test_chain_uses_first_confident_strategy(make_item):
    chain = classify.ClassifierChain([Failing(), Fixed("strong", 0.95), Fixed("never", 0.99)])
    result = chain.classify(make_item("anything"))
    assert result.model == "strong"
    assert chain.successes == 1


def test_llm_classifier_parses_json_reply(monkeypatch, make_item):
    reply = '```json\n{"sentiment": "negative", "sentiment_score": -0.7, "confidence": 0.85, ' \
            '"stance": "critical", "is_controversy": true, "controversy_severity": "high", ' \
            '"topics": ["corruption", "not_a_topic"]}\n```'
    calls = []

    def fake_call_by_id(llm_id, system_prompt, user_prompt, max_tokens=600, use_cache=True, timeout=15):
        calls.append((llm_id, timeout))
        return reply

    monkeypatch.setattr(classify.llm_caller, "call_by_id", fake_call_by_id)
    result = classify.LLMClassifier("gemini", timeout=7).classify(make_item("CBI summons councillor"))
    assert calls == [("gemini", 7)]
    assert result.model == "gemini"
    assert result.sentiment == "negative"
    assert result.controversy_severity == "high"
    assert result.topics == ["corruption"]
    assert result.impact_score == 7
    assert "CBI" in result.entities


def test_llm_classifier_without_reply_raises(monkeypatch, make_item):
    monkeypatch.setattr(classify.llm_caller, "call_by_id", lambda *a, **k: None)
    with pytest.raises(ClassifierError):
        classify.LLMClassifier("chatgpt").classify(make_item("x"))


def test_huggingface_sentiment(monkeypatch, make_item):
    monkeypatch.setattr(classify.llm_caller, "call_inference",
                        lambda model, text, timeout=15, use_cache=True:
                        [[{"label": "NEGATIVE", "score": 0.97}, {"label": "POSITIVE", "score": 0.03}]])
    result = classify.HuggingFaceClassifier().classify(make_item("Hospital beds run out again"))
    assert result.model == "huggingface"
    assert result.sentiment == "negative"
    assert result.sentiment_score == -0.97
    assert result.confidence == 0.97


def test_huggingface_skips_non_english(make_item):
    with pytest.raises(ClassifierError):
        classify.HuggingFaceClassifier().classify(make_item("রাস্তায় জলাবদ্ধতা"))


def test_build_chain_from_settings(settings):
    settings["ai_classifiers"] = ["huggingface", "claude", "mystery"]
    chain = classify.build_chain(settings)
    assert [s.name for s in chain.strategies] == ["huggingface", "claude"]
    assert chain.min_confidence == 0.6


def test_run_stores_annotations(store, make_item):
    items = [make_item("Flyover collapse kills two"), make_item("MLA launches ration scheme")]
    chain = classify.ClassifierChain([])
    results, report = classify.run(items, chain, store, max_workers=2)
    assert set(results) == {i.id for i in items}
    assert store.get_annotation(items[0].id) == results[items[0].id]
    assert report.items_out == 2
    assert report.llm_calls == 0
