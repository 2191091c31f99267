import pytest

from models import ClassificationResult
from pipeline import attack_points as ap

NEGATIVE = ClassificationResult(sentiment="negative", sentiment_score=-0.8, confidence=0.8)
NEUTRAL = ClassificationResult(sentiment="neutral")
CONTROVERSY = ClassificationResult(sentiment="neutral", is_controversy=True,
                                   controversy_severity="high")


@pytest.fixture
def generator(store, clock):
    return ap.AttackPointGenerator(store, clock=clock)


def test_scam_story_becomes_corruption_point(generator, store, make_item):
    item = make_item("Massive SSC recruitment scam uncovered, ED raids officials",
                     leader_name="Mamata Banerjee")
    point = generator.generate(item, NEGATIVE)
    assert point.attack_type == "corruption"
    assert point.impact_tier == "critical"
    assert point.claim == "Mamata Banerjee linked to corruption/scam"
    assert point.evidence_ref == item.title
    assert point.source_content_ids == [item.id]
    assert point.is_active
    assert store.attack_points_for("c1") == [point]


def test_new_evidence_extends_the_active_point(generator, store, make_item):
    first = make_item("Ration scam in Ward 8")
    second = make_item("Fraud in housing scheme allotment", source="Sangbad Pratidin")
    a = generator.generate(first, NEGATIVE, "Councillor X")
    b = generator.generate(second, NEGATIVE, "Councillor X")
    again = generator.generate(second, NEGATIVE, "Councillor X")
    assert a.id == b.id == again.id

    points = store.attack_points_for("c1", active_only=True)
    assert len(points) == 1
    assert points[0].source_content_ids == [first.id, second.id]


def test_neutral_uncontroversial_items_are_ignored(generator, make_item):
    assert generator.generate(make_item("Ration scam in Ward 8"), NEUTRAL) is None
    assert generator.generate(make_item("Ration scam in Ward 8"), None) is None


def test_controversy_qualifies_even_without_negative_sentiment(generator, make_item):
    point = generator.generate(make_item("CBI questions councillor"), CONTROVERSY)
    assert point.attack_type == "legal_trouble"


def test_no_matching_template(generator, store, make_item):
    assert generator.generate(make_item("Residents upset over gloomy weather"), NEGATIVE) is None
    assert store.attack_points_for("c1") == []


def test_first_template_in_order_wins(generator, make_item):
    point = generator.generate(make_item("Unemployment rises as recruitment scam widens"), NEGATIVE)
    assert point.attack_type == "employment"
    assert point.claim == "the sitting MLA failed to address unemployment crisis"


def test_bengali_pattern(generator, make_item):
    item = make_item("চাকরি প্রার্থীদের ধরনা অব্যাহত", leader_name="মমতা বন্দ্যোপাধ্যায়")
    point = generator.generate(item, NEGATIVE)
    assert point.attack_type == "employment"
    assert point.target_name == "মমতা বন্দ্যোপাধ্যায়"


def test_deactivated_point_is_replaced_by_a_new_one(generator, store, make_item):
    old = generator.generate(make_item("Ration scam in Ward 8"), NEGATIVE)
    assert generator.deactivate("c1", "corruption") is True
    assert generator.deactivate("c1", "corruption") is False

    fresh = generator.generate(make_item("Tender fraud in municipality"), NEGATIVE)
    assert fresh.id != old.id
    assert [p.id for p in store.attack_points_for("c1", active_only=True)] == [fresh.id]
    assert len(store.attack_points_for("c1")) == 2


def test_run_uses_constituency_targets(generator, store, make_item):
    items = [make_item("Ration scam in Ward 8"),
             make_item("Hospital turns away patients", constituency_id="c2"),
             make_item("Children's park reopens")]
    classifications = {items[0].id: NEGATIVE, items[1].id: NEGATIVE, items[2].id: NEUTRAL}
    touched, report = ap.run(items, classifications, generator, {"c1": "Mamata Banerjee"})
    assert len(touched) == 2
    assert report.items_out == 2
    assert store.attack_points_for("c1")[0].target_name == "Mamata Banerjee"
    healthcare = store.attack_points_for("c2")[0]
    assert healthcare.attack_type == "healthcare"
    assert healthcare.target_name == ap.DEFAULT_TARGET


def test_run_skips_items_without_constituency(generator, store, make_item):
    item = make_item("Ration scam in Ward 8", constituency_id="")
    touched, report = ap.run([item], {item.id: NEGATIVE}, generator)
    assert touched == []
    assert store.attack_points_for("") == []
