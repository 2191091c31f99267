import json

import pytest

import runner
from conftest import FakeSession, newsapi_ok
from pipeline import fetch, vulnerability
from store import Store

PACK = {
    "name": "Test pack",
    "sources": ["newsapi"],
    "constituencies": [
        {"id": "bhowanipore", "name": "Bhowanipore", "leader_name": "Mamata Banerjee",
         "party": "AITC", "margin_votes": 400, "total_voters": 10000,
         "search_terms": ["Bhowanipore", "ভবানীপুর"]},
        {"id": "uttarpara", "name": "Uttarpara", "leader_name": "Kanchan Mullick",
         "party": "AITC", "margin_votes": 3000, "total_voters": 10000},
    ],
}


@pytest.fixture
def paths(tmp_path, monkeypatch):
    for name in ("RADAR_STORE_PATH", "RADAR_DEMO_MODE", "RADAR_AI_CLASSIFIERS", "RADAR_LEXICON_PATH"):
        monkeypatch.delenv(name, raising=False)
    pack = tmp_path / "pack.json"
    pack.write_text(json.dumps(PACK), encoding="utf-8")
    return str(pack), str(tmp_path / "store.json")


def test_rescore_only_scores_pack_constituencies(paths):
    pack, store_path = paths
    assert runner.main(["--config", pack, "--store", store_path, "--rescore-only"]) == 0

    store = Store(store_path)
    assert store.get_constituency("bhowanipore").current_score == 20
    assert store.get_constituency("uttarpara").current_score == 5
    assert len(store.score_history("bhowanipore")) == 1


def test_full_run_with_scripted_source(paths, monkeypatch):
    pack, store_path = paths
    monkeypatch.setenv("NEWSAPI_KEY", "test-key")
    session = FakeSession([newsapi_ok(
        "Massive SSC recruitment scam uncovered, ED raids officials",
        "Residents protest as potholes and waterlogging ruin road in Ward 5")])
    monkeypatch.setattr(fetch.requests, "Session", lambda: session)

    assert runner.main(["--config", pack, "--store", store_path]) == 0
    assert len(session.calls) == 2

    store = Store(store_path)
    # both constituencies receive the same two articles; same hash, stored once
    assert len(store.data["items"]) == 2
    points = store.attack_points_for("bhowanipore") + store.attack_points_for("uttarpara")
    assert {p.attack_type for p in points} == {"corruption", "infrastructure"}
    issue_categories = {i.category for i in store.issues_for("bhowanipore")} | \
        {i.category for i in store.issues_for("uttarpara")}
    assert "infrastructure" in issue_categories
    assert store.get_quota("newsapi", "daily").used == 2


def test_briefing_for_known_and_unknown_constituency(paths, capsys):
    pack, store_path = paths
    assert runner.main(["--config", pack, "--store", store_path, "--briefing", "bhowanipore"]) == 0
    assert "Mamata Banerjee (AITC)" in capsys.readouterr().out
    assert runner.main(["--config", pack, "--store", store_path, "--briefing", "nowhere"]) == 1


def test_missing_pack_and_empty_store(tmp_path, paths):
    _, store_path = paths
    assert runner.main(["--config", str(tmp_path / "nope.json")]) == 1
    assert runner.main(["--store", store_path, "--rescore-only"]) == 1


def test_interrupt_flushes_and_exits_130(paths, monkeypatch):
    pack, store_path = paths

    def interrupted(scorer, ids, window_days=None):
        raise KeyboardInterrupt

    monkeypatch.setattr(vulnerability, "run", interrupted)
    assert runner.main(["--config", pack, "--store", store_path, "--rescore-only"]) == 130
    assert Store(store_path).get_constituency("bhowanipore") is not None
