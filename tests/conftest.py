from datetime import datetime, timedelta, timezone

import pytest
import requests

from config import DEFAULT_SETTINGS
from lexicon import detect_language
from models import ContentItem, Constituency
from pipeline.normalize import content_hash
from store import Store


class FixedClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json


class FakeSession:
    """Replays scripted responses; an Exception entry is raised instead of returned.
    The last entry repeats once the script runs out."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        entry = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(entry, Exception):
            raise entry
        return entry


def newsapi_ok(*titles):
    return FakeResponse(200, {
        "status": "ok",
        "articles": [
            {"title": t, "description": "Details about " + t, "url": "https://example.com/" + str(i),
             "publishedAt": "2024-06-15T08:00:00Z", "author": "Staff",
             "source": {"id": None, "name": "The Telegraph"}}
            for i, t in enumerate(titles)
        ],
    })


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(tmp_path, clock):
    return Store(tmp_path / "radar_store.json", clock=clock)


@pytest.fixture
def settings():
    s = dict(DEFAULT_SETTINGS)
    s.update({"backoff_seconds": 1.0, "max_retries": 3, "max_fetch_workers": 4})
    return s


@pytest.fixture
def timeout_error():
    return requests.exceptions.Timeout("read timed out")


@pytest.fixture
def make_item(clock):
    def _make(title, body="", source="Anandabazar Patrika", constituency_id="c1",
              published_at=None, leader_name="", source_system="newsapi", language="en"):
        text = "{} {}".format(title, body).strip()
        return ContentItem(
            id=content_hash(title, source),
            source_system=source_system,
            source_name=source,
            title=title,
            text=text,
            body=body,
            published_at=published_at if published_at is not None else clock().isoformat(),
            language=detect_language(text, default=language),
            constituency_id=constituency_id,
            leader_name=leader_name,
        )
    return _make


@pytest.fixture
def constituency(store):
    c = Constituency(id="c1", name="Bhowanipore", district="Kolkata Dakshin",
                     leader_name="Mamata Banerjee", party="AITC",
                     margin_votes=400, total_voters=10000)
    store.upsert_constituency(c)
    return c
