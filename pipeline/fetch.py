"""
Step 1: Fetch raw payloads from every active source, in parallel.

Each (source, request) goes: fresh cache -> quota reservation -> live call
(retried on transient errors) -> cache. When the live path is not possible
the fallback chain runs, strictly in order:
  stale cache (any age) -> recent rows in the store -> empty result + error.
Demo placeholders appear only when demo_mode is switched on explicitly.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

import feedparser
import requests

from models import FetchRequest, FetchResult, StepReport, QuotaExhausted, SourceUnauthorized
from pipeline.quota import QuotaBook, ResponseCache

USER_AGENT = "ConstituencyRadar/1.0"


class TransientError(Exception):
    """Retryable failure: connection error, timeout, 429 or 5xx."""


class Cancelled(Exception):
    pass


# === Source adapters: build the HTTP call, turn the response into payload dicts ===

def _newsapi_call(source, request, allowed, api_key):
    params = {
        "q": request.query, "language": request.language or source.get("language", "en"),
        "sortBy": "publishedAt", "pageSize": allowed,
    }
    return params, {"X-Api-Key": api_key}


def _newsapi_parse(source, request, resp):
    data = resp.json()
    if data.get("status") == "error":
        raise ValueError(data.get("message", "newsapi error"))
    return data.get("articles") or []


def _rss_call(source, request, allowed, api_key):
    params = dict(source.get("params") or {})
    params["q"] = request.query
    return params, {}


def _rss_parse(source, request, resp):
    feed = feedparser.parse(resp.content)
    if feed.bozo and not feed.entries:
        raise ValueError("unparseable feed")
    payloads = []
    for entry in feed.entries:
        src = entry.get("source") or {}
        payloads.append({
            "title": entry.get("title", ""),
            "link": entry.get("link", ""),
            "summary": entry.get("summary", entry.get("description", "")),
            "published": entry.get("published", entry.get("updated", "")),
            "author": entry.get("author", ""),
            "source": src.get("title", "") if hasattr(src, "get") else "",
            "tags": [t.get("term", "") for t in entry.get("tags", []) if t.get("term")],
        })
    return payloads


def _rss2json_call(source, request, allowed, api_key):
    params = {"rss_url": source["feed_url"]}
    if api_key:
        params["api_key"] = api_key
        params["count"] = allowed
    return params, {}


def _rss2json_parse(source, request, resp):
    data = resp.json()
    if data.get("status") not in (None, "ok"):
        raise ValueError(data.get("message", "rss2json error"))
    feed_title = (data.get("feed") or {}).get("title", "")
    terms = [t.lower() for t in request.query.replace('"', " ").split() if len(t) > 2 and t.upper() != "OR"]
    payloads = []
    for item in data.get("items") or []:
        text = "{} {}".format(item.get("title", ""), item.get("description", "")).lower()
        if terms and not any(t in text for t in terms):
            continue
        item = dict(item)
        item.setdefault("feed_title", feed_title)
        payloads.append(item)
    return payloads


def _twitter_call(source, request, allowed, api_key):
    params = {"query": request.query, "max_results": allowed}
    return params, {"Authorization": "Bearer " + api_key}


def _twitter_parse(source, request, resp):
    data = resp.json()
    users = {u.get("id"): u for u in ((data.get("includes") or {}).get("users") or [])}
    payloads = []
    for tweet in data.get("data") or []:
        tweet = dict(tweet)
        user = users.get(tweet.get("author_id"))
        if user:
            tweet["author_username"] = user.get("username", "")
        payloads.append(tweet)
    return payloads


ADAPTERS = {
    "newsapi": (_newsapi_call, _newsapi_parse),
    "rss": (_rss_call, _rss_parse),
    "rss2json": (_rss2json_call, _rss2json_parse),
    "twitter": (_twitter_call, _twitter_parse),
}


def demo_payloads(request):
    """Fixed placeholder content. Only ever used with demo_mode on."""
    who = request.leader_name or "The sitting MLA"
    return [
        {"title": "[DEMO] {} inaugurates new community health centre".format(who),
         "description": "Placeholder item generated in demo mode.", "source": "Demo Feed"},
        {"title": "[DEMO] Residents protest waterlogging and broken roads",
         "description": "Placeholder item generated in demo mode.", "source": "Demo Feed"},
    ]


class Fetcher:

    def __init__(self, sources, settings, store, session=None, sleep=None, clock=None,
                 cancel_event=None, environ=None):
        self.sources = sources
        self.settings = settings
        self.store = store
        self.session = session or requests.Session()
        self.sleep = sleep or time.sleep
        self.environ = os.environ if environ is None else environ
        self.cancel_event = cancel_event or threading.Event()
        self.quota = QuotaBook(store, clock=clock)
        self.cache = ResponseCache(settings.get("cache_ttl_seconds", 300), clock=clock)
        self.unauthorized = set()
        self._lock = threading.Lock()

    def cancel(self):
        self.cancel_event.set()

    def fetch(self, source_key, request):
        """Never raises: every failure becomes a FetchResult with error set."""
        source = self.sources[source_key]
        if self.cancel_event.is_set():
            return FetchResult(source_key, request, error="cancelled", origin="empty")

        cache_key = request.cache_key(source_key)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return FetchResult(source_key, request, items=cached, from_cache=True, origin="cache")

        with self._lock:
            blocked = source_key in self.unauthorized
        if blocked:
            return self._fallback(source_key, request, "unauthorized")

        api_key = ""
        if source.get("env_key"):
            api_key = self.environ.get(source["env_key"], "")
            if not api_key:
                return self._fallback(source_key, request, "missing credentials ({})".format(source["env_key"]))

        try:
            reservation = self.quota.reserve(source_key, source.get("quotas", []), request.max_results)
        except QuotaExhausted as e:
            print("    ... {}".format(e))
            return self._fallback(source_key, request, str(e), quota_exhausted=True)

        responded = False
        items = []
        try:
            items, responded = self._call_with_retry(source_key, source, request, reservation.allowed, api_key)
        except Cancelled:
            return FetchResult(source_key, request, error="cancelled", origin="empty")
        except SourceUnauthorized as e:
            responded = True
            with self._lock:
                self.unauthorized.add(source_key)
            print("  X {}: {} (disabled for this run)".format(source_key, e))
            return self._fallback(source_key, request, "unauthorized")
        except TransientError as e:
            responded = getattr(e, "responded", False)
            print("  X {}: {}".format(source_key, e))
            return self._fallback(source_key, request, str(e))
        except ValueError as e:
            responded = True
            print("  X {}: bad payload ({})".format(source_key, str(e)[:100]))
            return self._fallback(source_key, request, "bad payload")
        finally:
            self.quota.settle(reservation, responded, len(items))

        items = items[:reservation.allowed]
        self.cache.put(cache_key, items)
        return FetchResult(source_key, request, items=items, origin="live")

    def _call_with_retry(self, source_key, source, request, allowed, api_key):
        """Returns (payloads, responded). Raises TransientError after the last attempt."""
        build, parse = ADAPTERS[source["schema"]]
        params, headers = build(source, request, allowed, api_key)
        headers = dict(headers, **{"User-Agent": USER_AGENT})
        attempts = max(1, int(self.settings.get("max_retries", 3)))
        backoff = float(self.settings.get("backoff_seconds", 1.0))
        timeout = self.settings.get("request_timeout", 12)
        responded = False
        last_error = "no attempts"

        for attempt in range(attempts):
            if self.cancel_event.is_set():
                raise Cancelled()
            try:
                resp = self.session.get(source["url"], params=params, headers=headers, timeout=timeout)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = "{}: {}".format(type(e).__name__, str(e)[:80])
            else:
                responded = True
                code = resp.status_code
                if code in (401, 403):
                    raise SourceUnauthorized("HTTP {}".format(code))
                if code == 429 or code >= 500:
                    last_error = "HTTP {}".format(code)
                elif code >= 400:
                    raise ValueError("HTTP {}".format(code))
                else:
                    try:
                        return parse(source, request, resp), responded
                    except (TypeError, KeyError, AttributeError) as e:
                        # valid JSON with an unexpected shape
                        raise ValueError("{}: {}".format(type(e).__name__, str(e)[:80]))

            if attempt < attempts - 1:
                wait = backoff * (2 ** attempt)
                print("    ... {} {}, retrying in {}s (attempt {}/{})".format(
                    source_key, last_error, wait, attempt + 1, attempts))
                self.sleep(wait)

        err = TransientError("failed after {} attempts ({})".format(attempts, last_error))
        err.responded = responded
        raise err

    def _fallback(self, source_key, request, error, quota_exhausted=False):
        stale = self.cache.get(request.cache_key(source_key), allow_stale=True)
        if stale is not None:
            return FetchResult(source_key, request, items=stale, from_cache=True,
                               quota_exhausted=quota_exhausted, error=error, origin="stale_cache")

        limit = self.settings.get("store_fallback_limit", 20)
        rows = self.store.recent_items(source_key, request.constituency_id, limit)
        if rows:
            return FetchResult(source_key, request, items=[r.to_dict() for r in rows],
                               quota_exhausted=quota_exhausted, error=error, origin="store")

        if self.settings.get("demo_mode"):
            print("    !!! DEMO MODE: {} returning placeholder content for '{}'".format(
                source_key, request.query))
            return FetchResult(source_key, request, items=demo_payloads(request),
                               quota_exhausted=quota_exhausted, error=error,
                               origin="demo", demo=True)

        return FetchResult(source_key, request, quota_exhausted=quota_exhausted,
                           error=error, origin="empty")


def build_requests(constituencies, sources, max_results=20):
    """One FetchRequest per (source, constituency), using the source's language."""
    jobs = []
    for c in constituencies:
        terms = c.search_terms or [c.name]
        for key, source in sources.items():
            lang = source.get("language", "en")
            if lang == "bn":
                local = [t for t in terms if not t.isascii()] or terms
                query = " OR ".join(local)
            else:
                query = " OR ".join(t for t in terms if t.isascii()) or c.name
            if c.leader_name and lang == "en":
                query = '"{}" OR {}'.format(c.leader_name, query)
            jobs.append((key, FetchRequest(
                query=query, constituency_id=c.id, leader_name=c.leader_name,
                max_results=max_results, language=lang)))
    return jobs


def run(fetcher, jobs):
    """Fetch every (source_key, request) in parallel. Returns (results, report)."""
    print("\n>>> FETCH: {} requests across {} sources...".format(
        len(jobs), len({k for k, _ in jobs})))
    report = StepReport("fetch", items_in=len(jobs))

    results = []
    workers = max(1, int(fetcher.settings.get("max_fetch_workers", 8)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(fetcher.fetch, key, req): (key, req) for key, req in jobs}
        for future in as_completed(futures):
            key, req = futures[future]
            try:
                result = future.result()
            except Exception as e:
                report.dropped += 1
                print("  X {} [{}]: {}".format(key, req.constituency_id, str(e)[:100]))
                continue
            results.append(result)
            if result.origin == "live":
                print("    {} [{}]: {} items".format(key, req.constituency_id, len(result.items)))
            elif result.items:
                print("    {} [{}]: {} items from {} ({})".format(
                    key, req.constituency_id, len(result.items), result.origin, result.error or "fresh"))
            else:
                print("  X {} [{}]: {}".format(key, req.constituency_id, result.error))

    by_origin = {}
    for r in results:
        by_origin[r.origin] = by_origin.get(r.origin, 0) + 1
    report.items_out = sum(len(r.items) for r in results)
    report.notes.append(", ".join("{} {}".format(n, o) for o, n in sorted(by_origin.items())))
    exhausted = sum(1 for r in results if r.quota_exhausted)
    if exhausted:
        report.notes.append("{} quota-exhausted".format(exhausted))
    if any(r.demo for r in results):
        report.notes.append("DEMO CONTENT PRESENT")
    return results, report
