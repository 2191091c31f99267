"""
Step 2: Normalize raw payloads into ContentItems and drop duplicates.

Every source schema maps onto the same ContentItem shape. Missing optional
fields become empty strings/tuples. Items with neither title nor body, or
with no source name, are dropped and counted.

Identity is a content hash of (title, source name), so the same headline
from the same outlet is stored once no matter how many times it is fetched.
"""

import html
import re
import zlib
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from lexicon import detect_language
from models import ContentItem, NormalizationError, StepReport, parse_time


def content_hash(title, source_name):
    key = "{}|{}".format((title or "").strip().lower(), (source_name or "").strip().lower())
    return "{:08x}".format(zlib.crc32(key.encode("utf-8")) & 0xffffffff)


def as_text(value):
    """Payload field -> str. None becomes "", numbers and lists are stringified."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def strip_html(text):
    text = re.sub(r"<[^>]+>", " ", as_text(text))
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def parse_published(value):
    """Any timestamp a feed might send -> ISO-8601 UTC, or "" when unparseable."""
    if not value:
        return ""
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return ""
    value = str(value).strip()
    dt = parse_time(value)
    if dt is None:
        try:
            dt = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            dt = None
        if dt is not None and dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
    if dt is None:
        try:
            dt = datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
        except ValueError:
            return ""
    return dt.astimezone(timezone.utc).isoformat()


def _split_google_title(title):
    """Google News titles end in " - Outlet"."""
    if " - " in title:
        head, _, outlet = title.rpartition(" - ")
        if head and outlet and len(outlet) <= 60:
            return head.strip(), outlet.strip()
    return title, ""


def _fields_newsapi(raw):
    src = raw.get("source") or {}
    return {
        "title": raw.get("title"),
        "body": raw.get("description") or raw.get("content"),
        "url": raw.get("url"),
        "published": raw.get("publishedAt"),
        "author": raw.get("author"),
        "source": src.get("name") if isinstance(src, dict) else src,
    }


def _fields_rss(raw):
    title, outlet = _split_google_title(as_text(raw.get("title")))
    return {
        "title": title,
        "body": raw.get("summary") or raw.get("description"),
        "url": raw.get("link"),
        "published": raw.get("published"),
        "author": raw.get("author"),
        "source": raw.get("source") or outlet,
        "tags": raw.get("tags"),
    }


def _fields_rss2json(raw):
    return {
        "title": raw.get("title"),
        "body": raw.get("description") or raw.get("content"),
        "url": raw.get("link"),
        "published": raw.get("pubDate"),
        "author": raw.get("author"),
        "source": raw.get("feed_title"),
        "tags": raw.get("categories"),
    }


def _fields_twitter(raw):
    text = as_text(raw.get("text"))
    handle = as_text(raw.get("author_username"))
    return {
        "title": text[:140],
        "body": text,
        "url": "https://twitter.com/{}/status/{}".format(handle or "i", raw["id"]) if raw.get("id") else "",
        "published": raw.get("created_at"),
        "author": "@" + handle if handle else raw.get("author_id"),
        "source": "Twitter",
        "tags": [h.get("tag") for h in ((raw.get("entities") or {}).get("hashtags") or []) if h.get("tag")],
    }


def _fields_generic(raw):
    return {
        "title": raw.get("title") or raw.get("headline"),
        "body": (raw.get("body") or raw.get("description") or raw.get("content")
                 or raw.get("summary") or raw.get("text")),
        "url": raw.get("url") or raw.get("link"),
        "published": (raw.get("published_at") or raw.get("publishedAt")
                      or raw.get("published") or raw.get("date")),
        "author": raw.get("author"),
        "source": raw.get("source_name") or raw.get("source"),
        "tags": raw.get("tags"),
        "sentiment": raw.get("raw_sentiment_hint") or raw.get("sentiment"),
    }


SCHEMAS = {
    "newsapi": _fields_newsapi,
    "rss": _fields_rss,
    "rss2json": _fields_rss2json,
    "twitter": _fields_twitter,
    "generic": _fields_generic,
}


def normalize(raw, schema, source_system="", default_source="", language="en",
              constituency_id="", leader_name=""):
    """Raw payload dict -> ContentItem. Raises NormalizationError when required fields are missing."""
    if not isinstance(raw, dict):
        raise NormalizationError("payload is not an object")
    mapper = SCHEMAS.get(schema, _fields_generic)
    f = mapper(raw)

    title = strip_html(f.get("title"))
    body = strip_html(f.get("body"))
    source = f.get("source")
    source_name = (source if isinstance(source, str) else "").strip() or default_source
    if not title and not body:
        raise NormalizationError("no title or body")
    if not source_name:
        raise NormalizationError("no source name")
    if not title:
        title = body[:140]

    text = title if not body or body.startswith(title) else "{} {}".format(title, body)
    tags = tuple(str(t) for t in (f.get("tags") or ()) if t)
    sentiment = f.get("sentiment")
    return ContentItem(
        id=content_hash(title, source_name),
        source_system=source_system or schema,
        source_name=source_name,
        title=title,
        text=text,
        body=body,
        url=str(f.get("url") or ""),
        published_at=parse_published(f.get("published")),
        author=str(f.get("author") or ""),
        tags=tags,
        raw_sentiment_hint=sentiment if isinstance(sentiment, str) else "",
        language=detect_language(text, default=language),
        constituency_id=constituency_id or str(raw.get("constituency_id") or ""),
        leader_name=leader_name or str(raw.get("leader_name") or ""),
    )


class Deduplicator:
    """Content-hash dedup against the store plus everything seen this run."""

    def __init__(self, store):
        self.store = store
        self._seen = set()

    def is_duplicate(self, item):
        return item.id in self._seen or self.store.has_item(item.id)

    def admit(self, item):
        """Store the item unless it is a duplicate. True when it was new."""
        if item.id in self._seen:
            return False
        self._seen.add(item.id)
        return self.store.add_item(item)


def run(results, store, sources):
    """Normalize and dedup every FetchResult. Returns (new_items, report)."""
    print("\n>>> NORMALIZE: {} fetch results...".format(len(results)))
    report = StepReport("normalize", items_in=sum(len(r.items) for r in results))
    dedup = Deduplicator(store)

    new_items = []
    duplicates = 0
    from_store = 0
    for result in results:
        if result.origin == "store":
            # already normalized and stored on an earlier run
            from_store += len(result.items)
            continue
        source = sources.get(result.source_key, {})
        schema = "generic" if result.demo else source.get("schema", "generic")
        for raw in result.items:
            try:
                item = normalize(
                    raw, schema,
                    source_system=result.source_key,
                    default_source=source.get("name", ""),
                    language=source.get("language", "en"),
                    constituency_id=result.request.constituency_id,
                    leader_name=result.request.leader_name)
            except NormalizationError as e:
                report.dropped += 1
                print("    dropped {} payload: {}".format(result.source_key, e))
                continue
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                report.dropped += 1
                print("  X malformed {} payload: {}: {}".format(
                    result.source_key, type(e).__name__, str(e)[:80]))
                continue
            if result.demo:
                item = ContentItem.from_dict(dict(item.to_dict(), tags=item.tags + ("demo",)))
            if dedup.admit(item):
                new_items.append(item)
            else:
                duplicates += 1

    report.items_out = len(new_items)
    report.notes.append("{} duplicates".format(duplicates))
    if from_store:
        report.notes.append("{} served from store".format(from_store))
    print("    {} new items ({} duplicates, {} dropped)".format(
        len(new_items), duplicates, report.dropped))
    return new_items, report
