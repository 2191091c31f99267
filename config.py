"""
Configuration: sources, quotas, thresholds, AI classifier models.
The runner can load a JSON config pack that overrides settings, restricts
which sources are active and declares the constituencies to track.
"""

import json
import os
from pathlib import Path


# Each source: endpoint, payload schema, credential env var, quota windows.
# Quota mode "reject" counts calls and refuses once spent; "clip" counts items
# and shrinks the request to whatever is left.
SOURCES = {
    "newsapi": {
        "name": "NewsAPI",
        "url": "https://newsapi.org/v2/everything",
        "schema": "newsapi",
        "env_key": "NEWSAPI_KEY",
        "language": "en",
        "quotas": [
            {"period": "daily", "limit": 100, "mode": "reject"},
        ],
    },
    "google_news": {
        "name": "Google News",
        "url": "https://news.google.com/rss/search",
        "schema": "rss",
        "env_key": None,
        "language": "en",
        "params": {"hl": "en-IN", "gl": "IN", "ceid": "IN:en"},
        "quotas": [],
    },
    "google_news_bn": {
        "name": "Google News Bengali",
        "url": "https://news.google.com/rss/search",
        "schema": "rss",
        "env_key": None,
        "language": "bn",
        "params": {"hl": "bn-IN", "gl": "IN", "ceid": "IN:bn"},
        "quotas": [],
    },
    "anandabazar": {
        "name": "Anandabazar Patrika",
        "url": "https://api.rss2json.com/v1/api.json",
        "feed_url": "https://www.anandabazar.com/rss/west-bengal",
        "schema": "rss2json",
        "env_key": None,
        "language": "bn",
        "quotas": [
            {"period": "daily", "limit": 10000, "mode": "reject"},
        ],
    },
    "twitter": {
        "name": "Twitter",
        "url": os.environ.get("TWITTER_PROXY_URL", "http://localhost:3001") + "/api/twitter/search",
        "schema": "twitter",
        "env_key": "TWITTER_BEARER_TOKEN",
        "language": "en",
        "quotas": [
            {"period": "daily", "limit": 500, "mode": "clip"},
            {"period": "monthly", "limit": 1500, "mode": "reject"},
        ],
    },
}

LLM_CONFIGS = {
    "gemini": {
        "provider": "google", "model": "gemini-2.0-flash",
        "env_key": "GOOGLE_API_KEY", "label": "Gemini",
    },
    "chatgpt": {
        "provider": "openai", "model": "gpt-4.1-mini",
        "env_key": "OPENAI_API_KEY", "label": "ChatGPT",
    },
    "claude": {
        "provider": "anthropic", "model": "claude-sonnet-4-20250514",
        "env_key": "ANTHROPIC_API_KEY", "label": "Claude",
    },
}

HF_CONFIG = {
    "env_key": "HUGGINGFACE_API_KEY",
    "url": "https://api-inference.huggingface.co/models",
    "sentiment_model": "distilbert-base-uncased-finetuned-sst-2-english",
}

DEFAULT_SETTINGS = {
    "store_path": "output/radar_store.json",
    "cache_ttl_seconds": 300,
    "request_timeout": 12,
    "max_retries": 3,
    "backoff_seconds": 1.0,
    "max_fetch_workers": 8,
    "max_classify_workers": 8,
    "similarity_threshold": 0.5,
    "severity_upgrade_hits": 3,
    "trend_threshold": 2,
    "window_days": 30,
    "min_ai_confidence": 0.6,
    "ai_classifiers": [],  # e.g. ["huggingface", "gemini"]; empty = lexical only
    "ai_timeout": 15,
    "lexicon_path": None,
    "demo_mode": False,
    "store_fallback_limit": 20,
}

# Environment overrides: RADAR_<SETTING_NAME>
_ENV_CASTS = {
    "cache_ttl_seconds": int, "request_timeout": float, "max_retries": int,
    "backoff_seconds": float, "max_fetch_workers": int, "max_classify_workers": int,
    "similarity_threshold": float, "severity_upgrade_hits": int,
    "trend_threshold": float, "window_days": int, "min_ai_confidence": float,
    "ai_timeout": float, "store_fallback_limit": int,
}


def _truthy(value):
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config_pack(path):
    """Load a JSON config pack that overrides default settings/sources."""
    if not path or not Path(path).exists():
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def get_settings(pack=None, environ=None):
    """Defaults, then RADAR_* environment variables, then the pack's "settings"."""
    environ = os.environ if environ is None else environ
    settings = dict(DEFAULT_SETTINGS)

    for key, cast in _ENV_CASTS.items():
        raw = environ.get("RADAR_" + key.upper())
        if raw not in (None, ""):
            settings[key] = cast(raw)
    if environ.get("RADAR_STORE_PATH"):
        settings["store_path"] = environ["RADAR_STORE_PATH"]
    if environ.get("RADAR_LEXICON_PATH"):
        settings["lexicon_path"] = environ["RADAR_LEXICON_PATH"]
    if environ.get("RADAR_AI_CLASSIFIERS"):
        settings["ai_classifiers"] = [
            s.strip() for s in environ["RADAR_AI_CLASSIFIERS"].split(",") if s.strip()]
    if "RADAR_DEMO_MODE" in environ:
        settings["demo_mode"] = _truthy(environ["RADAR_DEMO_MODE"])

    if pack and isinstance(pack.get("settings"), dict):
        settings.update(pack["settings"])
    return settings


def get_active_sources(pack=None):
    """Return {source_key: config}, filtered and/or patched by a pack."""
    sources = {k: dict(v) for k, v in SOURCES.items()}
    if not pack:
        return sources
    if "sources" in pack and pack["sources"] != "all":
        allowed = set(pack["sources"])
        sources = {k: v for k, v in sources.items() if k in allowed}
    # Per-source overrides, e.g. {"twitter": {"quotas": [...], "url": "..."}}
    for key, patch in (pack.get("source_overrides") or {}).items():
        if key in sources and isinstance(patch, dict):
            sources[key].update(patch)
    return sources


def get_constituencies(pack=None):
    """Constituency dicts declared by the pack (empty without one)."""
    if not pack:
        return []
    return [c for c in pack.get("constituencies", []) if c.get("id") and c.get("name")]
