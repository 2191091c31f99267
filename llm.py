"""
Unified AI caller. Every hosted-model request goes through here.
Supports retry on rate limits and optional response caching.

Nothing in the pipeline depends on these calls succeeding: callers get None
back on any failure and fall through to the lexical path.
"""

import hashlib
import json
import os
import re
import threading
import time

import requests

from config import LLM_CONFIGS, HF_CONFIG

# In-memory cache for this run (avoids re-calling for identical prompts)
_cache = {}
_cache_lock = threading.Lock()


def get_available_llms(exclude=None):
    exclude = exclude or []
    return [k for k, v in LLM_CONFIGS.items()
            if k not in exclude and os.environ.get(v["env_key"])]


def call_by_id(llm_id, system_prompt, user_prompt, max_tokens=600, use_cache=True, timeout=15):
    """Call an LLM by its config ID. None when the key is missing or the call fails."""
    config = LLM_CONFIGS.get(llm_id)
    if not config:
        return None
    api_key = os.environ.get(config["env_key"])
    if not api_key:
        return None
    return call(config["provider"], config["model"],
                system_prompt, user_prompt, api_key, max_tokens, use_cache, timeout)


def _cached(key, fn):
    with _cache_lock:
        if key in _cache:
            return _cache[key]
    result = fn()
    if result:
        with _cache_lock:
            _cache[key] = result
    return result


def _with_retry(label, fn, sleep=time.sleep):
    for attempt in range(3):
        try:
            return fn()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code in (429, 503):
                wait = (attempt + 1) * 8
                print("    ... {} rate limited, waiting {}s (attempt {}/3)".format(label, wait, attempt + 1))
                sleep(wait)
            else:
                code = e.response.status_code if e.response is not None else "unknown"
                print("  X {}: HTTP {}".format(label, code))
                return None
        except requests.exceptions.RequestException as e:
            print("  X {}: {}".format(label, str(e)[:100]))
            return None
        except (KeyError, IndexError, ValueError) as e:
            print("  X {}: bad response ({})".format(label, str(e)[:100]))
            return None
    return None


def call(provider, model, system_prompt, user_prompt, api_key, max_tokens=600, use_cache=True, timeout=15):
    """Unified LLM call with retry and optional caching."""
    label = "{}/{}".format(provider, model)

    def attempt():
        return _with_retry(label, lambda: _call_once(
            provider, model, system_prompt, user_prompt, api_key, max_tokens, timeout))

    if not use_cache:
        return attempt()
    cache_key = hashlib.md5(
        "{}:{}:{}:{}".format(provider, model, system_prompt, user_prompt).encode()
    ).hexdigest()
    return _cached(cache_key, attempt)


def _call_once(provider, model, system_prompt, user_prompt, api_key, max_tokens, timeout):
    if provider == "google":
        url = "https://generativelanguage.googleapis.com/v1beta/models/{}:generateContent?key={}".format(model, api_key)
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"parts": [{"text": user_prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": 0.0}
        }
        resp = requests.post(url, json=payload, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
        parts = data["candidates"][0]["content"]["parts"]
        return "\n".join(p["text"] for p in parts if "text" in p)

    elif provider == "openai":
        url = "https://api.openai.com/v1/chat/completions"
        headers = {"Authorization": "Bearer " + api_key, "Content-Type": "application/json"}
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "max_tokens": max_tokens, "temperature": 0.0
        }
        resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
        resp.raise_for_status()
        return resp.json()["choices"][0]["message"]["content"]

    elif provider == "anthropic":
        url = "https://api.anthropic.com/v1/messages"
        headers = {
            "x-api-key": api_key, "content-type": "application/json",
            "anthropic-version": "2023-06-01"
        }
        payload = {
            "model": model, "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}]
        }
        resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
        resp.raise_for_status()
        return resp.json()["content"][0]["text"]

    raise ValueError("unknown provider " + provider)


def call_inference(model, text, timeout=15, use_cache=True):
    """Hosted inference model (HuggingFace). Returns the parsed JSON or None."""
    api_key = os.environ.get(HF_CONFIG["env_key"])
    if not api_key:
        return None
    label = "huggingface/{}".format(model)

    def once():
        resp = requests.post(
            "{}/{}".format(HF_CONFIG["url"], model),
            headers={"Authorization": "Bearer " + api_key},
            json={"inputs": text[:512]},
            timeout=timeout)
        resp.raise_for_status()
        return resp.json()

    def attempt():
        return _with_retry(label, once)

    if not use_cache:
        return attempt()
    return _cached(hashlib.md5("hf:{}:{}".format(model, text).encode()).hexdigest(), attempt)


def parse_json_object(text):
    """Pull the first JSON object out of a model reply (handles ``` fences)."""
    if not text:
        return None
    cleaned = re.sub(r'```json\s*', '', text)
    cleaned = re.sub(r'```\s*', '', cleaned).strip()
    m = re.search(r'\{.*\}', cleaned, re.DOTALL)
    try:
        data = json.loads(m.group() if m else cleaned)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None
