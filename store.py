"""
Store: persistent state across runs.

One JSON document holding:
  - items:          content items keyed by content hash (never rewritten)
  - annotations:    classification results keyed by item id
  - issues:         tracked issues keyed by issue id
  - attack_points:  attack points keyed by point id
  - scores:         append-only vulnerability score history
  - constituencies: constituency records keyed by id
  - quota:          quota windows keyed by "scope|period"

Storage: output/radar_store.json by default. Writes go to a temp file and are
moved into place, so a crash mid-write never leaves a torn file.
"""

import json
import os
import tempfile
import threading
from pathlib import Path

from models import (
    ContentItem, ClassificationResult, TrackedIssue, AttackPoint,
    VulnerabilityScoreRecord, Constituency, QuotaState, utc_now, parse_time,
)


SECTIONS = ("items", "annotations", "issues", "attack_points", "scores",
            "constituencies", "quota")


def _empty():
    data = {name: {} for name in SECTIONS}
    data["scores"] = []
    return data


class Store:

    def __init__(self, path="output/radar_store.json", clock=None):
        self.path = Path(path)
        self.clock = clock or utc_now
        self.dirty = False
        self._lock = threading.RLock()
        self._locks = {}
        self.data = self._load()

    def _load(self):
        if not self.path.exists():
            return _empty()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            print("  X Store unreadable ({}), starting empty".format(str(e)[:80]))
            return _empty()
        if not isinstance(data, dict):
            return _empty()
        base = _empty()
        for name in SECTIONS:
            if isinstance(data.get(name), type(base[name])):
                base[name] = data[name]
        return base

    def lock_for(self, constituency_id):
        """Lock serializing issue, attack-point and score writes for one constituency."""
        with self._lock:
            if constituency_id not in self._locks:
                self._locks[constituency_id] = threading.RLock()
            return self._locks[constituency_id]

    def flush(self):
        """Write to disk if anything changed. False (and still dirty) on failure."""
        with self._lock:
            if not self.dirty:
                return True
            payload = json.dumps(self.data, indent=2, ensure_ascii=False, default=str)
            tmp_name = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=self.path.name + ".", suffix=".tmp", dir=str(self.path.parent))
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except OSError as e:
                print("  X Store flush failed ({}); will retry on next flush".format(e))
                if tmp_name and os.path.exists(tmp_name):
                    try:
                        os.remove(tmp_name)
                    except OSError:
                        pass
                return False
            self.dirty = False
            return True

    # === Content ===

    def has_item(self, item_id):
        with self._lock:
            return item_id in self.data["items"]

    def add_item(self, item):
        """Store a content item. False if its hash is already stored (second write discarded)."""
        with self._lock:
            if item.id in self.data["items"]:
                return False
            self.data["items"][item.id] = {
                "item": item.to_dict(),
                "stored_at": self.clock().isoformat(),
            }
            self.dirty = True
            return True

    def get_item(self, item_id):
        with self._lock:
            entry = self.data["items"].get(item_id)
        return ContentItem.from_dict(entry["item"]) if entry else None

    def _item_time(self, entry):
        return parse_time(entry["item"].get("published_at")) or parse_time(entry.get("stored_at"))

    def items_for(self, constituency_id, since=None):
        """Items tagged to a constituency, newest first, optionally published after `since`."""
        with self._lock:
            entries = [e for e in self.data["items"].values()
                       if e["item"].get("constituency_id") == constituency_id]
        dated = []
        for e in entries:
            ts = self._item_time(e)
            if since is not None and (ts is None or ts < since):
                continue
            dated.append((ts, e))
        dated.sort(key=lambda pair: pair[0].isoformat() if pair[0] else "", reverse=True)
        return [ContentItem.from_dict(e["item"]) for _, e in dated]

    def recent_items(self, source_key, constituency_id="", limit=20):
        """Most recent stored items from one source, for the fetch fallback."""
        with self._lock:
            entries = [e for e in self.data["items"].values()
                       if e["item"].get("source_system") == source_key
                       and (not constituency_id or e["item"].get("constituency_id") == constituency_id)
                       and "demo" not in (e["item"].get("tags") or ())]
        entries.sort(key=lambda e: e.get("stored_at", ""), reverse=True)
        return [ContentItem.from_dict(e["item"]) for e in entries[:limit]]

    def set_annotation(self, item_id, result):
        with self._lock:
            self.data["annotations"][item_id] = result.to_dict()
            self.dirty = True

    def get_annotation(self, item_id):
        with self._lock:
            data = self.data["annotations"].get(item_id)
        return ClassificationResult.from_dict(data) if data else None

    # === Issues ===

    def issues_for(self, constituency_id, category=None, status=None):
        with self._lock:
            rows = [TrackedIssue.from_dict(d) for d in self.data["issues"].values()
                    if d.get("constituency_id") == constituency_id]
        if category:
            rows = [i for i in rows if i.category == category]
        if status:
            rows = [i for i in rows if i.status == status]
        return rows

    def get_issue(self, issue_id):
        with self._lock:
            data = self.data["issues"].get(issue_id)
        return TrackedIssue.from_dict(data) if data else None

    def save_issue(self, issue):
        with self._lock:
            self.data["issues"][issue.id] = issue.to_dict()
            self.dirty = True

    # === Attack points ===

    def attack_points_for(self, constituency_id, active_only=False):
        with self._lock:
            rows = [AttackPoint.from_dict(d) for d in self.data["attack_points"].values()
                    if d.get("constituency_id") == constituency_id]
        if active_only:
            rows = [p for p in rows if p.is_active]
        return rows

    def save_attack_point(self, point):
        with self._lock:
            self.data["attack_points"][point.id] = point.to_dict()
            self.dirty = True

    # === Scores ===

    def append_score(self, record):
        """Append to score history. Re-appending an existing record id is a no-op."""
        with self._lock:
            if any(r.get("id") == record.id for r in self.data["scores"]):
                return False
            self.data["scores"].append(record.to_dict())
            c = self.data["constituencies"].get(record.constituency_id)
            if c is not None:
                c["current_score"] = record.score
                c["score_degraded"] = record.degraded
                c["score_updated_at"] = record.computed_at
            self.dirty = True
            return True

    def score_history(self, constituency_id):
        with self._lock:
            rows = [VulnerabilityScoreRecord.from_dict(r) for r in self.data["scores"]
                    if r.get("constituency_id") == constituency_id]
        return rows

    def latest_score(self, constituency_id):
        history = self.score_history(constituency_id)
        return history[-1] if history else None

    # === Constituencies ===

    def upsert_constituency(self, constituency):
        """Insert or refresh static fields, keeping the stored current score."""
        with self._lock:
            existing = self.data["constituencies"].get(constituency.id)
            data = constituency.to_dict()
            if existing:
                for key in ("current_score", "score_degraded", "score_updated_at"):
                    data[key] = existing.get(key, data[key])
            self.data["constituencies"][constituency.id] = data
            self.dirty = True

    def get_constituency(self, constituency_id):
        with self._lock:
            data = self.data["constituencies"].get(constituency_id)
        return Constituency.from_dict(data) if data else None

    def constituencies(self):
        with self._lock:
            return [Constituency.from_dict(d) for d in self.data["constituencies"].values()]

    # === Quota ===

    def get_quota(self, scope_key, period):
        with self._lock:
            data = self.data["quota"].get("{}|{}".format(scope_key, period))
        return QuotaState.from_dict(data) if data else None

    def save_quota(self, state):
        with self._lock:
            self.data["quota"]["{}|{}".format(state.scope_key, state.period)] = state.to_dict()
            self.dirty = True
