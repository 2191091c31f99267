"""
Step 4b: Turn negative or controversial coverage into attack points.

Templates are tried in order and the first match wins. There is at most one
active attack point per (constituency, attack type): new evidence is appended
to it instead of opening a duplicate.
"""

import hashlib

from lexicon import get_default_lexicon
from models import AttackPoint, StepReport, utc_now

DEFAULT_TARGET = "the sitting MLA"


class AttackPointGenerator:

    def __init__(self, store, lexicon=None, clock=None):
        self.store = store
        self.lexicon = lexicon or get_default_lexicon()
        self.clock = clock or utc_now

    def match_template(self, item):
        text = "{} {}".format(item.title, item.body)
        lowered = text.lower()
        for template in self.lexicon.attack_templates():
            if template["en_re"].search(lowered):
                return template
            if template["bn_re"] is not None and template["bn_re"].search(text):
                return template
        return None

    def generate(self, item, classification, target_name=None):
        """AttackPoint created or extended by this item, or None when it does not qualify."""
        if classification is None:
            return None
        if classification.sentiment != "negative" and not classification.is_controversy:
            return None
        template = self.match_template(item)
        if template is None:
            return None

        target = target_name or item.leader_name or DEFAULT_TARGET
        constituency_id = item.constituency_id
        with self.store.lock_for(constituency_id):
            now = self.clock().isoformat()
            for point in self.store.attack_points_for(constituency_id, active_only=True):
                if point.attack_type != template["type"]:
                    continue
                if item.id not in point.source_content_ids:
                    point.source_content_ids.append(item.id)
                    point.updated_at = now
                    self.store.save_attack_point(point)
                return point

            point = AttackPoint(
                id="atk_" + hashlib.md5("{}|{}|{}|{}".format(
                    constituency_id, template["type"], now,
                    len(self.store.attack_points_for(constituency_id))).encode()).hexdigest()[:10],
                constituency_id=constituency_id,
                target_name=target,
                claim=template["claim"].format(target=target),
                evidence_ref=item.title,
                attack_type=template["type"],
                impact_tier=template["impact"],
                source_content_ids=[item.id],
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self.store.save_attack_point(point)
            return point

    def deactivate(self, constituency_id, attack_type):
        """Retire the active point of this type. True if one was active."""
        with self.store.lock_for(constituency_id):
            for point in self.store.attack_points_for(constituency_id, active_only=True):
                if point.attack_type == attack_type:
                    point.is_active = False
                    point.updated_at = self.clock().isoformat()
                    self.store.save_attack_point(point)
                    return True
        return False


def run(items, classifications, generator, targets=None):
    """Generate attack points for new items. targets maps constituency id -> leader name."""
    print("\n>>> ATTACK POINTS: {} items...".format(len(items)))
    report = StepReport("attack_points", items_in=len(items))
    targets = targets or {}

    touched = set()
    for item in items:
        if not item.constituency_id:
            continue
        try:
            point = generator.generate(item, classifications.get(item.id),
                                       targets.get(item.constituency_id))
        except Exception as e:
            report.dropped += 1
            print("  X attack point for {}: {}".format(item.id, str(e)[:100]))
            continue
        if point:
            touched.add(point.id)

    report.items_out = len(touched)
    print("    {} attack points created or extended".format(len(touched)))
    return sorted(touched), report
