"""
Keyword tables for classification, issue detection and attack points.

All tables live here under one version tag so a classification can be
reproduced from (text, LEXICON_VERSION). A JSON lexicon pack can replace any
top-level table; load_lexicon() merges it over the defaults.

Matching is case-insensitive substring matching, except short ASCII
keywords (3 letters or fewer: "ed", "cbi", "tet") which must match a whole
word, otherwise "ed" would hit every past-tense verb.
"""

import json
import re
from functools import lru_cache
from pathlib import Path


LEXICON_VERSION = "wb-2024.3"

BENGALI_SCRIPT = re.compile(r"[ঀ-৿]")

DEFAULT_TABLES = {
    "version": LEXICON_VERSION,

    "sentiment": {
        "en": {
            "positive": [
                "inaugurates", "launches", "development", "growth", "progress",
                "successful", "achievement", "welfare", "benefit", "support",
                "praise", "wins", "victory", "improvement", "investment", "jobs",
                "scheme", "boost", "relief", "announces", "approves", "grants",
                "awards", "honors", "celebrates",
            ],
            "negative": [
                "scam", "corruption", "arrest", "ed", "cbi", "investigation",
                "accused", "controversy", "protest", "violence", "failure",
                "criticism", "attack", "allegation", "scandal", "raid", "summon",
                "chargesheet", "remand", "custody", "seizure", "illegal", "crime",
                "fraud", "murder",
            ],
        },
        "bn": {
            "positive": [
                "উদ্বোধন", "উন্নয়ন", "সাফল্য", "প্রকল্প", "সহায়তা", "অনুদান",
                "কল্যাণ", "সুবিধা", "অগ্রগতি", "বৃদ্ধি", "জয়", "বিজয়",
                "সুখবর", "ঘোষণা", "সম্মান", "পুরস্কার", "প্রশংসা",
            ],
            "negative": [
                "কেলেঙ্কারি", "দুর্নীতি", "গ্রেপ্তার", "তদন্ত", "অভিযোগ", "ইডি",
                "সিবিআই", "জালিয়াতি", "বিতর্ক", "প্রতিবাদ", "হিংসা", "ব্যর্থতা",
                "সমালোচনা", "আক্রমণ", "অবৈধ", "অপরাধ", "হত্যা", "চার্জশিট",
                "জামিন", "জেল", "রেড", "সমন", "মামলা",
            ],
        },
    },

    # phrase -> weight; positive weights lean supportive, negative critical
    "stance": {
        "en": {
            "praises": 2, "lauds": 2, "hails": 2, "inaugurates": 1,
            "launches": 1, "welcomes": 1, "backs": 1, "thanks": 1,
            "slams": -2, "accuses": -2, "criticises": -2, "criticizes": -2,
            "attacks": -1, "blames": -1, "targets": -1, "questions": -1,
            "demands resignation": -3,
        },
        "bn": {
            "প্রশংসা": 2, "উদ্বোধন": 1, "স্বাগত": 1,
            "সমালোচনা": -2, "আক্রমণ": -1, "অভিযোগ": -1, "পদত্যাগ দাবি": -3,
        },
    },

    # canonical entity -> aliases, declaration order is report order
    "entities": {
        "TMC": ["tmc", "trinamool", "তৃণমূল"],
        "BJP": ["bjp", "বিজেপি"],
        "Congress": ["congress", "কংগ্রেস"],
        "CPI(M)": ["cpim", "cpi(m)", "cpm", "সিপিএম"],
        "ED": ["ed", "enforcement directorate", "ইডি"],
        "CBI": ["cbi", "সিবিআই"],
        "NIA": ["nia"],
        "Election Commission": ["election commission", "নির্বাচন কমিশন"],
        "West Bengal": ["west bengal", "পশ্চিমবঙ্গ"],
        "Kolkata": ["kolkata", "কলকাতা"],
    },

    "controversy": {
        "en": {
            "critical": ["scam", "ed raid", "arrest", "cbi", "chargesheet", "murder",
                         "riot", "rape", "money laundering"],
            "high": ["corruption", "scandal", "fraud", "seizure", "bribe", "syndicate",
                     "violence", "assault", "custody", "remand", "embezzlement"],
            "medium": ["investigation", "accused", "allegation", "controversy",
                       "summon", "probe", "illegal", "irregularity"],
            "low": ["criticism", "protest", "oppose", "slams", "complaint"],
        },
        "bn": {
            "critical": ["গ্রেপ্তার", "ইডি রেড", "চার্জশিট", "হত্যা"],
            "high": ["কেলেঙ্কারি", "দুর্নীতি", "জালিয়াতি", "সিন্ডিকেট"],
            "medium": ["তদন্ত", "অভিযোগ", "বিতর্ক"],
            "low": ["সমালোচনা", "প্রতিবাদ"],
        },
    },

    # declaration order breaks topic ties
    "topics": {
        "en": {
            "corruption": ["scam", "corruption", "fraud", "money laundering", "bribery"],
            "development": ["development", "infrastructure", "project", "construction", "road"],
            "election": ["election", "poll", "vote", "campaign", "rally", "nomination"],
            "healthcare": ["hospital", "health", "medical", "doctor", "covid", "vaccine"],
            "education": ["school", "education", "student", "university", "college", "ssc"],
            "employment": ["job", "employment", "unemployment", "recruitment", "vacancy"],
            "law_order": ["police", "crime", "arrest", "murder", "violence", "security"],
            "agriculture": ["farmer", "agriculture", "crop", "farming", "mandi", "msp"],
            "welfare": ["scheme", "benefit", "welfare", "subsidy", "pension", "ration"],
            "politics": ["party", "bjp", "tmc", "congress", "alliance", "defection"],
        },
        "bn": {
            "corruption": ["দুর্নীতি", "কেলেঙ্কারি", "ঘুষ", "জালিয়াতি"],
            "development": ["উন্নয়ন", "প্রকল্প", "রাস্তা", "সেতু"],
            "election": ["নির্বাচন", "ভোট", "প্রচার", "মিছিল"],
            "healthcare": ["হাসপাতাল", "স্বাস্থ্য", "চিকিৎসা", "ডাক্তার"],
            "education": ["স্কুল", "শিক্ষা", "ছাত্র", "কলেজ", "এসএসসি"],
            "employment": ["চাকরি", "বেকারত্ব", "নিয়োগ"],
            "law_order": ["পুলিশ", "অপরাধ", "গ্রেপ্তার", "হত্যা", "হিংসা"],
            "agriculture": ["কৃষক", "কৃষি", "ফসল", "ধান"],
            "welfare": ["প্রকল্প", "ভাতা", "রেশন", "পেনশন"],
            "politics": ["দল", "বিজেপি", "তৃণমূল", "কংগ্রেস", "জোট"],
        },
    },

    # first matching type wins
    "news_types": [
        ["achievement", ["inaugurat", "launch", "opens", "উদ্বোধন"]],
        ["controversy", ["scam", "arrest", "ed", "cbi", "কেলেঙ্কারি", "গ্রেপ্তার"]],
        ["announcement", ["announce", "scheme", "policy", "ঘোষণা"]],
        ["attack", ["attack", "slam", "criticis", "accuse", "আক্রমণ", "সমালোচনা"]],
        ["defense", ["defend", "clarif", "deny", "refute"]],
        ["campaign", ["rally", "campaign", "election", "নির্বাচন"]],
    ],

    "issue_categories": {
        "en": {
            "infrastructure": [
                "road", "pothole", "waterlogging", "drainage", "bridge", "electricity",
                "power cut", "blackout", "water supply", "sewage", "flyover", "metro",
                "transport", "highway", "street light", "pavement", "footpath",
            ],
            "healthcare": [
                "hospital", "doctor", "medicine", "ambulance", "patient", "health center",
                "medical", "bed shortage", "healthcare", "clinic", "phc", "treatment",
                "disease", "epidemic", "dengue", "malaria", "covid",
            ],
            "employment": [
                "unemployment", "job", "factory closure", "layoff", "retrenchment",
                "jobless", "recruitment", "ssc", "tet", "job loss", "worker",
                "employment", "vacancy", "industry closure", "mill closure", "strike",
            ],
            "agriculture": [
                "crop", "flood", "drought", "irrigation", "farmer", "msp", "farming",
                "agriculture", "paddy", "jute", "potato", "fertilizer", "seed", "loan",
                "crop damage", "harvest", "mandi",
            ],
            "law_order": [
                "crime", "murder", "assault", "robbery", "theft", "violence", "communal",
                "riot", "police", "dacoity", "kidnap", "rape", "molestation",
                "eve teasing", "extortion", "attack", "bomb", "arson",
            ],
            "corruption": [
                "scam", "corruption", "syndicate", "cut money", "bribe", "tender", "fraud",
                "embezzlement", "misappropriation", "irregularity", "ed", "cbi", "arrest",
            ],
            "protest": [
                "protest", "demonstration", "strike", "bandh", "agitation", "rally",
                "dharna", "road block", "rail roko", "chakka jam", "hunger strike",
                "march", "gherao",
            ],
            "education": [
                "school", "education", "teacher", "college", "university", "student",
                "midday meal", "exam", "scholarship", "admission", "dropout", "classroom",
            ],
            "welfare": [
                "ration", "pension", "scheme", "benefit", "subsidy", "lakshmir bhandar",
                "kanyashree", "swasthya sathi", "duare sarkar", "widow", "disability",
                "housing", "awas", "toilet",
            ],
        },
        "bn": {
            "infrastructure": ["রাস্তা", "জলাবদ্ধতা", "নিকাশি", "বিদ্যুৎ", "লোডশেডিং",
                               "জল সরবরাহ", "সেতু", "গর্ত", "মেট্রো", "ফ্লাইওভার"],
            "healthcare": ["হাসপাতাল", "স্বাস্থ্য", "চিকিৎসা", "ডাক্তার", "অ্যাম্বুলেন্স",
                           "ওষুধ", "রোগী", "চিকিৎসা অবহেলা", "শয্যা", "ডেঙ্গু"],
            "employment": ["বেকারত্ব", "চাকরি", "কারখানা বন্ধ", "ছাঁটাই", "নিয়োগ",
                           "কেলেঙ্কারি", "এসএসসি", "শ্রমিক", "মিল বন্ধ"],
            "agriculture": ["কৃষক", "কৃষি", "ফসল", "বন্যা", "খরা", "সেচ", "দাম", "ধান",
                            "পাট", "আলু", "সার", "বীজ"],
            "law_order": ["অপরাধ", "হত্যা", "মারধর", "ডাকাতি", "চুরি", "হিংসা", "দাঙ্গা",
                          "পুলিশ", "ধর্ষণ", "অপহরণ"],
            "corruption": ["দুর্নীতি", "কেলেঙ্কারি", "সিন্ডিকেট", "কাট মানি", "ঘুষ",
                           "টেন্ডার", "জালিয়াতি", "ইডি", "সিবিআই"],
            "protest": ["প্রতিবাদ", "মিছিল", "ধর্মঘট", "বনধ", "আন্দোলন", "অবরোধ",
                        "ধরনা", "রেল রোকো"],
            "education": ["স্কুল", "শিক্ষা", "শিক্ষক", "মিড ডে মিল", "পরীক্ষা", "কলেজ",
                          "বিশ্ববিদ্যালয়", "ছাত্র"],
            "welfare": ["রেশন", "পেনশন", "প্রকল্প", "সুবিধা", "ভাতা", "লক্ষ্মীর ভাণ্ডার",
                        "কন্যাশ্রী", "স্বাস্থ্য সাথী", "আবাস"],
        },
    },

    "issue_titles_local": {
        "infrastructure": "পরিকাঠামো সমস্যা",
        "healthcare": "স্বাস্থ্য সংকট",
        "employment": "কর্মসংস্থান সমস্যা",
        "agriculture": "কৃষি সমস্যা",
        "law_order": "আইন-শৃঙ্খলা সমস্যা",
        "corruption": "দুর্নীতি",
        "protest": "জনআন্দোলন",
        "education": "শিক্ষা সমস্যা",
        "welfare": "কল্যাণ প্রকল্প সমস্যা",
    },

    # checked critical first; first tier with a hit wins
    "issue_severity": {
        "critical": ["death", "murder", "riot", "scam", "arrest", "collapse", "disaster",
                     "molestation", "rape", "ed raid", "crore", "multi-crore",
                     "মৃত্যু", "হত্যা", "গ্রেপ্তার"],
        "high": ["shortage", "closure", "major", "mass protest", "bandh", "strike",
                 "flood", "thousands", "serious", "severe", "ধর্মঘট", "বন্যা"],
        "medium": ["delay", "inadequate", "complaint", "demand", "poor", "lack",
                   "hundreds", "দাবি", "অভাব"],
        "low": ["inconvenience", "minor", "request", "appeal", "urge", "আবেদন"],
    },

    "protest": [
        "protest", "demonstration", "strike", "bandh", "agitation", "rally", "dharna",
        "road block", "rail roko", "chakka jam", "march", "gherao", "sit-in",
        "প্রতিবাদ", "মিছিল", "ধর্মঘট", "বনধ", "আন্দোলন", "অবরোধ", "ধরনা",
    ],

    # first matching template wins; each has an English and a Bengali pattern
    "attack_templates": [
        {"type": "unfulfilled_promise", "impact": "high",
         "en": r"unfulfilled.*promise|broken promise|promise.*not (?:kept|fulfilled)",
         "bn": r"প্রতিশ্রুতি.*(?:পূরণ হয়নি|ভঙ্গ)",
         "claim": "{target}'s unfulfilled promises to constituency"},
        {"type": "employment", "impact": "critical",
         "en": r"job.*crisis|unemployment|jobless",
         "bn": r"বেকারত্ব|চাকরি",
         "claim": "{target} failed to address unemployment crisis"},
        {"type": "corruption", "impact": "critical",
         "en": r"scam|corruption|fraud",
         "bn": r"কেলেঙ্কারি|দুর্নীতি|জালিয়াতি",
         "claim": "{target} linked to corruption/scam"},
        {"type": "legal_trouble", "impact": "critical",
         "en": r"\bed\b|\bcbi\b|arrest|chargesheet",
         "bn": r"গ্রেপ্তার|ইডি|সিবিআই",
         "claim": "{target} facing legal action/ED investigation"},
        {"type": "law_order", "impact": "high",
         "en": r"violence|murder|assault",
         "bn": r"হিংসা|হত্যা|মারধর",
         "claim": "Law and order deterioration under {target}"},
        {"type": "healthcare", "impact": "medium",
         "en": r"hospital|healthcare|medical",
         "bn": r"হাসপাতাল|চিকিৎসা|স্বাস্থ্য",
         "claim": "Healthcare infrastructure neglected by {target}"},
        {"type": "infrastructure", "impact": "medium",
         "en": r"road|infrastructure|flooding|waterlogging",
         "bn": r"রাস্তা|জলাবদ্ধতা|নিকাশি",
         "claim": "Infrastructure promises unfulfilled by {target}"},
        {"type": "economic", "impact": "high",
         "en": r"price.*rise|inflation",
         "bn": r"মূল্যবৃদ্ধি|দাম বৃদ্ধি",
         "claim": "Economic hardship under {target}'s tenure"},
        {"type": "syndicate_raj", "impact": "high",
         "en": r"syndicate|extortion",
         "bn": r"সিন্ডিকেট|তোলাবাজি|চাঁদাবাজি",
         "claim": "Syndicate raj flourishing under {target}"},
    ],
}


@lru_cache(maxsize=4096)
def _keyword_pattern(keyword):
    if len(keyword) <= 3 and keyword.isascii() and keyword.isalpha():
        return re.compile(r"\b{}\b".format(re.escape(keyword)))
    return None


def find_keywords(text_lower, keywords):
    """Distinct keywords present in already-lowercased text, in list order."""
    hits = []
    for kw in keywords:
        needle = kw.lower()
        if needle in hits:
            continue
        pattern = _keyword_pattern(needle)
        if pattern is not None:
            if pattern.search(text_lower):
                hits.append(needle)
        elif needle in text_lower:
            hits.append(needle)
    return hits


def detect_language(text, default="en"):
    return "bn" if BENGALI_SCRIPT.search(text or "") else default


class Lexicon:
    """Read-only view over the keyword tables, merged across languages."""

    def __init__(self, tables):
        self.tables = tables
        self.version = tables.get("version", LEXICON_VERSION)
        self._attack_templates = [
            dict(t, en_re=re.compile(t["en"], re.IGNORECASE),
                 bn_re=re.compile(t["bn"]) if t.get("bn") else None)
            for t in tables.get("attack_templates", [])
        ]

    @staticmethod
    def languages_for(language):
        # English tables always apply; Bengali text often mixes in English terms
        return ["en", "bn"] if language == "bn" else ["en"]

    def sentiment_words(self, language, polarity):
        words = []
        for lang in self.languages_for(language):
            words.extend(self.tables["sentiment"].get(lang, {}).get(polarity, []))
        return words

    def stance_weights(self, language):
        weights = {}
        for lang in self.languages_for(language):
            weights.update(self.tables["stance"].get(lang, {}))
        return weights

    def entities(self):
        return self.tables.get("entities", {})

    def controversy_tiers(self, language):
        """{tier: [keywords]} for critical, high, medium, low."""
        tiers = {}
        for lang in self.languages_for(language):
            for tier, words in self.tables["controversy"].get(lang, {}).items():
                tiers.setdefault(tier, []).extend(words)
        return tiers

    def _merged_categories(self, table, language):
        merged = {}
        for lang in self.languages_for(language):
            for category, words in self.tables[table].get(lang, {}).items():
                merged.setdefault(category, []).extend(words)
        return merged

    def topic_keywords(self, language):
        return self._merged_categories("topics", language)

    def issue_keywords(self, language):
        return self._merged_categories("issue_categories", language)

    def news_types(self):
        return self.tables.get("news_types", [])

    def issue_title_local(self, category):
        return self.tables.get("issue_titles_local", {}).get(category, "")

    def issue_severity(self):
        return self.tables["issue_severity"]

    def protest_words(self):
        return self.tables.get("protest", [])

    def attack_templates(self):
        return self._attack_templates


def load_lexicon(path=None):
    """Defaults, with any top-level table replaced by a JSON lexicon pack."""
    tables = dict(DEFAULT_TABLES)
    if path:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as f:
                overrides = json.load(f)
            tables.update(overrides)
            print("    Lexicon pack {} (version {})".format(p.name, tables.get("version")))
        else:
            print("  X Lexicon pack not found: {} (using built-in tables)".format(path))
    return Lexicon(tables)


_default = None


def get_default_lexicon():
    global _default
    if _default is None:
        _default = Lexicon(DEFAULT_TABLES)
    return _default
