"""
Triage Rules
============

Keyword tables and the pure functions that turn free text or model output
into a ticket category and priority.
"""

import json
import re
from typing import Dict, List, Optional

from src.config import TicketCategory, TicketPriority
from src.triage.domain.entities import KeywordAnalysis


# ========== Keyword Tables ==========

# Declaration order matters: on equal hit counts the earlier category wins.
CATEGORY_KEYWORDS: Dict[TicketCategory, List[str]] = {
    TicketCategory.PLUMBING: [
        "leak", "water", "faucet", "toilet", "drain", "pipe", "shower", "bath",
        "sink", "disposal", "flooding", "clogged", "dripping",
    ],
    TicketCategory.ELECTRICAL: [
        "outlet", "switch", "light", "electric", "power", "breaker", "wiring",
        "sparks", "flickering", "dim",
    ],
    TicketCategory.HVAC: [
        "heat", "cold", "ac", "a/c", "air", "conditioning", "thermostat", "vent",
        "temperature", "hot", "cool", "fan", "filter",
    ],
    TicketCategory.APPLIANCE: [
        "refrigerator", "fridge", "stove", "oven", "dishwasher", "washer",
        "dryer", "microwave", "garbage disposal", "freezer",
    ],
    TicketCategory.PEST_CONTROL: [
        "bug", "roach", "ant", "spider", "mouse", "rat", "pest",
        "infestation", "exterminator",
    ],
    TicketCategory.SECURITY: [
        "lock", "door", "window", "key", "broken", "security", "deadbolt", "handle",
    ],
    TicketCategory.COSMETIC: [
        "paint", "wall", "ceiling", "floor", "carpet", "tile", "scratch",
        "hole", "stain", "chip", "crack",
    ],
    TicketCategory.OTHER: [],
    TicketCategory.UNKNOWN: [],
}

EMERGENCY_KEYWORDS: List[str] = [
    "flood", "gas", "smoke", "fire", "sparks", "electrical fire",
    "no heat", "no power", "broken lock", "security", "emergency", "urgent",
    "major leak", "water everywhere", "can’t get in", "locked out",
]

HIGH_PRIORITY_KEYWORDS: List[str] = [
    "not working", "broken", "major", "significant", "important", "asap",
    "soon as possible", "refrigerator", "stove", "heat", "ac", "a/c",
]

CATEGORY_SYNONYMS: Dict[str, TicketCategory] = {
    "AC": TicketCategory.HVAC,
    "AIRCONDITIONING": TicketCategory.HVAC,
    "AIR_CONDITIONING": TicketCategory.HVAC,
    "A_C": TicketCategory.HVAC,
    "ELECTRIC": TicketCategory.ELECTRICAL,
    "ELECTRICALISSUE": TicketCategory.ELECTRICAL,
    "PLUMB": TicketCategory.PLUMBING,
    "WATER": TicketCategory.PLUMBING,
    "APPLIANCES": TicketCategory.APPLIANCE,
    "PEST": TicketCategory.PEST_CONTROL,
    "PESTS": TicketCategory.PEST_CONTROL,
    "PESTCONTROL": TicketCategory.PEST_CONTROL,
    "VERMIN": TicketCategory.PEST_CONTROL,
    "LOCKS": TicketCategory.SECURITY,
    "SECURITYISSUE": TicketCategory.SECURITY,
    "COSMETICS": TicketCategory.COSMETIC,
    "OTHERISSUE": TicketCategory.OTHER,
    "MISC": TicketCategory.OTHER,
    "GENERAL": TicketCategory.OTHER,
}

PRIORITY_SYNONYMS: Dict[str, TicketPriority] = {
    "URGENT": TicketPriority.HIGH,
}

KEYWORD_HIT_CONFIDENCE = 0.8
KEYWORD_MISS_CONFIDENCE = 0.3

_NON_TOKEN = re.compile(r"[^A-Z_]")
_JSON_FENCE = re.compile(r"```json|```")
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


# ========== Keyword Classifier ==========

class KeywordClassifier:
    """
    Substring keyword classifier for tenant descriptions.

    Category is the one with the most keyword hits. Priority is driven by
    emergency and high-priority phrases, with cosmetic issues dropping to LOW.
    """

    def __init__(
        self,
        category_keywords: Optional[Dict[TicketCategory, List[str]]] = None,
        emergency_keywords: Optional[List[str]] = None,
        high_priority_keywords: Optional[List[str]] = None,
    ):
        self._category_keywords = category_keywords or CATEGORY_KEYWORDS
        self._emergency = emergency_keywords or EMERGENCY_KEYWORDS
        self._high = high_priority_keywords or HIGH_PRIORITY_KEYWORDS

    def classify(self, text: Optional[str]) -> KeywordAnalysis:
        lowered = (text or "").lower()

        category = TicketCategory.UNKNOWN
        best_hits = 0
        for candidate, words in self._category_keywords.items():
            hits = sum(1 for word in words if word in lowered)
            if hits > best_hits:
                category = candidate
                best_hits = hits

        if any(word in lowered for word in self._emergency):
            priority = TicketPriority.EMERGENCY
        elif any(word in lowered for word in self._high):
            priority = TicketPriority.HIGH
        elif category == TicketCategory.COSMETIC:
            priority = TicketPriority.LOW
        else:
            priority = TicketPriority.MEDIUM

        return KeywordAnalysis(
            category=category,
            priority=priority,
            confidence=KEYWORD_HIT_CONFIDENCE if best_hits > 0 else KEYWORD_MISS_CONFIDENCE,
            hits=best_hits,
        )


# ========== Model Output Normalization ==========

def normalize_category(value: object) -> Optional[TicketCategory]:
    """Map a model-supplied category onto TicketCategory, or None."""
    if not isinstance(value, str) or not value:
        return None
    token = _NON_TOKEN.sub("", value.upper())
    if token in TicketCategory.__members__:
        return TicketCategory[token]
    return CATEGORY_SYNONYMS.get(token)


def normalize_priority(value: object) -> Optional[TicketPriority]:
    """Map a model-supplied priority onto TicketPriority, or None."""
    if not isinstance(value, str) or not value:
        return None
    token = _NON_TOKEN.sub("", value.upper())
    if token in TicketPriority.__members__:
        return TicketPriority[token]
    return PRIORITY_SYNONYMS.get(token)


def parse_json_loose(text: Optional[str]) -> Optional[dict]:
    """
    Parse a JSON object out of model output.

    Tolerates markdown fences and chatter around the object.
    """
    if not text:
        return None

    stripped = _JSON_FENCE.sub("", text).strip()
    candidates = [stripped]
    match = _JSON_OBJECT.search(stripped)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
