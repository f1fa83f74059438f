"""Keyword lookups for intent and stress. Simple and swappable, not NLP."""

import re
from typing import Protocol


class TextClassifier(Protocol):
    def classify(self, text: str) -> str: ...


def _words(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


DEFAULT_INTENT = "general_interaction"

# First match wins.
INTENT_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("create_task", _words("create", "add", "new")),
    ("complete_task", _words("complete", "finish", "done")),
    ("update_task", _words("update", "edit")),
    ("get_help", _words("help", "how")),
]


class KeywordIntentClassifier:
    def __init__(self, rules: list[tuple[str, re.Pattern[str]]] | None = None, default: str = DEFAULT_INTENT):
        self.rules = rules or INTENT_RULES
        self.default = default

    def classify(self, text: str) -> str:
        for intent, pattern in self.rules:
            if pattern.search(text or ""):
                return intent
        return self.default


STRESS_BASELINE = 3
STRESS_MIN, STRESS_MAX = 1, 10

_STRESS_UP = _words("urgent", "stressed")
_STRESS_DOWN = _words("calm", "relaxed")

STRESS_INDICATORS: list[tuple[str, re.Pattern[str]]] = [
    ("time_pressure", _words("urgent", "asap")),
    ("frustration", _words("frustrated", "annoyed")),
    ("task_overload", _words("overwhelmed", "too much")),
]

SUPPORT_NEEDS: list[tuple[str, re.Pattern[str]]] = [
    ("guidance", _words("help")),
    ("motivation", _words("motivation")),
    ("task_prioritization", _words("overwhelmed")),
]


class KeywordStressClassifier:
    """Scores stress on a 1-10 scale and tags the indicators behind it."""

    def level(self, text: str) -> int:
        stress = STRESS_BASELINE
        if _STRESS_UP.search(text or ""):
            stress += 2
        if _STRESS_DOWN.search(text or ""):
            stress -= 1
        return max(STRESS_MIN, min(STRESS_MAX, stress))

    def indicators(self, text: str) -> list[str]:
        return [name for name, pattern in STRESS_INDICATORS if pattern.search(text or "")]

    def support_needs(self, text: str) -> list[str]:
        return [name for name, pattern in SUPPORT_NEEDS if pattern.search(text or "")]

    def classify(self, text: str) -> str:
        found = self.indicators(text)
        return found[0] if found else "none"
