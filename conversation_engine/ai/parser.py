"""Response parser: free-text AI output -> AnalysisResult.

The keyword parser is a heuristic. Callers depend only on the ``ResponseParser``
protocol so it can be swapped for structured-output parsing.
"""

import re
from typing import Protocol

from conversation_engine.models.analysis import AnalysisResult, EmailCategory, Urgency

# Recognized labels per field, English and Italian.
FIELD_LABELS: dict[str, tuple[str, ...]] = {
    "tone": ("tone", "tono"),
    "sentiment": ("sentiment",),
    "urgency": ("urgency", "urgenza"),
    "category": ("category", "categoria"),
    "complexity": ("complexity", "complessità", "complessita"),
    "summary": ("summary", "riassunto"),
}

URGENCY_WORDS: dict[str, Urgency] = {
    "high": Urgency.HIGH,
    "alta": Urgency.HIGH,
    "urgent": Urgency.HIGH,
    "urgente": Urgency.HIGH,
    "medium": Urgency.MEDIUM,
    "media": Urgency.MEDIUM,
    "moderate": Urgency.MEDIUM,
    "low": Urgency.LOW,
    "bassa": Urgency.LOW,
    "normal": Urgency.NORMAL,
    "normale": Urgency.NORMAL,
}

CATEGORY_WORDS: dict[str, EmailCategory] = {
    "work": EmailCategory.WORK,
    "lavoro": EmailCategory.WORK,
    "personal": EmailCategory.PERSONAL,
    "personale": EmailCategory.PERSONAL,
    "commercial": EmailCategory.COMMERCIAL,
    "commerciale": EmailCategory.COMMERCIAL,
    "promotional": EmailCategory.COMMERCIAL,
    "technical": EmailCategory.TECHNICAL,
    "tecnico": EmailCategory.TECHNICAL,
    "support": EmailCategory.TECHNICAL,
    "social": EmailCategory.SOCIAL,
    "sociale": EmailCategory.SOCIAL,
    "spam": EmailCategory.SPAM,
}

_DEFAULTS = AnalysisResult()
_WORD = re.compile(r"[a-zà-ù]+")
_DECORATION = " \t\"'`*-•,;{}[]"


def _first_word(value: str) -> str:
    m = _WORD.search(value.lower())
    return m.group(0) if m else ""


def parse_urgency(text: str) -> Urgency:
    """Map a one-word answer (or a 'label: value' tail) to Urgency. Unknown -> normal."""
    return URGENCY_WORDS.get(_first_word(text or ""), Urgency.NORMAL)


def parse_category(text: str) -> EmailCategory:
    """Map a category answer to EmailCategory. Unknown -> other."""
    return CATEGORY_WORDS.get(_first_word(text or ""), EmailCategory.OTHER)


def _clean_value(value: str) -> str:
    return value.strip().strip(_DECORATION).strip()


def _match_line(line: str) -> tuple[str, str] | None:
    """Return (field, raw value) for the earliest recognized label on the line."""
    plain = line.replace('"', "").replace("*", "")
    lowered = plain.lower()
    best: tuple[int, str, str] | None = None
    for field, labels in FIELD_LABELS.items():
        for label in labels:
            marker = label + ":"
            idx = lowered.find(marker)
            # the label must start a word ("subtone:" is not "tone:")
            if idx == -1 or (idx > 0 and lowered[idx - 1].isalpha()):
                continue
            if best is None or idx < best[0]:
                best = (idx, field, marker)
    if best is None:
        return None
    idx, field, marker = best
    value = plain[idx + len(marker):]
    # summary keeps its original casing
    return field, value if field == "summary" else value.lower()


class ResponseParser(Protocol):
    def parse(self, text: str) -> AnalysisResult:
        """Best-effort extraction. Must never raise."""
        ...


class KeywordResponseParser:
    """Line-oriented, case-insensitive label matching ("urgenza: alta", "- tone: formal", JSON-ish lines).

    The first occurrence of a field wins; unknown or missing fields keep the defaults
    (tone neutral, urgency normal, complexity medium).
    """

    def parse(self, text: str) -> AnalysisResult:
        if not text:
            return AnalysisResult()
        found: dict[str, str] = {}
        for raw_line in str(text).splitlines():
            matched = _match_line(raw_line)
            if matched is None:
                continue
            field, value = matched
            value = _clean_value(value)
            if field in found or not value:
                continue
            found[field] = value
        return AnalysisResult(
            tone=found.get("tone") or _DEFAULTS.tone,
            sentiment=found.get("sentiment") or _DEFAULTS.sentiment,
            urgency=parse_urgency(found["urgency"]) if "urgency" in found else _DEFAULTS.urgency,
            category=parse_category(found["category"]) if "category" in found else _DEFAULTS.category,
            complexity=found.get("complexity") or _DEFAULTS.complexity,
            summary=found.get("summary", ""),
        )
