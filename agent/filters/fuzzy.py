from __future__ import annotations

import enum
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Sequence


DEFAULT_THRESHOLD = 0.4


class MatchKind(enum.Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    LITERAL = "literal"


@dataclass(frozen=True)
class VocabularyMatch:
    value: str
    kind: MatchKind
    score: float

    @property
    def confident(self) -> bool:
        return self.kind is not MatchKind.LITERAL


def distance(a: str, b: str) -> float:
    """Normalized edit distance in [0, 1]; 0 means identical (case-insensitive)."""
    return 1.0 - SequenceMatcher(None, a.lower(), b.lower()).ratio()


def match_vocabulary(
    candidate: str, vocabulary: Sequence[str], threshold: float = DEFAULT_THRESHOLD
) -> VocabularyMatch:
    candidate = (candidate or "").strip()
    if not candidate:
        return VocabularyMatch("", MatchKind.LITERAL, 1.0)

    lowered = candidate.lower()
    for entry in vocabulary:
        if entry and entry.lower() == lowered:
            return VocabularyMatch(entry, MatchKind.EXACT, 0.0)

    best_entry = None
    best_score = 1.0
    for entry in vocabulary:
        if not entry:
            continue
        score = distance(candidate, entry)
        if score < best_score:
            best_entry, best_score = entry, score

    if best_entry is not None and best_score < threshold:
        return VocabularyMatch(best_entry, MatchKind.FUZZY, best_score)
    return VocabularyMatch(candidate.title(), MatchKind.LITERAL, best_score)


def fuzzy_match(
    candidate: str, vocabulary: Sequence[str], threshold: float = DEFAULT_THRESHOLD
) -> str:
    """Map a free-text role/department onto the live vocabulary.

    Falls back to the title-cased input when nothing is close enough, so the
    caller can still filter on it.
    """
    return match_vocabulary(candidate, vocabulary, threshold).value
