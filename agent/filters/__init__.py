from agent.filters.fuzzy import MatchKind, VocabularyMatch, fuzzy_match, match_vocabulary
from agent.filters.lexical import extract_filters

__all__ = ["MatchKind", "VocabularyMatch", "fuzzy_match", "match_vocabulary", "extract_filters"]
