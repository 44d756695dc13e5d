"""Text analysis helpers used by the fallback paths."""

from issue_intelligence.analysis.keywords import (
    STOPWORDS,
    extract_keywords,
    fuzzy_match,
    jaccard_similarity,
    keyword_overlap,
    tokenize,
)

__all__ = [
    "STOPWORDS",
    "extract_keywords",
    "fuzzy_match",
    "jaccard_similarity",
    "keyword_overlap",
    "tokenize",
]
