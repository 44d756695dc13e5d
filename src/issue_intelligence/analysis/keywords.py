"""Keyword extraction and set-overlap helpers for the non-AI paths."""

import re

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "been", "being", "but", "by",
        "can", "could", "did", "do", "does", "each", "every", "few", "for",
        "from", "had", "has", "have", "he", "her", "here", "his", "how", "i",
        "if", "in", "into", "is", "it", "its", "just", "may", "might", "more",
        "most", "must", "my", "no", "nor", "not", "now", "of", "on", "only",
        "or", "other", "our", "own", "same", "shall", "she", "should", "so",
        "some", "such", "than", "that", "the", "their", "them", "then",
        "there", "these", "they", "this", "those", "to", "too", "very", "was",
        "we", "were", "what", "when", "where", "which", "while", "who", "why",
        "will", "with", "would", "you", "your",
    }
)

MIN_KEYWORD_LENGTH = 3

# Minimum shared prefix for two words to count as a fuzzy match
FUZZY_PREFIX_LENGTH = 4


def tokenize(text: str) -> list[str]:
    """Lowercase and split on anything that is not a letter, digit or hyphen."""
    return re.findall(r"[a-z0-9][a-z0-9-]*", (text or "").lower())


def extract_keywords(
    text: str,
    stopwords: frozenset[str] = STOPWORDS,
    min_length: int = MIN_KEYWORD_LENGTH,
) -> set[str]:
    """Extract the set of meaningful keywords from text.

    Drops stopwords, short tokens and pure numbers.
    """
    keywords = set()
    for token in tokenize(text):
        token = token.strip("-")
        if len(token) < min_length or token in stopwords or token.isdigit():
            continue
        keywords.add(token)
    return keywords


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """Jaccard similarity of two sets (0.0 when either is empty)."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def keyword_overlap(text_a: str, text_b: str) -> float:
    """Jaccard similarity of the keyword sets of two texts."""
    return jaccard_similarity(extract_keywords(text_a), extract_keywords(text_b))


def common_prefix_length(a: str, b: str) -> int:
    length = 0
    for char_a, char_b in zip(a, b):
        if char_a != char_b:
            break
        length += 1
    return length


def fuzzy_match(word: str, candidates: set[str]) -> str | None:
    """Find a candidate that fuzzily matches ``word``.

    Two words match when one is a prefix of the other (``crash`` /
    ``crashes``) or, for longer words, when they share a prefix of at
    least FUZZY_PREFIX_LENGTH characters.

    Returns:
        The matching candidate, or None
    """
    if word in candidates:
        return word

    for candidate in sorted(candidates):
        if candidate.startswith(word) or word.startswith(candidate):
            return candidate
        if (
            len(word) >= FUZZY_PREFIX_LENGTH
            and len(candidate) >= FUZZY_PREFIX_LENGTH
            and common_prefix_length(word, candidate) >= FUZZY_PREFIX_LENGTH
        ):
            return candidate
    return None
