"""
Keyword extraction shared by the Index Builder and the Scorer.

Text is lowercased and split on non-alphanumeric boundaries and camel-case
transitions ("deployToAWS" -> deploy, to, aws). Stop words and tokens of two
characters or fewer are dropped.
"""

import re
from collections.abc import Iterable

MIN_KEYWORD_LENGTH = 3

# Common words to exclude from keywords
STOP_WORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "from",
        "as",
        "is",
        "was",
        "are",
        "were",
        "be",
        "been",
        "being",
        "have",
        "has",
        "had",
        "do",
        "does",
        "did",
        "will",
        "would",
        "could",
        "should",
        "may",
        "might",
        "must",
        "shall",
        "can",
        "this",
        "that",
        "these",
        "those",
        "it",
        "its",
        "they",
        "them",
        "their",
        "we",
        "us",
        "our",
        "you",
        "your",
        "he",
        "she",
        "him",
        "her",
        "his",
        "if",
        "then",
        "else",
        "when",
        "where",
        "what",
        "which",
        "who",
        "whom",
        "how",
        "why",
        "all",
        "each",
        "every",
        "both",
        "few",
        "more",
        "most",
        "other",
        "some",
        "such",
        "no",
        "not",
        "only",
        "same",
        "so",
        "than",
        "too",
        "very",
        "just",
        "also",
        "now",
        "here",
        "there",
        "any",
        "into",
        "use",
        "using",
        "help",
        "want",
        "need",
        "please",
        "me",
        "my",
        "i",
    }
)

_CAMEL_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_CAMEL_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD = re.compile(r"[a-z0-9]+")
_SEPARATORS = re.compile(r"[\s_\-]+")


def split_words(text: str) -> list[str]:
    """Split text into lowercase words, in order, without filtering."""
    if not text:
        return []
    text = _CAMEL_ACRONYM.sub(r"\1 \2", text)
    text = _CAMEL_LOWER_UPPER.sub(r"\1 \2", text)
    return _WORD.findall(text.lower())


def is_meaningful(word: str) -> bool:
    """True if a word survives the stop-word and length filters."""
    return len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS


def normalize_keyword(keyword: str) -> str:
    """Normalize a declared keyword ("Code-Review" -> "code review")."""
    return _SEPARATORS.sub(" ", str(keyword).strip().lower()).strip()


def extract_keywords(
    texts: Iterable[str], declared: Iterable[str] | None = None
) -> set[str]:
    """
    Extract the keyword set for a capability.

    Args:
        texts: Free text to mine (name, description, triggers)
        declared: Keywords explicitly declared in the source metadata

    Returns:
        Deduplicated set of normalized keywords
    """
    keywords = {
        word for text in texts for word in split_words(text or "") if is_meaningful(word)
    }
    for keyword in declared or []:
        normalized = normalize_keyword(keyword)
        if normalized:
            keywords.add(normalized)
    return keywords


def query_terms(query: str) -> list[str]:
    """Extract ordered, deduplicated query tokens with stop words removed."""
    terms: list[str] = []
    for word in split_words(query):
        if is_meaningful(word) and word not in terms:
            terms.append(word)
    return terms


def query_bigrams(terms: list[str]) -> list[str]:
    """Adjacent token pairs ("aws production") of an ordered term list."""
    return [f"{first} {second}" for first, second in zip(terms, terms[1:])]
