"""Token-set (Jaccard) similarity between text spans."""

import re

from podcast_producer.constants import (
    MIN_SENTENCE_CHARS,
    MIN_TOKEN_LENGTH,
    UNIQUE_SENTENCE_THRESHOLD,
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def tokenize(text: str) -> set[str]:
    """Lowercase, strip punctuation, and keep words longer than 3 chars."""
    words = _PUNCT_RE.sub(" ", text.lower()).split()
    return {w for w in words if len(w) >= MIN_TOKEN_LENGTH}


def score(a: str, b: str) -> float:
    """Jaccard overlap of the two token sets. 0.0 if either is empty."""
    set_a = tokenize(a)
    set_b = tokenize(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def similar(a: str, b: str, threshold: float) -> bool:
    if not tokenize(a) or not tokenize(b):
        return False
    return score(a, b) >= threshold


def split_sentences(text: str, min_chars: int = MIN_SENTENCE_CHARS) -> list[str]:
    """Split at sentence punctuation, dropping short fragments."""
    sentences = [s.strip() for s in _SENTENCE_RE.split(text.strip())]
    return [s for s in sentences if len(s) >= min_chars]


def extract_unique(
    reference: str,
    candidate: str,
    threshold: float = UNIQUE_SENTENCE_THRESHOLD,
) -> str:
    """Keep only the sentences of candidate that the reference doesn't already say.

    Each sentence is scored against the whole reference text, not against
    individual reference sentences.
    """
    survivors = [
        sentence
        for sentence in split_sentences(candidate)
        if score(sentence, reference) < threshold
    ]
    return " ".join(survivors)
