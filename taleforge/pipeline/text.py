"""Small text helpers shared by the validator and the fact extractor."""

from __future__ import annotations

import re

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def split_sentences(text: str) -> list[str]:
    """Split on runs of . ! ? and drop empty pieces."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def name_variants(name: str) -> list[str]:
    """Lowercased name variants to match on: the full name, then its first and last tokens.

    Matching on the first or last token alone means two characters sharing a
    first name both match the same sentence.
    """
    tokens = name.lower().split()
    if not tokens:
        return []
    variants = [" ".join(tokens), tokens[0], tokens[-1]]
    return list(dict.fromkeys(variants))


def has_word(text: str, word: str) -> bool:
    """Case-insensitive whole-word (or whole-phrase) search."""
    return re.search(rf"\b{re.escape(word.lower())}\b", text.lower()) is not None


def find_mentions(text: str, name: str) -> list[str]:
    """Sentences of `text` that mention any variant of `name`."""
    variants = name_variants(name)
    return [
        sentence
        for sentence in split_sentences(text)
        if any(has_word(sentence, v) for v in variants)
    ]


def contains_phrase(text: str, phrase: str) -> bool:
    """Case-insensitive substring test with whitespace collapsed on both sides."""
    return " ".join(phrase.lower().split()) in " ".join(text.lower().split())
