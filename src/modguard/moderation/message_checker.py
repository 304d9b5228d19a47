"""
Blacklist check for message text.

Matching is case-insensitive (``str.casefold``) substring matching: a banned
word matches wherever it appears, including inside longer words, so
"spamming" matches "spam". Whole-word matching would let trivially padded
variants through.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


@dataclass(frozen=True, slots=True)
class Verdict:
    """Outcome of checking one message."""
    guilty: bool
    matched_words: Tuple[str, ...] = ()


INNOCENT = Verdict(guilty=False)


def check_message(text: str, banned_words: Iterable[str]) -> Verdict:
    """
    Check ``text`` against a guild's banned words.

    Args:
        text: Raw message content.
        banned_words: Words to look for; blank entries are ignored.

    Returns:
        Verdict: guilty when at least one word matched, with the matched
        words casefolded, deduplicated and sorted.
    """
    if not text:
        return INNOCENT

    haystack = text.casefold()
    matched = {
        needle
        for needle in (word.strip().casefold() for word in banned_words)
        if needle and needle in haystack
    }
    if not matched:
        return INNOCENT
    return Verdict(guilty=True, matched_words=tuple(sorted(matched)))
