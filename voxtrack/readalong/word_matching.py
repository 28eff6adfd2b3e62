"""
Word Matching Module

Locates a word reported by the speech service inside the chunk text that was
sent. The service may change case, drop punctuation or skip words, so the
search falls back through progressively looser strategies before giving up.
"""

import re
from typing import Tuple

# Punctuation the service tends to attach to or strip from words
_PUNCTUATION = re.compile(r"[.,;:!?。，；：！？、\"'“”‘’()]")


def _within(found: int, start: int, window: int) -> bool:
    return found != -1 and (found - start) < window


def find_word_index(
    text: str,
    word: str,
    cursor: int,
    chunk_start: int = 0,
    search_window: int = 100,
) -> int:
    """
    Find where a spoken word occurs in text, searching forward from cursor.

    Strategies, in order: exact, case-insensitive, punctuation-stripped
    (exact then case-insensitive) and whitespace-tolerant, each limited to
    search_window characters past the cursor. Last, if the cursor may have
    overshot, search again from chunk_start for a match before the cursor.

    Args:
        text: Text the word was spoken from
        word: Word reported by the service
        cursor: Position just past the previously matched word
        chunk_start: Lowest index the overshoot recovery may return
        search_window: How far past the cursor a forward match may start

    Returns:
        Index of the match, or -1
    """
    if not word:
        return -1

    start = max(cursor, chunk_start)
    found = text.find(word, start)
    if _within(found, start, search_window):
        return found

    lower_text = text.lower()
    found = lower_text.find(word.lower(), start)
    if _within(found, start, search_window):
        return found

    clean = _PUNCTUATION.sub("", word)
    if clean and clean != word:
        found = text.find(clean, start)
        if _within(found, start, search_window):
            return found
        found = lower_text.find(clean.lower(), start)
        if _within(found, start, search_window):
            return found

    # Spacing may differ, e.g. CJK words split by the service
    found = fuzzy_index(text, clean or word, start)
    if _within(found, start, search_window):
        return found

    # Overshot: the word was already passed, look back within the chunk
    if cursor > chunk_start:
        found = text.find(word, chunk_start)
        if found != -1 and found < cursor:
            return found
        if clean:
            found = text.find(clean, chunk_start)
            if found != -1 and found < cursor:
                return found

    return -1


def fuzzy_index(text: str, pattern: str, start: int = 0) -> int:
    """Find pattern in text allowing whitespace between its characters."""
    if not pattern:
        return -1
    regex = re.compile(r"\s*".join(re.escape(ch) for ch in pattern))
    match = regex.search(text, start)
    return match.start() if match else -1


def expand_to_token(text: str, start: int, length: int) -> Tuple[int, int]:
    """
    Grow a match to whole-token boundaries.

    The service sometimes reports part of a token ("don" for "don't");
    highlighting the whole token reads better.

    Returns:
        (start, length) of the expanded span
    """
    end = min(start + max(length, 1), len(text))
    while start > 0 and _is_token_char(text[start - 1]) and _is_token_char(text[start]):
        start -= 1
    while end < len(text) and _is_token_char(text[end - 1]) and _is_token_char(text[end]):
        end += 1
    return start, end - start


def _is_token_char(ch: str) -> bool:
    # CJK text has no spaces, so only Latin-like word characters join up
    return (ch.isalnum() and ord(ch) < 0x2E80) or ch in "'’-"
