"""Text normalization utilities for extracted document text.

This module handles three distinct normalization concerns:

1. **Whitespace normalization** -- Collapses every whitespace run (spaces,
   tabs, newlines, form feeds) into a single space.

2. **Spaced-text repair** -- Some PDF decoders emit one character per
   token ("T h e  q u i c k"), which destroys both readability and
   embedding quality.  The repair is content-based: if more than
   ``SPACED_TOKEN_THRESHOLD`` of the tokens are single alphanumeric
   characters, consecutive single characters are glued back into words.

3. **Passage sanitation** -- Strips control characters and replacement
   glyphs that embedding APIs reject or tokenize into noise.
"""

import re

# Fraction of single-character tokens above which text is considered
# "exploded" and reconstructed.  Tunable; not derived from the input.
SPACED_TOKEN_THRESHOLD = 0.5

_WHITESPACE_RE = re.compile(r"\s+")

# C0/C1 control characters except tab/newline/carriage return, plus
# zero-width characters and U+FFFD left behind by failed decodes.
_UNPRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\u200b-\u200d\ufeff\ufffd]")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends.

    Args:
        text: Raw text.

    Returns:
        Whitespace-normalized text.
    """
    return _WHITESPACE_RE.sub(" ", text).strip()


def _is_single_char_token(token: str) -> bool:
    return len(token) == 1 and token.isalnum()


def single_char_ratio(tokens: list[str]) -> float:
    """Return the fraction of *tokens* that are single alphanumeric characters."""
    if not tokens:
        return 0.0
    single = sum(1 for t in tokens if _is_single_char_token(t))
    return single / len(tokens)


def repair_spaced_text(text: str, threshold: float = SPACED_TOKEN_THRESHOLD) -> str:
    """Normalize whitespace and rebuild words from over-spaced characters.

    When more than *threshold* of the space-separated tokens are single
    alphanumeric characters, runs of consecutive single characters are
    concatenated into one word.  A multi-character token or a punctuation
    token closes the current word and is kept as-is.  Otherwise the text
    is only whitespace-normalized.

    Reconstruction only removes separators, so the output is never longer
    than the whitespace-normalized input, and repairing already-repaired
    text returns it unchanged.

    Args:
        text: Text as extracted from the document.
        threshold: Single-character token fraction that triggers repair.

    Returns:
        Repaired text.
    """
    normalized = normalize_whitespace(text)
    if not normalized:
        return normalized

    tokens = normalized.split(" ")
    if single_char_ratio(tokens) <= threshold:
        return normalized

    words: list[str] = []
    current = ""
    for token in tokens:
        if _is_single_char_token(token):
            current += token
            continue
        if current:
            words.append(current)
            current = ""
        words.append(token)
    if current:
        words.append(current)

    return " ".join(words)


def printable_ascii_ratio(text: str) -> float:
    """Return the fraction of characters in *text* that are printable ASCII.

    Whitespace characters count as printable.  Empty text has ratio 0.
    """
    if not text:
        return 0.0
    printable = sum(1 for ch in text if 32 <= ord(ch) <= 126 or ch in "\t\n\r")
    return printable / len(text)


def sanitize_passage_text(text: str) -> str:
    """Strip control characters and replacement glyphs, then trim."""
    return _UNPRINTABLE_RE.sub("", text).strip()
