"""
Text Normalizer Module

Canonicalizes user-selected text into the comparison key used to decide that
two selections are "the same highlight", and derives the content hash stored
alongside every underline.

Lower-casing, quote folding, dropping everything outside Latin
alphanumerics, space and CJK ideographs, then collapsing whitespace. No
stemming and no locale rules.
"""

import hashlib
import re

# Curly quotes, primes and backticks folded to their straight forms
_QUOTE_TABLE = str.maketrans(
    {
        "\u2018": "'",
        "\u2019": "'",
        "\u201a": "'",
        "\u201b": "'",
        "\u2032": "'",
        "`": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u201e": '"',
        "\u201f": '"',
        "\u2033": '"',
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 \u4e00-\u9fff]")

HASH_LENGTH = 40


def normalize(raw: str) -> str:
    """
    Return the canonical comparison form of ``raw``.

    Example:
        >>> normalize("It\u2019s GREAT!")
        'its great'
    """
    if not raw:
        return ""
    text = raw.lower().translate(_QUOTE_TABLE)
    # Any whitespace (tabs, newlines, NBSP) becomes a plain space before filtering
    text = _WHITESPACE_RE.sub(" ", text)
    text = _DISALLOWED_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def text_hash(normalized: str) -> str:
    """SHA-1 hex digest (160 bit) of an already normalized string."""
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()


def hash_selection(raw: str) -> str:
    """Normalize and hash in one step."""
    return text_hash(normalize(raw))
