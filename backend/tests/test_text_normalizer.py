"""
Unit tests for text normalization and hashing.

Tests cover:
- Case, quote and punctuation folding
- Whitespace collapsing
- CJK ideographs preserved
- Idempotence
- Hash determinism and format
"""

import random
import re

import pytest

from readmark.services.text_normalizer import (
    HASH_LENGTH,
    hash_selection,
    normalize,
    text_hash,
)


class TestNormalize:
    """Test the canonical comparison form"""

    def test_case_and_punctuation_folded(self):
        assert normalize("It’s GREAT!") == "its great"
        assert normalize("its great") == "its great"

    def test_curly_and_straight_quotes_match(self):
        assert normalize("“Hello”") == normalize('"Hello"') == "hello"

    def test_whitespace_collapsed_and_trimmed(self):
        assert normalize("  Hello\t\n  World  ") == "hello world"

    def test_punctuation_between_words_keeps_words_apart(self):
        assert normalize("end. Start") == "end start"

    def test_cjk_ideographs_preserved(self):
        assert normalize("你好，世界") == "你好世界"

    def test_non_ascii_letters_outside_cjk_dropped(self):
        assert normalize("Café") == "caf"

    @pytest.mark.parametrize("raw", ["", "   ", "!!!", "\u2014"])
    def test_empty_results(self, raw):
        assert normalize(raw) == ""

    @pytest.mark.parametrize(
        "raw",
        [
            "It’s GREAT!",
            "  multiple   spaces\tand\nlines ",
            "Mixed 中文 and English.",
            "`quoted' ‘text’",
        ],
    )
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once


class TestHashing:
    """Test content hash derivation"""

    def test_equivalent_selections_hash_identically(self):
        assert hash_selection("It's GREAT!") == hash_selection("its great")
        assert hash_selection("Great book") == hash_selection("great book!")

    def test_different_text_hashes_differ(self):
        assert hash_selection("great book") != hash_selection("great books")

    def test_hash_is_lowercase_hex_sha1(self):
        digest = text_hash("its great")
        assert len(digest) == HASH_LENGTH
        assert digest == digest.lower()
        int(digest, 16)

    def test_known_digest(self):
        # sha1 of the empty string
        assert text_hash("") == "da39a3ee5e6b4b0d3255bfef95601890afd80709"


# Letters, digits, quotes, punctuation, assorted whitespace, accented and CJK characters
RANDOM_ALPHABET = (
    "abcXYZ019 \t\n\r 　.,;:!?-_'\"`‘’“”′″"
    "éßİ一中文鿿あ\U0001f600"
)
NORMALIZED_RE = re.compile(r"[a-z0-9一-鿿]+( [a-z0-9一-鿿]+)*")


class TestRandomStrings:
    """Properties that hold for any input"""

    @pytest.mark.parametrize("seed", range(20))
    def test_idempotent_and_canonical(self, seed):
        rng = random.Random(seed)
        for _ in range(200):
            raw = "".join(rng.choice(RANDOM_ALPHABET) for _ in range(rng.randint(0, 30)))

            once = normalize(raw)

            assert normalize(once) == once
            assert once == "" or NORMALIZED_RE.fullmatch(once)
            assert hash_selection(raw) == text_hash(once)
