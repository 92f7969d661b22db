"""Unit tests for text normalization utilities."""

from __future__ import annotations

import pytest

from studyrag.utils.text_normalizer import (
    SPACED_TOKEN_THRESHOLD,
    normalize_whitespace,
    printable_ascii_ratio,
    repair_spaced_text,
    sanitize_passage_text,
    single_char_ratio,
)

_EXPLODED = [
    "T h e   q u i c k   b r o w n   f o x",
    "P h o t o s y n t h e s i s , a n d t h e n",
    "a b c d e f g h",
    "E n e r g y  f l o w s ,  t h e n  s t o p s .",
]


# ======================================================================
# normalize_whitespace
# ======================================================================


class TestNormalizeWhitespace:
    def test_collapses_runs(self) -> None:
        assert normalize_whitespace("a  b\n\nc\t d") == "a b c d"

    def test_trims_ends(self) -> None:
        assert normalize_whitespace("  hello  ") == "hello"

    def test_empty(self) -> None:
        assert normalize_whitespace("   \n ") == ""


# ======================================================================
# single_char_ratio
# ======================================================================


class TestSingleCharRatio:
    def test_all_single(self) -> None:
        assert single_char_ratio(["a", "b", "1"]) == 1.0

    def test_punctuation_is_not_single_char_token(self) -> None:
        assert single_char_ratio([",", "ab"]) == 0.0

    def test_empty_list(self) -> None:
        assert single_char_ratio([]) == 0.0


# ======================================================================
# repair_spaced_text
# ======================================================================


class TestRepairSpacedText:
    def test_threshold_constant(self) -> None:
        assert SPACED_TOKEN_THRESHOLD == 0.5

    def test_rebuilds_exploded_words(self) -> None:
        assert repair_spaced_text("h e l l o w o r l d") == "helloworld"

    def test_multi_char_token_closes_word(self) -> None:
        result = repair_spaced_text("c e l l s ATP m a k e")
        assert result == "cells ATP make"

    def test_punctuation_closes_word(self) -> None:
        result = repair_spaced_text("e n d . s t a r t")
        assert result == "end . start"

    def test_clean_text_only_normalized(self) -> None:
        text = "The  mitochondria is\nthe powerhouse of a cell"
        assert repair_spaced_text(text) == "The mitochondria is the powerhouse of a cell"

    def test_at_threshold_is_not_repaired(self) -> None:
        # Exactly half single-character tokens: not "more than 50%".
        assert repair_spaced_text("a bb c dd") == "a bb c dd"

    def test_custom_threshold(self) -> None:
        assert repair_spaced_text("a b cc dd") == "a b cc dd"
        assert repair_spaced_text("a b cc dd", threshold=0.4) == "ab cc dd"

    @pytest.mark.parametrize("text", _EXPLODED)
    def test_repair_never_inflates(self, text: str) -> None:
        assert len(repair_spaced_text(text)) < len(normalize_whitespace(text))

    @pytest.mark.parametrize("text", _EXPLODED + ["plain prose stays put", "x y zz"])
    def test_repair_is_idempotent(self, text: str) -> None:
        once = repair_spaced_text(text)
        assert repair_spaced_text(once) == once

    def test_empty_input(self) -> None:
        assert repair_spaced_text("") == ""


# ======================================================================
# printable_ascii_ratio / sanitize_passage_text
# ======================================================================


class TestPrintableAsciiRatio:
    def test_pure_ascii(self) -> None:
        assert printable_ascii_ratio("Hello, world!\n") == 1.0

    def test_mixed(self) -> None:
        assert printable_ascii_ratio("abéé") == pytest.approx(0.5)

    def test_empty(self) -> None:
        assert printable_ascii_ratio("") == 0.0


class TestSanitizePassageText:
    def test_strips_control_characters(self) -> None:
        assert sanitize_passage_text("Cell\x00 wall\x07") == "Cell wall"

    def test_strips_replacement_and_zero_width(self) -> None:
        assert sanitize_passage_text("\ufeffATP\u200b \ufffdsynthase") == "ATP synthase"

    def test_keeps_newlines_and_tabs(self) -> None:
        assert sanitize_passage_text("a\n\tb") == "a\n\tb"
