"""Unit tests for text helpers."""

from leadcrawler.utils.text import digits_only, normalize_text, phrase_pattern, strip_accents


class TestText:
    """Tests for normalization and matching helpers."""

    def test_strip_accents(self):
        """Test diacritics are removed but letters kept."""
        assert strip_accents("Córdoba Núñez") == "Cordoba Nunez"

    def test_normalize_text(self):
        """Test case, accents and whitespace are normalized."""
        assert normalize_text("  Peluquería   ÁNGEL ") == "peluqueria angel"
        assert normalize_text(None) == ""

    def test_phrase_pattern_whole_words(self):
        """Test phrases match only on word boundaries."""
        pattern = phrase_pattern("villa")

        assert pattern.search("villa crespo")
        assert pattern.search("la villa")
        assert not pattern.search("villavicencio")

    def test_digits_only(self):
        """Test non-digits are dropped."""
        assert digits_only("+54 (11) 4371-8141") == "541143718141"
