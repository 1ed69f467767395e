"""
Unit tests for name normalization.

Run: pytest tests/unit/test_text_utils.py -v
"""

import pytest

from utils.text_utils import clean_name, normalize_name_key


class TestNormalizeNameKey:
    """Tests for normalize_name_key()"""

    def test_case_insensitive(self):
        """Should fold case: SMITH COLLEGE → smith college."""
        assert normalize_name_key("SMITH COLLEGE") == normalize_name_key("Smith College")

    def test_collapses_whitespace(self):
        assert normalize_name_key("  Smith   College\t") == "smith college"

    def test_keeps_accents(self):
        """Accented and plain spellings are different keys."""
        assert normalize_name_key("Muséo Nacional") != normalize_name_key("Museo Nacional")

    def test_compatibility_forms_folded(self):
        """Full-width letters compare as their plain form."""
        assert normalize_name_key("ＳＭＩＴＨ") == "smith"

    def test_casefold_sharp_s(self):
        assert normalize_name_key("Straße") == "strasse"

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
    def test_empty_returns_none(self, value):
        assert normalize_name_key(value) is None


class TestCleanName:
    """Tests for clean_name()"""

    def test_preserves_case(self):
        assert clean_name("  Smith   College ") == "Smith College"

    def test_truncates(self):
        assert clean_name("abcdef", max_length=3) == "abc"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_returns_none(self, value):
        assert clean_name(value) is None
