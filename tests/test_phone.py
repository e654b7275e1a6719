"""
Tests for phone normalization
"""

import pytest

from cofin_core.phone import normalize_phone


class TestNormalizePhone:
    
    def test_local_number_with_trunk_zero(self):
        assert normalize_phone("+242", "061234567") == "+24261234567"
    
    def test_local_number_without_trunk_zero(self):
        assert normalize_phone("+242", "61234567") == "+24261234567"
    
    def test_already_has_country_code(self):
        assert normalize_phone("+242", "+24261234567") == "+24261234567"
    
    def test_foreign_international_number_unchanged(self):
        assert normalize_phone("+242", "+15551234") == "+15551234"
    
    def test_whitespace_trimmed(self):
        assert normalize_phone("+242", "  061234567 ") == "+24261234567"
    
    def test_only_one_leading_zero_stripped(self):
        assert normalize_phone("+242", "0061234567") == "+242061234567"
    
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input(self, raw):
        assert normalize_phone("+242", raw) == "+242"
