"""Tests for configuration parsing helpers."""

from __future__ import annotations

import pytest

from linked_profiles.config import parse_page_ranges


class TestParsePageRanges:
    def test_parses_ranges_in_order(self):
        assert parse_page_ranges("150-200,100-150, 1-50") == [(150, 200), (100, 150), (1, 50)]

    def test_ignores_blank_chunks(self):
        assert parse_page_ranges("1-10,,") == [(1, 10)]

    @pytest.mark.parametrize("raw", ["10-5", "0-10", "5-5", "abc"])
    def test_rejects_invalid_ranges(self, raw: str):
        with pytest.raises(ValueError):
            parse_page_ranges(raw)
