"""
test_match.py - Catalog matching by character-set overlap.

Usage: python -m pytest test_match.py
"""

from __future__ import annotations

import os
import sys

# Ensure local imports resolve from project root.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from match import find_standard, match_standard, overlap_score
from models import MatchMode, StandardItem

CATALOG = [
    StandardItem(name="讲解", price=50),
    StandardItem(name="阶段工作", price=30),
    StandardItem(name="值班", price=20),
    StandardItem(name="活动策划", price=40),
]


def test_overlap_score_uses_unique_characters():
    # Repeated characters collapse before scoring.
    assert overlap_score("讲讲讲解", "讲解") == pytest.approx(1.0)
    assert overlap_score("策划会议", "活动策划") == pytest.approx(0.5)
    assert overlap_score("", "讲解") == 0.0


def test_exact_name_wins():
    result = match_standard("值班", CATALOG)
    assert result is not None
    assert result.mode == MatchMode.EXACT
    assert result.name == "值班"
    assert result.candidates == []


def test_fuzzy_match_above_threshold():
    result = match_standard("活动策划书", CATALOG)
    assert result is not None
    assert result.mode == MatchMode.FUZZY
    assert result.name == "活动策划"
    assert result.score == pytest.approx(1.0)
    assert result.candidates[0] == "活动策划(1.00)"
    assert len(result.candidates) == 3
    assert "字符重合度" in (result.op_note or "")


def test_below_threshold_is_unmatched_with_candidates():
    result = match_standard("策划会议", CATALOG)
    assert result is not None
    assert result.mode == MatchMode.UNMATCHED
    assert result.name == ""
    assert not result.is_matched
    assert result.candidates[0] == "活动策划(0.50)"
    assert len(result.candidates) == 3


def test_no_overlap_lists_first_catalog_entries():
    result = match_standard("打扫卫生", CATALOG)
    assert result is not None
    assert result.mode == MatchMode.UNMATCHED
    assert result.candidates == ["讲解(0.00)", "阶段工作(0.00)", "值班(0.00)"]


def test_ties_keep_catalog_order():
    catalog = [StandardItem(name="工作一", price=1), StandardItem(name="工作二", price=2)]
    result = match_standard("工作", catalog)
    assert result is not None
    assert result.name == "工作一"
    assert result.candidates == ["工作一(1.00)", "工作二(1.00)"]


def test_blank_text_returns_none():
    assert match_standard("   ", CATALOG) is None


def test_custom_threshold():
    result = match_standard("策划会议", CATALOG, threshold=0.5)
    assert result is not None
    assert result.mode == MatchMode.FUZZY
    assert result.name == "活动策划"


def test_find_standard_later_duplicate_shadows():
    catalog = [StandardItem(name="讲解", price=50), StandardItem(name="讲解", price=60)]
    found = find_standard(catalog, "讲解")
    assert found is not None
    assert found.price == 60
    assert find_standard(catalog, "值班") is None
