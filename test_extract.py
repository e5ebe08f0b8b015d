"""
test_extract.py - Report field extraction and pricing.

Covers month/name resolution, zero-signal sections, stated totals,
list splitting, count distribution, lecture tiers and itemized sections.

Usage: python -m pytest test_extract.py
"""

from __future__ import annotations

import os
import sys

# Ensure local imports resolve from project root.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from extract import (
    distribute_counts,
    extract_all,
    extract_from_fields,
    extract_report,
    find_stated_total,
    pick_lecture_tier,
    split_list_items,
)
from models import IssueKind, MatchMode, ReportField, ReportInput, StandardItem


def _fields(*pairs: tuple[str, str]) -> list[ReportField]:
    return [ReportField(label=label, value=value) for label, value in pairs]


def _kinds(result) -> list[IssueKind]:
    return [record.issue_kind for record in result.exceptions]


PHASE_CATALOG = [
    StandardItem(name="迎新晚会", price=20),
    StandardItem(name="社团招新", price=10),
    StandardItem(name="期末总结", price=15),
]


# -- helpers --


@pytest.mark.parametrize(
    ("block", "expected"),
    [
        ("（8）次：讲解若干", 8),
        ("(5) 次", 5),
        ("本月共三场讲解", 3),
        ("完成十二篇推送", 12),
        ("讲解两次，另有（4）次接待", 4),
        ("讲解", None),
    ],
)
def test_find_stated_total(block, expected):
    assert find_stated_total(block) == expected


def test_split_list_items_on_punctuation():
    assert split_list_items("迎新；社团,招新、a") == ["迎新", "社团", "招新"]


def test_split_list_items_on_enumeration_and_bullets():
    assert split_list_items("总结\n- 值班\n• 策划") == ["总结", "值班", "策划"]
    assert split_list_items("总结\n1. 值班\n（2）策划\n3、布置") == ["总结", "值班", "策划", "布置"]


def test_split_list_items_drops_short_fragments():
    assert split_list_items("甲；乙；丙丁") == ["丙丁"]
    assert split_list_items("") == []


def test_distribute_counts_floor_then_remainder_in_order():
    counts = distribute_counts(7, 3)
    assert counts == [3, 2, 2]
    assert sum(counts) == 7
    assert all(count >= 7 // 3 for count in counts)


def test_distribute_counts_edge_cases():
    assert distribute_counts(None, 3) == [1, 1, 1]
    assert distribute_counts(2, 3) == [1, 1, 0]
    assert distribute_counts(6, 3) == [2, 2, 2]
    assert distribute_counts(5, 0) == []


@pytest.mark.parametrize(
    ("text", "tier"),
    [
        ("紧急前往分校区讲解", "讲解（跨校区）"),
        ("去东校区讲解一次", "讲解（跨校区）"),
        ("临时加急讲解", "紧急讲解"),
        ("接待领导参观", "重要/复杂讲解"),
        ("日常讲解", "讲解"),
    ],
)
def test_pick_lecture_tier_priority(text, tier):
    assert pick_lecture_tier(text)[0] == tier


# -- report-level behavior --


def test_cross_campus_lecture_without_catalog_entry_is_unmatched():
    fields = _fields(
        ("考核月份", "12月"),
        ("姓名", "王五"),
        ("讲解工作", "（3）次：跨校区支教一次；跨校区家访两次"),
    )
    catalog = [StandardItem(name="阶段工作", price=30)]

    result = extract_from_fields("王五.docx", fields, catalog)

    assert result.matched == []
    unmatched = [record for record in result.exceptions if record.issue_kind == IssueKind.UNMATCHED]
    assert len(unmatched) == 1
    assert unmatched[0].month == "12"
    assert unmatched[0].person == "王五"
    assert unmatched[0].suggestion == "量化表缺少事项：讲解（跨校区）"
    assert unmatched[0].match_mode == MatchMode.UNMATCHED


def test_lecture_tier_falls_back_to_generic_lecture():
    fields = _fields(
        ("考核月份", "12月"),
        ("姓名", "王五"),
        ("讲解工作", "（3）次：跨校区支教一次；跨校区家访两次"),
    )
    catalog = [StandardItem(name="讲解", price=50), StandardItem(name="阶段工作", price=30)]

    result = extract_from_fields("王五.docx", fields, catalog)

    assert len(result.matched) == 1
    item = result.matched[0]
    assert item.standard_name == "讲解"
    assert item.count == 3
    assert item.amount == 150
    assert item.match_mode == MatchMode.INFERRED
    assert item.candidates == ["讲解（跨校区）"]
    assert "跨校区" in (item.op_note or "")
    # Stated 3 vs 2 listed: recorded, stated total still priced.
    mismatch = [record for record in result.exceptions if record.issue_kind == IssueKind.COUNT_MISMATCH]
    assert len(mismatch) == 1
    assert "总次数=3" in mismatch[0].suggestion
    assert "列举=2" in mismatch[0].suggestion


def test_lecture_tier_found_in_catalog():
    fields = _fields(("考核月份", "3"), ("姓名", "赵六"), ("讲解工作", "临时讲解两次"))
    catalog = [StandardItem(name="紧急讲解", price=80), StandardItem(name="讲解", price=50)]

    result = extract_from_fields("f.docx", fields, catalog)

    assert [(item.standard_name, item.count, item.amount) for item in result.matched] == [("紧急讲解", 2, 160)]
    assert result.matched[0].month == "3"


def test_phase_work_distributes_stated_total_across_items():
    fields = _fields(
        ("考核月份", "2025年11月"),
        ("姓名", "李四（宣传组）"),
        ("阶段工作", "迎新晚会；社团招新；期末总结（共7次）"),
    )

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    summary = [(item.standard_name, item.count, item.amount, item.match_mode) for item in result.matched]
    assert summary == [
        ("迎新晚会", 3, 60, MatchMode.EXACT),
        ("社团招新", 2, 20, MatchMode.EXACT),
        ("期末总结", 2, 30, MatchMode.FUZZY),
    ]
    assert sum(item.count for item in result.matched) == 7
    assert all(item.person == "李四" and item.person_note == "宣传组" for item in result.matched)
    assert all(item.month == "11" for item in result.matched)

    kinds = _kinds(result)
    assert kinds.count(IssueKind.COUNT_MISMATCH) == 1
    assert kinds.count(IssueKind.LOW_CONFIDENCE) == 1
    low = next(record for record in result.exceptions if record.issue_kind == IssueKind.LOW_CONFIDENCE)
    assert low.suggestion == "期末总结"
    assert low.match_mode == MatchMode.FUZZY


def test_itemized_without_stated_total_counts_each_once():
    fields = _fields(("考核月份", "12月"), ("姓名", "王五"), ("杂活", "迎新晚会；社团招新"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert [item.count for item in result.matched] == [1, 1]
    mismatch = [record for record in result.exceptions if record.issue_kind == IssueKind.COUNT_MISMATCH]
    assert len(mismatch) == 1
    assert "未写明" in mismatch[0].suggestion


def test_itemized_unmatched_candidate_is_reported():
    fields = _fields(("考核月份", "12月"), ("姓名", "王五"), ("杂活", "（2）次：迎新晚会；打扫卫生"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert len(result.matched) == 1
    assert result.matched[0].standard_name == "迎新晚会"
    unmatched = [record for record in result.exceptions if record.issue_kind == IssueKind.UNMATCHED]
    assert len(unmatched) == 1
    assert unmatched[0].source_text == "打扫卫生"
    assert unmatched[0].suggestion.count("(") == 3


def test_single_item_section_counts_once():
    fields = _fields(("考核月份", "12月"), ("姓名", "王五"), ("阶段工作", "社团招新"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert [(item.standard_name, item.count) for item in result.matched] == [("社团招新", 1)]
    assert result.exceptions == []


def test_whole_block_used_when_list_is_empty():
    # A one-character block yields no list items, so the block itself is matched.
    fields = _fields(("考核月份", "12月"), ("姓名", "王五"), ("杂活", "会"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert [(item.standard_name, item.count, item.source_text) for item in result.matched] == [("迎新晚会", 1, "会")]
    assert _kinds(result) == [IssueKind.LOW_CONFIDENCE]


def test_zero_signal_work_section_counts_as_zero():
    fields = _fields(
        ("考核月份", "12月"),
        ("姓名", "王五"),
        ("杂活", "无"),
        ("阶段工作", "本月未做"),
        ("备注", "没有"),
    )

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert result.matched == []
    assert _kinds(result) == [IssueKind.ZERO_SIGNAL, IssueKind.ZERO_SIGNAL]
    assert result.exceptions[0].source_text == "杂活: 无"


def test_missing_name_is_recorded():
    fields = _fields(("考核月份", "12月"), ("姓名", ""), ("阶段工作", "社团招新"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    assert _kinds(result)[0] == IssueKind.MISSING_NAME
    assert result.exceptions[0].person == ""
    assert result.exceptions[0].source_text == "(空)"
    # Extraction continues with an empty person key.
    assert result.matched[0].person == ""


def test_month_falls_back_to_file_name():
    fields = _fields(("姓名", "赵六"), ("阶段工作", "社团招新"))

    result = extract_from_fields("2025年11月绩效表-赵六.docx", fields, PHASE_CATALOG)

    assert result.matched[0].month == "11"
    inferred = result.exceptions[0]
    assert inferred.issue_kind == IssueKind.MONTH_INFERRED
    assert inferred.match_mode == MatchMode.INFERRED
    assert inferred.source_text == "2025年11月绩效表-赵六.docx"


def test_month_missing_everywhere_is_recorded():
    fields = _fields(("姓名", "赵六"), ("阶段工作", "社团招新"))

    result = extract_from_fields("report.docx", fields, PHASE_CATALOG)

    assert result.matched[0].month == ""
    assert result.matched[0].amount == 10.0
    assert _kinds(result) == [IssueKind.MONTH_INFERRED]
    missing = result.exceptions[0]
    assert missing.person == "赵六"
    assert missing.source_text == "report.docx"
    assert missing.suggestion == "请补充考核月份"
    assert missing.match_mode == MatchMode.UNMATCHED
    assert "不计入汇总" in missing.note


def test_amount_always_equals_count_times_price():
    fields = _fields(("考核月份", "12月"), ("姓名", "王五"), ("阶段工作", "迎新晚会；社团招新（共5次）"))

    result = extract_from_fields("f.docx", fields, PHASE_CATALOG)

    for item in result.matched:
        assert item.amount == pytest.approx(item.count * item.unit_price)


def test_extract_report_collapses_tables():
    report = ReportInput(
        file_name="王五.docx",
        tables=[
            [["标题", "x"]],
            [
                ["考核月份", "12月", "12月", "", ""],
                ["姓名", "王五", "", "", ""],
                ["所属部门/组", "主席团", "", "", ""],
                ["阶段工作", "", "社团招新", "社团招新", ""],
            ],
        ],
    )

    result = extract_report(report, PHASE_CATALOG)

    assert [(item.person, item.standard_name) for item in result.matched] == [("王五", "社团招新")]


def test_extract_report_without_table_is_unparseable():
    result = extract_report(ReportInput(file_name="broken.docx", tables=[]), PHASE_CATALOG)

    assert result.matched == []
    assert len(result.exceptions) == 1
    assert result.exceptions[0].issue_kind == IssueKind.UNPARSEABLE
    assert result.exceptions[0].source_text == "broken.docx"


def test_extract_all_keeps_reports_independent():
    first = ReportInput(file_name="a", fields=_fields(("考核月份", "12月"), ("姓名", "王五"), ("阶段工作", "社团招新")))
    second = ReportInput(file_name="b", fields=_fields(("考核月份", "11月"), ("姓名", "李四"), ("杂活", "迎新晚会")))

    combined = extract_all([first, second], PHASE_CATALOG)

    assert [(item.month, item.person) for item in combined.matched] == [("12", "王五"), ("11", "李四")]
