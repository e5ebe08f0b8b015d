"""
extract.py - Report field extraction and pricing.

This module turns one report's labelled fields into priced line items:

    extract_from_fields(file_name, fields, catalog) -> ExtractionResult

Pipeline role:
- Resolves the report's month and person.
- Reads a stated total and an enumerated list out of each work section.
- Prices lecture work by tier, and phase/misc work item by item through
  match.match_standard.
- Every uncertain inference becomes an ExceptionRecord next to the line
  items; nothing here raises for malformed or ambiguous text.

The catalog and the exception list are explicit inputs/outputs, so separate
reports can be extracted independently (and in parallel).
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from ingest import collapse_table_rows, pick_main_table
from logging_config import get_logger
from match import FUZZY_THRESHOLD, find_standard, match_standard
from models import (
    ExceptionRecord,
    ExtractionResult,
    IssueKind,
    MatchedItem,
    MatchMode,
    PersonName,
    ReportField,
    ReportInput,
    StandardItem,
)
from normalize import cn_to_int, normalize_name, parse_month

logger = get_logger(__name__)

# -- Field labels --
MONTH_LABEL = re.compile(r"考核月份")
NAME_LABEL = re.compile(r"姓名")
WORK_SECTION_LABEL = re.compile(r"(讲解|阶段工作|杂活)")
LECTURE_LABEL = re.compile(r"讲解工作")
PHASE_LABEL = re.compile(r"阶段工作")
MISC_LABEL = re.compile(r"杂活")

# -- Text signals --
ZERO_SIGNAL = re.compile(r"(无|空白|未填写|没有|未做)")
PAREN_COUNT = re.compile(r"[（(]\s*(\d+)\s*[)）]\s*次")
COUNT_ANYWHERE = re.compile(
    r"(共\s*)?([0-9]{1,3}|[零一二两三四五六七八九十百千]+)\s*(次|场|篇|条|张|个|人|月)"
)
LIST_SEPARATORS = re.compile(
    r"(?:\n\s*\d+[.、]|\n\s*[（(]\d+[)）]|\n\s*[-•]|[；;、，,。])"
)

# -- Lecture tiers, highest priority first --
LECTURE_TIERS: list[tuple[str, str, re.Pattern[str]]] = [
    ("讲解（跨校区）", "跨校区", re.compile(r"(跨校区|外校区|分校区|去\S{0,10}校区)")),
    ("紧急讲解", "紧急/临时", re.compile(r"(紧急|加急|临时)")),
    ("重要/复杂讲解", "重要/复杂", re.compile(r"(重要|复杂|重点|大型|接待领导|领导|专家)")),
]
GENERIC_LECTURE = "讲解"

SECTION_NAMES = {"phase": "阶段工作", "misc": "杂活"}


def has_zero_signal(text: str) -> bool:
    """Whether the text says the section was not done or left blank."""
    return bool(ZERO_SIGNAL.search(text))


def find_stated_total(block: str) -> Optional[int]:
    """Find the count a section claims, e.g. '（8）次' or '共三场'."""
    paren = PAREN_COUNT.search(block)
    if paren:
        return int(paren.group(1))
    anywhere = COUNT_ANYWHERE.search(block)
    if anywhere:
        return cn_to_int(anywhere.group(2))
    return None


def split_list_items(block: str) -> list[str]:
    """Split a section into enumerated items, dropping empty and 1-char fragments."""
    text = re.sub(r"\n+", "\n", block.replace("\r", ""))
    parts = (part.strip() for part in LIST_SEPARATORS.split(text))
    return [part for part in parts if len(part) > 1]


def distribute_counts(total: Optional[int], n: int) -> list[int]:
    """Spread a stated total over n candidates.

    Every candidate gets floor(total / n); the remainder goes one unit at a
    time to the first candidates in their original order. Without a stated
    total every candidate counts once.
    """
    if n <= 0:
        return []
    if total is None:
        return [1] * n
    share, remainder = divmod(total, n)
    return [share + (1 if index < remainder else 0) for index in range(n)]


def pick_lecture_tier(text: str) -> tuple[str, str]:
    """Classify a lecture block into one tier. Returns (tier name, rule that fired)."""
    for tier, rule, pattern in LECTURE_TIERS:
        if pattern.search(text):
            return tier, rule
    return GENERIC_LECTURE, "默认"


def unparseable_placeholder(file_name: str, reason: str = "未读取到表格") -> ExceptionRecord:
    """The single review record left behind by a report that could not be read."""
    return ExceptionRecord(
        source_text=file_name,
        issue_kind=IssueKind.UNPARSEABLE,
        suggestion=reason,
        match_mode=MatchMode.UNMATCHED,
        note="报告未解析到表格，未计入任何明细",
    )


class _ReportScope:
    """Month/person keys plus the growing output of one report."""

    def __init__(self, month: str, person: PersonName) -> None:
        self.month = month
        self.person = person
        self.result = ExtractionResult()

    def issue(
        self,
        source_text: str,
        issue_kind: IssueKind,
        suggestion: str,
        match_mode: MatchMode,
        note: str,
    ) -> None:
        self.result.exceptions.append(
            ExceptionRecord(
                month=self.month,
                person=self.person.name,
                source_text=source_text,
                issue_kind=issue_kind,
                suggestion=suggestion,
                match_mode=match_mode,
                note=note,
            )
        )

    def item(
        self,
        std: StandardItem,
        count: int,
        source_text: str,
        match_mode: MatchMode,
        op_note: Optional[str],
        candidates: list[str],
    ) -> None:
        self.result.matched.append(
            MatchedItem(
                month=self.month,
                person=self.person.name,
                person_note=self.person.note,
                standard_name=std.name,
                count=count,
                unit_price=std.price,
                source_text=source_text,
                match_mode=match_mode,
                op_note=op_note,
                candidates=candidates,
            )
        )


def _check_count(scope: _ReportScope, section: str, total: Optional[int], listed: int, block: str) -> None:
    effective = total if total is not None else 1
    if listed and effective != listed:
        shown = str(total) if total is not None else "1（未写明）"
        note = "按总次数计价，列表仅作佐证" if total is not None else "未写明总次数，按默认值处理，列表仅作佐证"
        scope.issue(
            block,
            IssueKind.COUNT_MISMATCH,
            f"{section} 不一致：总次数={shown}，列举={listed}",
            MatchMode.INFERRED,
            note,
        )
        logger.warning(
            "extract_count_mismatch | person=%r | section=%s | stated=%s | listed=%s",
            scope.person.name,
            section,
            total,
            listed,
        )


def _extract_lecture(scope: _ReportScope, block: str, catalog: Sequence[StandardItem]) -> None:
    total = find_stated_total(block)
    _check_count(scope, "讲解", total, len(split_list_items(block)), block)

    tier, rule = pick_lecture_tier(block)
    if find_standard(catalog, tier) is not None:
        std_name = tier
    elif find_standard(catalog, GENERIC_LECTURE) is not None:
        std_name = GENERIC_LECTURE
    else:
        std_name = tier

    std = find_standard(catalog, std_name)
    if std is None:
        scope.issue(
            block,
            IssueKind.UNMATCHED,
            f"量化表缺少事项：{std_name}",
            MatchMode.UNMATCHED,
            "讲解档位已判断，但量化表无对应标准项",
        )
        logger.warning("extract_lecture_unmatched | person=%r | tier=%s", scope.person.name, tier)
        return

    count = total if total is not None else 1
    scope.item(
        std,
        count,
        block,
        MatchMode.INFERRED,
        f"按讲解档位规则（{rule}）判断为“{std.name}”，并以总次数计价",
        [tier],
    )
    logger.debug(
        "extract_lecture | person=%r | tier=%s | priced_as=%s | count=%s",
        scope.person.name,
        tier,
        std.name,
        count,
    )


def _extract_itemized(
    scope: _ReportScope,
    section: str,
    block: str,
    catalog: Sequence[StandardItem],
    threshold: float,
) -> None:
    total = find_stated_total(block)
    listed = split_list_items(block)
    _check_count(scope, section, total, len(listed), block)

    candidates = listed or [block]
    counts = distribute_counts(total, len(candidates))

    for text, count in zip(candidates, counts):
        result = match_standard(text, catalog, threshold)
        if result is None:
            continue
        if not result.is_matched:
            scope.issue(
                text,
                IssueKind.UNMATCHED,
                "；".join(result.candidates),
                result.mode,
                f"{section}条目无法可靠匹配标准项：{result.op_note or ''}",
            )
            continue

        std = find_standard(catalog, result.name)
        if std is None:
            continue
        scope.item(std, count, text, result.mode, result.op_note, result.candidates)
        if result.mode != MatchMode.EXACT:
            scope.issue(
                text,
                IssueKind.LOW_CONFIDENCE,
                result.name,
                result.mode,
                f"将原文归到“{result.name}”：{result.op_note or ''}；候选：{'；'.join(result.candidates)}",
            )


def extract_from_fields(
    file_name: str,
    fields: Sequence[ReportField],
    catalog: Sequence[StandardItem],
    threshold: float = FUZZY_THRESHOLD,
) -> ExtractionResult:
    """Extract priced line items and review records from one report."""
    month: Optional[str] = None
    name_raw = ""
    for field in fields:
        if MONTH_LABEL.search(field.label):
            found = parse_month(field.value)
            if found:
                month = found
        if NAME_LABEL.search(field.label):
            name_raw = field.value

    person = normalize_name(name_raw)
    scope = _ReportScope(month or "", person)

    if not person.name:
        scope.issue(
            name_raw or "(空)",
            IssueKind.MISSING_NAME,
            "请补充姓名",
            MatchMode.UNMATCHED,
            "未在“姓名”字段解析到有效姓名",
        )
        logger.warning("extract_missing_name | file=%s", file_name)

    if not month:
        from_file = parse_month(file_name)
        if from_file:
            scope.month = from_file
            scope.issue(
                file_name,
                IssueKind.MONTH_INFERRED,
                "月份来源=文件名",
                MatchMode.INFERRED,
                "正文缺“考核月份”，改用文件名推断月份",
            )
            logger.info("extract_month_from_file_name | file=%s | month=%s", file_name, from_file)
        else:
            scope.issue(
                file_name,
                IssueKind.MONTH_INFERRED,
                "请补充考核月份",
                MatchMode.UNMATCHED,
                "正文与文件名均未解析到月份，本报告明细不计入汇总",
            )
            logger.warning("extract_month_missing | file=%s", file_name)

    for field in fields:
        block = (field.value or "").strip()
        if not block:
            continue

        if has_zero_signal(block):
            if WORK_SECTION_LABEL.search(field.label):
                scope.issue(
                    f"{field.label}: {block}",
                    IssueKind.ZERO_SIGNAL,
                    "按0次处理",
                    MatchMode.EXACT,
                    "检测到“无/未做/空白”等信号，计0不计价",
                )
            continue

        if LECTURE_LABEL.search(field.label):
            _extract_lecture(scope, block, catalog)
        if PHASE_LABEL.search(field.label):
            _extract_itemized(scope, SECTION_NAMES["phase"], block, catalog, threshold)
        if MISC_LABEL.search(field.label):
            _extract_itemized(scope, SECTION_NAMES["misc"], block, catalog, threshold)

    logger.info(
        "extract_complete | file=%s | month=%s | person=%r | matched=%s | exceptions=%s",
        file_name,
        scope.month,
        person.name,
        len(scope.result.matched),
        len(scope.result.exceptions),
    )
    return scope.result


def extract_report(
    report: ReportInput,
    catalog: Sequence[StandardItem],
    threshold: float = FUZZY_THRESHOLD,
) -> ExtractionResult:
    """Extract one ingested report, collapsing its raw table first if needed."""
    fields = list(report.fields)
    if not fields and report.tables is not None:
        table = pick_main_table(report.tables)
        fields = collapse_table_rows(table) if table else []

    if not fields:
        logger.warning("extract_unparseable | file=%s", report.file_name)
        return ExtractionResult(exceptions=[unparseable_placeholder(report.file_name)])

    return extract_from_fields(report.file_name, fields, catalog, threshold)


def extract_all(
    reports: Sequence[ReportInput],
    catalog: Sequence[StandardItem],
    threshold: float = FUZZY_THRESHOLD,
) -> ExtractionResult:
    """Extract every report and concatenate the results in input order."""
    combined = ExtractionResult()
    for report in reports:
        combined.extend(extract_report(report, catalog, threshold))
    return combined
