"""
report.py - Export tables for reviewers and payroll.

Converts engine outputs into pandas DataFrames whose column headers are the
reviewer-facing Chinese labels, one frame per sheet:

    A明细表        one row per (month, person)
    B量化表        item counts per (month, person), one column per catalog item
    C个人汇总表    one row per person across months
    D异常待确认表  every ExceptionRecord
    E金额分配表    account figures after capping and proxy collection
    F转账通知表    merged proxy transfers
    校验与提示     allocation warnings

`write_tables` saves each frame as a UTF-8 (BOM) CSV so Excel opens the
Chinese headers correctly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd

from aggregate import person_totals
from allocate import PAYOUT_CAP
from logging_config import get_logger
from models import AllocationResult, ExceptionRecord, PersonMonthAggregate, StandardItem
from normalize import round_money

logger = get_logger(__name__)

DETAIL_COLUMNS = ["月份", "姓名", "标准事项汇总", "分项金额说明", "合计金额", "原文摘录（可选）"]
SUMMARY_COLUMNS = [
    "姓名",
    "工作事项列表",
    "各标准事项（次数+小计）",
    "原始应得合计金额",
    "本人到账金额（封顶后）",
    "超出部分",
    "备注",
]
EXCEPTION_COLUMNS = ["月份", "姓名", "原文", "问题类型", "建议匹配项", "匹配方式", "操作说明"]
ALLOCATION_COLUMNS = [
    "姓名（账户）",
    "原始应得金额",
    "本人到账金额（≤800）",
    "超出部分",
    "代收来源明细",
    "该账户最终到账金额（≤800）",
    "剩余容量",
    "备注",
]
TRANSFER_COLUMNS = ["转出人（代收人）", "转入人（实际应得者）", "转账金额", "原因", "备注"]
WARNING_COLUMNS = ["提示"]


def detail_table(aggregates: Sequence[PersonMonthAggregate]) -> pd.DataFrame:
    rows = []
    for group in aggregates:
        names = sorted(group.standard_names)
        breakdown = "；".join(f"{name}:{group.amounts_by_item.get(name, 0.0):.2f}" for name in names)
        rows.append(
            {
                "月份": group.month,
                "姓名": group.person,
                "标准事项汇总": "+".join(names),
                "分项金额说明": breakdown,
                "合计金额": f"{group.total:.2f}",
                "原文摘录（可选）": "",
            }
        )
    return pd.DataFrame(rows, columns=DETAIL_COLUMNS)


def quantity_table(
    aggregates: Sequence[PersonMonthAggregate],
    catalog: Sequence[StandardItem],
) -> pd.DataFrame:
    item_names = list(dict.fromkeys(item.name for item in catalog))
    rows = []
    for group in aggregates:
        row: dict[str, object] = {"月份": group.month, "姓名": group.person}
        for name in item_names:
            row[name] = group.counts_by_item.get(name, 0)
        row["合计金额"] = f"{group.total:.2f}"
        rows.append(row)
    return pd.DataFrame(rows, columns=["月份", "姓名", *item_names, "合计金额"])


def person_summary_table(aggregates: Sequence[PersonMonthAggregate], cap: float = PAYOUT_CAP) -> pd.DataFrame:
    counts: dict[str, dict[str, int]] = {}
    amounts: dict[str, dict[str, float]] = {}
    for group in aggregates:
        person_counts = counts.setdefault(group.person, {})
        person_amounts = amounts.setdefault(group.person, {})
        for name in group.standard_names:
            person_counts[name] = person_counts.get(name, 0) + group.counts_by_item.get(name, 0)
            person_amounts[name] = round_money(person_amounts.get(name, 0.0) + group.amounts_by_item.get(name, 0.0))

    rows = []
    for person, raw in sorted(person_totals(aggregates).items()):
        names = sorted(counts[person])
        detail = "；".join(f"{name}({counts[person][name]}次/{amounts[person][name]:.2f})" for name in names)
        rows.append(
            {
                "姓名": person,
                "工作事项列表": "+".join(names),
                "各标准事项（次数+小计）": detail,
                "原始应得合计金额": f"{raw:.2f}",
                "本人到账金额（封顶后）": f"{min(cap, raw):.2f}",
                "超出部分": f"{max(0.0, raw - cap):.2f}",
                "备注": "",
            }
        )
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def exception_table(exceptions: Sequence[ExceptionRecord]) -> pd.DataFrame:
    return pd.DataFrame([record.to_row() for record in exceptions], columns=EXCEPTION_COLUMNS)


def allocation_tables(result: AllocationResult) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    accounts = pd.DataFrame([row.to_row() for row in result.rows], columns=ALLOCATION_COLUMNS)
    transfers = pd.DataFrame([transfer.to_row() for transfer in result.transfers], columns=TRANSFER_COLUMNS)
    warnings = pd.DataFrame([{"提示": warning} for warning in result.warnings], columns=WARNING_COLUMNS)
    return accounts, transfers, warnings


def build_tables(
    aggregates: Sequence[PersonMonthAggregate],
    exceptions: Sequence[ExceptionRecord],
    allocation: AllocationResult,
    catalog: Sequence[StandardItem],
    cap: float = PAYOUT_CAP,
) -> dict[str, pd.DataFrame]:
    """All export sheets, keyed by sheet name in presentation order."""
    accounts, transfers, warnings = allocation_tables(allocation)
    return {
        "A明细表": detail_table(aggregates),
        "B量化表": quantity_table(aggregates, catalog),
        "C个人汇总表": person_summary_table(aggregates, cap),
        "D异常待确认表": exception_table(exceptions),
        "E金额分配表": accounts,
        "F转账通知表": transfers,
        "校验与提示": warnings,
    }


def tables_to_records(tables: dict[str, pd.DataFrame]) -> dict[str, list[dict[str, object]]]:
    """JSON-ready view of the export sheets."""
    return {name: frame.to_dict(orient="records") for name, frame in tables.items()}


def write_tables(tables: dict[str, pd.DataFrame], out_dir: str | Path) -> list[Path]:
    """Write one CSV per sheet into out_dir and return the written paths."""
    target = Path(out_dir)
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name, frame in tables.items():
        path = target / f"{name}.csv"
        frame.to_csv(path, index=False, encoding="utf-8-sig")
        written.append(path)
        logger.debug("report_written | sheet=%s | rows=%s | path=%s", name, len(frame), path)
    logger.info("report_complete | sheets=%s | out_dir=%s", len(written), target)
    return written
