"""
main.py - CLI orchestration for the settlement pipeline.

This module is orchestration-only:
1. ingest (catalog + report payloads)
2. extract
3. aggregate
4. allocate
5. report
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from config import load_settings
from ingest import ReportFormatError, load_catalog, load_report, parse_priority
from logging_config import get_logger, setup_logging
from models import ExceptionRecord, IssueKind, MatchMode, ReportInput, SettlementRun
from pipeline import run_settlement
from report import build_tables, tables_to_records, write_tables

logger = get_logger("settlement")

REPORT_SUFFIXES = {".json"}


def _configure_output_symbols() -> tuple[str, str]:
    """Configure stdout encoding and return safe line/fail symbols."""
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, ValueError):
        pass

    try:
        "═✗".encode(sys.stdout.encoding or "utf-8")
        return "═", "✗"
    except (UnicodeEncodeError, LookupError):
        return "=", "X"


BOX_CHAR, FAIL_CHAR = _configure_output_symbols()


def _unsupported(path: Path) -> ExceptionRecord:
    return ExceptionRecord(
        source_text=path.name,
        issue_kind=IssueKind.UNSUPPORTED,
        suggestion="请先将报告表格导出为 JSON（fields 或 tables）",
        match_mode=MatchMode.UNMATCHED,
        note="当前版本仅读取 JSON 报告",
    )


def _unreadable(path: Path, exc: Exception) -> ExceptionRecord:
    return ExceptionRecord(
        source_text=path.name,
        issue_kind=IssueKind.UNPARSEABLE,
        suggestion="报告内容无法读取",
        match_mode=MatchMode.UNMATCHED,
        note=str(exc)[:200],
    )


def collect_report_paths(inputs: Iterable[str]) -> list[Path]:
    """Expand directories into their files, sorted, skipping hidden ones."""
    paths: list[Path] = []
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            paths.extend(
                sorted(
                    child
                    for child in path.iterdir()
                    if child.is_file() and not child.name.startswith((".", "_"))
                )
            )
        elif path.exists():
            paths.append(path)
        else:
            raise FileNotFoundError(f"Report path not found: {path}")
    return paths


def load_reports(paths: Sequence[Path]) -> tuple[list[ReportInput], list[ExceptionRecord]]:
    """Load report payloads; unreadable or unsupported files become review records."""
    reports: list[ReportInput] = []
    issues: list[ExceptionRecord] = []
    for path in paths:
        if path.suffix.lower() not in REPORT_SUFFIXES:
            logger.warning("report_unsupported | file=%s", path.name)
            issues.append(_unsupported(path))
            continue
        try:
            reports.append(load_report(path))
        except ReportFormatError as exc:
            logger.warning("report_unreadable | file=%s | error=%s", path.name, exc)
            issues.append(_unreadable(path, exc))
    return reports, issues


def _print_summary(run: SettlementRun, written: Sequence[Path]) -> None:
    print(f"\n{BOX_CHAR * 60}")
    print("  SETTLEMENT SUMMARY")
    print(f"{BOX_CHAR * 60}")
    print(f"  标准事项数：{len(run.catalog)}")
    print(f"  匹配明细条数：{len(run.extraction.matched)}")
    print(f"  按人月汇总行数：{len(run.aggregates)}")
    print(f"  异常行数：{len(run.extraction.exceptions)}")
    print(f"  转账记录：{len(run.allocation.transfers)}")
    print()
    for warning in run.allocation.warnings:
        marker = FAIL_CHAR if ("失败" in warning or "不足" in warning) else "-"
        print(f"  {marker} {warning}")
    if written:
        print()
        for path in written:
            print(f"  -> {path}")
    print(f"{BOX_CHAR * 60}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point for settlement."""
    settings = load_settings()
    parser = argparse.ArgumentParser(
        prog="settle",
        description=(
            "Performance report settlement\n"
            "Prices report work items against the catalog and settles "
            "payouts under the per-account cap."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --catalog 量化表.xlsx --reports reports/\n"
            "  %(prog)s --catalog catalog.csv --reports a.json b.json --priority \"张三,李四\" --out out/\n"
        ),
    )
    parser.add_argument("--catalog", "-c", required=True, help="Catalog sheet (.csv/.xlsx) with item and price columns")
    parser.add_argument("--reports", "-r", nargs="+", required=True, help="Report JSON files or directories")
    parser.add_argument("--priority", "-p", default="", help="Preferred collectors, comma/semicolon separated")
    parser.add_argument("--out", "-o", default="", help="Directory for the exported CSV tables")
    parser.add_argument("--json", action="store_true", help="Print all tables as JSON instead of a summary")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (DEBUG-level) logging")
    parser.add_argument("--log-json", action="store_true", help="Output logs as JSON lines")

    args = parser.parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else settings.log_level,
        json_format=args.log_json,
    )

    try:
        catalog = load_catalog(args.catalog)
        reports, issues = load_reports(collect_report_paths(args.reports))
        run = run_settlement(
            catalog,
            reports,
            parse_priority(args.priority),
            cap=settings.payout_cap,
            threshold=settings.fuzzy_threshold,
            upstream_issues=issues,
        )
        tables = build_tables(
            run.aggregates,
            run.extraction.exceptions,
            run.allocation,
            run.catalog,
            cap=settings.payout_cap,
        )
        written = write_tables(tables, args.out) if args.out else []

        if args.json:
            print(json.dumps(tables_to_records(tables), ensure_ascii=False, indent=2))
        else:
            _print_summary(run, written)
    except FileNotFoundError as exc:
        logger.error("cli_error | type=FileNotFoundError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        logger.error("cli_error | type=%s | error=%s", type(exc).__name__, exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)


if __name__ == "__main__":
    main()
