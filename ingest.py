"""
ingest.py - Input boundary: catalog sheets, report payloads, priority lists.

The settlement core consumes plain records. This module produces them:

    load_catalog(path)          -> list[StandardItem]  (CSV or Excel)
    load_report(path)           -> ReportInput         (JSON)
    collapse_table_rows(rows)   -> list[ReportField]   (5-column template rows)
    pick_main_table(tables)     -> rows of the largest table
    parse_priority(text)        -> list[str]

Unlike the core, this layer may raise: a catalog without recognizable
item/price columns, or a report file that is not valid JSON, is a fatal
input problem the caller must surface.
"""

from __future__ import annotations

import json
import math
import re
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd
from pydantic import ValidationError

from logging_config import get_logger
from models import ReportField, ReportInput, StandardItem

logger = get_logger(__name__)

HEADER_SCAN_ROWS = 20
ITEM_HEADER = re.compile(r"标准事项|标准项|事项名称|事项")
PRICE_HEADER = re.compile(r"单价|金额\(元\)|价格")
TEMPLATE_WORDS = re.compile(r"^(所属部门/?组|主席团|部门|组别)$")
VALUE_COLUMNS = 4
PRIORITY_SEPARATORS = re.compile(r"\s*[\n,，;；]\s*")
PRICE_NOISE = re.compile(r"[\s,，¥￥$元]|RMB|CNY")

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


class CatalogFormatError(ValueError):
    """The catalog sheet has no recognizable item/price header."""


class ReportFormatError(ValueError):
    """A report payload could not be decoded into fields or tables."""


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _parse_price(raw: str) -> Optional[float]:
    """Numeric price with currency marks removed; negative or unreadable prices are None."""
    cleaned = PRICE_NOISE.sub("", raw)
    if not cleaned:
        return None
    try:
        price = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def catalog_from_frame(frame: pd.DataFrame, sheet: str = "") -> list[StandardItem]:
    """Read catalog entries out of a header-less sheet grid."""
    rows = [[_cell_text(value) for value in row] for row in frame.itertuples(index=False, name=None)]

    header_idx = item_col = price_col = -1
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        item_hits = [col for col, text in enumerate(row) if ITEM_HEADER.search(text)]
        price_hits = [col for col, text in enumerate(row) if PRICE_HEADER.search(text)]
        if item_hits and price_hits:
            header_idx, item_col, price_col = index, item_hits[0], price_hits[0]
            break

    if header_idx < 0:
        logger.debug("catalog_sheet_skipped | sheet=%s | reason='no header row'", sheet)
        return []

    items: list[StandardItem] = []
    skipped = 0
    for row in rows[header_idx + 1 :]:
        name = row[item_col] if item_col < len(row) else ""
        price_raw = row[price_col] if price_col < len(row) else ""
        if not name:
            continue
        price = _parse_price(price_raw)
        if price is None:
            skipped += 1
            continue
        items.append(StandardItem(name=name, price=price))

    if skipped:
        logger.warning(
            "catalog_rows_skipped | sheet=%s | rows=%s | reason='price not numeric or negative'",
            sheet,
            skipped,
        )
    return items


def load_catalog(path: str | Path) -> list[StandardItem]:
    """Load the priced catalog from a CSV file or an Excel workbook."""
    catalog_path = Path(str(path).strip())
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog file not found: {catalog_path}")

    suffix = catalog_path.suffix.lower()
    sheets: dict[str, pd.DataFrame]
    if suffix in EXCEL_SUFFIXES:
        engine = "openpyxl" if suffix != ".xls" else None
        try:
            sheets = pd.read_excel(catalog_path, sheet_name=None, header=None, dtype=object, engine=engine)
        except Exception as exc:
            raise CatalogFormatError(f"Failed to read catalog workbook '{catalog_path}': {exc}") from exc
    else:
        try:
            frame = pd.read_csv(catalog_path, header=None, dtype=object, encoding="utf-8-sig")
        except UnicodeDecodeError:
            logger.warning(
                "catalog_encoding_warning | path=%s | reason='utf-8 decode failed' | fallback=gb18030",
                catalog_path,
            )
            frame = pd.read_csv(catalog_path, header=None, dtype=object, encoding="gb18030")
        except pd.errors.ParserError as exc:
            raise CatalogFormatError(f"Failed to read catalog CSV '{catalog_path}': {exc}") from exc
        sheets = {catalog_path.stem: frame}

    for sheet, frame in sheets.items():
        items = catalog_from_frame(frame.dropna(how="all"), sheet=str(sheet))
        if items:
            logger.info("catalog_loaded | path=%s | sheet=%s | items=%s", catalog_path, sheet, len(items))
            return items

    raise CatalogFormatError(
        "未能在量化表中识别“事项名称/单价”列。请确认模板含有“标准事项(或事项名称)”与“单价”两列。"
    )


def _is_template_word(text: str) -> bool:
    stripped = text.strip()
    return not stripped or bool(TEMPLATE_WORDS.match(stripped))


def _clean_cell(text: str) -> str:
    text = (text or "").replace("\u00a0", " ")
    text = re.sub(r"[\r\t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


def collapse_table_rows(rows: Sequence[Sequence[str]]) -> list[ReportField]:
    """Collapse template rows into fields: column 0 is the label, 1-4 the value region.

    The value region often repeats one merged cell; keep a single
    representative: the first value column unless it is boilerplate,
    otherwise the longest non-boilerplate column.
    """
    fields: list[ReportField] = []
    for row in rows:
        if not row:
            continue
        label = _clean_cell(row[0])
        if not label:
            continue
        region = [_clean_cell(row[col]) if col < len(row) else "" for col in range(1, VALUE_COLUMNS + 1)]
        if region[0] and not _is_template_word(region[0]):
            value = region[0]
        else:
            usable = sorted((text for text in region if not _is_template_word(text)), key=len, reverse=True)
            value = usable[0] if usable else ""
        fields.append(ReportField(label=label, value=value))
    return fields


def pick_main_table(tables: Sequence[Sequence[Sequence[str]]]) -> list[list[str]]:
    """The table with the most rows; ties keep document order."""
    best: list[list[str]] = []
    for table in tables:
        if len(table) > len(best):
            best = [list(row) for row in table]
    return best


def report_from_payload(payload: Any, default_name: str = "") -> ReportInput:
    if not isinstance(payload, dict):
        raise ReportFormatError(f"Report payload must be an object, got {type(payload).__name__}")
    data = dict(payload)
    data.setdefault("file_name", default_name)
    try:
        return ReportInput.model_validate(data)
    except ValidationError as exc:
        raise ReportFormatError(f"Invalid report payload '{data.get('file_name')}': {exc}") from exc


def load_report(path: str | Path) -> ReportInput:
    """Load one report JSON file produced by the table-extraction step."""
    report_path = Path(path)
    if not report_path.exists():
        raise FileNotFoundError(f"Report file not found: {report_path}")
    try:
        payload = json.loads(report_path.read_text(encoding="utf-8-sig"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ReportFormatError(f"Report '{report_path.name}' is not valid JSON: {exc}") from exc

    report = report_from_payload(payload, default_name=report_path.name)
    logger.debug(
        "report_loaded | path=%s | fields=%s | tables=%s",
        report_path,
        len(report.fields),
        len(report.tables or []),
    )
    return report


def parse_priority(text: Optional[str]) -> list[str]:
    """Split a pasted priority list on newlines, commas and semicolons."""
    if not text:
        return []
    return [name.strip() for name in PRIORITY_SEPARATORS.split(text) if name.strip()]
