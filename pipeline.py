"""
pipeline.py - One settlement run over already-loaded inputs.

    run_settlement(catalog, reports, priority_collectors) -> SettlementRun

Shared by the CLI (main.py) and the HTTP layer (api.py). No file or
terminal I/O happens here.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from aggregate import aggregate
from allocate import PAYOUT_CAP, allocate
from extract import extract_all
from logging_config import get_logger
from match import FUZZY_THRESHOLD
from models import (
    ExceptionRecord,
    ExtractionResult,
    ReportInput,
    SettlementRun,
    StandardItem,
)

logger = get_logger(__name__)


def run_settlement(
    catalog: Sequence[StandardItem],
    reports: Sequence[ReportInput],
    priority_collectors: Sequence[str] = (),
    cap: float = PAYOUT_CAP,
    threshold: float = FUZZY_THRESHOLD,
    upstream_issues: Optional[Sequence[ExceptionRecord]] = None,
) -> SettlementRun:
    """Run extract -> aggregate -> allocate.

    `upstream_issues` are review records raised before extraction (files
    that could not be read) and lead the exception list.
    """
    pipeline_start = time.time()

    extraction = ExtractionResult(exceptions=list(upstream_issues or []))
    extraction.extend(extract_all(reports, catalog, threshold))
    extract_time = time.time() - pipeline_start
    logger.info(
        "pipeline_stage | stage=1/3 | name=extract | reports=%s | matched=%s | exceptions=%s | duration_s=%.2f",
        len(reports),
        len(extraction.matched),
        len(extraction.exceptions),
        extract_time,
    )

    aggregates = aggregate(extraction.matched)
    logger.info("pipeline_stage | stage=2/3 | name=aggregate | groups=%s", len(aggregates))

    allocation = allocate(aggregates, priority_collectors, cap)
    logger.info(
        "pipeline_stage | stage=3/3 | name=allocate | accounts=%s | transfers=%s | conservation_ok=%s",
        len(allocation.rows),
        len(allocation.transfers),
        allocation.conservation_ok,
    )

    logger.info("pipeline_complete | total_duration_s=%.2f", time.time() - pipeline_start)
    return SettlementRun(
        catalog=list(catalog),
        extraction=extraction,
        aggregates=aggregates,
        allocation=allocation,
    )
