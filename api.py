"""
api.py - FastAPI HTTP layer for the settlement pipeline.

Endpoints:
  - GET  /health
  - POST /extract    one report's fields + catalog -> line items and review records
  - POST /aggregate  line items -> per (month, person) totals
  - POST /allocate   totals + priority list -> capped payouts and transfers
  - POST /settle     catalog + reports -> every export table

No extraction or allocation logic lives here; each request is an
independent, stateless run.
"""

from __future__ import annotations

from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from aggregate import aggregate
from allocate import allocate
from config import load_settings
from extract import extract_from_fields
from logging_config import get_logger, setup_logging
from models import (
    AllocationResult,
    ExtractionResult,
    MatchedItem,
    PersonMonthAggregate,
    ReportField,
    ReportInput,
    StandardItem,
)
from pipeline import run_settlement
from report import build_tables, tables_to_records

logger = get_logger("settlement-api")
settings = load_settings()

app = FastAPI(
    title="Performance Settlement API",
    version="1.0.0",
)

# Allows a local spreadsheet-side UI to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ExtractRequest(BaseModel):
    file_name: str = ""
    fields: list[ReportField] = Field(default_factory=list)
    catalog: list[StandardItem]


class AggregateRequest(BaseModel):
    matched: list[MatchedItem] = Field(default_factory=list)


class AllocateRequest(BaseModel):
    aggregates: list[PersonMonthAggregate] = Field(default_factory=list)
    priority_collectors: list[str] = Field(default_factory=list)


class SettleRequest(BaseModel):
    catalog: list[StandardItem]
    reports: list[ReportInput] = Field(default_factory=list)
    priority_collectors: list[str] = Field(default_factory=list)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/extract", response_model=ExtractionResult)
def extract_endpoint(request: ExtractRequest) -> ExtractionResult:
    if not request.catalog:
        raise HTTPException(status_code=400, detail="catalog must contain at least one item")
    return extract_from_fields(request.file_name, request.fields, request.catalog, settings.fuzzy_threshold)


@app.post("/aggregate", response_model=list[PersonMonthAggregate])
def aggregate_endpoint(request: AggregateRequest) -> list[PersonMonthAggregate]:
    return aggregate(request.matched)


@app.post("/allocate", response_model=AllocationResult)
def allocate_endpoint(request: AllocateRequest) -> AllocationResult:
    return allocate(request.aggregates, request.priority_collectors, settings.payout_cap)


@app.post("/settle")
def settle_endpoint(request: SettleRequest) -> dict[str, Any]:
    if not request.catalog:
        raise HTTPException(status_code=400, detail="catalog must contain at least one item")
    try:
        run = run_settlement(
            request.catalog,
            request.reports,
            request.priority_collectors,
            cap=settings.payout_cap,
            threshold=settings.fuzzy_threshold,
        )
        tables = build_tables(
            run.aggregates,
            run.extraction.exceptions,
            run.allocation,
            run.catalog,
            cap=settings.payout_cap,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    logger.info(
        "api_settle_complete | reports=%s | matched=%s | exceptions=%s | conservation_ok=%s",
        len(request.reports),
        len(run.extraction.matched),
        len(run.extraction.exceptions),
        run.allocation.conservation_ok,
    )
    return {
        "counts": {
            "catalog": len(run.catalog),
            "matched": len(run.extraction.matched),
            "aggregates": len(run.aggregates),
            "exceptions": len(run.extraction.exceptions),
            "transfers": len(run.allocation.transfers),
        },
        "conservation_ok": run.allocation.conservation_ok,
        "warnings": run.allocation.warnings,
        "tables": tables_to_records(tables),
    }


if __name__ == "__main__":
    setup_logging(settings.log_level)
    uvicorn.run("api:app", host="0.0.0.0", port=settings.port, reload=False)
