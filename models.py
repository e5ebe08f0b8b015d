"""
models.py - Data Models for the Settlement Pipeline

Every module in the pipeline communicates exclusively through these models:

    ingest.py    ->  ReportInput, list[StandardItem]
    extract.py   ->  ExtractionResult (MatchedItem + ExceptionRecord)
    aggregate.py ->  list[PersonMonthAggregate]
    allocate.py  ->  AllocationResult (AccountSummary + Transfer + warnings)
    report.py    ->  export tables (uses all of the above as input)

Design principles:
1. Each layer's output is the next layer's input
2. Records carry source text and operator notes so every inferred number
   can be traced back to the report sentence it came from
3. Exceptions are review records, not raised errors; they never feed back
   into computation
4. Enum values are the Chinese labels shown to reviewers, so records can be
   exported verbatim

Schema relationships:
    MatchMode   --used by--> MatchedItem.match_mode, ExceptionRecord.match_mode
    IssueKind   --used by--> ExceptionRecord.issue_kind
    MatchedItem --folded into--> PersonMonthAggregate
    PersonMonthAggregate --summed into--> AllocationRow
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class MatchMode(str, Enum):
    """How a line item was tied to a catalog entry."""

    # Report text equals a catalog name character for character.
    EXACT = "精确匹配"

    # Character-overlap score cleared the threshold.
    FUZZY = "近义匹配"

    # Resolved by a rule (lecture tier, month from file name, count mismatch).
    INFERRED = "人工推断"

    # Nothing in the catalog was close enough.
    UNMATCHED = "无法匹配"


class IssueKind(str, Enum):
    """Review categories for ExceptionRecord."""

    MISSING_NAME = "缺姓名"
    MONTH_INFERRED = "月份缺失"
    COUNT_MISMATCH = "不一致"
    ZERO_SIGNAL = "无效/空白"
    UNMATCHED = "未匹配"
    LOW_CONFIDENCE = "近义/推断"
    UNPARSEABLE = "无法解析"
    UNSUPPORTED = "暂不支持"


class StandardItem(BaseModel):
    """One priced catalog entry from the quantification sheet."""

    name: str = Field(..., min_length=1, description="Standard item name, e.g. '讲解'.")
    price: float = Field(..., ge=0, description="Unit price paid per occurrence.")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={"examples": [{"name": "讲解", "price": 50}]},
    )


class ReportField(BaseModel):
    """One labelled text block from a report table (column 0 label, collapsed value)."""

    label: str = ""
    value: str = ""

    model_config = ConfigDict(frozen=True)


class ReportInput(BaseModel):
    """One report as handed over by the table-extraction collaborator.

    Either `fields` are already collapsed, or `tables` carries the raw cell
    grid (tables -> rows -> cells) and ingest collapses the largest table.
    """

    file_name: str = ""
    fields: list[ReportField] = Field(default_factory=list)
    tables: Optional[list[list[list[str]]]] = None


class PersonName(BaseModel):
    """Canonical display name plus the note taken from a trailing （...）."""

    name: str = ""
    note: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class StandardMatch(BaseModel):
    """Outcome of matching one candidate text against the catalog."""

    name: str = Field(default="", description="Catalog name chosen; empty when unmatched.")
    mode: MatchMode
    score: float = Field(default=0.0, ge=0, le=1)
    op_note: Optional[str] = None
    candidates: list[str] = Field(
        default_factory=list,
        description="Top-3 catalog names with scores, formatted 'name(0.67)'.",
    )

    @property
    def is_matched(self) -> bool:
        return self.mode != MatchMode.UNMATCHED and bool(self.name)


class MatchedItem(BaseModel):
    """A priced, attributed line item.

    `amount` is derived from `count * unit_price` on every access and is
    included in serialized output; it is never stored independently.
    """

    month: str = ""
    person: str = ""
    person_note: Optional[str] = None
    standard_name: str
    count: int = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    source_text: str = ""
    match_mode: MatchMode
    op_note: Optional[str] = None
    candidates: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def amount(self) -> float:
        return round(self.count * self.unit_price, 2)


class ExceptionRecord(BaseModel):
    """A human-review record. Append-only diagnostics."""

    month: str = ""
    person: str = ""
    source_text: str = ""
    issue_kind: IssueKind
    suggestion: str = ""
    match_mode: MatchMode
    note: str = ""

    model_config = ConfigDict(frozen=True)

    def to_row(self) -> dict[str, str]:
        """Render as a row of the review table with reviewer-facing headers."""
        return {
            "月份": self.month,
            "姓名": self.person,
            "原文": self.source_text,
            "问题类型": self.issue_kind.value,
            "建议匹配项": self.suggestion,
            "匹配方式": self.match_mode.value,
            "操作说明": self.note,
        }


class ExtractionResult(BaseModel):
    """Everything extraction produced for one or more reports."""

    matched: list[MatchedItem] = Field(default_factory=list)
    exceptions: list[ExceptionRecord] = Field(default_factory=list)

    def extend(self, other: "ExtractionResult") -> None:
        self.matched.extend(other.matched)
        self.exceptions.extend(other.exceptions)


class PersonMonthAggregate(BaseModel):
    """All line items of one person in one month, folded together.

    Invariant: total == sum(amounts_by_item.values()) and the keys of
    counts_by_item / amounts_by_item are exactly standard_names.
    """

    month: str
    person: str
    standard_names: list[str] = Field(
        default_factory=list,
        description="Distinct standard item names in first-seen order.",
    )
    counts_by_item: dict[str, int] = Field(default_factory=dict)
    amounts_by_item: dict[str, float] = Field(default_factory=dict)
    total: float = 0.0
    notes: list[str] = Field(default_factory=list)


class AllocationRow(BaseModel):
    """Per-person payout before proxy allocation (summed across months)."""

    name: str
    raw: float = Field(..., ge=0)
    capped_pay: float = Field(..., ge=0)
    overflow: float = Field(..., ge=0)


class CollectorReceipt(BaseModel):
    source_person: str
    amount: float


class Collector(BaseModel):
    """A person with unused capacity. Mutated only inside one allocate() call."""

    name: str
    remaining_capacity: float
    received_from: list[CollectorReceipt] = Field(default_factory=list)

    @property
    def received_total(self) -> float:
        return round(sum(receipt.amount for receipt in self.received_from), 2)


class Transfer(BaseModel):
    """Money a collector holds on behalf of the overflowing earner."""

    from_collector: str
    to_original_earner: str
    amount: float = Field(..., ge=0)
    reason: str = "代收超出部分"

    def to_row(self) -> dict[str, object]:
        return {
            "转出人（代收人）": self.from_collector,
            "转入人（实际应得者）": self.to_original_earner,
            "转账金额": self.amount,
            "原因": self.reason,
            "备注": "",
        }


class AccountSummary(BaseModel):
    """Final figures for one account (one row of the allocation table)."""

    name: str
    raw: float
    capped_pay: float
    overflow: float
    proxy_detail: str = Field(
        default="",
        description="Sources this account collects for, formatted 'source/amount' joined by '；'.",
    )
    final_received: float
    remaining_capacity: float
    note: str = ""

    def to_row(self) -> dict[str, object]:
        return {
            "姓名（账户）": self.name,
            "原始应得金额": self.raw,
            "本人到账金额（≤800）": self.capped_pay,
            "超出部分": self.overflow,
            "代收来源明细": self.proxy_detail,
            "该账户最终到账金额（≤800）": self.final_received,
            "剩余容量": self.remaining_capacity,
            "备注": self.note,
        }


class AllocationResult(BaseModel):
    """Output of the allocation engine."""

    rows: list[AccountSummary] = Field(default_factory=list)
    transfers: list[Transfer] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    conservation_ok: bool = True


class SettlementRun(BaseModel):
    """Every intermediate result of one end-to-end settlement."""

    catalog: list[StandardItem] = Field(default_factory=list)
    extraction: ExtractionResult = Field(default_factory=ExtractionResult)
    aggregates: list[PersonMonthAggregate] = Field(default_factory=list)
    allocation: AllocationResult = Field(default_factory=AllocationResult)
