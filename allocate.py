"""
allocate.py - Capped payout settlement with proxy collectors.

Every account is paid at most `cap` (800 by default). A person earning more
keeps `cap` and the overflow is parked with collectors: people whose own
pay leaves room under the cap. Collectors listed in `priority_collectors`
are used first, in list order; everyone else follows by largest remaining
capacity.

    allocate(aggregates, priority_collectors, cap) -> AllocationResult

Warnings carry the audit trail: shortfalls, split overflows and the
conservation check (always emitted, pass or fail).
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from aggregate import person_totals
from logging_config import get_logger
from models import (
    AccountSummary,
    AllocationResult,
    AllocationRow,
    Collector,
    CollectorReceipt,
    PersonMonthAggregate,
    Transfer,
)
from normalize import round_money

logger = get_logger(__name__)

PAYOUT_CAP = 800.0
CONSERVATION_TOLERANCE = 0.01
CAPACITY_EPSILON = 0.0001
TRANSFER_REASON = "代收超出部分"
UNLISTED_RANK = math.inf


def build_rows(aggregates: Iterable[PersonMonthAggregate], cap: float = PAYOUT_CAP) -> list[AllocationRow]:
    """One row per person: raw total, capped pay and overflow."""
    rows = []
    for name, raw in person_totals(aggregates).items():
        rows.append(
            AllocationRow(
                name=name,
                raw=round_money(raw),
                capped_pay=round_money(min(cap, raw)),
                overflow=round_money(max(0.0, raw - cap)),
            )
        )
    return rows


def rank_collectors(collectors: Sequence[Collector], priority: dict[str, int]) -> list[Collector]:
    """Collectors with capacity left, listed ones first, then by capacity descending."""
    available = [collector for collector in collectors if collector.remaining_capacity > CAPACITY_EPSILON]
    return sorted(
        available,
        key=lambda collector: (priority.get(collector.name, UNLISTED_RANK), -collector.remaining_capacity),
    )


def merge_transfers(transfers: Iterable[Transfer]) -> list[Transfer]:
    """Sum transfers sharing (collector, earner, reason), keeping first-seen order."""
    merged: dict[tuple[str, str, str], float] = {}
    for transfer in transfers:
        key = (transfer.from_collector, transfer.to_original_earner, transfer.reason)
        merged[key] = round_money(merged.get(key, 0.0) + transfer.amount)
    return [
        Transfer(from_collector=collector, to_original_earner=earner, amount=amount, reason=reason)
        for (collector, earner, reason), amount in merged.items()
    ]


def allocate(
    aggregates: Iterable[PersonMonthAggregate],
    priority_collectors: Sequence[str] = (),
    cap: float = PAYOUT_CAP,
) -> AllocationResult:
    """Cap every payout and route overflow through proxy collectors."""
    rows = build_rows(aggregates, cap)

    collectors = [
        Collector(name=row.name, remaining_capacity=round_money(cap - row.capped_pay))
        for row in rows
        if row.capped_pay < cap
    ]
    by_name = {collector.name: collector for collector in collectors}

    # A repeated name keeps its first position.
    priority: dict[str, int] = {}
    for index, name in enumerate(priority_collectors):
        priority.setdefault(name, index)

    warnings: list[str] = []
    raw_transfers: list[Transfer] = []

    for source in rows:
        if source.overflow <= 0:
            continue

        remaining = source.overflow
        used: list[str] = []
        while remaining > CAPACITY_EPSILON:
            # Capacities changed after the previous draw, so rank again.
            ranked = rank_collectors(collectors, priority)
            if not ranked:
                break
            collector = ranked[0]
            give = round_money(min(collector.remaining_capacity, remaining))
            if give <= 0:
                break
            collector.remaining_capacity = round_money(collector.remaining_capacity - give)
            collector.received_from.append(CollectorReceipt(source_person=source.name, amount=give))
            remaining = round_money(remaining - give)
            if collector.name not in used:
                used.append(collector.name)
            raw_transfers.append(
                Transfer(
                    from_collector=collector.name,
                    to_original_earner=source.name,
                    amount=give,
                    reason=TRANSFER_REASON,
                )
            )
            logger.debug(
                "allocate_draw | source=%s | collector=%s | amount=%.2f | remaining=%.2f",
                source.name,
                collector.name,
                give,
                remaining,
            )

        if len(used) > 1:
            warnings.append(f"{source.name} 超出部分需多人代收（已拆分）：{'、'.join(used)}")

        if remaining > CAPACITY_EPSILON:
            extra_accounts = math.ceil(remaining / cap)
            warnings.append(
                f"容量不足：{source.name} 的超出部分仍有缺口 {remaining:.2f}，"
                f"需要新增代收账户数≈{extra_accounts}；后续超出来源已停止分配"
            )
            logger.warning(
                "allocate_shortfall | source=%s | gap=%.2f | extra_accounts=%s | action=stop",
                source.name,
                remaining,
                extra_accounts,
            )
            break

    transfers = merge_transfers(raw_transfers)

    summaries: list[AccountSummary] = []
    for row in rows:
        collector = by_name.get(row.name)
        received = collector.received_total if collector else 0.0
        final = round_money(row.capped_pay + received)
        detail = ""
        if collector:
            detail = "；".join(f"{receipt.source_person}/{receipt.amount:g}" for receipt in collector.received_from)
        summaries.append(
            AccountSummary(
                name=row.name,
                raw=row.raw,
                capped_pay=row.capped_pay,
                overflow=row.overflow,
                proxy_detail=detail,
                final_received=final,
                remaining_capacity=round_money(cap - final),
            )
        )

    total_raw = round_money(sum(row.raw for row in rows))
    total_final = round_money(sum(summary.final_received for summary in summaries))
    conservation_ok = abs(total_raw - total_final) <= CONSERVATION_TOLERANCE
    if conservation_ok:
        warnings.append(f"一致性校验通过：最终到账合计={total_final:.2f} = 原始应得合计={total_raw:.2f}")
    else:
        warnings.append(f"一致性校验失败：最终到账合计={total_final:.2f} ≠ 原始应得合计={total_raw:.2f}")
        logger.warning(
            "allocate_conservation_failed | total_raw=%.2f | total_final=%.2f | gap=%.2f",
            total_raw,
            total_final,
            round_money(total_raw - total_final),
        )

    logger.info(
        "allocate_complete | accounts=%s | collectors=%s | transfers=%s | warnings=%s | conservation_ok=%s",
        len(summaries),
        len(collectors),
        len(transfers),
        len(warnings),
        conservation_ok,
    )
    return AllocationResult(
        rows=summaries,
        transfers=transfers,
        warnings=warnings,
        conservation_ok=conservation_ok,
    )
