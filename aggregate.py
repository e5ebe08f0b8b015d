"""
aggregate.py - Fold priced line items into per-person totals.

    aggregate(matched)            -> one PersonMonthAggregate per (month, person)
    person_totals(aggregates)     -> per-person totals across months

Both are pure and deterministic. Items without a month or a person are
left out; extraction has already recorded why.
"""

from __future__ import annotations

from typing import Iterable

from logging_config import get_logger
from models import MatchedItem, PersonMonthAggregate
from normalize import round_money

logger = get_logger(__name__)


def aggregate(matched: Iterable[MatchedItem]) -> list[PersonMonthAggregate]:
    """Group line items by (month, person), sorted by month then person."""
    groups: dict[tuple[str, str], PersonMonthAggregate] = {}
    skipped = 0

    for item in matched:
        if not item.person or not item.month:
            skipped += 1
            continue
        key = (item.month, item.person)
        group = groups.get(key)
        if group is None:
            group = PersonMonthAggregate(month=item.month, person=item.person)
            groups[key] = group

        name = item.standard_name
        if name not in group.counts_by_item:
            group.standard_names.append(name)
        group.counts_by_item[name] = group.counts_by_item.get(name, 0) + item.count
        group.amounts_by_item[name] = round_money(group.amounts_by_item.get(name, 0.0) + item.amount)
        group.total = round_money(group.total + item.amount)
        if item.person_note:
            group.notes.append(item.person_note)

    if skipped:
        logger.warning("aggregate_skipped | items=%s | reason='empty month or person'", skipped)

    result = sorted(groups.values(), key=lambda group: (group.month, group.person))
    logger.info("aggregate_complete | groups=%s", len(result))
    return result


def person_totals(aggregates: Iterable[PersonMonthAggregate]) -> dict[str, float]:
    """Sum each person's totals across months, in order of first appearance."""
    totals: dict[str, float] = {}
    for group in aggregates:
        totals[group.person] = round_money(totals.get(group.person, 0.0) + group.total)
    return totals
