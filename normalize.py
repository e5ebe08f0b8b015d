"""
normalize.py - Pure text utilities used by extraction.

    cn_to_int(token)        -> int | None   (digits or small Chinese numerals)
    normalize_name(raw)     -> PersonName   (strip honorifics, keep （note）)
    parse_month(text)       -> str | None   ("12月", "2025年12月", "12")
    round_money(value)      -> float        (2-decimal rounding for amounts)

Design principles:
    - Pure transformations, no I/O
    - Invalid input degrades to a neutral result, never an exception
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

from logging_config import get_logger
from models import PersonName

logger = get_logger(__name__)

CN_DIGITS: dict[str, int] = {
    "零": 0,
    "一": 1,
    "二": 2,
    "两": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
    "十": 10,
    "百": 100,
    "千": 1000,
    "万": 10000,
}

_DIGIT_CLASS = "[一二两三四五六七八九]"
_TEN_PLUS = re.compile(rf"^十({_DIGIT_CLASS})$")
_N_TENS = re.compile(rf"^({_DIGIT_CLASS})十$")
_N_TENS_PLUS = re.compile(rf"^({_DIGIT_CLASS})十({_DIGIT_CLASS})$")

NAME_SUFFIXES = re.compile(r"(同学|同學|老师|老師|同事)\s*$")
NAME_NOTE = re.compile(r"^(.*?)（(.*)）\s*$")

MONTH_WITH_UNIT = re.compile(r"(\d{1,2})\s*月")
MONTH_BARE = re.compile(r"^\s*(\d{1,2})\s*$")
MONTH_WITH_YEAR = re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月")


def cn_to_int(token: Optional[str]) -> Optional[int]:
    """Convert a digit string or a small Chinese numeral to an int.

    Only magnitudes realistic for monthly activity counts are supported.
    Returns None for anything unrecognized and for a zero result.
    """
    if token is None:
        return None
    s = str(token).strip()
    if not s:
        return None
    if s.isascii() and s.isdigit():
        return int(s)

    if s == "十":
        return 10
    match = _TEN_PLUS.match(s)
    if match:
        return 10 + CN_DIGITS[match.group(1)]
    match = _N_TENS.match(s)
    if match:
        return CN_DIGITS[match.group(1)] * 10
    match = _N_TENS_PLUS.match(s)
    if match:
        return CN_DIGITS[match.group(1)] * 10 + CN_DIGITS[match.group(2)]

    # Positional fallback: magnitudes multiply the pending digit, digits append by place.
    total = 0
    current = 0
    for char in s:
        value = CN_DIGITS.get(char)
        if value is None:
            logger.debug("cn_to_int | unrecognized_char=%r | raw=%r", char, token)
            return None
        if value >= 10:
            if current == 0:
                current = 1
            total += current * value
            current = 0
        else:
            current = current * 10 + value
    total += current
    return total or None


def normalize_name(raw: Optional[str]) -> PersonName:
    """Normalize a raw name cell into a display name and an optional note."""
    text = "" if raw is None else str(raw).strip()
    if not text:
        return PersonName(name="")

    note: Optional[str] = None
    main = text
    bracket = NAME_NOTE.match(text)
    if bracket:
        main = bracket.group(1).strip()
        note = bracket.group(2).strip() or None

    main = NAME_SUFFIXES.sub("", main).strip()
    main = re.sub(r"\s+", "", main)

    logger.debug("normalize_name | raw=%r | name=%r | note=%r", raw, main, note)
    return PersonName(name=main, note=note)


def parse_month(text: Optional[str]) -> Optional[str]:
    """Pull a month number out of free text, returned without leading zeros."""
    if not text:
        return None
    match = MONTH_WITH_UNIT.search(text)
    if match:
        return str(int(match.group(1)))
    match = MONTH_BARE.match(text)
    if match:
        return str(int(match.group(1)))
    match = MONTH_WITH_YEAR.search(text)
    if match:
        return str(int(match.group(2)))
    return None


def round_money(value: Any) -> float:
    """Round a monetary value to 2 decimals; non-finite input becomes 0.0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("round_money | parse_failed | raw=%r | fallback=0.0", value)
        return 0.0
    if not math.isfinite(number):
        logger.warning("round_money | non_finite=%r | fallback=0.0", value)
        return 0.0
    return round(number, 2)
