"""Text normalisation and field parsers for the transactions view."""
from __future__ import annotations

import re

MONTHS = {
    "Jan": "01",
    "Feb": "02",
    "Mar": "03",
    "Apr": "04",
    "May": "05",
    "Jun": "06",
    "Jul": "07",
    "Aug": "08",
    "Sep": "09",
    "Oct": "10",
    "Nov": "11",
    "Dec": "12",
}

CURRENCY_MARKER = r"(?:[$£€¥￥]|USD|GBP|EUR|CAD|JPY)"

DATE_PATTERN = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})$")
# Used to pick the amount element: a currency marker is mandatory here.
AMOUNT_PATTERN = re.compile(rf"[+-]?\s*{CURRENCY_MARKER}\s*\d[\d,]*(?:\.\d{{2}})?", re.I)
AMOUNT_VALUE_PATTERN = re.compile(rf"([+-]?)\s*{CURRENCY_MARKER}?\s*(\d[\d,]*(?:\.\d{{2}})?)", re.I)
ORDER_MARKER_PATTERN = re.compile(r"Order\s*#", re.I)
ORDER_NUMBER_PATTERN = re.compile(r"Order\s*#\s*([A-Za-z0-9-]+)", re.I)

_WHITESPACE = re.compile(r"\s+")


def normalize_space(value: str | None) -> str:
    return _WHITESPACE.sub(" ", value or "").strip()


def parse_date_to_iso(raw: str | None) -> str:
    """``"5 Jan 2024"`` -> ``"2024-01-05"``; anything else -> ``""``."""
    match = DATE_PATTERN.match(normalize_space(raw))
    if not match:
        return ""
    month = MONTHS.get(match.group(2))
    if not month:
        return ""
    day = f"{int(match.group(1)):02d}"
    return f"{match.group(3)}-{month}-{day}"


def parse_amount_value(raw: str | None) -> str:
    """Strip currency and thousands separators, keep the sign: ``"-$1,234.56"`` -> ``"-1234.56"``."""
    match = AMOUNT_VALUE_PATTERN.search(normalize_space(raw))
    if not match:
        return ""
    return f"{match.group(1)}{match.group(2).replace(',', '')}"


def parse_order_number(raw: str | None) -> str:
    match = ORDER_NUMBER_PATTERN.search(normalize_space(raw))
    return match.group(1) if match else ""
