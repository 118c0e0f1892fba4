from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from .models import TransactionRecord

BASE_COLUMNS = ["date", "card_details", "order_number", "total_amount"]
FILE_PREFIX = "amazon-transactions"


def csv_escape(value: Any) -> str:
    """Quote only when the field holds a comma, quote or newline."""
    text = "" if value is None else str(value)
    if any(ch in text for ch in ',"\n'):
        return '"' + text.replace('"', '""') + '"'
    return text


def _join(fields: Sequence[Any]) -> str:
    return ",".join(csv_escape(field) for field in fields)


def build_csv(records: Sequence[TransactionRecord]) -> str:
    """Header plus one line per record, product columns padded to the widest row.

    Lines are joined with ``\\n`` and there is no trailing newline.
    """
    max_products = max((len(record.products) for record in records), default=0)
    header = BASE_COLUMNS + [f"product_{idx}" for idx in range(1, max_products + 1)]

    lines: List[str] = [_join(header)]
    for record in records:
        products = list(record.products) + [""] * (max_products - len(record.products))
        lines.append(_join([*record.composite_key, *products]))
    return "\n".join(lines)


def export_file_name(row_count: int, now: Optional[datetime] = None) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = moment.strftime("%Y-%m-%d-%H-%M-%S")
    return f"{FILE_PREFIX}-{row_count}-{stamp}.csv"
