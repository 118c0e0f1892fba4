from __future__ import annotations

from typing import Any, List, Optional

from . import page_selectors as sel
from .document import DocumentView
from .models import TransactionRecord
from .parsers import (
    AMOUNT_PATTERN,
    ORDER_MARKER_PATTERN,
    normalize_space,
    parse_amount_value,
    parse_date_to_iso,
    parse_order_number,
)


async def _texts(document: DocumentView, row: Any, selector: str) -> List[str]:
    return [normalize_space(text) for text in await document.query_texts(selector, root=row)]


async def _first_text(document: DocumentView, row: Any, selector: str) -> str:
    texts = await _texts(document, row, selector)
    return texts[0] if texts else ""


async def extract_transaction(document: DocumentView, entry: Any) -> Optional[TransactionRecord]:
    """Build a record from one rendered entry, or ``None`` for non-transaction rows.

    Headers and injected promos share the list markup, so missing fields are
    expected and never raise. ``entry`` stays with the caller.
    """
    wrapper = await document.query_first(sel.TRANSACTION_CONTENT, root=entry)
    row = wrapper if wrapper is not None else entry
    try:
        date = parse_date_to_iso(await _first_text(document, row, sel.PRIMARY_TEXT))

        # The page renders name, prefix and digits side by side without separators.
        card_details = "".join(
            [
                await _first_text(document, row, sel.METHOD_NAME),
                await _first_text(document, row, sel.METHOD_PREFIX),
                await _first_text(document, row, sel.METHOD_NUMBER),
            ]
        )

        texts = await _texts(document, row, sel.TEXT_CANDIDATES)
    finally:
        if wrapper is not None:
            await document.release([wrapper])

    order_text = next((text for text in texts if ORDER_MARKER_PATTERN.search(text)), "")
    order_number = parse_order_number(order_text)

    total_amount = ""
    for text in texts:
        match = AMOUNT_PATTERN.search(text)
        if match:
            total_amount = parse_amount_value(match.group(0))
            break

    record = TransactionRecord(
        date=date,
        card_details=card_details,
        order_number=order_number,
        total_amount=total_amount,
    )
    if record.is_blank():
        return None
    return record
