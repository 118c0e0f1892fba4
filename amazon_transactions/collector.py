"""Scroll-driven collection of transactions from the lazily loaded list."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from . import page_selectors as sel
from .document import DocumentView, resolve_scroll_container
from .extractor import extract_transaction
from .json_logger import JsonLogger, log_event
from .models import CompositeKey, TransactionRecord

SCANNING = "scanning"
COMPLETE = "complete"
STALLED = "stalled"

DEFAULT_MAX_TRANSACTIONS = 200
DEFAULT_SCROLL_WAIT_MS = 900
DEFAULT_STALL_LIMIT = 8

ProgressCallback = Callable[[int], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class CollectResult:
    records: List[TransactionRecord] = field(default_factory=list)
    state: str = SCANNING
    iterations: int = 0


async def collect_transactions(
    *,
    document: DocumentView,
    logger: JsonLogger,
    max_count: int = DEFAULT_MAX_TRANSACTIONS,
    scroll_wait_ms: int = DEFAULT_SCROLL_WAIT_MS,
    stall_limit: int = DEFAULT_STALL_LIMIT,
    on_progress: Optional[ProgressCallback] = None,
    sleep: Sleep = asyncio.sleep,
) -> CollectResult:
    """Scroll until ``max_count`` unique records are found or the list stops growing.

    Records are deduplicated on their composite key and returned in the order
    they were first seen. Hitting ``stall_limit`` idle polls is a normal end
    of list, not an error.
    """
    result = CollectResult()
    seen: Set[CompositeKey] = set()

    seed = await document.query_first(sel.TRANSACTION_ENTRY)
    scroller = await resolve_scroll_container(document, seed)
    if seed is not None and seed is not scroller:
        await document.release([seed])
    log_event(
        logger=logger,
        phase="collect",
        message="scroll container resolved",
        root_scroller=scroller is None,
        max_count=max_count,
        stall_limit=stall_limit,
    )

    stall_count = 0
    last_count = 0
    try:
        while result.state == SCANNING:
            result.iterations += 1

            entries = await document.query_all(sel.TRANSACTION_ENTRY)
            try:
                for entry in entries:
                    record = await extract_transaction(document, entry)
                    if record is None:
                        continue
                    key = record.composite_key
                    if key in seen:
                        continue
                    seen.add(key)
                    result.records.append(record)
                    if len(result.records) >= max_count:
                        break
            finally:
                await document.release(entries)

            found = len(result.records)
            if found == last_count:
                stall_count += 1
            else:
                stall_count = 0
                last_count = found

            log_event(
                logger=logger,
                phase="collect",
                message="scan iteration",
                iteration=result.iterations,
                found=found,
                stall_count=stall_count,
            )
            if on_progress is not None:
                await on_progress(found)

            if found >= max_count:
                result.state = COMPLETE
            elif stall_count >= stall_limit:
                result.state = STALLED
            else:
                await document.scroll_to_bottom(scroller)
                await sleep(scroll_wait_ms / 1000)
    finally:
        if scroller is not None:
            await document.release([scroller])

    result.records = result.records[:max_count]
    log_event(
        logger=logger,
        phase="collect",
        message=f"collection {result.state}",
        found=len(result.records),
        iterations=result.iterations,
    )
    return result
