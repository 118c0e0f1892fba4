"""Per-order product enrichment from the order details page."""
from __future__ import annotations

import asyncio
import html
import re
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence
from urllib.parse import quote

from playwright.async_api import Page

from . import page_selectors as sel
from .json_logger import JsonLogger, log_event
from .models import TransactionRecord
from .parsers import normalize_space

DEFAULT_DETAIL_FETCH_DELAY_MS = 150
DETAIL_FETCH_TIMEOUT_MS = 60_000

ProgressCallback = Callable[[int, int], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]

_ITEM_TITLE_OPEN = re.compile(
    rf"<(?P<tag>[a-zA-Z][\w-]*)\b[^>]*\bdata-component\s*=\s*[\"']{sel.ITEM_TITLE_COMPONENT}[\"'][^>]*>",
    re.I,
)
_ANCHOR = re.compile(r"<a\b(?P<attrs>[^>]*)>(?P<body>.*?)</a\s*>", re.I | re.S)
_ATTR = re.compile(r"\b(?P<name>[\w-]+)\s*=\s*(?P<quote>[\"'])(?P<value>.*?)(?P=quote)", re.S)
_TAG = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class FetchResponse:
    ok: bool
    status: int
    body_text: str


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResponse:
        ...


class OrderDetailsError(RuntimeError):
    def __init__(self, order_number: str, status: int) -> None:
        super().__init__(f"order details for {order_number} returned HTTP {status}")
        self.order_number = order_number
        self.status = status


class PageFetcher:
    """GET through the browser context so the signed-in cookies go along."""

    def __init__(self, page: Page, *, timeout_ms: int = DETAIL_FETCH_TIMEOUT_MS) -> None:
        self.page = page
        self.timeout_ms = timeout_ms

    async def fetch(self, url: str) -> FetchResponse:
        response = await self.page.request.get(url, timeout=self.timeout_ms)
        return FetchResponse(ok=response.ok, status=response.status, body_text=await response.text())


def order_details_url(origin: str, order_number: str) -> str:
    return f"{origin.rstrip('/')}{sel.ORDER_DETAILS_PATH}?orderID={quote(order_number, safe='')}"


def _strip_tags(value: str) -> str:
    return normalize_space(html.unescape(_TAG.sub("", value)))


def _attrs(raw: str) -> Dict[str, str]:
    return {m.group("name").lower(): html.unescape(m.group("value")) for m in _ATTR.finditer(raw)}


def _has_class(attrs: Dict[str, str], name: str) -> bool:
    return name in attrs.get("class", "").split()


def _inner_html(markup: str, opening: re.Match) -> str:
    tag = re.escape(opening.group("tag"))
    depth = 1
    for match in re.finditer(rf"<(/?){tag}\b[^>]*?(/?)>", markup[opening.end():], re.I):
        if match.group(1):
            depth -= 1
            if depth == 0:
                return markup[opening.end(): opening.end() + match.start()]
        elif not match.group(2):
            depth += 1
    return markup[opening.end():]


def _dedupe(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def parse_products_from_order_html(markup: str) -> List[str]:
    """Line-item titles from an order details page, first occurrence order.

    Item-title components are preferred; older layouts only expose product
    links (``/dp/``), so those are the fallback.
    """
    primary: List[str] = []
    for opening in _ITEM_TITLE_OPEN.finditer(markup):
        for anchor in _ANCHOR.finditer(_inner_html(markup, opening)):
            if not _has_class(_attrs(anchor.group("attrs")), sel.PRODUCT_LINK_CLASS):
                continue
            title = _strip_tags(anchor.group("body"))
            if title:
                primary.append(title)
    if primary:
        return _dedupe(primary)

    fallback: List[str] = []
    for anchor in _ANCHOR.finditer(markup):
        attrs = _attrs(anchor.group("attrs"))
        if not _has_class(attrs, sel.PRODUCT_LINK_CLASS) or sel.PRODUCT_HREF_MARKER not in attrs.get("href", ""):
            continue
        title = _strip_tags(anchor.group("body"))
        if len(title) > 2:
            fallback.append(title)
    return _dedupe(fallback)


def iter_order_numbers(records: Iterable[TransactionRecord]) -> Iterator[str]:
    """Distinct non-empty order numbers in first-seen order."""
    seen = set()
    for record in records:
        if record.order_number and record.order_number not in seen:
            seen.add(record.order_number)
            yield record.order_number


async def fetch_order_products(*, fetcher: Fetcher, origin: str, order_number: str) -> List[str]:
    if not order_number:
        return []
    response = await fetcher.fetch(order_details_url(origin, order_number))
    if not response.ok:
        raise OrderDetailsError(order_number, response.status)
    return parse_products_from_order_html(response.body_text)


async def enrich_with_products(
    records: Sequence[TransactionRecord],
    *,
    fetcher: Fetcher,
    origin: str,
    logger: JsonLogger,
    delay_ms: int = DEFAULT_DETAIL_FETCH_DELAY_MS,
    on_progress: Optional[ProgressCallback] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[TransactionRecord]:
    """Fetch each order once, one at a time, and attach its products.

    A failed order gets an empty product list; it never aborts the run.
    """
    order_numbers = list(iter_order_numbers(records))
    total = len(order_numbers)
    cache: Dict[str, List[str]] = {}

    for done, order_number in enumerate(order_numbers, start=1):
        try:
            cache[order_number] = await fetch_order_products(
                fetcher=fetcher, origin=origin, order_number=order_number
            )
        except Exception as exc:
            log_event(
                logger=logger,
                phase="enrich",
                status="warn",
                message="order details fetch failed",
                order_number=order_number,
                status_code=getattr(exc, "status", None),
                error=str(exc),
            )
            cache[order_number] = []
        if on_progress is not None:
            await on_progress(done, total)
        await sleep(delay_ms / 1000)

    log_event(
        logger=logger,
        phase="enrich",
        message="order details loaded",
        orders=total,
        orders_with_products=sum(1 for products in cache.values() if products),
    )
    return [replace(record, products=list(cache.get(record.order_number, []))) for record in records]
