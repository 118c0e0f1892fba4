"""Capability interface over the live transactions document.

The collector and extractor only talk to ``DocumentView``; ``PlaywrightDocument``
backs it with a Playwright page and tests back it with an in-memory tree.
Handles returned by ``query_all``, ``query_first`` and ``parent_of`` belong to
the caller until passed to ``release``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence

from playwright.async_api import ElementHandle, Page

# Extra pixels an element must overflow by before it counts as scrollable.
SCROLL_TOLERANCE_PX = 8


@dataclass(frozen=True)
class ScrollMetrics:
    overflow_y: str
    scroll_height: int
    client_height: int

    @property
    def can_scroll(self) -> bool:
        return self.overflow_y in {"auto", "scroll"} and (
            self.scroll_height > self.client_height + SCROLL_TOLERANCE_PX
        )


class DocumentView(Protocol):
    async def query_all(self, selector: str, root: Any = None) -> Sequence[Any]:
        ...

    async def query_first(self, selector: str, root: Any = None) -> Optional[Any]:
        ...

    async def query_texts(self, selector: str, root: Any = None) -> List[str]:
        """Text content of every match, in document order, without creating handles."""
        ...

    async def parent_of(self, handle: Any) -> Optional[Any]:
        """Parent element, or ``None`` once the walk reaches ``body``."""
        ...

    async def scroll_metrics(self, handle: Any) -> ScrollMetrics:
        ...

    async def scroll_to_bottom(self, handle: Any) -> None:
        """Advance ``handle`` to its bottom; ``None`` means the root scroller."""
        ...

    async def release(self, handles: Iterable[Any]) -> None:
        ...


async def resolve_scroll_container(document: DocumentView, seed: Any) -> Optional[Any]:
    """Walk up from ``seed`` to the first element that scrolls vertically.

    Returns ``None`` (the root scroller) when nothing on the way up qualifies.
    Ancestors passed over on the way are released; ``seed`` stays with the caller.
    """
    current = seed
    while current is not None:
        metrics = await document.scroll_metrics(current)
        if metrics.can_scroll:
            return current
        parent = await document.parent_of(current)
        if current is not seed:
            await document.release([current])
        current = parent
    return None


class PlaywrightDocument:
    def __init__(self, page: Page) -> None:
        self.page = page

    async def query_all(self, selector: str, root: ElementHandle | None = None) -> Sequence[ElementHandle]:
        scope = root if root is not None else self.page
        return await scope.query_selector_all(selector)

    async def query_first(self, selector: str, root: ElementHandle | None = None) -> ElementHandle | None:
        scope = root if root is not None else self.page
        return await scope.query_selector(selector)

    async def query_texts(self, selector: str, root: ElementHandle | None = None) -> List[str]:
        scope = root if root is not None else self.page
        return await scope.eval_on_selector_all(selector, "els => els.map(el => el.textContent || '')")

    async def parent_of(self, handle: ElementHandle) -> ElementHandle | None:
        parent = await handle.evaluate_handle(
            "el => (el.parentElement && el.parentElement !== document.body) ? el.parentElement : null"
        )
        element = parent.as_element()
        if element is None:
            await parent.dispose()
        return element

    async def scroll_metrics(self, handle: ElementHandle) -> ScrollMetrics:
        raw = await handle.evaluate(
            """el => {
                const style = window.getComputedStyle(el);
                return {
                    overflowY: style.overflowY,
                    scrollHeight: el.scrollHeight,
                    clientHeight: el.clientHeight,
                };
            }"""
        )
        return ScrollMetrics(
            overflow_y=str(raw.get("overflowY") or ""),
            scroll_height=int(raw.get("scrollHeight") or 0),
            client_height=int(raw.get("clientHeight") or 0),
        )

    async def scroll_to_bottom(self, handle: ElementHandle | None) -> None:
        if handle is None:
            await self.page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            return
        await handle.evaluate("el => { el.scrollTop = el.scrollHeight; }")

    async def release(self, handles: Iterable[ElementHandle]) -> None:
        for handle in handles:
            await handle.dispose()
