"""Collect -> enrich -> serialize -> deliver, behind a single-flight trigger."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from .collector import collect_transactions
from .csv_export import build_csv, export_file_name
from .document import DocumentView
from .enricher import Fetcher, enrich_with_products, iter_order_numbers
from .json_logger import JsonLogger, log_event, timed_event
from .settings import ExportSettings

IDLE = "idle"
COLLECTING = "collecting"
ENRICHING = "enriching"
SERIALIZING = "serializing"
DONE = "done"
EMPTY = "empty"
FAILED = "failed"


@dataclass(frozen=True)
class ExportStatus:
    phase: str
    label: str


@dataclass
class ExportResult:
    phase: str
    rows: int = 0
    file_path: Optional[Path] = None
    collect_state: Optional[str] = None
    error: Optional[str] = None


class Delivery(Protocol):
    def deliver(self, data: bytes, suggested_name: str) -> Any:
        ...


StatusCallback = Callable[[ExportStatus], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExportRunner:
    """Holds the export state so a second trigger during a run is ignored.

    ``on_status`` receives every status change (e.g. to relabel the page
    button). ``interactive`` keeps the terminal label up for
    ``status_display_ms`` before returning to idle.
    """

    def __init__(
        self,
        *,
        settings: ExportSettings,
        document: DocumentView,
        fetcher: Fetcher,
        delivery: Delivery,
        logger: JsonLogger,
        on_status: Optional[StatusCallback] = None,
        interactive: bool = False,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.settings = settings
        self.document = document
        self.fetcher = fetcher
        self.delivery = delivery
        self.logger = logger
        self.on_status = on_status
        self.interactive = interactive
        self.sleep = sleep
        self.clock = clock
        self.status = ExportStatus(phase=IDLE, label=settings.idle_label)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def _set_status(self, phase: str, label: str) -> None:
        self.status = ExportStatus(phase=phase, label=label)
        if self.on_status is None:
            return
        # A label that cannot be drawn must not change the outcome of the run.
        try:
            await self.on_status(self.status)
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="trigger",
                status="warn",
                message="status update failed",
                label=label,
                exception=repr(exc),
            )

    async def trigger(self) -> Optional[ExportResult]:
        """Start a run unless one is in flight; a busy runner returns ``None``."""
        if self._running:
            log_event(logger=self.logger, phase="trigger", status="warn", message="export already running")
            return None
        return await self.run()

    async def run(self) -> ExportResult:
        self._running = True
        try:
            result = await self._run()
            if self.interactive:
                await self.sleep(self.settings.status_display_ms / 1000)
            return result
        finally:
            self._running = False
            await self._set_status(IDLE, self.settings.idle_label)

    async def _on_collect_progress(self, found: int) -> None:
        await self._set_status(COLLECTING, f"Collecting: {found} found")

    async def _on_enrich_progress(self, done: int, total: int) -> None:
        await self._set_status(ENRICHING, f"Loading details: {done}/{total}")

    async def _run(self) -> ExportResult:
        settings = self.settings
        log_event(
            logger=self.logger,
            phase="orchestrator",
            message="export start",
            max_transactions=settings.max_transactions,
            origin=settings.origin,
        )
        try:
            await self._set_status(COLLECTING, "Collecting")
            with timed_event(logger=self.logger, phase="collect", message="collect transactions"):
                collected = await collect_transactions(
                    document=self.document,
                    logger=self.logger,
                    max_count=settings.max_transactions,
                    scroll_wait_ms=settings.scroll_wait_ms,
                    stall_limit=settings.stall_limit,
                    on_progress=self._on_collect_progress,
                    sleep=self.sleep,
                )
            records = collected.records
            if not records:
                await self._set_status(EMPTY, "No records found")
                log_event(logger=self.logger, phase="orchestrator", status="warn", message="no transactions found")
                return ExportResult(phase=EMPTY, collect_state=collected.state)

            await self._set_status(ENRICHING, f"Loading details: 0/{len(list(iter_order_numbers(records)))}")
            with timed_event(logger=self.logger, phase="enrich", message="load order details"):
                enriched = await enrich_with_products(
                    records,
                    fetcher=self.fetcher,
                    origin=settings.origin,
                    logger=self.logger,
                    delay_ms=settings.detail_fetch_delay_ms,
                    on_progress=self._on_enrich_progress,
                    sleep=self.sleep,
                )

            await self._set_status(SERIALIZING, "Serializing")
            csv_text = build_csv(enriched)
            file_name = export_file_name(len(enriched), self.clock())
            delivered = self.delivery.deliver(csv_text.encode("utf-8"), file_name)
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="orchestrator",
                status="error",
                message="export failed",
                exception=repr(exc),
            )
            await self._set_status(FAILED, "Failed")
            return ExportResult(phase=FAILED, error=repr(exc))

        await self._set_status(DONE, f"Done: {len(enriched)} exported")
        log_event(
            logger=self.logger,
            phase="orchestrator",
            message="export complete",
            rows=len(enriched),
            file_name=file_name,
            collect_state=collected.state,
        )
        return ExportResult(
            phase=DONE,
            rows=len(enriched),
            file_path=delivered if isinstance(delivered, Path) else None,
            collect_state=collected.state,
        )


async def run_export(
    *,
    settings: ExportSettings,
    document: DocumentView,
    fetcher: Fetcher,
    delivery: Delivery,
    logger: JsonLogger,
    **kwargs: Any,
) -> ExportResult:
    runner = ExportRunner(
        settings=settings,
        document=document,
        fetcher=fetcher,
        delivery=delivery,
        logger=logger,
        **kwargs,
    )
    return await runner.run()
