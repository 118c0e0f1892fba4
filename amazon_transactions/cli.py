from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional, Set

from playwright.async_api import async_playwright

from .browser import TriggerButton, launch_context, open_transactions_page
from .config import is_supported_transactions_url
from .delivery import FileDelivery
from .document import PlaywrightDocument
from .enricher import PageFetcher
from .json_logger import JsonLogger, log_event, new_run_id
from .pipeline import FAILED, IDLE, ExportRunner, ExportStatus, run_export
from .settings import ExportSettings, load_settings, origin_of


def _settings_from_args(args: argparse.Namespace, *, run_id: str, headless: Optional[bool]) -> ExportSettings:
    return load_settings(
        run_id=run_id,
        max_transactions=args.max,
        transactions_url=args.url,
        headless=headless,
    )


async def _run_export_once(args: argparse.Namespace, logger: JsonLogger) -> int:
    settings = _settings_from_args(args, run_id=logger.run_id, headless=True if args.headless else None)
    async with async_playwright() as playwright:
        context = await launch_context(
            playwright=playwright,
            profile_dir=settings.profile_dir,
            headless=settings.headless,
            logger=logger,
        )
        try:
            page = await open_transactions_page(context=context, url=settings.transactions_url, logger=logger)
            if not is_supported_transactions_url(page.url):
                log_event(
                    logger=logger,
                    phase="init",
                    status="warn",
                    message="page is not a supported transactions view",
                    url=page.url,
                )
            settings.origin = origin_of(page.url) or settings.origin
            result = await run_export(
                settings=settings,
                document=PlaywrightDocument(page),
                fetcher=PageFetcher(page),
                delivery=FileDelivery(settings.export_dir, logger=logger),
                logger=logger,
            )
        finally:
            await context.close()
    return 1 if result.phase == FAILED else 0


def _export_task_done(task: asyncio.Task, tasks: Set[asyncio.Task], logger: JsonLogger) -> None:
    tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log_event(logger=logger, phase="trigger", status="error", message="export task crashed", exception=repr(exc))


async def _serve_button(args: argparse.Namespace, logger: JsonLogger) -> int:
    settings = _settings_from_args(args, run_id=logger.run_id, headless=False)
    tasks: Set[asyncio.Task] = set()

    async with async_playwright() as playwright:
        context = await launch_context(
            playwright=playwright,
            profile_dir=settings.profile_dir,
            headless=settings.headless,
            logger=logger,
        )
        try:
            page = await open_transactions_page(context=context, url=settings.transactions_url, logger=logger)
            button = TriggerButton(page, label=settings.idle_label)

            async def on_status(status: ExportStatus) -> None:
                await button.set_label(status.label)
                await button.set_enabled(status.phase == IDLE)

            runner = ExportRunner(
                settings=settings,
                document=PlaywrightDocument(page),
                fetcher=PageFetcher(page),
                delivery=FileDelivery(settings.export_dir, logger=logger),
                logger=logger,
                on_status=on_status,
                interactive=True,
            )

            async def on_click() -> None:
                if not is_supported_transactions_url(page.url):
                    log_event(logger=logger, phase="trigger", status="warn", message="ignored click outside transactions view", url=page.url)
                    return
                runner.settings.origin = origin_of(page.url) or runner.settings.origin
                task = asyncio.create_task(runner.trigger())
                tasks.add(task)
                task.add_done_callback(lambda done: _export_task_done(done, tasks, logger))

            await button.install(on_click)
            log_event(logger=logger, phase="trigger", message="export button installed", url=page.url)
            await page.wait_for_event("close", timeout=0)
        finally:
            for task in tasks:
                task.cancel()
            await context.close()
    return 0


async def _run_async(args: argparse.Namespace) -> int:
    with JsonLogger(run_id=args.run_id or new_run_id()) as logger:
        if args.command == "button":
            return await _serve_button(args, logger)
        return await _run_export_once(args, logger)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="amazon_transactions", description="Export Amazon transactions to CSV")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser("export", help="Open the transactions view, export once and exit")
    export_parser.add_argument("--headless", action="store_true", help="Run the browser headless")

    button_parser = subparsers.add_parser("button", help="Open a browser window with an export button")

    for sub in (export_parser, button_parser):
        sub.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")
        sub.add_argument("--max", dest="max", type=int, default=None, help="Maximum transactions to export")
        sub.add_argument("--url", dest="url", type=str, default=None, help="Transactions page URL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.max is not None and args.max < 1:
        parser.error("--max must be at least 1")
    return asyncio.run(_run_async(args))
