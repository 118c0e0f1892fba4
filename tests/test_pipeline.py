import asyncio
import csv
import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from amazon_transactions.delivery import FileDelivery
from amazon_transactions.enricher import FetchResponse, order_details_url
from amazon_transactions.json_logger import JsonLogger
from amazon_transactions.pipeline import DONE, EMPTY, FAILED, IDLE, ExportRunner, ExportStatus, run_export
from amazon_transactions.settings import ExportSettings
from fake_document import FakeDocument, RecordingSleep, make_entry

ORIGIN = "https://www.amazon.com"
FIXED_NOW = datetime(2024, 1, 5, 13, 45, 7, tzinfo=timezone.utc)
ORDER_PAGE = """
<div data-component="itemTitle"><a class="a-link-normal" href="/dp/1">Widget</a></div>
<div data-component="itemTitle"><a class="a-link-normal" href="/dp/1">Widget</a></div>
<div data-component="itemTitle"><a class="a-link-normal" href="/dp/2">Gadget</a></div>
"""


def _settings(tmp_path: Path, **overrides) -> ExportSettings:
    values = dict(
        run_id="test",
        origin=ORIGIN,
        max_transactions=200,
        scroll_wait_ms=900,
        stall_limit=2,
        detail_fetch_delay_ms=150,
        status_display_ms=1800,
        export_dir=tmp_path,
    )
    values.update(overrides)
    return ExportSettings(**values)


class _Fetcher:
    def __init__(self, pages) -> None:
        self.pages = pages
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchResponse:
        self.calls.append(url)
        return FetchResponse(ok=True, status=200, body_text=self.pages.get(url, ""))


class _MemoryDelivery:
    def __init__(self) -> None:
        self.delivered: list[tuple[bytes, str]] = []

    def deliver(self, data: bytes, suggested_name: str) -> None:
        self.delivered.append((data, suggested_name))


class _BrokenDelivery:
    def deliver(self, data: bytes, suggested_name: str) -> None:
        raise OSError("disk full")


def _logger(stream=None) -> JsonLogger:
    return JsonLogger(run_id="test", stream=stream or io.StringIO(), log_file_path=None)


@pytest.mark.asyncio
async def test_run_export_end_to_end(tmp_path: Path) -> None:
    document = FakeDocument([[make_entry(order="A1", amount="$10.00"), make_entry(order="A1", amount="-$5.00")]])
    fetcher = _Fetcher({order_details_url(ORIGIN, "A1"): ORDER_PAGE})

    result = await run_export(
        settings=_settings(tmp_path),
        document=document,
        fetcher=fetcher,
        delivery=FileDelivery(tmp_path),
        logger=_logger(),
        sleep=RecordingSleep(),
        clock=lambda: FIXED_NOW,
    )

    assert result.phase == DONE
    assert result.rows == 2
    assert result.file_path == tmp_path / "amazon-transactions-2-2024-01-05-13-45-07.csv"
    assert len(fetcher.calls) == 1

    rows = list(csv.DictReader(io.StringIO(result.file_path.read_text(encoding="utf-8"))))
    assert [row["total_amount"] for row in rows] == ["10.00", "-5.00"]
    assert all((row["product_1"], row["product_2"]) == ("Widget", "Gadget") for row in rows)
    assert all(row["order_number"] == "A1" for row in rows)


@pytest.mark.asyncio
async def test_run_export_reports_status_sequence(tmp_path: Path) -> None:
    document = FakeDocument([[make_entry(order="A1")]])
    statuses: list[ExportStatus] = []

    async def on_status(status: ExportStatus) -> None:
        statuses.append(status)

    await run_export(
        settings=_settings(tmp_path, stall_limit=1),
        document=document,
        fetcher=_Fetcher({}),
        delivery=_MemoryDelivery(),
        logger=_logger(),
        on_status=on_status,
        sleep=RecordingSleep(),
    )

    assert [status.label for status in statuses] == [
        "Collecting",
        "Collecting: 1 found",
        "Collecting: 1 found",
        "Loading details: 0/1",
        "Loading details: 1/1",
        "Serializing",
        "Done: 1 exported",
        "Export 200 Txns CSV",
    ]
    assert statuses[-1].phase == IDLE


@pytest.mark.asyncio
async def test_run_export_without_records_delivers_nothing(tmp_path: Path) -> None:
    delivery = _MemoryDelivery()
    statuses: list[str] = []

    async def on_status(status: ExportStatus) -> None:
        statuses.append(status.label)

    result = await run_export(
        settings=_settings(tmp_path),
        document=FakeDocument([]),
        fetcher=_Fetcher({}),
        delivery=delivery,
        logger=_logger(),
        on_status=on_status,
        sleep=RecordingSleep(),
    )

    assert result.phase == EMPTY
    assert delivery.delivered == []
    assert "No records found" in statuses


@pytest.mark.asyncio
async def test_run_export_failure_is_reported_and_returns_to_idle(tmp_path: Path) -> None:
    stream = io.StringIO()
    runner = ExportRunner(
        settings=_settings(tmp_path, stall_limit=1),
        document=FakeDocument([[make_entry(order=None)]]),
        fetcher=_Fetcher({}),
        delivery=_BrokenDelivery(),
        logger=_logger(stream),
        sleep=RecordingSleep(),
    )

    result = await runner.trigger()

    assert result is not None
    assert result.phase == FAILED
    assert "disk full" in (result.error or "")
    assert runner.status.phase == IDLE
    assert not runner.running
    errors = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert any(event["status"] == "error" and event["message"] == "export failed" for event in errors)


@pytest.mark.asyncio
async def test_interactive_run_holds_terminal_label(tmp_path: Path) -> None:
    sleep = RecordingSleep()
    runner = ExportRunner(
        settings=_settings(tmp_path, status_display_ms=1600),
        document=FakeDocument([]),
        fetcher=_Fetcher({}),
        delivery=_MemoryDelivery(),
        logger=_logger(),
        interactive=True,
        sleep=sleep,
    )

    await runner.trigger()

    assert sleep.calls[-1] == 1.6


@pytest.mark.asyncio
async def test_second_trigger_during_run_is_ignored(tmp_path: Path) -> None:
    release = asyncio.Event()
    started = asyncio.Event()

    async def blocking_sleep(seconds: float) -> None:
        started.set()
        await release.wait()

    delivery = _MemoryDelivery()
    stream = io.StringIO()
    runner = ExportRunner(
        settings=_settings(tmp_path, stall_limit=1),
        document=FakeDocument([[make_entry(order=None)]]),
        fetcher=_Fetcher({}),
        delivery=delivery,
        logger=_logger(stream),
        sleep=blocking_sleep,
    )

    first = asyncio.create_task(runner.trigger())
    await started.wait()
    assert runner.running

    second = await runner.trigger()
    release.set()
    result = await first

    assert second is None
    assert result is not None and result.phase == DONE
    assert len(delivery.delivered) == 1
    events = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert any(event["message"] == "export already running" for event in events)


@pytest.mark.asyncio
async def test_failing_status_update_does_not_abort_the_run(tmp_path: Path) -> None:
    delivery = _MemoryDelivery()
    stream = io.StringIO()

    async def on_status(status: ExportStatus) -> None:
        if status.label.startswith("Done") or status.phase == IDLE:
            raise RuntimeError("Target page, context or browser has been closed")

    runner = ExportRunner(
        settings=_settings(tmp_path, stall_limit=1),
        document=FakeDocument([[make_entry(order=None)]]),
        fetcher=_Fetcher({}),
        delivery=delivery,
        logger=_logger(stream),
        on_status=on_status,
        sleep=RecordingSleep(),
    )

    result = await runner.trigger()

    assert result is not None and result.phase == DONE
    assert len(delivery.delivered) == 1
    assert runner.status.phase == IDLE
    assert not runner.running
    events = [json.loads(line) for line in stream.getvalue().splitlines()]
    warnings = [event for event in events if event["message"] == "status update failed"]
    assert [event["label"] for event in warnings] == ["Done: 1 exported", "Export 200 Txns CSV"]
    assert all(event["status"] == "warn" for event in warnings)


@pytest.mark.asyncio
async def test_run_export_uses_a_fresh_runner_each_time(tmp_path: Path) -> None:
    settings = _settings(tmp_path, stall_limit=1)
    delivery = _MemoryDelivery()

    for _ in range(2):
        result = await run_export(
            settings=settings,
            document=FakeDocument([[make_entry(order=None)]]),
            fetcher=_Fetcher({}),
            delivery=delivery,
            logger=_logger(),
            sleep=RecordingSleep(),
        )
        assert result.phase == DONE

    assert len(delivery.delivered) == 2
