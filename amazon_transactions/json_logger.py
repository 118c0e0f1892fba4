"""NDJSON run events: one line per event, stamped with ``run_id`` and ``ts``."""
from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Iterator, List, Optional

__all__ = ["JsonLogger", "log_event", "timed_event", "new_run_id"]


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


def _configured_log_file() -> Optional[str]:
    from amazon_transactions.config import config

    return config.json_log_file or None


_FROM_CONFIG = object()


class JsonLogger:
    """Writes each event to ``stream`` and, when configured, appends it to a file.

    ``log_file_path`` defaults to ``JSON_LOG_FILE``; pass ``None`` to keep
    events on the stream only.
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: Optional[IO[str]] = None,
        *,
        log_file_path: Any = _FROM_CONFIG,
    ) -> None:
        self.run_id = run_id or new_run_id()
        self._sinks: List[IO[str]] = [stream or sys.stdout]
        self._log_file: Optional[IO[str]] = None
        raw_path = _configured_log_file() if log_file_path is _FROM_CONFIG else log_file_path
        if raw_path:
            path = Path(raw_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = path.open("a", encoding="utf-8")
            self._sinks.append(self._log_file)
        self.closed = False

    def __enter__(self) -> "JsonLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def info(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        if self.closed:
            return
        event = {
            "run_id": self.run_id,
            "ts": datetime.now(timezone.utc).isoformat(),
            "phase": phase,
            "status": status,
            "message": message,
            **fields,
        }
        line = json.dumps(event, default=str, ensure_ascii=False) + "\n"
        for sink in self._sinks:
            sink.write(line)
            sink.flush()

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
    logger.info(phase=phase, status=status, message=message, **fields)


@contextmanager
def timed_event(*, logger: JsonLogger, phase: str, message: str = "", **fields: Any) -> Iterator[None]:
    """Log ``message`` with ``duration_ms`` once the block finishes; failures are logged and re-raised."""
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            phase=phase,
            message=f"{message} failed: {exc}",
            duration_ms=int((time.perf_counter() - start) * 1000),
            exception=repr(exc),
            **fields,
        )
        raise
    logger.info(phase=phase, message=message, duration_ms=int((time.perf_counter() - start) * 1000), **fields)
