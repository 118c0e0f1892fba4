from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from .config import config


@dataclass
class ExportSettings:
    run_id: str
    origin: str = field(default_factory=lambda: config.amazon_base_url)
    transactions_url: str = field(default_factory=lambda: config.transactions_url)
    max_transactions: int = field(default_factory=lambda: config.max_transactions)
    scroll_wait_ms: int = field(default_factory=lambda: config.scroll_wait_ms)
    stall_limit: int = field(default_factory=lambda: config.stall_limit)
    detail_fetch_delay_ms: int = field(default_factory=lambda: config.detail_fetch_delay_ms)
    status_display_ms: int = field(default_factory=lambda: config.status_display_ms)
    export_dir: Path = field(default_factory=lambda: Path(config.export_dir))
    profile_dir: Path = field(default_factory=lambda: Path(config.profile_dir))
    headless: bool = field(default_factory=lambda: config.headless)

    @property
    def idle_label(self) -> str:
        return f"Export {self.max_transactions} Txns CSV"


def origin_of(url: str) -> Optional[str]:
    parts = urlsplit(url or "")
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def load_settings(
    *,
    run_id: str,
    max_transactions: Optional[int] = None,
    transactions_url: Optional[str] = None,
    headless: Optional[bool] = None,
) -> ExportSettings:
    settings = ExportSettings(run_id=run_id)
    if max_transactions is not None:
        if max_transactions < 1:
            raise ValueError("max_transactions must be at least 1")
        settings.max_transactions = max_transactions
    if transactions_url:
        origin = origin_of(transactions_url)
        if origin is None:
            raise ValueError(f"Not an absolute http(s) URL: {transactions_url!r}")
        settings.transactions_url = transactions_url
        settings.origin = origin
    if headless is not None:
        settings.headless = headless
    return settings
