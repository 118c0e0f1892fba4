"""Scroll-collect Amazon payment transactions, enrich them with order items and export CSV."""

from typing import Any

__all__ = ["run_export"]


def __getattr__(name: str) -> Any:
    if name == "run_export":
        from amazon_transactions.pipeline import run_export as _run_export

        return _run_export
    raise AttributeError(name)
