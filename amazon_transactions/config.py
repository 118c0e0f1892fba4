"""
Runtime configuration for the transactions exporter.

Values are read ONCE from the environment (a project-root ``.env`` is loaded
first; real environment variables win) into a frozen ``Config``. Every key has
a default, but malformed values fail early with ``ConfigError``.

To use a config value, import:

    from amazon_transactions.config import config

Do not call os.getenv from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from urllib.parse import urlsplit

from dotenv import load_dotenv


PKG_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PKG_ROOT.parent

load_dotenv(PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}

# Marketplaces whose transactions view shares the same markup.
SUPPORTED_HOST_SUFFIXES = (
    "amazon.com",
    "amazon.co.uk",
    "amazon.de",
    "amazon.fr",
    "amazon.it",
    "amazon.es",
    "amazon.ca",
    "amazon.co.jp",
)
DEFAULT_TRANSACTIONS_PATH = "/cpe/yourpayments/transactions"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be >= {minimum}; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    parts = urlsplit(stripped)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        message = f"Config key {key} must be an absolute http(s) URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _clean_path(value: str, *, key: str) -> str:
    stripped = value.strip()
    if not stripped.startswith("/"):
        message = f"Config key {key} must start with '/'; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def is_supported_transactions_url(url: str) -> bool:
    parts = urlsplit(url or "")
    host = (parts.hostname or "").lower()
    if not any(host == suffix or host.endswith("." + suffix) for suffix in SUPPORTED_HOST_SUFFIXES):
        return False
    return parts.path.startswith(DEFAULT_TRANSACTIONS_PATH)


@dataclass(slots=True, frozen=True)
class Config:
    amazon_base_url: str
    transactions_path: str
    max_transactions: int
    scroll_wait_ms: int
    stall_limit: int
    detail_fetch_delay_ms: int
    status_display_ms: int
    export_dir: str
    profile_dir: str
    headless: bool
    json_log_file: str

    @property
    def transactions_url(self) -> str:
        return f"{self.amazon_base_url}{self.transactions_path}"

    @classmethod
    def load_from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        env = os.environ if environ is None else environ

        def raw(key: str, default: str) -> str:
            value = env.get(key)
            if value is None or not value.strip():
                return default
            return value

        return cls(
            amazon_base_url=_clean_url(raw("AMAZON_BASE_URL", "https://www.amazon.com"), key="AMAZON_BASE_URL"),
            transactions_path=_clean_path(
                raw("AMAZON_TRANSACTIONS_PATH", DEFAULT_TRANSACTIONS_PATH), key="AMAZON_TRANSACTIONS_PATH"
            ),
            max_transactions=_parse_int(raw("MAX_TRANSACTIONS", "200"), key="MAX_TRANSACTIONS", minimum=1),
            scroll_wait_ms=_parse_int(raw("SCROLL_WAIT_MS", "900"), key="SCROLL_WAIT_MS"),
            stall_limit=_parse_int(raw("STALL_LIMIT", "8"), key="STALL_LIMIT", minimum=1),
            detail_fetch_delay_ms=_parse_int(raw("DETAIL_FETCH_DELAY_MS", "150"), key="DETAIL_FETCH_DELAY_MS"),
            status_display_ms=_parse_int(raw("STATUS_DISPLAY_MS", "1800"), key="STATUS_DISPLAY_MS"),
            export_dir=raw("EXPORT_DIR", str(PROJECT_ROOT / "exports")).strip(),
            profile_dir=raw("PROFILE_DIR", str(PROJECT_ROOT / "profiles" / "amazon")).strip(),
            headless=_parse_bool(raw("HEADLESS", "false"), key="HEADLESS"),
            json_log_file=raw("JSON_LOG_FILE", "").strip(),
        )


config = Config.load_from_env()
