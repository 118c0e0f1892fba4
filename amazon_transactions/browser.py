from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Awaitable, Callable

from playwright.async_api import BrowserContext, Page

from . import page_selectors as sel
from .config import DEFAULT_TRANSACTIONS_PATH
from .json_logger import JsonLogger, log_event

CHROMIUM_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]
NAV_TIMEOUT_MS = 90_000

_MOUNT_BUTTON_JS = """
([buttonId, label, binding, pathPrefix]) => {
  if (!window.location.pathname.startsWith(pathPrefix)) return;
  const mount = () => {
    if (document.getElementById(buttonId)) return;
    const button = document.createElement('button');
    button.id = buttonId;
    button.type = 'button';
    button.textContent = label;
    Object.assign(button.style, {
      position: 'fixed',
      right: '16px',
      bottom: '16px',
      zIndex: '2147483647',
      border: '1px solid #111',
      borderRadius: '8px',
      background: '#fff',
      color: '#111',
      fontSize: '13px',
      fontFamily: 'system-ui, sans-serif',
      fontWeight: '600',
      padding: '10px 12px',
      cursor: 'pointer',
    });
    button.addEventListener('click', () => {
      if (!button.disabled) window[binding]();
    });
    document.body.appendChild(button);
  };
  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', mount, { once: true });
  } else {
    mount();
  }
}
"""


async def launch_context(*, playwright: Any, profile_dir: Path, headless: bool, logger: JsonLogger) -> BrowserContext:
    """Persistent Chromium profile so the user's own signed-in session is reused."""
    profile_dir.mkdir(parents=True, exist_ok=True)
    log_event(
        logger=logger,
        phase="init",
        message="Launching Playwright with bundled Chromium",
        profile_dir=str(profile_dir),
        headless=headless,
    )
    return await playwright.chromium.launch_persistent_context(
        user_data_dir=str(profile_dir),
        headless=headless,
        args=CHROMIUM_ARGS,
    )


async def open_transactions_page(*, context: BrowserContext, url: str, logger: JsonLogger) -> Page:
    page = context.pages[0] if context.pages else await context.new_page()
    await page.goto(url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
    log_event(logger=logger, phase="init", message="transactions page opened", url=page.url)
    return page


class TriggerButton:
    """The single on-page affordance that starts an export."""

    def __init__(self, page: Page, *, label: str, path_prefix: str = DEFAULT_TRANSACTIONS_PATH) -> None:
        self.page = page
        self.label = label
        self.path_prefix = path_prefix

    async def install(self, on_click: Callable[[], Awaitable[None]]) -> None:
        async def _binding(_source: Any) -> None:
            await on_click()

        await self.page.expose_binding(sel.EXPORT_BINDING, _binding)
        mount_args = [sel.EXPORT_BUTTON_ID, self.label, sel.EXPORT_BINDING, self.path_prefix]
        # Re-mount after every navigation; mounting is idempotent per document.
        await self.page.add_init_script(script=f"({_MOUNT_BUTTON_JS})({json.dumps(mount_args)})")
        await self.page.evaluate(_MOUNT_BUTTON_JS, mount_args)

    async def set_label(self, text: str) -> None:
        await self.page.evaluate(
            "([buttonId, text]) => { const b = document.getElementById(buttonId); if (b) b.textContent = text; }",
            [sel.EXPORT_BUTTON_ID, text],
        )

    async def set_enabled(self, enabled: bool) -> None:
        await self.page.evaluate(
            "([buttonId, enabled]) => { const b = document.getElementById(buttonId); if (b) b.disabled = !enabled; }",
            [sel.EXPORT_BUTTON_ID, enabled],
        )
