from __future__ import annotations

from dataclasses import dataclass

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from restock_monitor.misc.logger import get_logger


@dataclass(slots=True)
class BrowserFetchResult:
    ok: bool
    status_code: int | None
    final_url: str
    body: str
    error: str | None = None


class BrowserClient:
    """Headless Chromium fallback for product pages that only render their data client-side."""

    def __init__(
        self,
        enabled: bool,
        user_agent: str,
        headless: bool = True,
        timeout_ms: int = 60000,
        wait_until: str = "networkidle",
    ) -> None:
        self.enabled = enabled
        self.user_agent = user_agent
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.wait_until = wait_until
        self.logger = get_logger("browser_client")

    def get(self, url: str) -> BrowserFetchResult:
        if not self.enabled:
            return BrowserFetchResult(ok=False, status_code=None, final_url=url, body="", error="browser-disabled")

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless)
                try:
                    page = browser.new_page(user_agent=self.user_agent)
                    response = page.goto(url, timeout=self.timeout_ms, wait_until=self.wait_until)
                    body = page.content()
                    return BrowserFetchResult(
                        ok=True,
                        status_code=response.status if response else None,
                        final_url=page.url,
                        body=body,
                    )
                finally:
                    browser.close()
        except PlaywrightError as exc:
            self.logger.warning("browser fetch failed url=%s error=%s", url, exc)
            return BrowserFetchResult(ok=False, status_code=None, final_url=url, body="", error=str(exc))
