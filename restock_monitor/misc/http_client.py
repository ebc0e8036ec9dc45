from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from restock_monitor.misc.browser_client import BrowserClient
from restock_monitor.misc.config_loader import MonitorSettings
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.retry_rate_limit import BackoffPolicy, DomainRateLimiter, should_retry_status

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


@dataclass(slots=True)
class FetchResult:
    ok: bool
    requested_url: str
    final_url: str
    status_code: int | None
    text: str
    tier: str
    elapsed_ms: int
    error: str | None = None


class HttpClient:
    """Direct HTTP with retry and per-host pacing, plus an optional headless-browser tier."""

    def __init__(self, settings: MonitorSettings) -> None:
        self.settings = settings
        self.logger = get_logger("http_client")

        http_cfg = settings.http
        retry_cfg = http_cfg.get("retry", {}) if isinstance(http_cfg.get("retry"), dict) else {}

        self.timeout = settings.page_timeout_seconds
        self.follow_redirects = bool(http_cfg.get("follow_redirects", True))
        self.verify_ssl = bool(http_cfg.get("verify_ssl", True))
        self.headers = {
            "User-Agent": settings.user_agent,
            "Accept": BROWSER_ACCEPT,
            "Accept-Language": str(http_cfg.get("accept_language", "en-US,en;q=0.5")),
            "Cache-Control": "no-cache",
        }

        self.backoff = BackoffPolicy(
            max_attempts=int(retry_cfg.get("max_attempts", 3)),
            base_delay_seconds=float(retry_cfg.get("base_delay_seconds", 1.2)),
            max_delay_seconds=float(retry_cfg.get("max_delay_seconds", 30)),
            jitter_seconds=float(retry_cfg.get("jitter_seconds", 0.4)),
        )
        self.ratelimit_cooldown_seconds = float(http_cfg.get("ratelimit_cooldown_seconds", 90))
        self.rate_limiter = DomainRateLimiter(min_interval_seconds=settings.probe_delay_seconds)

        self.browser = BrowserClient(
            enabled=settings.browser_fallback,
            user_agent=settings.user_agent,
            timeout_ms=int(http_cfg.get("browser_timeout_ms", 60000)),
        )

    def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        json_body: dict[str, Any] | None = None,
    ) -> FetchResult:
        start = time.perf_counter()
        headers = dict(self.headers)
        if json_body is not None:
            headers["Accept"] = "application/json"
        try:
            with httpx.Client(
                timeout=timeout,
                follow_redirects=self.follow_redirects,
                verify=self.verify_ssl,
                headers=headers,
            ) as client:
                response = client.request(method, url, json=json_body)

            elapsed = int((time.perf_counter() - start) * 1000)
            ok = response.status_code < 400
            return FetchResult(
                ok=ok,
                requested_url=url,
                final_url=str(response.url),
                status_code=response.status_code,
                text=response.text,
                tier="direct",
                elapsed_ms=elapsed,
                error=None if ok else f"status={response.status_code}",
            )
        except httpx.HTTPError as exc:
            elapsed = int((time.perf_counter() - start) * 1000)
            return FetchResult(
                ok=False,
                requested_url=url,
                final_url=url,
                status_code=None,
                text="",
                tier="direct",
                elapsed_ms=elapsed,
                error=f"{type(exc).__name__}: {exc}",
            )

    def _with_retries(
        self,
        method: str,
        url: str,
        timeout: float,
        max_attempts: int,
        json_body: dict[str, Any] | None = None,
    ) -> FetchResult:
        attempts = max(1, max_attempts)
        attempt = 0
        while True:
            attempt += 1
            self.rate_limiter.wait_for_slot(url)
            result = self._request(method, url, timeout, json_body=json_body)
            self.logger.info(
                "fetch %s attempt=%s url=%s status=%s elapsed_ms=%s",
                method,
                attempt,
                url,
                result.status_code,
                result.elapsed_ms,
            )
            if result.ok:
                return result
            if result.status_code is not None and not should_retry_status(result.status_code):
                return result
            if result.status_code == 429:
                self.rate_limiter.apply_cooldown(url, self.ratelimit_cooldown_seconds)
            if attempt >= attempts:
                return result
            time.sleep(self.backoff.delay_for_attempt(attempt))

    def get(
        self,
        url: str,
        timeout: float | None = None,
        max_attempts: int | None = None,
        allow_browser_fallback: bool = False,
    ) -> FetchResult:
        direct = self._with_retries(
            "GET",
            url,
            timeout=timeout or self.timeout,
            max_attempts=max_attempts or self.backoff.max_attempts,
        )
        if direct.ok or not allow_browser_fallback or not self.browser.enabled:
            return direct

        browser = self.browser.get(url)
        self.logger.info("fetch browser url=%s ok=%s status=%s", url, browser.ok, browser.status_code)
        if browser.ok and browser.body:
            return FetchResult(
                ok=True,
                requested_url=url,
                final_url=browser.final_url,
                status_code=browser.status_code,
                text=browser.body,
                tier="browser",
                elapsed_ms=0,
            )
        direct.error = browser.error or direct.error
        return direct

    def post_json(self, url: str, payload: dict[str, Any], timeout: float | None = None) -> FetchResult:
        return self._with_retries(
            "POST",
            url,
            timeout=timeout or self.timeout,
            max_attempts=self.backoff.max_attempts,
            json_body=payload,
        )
