"""One fetch -> extract -> resolve -> diff -> notify -> commit pass over the monitored product."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from restock_monitor.misc.config_loader import MonitorSettings
from restock_monitor.misc.discord_sender import DiscordSender
from restock_monitor.misc.errors import ExtractionError, FetchError
from restock_monitor.misc.http_client import FetchResult
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.stock_state import StockSnapshot, build_snapshot
from restock_monitor.others.restock_diff import RestockEvent, diff_snapshots, summarize_transitions
from restock_monitor.others.state_store import SnapshotStore
from restock_monitor.others.stock_checker import VariantResolver
from restock_monitor.parsers.common import ProductRecord
from restock_monitor.parsers.product_parser import extract_product

DEFAULT_GRAPHQL_QUERY = (
    "query Product($url: String!) { product(url: $url) { id name analyticsName "
    "colourOptions { options { value label hexCode available } } } }"
)


class PageClient(Protocol):
    def get(
        self,
        url: str,
        timeout: float | None = None,
        max_attempts: int | None = None,
        allow_browser_fallback: bool = False,
    ) -> FetchResult: ...

    def post_json(self, url: str, payload: dict[str, Any], timeout: float | None = None) -> FetchResult: ...


@dataclass(slots=True)
class MonitorStats:
    """Counters reported by the status command."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_checks: int = 0
    total_restocks: int = 0
    errors: int = 0
    last_check_at: datetime | None = None
    last_source: str = ""

    def uptime_text(self, now: datetime | None = None) -> str:
        minutes = int(((now or datetime.now(timezone.utc)) - self.started_at).total_seconds() // 60)
        return f"{minutes // 60}h {minutes % 60}m"


@dataclass(slots=True)
class CycleResult:
    """Outcome of one cycle, returned for logging and tests."""

    ok: bool
    snapshot: StockSnapshot | None = None
    events: list[RestockEvent] = field(default_factory=list)
    error: str | None = None


def filter_tracked(record: ProductRecord, tracked: tuple[str, ...]) -> ProductRecord:
    """Keep only the configured variant ids (matched on id or label, case-insensitive)."""
    if not tracked:
        return record
    wanted = {item.strip().lower() for item in tracked}
    kept = [
        variant
        for variant in record.variants
        if variant.variant_id.lower() in wanted or variant.label.lower() in wanted
    ]
    if not kept:
        raise ExtractionError(stage="no-tracked-variants", detail=",".join(tracked))
    return record.with_variants(kept)


class MonitorCycle:
    """Runs cycles against one product; the scheduler guarantees they never overlap."""

    def __init__(
        self,
        settings: MonitorSettings,
        http_client: PageClient,
        sender: DiscordSender,
        store: SnapshotStore,
        resolver: VariantResolver | None = None,
    ) -> None:
        self.settings = settings
        self.http_client = http_client
        self.sender = sender
        self.store = store
        self.resolver = resolver or VariantResolver(
            http_client=http_client,
            product_url=settings.product_url,
            probe_timeout=settings.probe_timeout_seconds,
            max_workers=settings.probe_workers,
            variant_param=settings.variant_param,
        )
        self.stats = MonitorStats()
        self.logger = get_logger("monitor_cycle")
        self._stats_lock = threading.Lock()

    def _extract_from(self, result: FetchResult) -> ProductRecord:
        if not result.ok:
            raise FetchError(result.requested_url, result.error or f"status={result.status_code}")
        self.logger.info(
            "payload loaded url=%s tier=%s size_kb=%s",
            result.final_url,
            result.tier,
            round(len(result.text) / 1024),
        )
        return extract_product(
            result.text,
            fallback_product_id=self.settings.product_id,
            fallback_name=self.settings.product_name,
        )

    def fetch_product(self) -> ProductRecord:
        """Fetch and extract the product; the structured API is preferred when configured."""
        if self.settings.graphql_url:
            payload = {
                "query": self.settings.graphql_query or DEFAULT_GRAPHQL_QUERY,
                "variables": {"url": self.settings.product_url, "id": self.settings.product_id},
            }
            try:
                return self._extract_from(
                    self.http_client.post_json(
                        self.settings.graphql_url, payload, timeout=self.settings.page_timeout_seconds
                    )
                )
            except (FetchError, ExtractionError) as exc:
                self.logger.warning("structured API unusable, falling back to page fetch: %s", exc)

        page = self.http_client.get(
            self.settings.product_url,
            timeout=self.settings.page_timeout_seconds,
            allow_browser_fallback=self.settings.browser_fallback,
        )
        return self._extract_from(page)

    def _log_summary(self, record: ProductRecord, snapshot: StockSnapshot) -> None:
        counts = snapshot.counts()
        self.logger.info(
            "summary product=%s source=%s available=%s unavailable=%s unknown=%s",
            record.product_name,
            record.source,
            counts["available"],
            counts["unavailable"],
            counts["unknown"],
        )
        for variant in record.variants:
            self.logger.debug("variant %s (%s) -> %s", variant.label, variant.variant_id, variant.availability.label)

    def run(self) -> CycleResult:
        """Execute one cycle; cycle-aborting errors are reported and nothing is committed."""
        with self._stats_lock:
            self.stats.total_checks += 1
            check_number = self.stats.total_checks
        self.logger.info("check #%s starting", check_number)

        try:
            record = filter_tracked(self.fetch_product(), self.settings.tracked_variants)
            self.logger.info(
                "product=%s variants=%s source=%s", record.product_name, len(record.variants), record.source
            )
            resolved = self.resolver.resolve(record)
            snapshot = build_snapshot(resolved)
            previous = self.store.current()
            events = diff_snapshots(previous, snapshot)
            transitions = summarize_transitions(previous, snapshot)
        except Exception as exc:  # noqa: BLE001
            return self._fail(exc)

        self._log_summary(resolved, snapshot)
        if previous is None:
            self.logger.info("baseline snapshot established, restock detection starts next cycle")
        else:
            self.logger.info("transitions %s", transitions)

        if events:
            self.logger.info("RESTOCK DETECTED variants=%s", [event.label for event in events])
            self._notify(self.sender.send_restock_alert, events, resolved.product_name)

        if check_number % self.settings.snapshot_every == 0:
            self.logger.info("sending periodic inventory snapshot")
            self._notify(
                self.sender.send_inventory_snapshot,
                snapshot,
                resolved.product_name,
                known_variant_count=len(self.store.known_variants) or None,
            )

        self.store.commit(snapshot)
        with self._stats_lock:
            self.stats.total_restocks += len(events)
            self.stats.last_check_at = snapshot.taken_at
            self.stats.last_source = resolved.source
        self.logger.info("check #%s complete, next in %s minutes", check_number, self.settings.interval_minutes)
        return CycleResult(ok=True, snapshot=snapshot, events=events)

    def _fail(self, exc: Exception) -> CycleResult:
        with self._stats_lock:
            self.stats.errors += 1
        if isinstance(exc, (FetchError, ExtractionError)):
            self.logger.error("cycle aborted: %s", exc)
        else:
            self.logger.exception("cycle crashed: %s", exc)
        self._notify(self.sender.send_error_report, str(exc))
        return CycleResult(ok=False, error=str(exc))

    def _notify(self, send: Callable[..., bool], *args: Any, **kwargs: Any) -> bool:
        """Delivery is best-effort; a failing sender never aborts the cycle or blocks the commit."""
        try:
            return send(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("notification failed: %s", exc)
            return False
