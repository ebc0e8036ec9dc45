from __future__ import annotations

import json

import pytest

from restock_monitor.misc.config_loader import MonitorSettings
from restock_monitor.misc.errors import ExtractionError
from restock_monitor.misc.http_client import FetchResult
from restock_monitor.misc.stock_state import Availability
from restock_monitor.others.monitor_cycle import MonitorCycle, filter_tracked
from restock_monitor.others.state_store import SnapshotStore
from restock_monitor.parsers.common import ColorVariant, ProductRecord

PRODUCT_URL = "https://shop.example.com/us/en/shop/bird-head-toque"


def _page(options: list[dict]) -> str:
    blob = json.dumps({"props": {"pageProps": {"product": {"analyticsName": "Toque", "colourOptions": options}}}})
    return f'<html><script id="__NEXT_DATA__" type="application/json">{blob}</script></html>'


def _ok(url: str, text: str) -> FetchResult:
    return FetchResult(
        ok=True, requested_url=url, final_url=url, status_code=200, text=text, tier="direct", elapsed_ms=3
    )


class ScriptedHttpClient:
    """Returns the next queued product page; probes answer from ``probe_bodies``."""

    def __init__(self, pages: list[str | None], probe_bodies: dict[str, str] | None = None) -> None:
        self.pages = list(pages)
        self.probe_bodies = probe_bodies or {}
        self.posts: list[dict] = []

    def get(self, url, timeout=None, max_attempts=None, allow_browser_fallback=False):  # noqa: ANN001, ARG002
        if "color=" in url:
            return _ok(url, self.probe_bodies.get(url.rsplit("color=", 1)[-1], ""))
        page = self.pages.pop(0)
        if page is None:
            return FetchResult(
                ok=False,
                requested_url=url,
                final_url=url,
                status_code=None,
                text="",
                tier="direct",
                elapsed_ms=30000,
                error="ConnectTimeout: timed out",
            )
        return _ok(url, page)

    def post_json(self, url, payload, timeout=None):  # noqa: ANN001, ARG002
        self.posts.append(payload)
        return FetchResult(
            ok=False,
            requested_url=url,
            final_url=url,
            status_code=500,
            text="",
            tier="direct",
            elapsed_ms=1,
            error="status=500",
        )


class RecordingSender:
    def __init__(self) -> None:
        self.restocks: list[list] = []
        self.snapshots: list = []
        self.errors: list[str] = []

    def send_restock_alert(self, events, product_name):  # noqa: ANN001, ARG002
        self.restocks.append(list(events))
        return True

    def send_inventory_snapshot(self, snapshot, product_name, known_variant_count=None):  # noqa: ANN001, ARG002
        self.snapshots.append(snapshot)
        return True

    def send_error_report(self, message, occurred_at=None):  # noqa: ANN001, ARG002
        self.errors.append(message)
        return True


def _cycle(client: ScriptedHttpClient, **overrides) -> tuple[MonitorCycle, RecordingSender, SnapshotStore]:
    settings = MonitorSettings(product_url=PRODUCT_URL, **overrides)
    sender = RecordingSender()
    store = SnapshotStore()
    return MonitorCycle(settings, client, sender, store), sender, store


def test_baseline_then_restock_is_alerted_once() -> None:
    client = ScriptedHttpClient(
        [
            _page([{"value": "A", "label": "Black", "available": True}, {"value": "B", "label": "Red", "available": False}]),
            _page([{"value": "A", "label": "Black", "available": True}, {"value": "B", "label": "Red", "available": True}]),
            _page([{"value": "A", "label": "Black", "available": True}, {"value": "B", "label": "Red", "available": True}]),
        ]
    )
    cycle, sender, store = _cycle(client)

    first = cycle.run()
    assert first.ok is True
    assert first.events == []
    assert sender.restocks == []
    assert store.current() is first.snapshot

    second = cycle.run()
    assert [event.variant_id for event in second.events] == ["B"]
    assert [[event.label for event in batch] for batch in sender.restocks] == [["Red"]]

    third = cycle.run()
    assert third.events == []
    assert len(sender.restocks) == 1
    assert cycle.stats.total_checks == 3
    assert cycle.stats.total_restocks == 1


def test_unknown_predecessor_does_not_alert() -> None:
    client = ScriptedHttpClient(
        [
            _page([{"value": "B", "label": "Red"}]),
            _page([{"value": "B", "label": "Red", "available": True}]),
        ],
        probe_bodies={"B": "<p>nothing conclusive</p>"},
    )
    cycle, sender, store = _cycle(client)

    assert cycle.run().snapshot.availability_of("B") is Availability.UNKNOWN
    assert cycle.run().events == []
    assert sender.restocks == []
    assert store.current().availability_of("B") is Availability.AVAILABLE


def test_fetch_failure_reports_and_keeps_previous_snapshot() -> None:
    client = ScriptedHttpClient([_page([{"value": "A", "label": "Black", "available": False}]), None])
    cycle, sender, store = _cycle(client)

    baseline = cycle.run().snapshot
    failed = cycle.run()

    assert failed.ok is False
    assert "ConnectTimeout" in (failed.error or "")
    assert store.current() is baseline
    assert len(sender.errors) == 1
    assert cycle.stats.errors == 1


def test_extraction_failure_is_cycle_aborting() -> None:
    client = ScriptedHttpClient(["<html><body>maintenance</body></html>"])
    cycle, sender, store = _cycle(client)

    result = cycle.run()

    assert result.ok is False
    assert "no-strategy-matched" in sender.errors[0]
    assert store.current() is None


def test_periodic_snapshot_every_n_checks() -> None:
    page = _page([{"value": "A", "label": "Black", "available": True}])
    client = ScriptedHttpClient([page, page, page, page])
    cycle, sender, _ = _cycle(client, snapshot_every=2)

    for _ in range(4):
        cycle.run()

    assert len(sender.snapshots) == 2


def test_structured_api_failure_falls_back_to_page() -> None:
    client = ScriptedHttpClient([_page([{"value": "A", "label": "Black", "available": True}])])
    cycle, _, _ = _cycle(client, graphql_url="https://shop.example.com/api/graphql")

    result = cycle.run()

    assert result.ok is True
    assert client.posts[0]["variables"]["url"] == PRODUCT_URL


def test_filter_tracked_matches_id_or_label() -> None:
    record = ProductRecord(
        product_id="P",
        product_name="Toque",
        variants=(ColorVariant("A", "Black"), ColorVariant("B", "Red"), ColorVariant("C", "Blue")),
        source="test",
    )
    assert filter_tracked(record, ()) is record
    assert [item.variant_id for item in filter_tracked(record, ("a", "Blue")).variants] == ["A", "C"]
    with pytest.raises(ExtractionError):
        filter_tracked(record, ("Z",))


class CrashingSender(RecordingSender):
    def send_restock_alert(self, events, product_name):  # noqa: ANN001, ARG002
        raise RuntimeError("webhook exploded")


def test_sender_crash_does_not_block_the_commit() -> None:
    client = ScriptedHttpClient(
        [
            _page([{"value": "B", "label": "Red", "available": False}]),
            _page([{"value": "B", "label": "Red", "available": True}]),
        ]
    )
    sender = CrashingSender()
    store = SnapshotStore()
    cycle = MonitorCycle(MonitorSettings(product_url=PRODUCT_URL), client, sender, store)

    cycle.run()
    second = cycle.run()

    assert second.ok is True
    assert [event.variant_id for event in second.events] == ["B"]
    assert store.current() is second.snapshot
    assert store.current().availability_of("B") is Availability.AVAILABLE
    assert cycle.stats.total_restocks == 1


def test_first_cycle_after_restart_is_a_baseline(tmp_path) -> None:
    path = tmp_path / "stock.json"
    first_process = MonitorCycle(
        MonitorSettings(product_url=PRODUCT_URL),
        ScriptedHttpClient([_page([{"value": "B", "label": "Red", "available": False}])]),
        RecordingSender(),
        SnapshotStore(path),
    )
    assert first_process.run().ok is True

    restarted_store = SnapshotStore(path)
    assert restarted_store.current() is None
    assert restarted_store.latest() is not None
    sender = RecordingSender()
    restarted = MonitorCycle(
        MonitorSettings(product_url=PRODUCT_URL),
        ScriptedHttpClient([_page([{"value": "B", "label": "Red", "available": True}])]),
        sender,
        restarted_store,
    )

    result = restarted.run()

    assert result.events == []
    assert sender.restocks == []
    assert restarted_store.current() is result.snapshot
