from __future__ import annotations

from datetime import datetime, timezone

import httpx

from restock_monitor.misc import discord_sender as discord_module
from restock_monitor.misc.discord_sender import (
    COLOR_BLUE,
    COLOR_GREEN,
    COLOR_RED,
    DiscordSender,
    EmbedField,
    build_embed,
)
from restock_monitor.misc.stock_state import Availability, StockSnapshot
from restock_monitor.others.restock_diff import RestockEvent

WEBHOOK = "https://discord.com/api/webhooks/1/abc"
PRODUCT_URL = "https://shop.example.com/shop/bird-head-toque"


def _capture(monkeypatch, sender: DiscordSender) -> list[dict]:
    payloads: list[dict] = []
    monkeypatch.setattr(sender, "_post", lambda payload: payloads.append(payload))
    return payloads


def _sender(**kwargs) -> DiscordSender:
    return DiscordSender(WEBHOOK, product_url=PRODUCT_URL, min_send_interval=0, **kwargs)


def test_build_embed_shape_and_truncation() -> None:
    when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    embed = build_embed("Title", "Body", 123, [EmbedField("n", "v" * 2000, inline=True)], timestamp=when)
    assert embed["title"] == "Title"
    assert embed["color"] == 123
    assert embed["timestamp"] == when.isoformat()
    assert embed["fields"][0]["inline"] is True
    assert len(embed["fields"][0]["value"]) == 1024


def test_restock_alert_has_one_field_per_event(monkeypatch) -> None:
    sender = _sender()
    payloads = _capture(monkeypatch, sender)
    now = datetime.now(timezone.utc)
    events = [RestockEvent("24", "Black", now), RestockEvent("25", "Forage", now)]

    assert sender.send_restock_alert(events, "Bird Head Toque") is True

    embed = payloads[0]["embeds"][0]
    assert embed["color"] == COLOR_GREEN
    assert "Bird Head Toque" in embed["title"]
    assert "**2** colors" in embed["description"]
    assert [field["name"] for field in embed["fields"]] == ["🟢 Black", "🟢 Forage"]
    assert f"{PRODUCT_URL}?color=25" in embed["fields"][1]["value"]


def test_inventory_snapshot_lists_all_states(monkeypatch) -> None:
    sender = _sender()
    payloads = _capture(monkeypatch, sender)
    snapshot = StockSnapshot(
        taken_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        states=(("A", Availability.AVAILABLE), ("B", Availability.UNAVAILABLE), ("C", Availability.UNKNOWN)),
        labels={"A": "Black", "B": "Red", "C": "Blue"},
    )

    sender.send_inventory_snapshot(snapshot, "Toque", known_variant_count=4)

    embed = payloads[0]["embeds"][0]
    assert embed["color"] == COLOR_BLUE
    fields = {field["name"]: field["value"] for field in embed["fields"]}
    assert fields["🟢 In Stock (1)"] == "✅ Black"
    assert fields["⭕ Out of Stock (1)"] == "🔴 Red"
    assert fields["⚪ Unknown (1)"] == "⚪ Blue"
    assert fields["🔍 Total Colors"] == "4 variants tracked"


def test_error_report(monkeypatch) -> None:
    sender = _sender()
    payloads = _capture(monkeypatch, sender)
    sender.send_error_report("upstream down")
    embed = payloads[0]["embeds"][0]
    assert embed["color"] == COLOR_RED
    assert embed["description"] == "Error: upstream down"
    assert embed["fields"][0]["name"] == "Time"


def test_disabled_sender_skips_without_posting(monkeypatch) -> None:
    sender = DiscordSender("")
    payloads = _capture(monkeypatch, sender)
    assert sender.send_error_report("x") is False
    assert payloads == []


def test_failures_are_logged_not_raised(monkeypatch) -> None:
    sender = _sender(max_retries=2)
    monkeypatch.setattr(discord_module.time, "sleep", lambda seconds: None)
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(503, request=request)

    real_client = httpx.Client
    monkeypatch.setattr(
        discord_module.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    assert sender.send_embed("t", "d", COLOR_RED) is False
    assert len(attempts) == 2


def test_rate_limit_honours_retry_after(monkeypatch) -> None:
    sender = _sender(max_retries=3)
    sleeps: list[float] = []
    monkeypatch.setattr(discord_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    responses = iter(
        [
            lambda request: httpx.Response(429, json={"retry_after": 2.5}, request=request),
            lambda request: httpx.Response(204, request=request),
        ]
    )

    real_client = httpx.Client
    monkeypatch.setattr(
        discord_module.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda req: next(responses)(req)), **kwargs),
    )

    assert sender.send_embed("t", "d", COLOR_GREEN) is True
    assert 2.5 in sleeps


def test_legacy_discordapp_domain_is_rewritten() -> None:
    assert DiscordSender("https://discordapp.com/api/webhooks/1/x").config.webhook_url.startswith(
        "https://discord.com/"
    )


def test_rate_limit_body_without_retry_after_still_retries(monkeypatch) -> None:
    sender = _sender(max_retries=2)
    sleeps: list[float] = []
    monkeypatch.setattr(discord_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    responses = iter(
        [
            lambda request: httpx.Response(429, json=[], request=request),
            lambda request: httpx.Response(204, request=request),
        ]
    )

    real_client = httpx.Client
    monkeypatch.setattr(
        discord_module.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda req: next(responses)(req)), **kwargs),
    )

    assert sender.send_embed("t", "d", COLOR_GREEN) is True
    assert sleeps == [1.0]


def test_unexpected_send_errors_are_reported_as_false(monkeypatch) -> None:
    sender = _sender()

    def explode(payload):  # noqa: ANN001, ARG001
        raise httpx.InvalidURL("bad webhook url")

    monkeypatch.setattr(sender, "_post", explode)

    assert sender.send_restock_alert([RestockEvent("24", "Black", datetime.now(timezone.utc))], "Toque") is False
