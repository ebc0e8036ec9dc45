"""Handles formatting and sending monitor notifications as Discord webhook embeds."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx

from restock_monitor.misc.errors import NotificationError
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.stock_state import StockSnapshot
from restock_monitor.misc.url_normalizer import DEFAULT_VARIANT_PARAM, variant_url

if TYPE_CHECKING:
    from restock_monitor.others.restock_diff import RestockEvent

COLOR_GREEN = 3066993
COLOR_BLUE = 3447003
COLOR_RED = 15158332
COLOR_BLURPLE = 5814783

FIELD_VALUE_LIMIT = 1024
MAX_FIELDS = 25
FOOTER_TEXT = "Restock Monitor"


@dataclass(slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name[:256] or "\u200b",
            "value": self.value[:FIELD_VALUE_LIMIT] or "\u200b",
            "inline": self.inline,
        }


@dataclass(slots=True)
class DiscordConfig:
    """Webhook target plus retry and pacing limits."""

    enabled: bool
    webhook_url: str
    max_retries: int = 3
    base_retry_delay: float = 1.0
    min_send_interval: float = 1.0
    timeout_seconds: float = 20.0


def build_embed(
    title: str,
    description: str,
    color: int,
    fields: Sequence[EmbedField] = (),
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    """Render one embed in the shape Discord's webhook endpoint expects."""
    return {
        "title": title[:256],
        "description": description[:4096],
        "color": color,
        "fields": [item.to_payload() for item in list(fields)[:MAX_FIELDS]],
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        "footer": {"text": FOOTER_TEXT},
    }


def _retry_after_seconds(response: httpx.Response, default: float) -> float:
    """Read ``retry_after`` from a 429 body; any other body shape falls back to ``default``."""
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    try:
        return float(body.get("retry_after", default))
    except (TypeError, ValueError):
        return default


def _bullet_list(labels: Sequence[str], icon: str, empty: str) -> str:
    if not labels:
        return empty
    return "\n".join(f"{icon} {label}" for label in labels)


class DiscordSender:
    """Discord webhook sender with throttling and retry on rate limits."""

    def __init__(
        self,
        webhook_url: str,
        product_url: str = "",
        variant_param: str = DEFAULT_VARIANT_PARAM,
        max_retries: int = 3,
        min_send_interval: float = 1.0,
    ) -> None:
        url = (webhook_url or "").strip().replace("discordapp.com", "discord.com")
        self.config = DiscordConfig(
            enabled=bool(url),
            webhook_url=url,
            max_retries=max(1, int(max_retries)),
            min_send_interval=float(min_send_interval),
        )
        self.product_url = product_url
        self.variant_param = variant_param
        self.logger = get_logger("discord")
        self._last_send_time: float = 0.0

    def _throttle(self) -> None:
        elapsed = time.monotonic() - self._last_send_time
        if elapsed < self.config.min_send_interval:
            time.sleep(self.config.min_send_interval - elapsed)

    def _post(self, payload: dict[str, Any]) -> None:
        """POST one webhook payload, retrying 429 and 5xx; raises NotificationError when it gives up."""
        last_error = "no-attempt"
        for attempt in range(1, self.config.max_retries + 1):
            try:
                with httpx.Client(timeout=self.config.timeout_seconds) as client:
                    response = client.post(self.config.webhook_url, json=payload)
            except httpx.HTTPError as exc:
                last_error = str(exc)
                self.logger.warning(
                    "Discord send failed, attempt %s/%s: %s", attempt, self.config.max_retries, exc
                )
                time.sleep(self.config.base_retry_delay * (2 ** (attempt - 1)))
                continue

            if response.status_code == 429:
                retry_after = self.config.base_retry_delay * (2 ** (attempt - 1))
                retry_after = max(retry_after, _retry_after_seconds(response, retry_after))
                last_error = "rate-limited"
                self.logger.warning(
                    "Discord rate limited (429), attempt %s/%s, retrying in %.1fs",
                    attempt,
                    self.config.max_retries,
                    retry_after,
                )
                time.sleep(retry_after)
                continue

            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                time.sleep(self.config.base_retry_delay * (2 ** (attempt - 1)))
                continue

            if response.status_code >= 400:
                raise NotificationError(f"Discord rejected webhook (HTTP {response.status_code})")
            return

        raise NotificationError(f"Discord send failed after {self.config.max_retries} attempts: {last_error}")

    def send_embed(
        self,
        title: str,
        description: str,
        color: int,
        fields: Sequence[EmbedField] = (),
    ) -> bool:
        """Best-effort delivery: failures are logged and reported as False, never raised."""
        embed = build_embed(title, description, color, fields)
        if not self.config.enabled:
            self.logger.info("Discord disabled, skipping message: %s", title)
            return False

        self._throttle()
        try:
            self._post({"embeds": [embed]})
        except NotificationError as exc:
            self.logger.error("%s", exc)
            return False
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("Discord send crashed: %s", exc)
            return False
        finally:
            self._last_send_time = time.monotonic()
        self.logger.info("Discord notification sent: %s", title)
        return True

    def send_restock_alert(self, events: Sequence[RestockEvent], product_name: str) -> bool:
        if not events:
            return False
        fields = []
        for event in events:
            value = "**IN STOCK!**"
            if self.product_url:
                link = variant_url(self.product_url, event.variant_id, self.variant_param)
                value = f"{value}\n[Buy Now]({link})"
            fields.append(EmbedField(name=f"🟢 {event.label}", value=value, inline=True))
        plural = "s" if len(events) > 1 else ""
        return self.send_embed(
            title=f"🎉 RESTOCK ALERT - {product_name}",
            description=f"**{len(events)}** color{plural} just restocked! 🔥",
            color=COLOR_GREEN,
            fields=fields,
        )

    def send_inventory_snapshot(
        self,
        snapshot: StockSnapshot,
        product_name: str,
        known_variant_count: int | None = None,
    ) -> bool:
        available = [snapshot.label_of(key) for key in snapshot.available]
        unavailable = [snapshot.label_of(key) for key in snapshot.unavailable]
        unknown = [snapshot.label_of(key) for key in snapshot.unknown]
        tracked = known_variant_count if known_variant_count is not None else len(snapshot.states)

        fields = [
            EmbedField(
                name=f"🟢 In Stock ({len(available)})",
                value=_bullet_list(available, "✅", "❌ None currently"),
            ),
            EmbedField(
                name=f"⭕ Out of Stock ({len(unavailable)})",
                value=_bullet_list(unavailable, "🔴", "✅ All colors available!"),
            ),
        ]
        if unknown:
            fields.append(EmbedField(name=f"⚪ Unknown ({len(unknown)})", value=_bullet_list(unknown, "⚪", "")))
        fields.extend(
            [
                EmbedField(name="🔍 Total Colors", value=f"{tracked} variants tracked", inline=True),
                EmbedField(
                    name="⏰ Last Updated",
                    value=snapshot.taken_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
                    inline=True,
                ),
            ]
        )
        return self.send_embed(
            title="📊 Complete Inventory Snapshot",
            description=f"Current status of {product_name}",
            color=COLOR_BLUE,
            fields=fields,
        )

    def send_error_report(self, message: str, occurred_at: datetime | None = None) -> bool:
        when = occurred_at or datetime.now(timezone.utc)
        return self.send_embed(
            title="⚠️ Monitor Error",
            description=f"Error: {message}",
            color=COLOR_RED,
            fields=[EmbedField(name="Time", value=when.strftime("%Y-%m-%d %H:%M:%S %Z").strip())],
        )

    def send_monitor_stopped(self, reason: str) -> bool:
        return self.send_embed(title="🔴 Monitor Stopped", description=reason, color=COLOR_RED)
