"""Loads monitor settings from an optional JSON file plus environment overrides."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from restock_monitor.misc.errors import ConfigError

DEFAULT_CONFIG_PATH = "config/config.json"
DEFAULT_PRODUCT_URL = "https://arcteryx.com/us/en/shop/bird-head-toque"
DEFAULT_PRODUCT_ID = "X000006756"
DEFAULT_PRODUCT_NAME = "Bird Head Toque"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
WEBHOOK_PLACEHOLDER = "YOUR_DISCORD_WEBHOOK_URL_HERE"

TRUTHY = {"1", "true", "yes", "on"}

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PRODUCT_URL": ("product", "url"),
    "PRODUCT_ID": ("product", "id"),
    "PRODUCT_NAME": ("product", "name"),
    "GRAPHQL_URL": ("product", "graphql_url"),
    "TRACKED_VARIANTS": ("product", "tracked_variants"),
    "CHECK_INTERVAL_MINUTES": ("monitor", "interval_minutes"),
    "SNAPSHOT_EVERY": ("monitor", "snapshot_every"),
    "STATE_PATH": ("monitor", "state_path"),
    "DISCORD_WEBHOOK_URL": ("discord", "webhook_url"),
    "DISCORD_BOT_TOKEN": ("discord", "bot_token"),
    "DISCORD_CHANNEL_ID": ("discord", "channel_id"),
    "ENABLE_COMMANDS": ("discord", "enable_commands"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "log_file"),
    "DEBUG": ("logging", "debug"),
}


def load_json(path: str | Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8-sig") as f:
        return json.load(f)


def dump_json(path: str | Path, payload: dict[str, Any]) -> None:
    """Write JSON through a temp file so readers never see a half-written document."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(target)


def load_config(config_path: str | Path = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load the config file, or an empty config when it does not exist."""
    if not Path(config_path).exists():
        return {}
    return load_json(config_path)


def coerce_positive_int(
    value: Any,
    default: int,
    minimum: int = 1,
    maximum: int | None = None,
) -> int:
    """Coerce a value to a bounded positive integer."""
    floor = max(1, int(minimum))
    fallback = max(floor, int(default))
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = fallback

    if parsed < floor:
        parsed = floor
    if maximum is not None:
        parsed = min(parsed, int(maximum))
    return parsed


def coerce_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in TRUTHY


def coerce_string_tuple(value: Any) -> tuple[str, ...]:
    """Accept a list or a comma separated string; blanks are dropped."""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        return ()
    return tuple(str(item).strip() for item in items if str(item).strip())


def apply_env_overrides(
    config: Mapping[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Return a copy of ``config`` with non-empty environment values layered on top."""
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, dict) else value for key, value in config.items()
    }
    for env_name, (section, key) in ENV_OVERRIDES.items():
        raw = str(env.get(env_name, "")).strip()
        if not raw:
            continue
        target = merged.setdefault(section, {})
        if isinstance(target, dict):
            target[key] = raw
    return merged


@dataclass(slots=True)
class MonitorSettings:
    """Resolved runtime settings for one monitored product."""

    product_url: str = DEFAULT_PRODUCT_URL
    product_id: str = DEFAULT_PRODUCT_ID
    product_name: str = DEFAULT_PRODUCT_NAME
    graphql_url: str = ""
    graphql_query: str = ""
    tracked_variants: tuple[str, ...] = ()
    variant_param: str = "color"
    interval_minutes: int = 5
    snapshot_every: int = 12
    state_path: str = ""
    webhook_url: str = ""
    bot_token: str = ""
    channel_id: str = ""
    enable_commands: bool = False
    command_poll_seconds: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    page_timeout_seconds: float = 30.0
    probe_timeout_seconds: float = 15.0
    probe_delay_seconds: float = 1.5
    probe_workers: int = 2
    browser_fallback: bool = False
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: str = ""
    http: dict[str, Any] = field(default_factory=dict)

    @property
    def interval_seconds(self) -> float:
        return float(self.interval_minutes * 60)

    @property
    def webhook_configured(self) -> bool:
        url = self.webhook_url.strip()
        return bool(url) and url != WEBHOOK_PLACEHOLDER

    @property
    def commands_enabled(self) -> bool:
        return self.enable_commands and bool(self.bot_token) and bool(self.channel_id)


def settings_from_config(config: Mapping[str, Any]) -> MonitorSettings:
    """Build settings from an already merged config mapping."""
    product = dict(config.get("product", {}) or {})
    monitor = dict(config.get("monitor", {}) or {})
    discord = dict(config.get("discord", {}) or {})
    logging_cfg = dict(config.get("logging", {}) or {})
    http_cfg = dict(config.get("http", {}) or {})

    level = str(logging_cfg.get("level", "INFO")).upper()
    if coerce_bool(logging_cfg.get("debug")):
        level = "DEBUG"

    return MonitorSettings(
        product_url=str(product.get("url") or DEFAULT_PRODUCT_URL).strip(),
        product_id=str(product.get("id") or DEFAULT_PRODUCT_ID).strip(),
        product_name=str(product.get("name") or DEFAULT_PRODUCT_NAME).strip(),
        graphql_url=str(product.get("graphql_url") or "").strip(),
        graphql_query=str(product.get("graphql_query") or "").strip(),
        tracked_variants=coerce_string_tuple(product.get("tracked_variants")),
        variant_param=str(product.get("variant_param") or "color").strip(),
        interval_minutes=coerce_positive_int(monitor.get("interval_minutes"), 5),
        snapshot_every=coerce_positive_int(monitor.get("snapshot_every"), 12),
        state_path=str(monitor.get("state_path") or "").strip(),
        webhook_url=str(discord.get("webhook_url") or "").strip(),
        bot_token=str(discord.get("bot_token") or "").strip(),
        channel_id=str(discord.get("channel_id") or "").strip(),
        enable_commands=coerce_bool(discord.get("enable_commands")),
        command_poll_seconds=float(discord.get("command_poll_seconds", 5.0)),
        user_agent=str(http_cfg.get("user_agent") or DEFAULT_USER_AGENT),
        page_timeout_seconds=float(http_cfg.get("timeout_seconds", 30)),
        probe_timeout_seconds=float(http_cfg.get("probe_timeout_seconds", 15)),
        probe_delay_seconds=float(http_cfg.get("probe_delay_seconds", 1.5)),
        probe_workers=coerce_positive_int(http_cfg.get("probe_workers"), 2, maximum=4),
        browser_fallback=coerce_bool(http_cfg.get("browser_fallback")),
        log_level=level,
        json_logs=coerce_bool(logging_cfg.get("json_logs")),
        log_file=str(logging_cfg.get("log_file") or "").strip(),
        http=http_cfg,
    )


def load_settings(
    config_path: str | Path = DEFAULT_CONFIG_PATH,
    environ: Mapping[str, str] | None = None,
) -> MonitorSettings:
    """Load the config file, layer the environment on top and resolve settings."""
    return settings_from_config(apply_env_overrides(load_config(config_path), environ))


def validate_settings(settings: MonitorSettings) -> None:
    """Raise ConfigError for misconfiguration that must stop startup."""
    if not settings.webhook_configured:
        raise ConfigError("DISCORD_WEBHOOK_URL is not configured")
    if not settings.product_url.startswith(("http://", "https://")):
        raise ConfigError(f"PRODUCT_URL is not an http(s) URL: {settings.product_url!r}")
