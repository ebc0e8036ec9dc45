"""Long-running restock monitor: polls one product and posts restock alerts to Discord."""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path

from restock_monitor.misc.config_loader import (
    DEFAULT_CONFIG_PATH,
    MonitorSettings,
    load_settings,
    validate_settings,
)
from restock_monitor.misc.discord_sender import DiscordSender
from restock_monitor.misc.errors import ConfigError
from restock_monitor.misc.http_client import HttpClient
from restock_monitor.misc.logger import get_logger, setup_logging
from restock_monitor.others.commands import CommandContext, DiscordCommandListener
from restock_monitor.others.monitor_cycle import MonitorCycle
from restock_monitor.others.scheduler import PollScheduler
from restock_monitor.others.state_store import SnapshotStore

EXIT_CONFIG_ERROR = 2


def _log_banner(settings: MonitorSettings) -> None:
    logger = get_logger("main")
    logger.info("=" * 60)
    logger.info("RESTOCK MONITOR")
    logger.info("product=%s", settings.product_url)
    logger.info("interval_minutes=%s", settings.interval_minutes)
    logger.info("webhook=%s", "configured" if settings.webhook_configured else "missing")
    logger.info("commands=%s", "enabled" if settings.commands_enabled else "disabled")
    if settings.tracked_variants:
        logger.info("tracked_variants=%s", ",".join(settings.tracked_variants))
    logger.info("=" * 60)


def build_monitor(settings: MonitorSettings) -> tuple[MonitorCycle, PollScheduler, DiscordSender]:
    sender = DiscordSender(
        settings.webhook_url,
        product_url=settings.product_url,
        variant_param=settings.variant_param,
    )
    store = SnapshotStore(Path(settings.state_path) if settings.state_path else None)
    cycle = MonitorCycle(settings=settings, http_client=HttpClient(settings), sender=sender, store=store)
    scheduler = PollScheduler(cycle.run, interval_seconds=settings.interval_seconds)
    return cycle, scheduler, sender


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the JSON config file")
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    setup_logging(level=settings.log_level, json_logs=settings.json_logs, log_file=settings.log_file or None)
    logger = get_logger("main")

    try:
        validate_settings(settings)
    except ConfigError as exc:
        logger.error("fatal configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    _log_banner(settings)
    cycle, scheduler, sender = build_monitor(settings)

    listener: DiscordCommandListener | None = None
    if settings.commands_enabled:
        listener = DiscordCommandListener(
            settings.bot_token,
            settings.channel_id,
            CommandContext(cycle=cycle, scheduler=scheduler, sender=sender),
            poll_seconds=settings.command_poll_seconds,
        )
        listener.start()
    else:
        logger.info("Discord commands disabled")

    stop_reason = {"text": "Process exited"}

    def _handle_signal(signum: int, _frame: object) -> None:
        name = signal.Signals(signum).name
        logger.warning("received %s, finishing current check before exit", name)
        stop_reason["text"] = "Manual shutdown" if signum == signal.SIGINT else "Shutdown signal"
        scheduler.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.run_forever(max_cycles=1 if args.once else None)

    if listener is not None:
        listener.stop()
    # A command-triggered check may still be running on the listener thread.
    scheduler.wait_idle()
    if not args.once:
        sender.send_monitor_stopped(stop_reason["text"])
    logger.info("monitor stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
