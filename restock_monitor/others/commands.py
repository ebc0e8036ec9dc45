"""Chat command dispatch table and the Discord channel poller that feeds it."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from restock_monitor.misc.discord_sender import COLOR_BLURPLE, DiscordSender, EmbedField
from restock_monitor.misc.logger import get_logger
from restock_monitor.others.monitor_cycle import MonitorCycle
from restock_monitor.others.scheduler import PollScheduler

DISCORD_API_BASE = "https://discord.com/api/v10"
COMMAND_PREFIX = "!"


@dataclass(slots=True)
class CommandContext:
    """Collaborators a command may read; commands never mutate the snapshot store."""

    cycle: MonitorCycle
    scheduler: PollScheduler
    sender: DiscordSender


class Command(Protocol):
    name: str
    help_text: str

    def __call__(self, ctx: CommandContext) -> bool: ...


@dataclass(slots=True)
class SimpleCommand:
    name: str
    help_text: str
    handler: Callable[[CommandContext], bool]

    def __call__(self, ctx: CommandContext) -> bool:
        return self.handler(ctx)


def _status(ctx: CommandContext) -> bool:
    stats = ctx.cycle.stats
    return ctx.sender.send_embed(
        title="📊 Status",
        description="Running",
        color=COLOR_BLURPLE,
        fields=[
            EmbedField(name="Uptime", value=stats.uptime_text(), inline=True),
            EmbedField(name="Checks", value=str(stats.total_checks), inline=True),
            EmbedField(name="Colors", value=str(len(ctx.cycle.store.known_variants)), inline=True),
            EmbedField(name="Restocks", value=str(stats.total_restocks), inline=True),
            EmbedField(name="Errors", value=str(stats.errors), inline=True),
        ],
    )


def _snapshot(ctx: CommandContext) -> bool:
    current = ctx.cycle.store.latest()
    if current is None:
        return ctx.sender.send_embed(
            title="📊 Complete Inventory Snapshot",
            description="No completed check yet.",
            color=COLOR_BLURPLE,
        )
    return ctx.sender.send_inventory_snapshot(
        current,
        ctx.cycle.settings.product_name,
        known_variant_count=len(ctx.cycle.store.known_variants),
    )


def _check(ctx: CommandContext) -> bool:
    ctx.sender.send_embed(title="🔄 Manual Check", description="Running...", color=COLOR_BLURPLE)
    started = ctx.scheduler.trigger(reason="command")
    if not started:
        ctx.sender.send_embed(
            title="🔄 Manual Check",
            description="A check is already running, skipped.",
            color=COLOR_BLURPLE,
        )
    return started


def _help(ctx: CommandContext) -> bool:
    fields = [
        EmbedField(name=f"{COMMAND_PREFIX}{command.name}", value=command.help_text)
        for command in _UNIQUE_COMMANDS
    ]
    return ctx.sender.send_embed(title="💡 Commands", description="", color=COLOR_BLURPLE, fields=fields)


_UNIQUE_COMMANDS: tuple[SimpleCommand, ...] = (
    SimpleCommand("status", "Monitor status", _status),
    SimpleCommand("list", "Current stock", _snapshot),
    SimpleCommand("check", "Force check", _check),
    SimpleCommand("help", "List commands", _help),
)

COMMANDS: dict[str, Command] = {command.name: command for command in _UNIQUE_COMMANDS}
COMMANDS["snapshot"] = COMMANDS["list"]


def parse_command(content: str) -> str | None:
    """Return the command name of a ``!name`` message, or None for anything else."""
    text = (content or "").strip().lower()
    if not text.startswith(COMMAND_PREFIX):
        return None
    name = text[len(COMMAND_PREFIX):].split(maxsplit=1)
    return name[0] if name else None


def dispatch(content: str, ctx: CommandContext, commands: dict[str, Command] = COMMANDS) -> bool:
    """Run the command named in ``content``; unknown commands are ignored."""
    name = parse_command(content)
    command = commands.get(name) if name else None
    if command is None:
        return False
    get_logger("commands").info("command received name=%s", name)
    command(ctx)
    return True


class DiscordCommandListener:
    """Polls one channel through the bot REST API and dispatches ``!`` commands."""

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        ctx: CommandContext,
        poll_seconds: float = 5.0,
        api_base: str = DISCORD_API_BASE,
    ) -> None:
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.ctx = ctx
        self.poll_seconds = max(1.0, float(poll_seconds))
        self.api_base = api_base.rstrip("/")
        self.logger = get_logger("commands")
        self._after: str | None = None
        self._primed = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _fetch_messages(self) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": 50}
        if self._after:
            params["after"] = self._after
        with httpx.Client(timeout=15, headers={"Authorization": f"Bot {self.bot_token}"}) as client:
            response = client.get(f"{self.api_base}/channels/{self.channel_id}/messages", params=params)
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, list) else []

    def poll_once(self) -> int:
        """Process new messages oldest-first; returns how many commands ran."""
        messages = self._fetch_messages()
        # Snowflake ids grow over time; sort so the cursor only moves forward.
        messages.sort(key=lambda item: int(item.get("id", 0)))
        if not self._primed:
            # First poll only sets the cursor so old commands are not replayed.
            self._primed = True
            if messages:
                self._after = str(messages[-1]["id"])
            return 0

        handled = 0
        for message in messages:
            self._after = str(message.get("id", self._after))
            if (message.get("author") or {}).get("bot"):
                continue
            if dispatch(str(message.get("content", "")), self.ctx):
                handled += 1
        return handled

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except httpx.HTTPError as exc:
                self.logger.warning("command poll failed: %s", exc)
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("command handling failed: %s", exc)
            self._stop_event.wait(self.poll_seconds)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._loop, name="discord-commands", daemon=True)
        self._thread.start()
        self.logger.info("command listener started channel=%s", self.channel_id)

    def stop(self) -> None:
        self._stop_event.set()
