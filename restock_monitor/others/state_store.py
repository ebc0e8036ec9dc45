"""Single-slot holder of the last committed stock snapshot, optionally persisted to disk."""

from __future__ import annotations

import threading
from pathlib import Path

from restock_monitor.misc.config_loader import dump_json, load_json
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.stock_state import StockSnapshot


class SnapshotStore:
    """Owns the snapshot the next cycle diffs against.

    A snapshot loaded from disk is kept as ``restored`` for display only:
    ``current()`` stays empty until this process commits, so the first cycle
    after a restart is a baseline and never alerts.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self.logger = get_logger("state_store")
        self._lock = threading.Lock()
        self._current: StockSnapshot | None = None
        self._known_labels: dict[str, str] = {}
        self.restored: StockSnapshot | None = None
        if path is not None:
            self.restored = self._load(path)
            if self.restored is not None:
                self._remember(self.restored)

    def _load(self, path: Path) -> StockSnapshot | None:
        if not path.exists():
            return None
        try:
            return StockSnapshot.from_payload(load_json(path).get("snapshot", {}))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.warning("ignoring unreadable snapshot file path=%s error=%s", path, exc)
            return None

    def _remember(self, snapshot: StockSnapshot) -> None:
        for variant_id in snapshot.variant_ids:
            self._known_labels[variant_id] = snapshot.label_of(variant_id)

    def current(self) -> StockSnapshot | None:
        with self._lock:
            return self._current

    def latest(self) -> StockSnapshot | None:
        """Newest known snapshot, falling back to the one restored from disk."""
        with self._lock:
            return self._current if self._current is not None else self.restored

    def commit(self, snapshot: StockSnapshot) -> None:
        """Replace the held snapshot; callers commit only after diffing against the old one."""
        with self._lock:
            self._current = snapshot
            self._remember(snapshot)
            if self.path is None:
                return
            try:
                dump_json(self.path, {"snapshot": snapshot.to_payload()})
            except OSError as exc:
                self.logger.warning("snapshot kept in memory only path=%s error=%s", self.path, exc)

    @property
    def known_variants(self) -> dict[str, str]:
        """Every variant id ever committed, mapped to its latest label."""
        with self._lock:
            return dict(self._known_labels)
