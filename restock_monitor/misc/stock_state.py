"""Helpers for the tri-state availability value and the per-cycle stock snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from restock_monitor.parsers.common import ProductRecord

AVAILABLE_MARKERS = {
    "true",
    "yes",
    "available",
    "in_stock",
    "instock",
    "in stock",
    "lowstock",
    "low_stock",
    "http://schema.org/instock",
    "https://schema.org/instock",
}
UNAVAILABLE_MARKERS = {
    "false",
    "no",
    "unavailable",
    "out_of_stock",
    "outofstock",
    "out of stock",
    "sold_out",
    "soldout",
    "sold out",
    "http://schema.org/outofstock",
    "https://schema.org/outofstock",
}


class Availability(IntEnum):
    AVAILABLE = 1
    UNAVAILABLE = 0
    UNKNOWN = -1

    @property
    def label(self) -> str:
        return {1: "In Stock", 0: "Out of Stock", -1: "Unknown"}[int(self)]


def coerce_availability(value: Any, default: Availability = Availability.UNKNOWN) -> Availability:
    """Normalize any supported availability representation to the enum.

    ``None`` and unrecognized markers map to ``default`` (unknown), never to
    unavailable.
    """
    if isinstance(value, Availability):
        return value
    if value is None:
        return default
    if isinstance(value, bool):
        return Availability.AVAILABLE if value else Availability.UNAVAILABLE
    if isinstance(value, int):
        try:
            return Availability(value)
        except ValueError:
            return default

    normalized = str(value).strip().lower()
    if normalized in {"1", "-1", "0"}:
        return Availability(int(normalized))
    if normalized in AVAILABLE_MARKERS:
        return Availability.AVAILABLE
    if normalized in UNAVAILABLE_MARKERS:
        return Availability.UNAVAILABLE
    return default


def count_availability(states: Iterable[Availability]) -> dict[str, int]:
    """Count availability states in one pass for summaries."""
    counts = {"available": 0, "unavailable": 0, "unknown": 0}
    for state in states:
        if state is Availability.AVAILABLE:
            counts["available"] += 1
        elif state is Availability.UNAVAILABLE:
            counts["unavailable"] += 1
        else:
            counts["unknown"] += 1
    return counts


@dataclass(frozen=True, slots=True)
class StockSnapshot:
    """Availability of every variant seen in one completed cycle."""

    taken_at: datetime
    states: tuple[tuple[str, Availability], ...]
    labels: Mapping[str, str] = field(default_factory=dict)

    def availability_of(self, variant_id: str) -> Availability | None:
        for key, state in self.states:
            if key == variant_id:
                return state
        return None

    def as_dict(self) -> dict[str, Availability]:
        return dict(self.states)

    def label_of(self, variant_id: str) -> str:
        return self.labels.get(variant_id, variant_id)

    def _ids_with(self, wanted: Availability) -> tuple[str, ...]:
        return tuple(key for key, state in self.states if state is wanted)

    @property
    def variant_ids(self) -> tuple[str, ...]:
        return tuple(key for key, _ in self.states)

    @property
    def available(self) -> tuple[str, ...]:
        return self._ids_with(Availability.AVAILABLE)

    @property
    def unavailable(self) -> tuple[str, ...]:
        return self._ids_with(Availability.UNAVAILABLE)

    @property
    def unknown(self) -> tuple[str, ...]:
        return self._ids_with(Availability.UNKNOWN)

    def counts(self) -> dict[str, int]:
        return count_availability(state for _, state in self.states)

    def to_payload(self) -> dict[str, Any]:
        return {
            "taken_at": self.taken_at.isoformat(),
            "variants": [
                {"variant_id": key, "label": self.label_of(key), "availability": int(state)}
                for key, state in self.states
            ],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StockSnapshot:
        taken_at = datetime.fromisoformat(str(payload["taken_at"]))
        states: list[tuple[str, Availability]] = []
        labels: dict[str, str] = {}
        seen: set[str] = set()
        for row in payload.get("variants", []):
            key = str(row["variant_id"])
            if key in seen:
                continue
            seen.add(key)
            states.append((key, coerce_availability(row.get("availability"))))
            labels[key] = str(row.get("label") or key)
        return cls(taken_at=taken_at, states=tuple(states), labels=labels)


def build_snapshot(record: ProductRecord, taken_at: datetime | None = None) -> StockSnapshot:
    """Freeze a resolved product record into a snapshot; first occurrence of an id wins."""
    states: list[tuple[str, Availability]] = []
    labels: dict[str, str] = {}
    for variant in record.variants:
        if variant.variant_id in labels:
            continue
        states.append((variant.variant_id, variant.availability))
        labels[variant.variant_id] = variant.label
    return StockSnapshot(
        taken_at=taken_at or datetime.now(timezone.utc),
        states=tuple(states),
        labels=labels,
    )
