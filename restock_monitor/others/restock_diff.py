"""Compares two consecutive stock snapshots and reports confirmed restocks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from restock_monitor.misc.stock_state import Availability, StockSnapshot


@dataclass(frozen=True, slots=True)
class RestockEvent:
    """A variant seen unavailable last cycle and available now."""

    variant_id: str
    label: str
    detected_at: datetime


def diff_snapshots(
    previous: StockSnapshot | None,
    current: StockSnapshot,
    detected_at: datetime | None = None,
) -> list[RestockEvent]:
    """Return restock events in the order variants appear in ``current``.

    A missing ``previous`` is the baseline cycle and never yields events. Only
    an exact unavailable -> available transition counts: unknown or absent
    predecessors are not evidence that the variant was out of stock.
    """
    if previous is None:
        return []

    when = detected_at or current.taken_at
    before = previous.as_dict()
    return [
        RestockEvent(variant_id=variant_id, label=current.label_of(variant_id), detected_at=when)
        for variant_id, state in current.states
        if state is Availability.AVAILABLE and before.get(variant_id) is Availability.UNAVAILABLE
    ]


def summarize_transitions(previous: StockSnapshot | None, current: StockSnapshot) -> dict[str, int]:
    """Count every kind of transition for the cycle log line."""
    summary = {"restocked": 0, "went_unavailable": 0, "became_unknown": 0, "new_variants": 0}
    if previous is None:
        summary["new_variants"] = len(current.states)
        return summary

    before = previous.as_dict()
    for variant_id, state in current.states:
        prior = before.get(variant_id)
        if prior is None:
            summary["new_variants"] += 1
        elif prior is Availability.UNAVAILABLE and state is Availability.AVAILABLE:
            summary["restocked"] += 1
        elif prior is Availability.AVAILABLE and state is Availability.UNAVAILABLE:
            summary["went_unavailable"] += 1
        elif prior is not Availability.UNKNOWN and state is Availability.UNKNOWN:
            summary["became_unknown"] += 1
    return summary
