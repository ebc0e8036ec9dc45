from __future__ import annotations

from datetime import datetime, timezone

from restock_monitor.misc.stock_state import Availability, StockSnapshot
from restock_monitor.others.restock_diff import diff_snapshots, summarize_transitions

A = Availability.AVAILABLE
U = Availability.UNAVAILABLE
K = Availability.UNKNOWN


def _snapshot(**states: Availability) -> StockSnapshot:
    return StockSnapshot(
        taken_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        states=tuple(states.items()),
        labels={key: f"Color {key}" for key in states},
    )


def test_baseline_cycle_never_reports_restocks() -> None:
    assert diff_snapshots(None, _snapshot(A=A, B=U)) == []


def test_true_restock_is_reported() -> None:
    events = diff_snapshots(_snapshot(A=A, B=U), _snapshot(A=A, B=A))
    assert [(event.variant_id, event.label) for event in events] == [("B", "Color B")]
    assert events[0].detected_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_unknown_or_available_predecessor_is_not_a_restock() -> None:
    assert diff_snapshots(_snapshot(B=K), _snapshot(B=A)) == []
    assert diff_snapshots(_snapshot(B=A), _snapshot(B=A)) == []
    # A variant new this cycle has no predecessor at all.
    assert diff_snapshots(_snapshot(A=U), _snapshot(A=U, N=A)) == []


def test_events_follow_current_order() -> None:
    previous = _snapshot(A=U, B=U, C=U)
    current = StockSnapshot(
        taken_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        states=(("C", A), ("A", A), ("B", K)),
        labels={},
    )
    assert [event.variant_id for event in diff_snapshots(previous, current)] == ["C", "A"]
    assert diff_snapshots(previous, current)[0].label == "C"


def test_diff_is_idempotent_and_does_not_mutate_inputs() -> None:
    previous = _snapshot(A=U, B=U)
    current = _snapshot(A=A, B=U)
    before = (previous.states, current.states)
    when = datetime(2026, 3, 2, tzinfo=timezone.utc)

    first = diff_snapshots(previous, current, detected_at=when)
    second = diff_snapshots(previous, current, detected_at=when)

    assert first == second
    assert (previous.states, current.states) == before


def test_summarize_transitions_counts_each_kind() -> None:
    summary = summarize_transitions(_snapshot(A=U, B=A, C=A), _snapshot(A=A, B=U, C=K, D=A))
    assert summary == {"restocked": 1, "went_unavailable": 1, "became_unknown": 1, "new_variants": 1}
    assert summarize_transitions(None, _snapshot(A=A))["new_variants"] == 1
