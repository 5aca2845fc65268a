"""Tests for the bounded undo history."""
import pytest

from shelfcut.contracts import Snapshot
from shelfcut.history import HistoryManager


def _snapshot(n):
    return Snapshot(
        layouts={"board": {"id": "board", "n": n}},
        positions={"board": {"x": float(n), "y": 0.0, "z": 0.0}},
        quaternions={"board": {"_x": 0.0, "_y": 0.0, "_z": 0.0, "_w": 1.0}},
    )


class TestSaveSnapshot:
    def test_identical_snapshot_is_not_pushed(self):
        history = HistoryManager()
        assert history.save_snapshot(_snapshot(1))
        assert not history.save_snapshot(_snapshot(1))
        assert len(history) == 1

    def test_rotation_only_change_is_pushed(self):
        history = HistoryManager()
        history.save_snapshot(_snapshot(1))
        turned = _snapshot(1)
        turned.quaternions["board"] = {"_x": 0.0, "_y": 0.7071, "_z": 0.0, "_w": 0.7071}
        assert history.save_snapshot(turned)

    def test_capacity_drops_oldest(self):
        history = HistoryManager(capacity=20)
        for n in range(25):
            history.save_snapshot(_snapshot(n))
        assert len(history) == 20
        assert history.latest().positions["board"]["x"] == 24.0

    def test_stored_copy_is_independent(self):
        history = HistoryManager()
        snap = _snapshot(1)
        history.save_snapshot(snap)
        snap.positions["board"]["x"] = 99.0
        assert history.latest().positions["board"]["x"] == 1.0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            HistoryManager(capacity=0)


class TestUndo:
    def test_nothing_to_undo_with_single_entry(self):
        history = HistoryManager()
        history.save_snapshot(_snapshot(0))
        assert history.undo() is None
        assert len(history) == 1

    def test_undo_returns_previous_entry(self):
        history = HistoryManager()
        history.save_snapshot(_snapshot(0))
        history.save_snapshot(_snapshot(1))
        previous = history.undo()
        assert previous.positions["board"]["x"] == 0.0
        assert len(history) == 1

    def test_nineteen_undos_reach_oldest_retained(self):
        history = HistoryManager(capacity=20)
        for n in range(25):
            history.save_snapshot(_snapshot(n))
        results = [history.undo() for _ in range(19)]
        assert all(r is not None for r in results)
        assert results[-1].positions["board"]["x"] == 5.0
        assert history.undo() is None

    def test_reset_clears(self):
        history = HistoryManager()
        history.save_snapshot(_snapshot(0))
        history.reset()
        assert len(history) == 0 and history.latest() is None
