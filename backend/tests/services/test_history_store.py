"""Unit tests for the generic undo/redo history store.

Pure in-memory tests; no database and no event loop.
"""

from __future__ import annotations

from app.services.history_store import HistoryFrame, HistoryStore


class _Box:
    """Distinct-identity value so identity checks are meaningful."""

    def __init__(self, n: int) -> None:
        self.n = n


# ---------------------------------------------------------------------------
# set
# ---------------------------------------------------------------------------


class TestSet:
    def test_set_pushes_previous_present(self):
        store = HistoryStore(1)
        assert store.set(2) is True
        assert store.present == 2
        assert store.past == (1,)
        assert store.future == ()

    def test_set_with_updater_receives_present(self):
        store = HistoryStore(10)
        store.set(lambda current: current + 5)
        assert store.present == 15
        assert store.past == (10,)

    def test_identical_value_is_noop(self):
        box = _Box(1)
        store = HistoryStore(box)
        assert store.set(box) is False
        assert store.past == ()
        assert store.can_undo is False
        assert store.can_redo is False

    def test_updater_returning_present_is_noop(self):
        box = _Box(1)
        store = HistoryStore(box)
        store.set(_Box(2))
        store.undo()
        past, future = store.past, store.future

        assert store.set(lambda current: current) is False
        assert store.past == past
        assert store.future == future
        assert store.can_redo is True

    def test_equal_but_distinct_value_creates_entry(self):
        store = HistoryStore(_Box(1))
        assert store.set(_Box(1)) is True
        assert store.can_undo is True

    def test_set_after_undo_clears_future(self):
        store = HistoryStore("a")
        store.set("b")
        store.set("c")
        store.undo()
        assert store.can_redo is True

        store.set("d")
        assert store.future == ()
        assert store.redo() is False
        assert store.present == "d"
        assert store.past == ("a", "b")


# ---------------------------------------------------------------------------
# undo / redo
# ---------------------------------------------------------------------------


class TestUndoRedo:
    def test_undo_on_empty_past_is_noop(self):
        store = HistoryStore("a")
        assert store.undo() is False
        assert store.present == "a"
        assert store.future == ()

    def test_redo_on_empty_future_is_noop(self):
        store = HistoryStore("a")
        store.set("b")
        assert store.redo() is False
        assert store.present == "b"

    def test_undo_n_times_restores_initial(self):
        initial = _Box(0)
        store = HistoryStore(initial)
        for n in range(1, 6):
            store.set(_Box(n))

        for _ in range(5):
            store.undo()

        assert store.present is initial
        assert store.can_undo is False
        assert len(store.future) == 5

    def test_undo_moves_present_to_front_of_future(self):
        store = HistoryStore("a")
        store.set("b")
        store.set("c")
        store.undo()
        store.undo()
        assert store.present == "a"
        assert store.future == ("b", "c")

    def test_redo_pops_front_of_future(self):
        store = HistoryStore("a")
        store.set("b")
        store.set("c")
        store.undo()
        store.undo()

        store.redo()
        assert store.present == "b"
        assert store.past == ("a",)
        assert store.future == ("c",)

    def test_undo_then_redo_round_trips(self):
        store = HistoryStore(_Box(0))
        store.set(_Box(1))
        latest = _Box(2)
        store.set(latest)

        store.undo()
        store.redo()

        assert store.present is latest
        assert len(store.past) == 2
        assert store.future == ()

    def test_redo_then_undo_round_trips(self):
        store = HistoryStore("a")
        store.set("b")
        store.undo()

        store.redo()
        store.undo()

        assert store.present == "a"
        assert store.future == ("b",)


# ---------------------------------------------------------------------------
# reset / frame / limit
# ---------------------------------------------------------------------------


class TestReset:
    def test_reset_clears_both_stacks(self):
        store = HistoryStore("a")
        store.set("b")
        store.set("c")
        store.undo()

        store.reset("z")

        assert store.present == "z"
        assert store.can_undo is False
        assert store.can_redo is False


class TestFrame:
    def test_frame_is_snapshot(self):
        store = HistoryStore("a")
        store.set("b")
        frame = store.frame
        store.set("c")

        assert frame == HistoryFrame(past=("a",), present="b", future=())
        assert store.frame.past == ("a", "b")


class TestLimit:
    def test_unbounded_by_default(self):
        store = HistoryStore(0)
        for n in range(1, 201):
            store.set(n)
        assert len(store.past) == 200

    def test_zero_limit_means_unbounded(self):
        store = HistoryStore(0, limit=0)
        for n in range(1, 51):
            store.set(n)
        assert len(store.past) == 50

    def test_limit_drops_oldest_entries(self):
        store = HistoryStore(0, limit=3)
        for n in range(1, 6):
            store.set(n)

        assert store.past == (2, 3, 4)
        assert store.present == 5
