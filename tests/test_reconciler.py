"""
Tests for the drag reconciler.

Covers:
    - reconcile() : single-column and cross-column moves
    - no-op / clamping / empty destination edge cases
    - permutation, split and idempotence properties
    - input validation (ReconcileError)
    - reconcile_drop() : DropEvent driven, released-outside drops
    - reconcile_columns() : column reordering within a board
"""

import copy
import itertools

import pytest

from boardsync.errors import ReconcileError
from boardsync.reconciler import (
    reconcile,
    reconcile_column_drop,
    reconcile_columns,
    reconcile_drop,
)
from boardsync.schema import Card, CardMove, Column, ColumnMove, DragKind, DropEvent


def _cards(cid, *ids):
    return [Card(card_id=c, column_id=cid, order=i) for i, c in enumerate(ids)]


def _apply(collections, moves):
    """Final per-column id lists after applying moves to a base state."""
    cards = {c.card_id: c for lst in collections.values() for c in lst}
    for m in moves:
        cards[m.card_id] = cards[m.card_id].moved(m.column_id, m.order)
    result = {cid: [] for cid in collections}
    for c in sorted(cards.values(), key=lambda c: c.order):
        result[c.column_id].append((c.card_id, c.order))
    return result


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Example scenarios
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestExampleScenarios:

    def test_cross_column_move(self, collections):
        moves = reconcile("A", 1, "B", 1, "card2", collections)
        after = _apply(collections, moves)
        assert after["A"] == [("card1", 0), ("card3", 1)]
        assert after["B"] == [("card4", 0), ("card2", 1), ("card5", 2)]

    def test_cross_column_move_emits_only_changed_cards(self, collections):
        moves = reconcile("A", 1, "B", 1, "card2", collections)
        assert moves == [
            CardMove("card3", "A", 1),
            CardMove("card2", "B", 1),
            CardMove("card5", "B", 2),
        ]

    def test_drop_in_place_is_noop(self, collections):
        assert reconcile("A", 0, "A", 0, "card1", collections) == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Single column
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSingleColumn:

    def test_move_down(self, collections):
        moves = reconcile("A", 0, "A", 2, "card1", collections)
        assert moves == [
            CardMove("card2", "A", 0),
            CardMove("card3", "A", 1),
            CardMove("card1", "A", 2),
        ]

    def test_move_up_by_one_touches_two_cards(self, collections):
        moves = reconcile("A", 2, "A", 1, "card3", collections)
        assert moves == [CardMove("card3", "A", 1), CardMove("card2", "A", 2)]

    def test_index_past_end_appends(self, collections):
        moves = reconcile("A", 0, "A", 99, "card1", collections)
        after = _apply(collections, moves)
        assert [cid for cid, _ in after["A"]] == ["card2", "card3", "card1"]

    def test_last_card_past_end_is_noop(self, collections):
        assert reconcile("A", 2, "A", 10, "card3", collections) == []

    def test_permutation_property(self):
        ids = ["a", "b", "c", "d", "e"]
        base = {"X": _cards("X", *ids)}
        for src, dst in itertools.product(range(5), range(5)):
            moves = reconcile("X", src, "X", dst, ids[src], base)
            after = _apply(base, moves)["X"]
            assert sorted(order for _, order in after) == list(range(5))
            assert after[dst][0] == ids[src]

    def test_non_dense_base_is_healed(self):
        base = {"X": [Card("a", "X", order=0), Card("b", "X", order=4), Card("c", "X", order=9)]}
        moves = reconcile("X", 0, "X", 1, "a", base)
        assert _apply(base, moves)["X"] == [("b", 0), ("a", 1), ("c", 2)]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cross column
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCrossColumn:

    def test_into_empty_column_gets_order_zero(self, collections):
        moves = reconcile("B", 0, "C", 0, "card4", collections)
        assert CardMove("card4", "C", 0) in moves
        assert _apply(collections, moves)["C"] == [("card4", 0)]

    def test_into_empty_column_past_end_clamps(self, collections):
        moves = reconcile("B", 1, "C", 7, "card5", collections)
        assert moves == [CardMove("card5", "C", 0)]

    def test_last_card_removed_leaves_no_moves_in_source(self, collections):
        moves = reconcile("A", 2, "B", 2, "card3", collections)
        assert moves == [CardMove("card3", "B", 2)]

    def test_split_property(self):
        src_ids = ["a", "b", "c", "d"]
        dst_ids = ["w", "x", "y"]
        base = {"S": _cards("S", *src_ids), "D": _cards("D", *dst_ids)}
        for src, dst in itertools.product(range(len(src_ids)), range(len(dst_ids) + 2)):
            moved = src_ids[src]
            after = _apply(base, reconcile("S", src, "D", dst, moved, base))
            assert [cid for cid, _ in after["S"]] == [c for c in src_ids if c != moved]
            assert [o for _, o in after["S"]] == list(range(len(src_ids) - 1))
            assert sorted(cid for cid, _ in after["D"]) == sorted(dst_ids + [moved])
            assert [o for _, o in after["D"]] == list(range(len(dst_ids) + 1))
            assert after["D"][min(dst, len(dst_ids))][0] == moved


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Purity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestPurity:

    def test_idempotent(self, collections):
        first = reconcile("A", 1, "B", 1, "card2", collections)
        second = reconcile("A", 1, "B", 1, "card2", collections)
        assert first == second

    def test_inputs_not_mutated(self, collections):
        before = copy.deepcopy(collections)
        reconcile("A", 0, "B", 0, "card1", collections)
        assert collections == before


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Validation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestValidation:

    def test_unknown_source_column(self, collections):
        with pytest.raises(ReconcileError, match="Unknown column"):
            reconcile("Z", 0, "A", 0, "card1", collections)

    def test_unknown_dest_column(self, collections):
        with pytest.raises(ReconcileError, match="Unknown column"):
            reconcile("A", 0, "Z", 0, "card1", collections)

    def test_source_index_out_of_range(self, collections):
        with pytest.raises(ReconcileError, match="out of range"):
            reconcile("A", 3, "B", 0, "card1", collections)

    def test_negative_source_index(self, collections):
        with pytest.raises(ReconcileError):
            reconcile("A", -1, "B", 0, "card3", collections)

    def test_card_not_at_source_index(self, collections):
        with pytest.raises(ReconcileError, match="not at index"):
            reconcile("A", 0, "B", 0, "card2", collections)

    def test_negative_dest_index(self, collections):
        with pytest.raises(ReconcileError, match="non-negative"):
            reconcile("A", 0, "B", -1, "card1", collections)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drop events
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestReconcileDrop:

    def test_from_gesture_payload(self):
        base = {1: _cards(1, 10, 11), 2: _cards(2, 20)}
        event = DropEvent.from_dict({
            "draggableId": "card-11",
            "source": {"droppableId": "column-1", "index": 1},
            "destination": {"droppableId": "column-2", "index": 0},
        })
        assert reconcile_drop(event, base) == [CardMove(11, 2, 0), CardMove(20, 2, 1)]

    def test_released_outside_is_noop(self, collections):
        event = DropEvent("card1", "A", 0)
        assert reconcile_drop(event, collections) == []

    def test_rejects_column_event(self, collections):
        event = DropEvent("A", "board-1", 0, "board-1", 1, kind=DragKind.COLUMN)
        with pytest.raises(ReconcileError):
            reconcile_drop(event, collections)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Column reordering
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestReconcileColumns:

    def test_move_first_column_last(self, columns):
        moves = reconcile_columns("board-1", 0, 2, "A", {"board-1": columns})
        assert moves == [
            ColumnMove("B", "board-1", 0),
            ColumnMove("C", "board-1", 1),
            ColumnMove("A", "board-1", 2),
        ]

    def test_same_index_is_noop(self, columns):
        assert reconcile_columns("board-1", 1, 1, "B", {"board-1": columns}) == []

    def test_column_drop_between_boards_rejected(self, columns):
        event = DropEvent("A", "board-1", 0, "board-2", 0, kind=DragKind.COLUMN)
        with pytest.raises(ReconcileError, match="between boards"):
            reconcile_column_drop(event, {"board-1": columns, "board-2": []})

    def test_column_drop_event(self, columns):
        event = DropEvent.from_dict({
            "draggableId": "column-C",
            "source": {"droppableId": "board-1", "index": 2},
            "destination": {"droppableId": "board-1", "index": 0},
        })
        moves = reconcile_column_drop(event, {"board-1": columns})
        assert moves[0] == ColumnMove("C", "board-1", 0)
        assert len(moves) == 3
