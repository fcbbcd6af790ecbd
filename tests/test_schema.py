"""
Tests for schema values: ids, drop events, backend JSON shapes.
"""

from datetime import datetime, timezone

import pytest

from boardsync.errors import ReconcileError
from boardsync.schema import (
    Card,
    CardMove,
    Column,
    ColumnMove,
    DragKind,
    DragState,
    DropEvent,
    coerce_id,
    visible_cards,
)


class TestCoerceId:

    @pytest.mark.parametrize("raw, expected", [
        ("card-12", 12),
        ("column-3", 3),
        ("card-abc", "abc"),
        ("42", 42),
        (7, 7),
        ("todo", "todo"),
    ])
    def test_coerce(self, raw, expected):
        assert coerce_id(raw) == expected


class TestDropEvent:

    def test_nested_form(self):
        event = DropEvent.from_dict({
            "draggableId": "card-5",
            "source": {"droppableId": "column-1", "index": 2},
            "destination": {"droppableId": "column-2", "index": 0},
        })
        assert event == DropEvent(5, 1, 2, 2, 0, DragKind.CARD)
        assert event.has_destination
        assert not event.is_noop

    def test_nested_without_destination(self):
        event = DropEvent.from_dict({
            "draggableId": "card-5",
            "source": {"droppableId": "column-1", "index": 2},
            "destination": None,
        })
        assert not event.has_destination
        assert event.is_noop

    def test_flat_form(self):
        event = DropEvent.from_dict({
            "draggableId": "c1",
            "sourceContainerId": "A",
            "sourceIndex": 0,
            "destContainerId": "A",
            "destIndex": 0,
        })
        assert event.is_noop

    def test_column_kind(self):
        assert DropEvent.from_dict({
            "draggableId": "column-4", "source": {"droppableId": "board-1", "index": 0},
        }).kind == DragKind.COLUMN
        assert DropEvent.from_dict({
            "draggableId": "x", "type": "column", "source": {"droppableId": "b", "index": 0},
        }).kind == DragKind.COLUMN


class TestMalformedDropEvent:

    @pytest.mark.parametrize("data", [
        {"draggableId": "card-1", "source": {"droppableId": "column-1"}},
        {"draggableId": "card-1", "source": {"droppableId": "column-1", "index": "two"}},
        {"draggableId": "card-1", "source": {"droppableId": "column-1", "index": 0},
         "destination": {"droppableId": "column-2", "index": [1]}},
        {"source": {"droppableId": "column-1", "index": 0}},
        {"draggableId": "card-1", "source": {"index": 0}},
        {"draggableId": "card-1"},
        None,
    ])
    def test_rejected_as_reconcile_error(self, data):
        with pytest.raises(ReconcileError):
            DropEvent.from_dict(data)


class TestJsonShapes:

    def test_card_from_dict(self):
        card = Card.from_dict({
            "id": 3,
            "kanbanColumnId": 1,
            "title": "Write docs",
            "order": "2",
            "dueDate": "2024-05-01T12:00:00Z",
            "isArchived": False,
        })
        assert card.position == (1, 2)
        assert card.due_date == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert card.to_dict()["dueDate"] == "2024-05-01T12:00:00+00:00"

    def test_bad_due_date_is_dropped(self):
        assert Card.from_dict({"id": 1, "kanbanColumnId": 1, "dueDate": "soon"}).due_date is None

    def test_column_roundtrip_fields(self):
        column = Column.from_dict({"id": 1, "kanbanBoardId": 9, "name": "Done", "order": 2, "isDeleted": True})
        assert not column.visible
        assert column.to_dict()["kanbanBoardId"] == 9

    def test_move_payloads(self):
        assert CardMove(3, 1, 0).to_payload() == {"id": 3, "kanbanColumnId": 1, "order": 0}
        assert ColumnMove(1, 9, 2).to_payload() == {"id": 1, "kanbanBoardId": 9, "order": 2}

    def test_visible_cards(self):
        cards = [Card(1, 1), Card(2, 1, is_archived=True), Card(3, 1, is_deleted=True)]
        assert [c.card_id for c in visible_cards(cards)] == [1]


def test_drag_state_from_str():
    assert DragState.from_str("committing") == DragState.COMMITTING
    assert DragState.from_str("nonsense") == DragState.IDLE
