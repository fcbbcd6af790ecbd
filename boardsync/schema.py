"""
Board, column and card schema, plus the values that flow through a drop.

Gesture lifecycle:
  Idle → Dragging → Reconciling → Committing → Committed | RolledBack → Idle

Cards and columns are frozen: a move produces a new value through the
cache, never an in-place edit.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple, Union

from .errors import ReconcileError

EntityId = Union[str, int]

CARD_PREFIX = "card-"
COLUMN_PREFIX = "column-"


def coerce_id(value: Any) -> EntityId:
    """Strip a drag-library prefix and turn numeric ids back into ints."""
    if isinstance(value, str):
        for prefix in (CARD_PREFIX, COLUMN_PREFIX):
            if value.startswith(prefix):
                value = value[len(prefix):]
                break
        if value.isdigit():
            return int(value)
    return value


def _parse_index(value: Any, name: str) -> int:
    if value is None or isinstance(value, bool):
        raise ReconcileError(f"Drop event {name} is missing")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ReconcileError(f"Drop event {name} {value!r} is not an integer") from e


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class DragState(Enum):
    """States of one drag gesture."""
    IDLE = "idle"
    DRAGGING = "dragging"          # Gesture started, snapshot of source taken
    RECONCILING = "reconciling"    # Drop received, computing moves
    COMMITTING = "committing"      # Row updates in flight
    COMMITTED = "committed"        # Every row update succeeded
    ROLLED_BACK = "rolled_back"    # At least one failed, snapshot restored

    @classmethod
    def from_str(cls, value: str) -> "DragState":
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.IDLE


ALLOWED_DRAG_TRANSITIONS: Dict[DragState, Tuple[DragState, ...]] = {
    DragState.IDLE: (DragState.DRAGGING,),
    DragState.DRAGGING: (DragState.RECONCILING, DragState.IDLE),
    DragState.RECONCILING: (DragState.COMMITTING, DragState.ROLLED_BACK, DragState.IDLE),
    DragState.COMMITTING: (DragState.COMMITTED, DragState.ROLLED_BACK),
    DragState.COMMITTED: (DragState.IDLE,),
    DragState.ROLLED_BACK: (DragState.IDLE,),
}


class DragKind(Enum):
    """What is being dragged."""
    CARD = "card"
    COLUMN = "column"


@dataclass(frozen=True)
class Board:
    """A kanban board. Owns its columns."""
    board_id: EntityId
    name: str
    description: str = ""
    is_archived: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            board_id=data.get("id"),
            name=data.get("name", ""),
            description=data.get("description") or "",
            is_archived=bool(data.get("isArchived", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.board_id,
            "name": self.name,
            "description": self.description,
            "isArchived": self.is_archived,
        }


@dataclass(frozen=True)
class Column:
    """A column of a board; `order` is its position among the board's columns."""
    column_id: EntityId
    board_id: EntityId
    name: str = ""
    order: int = 0
    is_archived: bool = False
    is_deleted: bool = False

    @property
    def visible(self) -> bool:
        return not (self.is_archived or self.is_deleted)

    def moved(self, order: int) -> "Column":
        return replace(self, order=order)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            column_id=data.get("id"),
            board_id=data.get("kanbanBoardId"),
            name=data.get("name", ""),
            order=int(data.get("order", 0) or 0),
            is_archived=bool(data.get("isArchived", False)),
            is_deleted=bool(data.get("isDeleted", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.column_id,
            "kanbanBoardId": self.board_id,
            "name": self.name,
            "order": self.order,
            "isArchived": self.is_archived,
            "isDeleted": self.is_deleted,
        }


@dataclass(frozen=True)
class Card:
    """A card. Belongs to exactly one column; `order` is its position there."""
    card_id: EntityId
    column_id: EntityId
    title: str = ""
    order: int = 0

    # Opaque to reordering
    description: str = ""
    due_date: Optional[datetime] = None
    assignees: Tuple[Any, ...] = field(default_factory=tuple)

    is_archived: bool = False
    is_deleted: bool = False

    @property
    def visible(self) -> bool:
        return not (self.is_archived or self.is_deleted)

    @property
    def position(self) -> Tuple[EntityId, int]:
        return (self.column_id, self.order)

    def moved(self, column_id: EntityId, order: int) -> "Card":
        """Return a copy at a new (column, order) position."""
        return replace(self, column_id=column_id, order=order)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """Deserialize from the backend's JSON shape."""
        return cls(
            card_id=data.get("id"),
            column_id=data.get("kanbanColumnId"),
            title=data.get("title", ""),
            order=int(data.get("order", 0) or 0),
            description=data.get("description") or "",
            due_date=_parse_datetime(data.get("dueDate")),
            assignees=tuple(data.get("assignees") or ()),
            is_archived=bool(data.get("isArchived", False)),
            is_deleted=bool(data.get("isDeleted", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the backend's JSON shape."""
        return {
            "id": self.card_id,
            "kanbanColumnId": self.column_id,
            "title": self.title,
            "order": self.order,
            "description": self.description,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "assignees": list(self.assignees),
            "isArchived": self.is_archived,
            "isDeleted": self.is_deleted,
        }


@dataclass(frozen=True)
class CardMove:
    """Full target position of one card. Column and order always travel together."""
    card_id: EntityId
    column_id: EntityId
    order: int

    @property
    def entity_id(self) -> EntityId:
        return self.card_id

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.card_id, "kanbanColumnId": self.column_id, "order": self.order}


@dataclass(frozen=True)
class ColumnMove:
    """Full target position of one column within its board."""
    column_id: EntityId
    board_id: EntityId
    order: int

    @property
    def entity_id(self) -> EntityId:
        return self.column_id

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.column_id, "kanbanBoardId": self.board_id, "order": self.order}


@dataclass(frozen=True)
class DropEvent:
    """
    A drop as delivered by the drag-gesture library.

    `dest_container_id` / `dest_index` are None when the item was released
    outside any container.
    """
    draggable_id: EntityId
    source_container_id: EntityId
    source_index: int
    dest_container_id: Optional[EntityId] = None
    dest_index: Optional[int] = None
    kind: DragKind = DragKind.CARD

    @property
    def has_destination(self) -> bool:
        return self.dest_container_id is not None and self.dest_index is not None

    @property
    def is_noop(self) -> bool:
        return (
            not self.has_destination
            or (self.source_container_id == self.dest_container_id
                and self.source_index == self.dest_index)
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DropEvent":
        """
        Accept either the nested gesture-library result
        ({draggableId, source: {droppableId, index}, destination: {...}|None})
        or the flat form ({draggableId, sourceContainerId, sourceIndex, ...}).
        """
        if not isinstance(data, dict):
            raise ReconcileError(f"Drop event must be a mapping, got {type(data).__name__}")
        raw_id = data.get("draggableId")
        if raw_id is None or raw_id == "":
            raise ReconcileError("Drop event has no draggableId")
        kind = DragKind.COLUMN if str(raw_id).startswith(COLUMN_PREFIX) else DragKind.CARD
        if data.get("type") in ("column", "COLUMN"):
            kind = DragKind.COLUMN

        if "source" in data:
            source = data.get("source") or {}
            destination = data.get("destination") or {}
            src_container = source.get("droppableId")
            src_index = source.get("index")
            dst_container = destination.get("droppableId")
            dst_index = destination.get("index")
        else:
            src_container = data.get("sourceContainerId")
            src_index = data.get("sourceIndex")
            dst_container = data.get("destContainerId")
            dst_index = data.get("destIndex")

        if src_container is None:
            raise ReconcileError(f"Drop event for {raw_id!r} has no source container")

        return cls(
            draggable_id=coerce_id(raw_id),
            source_container_id=coerce_id(src_container),
            source_index=_parse_index(src_index, "source index"),
            dest_container_id=coerce_id(dst_container) if dst_container is not None else None,
            dest_index=_parse_index(dst_index, "destination index") if dst_index is not None else None,
            kind=kind,
        )


def visible_cards(cards: List[Card]) -> List[Card]:
    """Cards that take part in ordering (not archived, not deleted)."""
    return [c for c in cards if c.visible]
