"""
Drag reconciliation: the moves implied by a single drop.

Pure functions. Given the pre-move ordered lists, compute the target
(column, order) of every card whose position changes, and nothing else.
Inputs are never mutated, so running the same drop twice against the same
base state gives the same answer.
"""
import logging
from typing import List, Mapping, Sequence, Union

from .errors import ReconcileError
from .ordering import OrderedCollection
from .schema import Card, CardMove, Column, ColumnMove, DragKind, DropEvent, EntityId

logger = logging.getLogger(__name__)

CardLists = Mapping[EntityId, Union[Sequence[Card], OrderedCollection]]
ColumnLists = Mapping[EntityId, Union[Sequence[Column], OrderedCollection]]


def _collection(lists: Mapping, scope_id: EntityId, label: str) -> OrderedCollection:
    if scope_id not in lists:
        raise ReconcileError(f"Unknown {label} {scope_id!r}")
    return OrderedCollection(scope_id, list(lists[scope_id]))


def _take(collection: OrderedCollection, index: int, item_id: EntityId, label: str):
    if not isinstance(index, int) or index < 0 or index >= len(collection):
        raise ReconcileError(
            f"Source index {index!r} out of range for {label} {collection.scope_id!r} "
            f"({len(collection)} items)"
        )
    removed, remaining = collection.without(index)
    found = removed.card_id if isinstance(removed, Card) else removed.column_id
    if found != item_id:
        raise ReconcileError(
            f"{item_id!r} is not at index {index} of {label} {collection.scope_id!r} "
            f"(found {found!r})"
        )
    return removed, remaining


def _check_dest_index(index: int) -> None:
    if not isinstance(index, int) or index < 0:
        raise ReconcileError(f"Destination index {index!r} must be a non-negative integer")


def reconcile(
    source_column_id: EntityId,
    source_index: int,
    dest_column_id: EntityId,
    dest_index: int,
    card_id: EntityId,
    collections: CardLists,
) -> List[CardMove]:
    """
    Compute the card moves for one drop.

    Args:
        source_column_id: Column the card was picked up from
        source_index: Card's position in that column before the move
        dest_column_id: Column the card was dropped into
        dest_index: Requested position there; past the end means append
        card_id: The dragged card; must sit at source_index
        collections: column id -> cards in current display order

    Returns:
        Moves for the source list then the destination list, in list order.
        Empty when nothing changes position.

    Raises:
        ReconcileError: the drop does not match the base state.
    """
    source = _collection(collections, source_column_id, "column")
    if dest_column_id != source_column_id:
        dest = _collection(collections, dest_column_id, "column")
    _check_dest_index(dest_index)
    card, remaining = _take(source, source_index, card_id, "column")

    if source_column_id == dest_column_id:
        if dest_index == source_index:
            return []
        moves = remaining.with_inserted(dest_index, card).moves()
    else:
        moves = remaining.moves() + dest.with_inserted(dest_index, card).moves()

    logger.debug(
        f"reconcile {card_id!r}: {source_column_id!r}[{source_index}] -> "
        f"{dest_column_id!r}[{dest_index}] = {len(moves)} moves"
    )
    return moves


def reconcile_drop(event: DropEvent, collections: CardLists) -> List[CardMove]:
    """reconcile() driven by a gesture-library drop event."""
    if event.kind != DragKind.CARD:
        raise ReconcileError(f"Expected a card drop, got a {event.kind.value} drop")
    if not event.has_destination:
        return []
    return reconcile(
        event.source_container_id,
        event.source_index,
        event.dest_container_id,
        event.dest_index,
        event.draggable_id,
        collections,
    )


def reconcile_columns(
    board_id: EntityId,
    source_index: int,
    dest_index: int,
    column_id: EntityId,
    boards: ColumnLists,
) -> List[ColumnMove]:
    """Column moves for reordering columns within one board."""
    columns = _collection(boards, board_id, "board")
    _check_dest_index(dest_index)
    column, remaining = _take(columns, source_index, column_id, "board")
    if dest_index == source_index:
        return []
    return remaining.with_inserted(dest_index, column).moves()


def reconcile_column_drop(event: DropEvent, boards: ColumnLists) -> List[ColumnMove]:
    """reconcile_columns() driven by a drop event whose containers are boards."""
    if event.kind != DragKind.COLUMN:
        raise ReconcileError(f"Expected a column drop, got a {event.kind.value} drop")
    if not event.has_destination:
        return []
    if event.dest_container_id != event.source_container_id:
        raise ReconcileError("Columns cannot move between boards")
    return reconcile_columns(
        event.source_container_id,
        event.source_index,
        event.dest_index,
        event.draggable_id,
        boards,
    )
