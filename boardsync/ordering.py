"""
Ordered collections: the per-column card list and the per-board column list.

Dense ordering: within one scope the `order` values are exactly 0..n-1.
Positions in an OrderedCollection are the truth; `order` values are what
the backend stores and are re-derived from positions by `renumbered()`.
"""
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .schema import Card, CardMove, Column, ColumnMove, EntityId

Entity = Union[Card, Column]
Move = Union[CardMove, ColumnMove]


def entity_id(item: Entity) -> EntityId:
    return item.card_id if isinstance(item, Card) else item.column_id


def sort_key(item: Entity) -> Tuple[int, str]:
    """Order first, id as a stable tie-breaker for duplicated orders."""
    return (item.order, str(entity_id(item)))


def is_dense(orders: Iterable[int]) -> bool:
    """True when the orders are exactly 0..n-1 (in any sequence)."""
    orders = list(orders)
    return sorted(orders) == list(range(len(orders)))


class OrderedCollection:
    """
    An ordered list of cards in one column, or of columns in one board.

    Instances are never mutated; every operation returns a new collection.
    """

    def __init__(self, scope_id: EntityId, items: Sequence[Entity] = ()):
        self.scope_id = scope_id
        self._items: Tuple[Entity, ...] = tuple(items)

    @classmethod
    def of(cls, scope_id: EntityId, items: Iterable[Entity]) -> "OrderedCollection":
        """Build from unsorted entities, dropping archived/deleted ones."""
        return cls(scope_id, sorted((i for i in items if i.visible), key=sort_key))

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._items)

    def __getitem__(self, index: int) -> Entity:
        return self._items[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, OrderedCollection):
            return NotImplemented
        return self.scope_id == other.scope_id and self._items == other._items

    def __repr__(self) -> str:
        return f"OrderedCollection({self.scope_id!r}, {[entity_id(i) for i in self._items]})"

    @property
    def items(self) -> Tuple[Entity, ...]:
        return self._items

    def ids(self) -> List[EntityId]:
        return [entity_id(i) for i in self._items]

    def orders(self) -> List[int]:
        return [i.order for i in self._items]

    def index_of(self, item_id: EntityId) -> Optional[int]:
        for index, item in enumerate(self._items):
            if entity_id(item) == item_id:
                return index
        return None

    def is_dense(self) -> bool:
        """Dense and consistent with positions: item at index i has order i."""
        return self.orders() == list(range(len(self._items)))

    def next_order(self) -> int:
        """Order for a newly created item appended at the end."""
        return len(self._items)

    def without(self, index: int) -> Tuple[Entity, "OrderedCollection"]:
        """Remove the item at `index`; returns (removed, remaining)."""
        items = list(self._items)
        removed = items.pop(index)
        return removed, OrderedCollection(self.scope_id, items)

    def with_inserted(self, index: int, item: Entity) -> "OrderedCollection":
        """Insert at `index`, clamped to [0, len]."""
        items = list(self._items)
        index = max(0, min(index, len(items)))
        items.insert(index, item)
        return OrderedCollection(self.scope_id, items)

    def renumbered(self) -> "OrderedCollection":
        """Assign order = position (and the scope) to every item."""
        items = []
        for index, item in enumerate(self._items):
            if isinstance(item, Card):
                items.append(item.moved(self.scope_id, index))
            else:
                items.append(item.moved(index))
        return OrderedCollection(self.scope_id, items)

    def moves(self) -> List[Move]:
        """
        Moves that bring every item to order = position in this scope.

        Items already there produce nothing.
        """
        result: List[Move] = []
        for index, item in enumerate(self._items):
            if isinstance(item, Card):
                if item.position != (self.scope_id, index):
                    result.append(CardMove(item.card_id, self.scope_id, index))
            elif item.order != index or item.board_id != self.scope_id:
                result.append(ColumnMove(item.column_id, self.scope_id, index))
        return result

    def moves_after_removal(self, item_id: EntityId) -> List[Move]:
        """Renumbering needed once `item_id` is deleted from this scope."""
        index = self.index_of(item_id)
        if index is None:
            return []
        _, remaining = self.without(index)
        return remaining.moves()


def group_cards(cards: Iterable[Card], column_ids: Iterable[EntityId] = ()) -> Dict[EntityId, OrderedCollection]:
    """
    Group visible cards per column, each sorted by order.

    Every id in `column_ids` gets an entry even when it has no cards.
    """
    buckets: Dict[EntityId, List[Card]] = {cid: [] for cid in column_ids}
    for card in cards:
        buckets.setdefault(card.column_id, []).append(card)
    return {cid: OrderedCollection.of(cid, items) for cid, items in buckets.items()}


def group_columns(columns: Iterable[Column]) -> Dict[EntityId, OrderedCollection]:
    """Group visible columns per board, each sorted by order."""
    buckets: Dict[EntityId, List[Column]] = {}
    for column in columns:
        buckets.setdefault(column.board_id, []).append(column)
    return {bid: OrderedCollection.of(bid, items) for bid, items in buckets.items()}
