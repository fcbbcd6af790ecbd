"""
Optimistic cache: the local read model of cards and columns.

The UI reads from here. A drop is applied before the server has answered,
and restored from a snapshot if the server refuses any part of it. This is
the only place that writes `order` or `column_id`.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import CacheError
from .ordering import is_dense, sort_key
from .schema import Card, CardMove, Column, ColumnMove, EntityId

logger = logging.getLogger(__name__)

CARDS_KEY = "cards"
COLUMNS_KEY = "columns"


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable copy of some columns' cards (and optionally a board's columns)."""
    cards: Mapping[EntityId, Tuple[Card, ...]] = field(default_factory=lambda: MappingProxyType({}))
    columns: Mapping[EntityId, Tuple[Column, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def column_ids(self) -> List[EntityId]:
        return list(self.cards)

    def card(self, card_id: EntityId) -> Optional[Card]:
        for cards in self.cards.values():
            for card in cards:
                if card.card_id == card_id:
                    return card
        return None

    def column(self, column_id: EntityId) -> Optional[Column]:
        for columns in self.columns.values():
            for column in columns:
                if column.column_id == column_id:
                    return column
        return None

    def merged(self, other: "CacheSnapshot") -> "CacheSnapshot":
        """Union of two snapshots; entries already present here win."""
        cards = dict(other.cards)
        cards.update(self.cards)
        columns = dict(other.columns)
        columns.update(self.columns)
        return CacheSnapshot(MappingProxyType(cards), MappingProxyType(columns))


class OptimisticCache:
    """In-memory store of cards and columns with snapshot/apply/restore."""

    def __init__(self, cards: Iterable[Card] = (), columns: Iterable[Column] = ()):
        self._cards: Dict[EntityId, Card] = {}
        self._columns: Dict[EntityId, Column] = {}
        self._stale: Set[str] = set()
        self.subscribers: List[Callable] = []
        self.load(cards, columns)

    # ── Change notification ──────────────────────────────────────────────

    def subscribe(self, callback: Callable) -> None:
        """Register a callback(event, **details) fired after every change."""
        self.subscribers.append(callback)

    def _emit(self, event: str, **kwargs) -> None:
        for callback in self.subscribers:
            try:
                callback(event, **kwargs)
            except Exception as e:
                logger.error(f"Error in cache subscriber for {event}: {e}")

    # ── Loading / invalidation ───────────────────────────────────────────

    def load(self, cards: Iterable[Card] = (), columns: Iterable[Column] = ()) -> None:
        """Replace the whole read model (initial fetch or refetch)."""
        self._cards = {c.card_id: c for c in cards}
        self._columns = {c.column_id: c for c in columns}
        self._stale.clear()
        self._emit("loaded", cards=len(self._cards), columns=len(self._columns))

    def invalidate(self, key: str = CARDS_KEY) -> None:
        """Mark a collection as needing a refetch."""
        self._stale.add(key)
        self._emit("invalidated", key=key)

    def is_stale(self, key: str = CARDS_KEY) -> bool:
        return key in self._stale

    # ── Reads ────────────────────────────────────────────────────────────

    def card(self, card_id: EntityId) -> Optional[Card]:
        return self._cards.get(card_id)

    def column(self, column_id: EntityId) -> Optional[Column]:
        return self._columns.get(column_id)

    def all_cards(self) -> List[Card]:
        return list(self._cards.values())

    def all_columns(self) -> List[Column]:
        return list(self._columns.values())

    def column_cards(self, column_id: EntityId) -> Tuple[Card, ...]:
        """Visible cards of a column in display order."""
        return self._ordered_cards(self._cards, column_id)

    def collections(self, column_ids: Optional[Iterable[EntityId]] = None) -> Dict[EntityId, Tuple[Card, ...]]:
        """column id -> visible cards in display order, as the reconciler expects."""
        if column_ids is None:
            column_ids = [c.column_id for c in self._columns.values() if c.visible]
            column_ids += [c.column_id for c in self._cards.values() if c.column_id not in column_ids]
        return {cid: self.column_cards(cid) for cid in column_ids}

    def board_columns(self, board_id: EntityId) -> Tuple[Column, ...]:
        """Visible columns of a board in display order."""
        return self._ordered_columns(self._columns, board_id)

    def boards(self, board_ids: Optional[Iterable[EntityId]] = None) -> Dict[EntityId, Tuple[Column, ...]]:
        if board_ids is None:
            board_ids = {c.board_id for c in self._columns.values()}
        return {bid: self.board_columns(bid) for bid in board_ids}

    def divergence(self, server_cards: Iterable[Card]) -> List[EntityId]:
        """Ids of visible cards whose local (column, order) differs from the server's."""
        server = {c.card_id: c for c in server_cards if c.visible}
        local = {c.card_id: c for c in self._cards.values() if c.visible}
        diverged = []
        for card_id in sorted(set(server) | set(local), key=str):
            ours, theirs = local.get(card_id), server.get(card_id)
            if ours is None or theirs is None or ours.position != theirs.position:
                diverged.append(card_id)
        return diverged

    # ── Snapshot / apply / restore ───────────────────────────────────────

    def snapshot(self, column_ids: Iterable[EntityId] = (), board_id: Optional[EntityId] = None) -> CacheSnapshot:
        """Immutable copy of the named columns (and board), taken before apply()."""
        cards = {cid: self.column_cards(cid) for cid in column_ids}
        columns = {}
        if board_id is not None:
            columns[board_id] = self.board_columns(board_id)
        return CacheSnapshot(MappingProxyType(cards), MappingProxyType(columns))

    def apply(self, moves: Iterable[CardMove]) -> None:
        """
        Apply one drop's card moves as a single batch.

        The batch is checked on a working copy: unknown cards, duplicate
        writes, unknown columns, or a touched column left non-dense raise
        CacheError and leave the cache unchanged.
        """
        moves = list(moves)
        if not moves:
            return
        working = dict(self._cards)
        touched: Set[EntityId] = set()
        seen: Set[EntityId] = set()
        for move in moves:
            card = working.get(move.card_id)
            if card is None:
                raise CacheError(f"Cannot move unknown card {move.card_id!r}")
            if move.card_id in seen:
                raise CacheError(f"Card {move.card_id!r} appears twice in one batch")
            if self._columns and move.column_id not in self._columns:
                raise CacheError(f"Cannot move card {move.card_id!r} to unknown column {move.column_id!r}")
            seen.add(move.card_id)
            touched.update((card.column_id, move.column_id))
            working[move.card_id] = card.moved(move.column_id, move.order)

        for column_id in touched:
            orders = [c.order for c in self._ordered_cards(working, column_id)]
            if not is_dense(orders):
                raise CacheError(f"Batch leaves column {column_id!r} with orders {orders}")

        self._cards = working
        self._emit("applied", moves=moves, columns=sorted(touched, key=str))

    def apply_columns(self, moves: Iterable[ColumnMove]) -> None:
        """Apply one batch of column moves; same guarantees as apply()."""
        moves = list(moves)
        if not moves:
            return
        working = dict(self._columns)
        touched: Set[EntityId] = set()
        for move in moves:
            column = working.get(move.column_id)
            if column is None:
                raise CacheError(f"Cannot move unknown column {move.column_id!r}")
            if column.board_id != move.board_id:
                raise CacheError(f"Column {move.column_id!r} does not belong to board {move.board_id!r}")
            touched.add(move.board_id)
            working[move.column_id] = column.moved(move.order)

        for board_id in touched:
            orders = [c.order for c in self._ordered_columns(working, board_id)]
            if not is_dense(orders):
                raise CacheError(f"Batch leaves board {board_id!r} with column orders {orders}")

        self._columns = working
        self._emit("columns_applied", moves=moves)

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Put the snapshot's columns back exactly as they were."""
        cards = dict(self._cards)
        restored_ids = {c.card_id for group in snapshot.cards.values() for c in group}
        for card_id, card in self._cards.items():
            if card_id in restored_ids or (card.visible and card.column_id in snapshot.cards):
                del cards[card_id]
        for group in snapshot.cards.values():
            for card in group:
                cards[card.card_id] = card

        columns = dict(self._columns)
        for group in snapshot.columns.values():
            for column in group:
                columns[column.column_id] = column

        self._cards = cards
        self._columns = columns
        self._emit("restored", columns=snapshot.column_ids)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def next_order(self, column_id: EntityId) -> int:
        return len(self.column_cards(column_id))

    def add_card(self, card: Card) -> None:
        """Store a card the server has just created."""
        if card.card_id in self._cards:
            raise CacheError(f"Card {card.card_id!r} already exists")
        self._cards[card.card_id] = card
        self._emit("card_added", card_id=card.card_id, column_id=card.column_id)

    def next_column_order(self, board_id: EntityId) -> int:
        return len(self.board_columns(board_id))

    def add_column(self, column: Column) -> None:
        """Store a new column; shown at once, before the server confirms it."""
        if column.column_id in self._columns:
            raise CacheError(f"Column {column.column_id!r} already exists")
        columns = dict(self._columns)
        columns[column.column_id] = column
        self._columns = columns
        self._emit("column_added", column_id=column.column_id, board_id=column.board_id)

    def remove_column(self, column_id: EntityId) -> None:
        """Drop a column that holds no cards, such as a create the server refused."""
        if column_id not in self._columns:
            raise CacheError(f"Cannot remove unknown column {column_id!r}")
        if any(c.column_id == column_id for c in self._cards.values()):
            raise CacheError(f"Column {column_id!r} still holds cards")
        columns = dict(self._columns)
        del columns[column_id]
        self._columns = columns
        self._emit("column_removed", column_id=column_id)

    def remove_card(self, card_id: EntityId) -> List[CardMove]:
        """
        Drop a deleted card and close the gap it leaves.

        Returns the renumbering moves it applied, for dispatch.
        """
        card = self._cards.get(card_id)
        if card is None:
            raise CacheError(f"Cannot remove unknown card {card_id!r}")
        remaining = [c for c in self.column_cards(card.column_id) if c.card_id != card_id]
        moves = [
            CardMove(c.card_id, card.column_id, index)
            for index, c in enumerate(remaining)
            if c.order != index
        ]
        cards = dict(self._cards)
        del cards[card_id]
        for move in moves:
            cards[move.card_id] = cards[move.card_id].moved(move.column_id, move.order)
        self._cards = cards
        self._emit("card_removed", card_id=card_id, moves=moves)
        return moves

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _ordered_cards(cards: Mapping[EntityId, Card], column_id: EntityId) -> Tuple[Card, ...]:
        return tuple(sorted(
            (c for c in cards.values() if c.column_id == column_id and c.visible),
            key=sort_key,
        ))

    @staticmethod
    def _ordered_columns(columns: Mapping[EntityId, Column], board_id: EntityId) -> Tuple[Column, ...]:
        return tuple(sorted(
            (c for c in columns.values() if c.board_id == board_id and c.visible),
            key=sort_key,
        ))

    def __repr__(self) -> str:
        return f"OptimisticCache(cards={len(self._cards)}, columns={len(self._columns)})"


def snapshot_as_dict(snapshot: CacheSnapshot) -> Dict[str, Any]:
    """Plain-dict form of a snapshot, for logging and debugging."""
    return {
        "cards": {str(cid): [c.card_id for c in cards] for cid, cards in snapshot.cards.items()},
        "columns": {str(bid): [c.column_id for c in cols] for bid, cols in snapshot.columns.items()},
    }
