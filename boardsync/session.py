"""
Board session: routes drag-gesture events through the reorder pipeline.

    drop → reconcile → cache.apply → dispatch → commit | rollback → notify

One session per user board view. The cache is injected so tests and
multiple views can each own an isolated one.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .cache import COLUMNS_KEY, CARDS_KEY, CacheSnapshot, OptimisticCache
from .client import KanbanApiClient
from .config import Config
from .dispatcher import DispatchResult, MutationDispatcher, Mutate
from .errors import BoardSyncError, ConsistencyError, DragInProgressError, ReconcileError
from .reconciler import reconcile_column_drop, reconcile_drop
from .rollback import RollbackController
from .schema import Card, CardMove, Column, ColumnMove, DragKind, DragState, DropEvent, EntityId

logger = logging.getLogger(__name__)

Notifier = Callable[[bool, str], Any]
Move = Union[CardMove, ColumnMove]


@dataclass
class DropOutcome:
    """What happened to one drop."""
    state: DragState                     # COMMITTED, ROLLED_BACK, or IDLE for a no-op
    moves: List[Move] = field(default_factory=list)
    result: Optional[DispatchResult] = None
    message: str = ""
    consistency: Optional[ConsistencyError] = None

    @property
    def ok(self) -> bool:
        return self.state != DragState.ROLLED_BACK

    @property
    def noop(self) -> bool:
        return self.state == DragState.IDLE


class BoardSession:
    """Glue between the gesture source, the cache, and the backend."""

    def __init__(
        self,
        cache: OptimisticCache,
        api: Optional[KanbanApiClient] = None,
        config: Optional[Config] = None,
        notify: Optional[Notifier] = None,
        card_mutate: Optional[Mutate] = None,
        column_mutate: Optional[Mutate] = None,
    ):
        self.config = config or Config()
        self.cache = cache
        self.api = api
        self.notify = notify

        card_mutate = card_mutate or (api.update_card if api else None)
        column_mutate = column_mutate or (api.update_column if api else None)
        if card_mutate is None:
            raise BoardSyncError("BoardSession needs an api client or a card_mutate callable")

        limit = self.config.max_parallel_requests or None
        timeout = self.config.dispatch_timeout or None
        self.dispatcher = MutationDispatcher(card_mutate, max_parallel=limit, timeout=timeout)
        self.column_dispatcher = (
            MutationDispatcher(column_mutate, max_parallel=limit, timeout=timeout)
            if column_mutate else None
        )
        self.controller = RollbackController(cache)

    @classmethod
    def from_config(cls, config: Config, notify: Optional[Notifier] = None) -> "BoardSession":
        api = KanbanApiClient(config.api_url, api_key=config.api_key, timeout=config.request_timeout)
        return cls(OptimisticCache(), api=api, config=config, notify=notify)

    # ── Gesture events ───────────────────────────────────────────────────

    def start_drag(self, draggable_id: EntityId, source_container_id: EntityId, kind: DragKind = DragKind.CARD) -> None:
        """Gesture started. Raises DragInProgressError while a previous drop is unfinished."""
        if kind == DragKind.COLUMN:
            self.controller.begin_column_drag(draggable_id, source_container_id)
        else:
            self.controller.begin_drag(draggable_id, source_container_id)

    def cancel_drag(self) -> None:
        self.controller.cancel()

    def on_drag_start(self, data: Dict[str, Any]) -> None:
        """Gesture-library drag-start payload: {draggableId, source: {droppableId, index}}."""
        event = DropEvent.from_dict(data)
        self.start_drag(event.draggable_id, event.source_container_id, event.kind)

    async def on_drag_end(self, data: Dict[str, Any]) -> DropOutcome:
        """Gesture-library drag-end payload. A malformed payload ends the open drag."""
        try:
            event = DropEvent.from_dict(data)
        except ReconcileError:
            if self.controller.state == DragState.DRAGGING:
                self.controller.cancel()
            raise
        return await self.drop(event)

    async def drop(self, event: DropEvent) -> DropOutcome:
        """
        Handle one drop end to end.

        Raises:
            ReconcileError: the drop does not match the cached board; nothing
                was applied or sent.
            DragInProgressError: a different gesture is still in flight.
        """
        controller = self.controller
        if controller.state == DragState.IDLE:
            self.start_drag(event.draggable_id, event.source_container_id, event.kind)
        elif controller.state != DragState.DRAGGING or controller.item_id != event.draggable_id:
            raise DragInProgressError(
                f"Drop of {event.draggable_id!r} while {controller.item_id!r} is {controller.state.value}"
            )

        if event.is_noop:
            controller.cancel()
            return DropOutcome(DragState.IDLE)

        controller.drop_received(event.dest_container_id)
        try:
            moves = self._reconcile(event)
        except ReconcileError:
            controller.cancel()
            raise
        if not moves:
            controller.cancel()
            return DropOutcome(DragState.IDLE)

        try:
            dispatcher = self._dispatcher_for(event.kind)
            if event.kind == DragKind.COLUMN:
                self.cache.apply_columns(moves)
            else:
                self.cache.apply(moves)
        except BoardSyncError:
            # apply() is all-or-nothing, the cache still holds the pre-drag state
            controller.cancel()
            raise

        controller.dispatching()
        # The gesture stays open until verification or recovery is done
        try:
            result = await dispatcher.dispatch(moves)
            if result.ok:
                controller.commit()
                outcome = DropOutcome(DragState.COMMITTED, moves, result, result.summary())
                if self.config.verify_after_commit and self.api is not None:
                    outcome.consistency = await self.verify()
            else:
                snapshot = controller.rollback(result.summary())
                await self._recover(snapshot, result, event.kind)
                outcome = DropOutcome(DragState.ROLLED_BACK, moves, result, result.summary())
        finally:
            if controller.state == DragState.COMMITTING:
                controller.rollback("dispatch interrupted")
            controller.finish()

        self._notify(outcome.ok, outcome.message)
        return outcome

    def _reconcile(self, event: DropEvent) -> List[Move]:
        if event.kind == DragKind.COLUMN:
            return reconcile_column_drop(event, self.cache.boards([event.source_container_id]))
        column_ids = [event.source_container_id]
        if event.dest_container_id != event.source_container_id:
            column_ids.append(event.dest_container_id)
        if self.cache.all_columns():
            column_ids = [cid for cid in column_ids if self.cache.column(cid) is not None]
        return reconcile_drop(event, self.cache.collections(column_ids))

    def _dispatcher_for(self, kind: DragKind) -> MutationDispatcher:
        if kind == DragKind.COLUMN:
            if self.column_dispatcher is None:
                raise BoardSyncError("No column mutate configured for column drops")
            return self.column_dispatcher
        return self.dispatcher

    # ── Recovery ─────────────────────────────────────────────────────────

    async def _recover(self, snapshot: CacheSnapshot, result: DispatchResult, kind: DragKind) -> None:
        """Bring the server back in line with the restored local state."""
        policy = self.config.rollback_policy
        if policy == "local" or not result.succeeded:
            return
        if policy == "compensate":
            undo = self._compensating_moves(snapshot, result, kind)
            compensation = await self._dispatcher_for(kind).dispatch(undo)
            if compensation.ok:
                logger.info(f"Reverted {compensation.total} server rows after rollback")
                return
            logger.warning(f"Compensation incomplete ({compensation.summary()}); refetching")
        await self._refetch_after_failure(kind)

    @staticmethod
    def _compensating_moves(snapshot: CacheSnapshot, result: DispatchResult, kind: DragKind) -> List[Move]:
        undo: List[Move] = []
        for entity_id in result.succeeded:
            if kind == DragKind.COLUMN:
                column = snapshot.column(entity_id)
                if column is not None:
                    undo.append(ColumnMove(column.column_id, column.board_id, column.order))
            else:
                card = snapshot.card(entity_id)
                if card is not None:
                    undo.append(CardMove(card.card_id, card.column_id, card.order))
        return undo

    async def _refetch_after_failure(self, kind: DragKind) -> None:
        self.cache.invalidate(COLUMNS_KEY if kind == DragKind.COLUMN else CARDS_KEY)
        if self.api is None:
            return
        try:
            await self.refresh()
        except BoardSyncError as e:
            logger.error(f"Refetch after rollback failed, cache left stale: {e}")

    # ── Server state ─────────────────────────────────────────────────────

    async def refresh(self) -> None:
        """Reload cards and columns from the server; the server is authoritative."""
        if self.api is None:
            raise BoardSyncError("refresh() needs an api client")
        cards = await asyncio.to_thread(self.api.list_cards)
        columns = await asyncio.to_thread(self.api.list_columns)
        self.cache.load(cards, columns)

    async def verify(self) -> Optional[ConsistencyError]:
        """
        Refetch and compare with the local order.

        On divergence the server state replaces the local one, and the
        ConsistencyError is returned (not raised) for the caller to report.
        """
        cards = await asyncio.to_thread(self.api.list_cards)
        diverged = self.cache.divergence(cards)
        if not diverged:
            return None
        error = ConsistencyError(
            f"{len(diverged)} card(s) differ from the server after commit", diverged
        )
        logger.error(f"{error}: {diverged}")
        columns = await asyncio.to_thread(self.api.list_columns)
        self.cache.load(cards, columns)
        return error

    # ── Card lifecycle ───────────────────────────────────────────────────

    def _require_idle(self, action: str) -> None:
        if self.controller.busy:
            raise DragInProgressError(f"Cannot {action} while a drag is {self.controller.state.value}")

    async def create_card(self, column_id: EntityId, title: str, description: str = "") -> Card:
        """Create a card at the end of a column."""
        self._require_idle("create a card")
        if self.api is None:
            raise BoardSyncError("create_card() needs an api client")
        order = self.cache.next_order(column_id)
        card = await asyncio.to_thread(self.api.create_card, column_id, title, order, description)
        self.cache.add_card(card)
        logger.info(f"Created card {card.card_id!r} in column {column_id!r} at {card.order}")
        return card

    async def delete_card(self, card_id: EntityId) -> DispatchResult:
        """Delete a card and renumber the cards after it."""
        self._require_idle("delete a card")
        if self.api is None:
            raise BoardSyncError("delete_card() needs an api client")
        await asyncio.to_thread(self.api.delete_card, card_id)
        moves = self.cache.remove_card(card_id)
        result = await self.dispatcher.dispatch(moves)
        if not result.ok:
            logger.warning(f"Renumbering after deleting {card_id!r}: {result.summary()}")
            await self._refetch_after_failure(DragKind.CARD)
        return result

    # ── Column lifecycle ─────────────────────────────────────────────────

    async def create_column(self, board_id: EntityId, name: str) -> Column:
        """
        Add a column at the end of a board.

        A placeholder column is shown at once and swapped for the server's
        column when the create succeeds. If the server refuses, the
        placeholder is removed and the error is raised.
        """
        self._require_idle("create a column")
        if self.api is None:
            raise BoardSyncError("create_column() needs an api client")
        order = self.cache.next_column_order(board_id)
        placeholder = Column(f"temp-{uuid.uuid4().hex[:8]}", board_id, name=name, order=order)
        self.cache.add_column(placeholder)
        try:
            column = await asyncio.to_thread(self.api.create_column, board_id, name, order)
        except Exception as e:
            self.cache.remove_column(placeholder.column_id)
            logger.warning(f"Create column {name!r} on board {board_id!r} failed: {e}")
            self._notify(False, f"Could not create column {name!r}")
            raise
        self.cache.remove_column(placeholder.column_id)
        self.cache.add_column(column)
        logger.info(f"Created column {column.column_id!r} on board {board_id!r} at {column.order}")
        return column

    def _notify(self, ok: bool, message: str) -> None:
        if self.notify is None:
            return
        try:
            self.notify(ok, message)
        except Exception as e:
            logger.error(f"Error in notify callback: {e}")

