"""
Rollback controller: one drag gesture, start to finish.

Takes the pre-drag snapshot, walks the gesture through its states, and
restores the snapshot into the cache if any row write fails. Rollback
always covers every card the drop touched, not only the failed rows.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .cache import CacheSnapshot, OptimisticCache, snapshot_as_dict
from .errors import DragInProgressError
from .schema import ALLOWED_DRAG_TRANSITIONS, DragKind, DragState, EntityId

logger = logging.getLogger(__name__)


@dataclass
class GestureRecord:
    """Terminal outcome of one gesture, kept for diagnostics."""
    kind: DragKind
    item_id: EntityId
    outcome: DragState
    reason: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "item_id": self.item_id,
            "outcome": self.outcome.value,
            "reason": self.reason or "",
            "timestamp": self.timestamp,
        }


class RollbackController:
    """Per-session gesture state machine. Accepts one gesture at a time."""

    MAX_HISTORY = 100

    def __init__(self, cache: OptimisticCache):
        self.cache = cache
        self.state = DragState.IDLE
        self.kind: Optional[DragKind] = None
        self.item_id: Optional[EntityId] = None
        self.source_id: Optional[EntityId] = None
        self._snapshot: Optional[CacheSnapshot] = None
        self.history: List[GestureRecord] = []

    @property
    def busy(self) -> bool:
        return self.state != DragState.IDLE

    @property
    def snapshot(self) -> Optional[CacheSnapshot]:
        return self._snapshot

    def _transition(self, new_state: DragState) -> None:
        if new_state not in ALLOWED_DRAG_TRANSITIONS.get(self.state, ()):
            raise DragInProgressError(
                f"Cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug(f"gesture {self.item_id!r}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _record(self, outcome: DragState, reason: Optional[str] = None) -> None:
        self.history.append(GestureRecord(self.kind, self.item_id, outcome, reason))
        if len(self.history) > self.MAX_HISTORY:
            self.history.pop(0)

    def _reset(self) -> None:
        self.state = DragState.IDLE
        self.kind = None
        self.item_id = None
        self.source_id = None
        self._snapshot = None

    # ── Gesture steps ────────────────────────────────────────────────────

    def begin_drag(self, card_id: EntityId, source_column_id: EntityId) -> CacheSnapshot:
        """Card picked up: snapshot its column."""
        if self.busy:
            raise DragInProgressError(
                f"Drag of {self.item_id!r} is still {self.state.value}; "
                f"cannot start dragging {card_id!r}"
            )
        self._transition(DragState.DRAGGING)
        self.kind = DragKind.CARD
        self.item_id = card_id
        self.source_id = source_column_id
        self._snapshot = self.cache.snapshot([source_column_id])
        return self._snapshot

    def begin_column_drag(self, column_id: EntityId, board_id: EntityId) -> CacheSnapshot:
        """Column picked up: snapshot the board's column order."""
        if self.busy:
            raise DragInProgressError(
                f"Drag of {self.item_id!r} is still {self.state.value}; "
                f"cannot start dragging column {column_id!r}"
            )
        self._transition(DragState.DRAGGING)
        self.kind = DragKind.COLUMN
        self.item_id = column_id
        self.source_id = board_id
        self._snapshot = self.cache.snapshot(board_id=board_id)
        return self._snapshot

    def drop_received(self, dest_container_id: Optional[EntityId] = None) -> CacheSnapshot:
        """Drop arrived: extend the snapshot with the destination, before reconciling."""
        self._transition(DragState.RECONCILING)
        if (
            self.kind == DragKind.CARD
            and dest_container_id is not None
            and dest_container_id not in self._snapshot.cards
        ):
            self._snapshot = self._snapshot.merged(self.cache.snapshot([dest_container_id]))
        return self._snapshot

    def dispatching(self) -> None:
        """Moves are in the cache and the row writes are about to go out."""
        self._transition(DragState.COMMITTING)

    def commit(self) -> None:
        """Every row write succeeded: forget the snapshot. The gesture stays open until finish()."""
        self._transition(DragState.COMMITTED)
        self._record(DragState.COMMITTED)
        logger.info(f"Drop of {self.item_id!r} committed")
        self._snapshot = None

    def rollback(self, reason: str = "") -> CacheSnapshot:
        """
        Restore the pre-drag snapshot into the cache.

        Returns the restored snapshot so the caller can bring the server
        back in line with it. The gesture stays open until finish().
        """
        self._transition(DragState.ROLLED_BACK)
        snapshot = self._snapshot
        self.cache.restore(snapshot)
        self._record(DragState.ROLLED_BACK, reason)
        logger.warning(f"Drop of {self.item_id!r} rolled back: {reason} {snapshot_as_dict(snapshot)}")
        return snapshot

    def finish(self) -> None:
        """Committed or rolled-back gesture has settled with the server: accept the next drag."""
        if self.state not in (DragState.COMMITTED, DragState.ROLLED_BACK):
            raise DragInProgressError(
                f"Cannot finish drag of {self.item_id!r} while it is {self.state.value}"
            )
        self._transition(DragState.IDLE)
        self._reset()

    def cancel(self) -> None:
        """Gesture ended without a move (released outside, or dropped in place)."""
        if self.state == DragState.IDLE:
            return
        if self.state not in (DragState.DRAGGING, DragState.RECONCILING):
            raise DragInProgressError(f"Cannot cancel drag of {self.item_id!r} while it is {self.state.value}")
        self._transition(DragState.IDLE)
        self._reset()
