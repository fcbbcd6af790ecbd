"""
Mutation dispatcher: one update request per changed row.

The backend only updates one row at a time, so a drop that touches five
cards becomes five independent requests, fired concurrently. Each request
carries the full target (column, order), so arrival order at the server
does not matter. Failures are collected, never raised, so the caller can
decide what to do with the whole batch.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import requests

from .errors import MutationError, NetworkError, ValidationError
from .schema import CardMove, ColumnMove, EntityId

logger = logging.getLogger(__name__)

Move = Union[CardMove, ColumnMove]
Mutate = Callable[[Move], Union[Any, Awaitable[Any]]]

NETWORK = NetworkError.kind
VALIDATION = ValidationError.kind


@dataclass(frozen=True)
class MutationFailure:
    """One row write that did not go through."""
    entity_id: EntityId
    kind: str          # "network" | "validation"
    message: str
    move: Optional[Move] = None

    @property
    def retriable(self) -> bool:
        return self.kind == NETWORK


@dataclass
class DispatchResult:
    """Outcome of dispatching one batch."""
    succeeded: List[EntityId] = field(default_factory=list)
    failures: List[MutationFailure] = field(default_factory=list)
    responses: Dict[EntityId, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)

    @property
    def failed_ids(self) -> List[EntityId]:
        return [f.entity_id for f in self.failures]

    def failures_of_kind(self, kind: str) -> List[MutationFailure]:
        return [f for f in self.failures if f.kind == kind]

    def summary(self) -> str:
        if self.ok:
            return f"{len(self.succeeded)} of {self.total} updates saved"
        kinds = sorted({f.kind for f in self.failures})
        return f"{len(self.failures)} of {self.total} updates failed ({', '.join(kinds)})"


def classify(exc: BaseException) -> str:
    """Map an exception from a mutate call to a failure kind."""
    if isinstance(exc, MutationError):
        return exc.kind
    # HTTPError is itself an OSError, so it is checked first
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return VALIDATION if 400 <= exc.response.status_code < 500 else NETWORK
    if isinstance(exc, (requests.ConnectionError, requests.Timeout, asyncio.TimeoutError, OSError)):
        return NETWORK
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return VALIDATION
    return NETWORK


class MutationDispatcher:
    """
    Runs `mutate(move)` once per move, all at once.

    `mutate` may be a plain callable (run in a worker thread, since the
    HTTP client blocks) or a coroutine function (awaited directly).
    """

    def __init__(self, mutate: Mutate, max_parallel: Optional[int] = None, timeout: Optional[float] = None):
        self.mutate = mutate
        self.max_parallel = max_parallel
        self.timeout = timeout

    async def dispatch(self, moves: Sequence[Move]) -> DispatchResult:
        """Send every move; resolve once all have succeeded or failed."""
        result = DispatchResult()
        if not moves:
            return result

        semaphore = asyncio.Semaphore(self.max_parallel) if self.max_parallel else None
        outcomes = await asyncio.gather(*(self._send(move, semaphore) for move in moves))

        for move, (response, failure) in zip(moves, outcomes):
            if failure is None:
                result.succeeded.append(move.entity_id)
                result.responses[move.entity_id] = response
            else:
                result.failures.append(failure)

        if result.ok:
            logger.debug(f"Dispatched {result.total} updates")
        else:
            failed = ", ".join(repr(i) for i in result.failed_ids)
            logger.warning(f"Dispatch: {result.summary()}: {failed}")
        return result

    async def _send(self, move: Move, semaphore: Optional[asyncio.Semaphore]):
        if semaphore is None:
            return await self._attempt(move)
        async with semaphore:
            return await self._attempt(move)

    async def _attempt(self, move: Move):
        try:
            call = self._call(move)
            if self.timeout:
                response = await asyncio.wait_for(call, self.timeout)
            else:
                response = await call
            return response, None
        except Exception as e:
            kind = classify(e)
            logger.debug(f"Update of {move.entity_id!r} failed ({kind}): {e}")
            return None, MutationFailure(move.entity_id, kind, str(e) or type(e).__name__, move)

    async def _call(self, move: Move):
        if inspect.iscoroutinefunction(self.mutate):
            return await self.mutate(move)
        result = await asyncio.to_thread(self.mutate, move)
        if inspect.isawaitable(result):
            result = await result
        return result
