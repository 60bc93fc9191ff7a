"""Fan-out coordinator.

FanOutCoordinator resolves every entity kind a join needs at the same time
(persons, channels, teams and schedules each get their own task) and waits
for all of them before the join runs.

The key guarantee: how a failed lookup is handled is decided per branch, not
globally. A DEGRADE branch that fails becomes an empty mapping and the join
proceeds with blank names; a REQUIRE branch that fails aborts the whole call.
Cancellation is different from failure and is never absorbed by either
policy.
"""

import asyncio
import logging
import time
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from core.collector import IdentifierSet
from core.mappings import ResolvedMappings
from core.resolver import BatchResolver, ResolutionError
from schemas.events import EventType, ResolutionEvent
from schemas.resolved import EntityKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailurePolicy(str, Enum):
    """What a failed lookup means for the enrichment call.

    Values:
        REQUIRE: The resolved names are the point of the call. A failure
            propagates and aborts the join.
        DEGRADE: The names only improve display quality. A failure is
            logged and replaced by an empty mapping.
    """

    REQUIRE = "require"
    DEGRADE = "degrade"


@dataclass(frozen=True)
class Branch:
    """One entity kind to resolve within a fan-out.

    Attributes:
        kind: Entity kind of the identifiers.
        ids: Identifiers to resolve, normally produced by the collector.
        policy: How a failure of this lookup is handled.
    """

    kind: EntityKind
    ids: IdentifierSet
    policy: FailurePolicy = FailurePolicy.DEGRADE


async def run_concurrently(coros: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """Run coroutines as tasks of one TaskGroup and return results in order.

    The TaskGroup is the shared cancellation scope: if the calling task is
    cancelled, every task is cancelled with it, and if one task raises, its
    siblings are cancelled. The first failure is re-raised as itself rather
    than wrapped in an ExceptionGroup, so callers can catch the exceptions
    they already know about.

    Args:
        coros: Coroutines to run. Consumed eagerly.

    Returns:
        Results in the same order as coros. Empty list if coros is empty.
    """
    pending = list(coros)
    if not pending:
        return []

    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in pending]
    except BaseExceptionGroup as group:
        raise group.exceptions[0]

    return [task.result() for task in tasks]


class FanOutCoordinator:
    """Resolves several entity kinds concurrently into one ResolvedMappings.

    Attributes:
        resolver: The batch resolver each branch calls.
    """

    def __init__(self, resolver: BatchResolver) -> None:
        self.resolver = resolver

    async def resolve(
        self,
        branches: list[Branch],
        event_queue: asyncio.Queue | None = None,
    ) -> ResolvedMappings:
        """Resolve all branches concurrently and return their mappings.

        Each kind is resolved independently and results are never merged
        across kinds. Branch order does not matter; no ordering between
        the lookups is implied.

        Args:
            branches: One Branch per entity kind. Kinds must be unique.
            event_queue: Optional asyncio.Queue to emit ResolutionEvents
                into. If None, events are silently skipped.

        Returns:
            ResolvedMappings with one mapping per branch. Kinds not listed
            in branches are left empty. Degraded kinds are recorded in
            ResolvedMappings.degraded.

        Raises:
            ValueError: If the same kind appears in more than one branch.
                This is always a programming error.
            ResolutionError: If a REQUIRE branch fails. The other branches
                are cancelled.
            asyncio.CancelledError: If the calling task is cancelled,
                whatever the branch policies are.
        """
        kinds = [branch.kind for branch in branches]
        if len(set(kinds)) != len(kinds):
            raise ValueError(
                f"Each entity kind may be resolved once per fan-out, got {[k.value for k in kinds]}."
            )

        mappings = ResolvedMappings()
        start = time.perf_counter()

        outcomes = await run_concurrently(
            self._resolve_branch(branch, event_queue, start) for branch in branches
        )

        for branch, (mapping, degraded) in zip(branches, outcomes):
            mappings.set(branch.kind, mapping)
            if degraded:
                mappings.degraded.add(branch.kind)

        return mappings

    async def _resolve_branch(
        self,
        branch: Branch,
        event_queue: asyncio.Queue | None,
        start: float,
    ) -> tuple[dict, bool]:
        """Resolve one branch and apply its failure policy.

        Only ResolutionError is handled here. Anything else, cancellation
        included, propagates into the TaskGroup untouched.

        Returns:
            (mapping, degraded). degraded is True when the lookup failed and
            the empty mapping is a substitute.
        """

        async def emit(event_type: EventType, message: str, resolved: int = 0) -> None:
            if event_queue is not None:
                await event_queue.put(ResolutionEvent(
                    kind=branch.kind,
                    event_type=event_type,
                    message=message,
                    timestamp_ms=(time.perf_counter() - start) * 1000,
                    requested=len(branch.ids),
                    resolved=resolved,
                ))

        await emit(EventType.STARTED, f"resolving {len(branch.ids)} id(s)...")

        try:
            mapping = await self.resolver.resolve(branch.kind, branch.ids)

        except ResolutionError as exc:
            if branch.policy is FailurePolicy.REQUIRE:
                await emit(EventType.ERROR, str(exc))
                logger.error("Required %s lookup failed, aborting join. Error: %s", branch.kind.value, exc)
                raise

            await emit(EventType.DEGRADED, str(exc))
            logger.warning(
                "%s lookup failed for %d id(s), continuing without names. Error: %s",
                branch.kind.value.capitalize(),
                len(branch.ids),
                exc,
            )
            return {}, True

        await emit(EventType.COMPLETE, f"{len(mapping)}/{len(branch.ids)} resolved", resolved=len(mapping))
        return mapping, False
