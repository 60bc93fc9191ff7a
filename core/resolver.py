"""Batch resolver.

BatchResolver turns one IdentifierSet into one Resolved Mapping with a single
bulk lookup. It is the only place the engine talks to the lookup endpoints,
with four rules:

- An empty set short-circuits and no request is made.
- A non-empty set is sent in one call, never split or retried.
- Failure is all-or-nothing per entity kind. The fan-out coordinator decides
  whether that failure is fatal or degrades to an empty mapping.
- Identifiers the API did not return are simply missing from the mapping.
"""

import logging
from typing import Protocol

from pydantic import BaseModel

from core.collector import IdentifierSet, dedupe_ids
from schemas.resolved import EntityKind

logger = logging.getLogger(__name__)


class LookupClient(Protocol):
    """Protocol for the collaborator that performs bulk lookups by id."""

    async def fetch_by_ids(self, kind: EntityKind, ids: IdentifierSet) -> list[BaseModel]:
        """Fetch the records for ids of one kind in a single request."""


class ResolutionError(Exception):
    """Raised when the bulk lookup for one entity kind fails.

    The original client exception is chained as __cause__, so callers can
    log it without re-wrapping.

    Attributes:
        kind: The entity kind whose lookup failed.
    """

    def __init__(self, kind: EntityKind, message: str):
        super().__init__(message)
        self.kind = kind


class BatchResolver:
    """Resolves identifier sets to mappings via one bulk lookup per call.

    Attributes:
        client: The lookup collaborator. Injected so tests can pass a stub
            and the engine stays transport-agnostic.
    """

    def __init__(self, client: LookupClient) -> None:
        self.client = client

    async def resolve(self, kind: EntityKind, ids: IdentifierSet) -> dict[int, BaseModel]:
        """Resolve ids of one kind into a mapping keyed by identifier.

        Args:
            kind: Entity kind to look up.
            ids: Identifiers to resolve. Deduplicated again here, so callers
                that skipped the collector still send each id once.

        Returns:
            Mapping from identifier to resolved record. Empty if ids is
            empty. Requested ids the API did not return are absent.

        Raises:
            ResolutionError: If the lookup raised. Cancellation is not an
                Exception and passes through untouched.
        """
        unique_ids = dedupe_ids(ids)
        if not unique_ids:
            return {}

        try:
            records = await self.client.fetch_by_ids(kind, unique_ids)
        except Exception as exc:
            raise ResolutionError(
                kind, f"Unable to resolve {len(unique_ids)} {kind.value} id(s): {exc}"
            ) from exc

        mapping = {getattr(record, kind.id_field): record for record in records}
        logger.debug(
            "Resolved %d/%d %s id(s).", len(mapping), len(unique_ids), kind.value,
        )
        return mapping
