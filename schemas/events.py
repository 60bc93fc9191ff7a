"""Resolution event schema.

Events are emitted by the fan-out coordinator while it resolves entity kinds
so the display layer can update its live panels in real time. The engine and
display layer are decoupled: enrichment works correctly whether
or not anything is listening to these events.
"""

from enum import Enum

from pydantic import BaseModel

from schemas.resolved import EntityKind


class EventType(str, Enum):
    """The lifecycle stages a resolution branch can emit events for.

    Values:
        STARTED: The batched lookup for this kind has been issued.
        COMPLETE: The lookup returned; the mapping is ready.
        DEGRADED: The lookup failed on a best-effort branch and was
            replaced by an empty mapping.
        ERROR: The lookup failed on a required branch; the join aborts.
    """

    STARTED = "started"
    COMPLETE = "complete"
    DEGRADED = "degraded"
    ERROR = "error"


class ResolutionEvent(BaseModel):
    """A single event emitted during one fan-out.

    Attributes:
        kind: Entity kind of the branch that emitted this event. Maps to
            the panel heading in the Rich display layout.
        event_type: Lifecycle stage this event represents.
        message: Human-readable description, e.g. "3/4 resolved".
        requested: Number of ids the branch was given.
        resolved: Number of ids the lookup returned. Zero until COMPLETE.
        timestamp_ms: Milliseconds since the fan-out started. Used to render
            the elapsed time shown in each panel.
    """

    kind: EntityKind
    event_type: EventType
    message: str
    timestamp_ms: float
    requested: int = 0
    resolved: int = 0
