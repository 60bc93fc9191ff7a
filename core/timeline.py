"""Timeline detail transformer.

Rewrites the person ids nested in incident feed payloads into
{"person_id", "person_name"} entries, using the person mapping resolved for
the whole batch of timelines. Dispatch is on TimelineEventType: only the
types that declare person_fields are touched, every other payload (known or
not) is copied through unchanged.

Pure: the input payload is never mutated and nothing here raises. A person
field with an unexpected shape is left exactly as it arrived.
"""

from typing import Any

from core.collector import person_field_ids
from schemas.enriched import TimelineEvent
from schemas.records import RawTimelineItem
from schemas.resolved import PersonInfo
from schemas.timeline import TimelineEventType


def transform_detail(
    event_type: str,
    detail: dict[str, Any] | None,
    persons: dict[int, PersonInfo],
) -> dict[str, Any] | None:
    """Return a copy of detail with person-bearing fields resolved.

    Args:
        event_type: The raw type tag of the feed entry.
        detail: The raw payload. None stays None.
        persons: person_id → PersonInfo for the batch.

    Returns:
        A new dict. For event types with person fields, each field holding a
        list of integer ids becomes a list of {"person_id": id} dicts, with
        "person_name" added when the id resolved. Fields that are missing,
        not a list, or contain a non-integer element are kept as-is.
    """
    if detail is None:
        return None

    transformed = dict(detail)

    for field in TimelineEventType(event_type).person_fields:
        person_ids = person_field_ids(detail.get(field))
        if person_ids is None:
            continue

        transformed[field] = [_person_ref(person_id, persons) for person_id in person_ids]

    return transformed


def _person_ref(person_id: int, persons: dict[int, PersonInfo]) -> dict[str, Any]:
    ref: dict[str, Any] = {"person_id": person_id}
    person = persons.get(person_id)
    if person is not None:
        ref["person_name"] = person.person_name
    return ref


def enrich_timeline(
    items: list[RawTimelineItem],
    persons: dict[int, PersonInfo],
) -> list[TimelineEvent]:
    """Convert raw feed entries to TimelineEvents, preserving order."""
    events = []
    for item in items:
        operator = persons.get(item.person_id)
        events.append(TimelineEvent(
            type=item.type,
            timestamp=item.created_at,
            operator_id=item.person_id,
            operator_name=operator.person_name if operator else "",
            detail=transform_detail(item.type, item.detail, persons),
        ))
    return events
