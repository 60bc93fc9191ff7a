"""ID collector.

Walks a batch of raw records and gathers the foreign keys they reference,
one deduplicated IdentifierSet per entity kind. The fan-out coordinator then
resolves each set with a single batched lookup, so a person referenced by
forty incidents is fetched once.

Everything here is pure: no I/O, no exceptions. Malformed nested payloads are
skipped, never raised on.
"""

from collections.abc import Iterable
from typing import Any

from schemas.records import RawChange, RawEscalationRule, RawIncident, RawTimelineItem
from schemas.resolved import ChannelInfo, EntityKind
from schemas.timeline import TimelineEventType

IdentifierSet = list[int]


def dedupe_ids(values: Iterable[Any]) -> IdentifierSet:
    """Return the distinct, set identifiers in first-seen order.

    Zero is the API's "not set" sentinel, so 0, None and "" are dropped along
    with duplicates. Order is kept so outbound request bodies are stable.
    """
    return list(dict.fromkeys(
        value for value in values if value and not isinstance(value, bool)
    ))


def as_person_id(value: Any) -> int | None:
    """Interpret one element of a detail payload list as a person id.

    JSON numbers may decode as float; integral floats are accepted. Booleans
    and anything non-numeric are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def person_field_ids(values: Any) -> list[int] | None:
    """Read a person-bearing detail field as a list of person ids.

    Returns None unless values is a list whose every element is a person
    id. The collector and the timeline transformer share this rule, so a
    field is either resolved and rewritten whole or left alone whole.
    """
    if not isinstance(values, list):
        return None
    person_ids = [as_person_id(value) for value in values]
    if any(person_id is None for person_id in person_ids):
        return None
    return person_ids


def collect_incident_ids(incidents: Iterable[RawIncident]) -> dict[EntityKind, IdentifierSet]:
    """Gather creator, closer and responder person ids plus channel ids."""
    person_ids: list[int] = []
    channel_ids: list[int] = []

    for incident in incidents:
        person_ids.append(incident.creator_id)
        person_ids.append(incident.closer_id)
        person_ids.extend(r.person_id for r in incident.responders)
        channel_ids.append(incident.channel_id)

    return {
        EntityKind.PERSON: dedupe_ids(person_ids),
        EntityKind.CHANNEL: dedupe_ids(channel_ids),
    }


def collect_timeline_person_ids(items: Iterable[RawTimelineItem]) -> IdentifierSet:
    """Gather operator ids and the person ids nested in event payloads.

    Which detail keys hold person ids depends on the event type
    (see TimelineEventType.person_fields): assignment events use "to" and
    "person_ids", notifications use "to" only, everything else has none.
    A field with any element that is not a person id is skipped whole.
    """
    person_ids: list[int] = []

    for item in items:
        person_ids.append(item.person_id)

        if not item.detail:
            continue

        for field in TimelineEventType(item.type).person_fields:
            field_ids = person_field_ids(item.detail.get(field))
            if field_ids is not None:
                person_ids.extend(field_ids)

    return dedupe_ids(person_ids)


def collect_channel_ids(channels: Iterable[ChannelInfo]) -> dict[EntityKind, IdentifierSet]:
    """Gather the owning team and creator of each channel."""
    team_ids: list[int] = []
    person_ids: list[int] = []

    for channel in channels:
        team_ids.append(channel.team_id)
        person_ids.append(channel.creator_id)

    return {
        EntityKind.TEAM: dedupe_ids(team_ids),
        EntityKind.PERSON: dedupe_ids(person_ids),
    }


def collect_escalation_ids(rules: Iterable[RawEscalationRule]) -> dict[EntityKind, IdentifierSet]:
    """Gather layer targets (persons, teams, schedules) and rule channels."""
    person_ids: list[int] = []
    team_ids: list[int] = []
    schedule_ids: list[int] = []
    channel_ids: list[int] = []

    for rule in rules:
        channel_ids.append(rule.channel_id)
        for layer in rule.layers:
            if layer.target is None:
                continue
            person_ids.extend(layer.target.person_ids)
            team_ids.extend(layer.target.team_ids)
            schedule_ids.extend(layer.target.schedule_to_role_ids)

    return {
        EntityKind.PERSON: dedupe_ids(person_ids),
        EntityKind.TEAM: dedupe_ids(team_ids),
        EntityKind.SCHEDULE: dedupe_ids(schedule_ids),
        EntityKind.CHANNEL: dedupe_ids(channel_ids),
    }


def collect_change_ids(changes: Iterable[RawChange]) -> dict[EntityKind, IdentifierSet]:
    """Gather channel and creator ids of change records."""
    channel_ids: list[int] = []
    person_ids: list[int] = []

    for change in changes:
        channel_ids.append(change.channel_id)
        person_ids.append(change.creator_id)

    return {
        EntityKind.CHANNEL: dedupe_ids(channel_ids),
        EntityKind.PERSON: dedupe_ids(person_ids),
    }
