"""Resolved mappings for a single enrichment call.

ResolvedMappings is the typed container the fan-out coordinator fills and the
join layer reads. It lives for the duration of one enrichment call: created
when the fan-out finishes, read by the join, then discarded. No disk, no
network, nothing shared across calls.

Each mapping is written by exactly one resolution task and only read after
every task has finished, so it needs no locking.
"""

from dataclasses import dataclass, field

from schemas.resolved import ChannelInfo, EntityKind, PersonInfo, ScheduleInfo, TeamInfo

_KIND_ATTRS = {
    EntityKind.PERSON: "persons",
    EntityKind.CHANNEL: "channels",
    EntityKind.TEAM: "teams",
    EntityKind.SCHEDULE: "schedules",
}


@dataclass
class ResolvedMappings:
    """Identifier → record mappings, one per entity kind.

    A dataclass rather than a Pydantic model because it is an internal
    engine object; it is never serialized or passed across a system boundary.

    Attributes:
        persons: person_id → PersonInfo.
        channels: channel_id → ChannelInfo.
        teams: team_id → TeamInfo.
        schedules: schedule_id → ScheduleInfo.
        degraded: Kinds whose lookup failed on a best-effort branch and were
            replaced by an empty mapping. Lets callers tell "nothing to
            resolve" apart from "lookup failed".
    """

    persons: dict[int, PersonInfo] = field(default_factory=dict)
    channels: dict[int, ChannelInfo] = field(default_factory=dict)
    teams: dict[int, TeamInfo] = field(default_factory=dict)
    schedules: dict[int, ScheduleInfo] = field(default_factory=dict)
    degraded: set[EntityKind] = field(default_factory=set)

    def get(self, kind: EntityKind) -> dict:
        """Return the mapping for one kind."""
        return getattr(self, _KIND_ATTRS[kind])

    def set(self, kind: EntityKind, mapping: dict) -> None:
        """Store the mapping for one kind, replacing any previous one."""
        setattr(self, _KIND_ATTRS[kind], mapping)
