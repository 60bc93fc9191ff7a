"""Shared test doubles.

StubFlashduty is an in-memory FlashdutySource. Each entity kind or fetch can
be made to fail or to hang, and every call is recorded so tests can assert
on how many lookups were made and what they carried.
"""

import asyncio

import pytest

from schemas.records import AlertPreview, RawChange, RawEscalationRule, RawIncident, RawTimelineItem
from schemas.resolved import ChannelInfo, EntityKind, PersonInfo, ScheduleInfo, TeamInfo


class StubFlashduty:
    def __init__(
        self,
        persons=(),
        channels=(),
        teams=(),
        schedules=(),
        incidents=(),
        timelines=None,
        alerts=None,
        rules=None,
        changes=(),
        fail=(),
        hang=(),
    ):
        self.records = {
            EntityKind.PERSON: list(persons),
            EntityKind.CHANNEL: list(channels),
            EntityKind.TEAM: list(teams),
            EntityKind.SCHEDULE: list(schedules),
        }
        self.incidents = list(incidents)
        self.timelines = timelines or {}
        self.alerts = alerts or {}
        self.rules = rules or {}
        self.changes = list(changes)
        self.fail = set(fail)
        self.hang = set(hang)
        self.calls = []
        self.cancelled = []

    async def _maybe_fail(self, key):
        if key in self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(key)
                raise
        if key in self.fail:
            name = key.value if isinstance(key, EntityKind) else key
            raise RuntimeError(f"{name} backend unavailable")

    def lookups(self, kind=None):
        return [call for call in self.calls if call[0] == "fetch_by_ids" and (kind is None or call[1] is kind)]

    async def fetch_by_ids(self, kind, ids):
        self.calls.append(("fetch_by_ids", kind, list(ids)))
        await self._maybe_fail(kind)
        wanted = set(ids)
        return [record for record in self.records[kind] if getattr(record, kind.id_field) in wanted]

    async def fetch_incidents_by_ids(self, incident_ids):
        self.calls.append(("fetch_incidents_by_ids", list(incident_ids)))
        await self._maybe_fail("incidents")
        return [incident for incident in self.incidents if incident.incident_id in incident_ids]

    async def fetch_incidents_by_filters(self, filters):
        self.calls.append(("fetch_incidents_by_filters", filters))
        await self._maybe_fail("incidents")
        return self.incidents[:filters.limit]

    async def fetch_timeline(self, incident_id):
        self.calls.append(("fetch_timeline", incident_id))
        await self._maybe_fail("timeline")
        return self.timelines.get(incident_id, [])

    async def fetch_alerts(self, incident_id, limit):
        self.calls.append(("fetch_alerts", incident_id, limit))
        await self._maybe_fail("alerts")
        items = self.alerts.get(incident_id, [])
        return items[:limit], len(items)

    async def list_channels(self):
        self.calls.append(("list_channels",))
        await self._maybe_fail("channels")
        return list(self.records[EntityKind.CHANNEL])

    async def list_escalation_rules(self, channel_id):
        self.calls.append(("list_escalation_rules", channel_id))
        await self._maybe_fail("rules")
        return self.rules.get(channel_id, [])

    async def list_members(self, name="", email=""):
        self.calls.append(("list_members", name, email))
        await self._maybe_fail("members")
        members = [p for p in self.records[EntityKind.PERSON] if name.lower() in p.person_name.lower()]
        if email:
            members = [p for p in members if p.email == email]
        return members, len(members)

    async def list_teams(self, name=""):
        self.calls.append(("list_teams", name))
        await self._maybe_fail("teams")
        teams = [t for t in self.records[EntityKind.TEAM] if name.lower() in t.team_name.lower()]
        return teams, len(teams)

    async def list_changes(self, filters):
        self.calls.append(("list_changes", filters))
        await self._maybe_fail("changes")
        return self.changes[:filters.limit], len(self.changes)


# ── Record factories ──────────────────────────────────────────────────────────

def person(person_id, name, email=""):
    return PersonInfo(person_id=person_id, person_name=name, email=email)


def channel(channel_id, name, team_id=0, creator_id=0):
    return ChannelInfo(channel_id=channel_id, channel_name=name, team_id=team_id, creator_id=creator_id)


def team(team_id, name, members=()):
    return TeamInfo(team_id=team_id, team_name=name, members=list(members))


def schedule(schedule_id, name):
    return ScheduleInfo(schedule_id=schedule_id, schedule_name=name)


def incident(incident_id, creator_id=0, channel_id=0, closer_id=0, responders=(), **extra):
    return RawIncident(
        incident_id=incident_id,
        creator_id=creator_id,
        channel_id=channel_id,
        closer_id=closer_id,
        responders=[{"person_id": pid} for pid in responders],
        **extra,
    )


def timeline_item(type, person_id=0, detail=None, created_at=0):
    return RawTimelineItem(type=type, person_id=person_id, detail=detail, created_at=created_at)


def alert(alert_id, title="alert"):
    return AlertPreview(alert_id=alert_id, title=title)


def change(change_id, channel_id=0, creator_id=0):
    return RawChange(change_id=change_id, channel_id=channel_id, creator_id=creator_id)


def escalation_rule(rule_id="rule-1", channel_id=0, layers=()):
    return RawEscalationRule.model_validate({
        "rule_id": rule_id,
        "channel_id": channel_id,
        "layers": list(layers),
    })


@pytest.fixture
def scenario_stub():
    """Persons {7: Alice} (9 unknown) and channel {3: Ops}."""
    return StubFlashduty(
        persons=[person(7, "Alice", "alice@example.com")],
        channels=[channel(3, "Ops")],
        incidents=[
            incident("inc-a", creator_id=7, channel_id=3),
            incident("inc-b", creator_id=9, channel_id=3),
        ],
    )
