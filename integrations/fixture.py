"""Fixture-backed Flashduty client.

Used when FLASHDUTY_APP_KEY is not set: serves the same calls as
FlashdutyClient from fixtures/flashduty.json, so the service and the CLI demo
run end to end without a Flashduty account.

The fixture file is a single JSON object:

    {
        "persons":   [PersonInfo, ...],
        "channels":  [ChannelInfo, ...],
        "teams":     [TeamInfo, ...],
        "schedules": [ScheduleInfo, ...],
        "incidents": [RawIncident, ...],
        "timelines": {incident_id: [RawTimelineItem, ...]},
        "alerts":    {incident_id: [AlertPreview, ...]},
        "escalation_rules": {channel_id: [RawEscalationRule, ...]},
        "changes":   [RawChange, ...]
    }
"""

import json
import logging
import pathlib

from pydantic import BaseModel

from core.collector import IdentifierSet, dedupe_ids
from integrations.flashduty import DIRECTORY_PAGE_LIMIT
from schemas.query import ChangeFilters, IncidentFilters
from schemas.records import AlertPreview, RawChange, RawEscalationRule, RawIncident, RawTimelineItem
from schemas.resolved import RESOLVED_MODELS, ChannelInfo, EntityKind, PersonInfo, TeamInfo

logger = logging.getLogger(__name__)

DEFAULT_FIXTURE_PATH = pathlib.Path(__file__).parents[1] / "fixtures" / "flashduty.json"

_KIND_SECTIONS = {
    EntityKind.PERSON: "persons",
    EntityKind.CHANNEL: "channels",
    EntityKind.TEAM: "teams",
    EntityKind.SCHEDULE: "schedules",
}


class FixtureClient:
    """In-memory implementation of the Flashduty calls the engine uses."""

    def __init__(self, path: pathlib.Path = DEFAULT_FIXTURE_PATH) -> None:
        with open(path, encoding="utf-8") as f:
            self._data = json.load(f)
        logger.info("Loaded Flashduty fixture data from %s.", path)

    async def __aenter__(self) -> "FixtureClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        pass

    async def fetch_by_ids(self, kind: EntityKind, ids: IdentifierSet) -> list[BaseModel]:
        wanted = set(dedupe_ids(ids))
        model = RESOLVED_MODELS[kind]
        records = [model.model_validate(item) for item in self._data.get(_KIND_SECTIONS[kind], [])]
        return [record for record in records if getattr(record, kind.id_field) in wanted]

    async def fetch_incidents_by_ids(self, incident_ids: list[str]) -> list[RawIncident]:
        by_id = {incident.incident_id: incident for incident in self._incidents()}
        return [by_id[incident_id] for incident_id in incident_ids if incident_id in by_id]

    async def fetch_incidents_by_filters(self, filters: IncidentFilters) -> list[RawIncident]:
        progress = {p for p in filters.progress.split(",") if p}
        matched = []
        for incident in self._incidents():
            if not filters.start_time <= incident.start_time <= filters.end_time:
                continue
            if progress and incident.progress not in progress:
                continue
            if filters.severity and incident.severity != filters.severity:
                continue
            if filters.channel_id and incident.channel_id != filters.channel_id:
                continue
            if filters.title and filters.title.lower() not in incident.title.lower():
                continue
            matched.append(incident)
        return matched[:filters.limit]

    async def fetch_timeline(self, incident_id: str) -> list[RawTimelineItem]:
        items = self._data.get("timelines", {}).get(incident_id, [])
        return [RawTimelineItem.model_validate(item) for item in items]

    async def fetch_alerts(self, incident_id: str, limit: int) -> tuple[list[AlertPreview], int]:
        items = self._data.get("alerts", {}).get(incident_id, [])
        return [AlertPreview.model_validate(item) for item in items[:limit]], len(items)

    async def list_channels(self) -> list[ChannelInfo]:
        return [ChannelInfo.model_validate(item) for item in self._data.get("channels", [])]

    async def list_members(self, name: str = "", email: str = "") -> tuple[list[PersonInfo], int]:
        members = [PersonInfo.model_validate(item) for item in self._data.get("persons", [])]
        if name:
            members = [member for member in members if name.lower() in member.person_name.lower()]
        if email:
            members = [member for member in members if member.email.lower() == email.lower()]
        return members[:DIRECTORY_PAGE_LIMIT], len(members)

    async def list_teams(self, name: str = "") -> tuple[list[TeamInfo], int]:
        teams = [TeamInfo.model_validate(item) for item in self._data.get("teams", [])]
        if name:
            teams = [team for team in teams if name.lower() in team.team_name.lower()]
        return teams[:DIRECTORY_PAGE_LIMIT], len(teams)

    async def list_escalation_rules(self, channel_id: int) -> list[RawEscalationRule]:
        items = self._data.get("escalation_rules", {}).get(str(channel_id), [])
        return [RawEscalationRule.model_validate(item) for item in items]

    async def list_changes(self, filters: ChangeFilters) -> tuple[list[RawChange], int]:
        changes = [RawChange.model_validate(item) for item in self._data.get("changes", [])]
        if filters.change_ids:
            changes = [change for change in changes if change.change_id in filters.change_ids]
        if filters.channel_id:
            changes = [change for change in changes if change.channel_id == filters.channel_id]
        if filters.type:
            changes = [change for change in changes if change.type == filters.type]
        if filters.start_time:
            changes = [change for change in changes if change.start_time >= filters.start_time]
        if filters.end_time:
            changes = [change for change in changes if change.start_time <= filters.end_time]
        return changes[:filters.limit], len(changes)

    def _incidents(self) -> list[RawIncident]:
        return [RawIncident.model_validate(item) for item in self._data.get("incidents", [])]
