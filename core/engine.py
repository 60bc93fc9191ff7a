"""Enrichment engine: the exposed enrichment and query operations.

EnrichmentEngine is the single entry point for callers (the HTTP service and
the CLI). It owns no state beyond its collaborators: every call collects the
ids its records reference, resolves them through one fan-out, joins, and
returns fresh enriched records. Nothing is cached between calls.

Pipeline order inside every enrich_* operation:
    1. Collect one IdentifierSet per entity kind (core.collector)
    2. Resolve all kinds concurrently, one batched lookup each (core.fanout)
    3. Join raw records with the resolved mappings (core.join)

Whether a failed lookup aborts the call or degrades to blank names is decided
per entity kind by an explicit policy argument. The module constants below
are the defaults for each operation; callers can pass their own.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol

from core.collector import (
    IdentifierSet,
    collect_change_ids,
    collect_channel_ids,
    collect_escalation_ids,
    collect_incident_ids,
    collect_timeline_person_ids,
    dedupe_ids,
)
from core.fanout import Branch, FailurePolicy, FanOutCoordinator, run_concurrently
from core.join import join_changes, join_channels, join_escalation_rules, join_incidents
from core.mappings import ResolvedMappings
from core.resolver import BatchResolver
from core.timeline import enrich_timeline
from schemas.enriched import (
    Change,
    EnrichedIncident,
    EscalationRule,
    IncidentAlerts,
    IncidentTimeline,
    TimelineEvent,
)
from schemas.query import MAX_QUERY_LIMIT, ChangeFilters, IncidentFilters
from schemas.records import (
    AlertPreview,
    RawChange,
    RawEscalationRule,
    RawIncident,
    RawTimelineItem,
)
from schemas.resolved import ChannelInfo, EntityKind, PersonInfo, TeamInfo

logger = logging.getLogger(__name__)

Policy = dict[EntityKind, FailurePolicy]

# Creator, closer and responder names are what an incident listing is for.
# A missing channel name only leaves the channel id bare.
INCIDENT_POLICY: Policy = {
    EntityKind.PERSON: FailurePolicy.REQUIRE,
    EntityKind.CHANNEL: FailurePolicy.DEGRADE,
}

CHANNEL_POLICY: Policy = {
    EntityKind.TEAM: FailurePolicy.DEGRADE,
    EntityKind.PERSON: FailurePolicy.DEGRADE,
}

ESCALATION_POLICY: Policy = {
    EntityKind.PERSON: FailurePolicy.DEGRADE,
    EntityKind.TEAM: FailurePolicy.DEGRADE,
    EntityKind.SCHEDULE: FailurePolicy.DEGRADE,
    EntityKind.CHANNEL: FailurePolicy.DEGRADE,
}

CHANGE_POLICY: Policy = {
    EntityKind.CHANNEL: FailurePolicy.DEGRADE,
    EntityKind.PERSON: FailurePolicy.DEGRADE,
}

TIMELINE_POLICY: Policy = {
    EntityKind.PERSON: FailurePolicy.REQUIRE,
}

DEFAULT_ALERTS_LIMIT = 20


class FlashdutySource(Protocol):
    """Everything the engine needs from a Flashduty client.

    FlashdutyClient implements this over HTTP and FixtureClient from a local
    JSON file. Tests use a stub.
    """

    async def fetch_by_ids(self, kind: EntityKind, ids: IdentifierSet) -> list: ...

    async def fetch_incidents_by_ids(self, incident_ids: list[str]) -> list[RawIncident]: ...

    async def fetch_incidents_by_filters(self, filters: IncidentFilters) -> list[RawIncident]: ...

    async def fetch_timeline(self, incident_id: str) -> list[RawTimelineItem]: ...

    async def fetch_alerts(self, incident_id: str, limit: int) -> tuple[list[AlertPreview], int]: ...

    async def list_channels(self) -> list[ChannelInfo]: ...

    async def list_members(self, name: str = "", email: str = "") -> tuple[list[PersonInfo], int]: ...

    async def list_teams(self, name: str = "") -> tuple[list[TeamInfo], int]: ...

    async def list_escalation_rules(self, channel_id: int) -> list[RawEscalationRule]: ...

    async def list_changes(self, filters: ChangeFilters) -> tuple[list[RawChange], int]: ...


class EnrichmentEngine:
    """Turns raw Flashduty records into denormalized, display-ready records.

    Holds the collaborator client and the resolver/fan-out pair built on it.
    These are created once at construction time and reused across calls;
    per-call state (identifier sets, mappings) never outlives the call.

    Attributes:
        _client: The Flashduty collaborator. Passed explicitly, never looked
            up from a module-level cache.
        _resolver: Batched lookup per entity kind.
        _fanout: Concurrent resolution with per-kind failure policy.
    """

    def __init__(self, client: FlashdutySource) -> None:
        self._client = client
        self._resolver = BatchResolver(client)
        self._fanout = FanOutCoordinator(self._resolver)

    async def _resolve(
        self,
        ids: dict[EntityKind, IdentifierSet],
        policy: Policy,
        event_queue: asyncio.Queue | None,
    ) -> ResolvedMappings:
        """Resolve every collected kind with the policy given for it.

        Raises:
            KeyError: If policy has no entry for a collected kind.
        """
        branches = [Branch(kind, kind_ids, policy[kind]) for kind, kind_ids in ids.items()]
        return await self._fanout.resolve(branches, event_queue)

    # ── Enrichment ──────────────────────────────────────────────────────────

    async def enrich_incidents(
        self,
        raw: list[RawIncident],
        policy: Policy = INCIDENT_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[EnrichedIncident]:
        """Fill channel, creator, closer and responder names on incidents.

        Args:
            raw: Incidents as fetched. Not modified.
            policy: Failure policy for the PERSON and CHANNEL lookups.
                Defaults to INCIDENT_POLICY: persons are mandatory,
                channel names degrade to blank.
            event_queue: Optional queue for ResolutionEvents.

        Returns:
            One EnrichedIncident per raw incident, in the same order.

        Raises:
            ResolutionError: If a lookup with REQUIRE policy fails.
        """
        if not raw:
            return []
        mappings = await self._resolve(collect_incident_ids(raw), policy, event_queue)
        return join_incidents(raw, mappings)

    async def enrich_channels(
        self,
        channels: list[ChannelInfo],
        policy: Policy = CHANNEL_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[ChannelInfo]:
        """Fill team_name and creator_name on channels.

        Both lookups only improve display, so by default a failure leaves
        the names blank rather than failing the call.
        """
        if not channels:
            return []
        mappings = await self._resolve(collect_channel_ids(channels), policy, event_queue)
        return join_channels(channels, mappings)

    def enrich_timeline(
        self,
        items: list[RawTimelineItem],
        persons: dict[int, PersonInfo],
    ) -> list[TimelineEvent]:
        """Convert feed entries using an already-resolved person mapping.

        Pure and synchronous; query_timelines resolves the mapping for a
        whole batch of timelines and calls this once per incident.
        """
        return enrich_timeline(items, persons)

    async def enrich_escalation_rules(
        self,
        raw: list[RawEscalationRule],
        policy: Policy = ESCALATION_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[EscalationRule]:
        """Resolve every layer target and channel across a batch of rules.

        All rules share one fan-out, so a person targeted by several layers
        or rules is looked up once.
        """
        if not raw:
            return []
        mappings = await self._resolve(collect_escalation_ids(raw), policy, event_queue)
        return join_escalation_rules(raw, mappings)

    async def enrich_escalation_rule(
        self,
        raw: RawEscalationRule,
        policy: Policy = ESCALATION_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> EscalationRule:
        """Single-rule form of enrich_escalation_rules."""
        rules = await self.enrich_escalation_rules([raw], policy, event_queue)
        return rules[0]

    async def enrich_changes(
        self,
        raw: list[RawChange],
        policy: Policy = CHANGE_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[Change]:
        if not raw:
            return []
        mappings = await self._resolve(collect_change_ids(raw), policy, event_queue)
        return join_changes(raw, mappings)

    # ── Queries (fetch + enrich) ────────────────────────────────────────────

    async def query_incidents(
        self,
        incident_ids: Iterable[str] | None = None,
        filters: IncidentFilters | None = None,
        include_alerts: bool = True,
        alerts_limit: int = DEFAULT_ALERTS_LIMIT,
        event_queue: asyncio.Queue | None = None,
    ) -> list[EnrichedIncident]:
        """Fetch incidents by id or by filters and enrich them.

        Direct lookup by id takes precedence; filters are ignored when ids
        are given. With include_alerts, the first page of alerts for every
        incident is fetched concurrently and attached to a copy of each
        enriched incident. Any alert fetch failing fails the call.

        Raises:
            ValueError: If neither ids nor filters are given, if ids is
                given but empty, or if alerts_limit is out of range.
            ResolutionError: If person resolution fails.
        """
        _check_limit(alerts_limit)

        if incident_ids is not None:
            ids = dedupe_ids(incident_ids)
            if not ids:
                raise ValueError("incident_ids must contain at least one valid ID when specified.")
            logger.info("Querying %d incident(s) by id.", len(ids))
            raw = await self._client.fetch_incidents_by_ids(ids)
        elif filters is not None:
            logger.info(
                "Querying incidents between %d and %d (limit %d).",
                filters.start_time,
                filters.end_time,
                filters.limit,
            )
            raw = await self._client.fetch_incidents_by_filters(filters)
        else:
            raise ValueError("Either incident_ids or filters is required.")

        enriched = await self.enrich_incidents(raw, event_queue=event_queue)
        if not include_alerts or not enriched:
            return enriched

        previews = await run_concurrently(
            self._client.fetch_alerts(incident.incident_id, alerts_limit) for incident in enriched
        )
        return [
            incident.model_copy(update={"alerts_preview": alerts, "alerts_total": total})
            for incident, (alerts, total) in zip(enriched, previews)
        ]

    async def query_timelines(
        self,
        incident_ids: Iterable[str],
        policy: Policy = TIMELINE_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[IncidentTimeline]:
        """Fetch and enrich the timelines of several incidents.

        Feeds are fetched concurrently; the person ids referenced across all
        of them are then resolved in one batched lookup, so an operator who
        appears in every timeline is fetched once.

        Returns:
            One IncidentTimeline per distinct incident id, in input order.
        """
        ids = dedupe_ids(incident_ids)
        if not ids:
            raise ValueError("incident_ids must contain at least one valid ID.")

        feeds = await run_concurrently(self._client.fetch_timeline(incident_id) for incident_id in ids)

        person_ids = collect_timeline_person_ids(item for feed in feeds for item in feed)
        mappings = await self._resolve({EntityKind.PERSON: person_ids}, policy, event_queue)

        logger.debug(
            "Enriched %d timeline(s) with %d distinct person id(s).", len(ids), len(person_ids),
        )
        return [
            IncidentTimeline(
                incident_id=incident_id,
                timeline=self.enrich_timeline(feed, mappings.persons),
                total=len(feed),
            )
            for incident_id, feed in zip(ids, feeds)
        ]

    async def query_alerts(
        self,
        incident_ids: Iterable[str],
        limit: int = DEFAULT_ALERTS_LIMIT,
    ) -> list[IncidentAlerts]:
        """Fetch the first page of alerts for each incident concurrently."""
        _check_limit(limit)
        ids = dedupe_ids(incident_ids)
        if not ids:
            raise ValueError("incident_ids must contain at least one valid ID.")

        pages = await run_concurrently(self._client.fetch_alerts(incident_id, limit) for incident_id in ids)
        return [
            IncidentAlerts(incident_id=incident_id, alerts=alerts, total=total)
            for incident_id, (alerts, total) in zip(ids, pages)
        ]

    async def query_channels(
        self,
        channel_ids: Iterable[int] | None = None,
        name: str | None = None,
        policy: Policy = CHANNEL_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[ChannelInfo]:
        """Look up channels by id, or list them filtered by name.

        By id, the channel lookup itself is the result, so its failure
        propagates as ResolutionError. Ids the API did not return are
        skipped. Without ids, every channel is listed and name is matched
        as a case-insensitive substring.
        """
        if channel_ids is not None:
            ids = dedupe_ids(channel_ids)
            if not ids:
                raise ValueError("channel_ids must contain at least one valid ID when specified.")
            found = await self._resolver.resolve(EntityKind.CHANNEL, ids)
            channels = [found[channel_id] for channel_id in ids if channel_id in found]
        else:
            channels = await self._client.list_channels()
            if name:
                needle = name.lower()
                channels = [channel for channel in channels if needle in channel.channel_name.lower()]

        return await self.enrich_channels(channels, policy, event_queue)

    async def query_members(
        self,
        person_ids: Iterable[int] | None = None,
        name: str | None = None,
        email: str | None = None,
    ) -> tuple[list[PersonInfo], int]:
        """Look up members by id, or list them filtered by name and email.

        By id, the person lookup is the result: its failure propagates as
        ResolutionError, missing ids are skipped and total is the number
        found. Otherwise the first page of the member directory is returned
        with the total the API reports.
        """
        if person_ids is not None:
            ids = dedupe_ids(person_ids)
            if not ids:
                raise ValueError("person_ids must contain at least one valid ID when specified.")
            found = await self._resolver.resolve(EntityKind.PERSON, ids)
            members = [found[person_id] for person_id in ids if person_id in found]
            return members, len(members)
        return await self._client.list_members(name or "", email or "")

    async def query_teams(
        self,
        team_ids: Iterable[int] | None = None,
        name: str | None = None,
    ) -> tuple[list[TeamInfo], int]:
        """Look up teams, with their member lists, by id or by name."""
        if team_ids is not None:
            ids = dedupe_ids(team_ids)
            if not ids:
                raise ValueError("team_ids must contain at least one valid ID when specified.")
            found = await self._resolver.resolve(EntityKind.TEAM, ids)
            teams = [found[team_id] for team_id in ids if team_id in found]
            return teams, len(teams)
        return await self._client.list_teams(name or "")

    async def query_escalation_rules(
        self,
        channel_id: int,
        policy: Policy = ESCALATION_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> list[EscalationRule]:
        if channel_id <= 0:
            raise ValueError("channel_id is required.")
        raw = await self._client.list_escalation_rules(channel_id)
        return await self.enrich_escalation_rules(raw, policy, event_queue)

    async def query_changes(
        self,
        filters: ChangeFilters | None = None,
        policy: Policy = CHANGE_POLICY,
        event_queue: asyncio.Queue | None = None,
    ) -> tuple[list[Change], int]:
        """List change records and enrich them.

        Returns:
            (changes, total) where total is the count reported by the API,
            which may exceed the page that was returned.
        """
        raw, total = await self._client.list_changes(filters or ChangeFilters())
        return await self.enrich_changes(raw, policy, event_queue), total


def _check_limit(limit: int) -> None:
    if not 1 <= limit <= MAX_QUERY_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_QUERY_LIMIT}, got {limit}.")
