"""Join/merge builder.

Combines raw records with the resolved mappings of one fan-out to produce
enriched records. Every foreign key is looked up in its mapping; a hit fills
the paired display fields, a miss leaves them blank and keeps the raw id.
Nested collections (responders, layer targets) are rebuilt element-wise in
their original order.

Pure and total: no I/O, no exceptions. The raw records are not modified.
"""

from core.mappings import ResolvedMappings
from schemas.enriched import (
    AlertCondition,
    Change,
    EnrichedIncident,
    EnrichedResponder,
    EscalationLayer,
    EscalationRule,
    EscalationTarget,
    NotifyBy,
    PersonTarget,
    ScheduleTarget,
    TeamTarget,
    TimeFilter,
    WebhookConfig,
)
from schemas.records import (
    RawChange,
    RawEscalationLayer,
    RawEscalationRule,
    RawEscalationTarget,
    RawIncident,
    RawWebhook,
)
from schemas.resolved import ChannelInfo


def _person_name(mappings: ResolvedMappings, person_id: int) -> str:
    person = mappings.persons.get(person_id)
    return person.person_name if person else ""


def _person_email(mappings: ResolvedMappings, person_id: int) -> str:
    person = mappings.persons.get(person_id)
    return person.email if person else ""


def _channel_name(mappings: ResolvedMappings, channel_id: int) -> str:
    channel = mappings.channels.get(channel_id)
    return channel.channel_name if channel else ""


# ── Incidents ────────────────────────────────────────────────────────────────

def join_incidents(raw: list[RawIncident], mappings: ResolvedMappings) -> list[EnrichedIncident]:
    """Build EnrichedIncidents from raw incidents and person/channel mappings.

    Alert previews are not part of the join; the engine attaches them
    afterwards on a copy.
    """
    enriched = []
    for incident in raw:
        responders = [
            EnrichedResponder(
                person_id=responder.person_id,
                person_name=_person_name(mappings, responder.person_id),
                email=_person_email(mappings, responder.person_id),
                assigned_at=responder.assigned_at,
                acknowledged_at=responder.acknowledged_at,
            )
            for responder in incident.responders
        ]

        enriched.append(EnrichedIncident(
            incident_id=incident.incident_id,
            title=incident.title,
            description=incident.description,
            severity=incident.severity,
            progress=incident.progress,
            start_time=incident.start_time,
            ack_time=incident.ack_time,
            close_time=incident.close_time,
            channel_id=incident.channel_id,
            channel_name=_channel_name(mappings, incident.channel_id),
            creator_id=incident.creator_id,
            creator_name=_person_name(mappings, incident.creator_id),
            creator_email=_person_email(mappings, incident.creator_id),
            closer_id=incident.closer_id,
            closer_name=_person_name(mappings, incident.closer_id),
            responders=responders,
            labels=dict(incident.labels),
            custom_fields=dict(incident.custom_fields),
        ))
    return enriched


# ── Channels ─────────────────────────────────────────────────────────────────

def join_channels(channels: list[ChannelInfo], mappings: ResolvedMappings) -> list[ChannelInfo]:
    """Fill team_name and creator_name on fresh copies of the channels."""
    joined = []
    for channel in channels:
        team = mappings.teams.get(channel.team_id)
        creator = mappings.persons.get(channel.creator_id)
        joined.append(channel.model_copy(update={
            "team_name": team.team_name if team else "",
            "creator_name": creator.person_name if creator else "",
        }))
    return joined


# ── Escalation rules ─────────────────────────────────────────────────────────

def _webhook(raw: RawWebhook) -> WebhookConfig:
    alias = raw.settings.get("alias")
    return WebhookConfig(
        type=raw.type,
        alias=alias if isinstance(alias, str) else "",
        settings=dict(raw.settings),
    )


def _target(raw: RawEscalationTarget, mappings: ResolvedMappings) -> EscalationTarget:
    persons = [
        PersonTarget(
            person_id=person_id,
            person_name=_person_name(mappings, person_id),
            email=_person_email(mappings, person_id),
        )
        for person_id in raw.person_ids
    ]

    teams = []
    for team_id in raw.team_ids:
        team = mappings.teams.get(team_id)
        teams.append(TeamTarget(team_id=team_id, team_name=team.team_name if team else ""))

    schedules = []
    for schedule_id, role_ids in raw.schedule_to_role_ids.items():
        schedule = mappings.schedules.get(schedule_id)
        schedules.append(ScheduleTarget(
            schedule_id=schedule_id,
            schedule_name=schedule.schedule_name if schedule else "",
            role_ids=list(role_ids),
        ))

    notify_by = None
    if raw.by is not None:
        notify_by = NotifyBy(**raw.by.model_dump())

    return EscalationTarget(
        persons=persons,
        teams=teams,
        schedules=schedules,
        notify_by=notify_by,
        webhooks=[_webhook(webhook) for webhook in raw.webhooks],
    )


def _layer(idx: int, raw: RawEscalationLayer, mappings: ResolvedMappings) -> EscalationLayer:
    return EscalationLayer(
        layer_idx=idx,
        timeout=raw.escalate_window,
        notify_interval=raw.notify_step,
        max_times=raw.max_times,
        force_escalate=raw.force_escalate,
        target=_target(raw.target, mappings) if raw.target is not None else None,
    )


def join_escalation_rules(
    raw_rules: list[RawEscalationRule],
    mappings: ResolvedMappings,
) -> list[EscalationRule]:
    """Build EscalationRules with every layer target resolved.

    Time filters and alert filters are structural data: they are copied in
    order and never interpreted here.
    """
    rules = []
    for raw in raw_rules:
        rules.append(EscalationRule(
            rule_id=raw.rule_id,
            rule_name=raw.rule_name,
            description=raw.description,
            channel_id=raw.channel_id,
            channel_name=_channel_name(mappings, raw.channel_id),
            status=raw.status,
            priority=raw.priority,
            aggr_window=raw.aggr_window,
            layers=[_layer(idx, layer, mappings) for idx, layer in enumerate(raw.layers)],
            time_filters=[TimeFilter(**tf.model_dump()) for tf in raw.time_filters],
            filters=[
                [AlertCondition(**condition.model_dump()) for condition in group]
                for group in raw.filters
            ],
        ))
    return rules


# ── Changes ──────────────────────────────────────────────────────────────────

def join_changes(raw: list[RawChange], mappings: ResolvedMappings) -> list[Change]:
    return [
        Change(
            change_id=change.change_id,
            title=change.title,
            description=change.description,
            type=change.type,
            status=change.status,
            channel_id=change.channel_id,
            channel_name=_channel_name(mappings, change.channel_id),
            creator_id=change.creator_id,
            creator_name=_person_name(mappings, change.creator_id),
            start_time=change.start_time,
            end_time=change.end_time,
            labels=dict(change.labels),
        )
        for change in raw
    ]
